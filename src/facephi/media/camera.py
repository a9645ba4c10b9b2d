from __future__ import annotations

from typing import Protocol
import logging

import cv2
import numpy as np

from ..errors import CameraPermissionDenied

logger = logging.getLogger(__name__)


class MediaStream(Protocol):
    @property
    def active_tracks(self) -> int: ...

    def read_frame(self) -> np.ndarray: ...

    def stop(self) -> None: ...


class OpenCVStream:
    """A single-track live video stream over cv2.VideoCapture."""

    def __init__(self, cap: "cv2.VideoCapture", device: int | str):
        self._cap = cap
        self.device = device

    @property
    def active_tracks(self) -> int:
        return 1 if self._cap is not None and self._cap.isOpened() else 0

    def read_frame(self) -> np.ndarray:
        if self._cap is None:
            raise RuntimeError("stream already stopped")
        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            raise RuntimeError(f"camera {self.device!r} returned no frame")
        return frame

    def stop(self) -> None:
        if self._cap is None:
            return
        self._cap.release()
        self._cap = None
        logger.debug("camera %r released", self.device)


class CameraSource:
    def __init__(self, device: int | str = 0):
        self.device = device

    def open(self) -> OpenCVStream:
        cap = cv2.VideoCapture(self.device)
        if not cap.isOpened():
            cap.release()
            # OpenCV does not tell "denied" apart from "missing"; both are unusable.
            raise CameraPermissionDenied(f"could not open camera {self.device!r}")
        logger.info("camera %r opened", self.device)
        return OpenCVStream(cap, self.device)
