from __future__ import annotations

from enum import Enum
from typing import Any
import uuid

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator

from ..errors import FailureKind

RATIO_NAMES = ("Face Shape (H/W)", "Nose Proportions (L/W)", "Lip-Chin / Nose-Lip")


class Point2D(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def as_int(self) -> tuple[int, int]:
        return int(round(self.x)), int(round(self.y))


class BoundingBox(BaseModel):
    model_config = ConfigDict(frozen=True)

    x: float
    y: float
    width: float
    height: float
    score: float | None = None


class FaceDetection(BaseModel):
    """What the detector returns for one image; discarded once ratios exist."""

    model_config = ConfigDict(frozen=True)

    boxes: list[BoundingBox] = Field(default_factory=list)
    landmarks: list[Point2D] | None = None  # 68-point scheme, image pixels


class RatioMeasurement(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    value: float = Field(gt=0.0)


class Segment(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    start: Point2D
    end: Point2D


class Overlay(BaseModel):
    model_config = ConfigDict(frozen=True)

    jaw_contour: list[Point2D] = Field(default_factory=list)
    segments: list[Segment] = Field(default_factory=list)


class AnalysisResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    ratios: list[RatioMeasurement]
    # Mean closeness; intentionally unclamped, may fall below 0.
    score: float
    overlay: Overlay
    landmarks: list[Point2D] = Field(default_factory=list)

    @model_validator(mode="after")
    def _fixed_ratio_order(self) -> "AnalysisResult":
        names = tuple(r.name for r in self.ratios)
        if names != RATIO_NAMES:
            raise ValueError(f"ratios must be exactly {RATIO_NAMES}, got {names}")
        return self


class Failure(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: FailureKind
    message: str
    detail: dict[str, Any] = Field(default_factory=dict)


class ImageOrigin(str, Enum):
    UPLOAD = "upload"
    CAMERA = "camera"


class LoadedImage(BaseModel):
    """A decoded, ready-to-detect RGB image. Never mutated after creation."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    pixels: np.ndarray = Field(exclude=True, repr=False)
    origin: ImageOrigin = ImageOrigin.UPLOAD
    name: str | None = None
    image_id: str = Field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


class SessionMode(str, Enum):
    SELECTING_SOURCE = "selecting_source"
    CAMERA_LIVE = "camera_live"
    IMAGE_LOADED = "image_loaded"


class SessionStatus(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AnalysisSession(BaseModel):
    model_config = ConfigDict(frozen=True)

    mode: SessionMode = SessionMode.SELECTING_SOURCE
    status: SessionStatus = SessionStatus.IDLE
    image: LoadedImage | None = None
    result: AnalysisResult | None = None
    failure: Failure | None = None
    generation: int = 0

    @model_validator(mode="after")
    def _outcome_matches_status(self) -> "AnalysisSession":
        if self.status == SessionStatus.SUCCEEDED:
            ok = self.result is not None and self.failure is None
        elif self.status == SessionStatus.FAILED:
            ok = self.failure is not None and self.result is None
        else:
            ok = self.result is None and self.failure is None
        if not ok:
            raise ValueError(f"result/failure do not match status {self.status.value}")
        if self.status != SessionStatus.IDLE and self.status != SessionStatus.FAILED and self.image is None:
            raise ValueError(f"status {self.status.value} requires a loaded image")
        return self
