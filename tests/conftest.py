import asyncio
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = (ROOT / "src").resolve()

if SRC not in (Path(p).resolve() for p in sys.path):
    sys.path.insert(0, str(SRC))

from facephi.errors import ModelLoadFailed  # noqa: E402
from facephi.schemas.analysis import BoundingBox, FaceDetection, LoadedImage, Point2D  # noqa: E402

# Anchor geometry used across tests:
#   jaw 0 (0,100) .. jaw 16 (200,100), chin = jaw 8 (100,80), nasion (100,0)
#   nose tip (100,40), wings (90,45)/(110,45), nose base (100,50)
#   upper lip top (100,60), lower lip bottom (100,70)
# Face shape 80/200 = 0.4, nose 40/20 = 2.0, lip-chin 10/10 = 1.0
ANCHORS = {
    8: (100.0, 80.0),
    27: (100.0, 0.0),
    30: (100.0, 40.0),
    31: (90.0, 45.0),
    33: (100.0, 50.0),
    35: (110.0, 45.0),
    51: (100.0, 60.0),
    57: (100.0, 70.0),
}


def synthetic_landmarks(overrides: dict | None = None) -> list[Point2D]:
    pts = []
    for i in range(68):
        if i <= 16:
            xy = (12.5 * i, 100.0)
        else:
            xy = (40.0 + i, 30.0)
        xy = ANCHORS.get(i, xy)
        if overrides and i in overrides:
            xy = overrides[i]
        pts.append(Point2D(x=xy[0], y=xy[1]))
    return pts


def make_image(name: str = "face.jpg", h: int = 120, w: int = 200) -> LoadedImage:
    return LoadedImage(pixels=np.zeros((h, w, 3), dtype=np.uint8), name=name)


class FakeDetector:
    """Scriptable FaceDetector.

    ``faces`` is the coarse-pass face count. Images whose name is in
    ``hold`` block in the landmark pass until ``release(name)`` is called.
    """

    def __init__(self, faces: int = 1, landmarks=None, *, no_landmarks: bool = False,
                 fail_load: bool | Exception = False, coarse_error: Exception | None = None,
                 landmark_error: Exception | None = None, hold: tuple[str, ...] = ()):
        self.faces = faces
        self.landmarks = landmarks if landmarks is not None else synthetic_landmarks()
        self.no_landmarks = no_landmarks
        self.fail_load = fail_load
        self.coarse_error = coarse_error
        self.landmark_error = landmark_error
        self.hold = set(hold)
        self._gates: dict[str, asyncio.Event] = {}
        self._loaded = False
        self.load_calls = 0
        self.coarse_calls = 0
        self.landmark_calls = 0
        self.landmark_started: list[str] = []
        self.landmark_finished: list[str] = []

    @property
    def loaded(self) -> bool:
        return self._loaded

    async def load(self) -> None:
        self.load_calls += 1
        if isinstance(self.fail_load, Exception):
            raise self.fail_load
        if self.fail_load:
            raise ModelLoadFailed("asset server unreachable")
        self._loaded = True

    def find_all_faces(self, image, cfg):
        self.coarse_calls += 1
        if self.coarse_error is not None:
            raise self.coarse_error
        return [BoundingBox(x=10.0 * i, y=0.0, width=50.0, height=60.0, score=0.9) for i in range(self.faces)]

    def gate(self, name: str) -> asyncio.Event:
        if name not in self._gates:
            self._gates[name] = asyncio.Event()
        return self._gates[name]

    def release(self, name: str) -> None:
        self.gate(name).set()

    async def find_single_face_with_landmarks(self, image, cfg):
        self.landmark_calls += 1
        self.landmark_started.append(image.name)
        if image.name in self.hold:
            await self.gate(image.name).wait()
        self.landmark_finished.append(image.name)
        if self.landmark_error is not None:
            raise self.landmark_error
        if self.no_landmarks:
            return None
        return FaceDetection(boxes=[BoundingBox(x=0, y=0, width=200, height=100)], landmarks=self.landmarks)


class FakeStream:
    def __init__(self, tracks: int = 1, frame_shape=(48, 64, 3)):
        self._tracks = tracks
        self.frame_shape = frame_shape
        self.frames_read = 0
        self.stop_calls = 0

    @property
    def active_tracks(self) -> int:
        return self._tracks

    def read_frame(self):
        if self._tracks == 0:
            raise RuntimeError("stream stopped")
        self.frames_read += 1
        return np.full(self.frame_shape, 127, dtype=np.uint8)

    def stop(self) -> None:
        self.stop_calls += 1
        self._tracks = 0


class FakeCamera:
    def __init__(self, stream: FakeStream | None = None, error: Exception | None = None):
        self.stream = stream or FakeStream()
        self.error = error
        self.opened = 0

    def open(self):
        self.opened += 1
        if self.error is not None:
            raise self.error
        return self.stream


@pytest.fixture
def landmarks():
    return synthetic_landmarks()


@pytest.fixture
def detector():
    return FakeDetector()
