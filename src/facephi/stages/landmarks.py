from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from ..errors import LandmarksNotFound
from ..schemas.analysis import FaceDetection, Point2D

# 68-point (iBUG / Multi-PIE) landmark indices, 0-based.
LANDMARK_68 = {
    "jaw_start": 0,
    "jaw_end": 16,
    "chin": 8,
    "nasion": 27,
    "nose_tip": 30,
    "nose_left": 31,
    "nose_base": 33,
    "nose_right": 35,
    "lip_top": 51,
    "lip_bottom": 57,
}
JAW_RANGE = range(LANDMARK_68["jaw_start"], LANDMARK_68["jaw_end"] + 1)
NUM_LANDMARKS = 68


class LandmarkPoints(BaseModel):
    """Named anatomical anchors pulled out of one 68-point landmark set."""

    model_config = ConfigDict(frozen=True)

    jaw: list[Point2D]
    chin: Point2D
    nasion: Point2D
    nose_tip: Point2D
    nose_left: Point2D
    nose_right: Point2D
    nose_base: Point2D
    lip_top: Point2D
    lip_bottom: Point2D

    @property
    def jaw_left(self) -> Point2D:
        return self.jaw[0]

    @property
    def jaw_right(self) -> Point2D:
        return self.jaw[-1]


def extract(detection: FaceDetection) -> LandmarkPoints:
    lms = detection.landmarks
    if not lms or len(lms) < NUM_LANDMARKS:
        raise LandmarksNotFound(f"expected {NUM_LANDMARKS} landmarks, got {len(lms or [])}")

    def at(name: str) -> Point2D:
        return lms[LANDMARK_68[name]]

    return LandmarkPoints(
        jaw=[lms[i] for i in JAW_RANGE],
        chin=at("chin"),
        nasion=at("nasion"),
        nose_tip=at("nose_tip"),
        nose_left=at("nose_left"),
        nose_right=at("nose_right"),
        nose_base=at("nose_base"),
        lip_top=at("lip_top"),
        lip_bottom=at("lip_bottom"),
    )
