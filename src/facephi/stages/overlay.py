from __future__ import annotations

from ..schemas.analysis import Overlay, Segment
from .landmarks import LandmarkPoints


def build_overlay(points: LandmarkPoints) -> Overlay:
    # Source image pixel space; scaling to a display is the renderer's job.
    return Overlay(
        jaw_contour=list(points.jaw),
        segments=[
            Segment(name="face_height", start=points.chin, end=points.nasion),
            Segment(name="face_width", start=points.jaw_left, end=points.jaw_right),
        ],
    )
