from __future__ import annotations

from typing import Sequence
import math

from ..config import GOLDEN_RATIO
from ..errors import LandmarksNotFound
from ..schemas.analysis import Point2D, RatioMeasurement, RATIO_NAMES
from .landmarks import LandmarkPoints

# Anchor pairs closer than this are treated as collapsed.
MIN_ANCHOR_DISTANCE = 1e-9


def distance(a: Point2D, b: Point2D) -> float:
    return math.hypot(a.x - b.x, a.y - b.y)


def _anchor_pairs(points: LandmarkPoints) -> list[tuple[str, float, float]]:
    return [
        (
            RATIO_NAMES[0],
            distance(points.chin, points.nasion),
            distance(points.jaw_left, points.jaw_right),
        ),
        (
            RATIO_NAMES[1],
            distance(points.nasion, points.nose_tip),
            distance(points.nose_left, points.nose_right),
        ),
        (
            RATIO_NAMES[2],
            distance(points.lip_bottom, points.chin),
            distance(points.nose_base, points.lip_top),
        ),
    ]


def compute_ratios(points: LandmarkPoints) -> list[RatioMeasurement]:
    """Face shape, nose and lip/chin proportions, always in that order.

    A collapsed anchor pair means the landmark set is unusable; that is
    reported as LandmarksNotFound rather than an inf/NaN ratio.
    """
    out: list[RatioMeasurement] = []
    for name, num, den in _anchor_pairs(points):
        if num < MIN_ANCHOR_DISTANCE or den < MIN_ANCHOR_DISTANCE:
            raise LandmarksNotFound(f"degenerate anchor distance for {name!r} ({num:.3g}/{den:.3g})")
        out.append(RatioMeasurement(name=name, value=num / den))
    return out


def closeness(value: float, golden_ratio: float = GOLDEN_RATIO) -> float:
    return 1.0 - abs(value - golden_ratio) / golden_ratio


def score(ratios: Sequence[RatioMeasurement], golden_ratio: float = GOLDEN_RATIO) -> float:
    """Mean closeness over the ratios. Not clamped: far-off ratios go negative."""
    if not ratios:
        raise ValueError("score needs at least one ratio")
    return sum(closeness(r.value, golden_ratio) for r in ratios) / len(ratios)
