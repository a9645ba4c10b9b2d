"""Landmark extraction, ratio math, scoring and overlay geometry."""

import pytest

from conftest import synthetic_landmarks
from facephi.errors import LandmarksNotFound
from facephi.schemas.analysis import FaceDetection, RatioMeasurement, RATIO_NAMES
from facephi.stages.landmarks import LANDMARK_68, extract
from facephi.stages.overlay import build_overlay
from facephi.stages.ratios import closeness, compute_ratios, distance, score

PHI = 1.618


def _points(overrides=None):
    return extract(FaceDetection(landmarks=synthetic_landmarks(overrides)))


def test_extract_uses_named_indices(landmarks):
    pts = extract(FaceDetection(landmarks=landmarks))
    assert len(pts.jaw) == 17
    assert pts.jaw_left == landmarks[0]
    assert pts.jaw_right == landmarks[16]
    assert pts.chin == landmarks[LANDMARK_68["chin"]]
    assert pts.nasion == landmarks[27]
    assert pts.lip_top == landmarks[51]
    assert pts.lip_bottom == landmarks[57]


@pytest.mark.parametrize("lms", [None, [], synthetic_landmarks()[:40]])
def test_extract_rejects_short_landmark_sets(lms):
    with pytest.raises(LandmarksNotFound):
        extract(FaceDetection(landmarks=lms))


def test_face_shape_ratio_matches_reference_geometry():
    pts = _points()
    assert distance(pts.jaw_left, pts.jaw_right) == pytest.approx(200.0)
    assert distance(pts.chin, pts.nasion) == pytest.approx(80.0)
    ratios = compute_ratios(pts)
    assert ratios[0].value == pytest.approx(0.4)


def test_compute_ratios_fixed_order_and_positive():
    ratios = compute_ratios(_points())
    assert [r.name for r in ratios] == list(RATIO_NAMES)
    assert all(r.value > 0 for r in ratios)
    assert ratios[1].value == pytest.approx(2.0)
    assert ratios[2].value == pytest.approx(1.0)


@pytest.mark.parametrize("overrides", [
    {16: (0.0, 100.0)},            # jaw endpoints coincide
    {31: (100.0, 45.0), 35: (100.0, 45.0)},  # nose wings coincide
    {51: (100.0, 50.0)},           # lip top on nose base
    {57: (100.0, 80.0)},           # lower lip on chin (numerator)
])
def test_collapsed_anchor_pair_is_landmarks_not_found(overrides):
    with pytest.raises(LandmarksNotFound):
        compute_ratios(_points(overrides))


def test_closeness_reference_values():
    assert closeness(PHI) == 1.0
    assert closeness(0.0) == 0.0
    assert closeness(2 * PHI) == pytest.approx(0.0, abs=1e-12)
    assert closeness(4.0) < 0


def test_score_is_mean_of_closeness():
    perfect = [RatioMeasurement(name=n, value=PHI) for n in RATIO_NAMES]
    assert score(perfect) == 1.0

    ratios = compute_ratios(_points())
    expected = sum(1 - abs(v - PHI) / PHI for v in (0.4, 2.0, 1.0)) / 3
    assert score(ratios) == pytest.approx(expected)


def test_score_is_not_clamped():
    far = [RatioMeasurement(name=n, value=10.0) for n in RATIO_NAMES]
    assert score(far) == pytest.approx(1 - (10.0 - PHI) / PHI)
    assert score(far) < 0


def test_score_honours_custom_reference():
    ratios = [RatioMeasurement(name=n, value=2.0) for n in RATIO_NAMES]
    assert score(ratios, golden_ratio=2.0) == 1.0


def test_overlay_contract():
    pts = _points()
    overlay = build_overlay(pts)
    assert len(overlay.jaw_contour) == 17
    segs = {s.name: s for s in overlay.segments}
    assert set(segs) == {"face_height", "face_width"}
    assert (segs["face_height"].start, segs["face_height"].end) == (pts.chin, pts.nasion)
    assert (segs["face_width"].start, segs["face_width"].end) == (pts.jaw_left, pts.jaw_right)
    assert (overlay.jaw_contour[0].x, overlay.jaw_contour[16].x) == (0.0, 200.0)
