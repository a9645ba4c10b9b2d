from __future__ import annotations

import logging

from ..schemas.analysis import AnalysisResult, LoadedImage
from .landmarks import extract
from .orchestrator import DetectionOrchestrator
from .overlay import build_overlay
from .ratios import compute_ratios, score

logger = logging.getLogger(__name__)


async def run_analysis(orchestrator: DetectionOrchestrator, image: LoadedImage) -> AnalysisResult:
    """detect -> extract -> ratios -> score -> overlay for one image.

    Raises AnalysisError subclasses; converting them into a Failure value is
    the session's job.
    """
    detection = await orchestrator.detect(image)
    points = extract(detection)
    ratios = compute_ratios(points)
    total = score(ratios, orchestrator.cfg.golden_ratio)
    result = AnalysisResult(
        ratios=ratios,
        score=total,
        overlay=build_overlay(points),
        landmarks=list(detection.landmarks or []),
    )
    logger.info(
        "image %s scored %.3f (%s)",
        image.image_id,
        total,
        ", ".join(f"{r.name}={r.value:.3f}" for r in ratios),
    )
    return result
