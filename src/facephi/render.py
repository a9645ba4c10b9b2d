from __future__ import annotations

from pathlib import Path

import cv2
import numpy as np
from rich.panel import Panel
from rich.table import Table

from .config import GOLDEN_RATIO
from .schemas.analysis import AnalysisResult, Failure, LoadedImage, Overlay
from .stages.ratios import closeness

OVERLAY_COLOR_RGB = (0, 255, 255)
OVERLAY_THICKNESS = 3
BAR_WIDTH = 20


def display_percent(value: float, golden_ratio: float = GOLDEN_RATIO) -> float:
    """Closeness as a 0-100 bar width. Only the display is clamped."""
    return float(max(0.0, min(100.0, closeness(value, golden_ratio) * 100.0)))


def draw_overlay(rgb: np.ndarray, overlay: Overlay, *, color=OVERLAY_COLOR_RGB, thickness: int = OVERLAY_THICKNESS) -> np.ndarray:
    """Return a copy of the RGB image with the jaw contour and measurement lines."""
    out = rgb.copy()
    if overlay.jaw_contour:
        pts = np.array([p.as_int() for p in overlay.jaw_contour], dtype=np.int32)
        cv2.polylines(out, [pts], isClosed=False, color=color, thickness=thickness, lineType=cv2.LINE_AA)
    for seg in overlay.segments:
        cv2.line(out, seg.start.as_int(), seg.end.as_int(), color, thickness, cv2.LINE_AA)
    return out


def write_overlay(image: LoadedImage, result: AnalysisResult, out_path: Path) -> Path:
    annotated = draw_overlay(image.pixels, result.overlay)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    if not cv2.imwrite(str(out_path), cv2.cvtColor(annotated, cv2.COLOR_RGB2BGR)):
        raise OSError(f"could not write overlay image {out_path}")
    return out_path


def _bar(pct: float) -> str:
    filled = int(round(pct / 100.0 * BAR_WIDTH))
    return "[cyan]" + "█" * filled + "[/cyan]" + "[grey37]" + "░" * (BAR_WIDTH - filled) + "[/grey37]"


def result_table(result: AnalysisResult, *, golden_ratio: float = GOLDEN_RATIO, title: str | None = None) -> Table:
    table = Table(title=title or "Analysis Results", caption=f"Overall score {result.score * 100:.1f}% · closeness to the golden ratio")
    table.add_column("Ratio")
    table.add_column("Value", justify="right")
    table.add_column("Closeness")
    for r in result.ratios:
        pct = display_percent(r.value, golden_ratio)
        table.add_row(r.name, f"{r.value:.3f}", f"{_bar(pct)} {pct:5.1f}%")
    return table


def failure_panel(failure: Failure, *, title: str | None = None) -> Panel:
    return Panel(failure.message, title=title or failure.kind.value, border_style="red")
