from __future__ import annotations

from pathlib import Path
import asyncio
import json
import logging

import typer
from rich.console import Console
from rich.logging import RichHandler
from tqdm import tqdm

from .config import AnalysisConfig
from .detectors.base import FaceDetector
from .media.camera import CameraSource
from .render import failure_panel, result_table, write_overlay
from .schemas.analysis import AnalysisSession, SessionMode, SessionStatus
from .session import SessionController

app = typer.Typer(add_completion=False, help="Score how closely a face's proportions follow the golden ratio.")
console = Console()


def make_detector(cfg: AnalysisConfig) -> FaceDetector:
    from .detectors.mediapipe_tasks_backend import MediaPipeFaceDetector

    return MediaPipeFaceDetector(cfg)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _build_config(
    preset: str | None,
    timeout_ms: int | None,
    min_confidence: float | None,
    input_size: int | None,
    model_dir: Path | None,
) -> AnalysisConfig:
    cfg = AnalysisConfig.from_env()
    if preset is not None:
        try:
            cfg = cfg.with_overrides(**AnalysisConfig.apply_preset(preset))
        except ValueError as e:
            raise typer.BadParameter(str(e), param_hint="--preset") from e
    try:
        return cfg.with_overrides(
            timeout_ms=timeout_ms,
            min_confidence=min_confidence,
            input_size=input_size,
            model_dir=model_dir,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e


def _session_payload(label: str, session: AnalysisSession) -> dict:
    return {
        "image": label,
        "status": session.status.value,
        "result": session.result.model_dump(mode="json") if session.result else None,
        "failure": session.failure.model_dump(mode="json") if session.failure else None,
    }


def _report(label: str, session: AnalysisSession, cfg: AnalysisConfig, *, as_json: bool, overlay_out: Path | None) -> bool:
    if as_json:
        console.print_json(json.dumps(_session_payload(label, session)))
    elif session.result is not None:
        console.print(result_table(session.result, golden_ratio=cfg.golden_ratio, title=label))
    elif session.failure is not None:
        console.print(failure_panel(session.failure, title=f"{label}: {session.failure.kind.value}"))

    if session.status != SessionStatus.SUCCEEDED:
        return False
    if overlay_out is not None and session.image is not None:
        stem = Path(session.image.name or session.image.image_id).stem
        out = write_overlay(session.image, session.result, overlay_out / f"{stem}_overlay.png")
        if not as_json:
            console.print(f"[dim]overlay -> {out}[/dim]")
    return True


PresetOpt = typer.Option(None, "--preset", help="Detector preset: fast|balanced|accurate")
TimeoutOpt = typer.Option(None, "--timeout-ms", min=1, help="Landmark pass time budget in milliseconds (default 15000).")
ConfidenceOpt = typer.Option(None, "--min-confidence", min=0.0, max=1.0, help="Coarse face detector confidence threshold.")
InputSizeOpt = typer.Option(None, "--input-size", min=32, help="Coarse detector input resolution (multiple of 32).")
ModelDirOpt = typer.Option(None, "--model-dir", help="Where model assets are cached.")
OverlayOpt = typer.Option(None, "--overlay-out", file_okay=False, dir_okay=True, help="Write annotated images to this directory.")
JsonOpt = typer.Option(False, "--json", help="Print results as JSON.")
VerboseOpt = typer.Option(False, "--verbose", "-v", help="Debug logging.")


@app.command()
def analyze(
    images: list[Path] = typer.Argument(..., exists=True, file_okay=True, dir_okay=False, readable=True, help="Photo(s) to analyze; each extra photo is a retry on the same session."),
    overlay_out: Path | None = OverlayOpt,
    as_json: bool = JsonOpt,
    preset: str | None = PresetOpt,
    timeout_ms: int | None = TimeoutOpt,
    min_confidence: float | None = ConfidenceOpt,
    input_size: int | None = InputSizeOpt,
    model_dir: Path | None = ModelDirOpt,
    verbose: bool = VerboseOpt,
):
    """Upload mode: analyze photo files."""
    _setup_logging(verbose)
    cfg = _build_config(preset, timeout_ms, min_confidence, input_size, model_dir)

    async def _run() -> bool:
        controller = SessionController(make_detector(cfg), cfg)
        await controller.prepare()
        all_ok = True
        for path in tqdm(images, desc="Analyzing", disable=len(images) < 2 or as_json):
            session = await controller.upload(path, name=path.name)
            all_ok &= _report(path.name, session, cfg, as_json=as_json, overlay_out=overlay_out)
        return all_ok

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)


@app.command()
def camera(
    device: int = typer.Option(0, "--device", min=0, help="Camera index."),
    warmup: int = typer.Option(10, "--warmup", min=0, help="Frames to drop before capturing (lets exposure settle)."),
    overlay_out: Path | None = OverlayOpt,
    as_json: bool = JsonOpt,
    preset: str | None = PresetOpt,
    timeout_ms: int | None = TimeoutOpt,
    min_confidence: float | None = ConfidenceOpt,
    input_size: int | None = InputSizeOpt,
    model_dir: Path | None = ModelDirOpt,
    verbose: bool = VerboseOpt,
):
    """Camera mode: capture one still from a live camera and analyze it."""
    _setup_logging(verbose)
    cfg = _build_config(preset, timeout_ms, min_confidence, input_size, model_dir)

    async def _run() -> bool:
        controller = SessionController(make_detector(cfg), cfg, camera=CameraSource(device))
        try:
            session = await controller.prepare()
            if session.status != SessionStatus.FAILED:
                session = await controller.start_camera()
            if session.mode == SessionMode.CAMERA_LIVE:
                session = await controller.capture(skip_frames=warmup)
            return _report(f"camera {device}", session, cfg, as_json=as_json, overlay_out=overlay_out)
        finally:
            controller.reset()

    if not asyncio.run(_run()):
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
