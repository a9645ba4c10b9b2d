from __future__ import annotations

from pathlib import Path
import asyncio
import logging

from .config import AnalysisConfig
from .detectors.base import FaceDetector
from .errors import (
    AnalysisError,
    AnalysisUnexpectedError,
    InvalidTransition,
    ModelLoadFailed,
)
from .media.camera import CameraSource, MediaStream
from .media.image_source import capture_still, decode_image
from .schemas.analysis import (
    AnalysisResult,
    AnalysisSession,
    Failure,
    ImageOrigin,
    LoadedImage,
    SessionMode,
    SessionStatus,
)
from .stages.orchestrator import DetectionOrchestrator
from .stages.pipeline import run_analysis

logger = logging.getLogger(__name__)

# ---- pure transitions ----

def new_session() -> AnalysisSession:
    return AnalysisSession()


def _require(s: AnalysisSession, ok: bool, what: str) -> None:
    if not ok:
        raise InvalidTransition(f"cannot {what} from {s.mode.value}/{s.status.value}")


def select_camera(s: AnalysisSession) -> AnalysisSession:
    _require(s, s.mode == SessionMode.SELECTING_SOURCE, "enter camera mode")
    return AnalysisSession(mode=SessionMode.CAMERA_LIVE, generation=s.generation)


def load_image(s: AnalysisSession, image: LoadedImage) -> AnalysisSession:
    """Swap in a new image. Always legal; supersedes anything in flight."""
    return AnalysisSession(
        mode=SessionMode.IMAGE_LOADED,
        status=SessionStatus.IDLE,
        image=image,
        generation=s.generation + 1,
    )


def begin_detection(s: AnalysisSession) -> AnalysisSession:
    _require(
        s,
        s.mode == SessionMode.IMAGE_LOADED and s.status == SessionStatus.IDLE and s.image is not None,
        "start detection",
    )
    return s.model_copy(update={"status": SessionStatus.DETECTING})


def complete_detection(s: AnalysisSession, generation: int, outcome: AnalysisResult | Failure) -> AnalysisSession:
    """Apply a detection outcome if it still belongs to the current image.

    Outcomes from an older generation, or arriving when nothing is detecting,
    leave the session untouched (the same object is returned).
    """
    if generation != s.generation or s.status != SessionStatus.DETECTING:
        return s
    if isinstance(outcome, AnalysisResult):
        return s.model_copy(update={"status": SessionStatus.SUCCEEDED, "result": outcome})
    return s.model_copy(update={"status": SessionStatus.FAILED, "failure": outcome})


def fail_session(s: AnalysisSession, failure: Failure) -> AnalysisSession:
    """Record a failure that happened outside detection (camera, decode, models)."""
    return AnalysisSession(
        mode=SessionMode.SELECTING_SOURCE,
        status=SessionStatus.FAILED,
        failure=failure,
        generation=s.generation + 1,
    )


def cancel_camera(s: AnalysisSession) -> AnalysisSession:
    _require(s, s.mode == SessionMode.CAMERA_LIVE, "cancel camera")
    return AnalysisSession(generation=s.generation)


def reset(s: AnalysisSession) -> AnalysisSession:
    return AnalysisSession(generation=s.generation + 1)


# ---- driver ----

class SessionController:
    """Owns one AnalysisSession plus the resources behind it.

    Every image that becomes ready is analyzed right away. The live camera
    stream is released on every way out of camera mode.
    """

    def __init__(
        self,
        detector: FaceDetector,
        cfg: AnalysisConfig | None = None,
        camera: CameraSource | None = None,
    ):
        self.cfg = cfg or AnalysisConfig()
        self.orchestrator = DetectionOrchestrator(detector, self.cfg)
        self.camera = camera or CameraSource()
        self.session = new_session()
        self._stream: MediaStream | None = None
        self._model_failure: Failure | None = None

    @property
    def active_tracks(self) -> int:
        return 0 if self._stream is None else int(self._stream.active_tracks)

    async def prepare(self) -> AnalysisSession:
        """Load detector models up front; a failure here sticks until restart."""
        try:
            await self.orchestrator.ensure_loaded()
        except ModelLoadFailed as e:
            self._model_failure = e.to_failure()
            self.session = fail_session(self.session, self._model_failure)
        return self.session

    def _release_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.stop()

    async def start_camera(self) -> AnalysisSession:
        self.session = select_camera(self.session)
        try:
            self._stream = self.camera.open()
        except AnalysisError as e:
            logger.info("camera unavailable: %s", e)
            self._release_stream()
            self.session = fail_session(self.session, e.to_failure())
        except Exception:
            logger.error("camera open failed", exc_info=True)
            self._release_stream()
            self.session = fail_session(self.session, AnalysisUnexpectedError().to_failure())
        return self.session

    async def capture(self, *, skip_frames: int = 0) -> AnalysisSession:
        """Take a still (after dropping ``skip_frames`` warm-up frames) and analyze it."""
        _require(self.session, self.session.mode == SessionMode.CAMERA_LIVE and self._stream is not None, "capture")
        stream = self._stream
        try:
            for _ in range(max(0, skip_frames)):
                await asyncio.to_thread(stream.read_frame)
            image = await capture_still(stream)
        except AnalysisError as e:
            self.session = fail_session(self.session, e.to_failure())
            return self.session
        except Exception:
            logger.error("frame capture failed", exc_info=True)
            self.session = fail_session(self.session, AnalysisUnexpectedError().to_failure())
            return self.session
        finally:
            self._release_stream()
        return await self.load(image)

    async def cancel(self) -> AnalysisSession:
        self._release_stream()
        self.session = cancel_camera(self.session)
        return self.session

    async def upload(self, data: bytes | Path, *, name: str | None = None) -> AnalysisSession:
        self._release_stream()
        try:
            image = await decode_image(data, origin=ImageOrigin.UPLOAD, name=name)
        except AnalysisError as e:
            self.session = fail_session(self.session, e.to_failure())
            return self.session
        return await self.load(image)

    async def load(self, image: LoadedImage) -> AnalysisSession:
        self.session = load_image(self.session, image)
        return await self.analyze()

    async def analyze(self) -> AnalysisSession:
        self.session = begin_detection(self.session)
        generation, image = self.session.generation, self.session.image
        logger.debug("generation %d: analyzing image %s", generation, image.image_id)

        if self._model_failure is not None:
            outcome: AnalysisResult | Failure = self._model_failure
        else:
            try:
                outcome = await run_analysis(self.orchestrator, image)
            except ModelLoadFailed as e:
                self._model_failure = outcome = e.to_failure()
            except AnalysisError as e:
                logger.info("image %s: %s", image.image_id, e)
                outcome = e.to_failure()
            except Exception:
                logger.error("unexpected failure analyzing %s", image.image_id, exc_info=True)
                outcome = AnalysisUnexpectedError().to_failure()

        updated = complete_detection(self.session, generation, outcome)
        if updated is self.session:
            logger.warning("dropping outcome of superseded generation %d (now %d)", generation, self.session.generation)
        self.session = updated
        return self.session

    def reset(self) -> AnalysisSession:
        self._release_stream()
        self.session = reset(self.session)
        return self.session
