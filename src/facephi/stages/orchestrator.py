from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
import threading

from ..config import AnalysisConfig
from ..detectors.base import FaceDetector
from ..errors import (
    AnalysisError,
    AnalysisUnexpectedError,
    DetectionTimeout,
    LandmarksNotFound,
    ModelLoadFailed,
    MultipleFacesDetected,
    NoFaceDetected,
)
from ..schemas.analysis import FaceDetection, LoadedImage

logger = logging.getLogger(__name__)


async def _call_detector(fn, *args):
    # Blocking detector calls go to a worker thread; async fakes are awaited directly.
    if inspect.iscoroutinefunction(fn):
        return await fn(*args)
    return await asyncio.to_thread(fn, *args)


def _settle(fut: asyncio.Future, result, exc: BaseException | None) -> None:
    if fut.done():
        return
    if exc is not None:
        fut.set_exception(exc)
    else:
        fut.set_result(result)


def _start_daemon(fn, *args) -> asyncio.Future:
    """Run a blocking call on a daemon thread and expose it as a future.

    Executor workers are joined at shutdown and daemon threads are not, so a
    timed-out call cannot hold the process open.
    """
    loop = asyncio.get_running_loop()
    fut = loop.create_future()

    def work():
        try:
            result, exc = fn(*args), None
        except Exception as e:
            result, exc = None, e
        # The loop is closed if the caller stopped waiting and finished.
        with contextlib.suppress(RuntimeError):
            loop.call_soon_threadsafe(_settle, fut, result, exc)

    name = getattr(fn, "__name__", "detector")
    threading.Thread(target=work, name=f"facephi-{name}", daemon=True).start()
    return fut


def _discard_late(task: asyncio.Future) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("late landmark pass failed after timeout: %r", exc)
    else:
        logger.debug("late landmark pass settled after timeout; result dropped")


class DetectionOrchestrator:
    """Validates that an image holds exactly one face and fetches its landmarks.

    Stateless apart from its collaborators; every failure surfaces as an
    AnalysisError subclass and nothing is retried here.
    """

    def __init__(self, detector: FaceDetector, cfg: AnalysisConfig | None = None):
        self.detector = detector
        self.cfg = cfg or AnalysisConfig()

    async def ensure_loaded(self) -> None:
        if self.detector.loaded:
            return
        try:
            await self.detector.load()
        except AnalysisError:
            raise
        except Exception as e:
            logger.error("detector load failed", exc_info=True)
            raise ModelLoadFailed(f"{type(e).__name__}: {e}") from e

    async def detect(self, image: LoadedImage) -> FaceDetection:
        await self.ensure_loaded()
        cfg = self.cfg

        try:
            boxes = await _call_detector(self.detector.find_all_faces, image, cfg)
        except AnalysisError:
            raise
        except Exception as e:
            logger.error("coarse face pass failed on %s", image.image_id, exc_info=True)
            raise AnalysisUnexpectedError(f"{type(e).__name__} in find_all_faces") from e

        count = len(boxes or [])
        logger.debug("image %s: %d face(s) in coarse pass", image.image_id, count)
        if count == 0:
            raise NoFaceDetected()
        if count > 1:
            raise MultipleFacesDetected(count)

        # Advisory timeout: on expiry we stop waiting but leave the call running.
        landmark_fn = self.detector.find_single_face_with_landmarks
        if inspect.iscoroutinefunction(landmark_fn):
            task = asyncio.ensure_future(landmark_fn(image, cfg))
        else:
            task = _start_daemon(landmark_fn, image, cfg)
        done, _pending = await asyncio.wait({task}, timeout=cfg.timeout_seconds)
        if task not in done:
            task.add_done_callback(_discard_late)
            logger.warning("landmark pass on %s exceeded %d ms", image.image_id, cfg.timeout_ms)
            raise DetectionTimeout(cfg.timeout_ms)

        try:
            detection = task.result()
        except AnalysisError:
            raise
        except Exception as e:
            logger.error("landmark pass failed on %s", image.image_id, exc_info=True)
            raise AnalysisUnexpectedError(f"{type(e).__name__} in find_single_face_with_landmarks") from e

        if detection is None or not detection.landmarks:
            raise LandmarksNotFound()
        return detection
