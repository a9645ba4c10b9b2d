from __future__ import annotations

from typing import Protocol, runtime_checkable

from ..config import AnalysisConfig
from ..schemas.analysis import BoundingBox, FaceDetection, LoadedImage


@runtime_checkable
class FaceDetector(Protocol):
    """Black-box face detector consumed by the orchestrator.

    ``load`` must complete before either find call is made. The find calls
    offer no cancellation. Blocking implementations are run in a worker
    thread; coroutine implementations are awaited as they are.
    """

    @property
    def loaded(self) -> bool: ...

    async def load(self) -> None: ...

    def find_all_faces(self, image: LoadedImage, cfg: AnalysisConfig) -> list[BoundingBox]: ...

    def find_single_face_with_landmarks(self, image: LoadedImage, cfg: AnalysisConfig) -> FaceDetection | None: ...
