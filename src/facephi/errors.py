from __future__ import annotations

from enum import Enum
from typing import Any


class FailureKind(str, Enum):
    MODEL_LOAD_FAILED = "ModelLoadFailed"
    CAMERA_PERMISSION_DENIED = "CameraPermissionDenied"
    IMAGE_DECODE_FAILED = "ImageDecodeFailed"
    NO_FACE_DETECTED = "NoFaceDetected"
    MULTIPLE_FACES_DETECTED = "MultipleFacesDetected"
    DETECTION_TIMEOUT = "DetectionTimeout"
    LANDMARKS_NOT_FOUND = "LandmarksNotFound"
    ANALYSIS_UNEXPECTED_ERROR = "AnalysisUnexpectedError"


class AnalysisError(Exception):
    """Base for every failure an analysis attempt can end in.

    ``user_message`` is what a person sees; ``str(exc)`` may carry more detail
    for logs. ``detail`` holds small informational values (e.g. face count).
    """

    kind: FailureKind = FailureKind.ANALYSIS_UNEXPECTED_ERROR
    user_message: str = "Could not analyze the image. Please ensure the face is clearly visible and facing forward."

    def __init__(self, message: str | None = None, **detail: Any):
        super().__init__(message or self.user_message)
        self.detail: dict[str, Any] = detail

    def to_failure(self):
        from .schemas.analysis import Failure

        return Failure(kind=self.kind, message=self.user_message, detail=dict(self.detail))


class ModelLoadFailed(AnalysisError):
    kind = FailureKind.MODEL_LOAD_FAILED
    user_message = "Failed to load models. Please restart and try again."


class CameraPermissionDenied(AnalysisError):
    kind = FailureKind.CAMERA_PERMISSION_DENIED
    user_message = "Camera access denied. Please allow camera permissions."


class ImageDecodeError(AnalysisError):
    kind = FailureKind.IMAGE_DECODE_FAILED
    user_message = "The file could not be read as an image. Please choose a JPG or PNG photo."


class NoFaceDetected(AnalysisError):
    kind = FailureKind.NO_FACE_DETECTED
    user_message = "No face detected. The photo might be too dark, or the face isn't clearly visible."


class MultipleFacesDetected(AnalysisError):
    kind = FailureKind.MULTIPLE_FACES_DETECTED

    def __init__(self, count: int):
        self.count = int(count)
        super().__init__(f"{self.count} faces detected", count=self.count)

    @property
    def user_message(self) -> str:
        return (
            f"Multiple faces detected ({self.count}). "
            "Please ensure only one person is in the photo for accurate analysis."
        )


class DetectionTimeout(AnalysisError):
    kind = FailureKind.DETECTION_TIMEOUT
    user_message = "Analysis took too long. Please try again with a smaller or clearer photo."

    def __init__(self, timeout_ms: int):
        self.timeout_ms = int(timeout_ms)
        super().__init__(f"Analysis timed out after {self.timeout_ms / 1000:g} seconds.", timeout_ms=self.timeout_ms)


class LandmarksNotFound(AnalysisError):
    kind = FailureKind.LANDMARKS_NOT_FOUND
    user_message = (
        "Face detected, but landmarks could not be found. Please ensure nothing is blocking "
        "the face (mask, hand, etc.) and lighting is good."
    )


class AnalysisUnexpectedError(AnalysisError):
    kind = FailureKind.ANALYSIS_UNEXPECTED_ERROR


class InvalidTransition(RuntimeError):
    """A session transition was requested from a state that does not allow it."""
