from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
import os

MODEL_BASE_URL = "https://storage.googleapis.com/mediapipe-models"
FACE_DETECTOR_ASSET = "face_detector/blaze_face_short_range/float16/latest/blaze_face_short_range.tflite"
FACE_LANDMARKER_ASSET = "face_landmarker/face_landmarker/float16/latest/face_landmarker.task"
GOLDEN_RATIO = 1.618
ANALYSIS_TIMEOUT_MS = 15000


def _default_model_dir() -> Path:
    cache = os.environ.get("XDG_CACHE_HOME") or Path.home() / ".cache"
    return Path(cache) / "facephi" / "models"


@dataclass(frozen=True)
class AnalysisConfig:
    """Tunables for one analysis session.

    Everything the pipeline would otherwise hardcode lives here so tests can
    swap in tiny timeouts or a different reference constant.
    """

    DETECTOR_PRESETS = {
        "fast": {"input_size": 224, "min_confidence": 0.5},
        "balanced": {"input_size": 416, "min_confidence": 0.5},
        "accurate": {"input_size": 608, "min_confidence": 0.6},
    }

    model_base_url: str = MODEL_BASE_URL
    model_dir: Path = field(default_factory=_default_model_dir)
    face_detector_model: str = "blaze_face_short_range.tflite"
    face_landmarker_model: str = "face_landmarker.task"

    # Coarse pass
    min_confidence: float = 0.5
    input_size: int = 416

    timeout_ms: int = ANALYSIS_TIMEOUT_MS
    golden_ratio: float = GOLDEN_RATIO

    def __post_init__(self):
        if not (0.0 < float(self.min_confidence) <= 1.0):
            raise ValueError(f"min_confidence must be in (0, 1], got {self.min_confidence}")
        if int(self.input_size) <= 0 or int(self.input_size) % 32 != 0:
            raise ValueError(f"input_size must be a positive multiple of 32, got {self.input_size}")
        if int(self.timeout_ms) <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if float(self.golden_ratio) <= 0.0:
            raise ValueError(f"golden_ratio must be positive, got {self.golden_ratio}")
        object.__setattr__(self, "model_dir", Path(self.model_dir))

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0

    @classmethod
    def apply_preset(cls, preset: str) -> dict[str, float]:
        key = preset.strip().lower()
        if key not in cls.DETECTOR_PRESETS:
            raise ValueError(
                f"Unknown detector preset '{preset}' (expected one of: {', '.join(cls.DETECTOR_PRESETS)})"
            )
        return cls.DETECTOR_PRESETS[key]

    @classmethod
    def from_env(cls, environ: dict[str, str] | None = None) -> "AnalysisConfig":
        """Build a config from FACEPHI_* environment variables, defaults otherwise."""
        env = os.environ if environ is None else environ
        overrides: dict = {}
        if env.get("FACEPHI_MODEL_DIR"):
            overrides["model_dir"] = Path(env["FACEPHI_MODEL_DIR"])
        if env.get("FACEPHI_MODEL_BASE_URL"):
            overrides["model_base_url"] = env["FACEPHI_MODEL_BASE_URL"].rstrip("/")
        if env.get("FACEPHI_MIN_CONFIDENCE"):
            overrides["min_confidence"] = float(env["FACEPHI_MIN_CONFIDENCE"])
        if env.get("FACEPHI_INPUT_SIZE"):
            overrides["input_size"] = int(env["FACEPHI_INPUT_SIZE"])
        if env.get("FACEPHI_TIMEOUT_MS"):
            overrides["timeout_ms"] = int(env["FACEPHI_TIMEOUT_MS"])
        if env.get("FACEPHI_GOLDEN_RATIO"):
            overrides["golden_ratio"] = float(env["FACEPHI_GOLDEN_RATIO"])
        return cls(**overrides)

    def model_assets(self) -> dict[str, tuple[str, Path]]:
        """Remote URL and local path of each model the detector loads."""
        base = self.model_base_url.rstrip("/")
        return {
            "face_detector": (f"{base}/{FACE_DETECTOR_ASSET}", self.model_dir / self.face_detector_model),
            "face_landmarker": (f"{base}/{FACE_LANDMARKER_ASSET}", self.model_dir / self.face_landmarker_model),
        }

    def with_overrides(self, **kwargs) -> "AnalysisConfig":
        """Copy with the non-None keyword values applied."""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})
