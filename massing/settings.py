import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

# Ensure .env from project root is loaded even if CWD differs
_BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
load_dotenv(os.path.join(_BASE_DIR, ".env"))


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    return os.getenv(name, "true" if default else "false").strip().lower() in {"1", "true", "yes"}


@dataclass
class Settings:
    enable_request_id_logging: bool = field(default_factory=lambda: _env_bool("ENABLE_REQUEST_ID_LOGGING", True))
    # Edge detection (native Canny backend)
    edge_detection_enable: bool = field(default_factory=lambda: _env_bool("EDGE_DETECTION_ENABLE", True))
    canny_low: int = field(default_factory=lambda: _env_int("CANNY_LOW", 50))
    canny_high: int = field(default_factory=lambda: _env_int("CANNY_HIGH", 150))
    edge_thick: bool = field(default_factory=lambda: _env_bool("EDGE_THICK", True))
    # Building classifier thresholds (empirical; keep overridable)
    min_area_fraction: float = field(default_factory=lambda: _env_float("DETECT_MIN_AREA_FRAC", 0.001))
    max_area_fraction: float = field(default_factory=lambda: _env_float("DETECT_MAX_AREA_FRAC", 0.15))
    min_aspect_ratio: float = field(default_factory=lambda: _env_float("DETECT_MIN_ASPECT", 0.2))
    max_aspect_ratio: float = field(default_factory=lambda: _env_float("DETECT_MAX_ASPECT", 5.0))
    min_confidence: float = field(default_factory=lambda: _env_float("DETECT_MIN_CONFIDENCE", 0.4))
    overlap_threshold: float = field(default_factory=lambda: _env_float("DETECT_OVERLAP_THR", 0.3))
    # Mesh artifacts
    artifact_dir: str = field(default_factory=lambda: os.getenv("ARTIFACT_DIR", "./artifacts"))


def get_settings() -> Settings:
    return Settings()
