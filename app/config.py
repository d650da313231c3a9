"""Audio Transcriber - Configuration.

Settings are read from the environment once, at the wiring layer
(API lifespan, huey module), and passed to each component as an
immutable Settings instance.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, replace
from pathlib import Path

logger = logging.getLogger(__name__)

# Repository root (parent of app/)
REPO_ROOT = Path(__file__).parent.parent.resolve()

# Default data layout
DEFAULT_DATA_DIR = REPO_ROOT / "data"

# Segment duration bounds in seconds (accepted range for maxSegmentSeconds)
MIN_SEGMENT_SECONDS = 60
MAX_SEGMENT_SECONDS = 3600
DEFAULT_SEGMENT_SECONDS = 600

# Upper bound for stored error messages (matches the column length)
ERROR_MESSAGE_MAX_LENGTH = 1000

DEFAULT_WHISPER_URL = "https://api.openai.com/v1/audio/transcriptions"

_TRUE_VALUES = {"1", "true", "t", "yes", "y", "on"}


def _env_str(name: str, default: str) -> str:
    value = os.environ.get(name)
    return default if value is None or value == "" else value


def _env_int(name: str, default: int, minimum: int = 1) -> int:
    """Read a positive integer from the environment.

    Invalid or out-of-range values fall back to the default with a warning.
    """
    env_val = os.environ.get(name)
    if env_val:
        try:
            parsed = int(env_val)
            if parsed >= minimum:
                return parsed
        except ValueError:
            pass
        logger.warning("Ignoring invalid %s=%r, using %d", name, env_val, default)
    return default


def _env_float(name: str, default: float) -> float:
    env_val = os.environ.get(name)
    if env_val:
        try:
            parsed = float(env_val)
            if parsed > 0:
                return parsed
        except ValueError:
            pass
        logger.warning("Ignoring invalid %s=%r, using %s", name, env_val, default)
    return default


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True)
class Settings:
    """Immutable runtime configuration shared by all components."""

    data_dir: Path
    upload_dir: Path
    db_path: Path
    queue_db_path: Path

    # Segmenter
    ffmpeg_path: str = "ffmpeg"
    ffmpeg_timeout_seconds: int = 900
    default_segment_seconds: int = DEFAULT_SEGMENT_SECONDS

    # Upload validation
    max_file_size_mb: int = 500

    # Retention
    cleanup_enabled: bool = True
    retention_days: int = 7
    error_retention_days: int = 3

    # Transcription provider
    whisper_api_url: str = DEFAULT_WHISPER_URL
    whisper_api_key: str = ""
    whisper_model: str = "whisper-1"
    transcription_timeout_seconds: float = 300.0

    log_level: str = "INFO"

    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024

    def with_overrides(self, **changes) -> Settings:
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)


def settings_for_data_dir(data_dir: str | Path, **overrides) -> Settings:
    """Build Settings with every path derived from a single data directory."""
    data_dir = Path(data_dir)
    base = Settings(
        data_dir=data_dir,
        upload_dir=data_dir / "uploads",
        db_path=data_dir / "transcriber.db",
        queue_db_path=data_dir / "queue" / "huey.db",
    )
    return base.with_overrides(**overrides) if overrides else base


def load_settings() -> Settings:
    """Load Settings from TRANSCRIBER_* / WHISPER_* environment variables."""
    data_dir = Path(_env_str("TRANSCRIBER_DATA_DIR", str(DEFAULT_DATA_DIR)))
    default_segment = _env_int("TRANSCRIBER_DEFAULT_SEGMENT_SEC", DEFAULT_SEGMENT_SECONDS)
    if not MIN_SEGMENT_SECONDS <= default_segment <= MAX_SEGMENT_SECONDS:
        logger.warning(
            "TRANSCRIBER_DEFAULT_SEGMENT_SEC=%d outside [%d, %d], using %d",
            default_segment,
            MIN_SEGMENT_SECONDS,
            MAX_SEGMENT_SECONDS,
            DEFAULT_SEGMENT_SECONDS,
        )
        default_segment = DEFAULT_SEGMENT_SECONDS

    return Settings(
        data_dir=data_dir,
        upload_dir=Path(_env_str("TRANSCRIBER_UPLOAD_DIR", str(data_dir / "uploads"))),
        db_path=Path(_env_str("TRANSCRIBER_DB_PATH", str(data_dir / "transcriber.db"))),
        queue_db_path=Path(
            _env_str("TRANSCRIBER_QUEUE_DB_PATH", str(data_dir / "queue" / "huey.db"))
        ),
        ffmpeg_path=_env_str("TRANSCRIBER_FFMPEG_PATH", "ffmpeg"),
        ffmpeg_timeout_seconds=_env_int("TRANSCRIBER_FFMPEG_TIMEOUT_SEC", 900),
        default_segment_seconds=default_segment,
        max_file_size_mb=_env_int("TRANSCRIBER_MAX_FILE_SIZE_MB", 500),
        cleanup_enabled=_env_bool("TRANSCRIBER_CLEANUP_ENABLED", True),
        retention_days=_env_int("TRANSCRIBER_RETENTION_DAYS", 7),
        error_retention_days=_env_int("TRANSCRIBER_ERROR_RETENTION_DAYS", 3),
        whisper_api_url=_env_str("WHISPER_API_URL", DEFAULT_WHISPER_URL),
        whisper_api_key=_env_str("WHISPER_API_KEY", ""),
        whisper_model=_env_str("WHISPER_MODEL", "whisper-1"),
        transcription_timeout_seconds=_env_float("WHISPER_TIMEOUT_SEC", 300.0),
        log_level=_env_str("TRANSCRIBER_LOG_LEVEL", "INFO").upper(),
    )
