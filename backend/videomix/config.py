"""
Engine configuration.

Loaded once at process start from VIDEOMIX_* environment variables.
Every value has a default so the service starts with an empty environment.

Design rules:
- Frozen: configuration never changes after startup
- No config files, no dynamic reload
- Components receive the config explicitly (no module-level globals)
"""

import os
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional


QUEUE_BACKEND_MEMORY = "memory"
QUEUE_BACKEND_SQLITE = "sqlite"

_QUEUE_BACKENDS = {QUEUE_BACKEND_MEMORY, QUEUE_BACKEND_SQLITE}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


@dataclass(frozen=True)
class EngineConfig:
    """Process-wide engine settings."""

    db_path: str = "./videomix.db"
    work_dir: str = "./work"
    output_dir: str = "./outputs"
    catalog_dir: Optional[str] = None

    # "memory" runs jobs on in-process pools, "sqlite" uses the durable queue table
    queue_backend: str = QUEUE_BACKEND_MEMORY
    queue_poll_interval: float = 1.0

    max_concurrent_jobs: int = 2
    max_concurrent_mixes: int = 5
    aux_concurrency: int = 10

    transcode_timeout: float = 1800.0
    max_attempts: int = 3
    retry_base_delay: float = 5.0
    retry_max_delay: float = 300.0

    ffmpeg_path: Optional[str] = None
    ffprobe_path: Optional[str] = None

    max_output_count: int = 1000

    def __post_init__(self):
        if self.queue_backend not in _QUEUE_BACKENDS:
            raise ValueError(
                f"Unknown queue backend '{self.queue_backend}'. "
                f"Expected one of: {sorted(_QUEUE_BACKENDS)}"
            )
        if self.max_concurrent_mixes < 1 or self.max_concurrent_jobs < 1:
            raise ValueError("Concurrency ceilings must be at least 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build configuration from VIDEOMIX_* environment variables."""
        defaults = cls()
        return cls(
            db_path=os.environ.get("VIDEOMIX_DB_PATH", defaults.db_path),
            work_dir=os.environ.get("VIDEOMIX_WORK_DIR", defaults.work_dir),
            output_dir=os.environ.get("VIDEOMIX_OUTPUT_DIR", defaults.output_dir),
            catalog_dir=os.environ.get("VIDEOMIX_CATALOG_DIR") or None,
            queue_backend=os.environ.get("VIDEOMIX_QUEUE_BACKEND", defaults.queue_backend).lower(),
            queue_poll_interval=_env_float("VIDEOMIX_QUEUE_POLL_INTERVAL", defaults.queue_poll_interval),
            max_concurrent_jobs=_env_int("VIDEOMIX_MAX_CONCURRENT_JOBS", defaults.max_concurrent_jobs),
            max_concurrent_mixes=_env_int("VIDEOMIX_MAX_CONCURRENT_MIXES", defaults.max_concurrent_mixes),
            aux_concurrency=_env_int("VIDEOMIX_AUX_CONCURRENCY", defaults.aux_concurrency),
            transcode_timeout=_env_float("VIDEOMIX_TRANSCODE_TIMEOUT", defaults.transcode_timeout),
            max_attempts=_env_int("VIDEOMIX_MAX_ATTEMPTS", defaults.max_attempts),
            retry_base_delay=_env_float("VIDEOMIX_RETRY_BASE_DELAY", defaults.retry_base_delay),
            retry_max_delay=_env_float("VIDEOMIX_RETRY_MAX_DELAY", defaults.retry_max_delay),
            ffmpeg_path=os.environ.get("VIDEOMIX_FFMPEG_PATH") or None,
            ffprobe_path=os.environ.get("VIDEOMIX_FFPROBE_PATH") or None,
            max_output_count=_env_int("VIDEOMIX_MAX_OUTPUT_COUNT", defaults.max_output_count),
        )

    def ensure_directories(self) -> None:
        """Create work and output directories if missing."""
        Path(self.work_dir).mkdir(parents=True, exist_ok=True)
        Path(self.output_dir).mkdir(parents=True, exist_ok=True)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
