"""process-executer environment variable configuration.

Environment variables:
    PEX_CHUNK_SIZE: Bytes read from a monitored pipe per drain iteration
        - default 100000
        - clamped to 1 .. 16 MiB, invalid values fall back to the default

    PEX_LOG_DEBUG: Debug logging mode
        - true/1/yes/on = debug log written to a temp file
        - false/0/no = off (default, log to stderr)

    PEX_LOG_LEVEL: Level of the stderr log handler
        - DEBUG/INFO/WARNING/ERROR (default INFO)
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

__all__ = ["Config", "load_config", "get_config", "reload_config", "DEFAULT_CHUNK_SIZE"]

DEFAULT_CHUNK_SIZE = 100_000
MAX_CHUNK_SIZE = 16 * 1024 * 1024


def _parse_bool(value: str | None, default: bool = False) -> bool:
    """Parse a boolean environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_chunk_size(value: str | None) -> int:
    """Parse the drain chunk size, clamped to a sane range."""
    if not value:
        return DEFAULT_CHUNK_SIZE
    try:
        size = int(value)
    except ValueError:
        return DEFAULT_CHUNK_SIZE
    return max(1, min(size, MAX_CHUNK_SIZE))


def _parse_log_level(value: str | None) -> int:
    """Parse a logging level name; unknown names fall back to INFO."""
    if not value:
        return logging.INFO
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _generate_log_file_path() -> str:
    """Build a timestamped debug log path under the temp directory."""
    log_dir = Path(tempfile.gettempdir()) / "process-executer"
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = log_dir / f"pex_debug_{timestamp}.log"

    return str(log_file.resolve())


@dataclass
class Config:
    """process-executer settings.

    Attributes:
        chunk_size: Bytes read per drain iteration
        log_debug: Debug logging to a temp file
        log_file: Debug log path (set when log_debug is on)
        log_level: Level of the stderr handler
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    log_debug: bool = False
    log_file: str | None = None
    log_level: int = logging.INFO

    def __repr__(self) -> str:
        return (
            f"Config(chunk_size={self.chunk_size}, "
            f"log_debug={self.log_debug}, "
            f"log_file={self.log_file}, "
            f"log_level={logging.getLevelName(self.log_level)})"
        )


def load_config() -> Config:
    """Load settings from the environment."""
    log_debug = _parse_bool(os.environ.get("PEX_LOG_DEBUG"), default=False)
    log_file = _generate_log_file_path() if log_debug else None

    return Config(
        chunk_size=_parse_chunk_size(os.environ.get("PEX_CHUNK_SIZE")),
        log_debug=log_debug,
        log_file=log_file,
        log_level=_parse_log_level(os.environ.get("PEX_LOG_LEVEL")),
    )


# Loaded lazily
_config: Config | None = None


def get_config() -> Config:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Reload settings from the environment (used by tests)."""
    global _config
    _config = load_config()
    return _config
