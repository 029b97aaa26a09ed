"""Logging helpers.

Two separate concerns live here:

- ``ResultLogger`` / ``NullLogger``: the per-invocation logger a caller hands
  to ``run()``. It receives one info-level summary and one debug-level output
  dump per command. Any ``logging.Logger`` qualifies.
- ``setup_logging()``: handler configuration for the command line front end.
"""

from __future__ import annotations

import logging
import sys
from typing import Any, Protocol, runtime_checkable

from .config import Config, get_config

__all__ = ["ResultLogger", "NullLogger", "NULL_LOGGER", "is_result_logger", "setup_logging"]

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


@runtime_checkable
class ResultLogger(Protocol):
    """Anything with ``info()`` and ``debug()``."""

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None: ...


class NullLogger:
    """Logger that drops every message."""

    def info(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        pass

    def debug(self, msg: Any, *args: Any, **kwargs: Any) -> None:
        pass

    def __repr__(self) -> str:
        return "NullLogger()"


NULL_LOGGER = NullLogger()


def is_result_logger(obj: object) -> bool:
    """Check that obj has callable ``info`` and ``debug`` methods."""
    return callable(getattr(obj, "info", None)) and callable(getattr(obj, "debug", None))


def setup_logging(config: Config | None = None) -> None:
    """Configure log handlers for the ``process_executer`` namespace.

    With ``PEX_LOG_DEBUG`` on, everything at DEBUG goes to the temp log
    file; otherwise records at the configured level go to stderr.
    """
    config = config or get_config()
    log_handlers: list[logging.Handler] = []

    if config.log_debug and config.log_file:
        file_handler = logging.FileHandler(config.log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(file_handler)
        log_level = logging.DEBUG
    else:
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        log_handlers.append(stderr_handler)
        log_level = config.log_level

    # Third-party libraries stay at WARNING
    logging.basicConfig(
        level=logging.WARNING,
        handlers=log_handlers,
    )
    logging.getLogger("process_executer").setLevel(log_level)
