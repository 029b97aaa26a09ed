"""Pytest configuration and fixtures."""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

# Project root
PROJECT_ROOT = Path(__file__).parent.parent

# Add src to the Python path
SRC_DIR = PROJECT_ROOT / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))

from process_executer import config as config_module  # noqa: E402
from process_executer.runtime import MonitoredPipe  # noqa: E402


def python_command(code: str) -> list[str]:
    """Command running a Python snippet in a fresh interpreter."""
    return [sys.executable, "-c", code]


class RecordingLogger:
    """ResultLogger that keeps every message."""

    def __init__(self) -> None:
        self.infos: list[str] = []
        self.debugs: list[str] = []

    def info(self, msg, *args, **kwargs) -> None:
        self.infos.append(msg)

    def debug(self, msg, *args, **kwargs) -> None:
        self.debugs.append(msg)


@pytest.fixture
def py():
    """Build ``sys.executable -c`` commands."""
    return python_command


@pytest.fixture
def recording_logger() -> RecordingLogger:
    return RecordingLogger()


@pytest.fixture(autouse=True)
def fresh_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Isolate every test from PEX_* variables in the outer environment."""
    for name in ("PEX_CHUNK_SIZE", "PEX_LOG_DEBUG", "PEX_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    config_module.reload_config()
    yield
    config_module._config = None


@pytest.fixture
def no_leaked_pipes() -> Iterator[None]:
    """Fail the test if it leaves a MonitoredPipe open."""
    before = set(MonitoredPipe.open_instances())
    yield
    leaked = set(MonitoredPipe.open_instances()) - before
    assert not leaked, f"monitored pipes left open: {leaked}"
