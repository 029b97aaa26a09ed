"""Runtime module: monitored output pipes and the process spawner.

This module provides the blocking engine used by the runners: pipes drained
by background threads while the child runs, and a spawner that waits for
the child against an optional deadline.
"""

from __future__ import annotations

from .monitored_pipe import MonitoredPipe, PipeState
from .spawner import IS_WINDOWS, KILL_SIGNAL, ProcessSpawner

__all__ = [
    "IS_WINDOWS",
    "KILL_SIGNAL",
    "MonitoredPipe",
    "PipeState",
    "ProcessSpawner",
]
