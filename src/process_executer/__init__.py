"""process-executer - run commands with timeouts and streamed, captured output.

Environment variables:
    PEX_CHUNK_SIZE: Bytes read per drain iteration (default 100000)
    PEX_LOG_DEBUG: Debug log to a temp file (default false)
    PEX_LOG_LEVEL: Level of the CLI stderr log handler (default INFO)

Usage:
    from process_executer import run, run_with_capture

    run("make", "install", stdout=["build.log", 1], merge_output=True, timeout=600)
    result = run_with_capture("git", "describe", "--tags")
"""

__version__ = "0.1.0"

from .api import (
    run,
    run_async,
    run_with_capture,
    run_with_capture_async,
    run_with_capture_with_options,
    run_with_options,
    spawn_with_timeout,
    spawn_with_timeout_async,
    spawn_with_timeout_with_options,
)
from .destinations import Destination, Tee
from .errors import (
    ArgumentError,
    CommandError,
    CommandTimeoutError,
    ErrorKind,
    FailedError,
    ProcessExecuterError,
    ProcessIOError,
    SignaledError,
    SpawnError,
)
from .logs import NULL_LOGGER, NullLogger, ResultLogger
from .options import (
    UNSET,
    RunOptions,
    RunWithCaptureOptions,
    SpawnOptions,
    SpawnWithTimeoutOptions,
)
from .result import Result, TerminationFacts
from .runner import CapturingRunner, Runner
from .runtime import MonitoredPipe, PipeState, ProcessSpawner

__all__ = [
    "__version__",
    # Entry points
    "spawn_with_timeout",
    "spawn_with_timeout_with_options",
    "spawn_with_timeout_async",
    "run",
    "run_with_options",
    "run_async",
    "run_with_capture",
    "run_with_capture_with_options",
    "run_with_capture_async",
    # Engine
    "Runner",
    "CapturingRunner",
    "ProcessSpawner",
    "MonitoredPipe",
    "PipeState",
    "Destination",
    "Tee",
    # Options and results
    "UNSET",
    "SpawnOptions",
    "SpawnWithTimeoutOptions",
    "RunOptions",
    "RunWithCaptureOptions",
    "Result",
    "TerminationFacts",
    # Logging
    "ResultLogger",
    "NullLogger",
    "NULL_LOGGER",
    # Errors
    "ErrorKind",
    "ProcessExecuterError",
    "ArgumentError",
    "SpawnError",
    "ProcessIOError",
    "CommandError",
    "FailedError",
    "SignaledError",
    "CommandTimeoutError",
]
