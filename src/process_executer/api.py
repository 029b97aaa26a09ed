"""Entry points: spawn_with_timeout, run and run_with_capture.

Each entry point resolves its option bag into an immutable options object
(raising ArgumentError before any process is created) and hands it to the
engine. The ``*_async`` variants do the same resolution on the calling task
and then run the blocking engine in a worker thread::

    result = await run_with_capture_async("git", "status", timeout=10)
    print(result.stdout)

Cancelling the awaiting task does not interrupt the worker thread; the call
still finishes (or hits its own deadline) before the cancellation is seen.
"""

from __future__ import annotations

import functools
import os
from collections.abc import Mapping
from typing import Any

import anyio

from .errors import ArgumentError
from .options import RunOptions, RunWithCaptureOptions, SpawnWithTimeoutOptions
from .result import Result, TerminationFacts
from .runner import CapturingRunner, Runner
from .runtime.spawner import ProcessSpawner

__all__ = [
    "spawn_with_timeout",
    "spawn_with_timeout_with_options",
    "run",
    "run_with_options",
    "run_with_capture",
    "run_with_capture_with_options",
    "spawn_with_timeout_async",
    "run_async",
    "run_with_capture_async",
    "normalize_command",
]


def normalize_command(command: Any) -> tuple[str, ...]:
    """Normalize varargs or a single list/tuple into an argv tuple.

    Raises:
        ArgumentError: empty command or an argument that is not a str/path
    """
    if isinstance(command, tuple) and len(command) == 1 and isinstance(command[0], (list, tuple)):
        command = command[0]
    if isinstance(command, (str, os.PathLike)):
        command = (command,)
    if not isinstance(command, (list, tuple)):
        raise ArgumentError(f"command must be a sequence of strings but was {command!r}")
    if not command:
        raise ArgumentError("command must not be empty")

    argv: list[str] = []
    for arg in command:
        if not isinstance(arg, (str, os.PathLike)):
            raise ArgumentError(f"command arguments must be strings but got {arg!r}")
        argv.append(os.fspath(arg))
    return tuple(argv)


def _resolve(
    options_class: type[SpawnWithTimeoutOptions],
    options: SpawnWithTimeoutOptions | Mapping[str, Any] | None,
) -> Any:
    if options is None:
        return options_class()
    if isinstance(options, options_class):
        return options
    if isinstance(options, Mapping):
        return options_class.from_mapping(options)
    raise ArgumentError(
        f"options must be a {options_class.__name__} or a mapping but was {options!r}"
    )


# =============================================================================
# Synchronous entry points
# =============================================================================


def spawn_with_timeout_with_options(
    command: Any,
    options: SpawnWithTimeoutOptions | Mapping[str, Any] | None = None,
) -> TerminationFacts:
    """Spawn a command, wait up to the timeout and return its termination facts.

    Output is not monitored: stdout/stderr are inherited or passed straight
    to subprocess as given.

    Raises:
        ArgumentError: invalid command or options
        SpawnError: the process could not be created
    """
    argv = normalize_command(command)
    resolved = _resolve(SpawnWithTimeoutOptions, options)
    return ProcessSpawner().spawn_and_wait(argv, resolved)


def spawn_with_timeout(*command: Any, **options: Any) -> TerminationFacts:
    """Spawn a command with keyword options; see spawn_with_timeout_with_options."""
    return spawn_with_timeout_with_options(
        command, SpawnWithTimeoutOptions.from_mapping(options)
    )


def run_with_options(
    command: Any,
    options: RunOptions | Mapping[str, Any] | None = None,
) -> Result:
    """Run a command, streaming its output to the given destinations.

    Streams without a destination are discarded.
    """
    argv = normalize_command(command)
    resolved = _resolve(RunOptions, options)
    return Runner(logger=resolved.logger).call(argv, resolved)


def run(*command: Any, **options: Any) -> Result:
    """Run a command with keyword options.

    The timeout kills only the child unless ``start_new_session=True``, which
    kills its whole process group. Output pipes are drained until every
    holder exits, so a grandchild that inherited stdout or stderr keeps the
    call waiting past the deadline; pass ``start_new_session=True`` when the
    command forks background work.

    Example:
        result = run("make", "test", stdout="build.log", merge_output=True, timeout=600)

    Raises:
        ArgumentError: invalid command or options
        SpawnError: the process could not be created
        ProcessIOError: a destination could not be opened or failed while
            output was drained
        CommandError: the command failed, was signaled or timed out
            (only with raise_errors=True, the default)
    """
    return run_with_options(command, RunOptions.from_mapping(options))


def run_with_capture_with_options(
    command: Any,
    options: RunWithCaptureOptions | Mapping[str, Any] | None = None,
) -> Result:
    """Run a command capturing any stream not redirected elsewhere."""
    argv = normalize_command(command)
    resolved = _resolve(RunWithCaptureOptions, options)
    return CapturingRunner(logger=resolved.logger).call(argv, resolved)


def run_with_capture(*command: Any, **options: Any) -> Result:
    """Run a command with keyword options and capture its output.

    Timeouts behave as in ``run()``: use ``start_new_session=True`` so a
    grandchild holding the capture pipes is killed with the child.

    Example:
        result = run_with_capture("git", "rev-parse", "HEAD")
        sha = result.stdout.strip()
    """
    return run_with_capture_with_options(command, RunWithCaptureOptions.from_mapping(options))


# =============================================================================
# Async entry points
# =============================================================================


async def spawn_with_timeout_async(*command: Any, **options: Any) -> TerminationFacts:
    argv = normalize_command(command)
    resolved = SpawnWithTimeoutOptions.from_mapping(options)
    return await anyio.to_thread.run_sync(
        functools.partial(spawn_with_timeout_with_options, argv, resolved)
    )


async def run_async(*command: Any, **options: Any) -> Result:
    argv = normalize_command(command)
    resolved = RunOptions.from_mapping(options)
    return await anyio.to_thread.run_sync(functools.partial(run_with_options, argv, resolved))


async def run_with_capture_async(*command: Any, **options: Any) -> Result:
    """Async run_with_capture; the engine runs in a worker thread."""
    argv = normalize_command(command)
    resolved = RunWithCaptureOptions.from_mapping(options)
    return await anyio.to_thread.run_sync(
        functools.partial(run_with_capture_with_options, argv, resolved)
    )
