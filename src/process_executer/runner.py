"""Run a command with its output streamed into destinations.

One invocation:
1. Resolve destinations (the plain runner discards unsupplied streams, the
   capturing runner buffers them in memory)
2. Open a MonitoredPipe for stdout, and for stderr unless merged; a
   destination that cannot be opened raises ProcessIOError
3. Spawn and wait via ProcessSpawner
4. Close every opened pipe, whatever happened in step 3
5. Raise ProcessIOError if a destination failed while draining
6. Build the Result
7. Log it; with raise_errors, raise on timeout, signal or non-zero exit
8. Return the Result
"""

from __future__ import annotations

import io
import logging
import subprocess
from collections.abc import Sequence
from typing import Any

from .errors import (
    CommandTimeoutError,
    FailedError,
    ProcessIOError,
    SignaledError,
)
from .logs import NULL_LOGGER, ResultLogger
from .options import RunOptions
from .result import Result, TerminationFacts
from .runtime.monitored_pipe import MonitoredPipe
from .runtime.spawner import ProcessSpawner

__all__ = ["Runner", "CapturingRunner"]

logger = logging.getLogger(__name__)


class Runner:
    """Runs commands with stdout/stderr streamed to destinations.

    Example:
        runner = Runner(logger=logging.getLogger("build"))
        with open("build.log", "wb") as log:
            result = runner.call(["make"], RunOptions(stdout=log, merge_output=True))

    Attributes:
        logger: Receives the per-invocation summary and output dump
        spawner: Creates and waits for the child
    """

    def __init__(
        self,
        logger: ResultLogger | None = None,
        spawner: ProcessSpawner | None = None,
    ) -> None:
        self.logger = logger if logger is not None else NULL_LOGGER
        self.spawner = spawner if spawner is not None else ProcessSpawner()

    def call(self, command: Sequence[str], options: RunOptions) -> Result:
        """Run the command to completion.

        Raises:
            SpawnError: The process could not be created
            ProcessIOError: A destination could not be opened or raised while
                output was drained
            CommandTimeoutError: Timed out (with raise_errors)
            SignaledError: Killed by a signal (with raise_errors)
            FailedError: Non-zero exit (with raise_errors)
        """
        command = tuple(command)
        stdout_buffer, stderr_buffer = self._capture_buffers()
        stdout_destination = self._stdout_destination(options, stdout_buffer)
        stderr_destination = self._stderr_destination(options, stderr_buffer)

        facts = self._spawn(command, options, stdout_destination, stderr_destination)

        result = Result(
            command=command,
            options=options,
            facts=facts,
            stdout_destination=stdout_destination,
            stderr_destination=stderr_destination,
            stdout_buffer=stdout_buffer,
            stderr_buffer=stderr_buffer,
        )
        self._log_result(result)
        if options.raise_errors:
            self._raise_errors(result)
        return result

    # =========================================================================
    # Destination resolution (overridden by CapturingRunner)
    # =========================================================================

    def _capture_buffers(self) -> tuple[io.BytesIO | None, io.BytesIO | None]:
        return None, None

    def _stdout_destination(self, options: RunOptions, buffer: io.BytesIO | None) -> Any:
        return options.stdout if options.stdout_given else None

    def _stderr_destination(self, options: RunOptions, buffer: io.BytesIO | None) -> Any:
        if options.merge_output:
            return None
        return options.stderr if options.stderr_given else None

    # =========================================================================
    # Spawning
    # =========================================================================

    def _spawn(
        self,
        command: tuple[str, ...],
        options: RunOptions,
        stdout_destination: Any,
        stderr_destination: Any,
    ) -> TerminationFacts:
        """Spawn with monitored pipes; pipes are closed on every path."""
        pipes: dict[str, MonitoredPipe] = {}
        try:
            pipes["stdout"] = self._open_pipe(command, "stdout", stdout_destination, options)
            if options.merge_output:
                stderr_target: Any = subprocess.STDOUT
            else:
                pipes["stderr"] = self._open_pipe(command, "stderr", stderr_destination, options)
                stderr_target = pipes["stderr"]

            facts = self.spawner.spawn_and_wait(
                command, options, stdout=pipes["stdout"], stderr=stderr_target
            )
        finally:
            _close_pipes(list(pipes.values()))

        # Pipe failures win over anything the exit status says
        for name, pipe in pipes.items():
            if pipe.exception is not None:
                raise ProcessIOError(
                    f"Pipe exception for {list(command)}: {name}",
                    command=command,
                    stream=name,
                ) from pipe.exception

        return facts

    def _open_pipe(
        self,
        command: tuple[str, ...],
        name: str,
        destination: Any,
        options: RunOptions,
    ) -> MonitoredPipe:
        """Open a MonitoredPipe; a destination that cannot be opened is an IO error."""
        try:
            return MonitoredPipe(destination, name=name, encoding=options.encoding)
        except OSError as e:
            raise ProcessIOError(
                f"Failed to open {name} destination for {list(command)}: {e}",
                command=command,
                stream=name,
            ) from e

    # =========================================================================
    # Outcome
    # =========================================================================

    def _log_result(self, result: Result) -> None:
        self.logger.info(f"{list(result.command)} exited with status {result.facts}")
        self.logger.debug(f"stdout:\n{result.stdout!r}\nstderr:\n{result.stderr!r}")
        logger.debug(f"Run finished: {list(result.command)} {result.facts}")

    def _raise_errors(self, result: Result) -> None:
        if result.timed_out:
            raise CommandTimeoutError(result, result.options.timeout)
        if result.signaled:
            raise SignaledError(result)
        if not result.success:
            raise FailedError(result)


class CapturingRunner(Runner):
    """Runner that buffers output the caller did not redirect elsewhere.

    A caller-supplied destination wins: that stream goes only to the
    caller's destination and its capture buffer stays empty. With
    merge_output, stderr goes to stdout and the stderr buffer stays empty.
    """

    def _capture_buffers(self) -> tuple[io.BytesIO | None, io.BytesIO | None]:
        return io.BytesIO(), io.BytesIO()

    def _stdout_destination(self, options: RunOptions, buffer: io.BytesIO | None) -> Any:
        return options.stdout if options.stdout_given else buffer

    def _stderr_destination(self, options: RunOptions, buffer: io.BytesIO | None) -> Any:
        if options.merge_output:
            return None
        return options.stderr if options.stderr_given else buffer


def _close_pipes(pipes: list[MonitoredPipe]) -> None:
    """Close every pipe, even when closing an earlier one raises."""
    if not pipes:
        return
    try:
        pipes[0].close()
    finally:
        _close_pipes(pipes[1:])
