"""Spawn a child process and wait for it against an optional deadline.

This module provides:
- Process creation with cwd/env/stdin/umask/session options
- A wait raced against the deadline; on expiry a forced kill (SIGKILL, or
  TerminateProcess on Windows) followed by an unbounded reaping wait
- Cleanup on every exit path: an interrupted wait still kills and reaps the
  child, so no zombie is left behind

Key design points:
- The spawner never reads child output. Output goes to whatever was bound
  at spawn time, usually the write ends of MonitoredPipes
- The parent's copies of MonitoredPipe write ends are released right after
  spawning so the drains see EOF when the child exits
- With start_new_session=True the kill goes to the whole process group
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import time
from collections.abc import Mapping, Sequence
from typing import Any

from ..errors import SpawnError
from ..options import UNSET, SpawnWithTimeoutOptions
from ..result import TerminationFacts
from .monitored_pipe import MonitoredPipe

__all__ = [
    "IS_WINDOWS",
    "KILL_SIGNAL",
    "ProcessSpawner",
    "build_environment",
]

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = sys.platform == "win32"

# Windows has no SIGKILL; TerminateProcess is reported as this signal
KILL_SIGNAL: int = getattr(signal, "SIGKILL", signal.SIGTERM)


def build_environment(
    env: Mapping[str, str | None] | None,
    unsetenv_others: bool = False,
) -> dict[str, str] | None:
    """Compute the child environment.

    Args:
        env: Overrides; a None value removes the variable
        unsetenv_others: Start from an empty environment instead of os.environ

    Returns:
        The environment dict, or None to inherit the parent's unchanged
    """
    if env is None and not unsetenv_others:
        return None

    child_env: dict[str, str] = {} if unsetenv_others else dict(os.environ)
    for key, value in (env or {}).items():
        if value is None:
            child_env.pop(key, None)
        else:
            child_env[key] = value
    return child_env


class ProcessSpawner:
    """Spawns one child per call and reports its termination facts.

    Example:
        spawner = ProcessSpawner()
        options = SpawnWithTimeoutOptions(timeout=5)
        facts = spawner.spawn_and_wait(["make", "test"], options)
        if facts.timed_out:
            ...
    """

    def __init__(self, kill_signal: int = KILL_SIGNAL) -> None:
        self.kill_signal = kill_signal

    def spawn_and_wait(
        self,
        command: Sequence[str],
        options: SpawnWithTimeoutOptions,
        *,
        stdout: Any = UNSET,
        stderr: Any = UNSET,
    ) -> TerminationFacts:
        """Spawn the command and wait for it to terminate.

        Args:
            command: Program and arguments
            options: Resolved spawn options (timeout, cwd, env, ...)
            stdout: Overrides options.stdout (e.g. a MonitoredPipe)
            stderr: Overrides options.stderr (e.g. a MonitoredPipe or
                subprocess.STDOUT)

        Returns:
            Termination facts of the reaped child

        Raises:
            SpawnError: The process could not be created
        """
        stdout = self._resolve_target(stdout, options.stdout)
        stderr = self._resolve_target(stderr, options.stderr)
        kwargs = self._build_popen_kwargs(options, stdout, stderr)

        start_time = time.monotonic()
        try:
            process = subprocess.Popen(list(command), **kwargs)  # noqa: S603
        except (OSError, ValueError, subprocess.SubprocessError) as e:
            logger.debug(f"Failed to spawn argv={list(command)}: {e!r}")
            raise SpawnError(f"Failed to spawn process: {e}", command=command) from e

        logger.debug(
            f"Started subprocess pid={process.pid} "
            f"argv={command[0]} cwd={options.cwd} timeout={options.deadline}"
        )

        # The child holds its own copies now
        for target in (stdout, stderr):
            if isinstance(target, MonitoredPipe):
                target.release_write_end()

        returncode, timed_out = self._wait(process, options)
        elapsed_time = time.monotonic() - start_time

        facts = self._build_facts(process.pid, returncode, timed_out, elapsed_time)
        logger.debug(f"Subprocess completed {facts}")
        return facts

    def _build_popen_kwargs(
        self,
        options: SpawnWithTimeoutOptions,
        stdout: Any,
        stderr: Any,
    ) -> dict[str, Any]:
        """Build subprocess.Popen kwargs from options and output targets."""
        kwargs: dict[str, Any] = {
            "stdin": options.stdin,
            "stdout": self._child_stream(stdout),
            "stderr": self._child_stream(stderr),
            "cwd": options.cwd,
            "env": build_environment(options.env, options.unsetenv_others),
            "close_fds": options.close_fds,
        }

        if IS_WINDOWS:
            if options.start_new_session:
                kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP
        else:
            kwargs["start_new_session"] = options.start_new_session
            kwargs["umask"] = options.umask
            if options.pass_fds:
                kwargs["pass_fds"] = options.pass_fds

        return kwargs

    @staticmethod
    def _resolve_target(override: Any, configured: Any) -> Any:
        target = configured if override is UNSET else override
        return None if target is UNSET else target

    @staticmethod
    def _child_stream(target: Any) -> Any:
        if isinstance(target, MonitoredPipe):
            return target.fileno()
        return target

    def _wait(
        self,
        process: subprocess.Popen[bytes],
        options: SpawnWithTimeoutOptions,
    ) -> tuple[int, bool]:
        """Wait for the child, killing it if the deadline elapses first.

        Returns:
            (returncode, timed_out)
        """
        try:
            try:
                return process.wait(timeout=options.deadline), False
            except subprocess.TimeoutExpired:
                pass

            # The child may have exited on its own as the deadline expired
            if process.poll() is not None:
                return process.returncode, False

            logger.debug(f"Deadline of {options.deadline}s elapsed, killing pid={process.pid}")
            self._kill(process, options.start_new_session)
            returncode = process.wait()
            return returncode, self._killed_by_us(returncode)
        except BaseException:
            # Interrupted wait: never leave the child running or unreaped
            if process.returncode is None:
                logger.warning(f"Wait interrupted, killing subprocess pid={process.pid}")
                self._kill(process, options.start_new_session)
                process.wait()
            raise

    def _killed_by_us(self, returncode: int) -> bool:
        if IS_WINDOWS:
            return True
        return returncode == -self.kill_signal

    def _kill(self, process: subprocess.Popen[bytes], process_group: bool) -> None:
        """Send the forced-kill signal to the child (or its process group)."""
        if IS_WINDOWS:
            try:
                process.kill()
            except ProcessLookupError:
                pass
            return

        if process_group:
            try:
                pgid = os.getpgid(process.pid)
                os.killpg(pgid, self.kill_signal)
                logger.debug(f"Sent signal {self.kill_signal} to process group pgid={pgid}")
                return
            except ProcessLookupError:
                return
            except OSError as e:
                logger.debug(f"killpg failed, falling back to single process: {e}")

        try:
            process.send_signal(self.kill_signal)
            logger.debug(f"Sent signal {self.kill_signal} to pid={process.pid}")
        except ProcessLookupError:
            pass

    def _build_facts(
        self,
        pid: int,
        returncode: int,
        timed_out: bool,
        elapsed_time: float,
    ) -> TerminationFacts:
        if timed_out and IS_WINDOWS:
            return TerminationFacts(pid, None, self.kill_signal, True, max(0.0, elapsed_time))
        return TerminationFacts.from_returncode(
            pid, returncode, timed_out=timed_out, elapsed_time=elapsed_time
        )
