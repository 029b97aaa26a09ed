"""Exception hierarchy for process-executer.

Every error carries a ``kind`` tag so callers can branch on the variant
instead of catching by class::

    try:
        run("make", "test")
    except ProcessExecuterError as e:
        if e.kind is ErrorKind.TIMED_OUT:
            ...

Command-outcome errors (``FailedError``, ``SignaledError``,
``CommandTimeoutError``) carry the ``Result`` of the invocation.
"""

from __future__ import annotations

from collections.abc import Sequence
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .result import Result

__all__ = [
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


class ErrorKind(str, Enum):
    """Variant tag carried by every process-executer error."""

    ARGUMENT = "argument"
    SPAWN = "spawn"
    IO = "io"
    FAILED = "failed"
    SIGNALED = "signaled"
    TIMED_OUT = "timed_out"


class ProcessExecuterError(Exception):
    """Base class of all process-executer errors."""

    kind: ErrorKind = ErrorKind.ARGUMENT


class ArgumentError(ProcessExecuterError, ValueError):
    """Invalid options or command, raised before any process is created."""

    kind = ErrorKind.ARGUMENT


class SpawnError(ProcessExecuterError):
    """The process could not be created (e.g. executable not found).

    Attributes:
        command: The command that failed to start
    """

    kind = ErrorKind.SPAWN

    def __init__(self, message: str, command: Sequence[str] = ()) -> None:
        self.command = tuple(command)
        super().__init__(message)


class ProcessIOError(ProcessExecuterError):
    """A destination could not be opened, or raised while output was drained into it.

    The destination's exception is available as ``__cause__``.

    Attributes:
        command: The command whose output was being drained
        stream: Which stream failed ("stdout" or "stderr")
    """

    kind = ErrorKind.IO

    def __init__(self, message: str, command: Sequence[str] = (), stream: str = "") -> None:
        self.command = tuple(command)
        self.stream = stream
        super().__init__(message)


class CommandError(ProcessExecuterError):
    """The command ran but did not succeed.

    Attributes:
        result: The Result of the invocation
    """

    kind = ErrorKind.FAILED

    def __init__(self, result: Result) -> None:
        self.result = result
        super().__init__(self.error_message())

    def error_message(self) -> str:
        message = f"{list(self.result.command)}, status: {self.result.facts}"
        stderr = self.result.stderr
        if stderr is not None:
            message += f", stderr: {stderr!r}"
        return message


class FailedError(CommandError):
    """The command exited with a non-zero status."""

    kind = ErrorKind.FAILED


class SignaledError(CommandError):
    """The command was terminated by an uncaught signal."""

    kind = ErrorKind.SIGNALED


class CommandTimeoutError(SignaledError):
    """The command was killed because it ran past its deadline.

    Attributes:
        timeout: The deadline that elapsed, in seconds
    """

    kind = ErrorKind.TIMED_OUT

    def __init__(self, result: Result, timeout: float | None) -> None:
        self.timeout = timeout
        super().__init__(result)

    def error_message(self) -> str:
        return f"{super().error_message()}, timeout: {self.timeout}s"
