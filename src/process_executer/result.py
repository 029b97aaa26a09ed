"""Termination facts and the result of a command invocation."""

from __future__ import annotations

import io
import signal as signal_module
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .options import RunOptions

__all__ = ["TerminationFacts", "Result"]


def _signal_name(signum: int) -> str | None:
    try:
        return signal_module.Signals(signum).name
    except ValueError:
        return None


@dataclass(frozen=True)
class TerminationFacts:
    """How and when a process ended.

    Exactly one of ``exit_code`` and ``signal`` is set. A timed-out process
    always carries the forced-kill signal.

    Attributes:
        pid: Process id of the child
        exit_code: Exit status when the child exited normally
        signal: Number of the signal that terminated the child
        timed_out: The child was killed because its deadline elapsed
        elapsed_time: Seconds from spawn to reaping (monotonic clock)
    """

    pid: int
    exit_code: int | None
    signal: int | None
    timed_out: bool = False
    elapsed_time: float = 0.0

    @classmethod
    def from_returncode(
        cls,
        pid: int,
        returncode: int,
        *,
        timed_out: bool = False,
        elapsed_time: float = 0.0,
    ) -> TerminationFacts:
        """Build facts from a ``Popen.returncode`` (negative means signaled)."""
        if returncode < 0:
            return cls(pid, None, -returncode, timed_out, max(0.0, elapsed_time))
        return cls(pid, returncode, None, timed_out, max(0.0, elapsed_time))

    @property
    def exited(self) -> bool:
        return self.exit_code is not None

    @property
    def signaled(self) -> bool:
        return self.signal is not None

    @property
    def success(self) -> bool:
        """True when the child exited with status 0 before its deadline."""
        return self.exit_code == 0 and not self.timed_out

    @property
    def signal_name(self) -> str | None:
        return _signal_name(self.signal) if self.signal is not None else None

    def __str__(self) -> str:
        if self.signal is not None:
            name = self.signal_name
            if name:
                text = f"pid {self.pid} {name} (signal {int(self.signal)})"
            else:
                text = f"pid {self.pid} signal {int(self.signal)}"
        else:
            text = f"pid {self.pid} exit {self.exit_code}"
        if self.timed_out:
            text += f" timed out after {self.elapsed_time:.3g}s"
        return text


@dataclass(frozen=True)
class Result:
    """Outcome of one ``run()`` / ``run_with_capture()`` invocation.

    Built once, after every monitored pipe of the invocation has closed, so
    the capture buffers are complete.

    Attributes:
        command: The command that was run
        options: Resolved options used for the run
        facts: Termination facts of the child
        stdout_destination: Where stdout went (the raw value given by the caller)
        stderr_destination: Where stderr went
        stdout_buffer: In-memory capture of stdout, if captured
        stderr_buffer: In-memory capture of stderr, if captured
    """

    command: tuple[str, ...]
    options: RunOptions
    facts: TerminationFacts
    stdout_destination: Any = None
    stderr_destination: Any = None
    stdout_buffer: io.BytesIO | None = None
    stderr_buffer: io.BytesIO | None = None

    # Termination facts
    @property
    def pid(self) -> int:
        return self.facts.pid

    @property
    def exit_code(self) -> int | None:
        return self.facts.exit_code

    @property
    def signal(self) -> int | None:
        return self.facts.signal

    @property
    def timed_out(self) -> bool:
        return self.facts.timed_out

    @property
    def elapsed_time(self) -> float:
        return self.facts.elapsed_time

    @property
    def success(self) -> bool:
        return self.facts.success

    @property
    def signaled(self) -> bool:
        return self.facts.signaled

    @property
    def exited(self) -> bool:
        return self.facts.exited

    # Captured output
    @property
    def stdout_bytes(self) -> bytes | None:
        return self.stdout_buffer.getvalue() if self.stdout_buffer is not None else None

    @property
    def stderr_bytes(self) -> bytes | None:
        return self.stderr_buffer.getvalue() if self.stderr_buffer is not None else None

    @property
    def stdout(self) -> str | None:
        """Captured stdout decoded with the run's encoding, None if not captured."""
        return self._decode(self.stdout_bytes)

    @property
    def stderr(self) -> str | None:
        """Captured stderr decoded with the run's encoding, None if not captured."""
        return self._decode(self.stderr_bytes)

    def _decode(self, data: bytes | None) -> str | None:
        if data is None:
            return None
        return data.decode(self.options.encoding, errors="replace")

    def __str__(self) -> str:
        return str(self.facts)
