"""Resolved, immutable options for spawning and running commands.

Each level extends the previous one:

    SpawnOptions              how the child is created (cwd, env, ...)
    SpawnWithTimeoutOptions   + timeout and raw stdout/stderr pass-through
    RunOptions                + stdout/stderr destinations, merge_output,
                                raise_errors, logger, encoding
    RunWithCaptureOptions     same keys, capture semantics in the runner

Options are built from a free-form option bag with ``from_mapping()``,
which rejects unknown keys and validates every value before any process is
created.
"""

from __future__ import annotations

import codecs
import dataclasses
import math
import os
import subprocess
from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from numbers import Real
from typing import Any, TypeVar

from . import destinations
from .errors import ArgumentError
from .logs import NULL_LOGGER, ResultLogger, is_result_logger

__all__ = [
    "UNSET",
    "SpawnOptions",
    "SpawnWithTimeoutOptions",
    "RunOptions",
    "RunWithCaptureOptions",
]

OptionsT = TypeVar("OptionsT", bound="SpawnOptions")


class _Unset:
    """Marker for an option the caller did not supply."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


def _is_bool(value: Any) -> bool:
    return value is True or value is False


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_child_stream(value: Any) -> bool:
    """Values subprocess can bind to a child's standard stream directly."""
    if value is None or value == subprocess.DEVNULL:
        return True
    if _is_int(value):
        return value >= 0
    return callable(getattr(value, "fileno", None))


@dataclass(frozen=True)
class SpawnOptions:
    """How the child process is created.

    Attributes:
        cwd: Working directory (None = inherit)
        env: Variables overlaid on the parent environment; None values unset
        unsetenv_others: Use only ``env``, dropping the parent environment
        stdin: Child stdin (None = inherit, DEVNULL, an fd or a file object)
        umask: umask for the child (-1 = unchanged)
        close_fds: Close inherited descriptors other than 0/1/2 and pass_fds
        pass_fds: Descriptors kept open in the child
        start_new_session: Run the child in its own session/process group;
            a timeout then kills the whole group. Without it only the child
            is killed, and a grandchild still holding the output pipe keeps
            the call waiting until it exits
    """

    cwd: str | os.PathLike[str] | None = None
    env: Mapping[str, str | None] | None = None
    unsetenv_others: bool = False
    stdin: Any = None
    umask: int = -1
    close_fds: bool = True
    pass_fds: tuple[int, ...] = ()
    start_new_session: bool = False

    def __post_init__(self) -> None:
        if self.env is not None and isinstance(self.env, Mapping):
            object.__setattr__(self, "env", dict(self.env))
        if isinstance(self.pass_fds, (list, set, frozenset)):
            object.__setattr__(self, "pass_fds", tuple(self.pass_fds))
        self._validate()

    @classmethod
    def option_names(cls) -> list[str]:
        return [f.name for f in fields(cls)]

    @classmethod
    def from_mapping(
        cls: type[OptionsT],
        options: Mapping[str, Any] | None = None,
        **kwargs: Any,
    ) -> OptionsT:
        """Resolve a free-form option bag.

        Raises:
            ArgumentError: unknown keys or invalid values
        """
        values = {**(options or {}), **kwargs}
        cls._assert_no_unknown_options(values)
        return cls(**values)

    @classmethod
    def _assert_no_unknown_options(cls, values: Mapping[str, Any]) -> None:
        known = set(cls.option_names())
        unknown = [str(key) for key in values if key not in known]
        if unknown:
            plural = "s" if len(unknown) > 1 else ""
            raise ArgumentError(f"Unknown option{plural}: {', '.join(unknown)}")

    def merge(self: OptionsT, **changes: Any) -> OptionsT:
        """Return a validated copy with changes applied."""
        self._assert_no_unknown_options(changes)
        return dataclasses.replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {name: getattr(self, name) for name in self.option_names()}

    def _validate(self) -> None:
        if self.cwd is not None and not isinstance(self.cwd, (str, os.PathLike)):
            raise ArgumentError(f"cwd must be None, a str or a path but was {self.cwd!r}")
        if self.env is not None:
            if not isinstance(self.env, Mapping):
                raise ArgumentError(f"env must be None or a mapping but was {self.env!r}")
            for key, value in self.env.items():
                if not isinstance(key, str) or not (value is None or isinstance(value, str)):
                    raise ArgumentError(
                        f"env must map str to str or None but had {key!r}: {value!r}"
                    )
        if not _is_bool(self.unsetenv_others):
            raise ArgumentError(
                f"unsetenv_others must be True or False but was {self.unsetenv_others!r}"
            )
        if not _is_child_stream(self.stdin):
            raise ArgumentError(
                f"stdin must be None, DEVNULL, a file descriptor or a file but was {self.stdin!r}"
            )
        if not _is_int(self.umask):
            raise ArgumentError(f"umask must be an integer but was {self.umask!r}")
        if not _is_bool(self.close_fds):
            raise ArgumentError(f"close_fds must be True or False but was {self.close_fds!r}")
        if not isinstance(self.pass_fds, tuple) or not all(
            _is_int(fd) and fd >= 0 for fd in self.pass_fds
        ):
            raise ArgumentError(
                f"pass_fds must be a sequence of file descriptors but was {self.pass_fds!r}"
            )
        if not _is_bool(self.start_new_session):
            raise ArgumentError(
                f"start_new_session must be True or False but was {self.start_new_session!r}"
            )


@dataclass(frozen=True)
class SpawnWithTimeoutOptions(SpawnOptions):
    """Spawn options plus a deadline and raw output redirection.

    Attributes:
        timeout: Seconds before the child is killed (None or 0 = no deadline)
        stdout: Child stdout passed straight to subprocess (None = inherit)
        stderr: Child stderr passed straight to subprocess (None = inherit,
            subprocess.STDOUT = merge into stdout)
    """

    timeout: float | None = None
    stdout: Any = None
    stderr: Any = None

    @property
    def deadline(self) -> float | None:
        """The effective deadline: None when no timeout applies."""
        return self.timeout if self.timeout else None

    def _validate(self) -> None:
        super()._validate()
        timeout = self.timeout
        if timeout is not None and (
            isinstance(timeout, bool)
            or not isinstance(timeout, Real)
            or not math.isfinite(timeout)
            or timeout < 0
        ):
            raise ArgumentError(
                f"timeout must be None or a finite non-negative real number but was {timeout!r}"
            )
        self._validate_redirections()

    def _validate_redirections(self) -> None:
        if not _is_child_stream(self.stdout):
            raise ArgumentError(
                f"stdout must be None, DEVNULL, a file descriptor or a file but was {self.stdout!r}"
            )
        if self.stderr != subprocess.STDOUT and not _is_child_stream(self.stderr):
            raise ArgumentError(
                f"stderr must be None, DEVNULL, STDOUT, a file descriptor or a file "
                f"but was {self.stderr!r}"
            )


@dataclass(frozen=True)
class RunOptions(SpawnWithTimeoutOptions):
    """Options for ``run()``.

    Attributes:
        stdout: Destination for stdout (see ``destinations``); UNSET = not given
        stderr: Destination for stderr; UNSET = not given
        merge_output: Send stderr into the stdout destination
        raise_errors: Raise on non-zero exit, signal or timeout
        logger: Receives an info summary and a debug output dump per run
        encoding: Encoding used to decode output for text sinks and results
    """

    stdout: Any = UNSET
    stderr: Any = UNSET
    merge_output: bool = False
    raise_errors: bool = True
    logger: ResultLogger = field(default=NULL_LOGGER)
    encoding: str = "utf-8"

    @property
    def stdout_given(self) -> bool:
        return self.stdout is not UNSET

    @property
    def stderr_given(self) -> bool:
        return self.stderr is not UNSET

    def _validate(self) -> None:
        super()._validate()
        if not _is_bool(self.merge_output):
            raise ArgumentError(
                f"merge_output must be True or False but was {self.merge_output!r}"
            )
        if self.merge_output and self.stderr_given:
            raise ArgumentError("Cannot give merge_output=True AND give a stderr redirection")
        if not _is_bool(self.raise_errors):
            raise ArgumentError(
                f"raise_errors must be True or False but was {self.raise_errors!r}"
            )
        if not is_result_logger(self.logger):
            raise ArgumentError(
                f"logger must provide info() and debug() but was {self.logger!r}"
            )
        try:
            codecs.lookup(self.encoding)
        except (LookupError, TypeError) as e:
            raise ArgumentError(f"encoding must be a known codec but was {self.encoding!r}") from e

    def _validate_redirections(self) -> None:
        if self.stdout_given:
            destinations.validate(self.stdout)
        if self.stderr_given:
            destinations.validate(self.stderr)


@dataclass(frozen=True)
class RunWithCaptureOptions(RunOptions):
    """Options for ``run_with_capture()``; output not redirected elsewhere is captured."""
