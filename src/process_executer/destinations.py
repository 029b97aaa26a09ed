"""Destination sinks for monitored output streams.

A destination receives every chunk of bytes drained from a child's stdout or
stderr. ``factory()`` turns the raw value a caller passes as ``stdout=`` /
``stderr=`` into a sink:

    None                     discard the output
    writer object            anything with write(); text streams get decoded text
    1 / 2                    the parent's current sys.stdout / sys.stderr
    other int                an already-open file descriptor
    str / PathLike           file path, truncated and written in binary mode
    (path, mode)             file opened with mode (binary is forced)
    (path, mode, perms)      same, created with the given permissions
    [dest, dest, ...]        tee: every chunk goes to each destination in order
"""

from __future__ import annotations

import codecs
import io
import logging
import os
import sys
from typing import Any

from .errors import ArgumentError

__all__ = [
    "Destination",
    "NullDestination",
    "WriterDestination",
    "StdStreamDestination",
    "FileDescriptorDestination",
    "FilePathDestination",
    "Tee",
    "factory",
    "validate",
]

logger = logging.getLogger(__name__)

DEFAULT_FILE_PERMS = 0o644


class Destination:
    """Base sink: accepts byte chunks, may own a resource released by close()."""

    def __init__(self, target: Any = None) -> None:
        self.target = target

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def close(self) -> None:
        """Release resources this sink opened. Caller-owned targets are left open."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.target!r})"


class NullDestination(Destination):
    """Drops everything written to it."""

    def write(self, data: bytes) -> None:
        pass

    def __repr__(self) -> str:
        return "NullDestination()"


class _DecodingMixin:
    """Incremental decoding so multi-byte characters split across chunks survive."""

    def _init_decoder(self, encoding: str) -> None:
        self.encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")

    def _decode(self, data: bytes, final: bool = False) -> str:
        return self._decoder.decode(data, final=final)


class WriterDestination(_DecodingMixin, Destination):
    """Caller-supplied object with a ``write`` method.

    ``io.TextIOBase`` instances receive decoded text, everything else
    receives the raw bytes.
    """

    def __init__(self, target: Any, encoding: str = "utf-8") -> None:
        super().__init__(target)
        self._init_decoder(encoding)
        self.text_mode = isinstance(target, io.TextIOBase)

    def write(self, data: bytes) -> None:
        if not self.text_mode:
            self.target.write(data)
            return
        text = self._decode(data)
        if text:
            self.target.write(text)

    def close(self) -> None:
        if self.text_mode:
            tail = self._decode(b"", final=True)
            if tail:
                self.target.write(tail)


class StdStreamDestination(_DecodingMixin, Destination):
    """The parent's stdout (1) or stderr (2).

    The stream is looked up on every write so a replaced ``sys.stdout``
    (pytest capture, redirect_stdout) is honoured.
    """

    def __init__(self, target: int, encoding: str = "utf-8") -> None:
        super().__init__(target)
        self._init_decoder(encoding)

    @property
    def stream(self) -> Any:
        return sys.stdout if self.target == 1 else sys.stderr

    def write(self, data: bytes) -> None:
        text = self._decode(data)
        if text:
            self.stream.write(text)
            self.stream.flush()

    def close(self) -> None:
        tail = self._decode(b"", final=True)
        if tail:
            self.stream.write(tail)
            self.stream.flush()


class FileDescriptorDestination(Destination):
    """An already-open file descriptor owned by the caller."""

    def write(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.target, view)
            view = view[written:]


class FilePathDestination(Destination):
    """A file opened (and later closed) by the destination itself."""

    def __init__(
        self,
        target: str | os.PathLike[str],
        mode: str = "w",
        perms: int = DEFAULT_FILE_PERMS,
    ) -> None:
        super().__init__(target)
        self.mode = mode if "b" in mode else f"{mode}b"
        self.perms = perms
        self.file = open(  # noqa: SIM115 - closed in close()
            target,
            self.mode,
            opener=lambda path, flags: os.open(path, flags, self.perms),
        )

    def write(self, data: bytes) -> None:
        self.file.write(data)

    def close(self) -> None:
        if not self.file.closed:
            self.file.close()


class Tee(Destination):
    """Writes each chunk to every child destination, in order."""

    def __init__(self, *destinations: Any, encoding: str = "utf-8") -> None:
        for destination in destinations:
            validate(destination)
        children: list[Destination] = []
        try:
            for destination in destinations:
                children.append(factory(destination, encoding=encoding))
        except BaseException:
            # Release the children already opened before the failing one
            for child in children:
                try:
                    child.close()
                except Exception as e:
                    logger.debug(f"Closing tee child {child!r} after a failed open raised: {e!r}")
            raise
        super().__init__(children)
        self.destinations = children

    def write(self, data: bytes) -> None:
        for destination in self.destinations:
            destination.write(data)

    def close(self) -> None:
        # Close every child even if one fails, then report the first failure
        first_error: Exception | None = None
        for destination in self.destinations:
            try:
                destination.close()
            except Exception as e:
                if first_error is None:
                    first_error = e
        if first_error is not None:
            raise first_error


def validate(raw: Any) -> None:
    """Check that raw is a supported destination without opening anything.

    Raises:
        ArgumentError: raw is not a supported destination
    """
    from .runtime.monitored_pipe import MonitoredPipe

    if isinstance(raw, Destination) or raw is None:
        return
    if isinstance(raw, MonitoredPipe):
        raise ArgumentError(f"a MonitoredPipe cannot be used as a destination: {raw!r}")
    if isinstance(raw, list):
        for item in raw:
            validate(item)
        return
    if isinstance(raw, tuple):
        shape_ok = (
            len(raw) in (2, 3)
            and isinstance(raw[0], (str, os.PathLike))
            and isinstance(raw[1], str)
            and (len(raw) == 2 or (isinstance(raw[2], int) and not isinstance(raw[2], bool)))
        )
        if shape_ok:
            return
    elif isinstance(raw, int) and not isinstance(raw, bool):
        if raw >= 0:
            return
    elif isinstance(raw, (str, os.PathLike)):
        return
    elif not isinstance(raw, bool) and callable(getattr(raw, "write", None)):
        return
    raise ArgumentError(f"wrong exec redirect action: {raw!r}")


def factory(raw: Any, encoding: str = "utf-8") -> Destination:
    """Turn a caller-supplied redirection value into a Destination.

    Raises:
        ArgumentError: raw is not a supported destination
    """
    validate(raw)

    if isinstance(raw, Destination):
        return raw
    if raw is None:
        return NullDestination()
    if isinstance(raw, list):
        return Tee(*raw, encoding=encoding)
    if isinstance(raw, tuple):
        return FilePathDestination(*raw)
    if isinstance(raw, int):
        if raw in (1, 2):
            return StdStreamDestination(raw, encoding=encoding)
        return FileDescriptorDestination(raw)
    if isinstance(raw, (str, os.PathLike)):
        return FilePathDestination(raw)
    return WriterDestination(raw, encoding=encoding)
