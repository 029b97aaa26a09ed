"""Destination sink tests.

Test coverage:
- factory() mapping of every supported redirection value
- Text vs binary writers, incremental decoding
- File paths with mode and permissions
- Tee fan-out and close semantics
- validate() rejections
"""

from __future__ import annotations

import io
import os
import stat
import sys
from pathlib import Path

import pytest

from process_executer import destinations
from process_executer.destinations import (
    FileDescriptorDestination,
    FilePathDestination,
    NullDestination,
    StdStreamDestination,
    Tee,
    WriterDestination,
)
from process_executer.errors import ArgumentError
from process_executer.runtime import IS_WINDOWS, MonitoredPipe


# =============================================================================
# factory()
# =============================================================================


class TestFactory:
    """Test mapping raw values to destinations."""

    def test_none_discards(self):
        """None becomes a NullDestination."""
        dest = destinations.factory(None)
        assert isinstance(dest, NullDestination)
        dest.write(b"ignored")
        dest.close()

    def test_writer(self):
        """Objects with write() become WriterDestination."""
        buffer = io.BytesIO()
        dest = destinations.factory(buffer)
        assert isinstance(dest, WriterDestination)
        assert dest.target is buffer

    def test_std_streams(self):
        """1 and 2 map to the parent's stdout and stderr."""
        assert isinstance(destinations.factory(1), StdStreamDestination)
        assert isinstance(destinations.factory(2), StdStreamDestination)

    def test_other_fd(self, tmp_path: Path):
        """Other ints are treated as open file descriptors."""
        fd = os.open(tmp_path / "out.bin", os.O_WRONLY | os.O_CREAT)
        try:
            dest = destinations.factory(fd)
            assert isinstance(dest, FileDescriptorDestination)
            dest.write(b"abc")
            dest.close()
        finally:
            os.close(fd)
        assert (tmp_path / "out.bin").read_bytes() == b"abc"

    def test_path(self, tmp_path: Path):
        """Paths are opened by the destination and closed on close()."""
        path = tmp_path / "out.log"
        dest = destinations.factory(path)
        assert isinstance(dest, FilePathDestination)
        dest.write(b"hello")
        dest.close()
        assert dest.file.closed
        assert path.read_bytes() == b"hello"

    def test_list_is_tee(self):
        """Lists become a Tee over each element."""
        dest = destinations.factory([io.BytesIO(), None])
        assert isinstance(dest, Tee)
        assert len(dest.destinations) == 2

    def test_existing_destination_returned(self):
        """Destination instances pass through unchanged."""
        dest = NullDestination()
        assert destinations.factory(dest) is dest


# =============================================================================
# Writers
# =============================================================================


class TestWriterDestination:
    """Test writer sinks."""

    def test_binary_writer_gets_bytes(self):
        """Binary writers receive raw bytes."""
        buffer = io.BytesIO()
        dest = WriterDestination(buffer)
        dest.write(b"\xff\x00raw")
        dest.close()
        assert buffer.getvalue() == b"\xff\x00raw"

    def test_text_writer_gets_text(self):
        """Text writers receive decoded text."""
        buffer = io.StringIO()
        dest = WriterDestination(buffer)
        dest.write("héllo".encode())
        dest.close()
        assert buffer.getvalue() == "héllo"

    def test_split_multibyte_character(self):
        """A character split across chunks is decoded once it is complete."""
        buffer = io.StringIO()
        dest = WriterDestination(buffer)
        encoded = "€".encode()
        dest.write(encoded[:1])
        assert buffer.getvalue() == ""
        dest.write(encoded[1:])
        dest.close()
        assert buffer.getvalue() == "€"

    def test_truncated_character_replaced_on_close(self):
        """An incomplete trailing sequence is flushed as a replacement char."""
        buffer = io.StringIO()
        dest = WriterDestination(buffer)
        dest.write("€".encode()[:2])
        dest.close()
        assert buffer.getvalue() == "�"

    def test_caller_writer_left_open(self):
        """close() never closes a caller-owned writer."""
        buffer = io.BytesIO()
        WriterDestination(buffer).close()
        assert not buffer.closed


class TestStdStreamDestination:
    """Test the parent's stdout/stderr sinks."""

    def test_writes_to_current_stdout(self, capsys: pytest.CaptureFixture[str]):
        """Output goes to whatever sys.stdout is at write time."""
        dest = StdStreamDestination(1)
        dest.write(b"to stdout\n")
        dest.close()
        assert capsys.readouterr().out == "to stdout\n"

    def test_writes_to_current_stderr(self, capsys: pytest.CaptureFixture[str]):
        dest = StdStreamDestination(2)
        dest.write(b"to stderr\n")
        dest.close()
        assert capsys.readouterr().err == "to stderr\n"

    def test_stream_lookup(self):
        assert StdStreamDestination(1).stream is sys.stdout
        assert StdStreamDestination(2).stream is sys.stderr


# =============================================================================
# File paths
# =============================================================================


class TestFilePathDestination:
    """Test file path sinks."""

    def test_truncates_by_default(self, tmp_path: Path):
        """A plain path truncates an existing file."""
        path = tmp_path / "out.log"
        path.write_bytes(b"old content")
        dest = destinations.factory(str(path))
        dest.write(b"new")
        dest.close()
        assert path.read_bytes() == b"new"

    def test_append_mode(self, tmp_path: Path):
        """(path, "a") appends."""
        path = tmp_path / "out.log"
        path.write_bytes(b"first\n")
        dest = destinations.factory((path, "a"))
        dest.write(b"second\n")
        dest.close()
        assert path.read_bytes() == b"first\nsecond\n"

    def test_binary_forced(self, tmp_path: Path):
        """Text modes are opened in binary."""
        dest = FilePathDestination(tmp_path / "out.log", "w")
        try:
            assert dest.mode == "wb"
        finally:
            dest.close()

    @pytest.mark.skipif(IS_WINDOWS, reason="POSIX-specific test")
    def test_permissions(self, tmp_path: Path):
        """(path, mode, perms) creates the file with perms (minus umask)."""
        path = tmp_path / "secret.log"
        old_umask = os.umask(0)
        try:
            dest = destinations.factory((path, "w", 0o600))
            dest.close()
        finally:
            os.umask(old_umask)
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_close_idempotent(self, tmp_path: Path):
        dest = FilePathDestination(tmp_path / "out.log")
        dest.close()
        dest.close()


# =============================================================================
# Tee
# =============================================================================


class TestTee:
    """Test fan-out."""

    def test_every_destination_gets_every_chunk_in_order(self, tmp_path: Path):
        """Each sink sees the same byte sequence."""
        buffer = io.BytesIO()
        path = tmp_path / "tee.log"
        tee = Tee(buffer, path)
        for chunk in (b"one ", b"two ", b"three"):
            tee.write(chunk)
        tee.close()
        assert buffer.getvalue() == b"one two three"
        assert path.read_bytes() == b"one two three"

    def test_nested_lists(self):
        """Lists nest into Tees of Tees."""
        first, second = io.BytesIO(), io.BytesIO()
        tee = destinations.factory([first, [second]])
        tee.write(b"x")
        tee.close()
        assert first.getvalue() == second.getvalue() == b"x"

    def test_write_failure_propagates(self):
        """A failing sink raises from write()."""

        class Broken:
            def write(self, data):
                raise OSError("disk full")

        tee = Tee(io.BytesIO(), Broken())
        with pytest.raises(OSError, match="disk full"):
            tee.write(b"data")

    def test_close_closes_all_and_reports_first_error(self, tmp_path: Path):
        """Every child is closed even when an earlier one fails."""

        class FailingClose(NullDestination):
            def close(self):
                raise OSError("close failed")

        path = tmp_path / "out.log"
        tee = Tee(FailingClose(), path)
        with pytest.raises(OSError, match="close failed"):
            tee.close()
        assert tee.destinations[1].file.closed

    def test_invalid_element_rejected(self):
        with pytest.raises(ArgumentError):
            Tee(io.BytesIO(), object())

    def test_open_failure_closes_earlier_children(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ):
        """Files opened before a failing child are closed before the error propagates."""
        opened: list[FilePathDestination] = []
        original_init = FilePathDestination.__init__

        def recording_init(self, *args, **kwargs):
            original_init(self, *args, **kwargs)
            opened.append(self)

        monkeypatch.setattr(FilePathDestination, "__init__", recording_init)
        with pytest.raises(FileNotFoundError):
            Tee(tmp_path / "ok.log", tmp_path / "missing" / "x.log")
        (first,) = opened
        assert first.file.closed

    def test_open_failure_not_masked_by_close_failure(self, tmp_path: Path):
        """The open error propagates even if closing an earlier child fails."""
        closed = []

        class FailingClose(NullDestination):
            def close(self):
                closed.append(self)
                raise OSError("close failed")

        with pytest.raises(FileNotFoundError):
            Tee(FailingClose(), tmp_path / "missing" / "x.log")
        assert len(closed) == 1


# =============================================================================
# validate()
# =============================================================================


class TestValidate:
    """Test rejection of unsupported values."""

    @pytest.mark.parametrize(
        "value",
        [object(), 3.5, -1, True, ("only-path",), ("path", 1), ("path", "w", "0644"), {"a": 1}],
    )
    def test_rejected(self, value):
        with pytest.raises(ArgumentError, match="wrong exec redirect action"):
            destinations.validate(value)

    def test_nested_invalid_rejected(self):
        with pytest.raises(ArgumentError):
            destinations.validate([io.BytesIO(), [object()]])

    def test_monitored_pipe_rejected(self):
        """A MonitoredPipe is not a destination."""
        with MonitoredPipe() as pipe:
            with pytest.raises(ArgumentError, match="MonitoredPipe"):
                destinations.validate(pipe)

    def test_validate_opens_nothing(self, tmp_path: Path):
        """Validation does not create files."""
        path = tmp_path / "never.log"
        destinations.validate(path)
        destinations.validate((path, "a", 0o600))
        assert not path.exists()
