"""MonitoredPipe tests.

Test coverage:
- Lifecycle states and idempotent close
- Draining parent writes and child output into destinations
- Chunk size configuration
- Sink exceptions captured instead of raised
- Open-instance registry
"""

from __future__ import annotations

import io
import subprocess
import threading

import pytest

from process_executer import config as config_module
from process_executer.errors import ArgumentError
from process_executer.runtime import MonitoredPipe, PipeState


class ChunkRecorder:
    """Binary writer remembering each chunk it receives."""

    def __init__(self) -> None:
        self.chunks: list[bytes] = []

    def write(self, data: bytes) -> None:
        self.chunks.append(bytes(data))


class FailingWriter:
    """Writer that fails on the first write."""

    def __init__(self) -> None:
        self.calls = 0

    def write(self, data: bytes) -> None:
        self.calls += 1
        raise OSError("sink is broken")


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Test state transitions."""

    def test_draining_after_construction(self):
        """The drain thread starts in the constructor."""
        pipe = MonitoredPipe()
        try:
            assert pipe.state is PipeState.DRAINING
            assert pipe.thread.is_alive()
        finally:
            pipe.close()

    def test_closed_after_close(self):
        pipe = MonitoredPipe()
        pipe.close()
        assert pipe.state is PipeState.CLOSED
        assert not pipe.thread.is_alive()

    def test_close_idempotent(self):
        """A second close() is a no-op."""
        buffer = io.BytesIO()
        pipe = MonitoredPipe(buffer)
        pipe.write(b"once")
        pipe.close()
        pipe.close()
        assert buffer.getvalue() == b"once"

    def test_write_after_close_rejected(self):
        pipe = MonitoredPipe()
        pipe.close()
        with pytest.raises(ValueError, match="closed"):
            pipe.write(b"late")

    def test_fileno_after_release_rejected(self):
        """The write end is gone once released."""
        pipe = MonitoredPipe()
        try:
            pipe.release_write_end()
            with pytest.raises(ValueError):
                pipe.fileno()
        finally:
            pipe.close()

    def test_context_manager(self):
        buffer = io.BytesIO()
        with MonitoredPipe(buffer) as pipe:
            pipe.write(b"ctx")
        assert pipe.state is PipeState.CLOSED
        assert buffer.getvalue() == b"ctx"


# =============================================================================
# Draining
# =============================================================================


class TestDraining:
    """Test that everything written reaches the destination."""

    def test_parent_writes_complete(self):
        """Bytes written by the parent all arrive, in order."""
        buffer = io.BytesIO()
        pipe = MonitoredPipe(buffer)
        payload = b"".join(f"line {i}\n".encode() for i in range(5000))
        pipe.write(payload)
        pipe.close()
        assert buffer.getvalue() == payload
        assert pipe.bytes_written == len(payload)

    @pytest.mark.timeout(10)
    def test_child_output_drained(self, py):
        """A child writing to fileno() is drained once the write end is released."""
        buffer = io.BytesIO()
        pipe = MonitoredPipe(buffer)
        try:
            process = subprocess.Popen(
                py("import sys; sys.stdout.write('x' * 300000)"),
                stdout=pipe.fileno(),
            )
            pipe.release_write_end()
            process.wait()
        finally:
            pipe.close()
        assert buffer.getvalue() == b"x" * 300000
        assert pipe.exception is None

    def test_chunk_size_bounds_reads(self):
        """No chunk handed to the destination exceeds chunk_size."""
        recorder = ChunkRecorder()
        pipe = MonitoredPipe(recorder, chunk_size=7)
        pipe.write(b"abcdefghijklmnopqrstuvwxyz")
        pipe.close()
        assert b"".join(recorder.chunks) == b"abcdefghijklmnopqrstuvwxyz"
        assert all(len(chunk) <= 7 for chunk in recorder.chunks)

    def test_chunk_size_from_config(self, monkeypatch: pytest.MonkeyPatch):
        """PEX_CHUNK_SIZE sets the default chunk size."""
        monkeypatch.setenv("PEX_CHUNK_SIZE", "4096")
        config_module.reload_config()
        with MonitoredPipe() as pipe:
            assert pipe.chunk_size == 4096

    @pytest.mark.parametrize("chunk_size", [0, -5, 1.5, True])
    def test_invalid_chunk_size(self, chunk_size):
        with pytest.raises(ArgumentError, match="chunk_size"):
            MonitoredPipe(chunk_size=chunk_size)

    def test_text_destination_decoded(self):
        """Text writers receive text decoded with the pipe's encoding."""
        buffer = io.StringIO()
        with MonitoredPipe(buffer, encoding="latin-1") as pipe:
            pipe.write("café".encode("latin-1"))
        assert buffer.getvalue() == "café"

    def test_tee_destination(self):
        first, second = io.BytesIO(), io.BytesIO()
        with MonitoredPipe([first, second]) as pipe:
            pipe.write(b"fan-out")
        assert first.getvalue() == second.getvalue() == b"fan-out"


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Test sink exceptions."""

    def test_sink_exception_captured(self):
        """A failing sink is recorded, not raised from close()."""
        sink = FailingWriter()
        pipe = MonitoredPipe(sink)
        pipe.write(b"boom")
        pipe.close()
        assert isinstance(pipe.exception, OSError)
        assert "sink is broken" in str(pipe.exception)
        assert sink.calls == 1
        assert pipe.state is PipeState.CLOSED

    @pytest.mark.timeout(10)
    def test_child_not_blocked_after_sink_failure(self, py):
        """A child writing more than a pipe buffer still terminates."""
        pipe = MonitoredPipe(FailingWriter(), chunk_size=1024)
        try:
            process = subprocess.Popen(
                py(
                    "import sys\n"
                    "try:\n"
                    "    sys.stdout.write('y' * 1000000)\n"
                    "    sys.stdout.flush()\n"
                    "except BrokenPipeError:\n"
                    "    sys.exit(0)\n"
                ),
                stdout=pipe.fileno(),
                stderr=subprocess.DEVNULL,
            )
            pipe.release_write_end()
            process.wait(timeout=5)
        finally:
            pipe.close()
        assert isinstance(pipe.exception, OSError)

    def test_destination_close_failure_captured(self):
        """A destination failing to close is reported through exception."""
        from process_executer.destinations import NullDestination

        class BadClose(NullDestination):
            def close(self):
                raise OSError("cannot close")

        pipe = MonitoredPipe(BadClose())
        pipe.close()
        assert isinstance(pipe.exception, OSError)


# =============================================================================
# Registry
# =============================================================================


class TestOpenInstances:
    """Test the open-instance registry."""

    def test_registered_until_closed(self):
        pipe = MonitoredPipe()
        assert pipe in MonitoredPipe.open_instances()
        pipe.close()
        assert pipe not in MonitoredPipe.open_instances()

    def test_concurrent_pipes(self):
        """Pipes used from several threads stay independent."""
        buffers = [io.BytesIO() for _ in range(4)]

        def use(buffer: io.BytesIO, index: int) -> None:
            with MonitoredPipe(buffer) as pipe:
                pipe.write(f"pipe {index}".encode())

        threads = [threading.Thread(target=use, args=(b, i)) for i, b in enumerate(buffers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert [b.getvalue() for b in buffers] == [f"pipe {i}".encode() for i in range(4)]
