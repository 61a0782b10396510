"""
Tests for client.py — sender-side validation, size formatting and error classification.
"""

import io

import pytest

from sendfiles import client
from sendfiles.client import _file_sizes, format_size, send_files
from sendfiles.errors import LocalIOError, TransferConnectionError
from sendfiles.protocol import decode_entries


class FlushFailsOnClose(io.BytesIO):
    """Buffers writes, then fails the final flush like a reset peer."""

    def close(self):
        if not self.closed:
            super().close()
            raise BrokenPipeError(32, "Broken pipe")


class KeepOpen(io.BytesIO):
    def close(self):
        pass


class FakeSocket:
    def __init__(self, stream):
        self.stream = stream
        self.closed = False

    def makefile(self, mode):
        return self.stream

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True


def connect_to(stream, monkeypatch):
    sock = FakeSocket(stream)
    monkeypatch.setattr(client, "_connect", lambda host, port, timeout: sock)
    return sock


class TestFormatSize:
    def test_units_step_at_1024(self):
        assert format_size(1023) == "1023.0 B"
        assert format_size(1024) == "1.0 KB"
        assert format_size(5 * 1024**3 // 2) == "2.5 GB"

    def test_largest_unit_is_terabytes(self):
        assert format_size(2048 * 1024**4) == "2048.0 TB"


class TestSourceFiles:
    def test_sizes_in_order(self, tmp_path):
        (tmp_path / "a").write_bytes(b"123")
        (tmp_path / "b").write_bytes(b"")
        assert _file_sizes([str(tmp_path / "a"), str(tmp_path / "b")]) == [3, 0]

    def test_missing_file_names_the_path(self, tmp_path):
        missing = str(tmp_path / "nope.txt")
        with pytest.raises(LocalIOError) as excinfo:
            _file_sizes([missing])
        assert excinfo.value.path == missing

    def test_missing_file_fails_before_connecting(self, tmp_path, monkeypatch):
        def no_connect(*args, **kwargs):
            raise AssertionError("connected despite a missing source file")

        monkeypatch.setattr("sendfiles.client._connect", no_connect)
        with pytest.raises(LocalIOError):
            send_files(("127.0.0.1", 1), [str(tmp_path / "nope.txt")])


class TestSendFiles:
    def test_session_is_written_and_socket_closed(self, tmp_path, monkeypatch):
        (tmp_path / "a.txt").write_bytes(b"abc")
        stream = KeepOpen()
        sock = connect_to(stream, monkeypatch)

        summary = send_files(("127.0.0.1", 1), [str(tmp_path / "a.txt")])

        assert sock.closed
        assert summary.total_bytes == 3
        _, entries = decode_entries(io.BytesIO(stream.getvalue()))
        assert [(e.path, e.content.read()) for e in entries] == [
            (str(tmp_path / "a.txt"), b"abc")
        ]

    def test_source_error_survives_failing_close(self, tmp_path, monkeypatch):
        # The file shrank after it was stat'ed, then the peer went away.
        (tmp_path / "shrunk.bin").write_bytes(b"abc")
        monkeypatch.setattr(client, "_file_sizes", lambda paths: [10])
        stream = FlushFailsOnClose()
        sock = connect_to(stream, monkeypatch)

        with pytest.raises(LocalIOError, match="file ended after 3 of 10 bytes"):
            send_files(("127.0.0.1", 1), [str(tmp_path / "shrunk.bin")])

        assert sock.closed
        assert stream.closed

    def test_failing_close_after_session_is_connection_error(self, tmp_path, monkeypatch):
        (tmp_path / "a.txt").write_bytes(b"abc")
        stream = FlushFailsOnClose()
        sock = connect_to(stream, monkeypatch)

        with pytest.raises(TransferConnectionError, match="send failed"):
            send_files(("127.0.0.1", 1), [str(tmp_path / "a.txt")])

        assert sock.closed
