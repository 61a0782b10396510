"""
Frame protocol for a transfer session.

A session is a preamble followed by one record per file and an end marker.
All integers are big-endian.

    preamble: [ "sf-" ][ 1 byte: version ][ 4 bytes: hint length ][ hint ]
    record:   [ 4 bytes: path length ][ path ][ 8 bytes: size ][ size bytes ]
    end:      [ 4 bytes: 0xFFFFFFFF ]

The hint is the sender's common path prefix (whole components only), used
by receivers that strip it.  Paths are opaque: they are encoded exactly as
given, with surrogateescape so undecodable filesystem names survive.

The reader and writer only need ``read(n)`` / ``write(data)``, so sockets are
wrapped with ``socket.makefile`` and tests use ``io.BytesIO``.
"""

import io
import struct
import threading
from dataclasses import dataclass, field
from typing import BinaryIO, Iterable

from typing_extensions import Callable

from .config import BUFFER_SIZE, PROTOCOL_VERSION, STREAM_MAGIC
from .errors import (
    FramingError,
    LocalIOError,
    TransferCancelled,
    TransferConnectionError,
    TruncatedFrame,
)

_U8 = struct.Struct("!B")
_U32 = struct.Struct("!I")
_U64 = struct.Struct("!Q")

# Path-length value that marks the end of the session.
END_OF_STREAM = 0xFFFFFFFF

# Largest path or hint accepted from the wire.  A 64 KB cap stops a bogus
# length prefix from allocating gigabytes before the first byte arrives.
MAX_PATH_SIZE = 64 * 1024

PATH_ENCODING = "utf-8"
PATH_ERRORS = "surrogateescape"


# Called as progress_callback(path, bytes_done, file_size) when a file starts
# and after every chunk.
ProgressCallback = Callable[[str, int, int], None]


@dataclass
class TransferSummary:
    """Paths handled in one session and the number of content bytes moved."""

    files: list[str] = field(default_factory=list)
    total_bytes: int = 0


@dataclass
class EntryHeader:
    path: str
    size: int


@dataclass
class FileEntry:
    """A file in transit: its path, declared size and a readable content stream."""

    path: str
    size: int
    content: BinaryIO


def encode_path(path: str) -> bytes:
    data = path.encode(PATH_ENCODING, PATH_ERRORS)
    if len(data) > MAX_PATH_SIZE:
        raise FramingError(f"path too long: {len(data)} bytes (max {MAX_PATH_SIZE})")
    return data


def decode_path(data: bytes) -> str:
    return data.decode(PATH_ENCODING, PATH_ERRORS)


def _stream_name(stream, default: str) -> str:
    name = getattr(stream, "name", None)
    return name if isinstance(name, str) else default


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------


class FrameWriter:
    """Serializes a session onto a writable binary stream."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream

    def _write(self, data: bytes) -> None:
        try:
            self._stream.write(data)
        except OSError as e:
            raise TransferConnectionError(f"send failed: {e}") from e

    def flush(self) -> None:
        try:
            self._stream.flush()
        except OSError as e:
            raise TransferConnectionError(f"send failed: {e}") from e

    def write_preamble(self, hint: str = "") -> None:
        hint_data = encode_path(hint)
        self._write(
            STREAM_MAGIC
            + _U8.pack(PROTOCOL_VERSION)
            + _U32.pack(len(hint_data))
            + hint_data
        )

    def write_entry(
        self,
        path: str,
        size: int,
        source: BinaryIO,
        progress_callback: Callable[[int, int], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Write one record, streaming exactly *size* bytes from *source*.

        Raises LocalIOError if *source* cannot be read or holds fewer than
        *size* bytes; the record is never completed with missing content.
        """
        path_data = encode_path(path)
        self._write(_U32.pack(len(path_data)) + path_data + _U64.pack(size))

        sent = 0
        while sent < size:
            if cancel_event and cancel_event.is_set():
                raise TransferCancelled(f"cancelled while sending {path}")
            try:
                chunk = source.read(min(BUFFER_SIZE, size - sent))
            except OSError as e:
                raise LocalIOError(_stream_name(source, path), e) from e
            if not chunk:
                raise LocalIOError(
                    _stream_name(source, path),
                    OSError(f"file ended after {sent} of {size} bytes"),
                )
            self._write(chunk)
            sent += len(chunk)
            if progress_callback:
                progress_callback(sent, size)
        return sent

    def write_end(self) -> None:
        self._write(_U32.pack(END_OF_STREAM))
        self.flush()


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------


class FrameReader:
    """Pulls a session off a readable binary stream, one field at a time."""

    def __init__(self, stream: BinaryIO):
        self._stream = stream
        self._remaining = 0

    def read_preamble(self) -> str:
        """Check the session header and return the prefix hint."""
        magic = self._read_exactly(len(STREAM_MAGIC), "stream header")
        if magic != STREAM_MAGIC:
            raise FramingError(f"bad header: {magic!r}")
        (version,) = _U8.unpack(self._read_exactly(_U8.size, "protocol version"))
        if version != PROTOCOL_VERSION:
            raise FramingError(f"incompatible protocol version: {version}")
        (hint_len,) = _U32.unpack(self._read_exactly(_U32.size, "hint length"))
        if hint_len > MAX_PATH_SIZE:
            raise FramingError(f"prefix hint too long: {hint_len} bytes")
        return decode_path(self._read_exactly(hint_len, "prefix hint"))

    def next_entry(self) -> EntryHeader | None:
        """Read the next record header, or None once the end marker arrives.

        Content left unread from the previous record is skipped first.
        """
        if self._remaining:
            self.read_content(None)

        (path_len,) = _U32.unpack(self._read_exactly(_U32.size, "path length"))
        if path_len == END_OF_STREAM:
            return None
        if path_len > MAX_PATH_SIZE:
            raise FramingError(f"path too long: {path_len} bytes (max {MAX_PATH_SIZE})")
        path = decode_path(self._read_exactly(path_len, "path"))
        (size,) = _U64.unpack(self._read_exactly(_U64.size, "content length"))
        self._remaining = size
        return EntryHeader(path, size)

    def read_content(
        self,
        destination: BinaryIO | None,
        progress_callback: Callable[[int, int], None] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> int:
        """Copy the current record's content into *destination*.

        Passing None discards the content.  Returns the number of bytes
        copied, which is always the declared size; anything less raises.
        """
        total = self._remaining
        received = 0
        while received < total:
            if cancel_event and cancel_event.is_set():
                raise TransferCancelled("cancelled while receiving")
            want = min(BUFFER_SIZE, total - received)
            try:
                chunk = self._stream.read(want)
            except OSError as e:
                raise TransferConnectionError(f"receive failed: {e}") from e
            if not chunk:
                raise TruncatedFrame("content", total, received)
            if destination is not None:
                try:
                    destination.write(chunk)
                except OSError as e:
                    raise LocalIOError(_stream_name(destination, "<destination>"), e) from e
            received += len(chunk)
            self._remaining -= len(chunk)
            if progress_callback:
                progress_callback(received, total)
        return received

    def _read_exactly(self, num_bytes: int, field: str) -> bytes:
        """Read exactly *num_bytes* or raise TruncatedFrame."""
        data = bytearray()
        while len(data) < num_bytes:
            try:
                packet = self._stream.read(min(BUFFER_SIZE, num_bytes - len(data)))
            except OSError as e:
                raise TransferConnectionError(f"receive failed: {e}") from e
            if not packet:
                raise TruncatedFrame(field, num_bytes, len(data))
            data.extend(packet)
        return bytes(data)


# ---------------------------------------------------------------------------
# Whole-session helpers
# ---------------------------------------------------------------------------


def encode_entries(stream: BinaryIO, entries: Iterable[FileEntry], hint: str = "") -> None:
    """Write a complete session (preamble, every entry, end marker)."""
    writer = FrameWriter(stream)
    writer.write_preamble(hint)
    for entry in entries:
        writer.write_entry(entry.path, entry.size, entry.content)
    writer.write_end()


def decode_entries(stream: BinaryIO) -> tuple[str, list[FileEntry]]:
    """Read a complete session into memory.  Returns (hint, entries)."""
    reader = FrameReader(stream)
    hint = reader.read_preamble()
    entries = []
    while True:
        header = reader.next_entry()
        if header is None:
            return hint, entries
        content = io.BytesIO()
        reader.read_content(content)
        content.seek(0)
        entries.append(FileEntry(header.path, header.size, content))
