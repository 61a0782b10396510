"""
TCP sender — connects to a receiver and streams an ordered list of files.

Every file is stat'ed before the connection is opened, so a missing source
fails the invocation before a single byte reaches the receiver.  Paths go
over the wire exactly as given.
"""

import contextlib
import logging
import os
import socket
import threading

from .config import CONNECT_TIMEOUT
from .errors import LocalIOError, TransferConnectionError, TransferError
from .prefix import common_prefix
from .protocol import FrameWriter, ProgressCallback, TransferSummary

logger = logging.getLogger(__name__)

SIZE_UNITS = ("B", "KB", "MB", "GB", "TB")


def _connect(host: str, port: int, timeout: float = CONNECT_TIMEOUT) -> socket.socket:
    """Open a TCP connection to the receiver."""
    try:
        sock = socket.create_connection((host, port), timeout=timeout)
    except OSError as e:
        raise TransferConnectionError(f"cannot connect to {host}:{port}: {e}") from e
    # Timeout only bounds the connect; the transfer itself may take long.
    sock.settimeout(None)
    return sock


def format_size(size_bytes: int | float) -> str:
    """Size with one decimal in the largest unit below 1024, up to TB."""
    size = float(size_bytes)
    for unit in SIZE_UNITS[:-1]:
        if size < 1024:
            break
        size /= 1024
    else:
        unit = SIZE_UNITS[-1]
    return f"{size:.1f} {unit}"


def _file_sizes(paths: list[str]) -> list[int]:
    sizes = []
    for path in paths:
        try:
            sizes.append(os.path.getsize(path))
        except OSError as e:
            raise LocalIOError(path, e) from e
    return sizes


def _write_session(
    writer: FrameWriter,
    paths: list[str],
    sizes: list[int],
    hint: str,
    progress_callback: ProgressCallback | None,
    cancel_event: threading.Event | None,
) -> TransferSummary:
    summary = TransferSummary()
    writer.write_preamble(hint)

    for path, size in zip(paths, sizes):
        logger.info("sending %s (%d bytes)", path, size)
        try:
            f = open(path, "rb")
        except OSError as e:
            raise LocalIOError(path, e) from e
        with f:
            progress = None
            if progress_callback:
                progress_callback(path, 0, size)
                progress = lambda current, total, p=path: progress_callback(p, current, total)
            writer.write_entry(path, size, f, progress, cancel_event)

        summary.files.append(path)
        summary.total_bytes += size

    writer.write_end()
    return summary


def send_files(
    addr: tuple[str, int],
    ordered_paths: list[str],
    progress_callback: ProgressCallback | None = None,
    connect_timeout: float = CONNECT_TIMEOUT,
    cancel_event: threading.Event | None = None,
) -> TransferSummary:
    """
    Send *ordered_paths* to the receiver at *addr* in one session.

    Returns a TransferSummary.
    Raises LocalIOError if a source file cannot be read, and
    TransferConnectionError if the connection fails or drops.
    progress_callback: optional callable(path, current_bytes, total_bytes)
    cancel_event: optional threading.Event to stop the transfer
    """
    paths = list(ordered_paths)
    sizes = _file_sizes(paths)
    hint = common_prefix(paths)

    host, port = addr[0], addr[1]
    logger.info("connecting to %s:%d", host, port)
    sock = _connect(host, port, timeout=connect_timeout)

    try:
        with sock:
            stream = sock.makefile("wb")
            try:
                summary = _write_session(
                    FrameWriter(stream), paths, sizes, hint, progress_callback, cancel_event
                )
            except TransferError:
                # The session already failed; a failing flush must not hide why.
                with contextlib.suppress(OSError):
                    stream.close()
                raise
            stream.close()
    except TransferError:
        raise
    except OSError as e:
        raise TransferConnectionError(f"send failed: {e}") from e

    logger.info("sent %d file(s), %d bytes", len(summary.files), summary.total_bytes)
    return summary
