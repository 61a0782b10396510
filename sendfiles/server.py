"""
TCP receiver — accepts a single sender and writes the files it streams.

The receiver binds, optionally starts a discovery broadcaster, and blocks in
accept().  As soon as a sender connects the broadcaster is stopped and the
listening socket is closed, so a second sender is refused instead of being
interleaved with the first.

Entries are written strictly in arrival order.  Any error ends the session:
files completed before it stay on disk and nothing is rolled back.
"""

import ipaddress
import logging
import os
import socket
import threading

from typing_extensions import Callable

from .config import DISCOVERY_PORT, PORT
from .discovery import Broadcaster
from .errors import LocalIOError, TransferCancelled, TransferConnectionError
from .prefix import strip_prefix as strip_path_prefix
from .protocol import FrameReader, ProgressCallback, TransferSummary

logger = logging.getLogger(__name__)


def _socket_family(host: str) -> int:
    try:
        if ipaddress.ip_address(host).version == 6:
            return socket.AF_INET6
    except ValueError:
        pass
    return socket.AF_INET


class Receiver:
    """One-shot TCP receiver for a single transfer session."""

    def __init__(
        self,
        bind_addr: tuple[str, int] = ("0.0.0.0", PORT),
        strip_prefix: bool = False,
        broadcast: bool = True,
        dest_dir: str | None = None,
        progress_callback: ProgressCallback | None = None,
        broadcast_targets: list[str] | None = None,
        discovery_port: int = DISCOVERY_PORT,
        accept_timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ):
        host, port = bind_addr
        self.bind_addr = (host or "0.0.0.0", port)
        self.strip_prefix = strip_prefix
        self.broadcast = broadcast
        self.dest_dir = dest_dir
        self.progress_callback = progress_callback
        self.broadcast_targets = broadcast_targets
        self.discovery_port = discovery_port
        self.accept_timeout = accept_timeout
        self.cancel_event = cancel_event or threading.Event()
        self.peer: tuple | None = None
        self._address: tuple[str, int] | None = None
        self._sock: socket.socket | None = None
        self._conn: socket.socket | None = None
        self._broadcaster: Broadcaster | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def __enter__(self) -> "Receiver":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def address(self) -> tuple[str, int]:
        """The bound (host, port); binds first if needed."""
        if self._address is None:
            self.bind()
        return self._address

    def bind(self) -> None:
        sock = socket.socket(_socket_family(self.bind_addr[0]), socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind(self.bind_addr)
            # Backlog of one: this receiver serves a single sender.
            sock.listen(1)
        except OSError as e:
            sock.close()
            raise TransferConnectionError(
                f"cannot listen on {self.bind_addr[0]}:{self.bind_addr[1]}: {e}"
            ) from e
        self._sock = sock
        self._address = sock.getsockname()[:2]

    def close(self) -> None:
        self._stop_broadcast()
        sock, self._sock = self._sock, None
        conn, self._conn = self._conn, None
        for s in (sock, conn):
            if s is None:
                continue
            try:
                # shutdown() wakes a thread blocked in accept() or recv().
                s.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            s.close()

    def abort(self) -> None:
        """Stop waiting or receiving; may be called from another thread."""
        self.cancel_event.set()
        self.close()

    def _stop_broadcast(self) -> None:
        broadcaster, self._broadcaster = self._broadcaster, None
        if broadcaster:
            broadcaster.stop()

    # ------------------------------------------------------------------
    # Accept + serve
    # ------------------------------------------------------------------

    def serve(self) -> TransferSummary:
        """Wait for a sender, receive its files and return a summary."""
        if self._sock is None:
            self.bind()
        address = self._address

        if self.broadcast:
            broadcaster = Broadcaster(
                address, targets=self.broadcast_targets, port=self.discovery_port
            )
            try:
                broadcaster.start()
                self._broadcaster = broadcaster
            except OSError as e:
                # Direct-IP senders can still connect.
                logger.warning("cannot broadcast, direct ip must be used: %s", e)

        conn = self._conn = self._accept()
        try:
            with conn.makefile("rb") as stream:
                return self.receive_session(stream)
        except TransferConnectionError as e:
            if self.cancel_event.is_set():
                raise TransferCancelled("stopped while receiving") from e
            raise
        finally:
            self._conn = None
            conn.close()

    def _accept(self) -> socket.socket:
        sock = self._sock
        if sock is None or self.cancel_event.is_set():
            raise TransferCancelled("stopped before a sender connected")
        sock.settimeout(self.accept_timeout)
        try:
            conn, self.peer = sock.accept()
        except socket.timeout as e:
            raise TransferConnectionError("no sender connected in time") from e
        except OSError as e:
            if self.cancel_event.is_set():
                raise TransferCancelled("stopped while waiting for a sender") from e
            raise TransferConnectionError(f"accept failed: {e}") from e
        finally:
            self._stop_broadcast()
            self._sock = None
            sock.close()

        conn.settimeout(None)
        logger.info("sender connected from %s:%d", self.peer[0], self.peer[1])
        return conn

    # ------------------------------------------------------------------
    # Session handling
    # ------------------------------------------------------------------

    def receive_session(self, stream) -> TransferSummary:
        """Read a whole session from *stream* and write each file."""
        reader = FrameReader(stream)
        hint = reader.read_preamble()
        prefix = hint if self.strip_prefix else ""
        if prefix:
            logger.info("stripping common prefix %r", prefix)

        summary = TransferSummary()
        created_dirs: set[str] = set()

        while True:
            header = reader.next_entry()
            if header is None:
                break

            path = strip_path_prefix(header.path, prefix)
            if self.dest_dir:
                path = os.path.join(self.dest_dir, path)
            logger.info("receiving %s (%d bytes)", path, header.size)

            parent = os.path.dirname(path)
            if parent and parent not in created_dirs:
                try:
                    os.makedirs(parent, exist_ok=True)
                except OSError as e:
                    raise LocalIOError(parent, e) from e
                created_dirs.add(parent)

            try:
                f = open(path, "wb")
            except OSError as e:
                raise LocalIOError(path, e) from e
            with f:
                progress = self._progress_for(path)
                if progress:
                    progress(0, header.size)
                reader.read_content(f, progress, self.cancel_event)

            summary.files.append(path)
            summary.total_bytes += header.size

        logger.info(
            "received %d file(s), %d bytes", len(summary.files), summary.total_bytes
        )
        return summary

    def _progress_for(self, path: str) -> Callable[[int, int], None] | None:
        if self.progress_callback is None:
            return None
        callback = self.progress_callback
        return lambda current, total: callback(path, current, total)


def start_receiver(
    bind_addr: tuple[str, int] = ("0.0.0.0", PORT),
    strip_prefix: bool = False,
    broadcast: bool = True,
    **options,
) -> TransferSummary:
    """Receive one session.  Extra keyword options go to Receiver."""
    with Receiver(bind_addr, strip_prefix=strip_prefix, broadcast=broadcast, **options) as receiver:
        return receiver.serve()
