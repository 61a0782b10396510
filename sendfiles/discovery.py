"""
Receiver discovery via UDP broadcast.

A discoverable receiver periodically broadcasts an announcement on the LAN.
A sender started with the ``auto`` destination listens on the same UDP port
and connects to the first receiver it hears.

Announcement payload (31 bytes):
    [ "sf-announce" ][ 20 bytes: address ]

Address encoding:
    [ 1 byte: 4 or 6 ][ 4 or 16 bytes: IP ][ 2 bytes: port, big-endian ][ padding ]

A receiver bound to every interface announces the unspecified address
(0.0.0.0); the listener then uses the source IP of the datagram instead.
"""

import ipaddress
import logging
import socket
import struct
import threading
import time

import psutil

from .config import (
    ANNOUNCE_MAGIC,
    BROADCAST_INTERVAL,
    BROADCAST_SOURCE_PORT,
    DISCOVERY_PORT,
    DISCOVERY_TIMEOUT,
)
from .errors import DiscoveryTimeout, TransferConnectionError

logger = logging.getLogger(__name__)

ADDRESS_SIZE = 20
_PORT = struct.Struct("!H")


# ---------------------------------------------------------------------------
# Announcement codec
# ---------------------------------------------------------------------------


def encode_address(address: tuple[str, int]) -> bytes:
    host, port = address[0], address[1]
    ip = ipaddress.ip_address(host)
    data = bytes([ip.version]) + ip.packed + _PORT.pack(port)
    return data.ljust(ADDRESS_SIZE, b"\x00")


def decode_address(data: bytes) -> tuple[str, int]:
    """Inverse of encode_address.  Raises ValueError on malformed input."""
    if len(data) != ADDRESS_SIZE:
        raise ValueError(f"address must be {ADDRESS_SIZE} bytes, got {len(data)}")
    version = data[0]
    if version == 4:
        ip, rest = ipaddress.IPv4Address(data[1:5]), data[5:]
    elif version == 6:
        ip, rest = ipaddress.IPv6Address(data[1:17]), data[17:]
    else:
        raise ValueError(f"invalid address version: {version}")
    (port,) = _PORT.unpack(rest[: _PORT.size])
    return str(ip), port


def encode_announcement(address: tuple[str, int]) -> bytes:
    return ANNOUNCE_MAGIC + encode_address(address)


def parse_announcement(data: bytes) -> tuple[str, int] | None:
    """Return the announced address, or None if *data* is not an announcement."""
    if not data.startswith(ANNOUNCE_MAGIC):
        return None
    try:
        return decode_address(data[len(ANNOUNCE_MAGIC):])
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Local interfaces
# ---------------------------------------------------------------------------


def get_interface_addresses() -> list[tuple[str, str]]:
    """(address, netmask) of every IPv4 interface that is up and not loopback."""
    stats = psutil.net_if_stats()
    result = []
    for iface, addrs in psutil.net_if_addrs().items():
        if iface in stats and not stats[iface].isup:
            continue
        for addr in addrs:
            if addr.family != socket.AF_INET or not addr.netmask:
                continue
            if addr.address.startswith("127."):
                continue
            result.append((addr.address, addr.netmask))
    return result


def broadcast_address(address: str, netmask: str) -> str:
    network = ipaddress.IPv4Network(f"{address}/{netmask}", strict=False)
    return str(network.broadcast_address)


def get_broadcast_addresses() -> list[str]:
    """Subnet broadcast address of each local interface."""
    broadcasts = []
    for address, netmask in get_interface_addresses():
        target = broadcast_address(address, netmask)
        if target not in broadcasts:
            broadcasts.append(target)
    return broadcasts or ["255.255.255.255"]


# ---------------------------------------------------------------------------
# Broadcaster (receiver side)
# ---------------------------------------------------------------------------


class Broadcaster:
    """Announces a receiver's address every *interval* seconds."""

    def __init__(
        self,
        address: tuple[str, int],
        targets: list[str] | None = None,
        port: int = DISCOVERY_PORT,
        interval: float = BROADCAST_INTERVAL,
        source_port: int = BROADCAST_SOURCE_PORT,
    ):
        self.address = address
        self.targets = targets
        self.port = port
        self.interval = interval
        self.source_port = source_port
        self.sent = 0
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start the beacon loop in a daemon thread."""
        sock = self._open_socket()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._beacon_loop, args=(sock,), name="sf-broadcaster", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval + 1)
        self._thread = None

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        try:
            sock.bind(("", self.source_port))
        except OSError:
            # Another instance holds the source port; any port will do.
            try:
                sock.bind(("", 0))
            except OSError:
                sock.close()
                raise
        return sock

    def _beacon_loop(self, sock: socket.socket) -> None:
        try:
            data = encode_announcement(self.address)
            targets = self.targets or get_broadcast_addresses()
            logger.info(
                "announcing %s:%d to %s", self.address[0], self.address[1], ", ".join(targets)
            )

            while not self._stop.is_set():
                for target in targets:
                    try:
                        sock.sendto(data, (target, self.port))
                        self.sent += 1
                    except OSError as e:
                        logger.debug("announcement to %s failed: %s", target, e)
                self._stop.wait(self.interval)
        except (OSError, ValueError, psutil.Error) as e:
            logger.warning("broadcaster stopped, direct ip must be used: %s", e)
        finally:
            sock.close()


# ---------------------------------------------------------------------------
# Listener (sender side)
# ---------------------------------------------------------------------------


def resolve_via_discovery(
    timeout: float = DISCOVERY_TIMEOUT, port: int = DISCOVERY_PORT
) -> tuple[str, int]:
    """Wait for a receiver announcement and return its (host, port).

    Datagrams that are not announcements are ignored.  Raises
    DiscoveryTimeout if nothing valid arrives within *timeout* seconds.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        try:
            sock.bind(("", port))
        except OSError as e:
            raise TransferConnectionError(
                f"cannot listen for announcements on UDP port {port}: {e}"
            ) from e

        deadline = time.monotonic() + timeout
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise DiscoveryTimeout(f"no receiver announced itself within {timeout:g}s")
            sock.settimeout(remaining)
            try:
                raw, (sender_ip, _) = sock.recvfrom(1024)
            except socket.timeout:
                continue
            except OSError as e:
                raise TransferConnectionError(f"discovery failed: {e}") from e

            address = parse_announcement(raw)
            if address is None:
                logger.debug("ignoring datagram from %s", sender_ip)
                continue

            host, tcp_port = address
            if ipaddress.ip_address(host).is_unspecified:
                host = sender_ip
            logger.info("discovered receiver at %s:%d", host, tcp_port)
            return host, tcp_port
    finally:
        sock.close()
