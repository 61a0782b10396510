"""
sendfiles - send files in LAN quickly

Streams a set of files to a receiver on the local network, optionally
finding it through UDP broadcast discovery.
"""

__version__ = "0.4.0"

from .client import format_size, send_files
from .config import (
    BROADCAST_INTERVAL,
    BUFFER_SIZE,
    DISCOVERY_PORT,
    DISCOVERY_TIMEOUT,
    PORT,
)
from .discovery import Broadcaster, resolve_via_discovery
from .errors import (
    DiscoveryTimeout,
    FramingError,
    LocalIOError,
    TransferCancelled,
    TransferConnectionError,
    TransferError,
    TruncatedFrame,
)
from .prefix import common_prefix, strip_prefix
from .protocol import (
    FileEntry,
    FrameReader,
    FrameWriter,
    TransferSummary,
    decode_entries,
    encode_entries,
)
from .server import Receiver, start_receiver

__all__ = [
    "PORT",
    "DISCOVERY_PORT",
    "BUFFER_SIZE",
    "BROADCAST_INTERVAL",
    "DISCOVERY_TIMEOUT",
    "Broadcaster",
    "resolve_via_discovery",
    "Receiver",
    "start_receiver",
    "send_files",
    "format_size",
    "common_prefix",
    "strip_prefix",
    "FileEntry",
    "FrameReader",
    "FrameWriter",
    "TransferSummary",
    "encode_entries",
    "decode_entries",
    "TransferError",
    "DiscoveryTimeout",
    "TransferConnectionError",
    "FramingError",
    "TruncatedFrame",
    "LocalIOError",
    "TransferCancelled",
]
