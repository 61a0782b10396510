"""
Errors raised by the transfer core.

Every failure that ends an invocation derives from TransferError so the
command-line layer can report it and exit non-zero with a single handler.
"""

import builtins


class TransferError(Exception):
    pass


class DiscoveryTimeout(TransferError):
    """No valid announcement arrived before the deadline."""


class TransferConnectionError(TransferError, builtins.ConnectionError):
    """TCP connect, accept, read or write failed."""


class FramingError(TransferError):
    """The byte stream does not follow the frame layout."""


class TruncatedFrame(FramingError, TransferConnectionError):
    """The stream ended in the middle of a session.

    A short read always means the peer went away, so this is both a
    framing error and a connection error.
    """

    def __init__(self, field: str, expected: int, received: int):
        super().__init__(
            f"connection ended while reading {field}: "
            f"got {received} of {expected} bytes"
        )
        self.field = field
        self.expected = expected
        self.received = received


class LocalIOError(TransferError):
    """A source file could not be read or a destination could not be written."""

    def __init__(self, path: str, error: OSError):
        super().__init__(f"{path}: {error.strerror or error}")
        self.path = path
        self.error = error


class TransferCancelled(TransferError):
    """The transfer was stopped through its cancel event."""
