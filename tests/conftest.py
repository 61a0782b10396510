"""Shared pytest fixtures for all tests."""

import socket
import threading

import pytest

from sendfiles.server import Receiver


@pytest.fixture
def free_udp_port():
    """A UDP port that was free a moment ago."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return port


class ReceiverThread:
    """Runs Receiver.serve() in the background and keeps its outcome."""

    def __init__(self, receiver: Receiver):
        self.receiver = receiver
        self.summary = None
        self.error = None
        self.address = receiver.address
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _run(self):
        try:
            with self.receiver:
                self.summary = self.receiver.serve()
        except Exception as e:
            self.error = e

    def join(self, timeout: float = 10):
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "receiver did not finish"
        return self


@pytest.fixture
def start_receiver_thread(tmp_path):
    """
    Start a loopback receiver writing into tmp_path/"out".

    Returns:
        Factory taking Receiver keyword options and returning a ReceiverThread
    """
    started = []

    def start(**options):
        options.setdefault("dest_dir", str(tmp_path / "out"))
        options.setdefault("broadcast", False)
        options.setdefault("accept_timeout", 10)
        receiver = Receiver(("127.0.0.1", 0), **options)
        thread = ReceiverThread(receiver)
        started.append(thread)
        return thread

    yield start

    for thread in started:
        thread.receiver.abort()
