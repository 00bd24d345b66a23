import os
import signal
import socket
import threading

import pytest

from .helpers import FixedClock


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def log_path(tmp_path):
    return tmp_path / "activity.log"


@pytest.fixture
def free_port():
    def pick(sock_type=socket.SOCK_DGRAM, preferred=0):
        """Return ``preferred`` when it can be bound, any free port otherwise."""
        with socket.socket(socket.AF_INET, sock_type) as candidate:
            try:
                candidate.bind(("127.0.0.1", preferred))
            except OSError:
                candidate.bind(("127.0.0.1", 0))
            return candidate.getsockname()[1]

    return pick


@pytest.fixture
def watchdog():
    """Send SIGTERM to ourselves if a signal driven loop is still running after the deadline.

    Only arm it while a bridge has SIGTERM routed to its state.
    """
    cancelled = threading.Event()

    def arm(seconds=10.0):
        def fire():
            if not cancelled.wait(seconds):
                os.kill(os.getpid(), signal.SIGTERM)

        threading.Thread(target=fire, daemon=True).start()

    yield arm
    cancelled.set()


@pytest.fixture
def udp_receiver():
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    yield sock
    sock.close()
