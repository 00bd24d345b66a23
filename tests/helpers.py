import os
import signal
import socket
from collections import deque

import pytest

from sigionet.timeservice import LocalClock

requires_sigio = pytest.mark.skipif(
    not hasattr(signal, "SIGIO") or not hasattr(os, "O_ASYNC"),
    reason="signal driven I/O needs SIGIO and O_ASYNC",
)


class FixedClock(LocalClock):
    source = "Test"

    def timestamp_for_log(self):
        return "Mon, 19 Oct 2026, 08:00:00.000000", self.source


class ScriptedSocket:
    """Datagram socket double replaying a script of recvfrom results.

    Each entry is bytes (delivered from ``sender``), an exception instance
    to raise, or None for "would block".
    """

    type = socket.SOCK_DGRAM
    family = socket.AF_INET

    def __init__(self, script, sender=("127.0.0.1", 9100)):
        self.script = deque(script)
        self.sender = sender
        self.sizes = []
        self.closed = 0

    def recvfrom(self, size):
        self.sizes.append(size)
        if not self.script:
            raise BlockingIOError
        item = self.script.popleft()
        if item is None:
            raise BlockingIOError
        if isinstance(item, BaseException):
            raise item
        return item[:size], self.sender

    @property
    def calls(self):
        return len(self.sizes)

    def fileno(self):
        return -1 if self.closed else 99

    def close(self):
        self.closed += 1
