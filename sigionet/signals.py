"""Bridge between asynchronous OS signals and the single-threaded readiness loop.

The kernel is asked to send SIGIO whenever the endpoint's socket becomes
readable (a datagram or a pending connection). The handlers only bump the
counters of a ReadinessState; everything else happens in the loop.
"""
from __future__ import annotations

import fcntl
import os
import select
import signal
import socket
from typing import Dict, Optional

from .activity import ActivityLog, log_line
from .errors import FatalIOError

# legacy 8-bit counter width
MAX_PENDING = 255

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class ReadinessState:
    """Pending I/O counter and termination flag written from signal handlers.

    pending_io over-counts when signals coalesce or queue; treat a positive
    value as "one more receive attempt is worth making".
    """

    def __init__(self) -> None:
        self.pending_io = 0
        self.terminate = False

    def notify_io(self) -> None:
        if self.pending_io < MAX_PENDING:
            self.pending_io += 1

    def consume(self) -> None:
        if self.pending_io > 0:
            self.pending_io -= 1

    def request_termination(self) -> None:
        self.terminate = True

    def __repr__(self) -> str:
        return f"ReadinessState(pending_io={self.pending_io}, terminate={self.terminate})"


class SignalBridge:
    def __init__(self, state: Optional[ReadinessState] = None, log: Optional[ActivityLog] = None) -> None:
        self.state = state or ReadinessState()
        self.log = log
        self._previous: Dict[int, object] = {}
        self._previous_wakeup_fd: Optional[int] = None
        self._wakeup_set = False
        self._wakeup_r: Optional[socket.socket] = None
        self._wakeup_w: Optional[socket.socket] = None

    @property
    def installed(self) -> bool:
        return self._wakeup_r is not None

    def _handle(self, signum, frame) -> None:
        if signum == signal.SIGIO:
            self.state.notify_io()
        elif signum in TERMINATION_SIGNALS:
            self.state.request_termination()

    def _fail(self, what: str, exc: BaseException) -> None:
        log_line(self.log, f"Error configuring {what}: {exc}", level="ERROR")
        self.close()
        raise FatalIOError(f"could not configure {what}: {exc}") from exc

    def install(self, endpoint) -> ReadinessState:
        """Route readiness notifications of the endpoint's socket to this bridge.

        Must be called from the main thread.
        """
        if endpoint.sock is None:
            raise FatalIOError("cannot install signal delivery on a closed endpoint")

        try:
            self._wakeup_r, self._wakeup_w = socket.socketpair()
            self._wakeup_r.setblocking(False)
            self._wakeup_w.setblocking(False)
            self._previous_wakeup_fd = signal.set_wakeup_fd(self._wakeup_w.fileno(), warn_on_full_buffer=False)
            self._wakeup_set = True
        except (OSError, ValueError) as exc:
            self._fail("the signal wakeup channel", exc)

        # handlers go in before O_ASYNC: SIGIO's default action kills the process
        for signum in (signal.SIGIO,) + TERMINATION_SIGNALS:
            try:
                self._previous[signum] = signal.signal(signum, self._handle)
            except (OSError, ValueError) as exc:
                self._fail(f"the handler for {signal.Signals(signum).name}", exc)

        fd = endpoint.sock.fileno()
        try:
            endpoint.sock.setblocking(False)
            flags = fcntl.fcntl(fd, fcntl.F_GETFL)
            fcntl.fcntl(fd, fcntl.F_SETFL, flags | os.O_ASYNC | os.O_NONBLOCK)
        except OSError as exc:
            self._fail("SIGIO delivery on the socket", exc)
        try:
            fcntl.fcntl(fd, fcntl.F_SETOWN, os.getpid())
        except OSError as exc:
            self._fail("the owner of the socket signals", exc)

        log_line(self.log, f"Signal driven I/O configured on port {endpoint.port}.")
        return self.state

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Suspend until any signal arrives; return False on timeout.

        Signals delivered after the caller checked the state but before this
        call still leave a byte in the wakeup channel, so none are missed.
        """
        if self._wakeup_r is None:
            signal.pause()
            return True
        readable, _, _ = select.select([self._wakeup_r], [], [], timeout)
        if not readable:
            return False
        while True:
            try:
                if not self._wakeup_r.recv(64):
                    break
            except BlockingIOError:
                break
        return True

    def close(self) -> None:
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        if self._wakeup_set:
            signal.set_wakeup_fd(self._previous_wakeup_fd if self._previous_wakeup_fd is not None else -1)
            self._wakeup_set = False
            self._previous_wakeup_fd = None
        for sock in (self._wakeup_r, self._wakeup_w):
            if sock is not None:
                sock.close()
        self._wakeup_r = self._wakeup_w = None

    def __enter__(self) -> "SignalBridge":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
