"""Readiness loop: sleep until a signal, drain the socket, repeat."""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Callable, Optional

from .activity import ActivityLog, log_line
from .errors import FatalIOError
from .receive import NO_DATA, PEER_CLOSED
from .signals import ReadinessState, SignalBridge


class LoopPhase(enum.Enum):
    WAITING = "waiting"
    DRAINING = "draining"
    TERMINATED = "terminated"


@dataclass
class LoopPolicy:
    single_shot: bool = False


class ReadinessLoop:
    """Drive attempt/handle cycles off a ReadinessState.

    ``attempt`` returns an outcome or NO_DATA and never blocks;
    PEER_CLOSED ends the loop.
    ``handle`` receives every outcome; returning False stops the loop.
    ``wait`` is the only place the process is suspended.
    """

    def __init__(
        self,
        state: ReadinessState,
        wait: Callable[[], Any],
        attempt: Callable[[], Any],
        handle: Callable[[Any], Optional[bool]],
        policy: Optional[LoopPolicy] = None,
        log: Optional[ActivityLog] = None,
    ) -> None:
        self.state = state
        self.wait = wait
        self.attempt = attempt
        self.handle = handle
        self.policy = policy or LoopPolicy()
        self.log = log
        self.phase = LoopPhase.WAITING
        self.waits = 0
        self.attempts = 0
        self.handled = 0

    def run(self) -> int:
        try:
            while not self.state.terminate:
                if self.state.pending_io == 0:
                    self.phase = LoopPhase.WAITING
                    self.waits += 1
                    self.wait()
                    continue

                self.phase = LoopPhase.DRAINING
                self.attempts += 1
                try:
                    outcome = self.attempt()
                except FatalIOError as exc:
                    log_line(self.log, f"Readiness loop stopped by a fatal error: {exc}", level="ERROR")
                    self.state.request_termination()
                    raise

                if outcome is NO_DATA:
                    self.state.consume()
                    self.phase = LoopPhase.WAITING
                    continue
                if outcome is PEER_CLOSED:
                    log_line(self.log, "Peer closed the connection, stopping the readiness loop.")
                    self.state.request_termination()
                    continue

                # an outcome already pulled off the socket is handled even if
                # termination was requested during the attempt
                self.handled += 1
                if self.handle(outcome) is False or self.policy.single_shot:
                    self.state.request_termination()
        finally:
            self.phase = LoopPhase.TERMINATED
        log_line(self.log, f"Readiness loop finished after {self.handled} message(s).")
        return self.handled


def serve(
    endpoint,
    attempt: Callable[[], Any],
    handle: Callable[[Any], Optional[bool]],
    single_shot: bool = False,
    bridge: Optional[SignalBridge] = None,
) -> int:
    """Install signal driven I/O on the endpoint and run the loop until terminated."""
    bridge = bridge or SignalBridge(log=endpoint.log)
    with bridge:
        state = bridge.install(endpoint)
        # data queued before O_ASYNC was set raised no SIGIO
        state.notify_io()
        loop = ReadinessLoop(state, bridge.wait, attempt, handle, LoopPolicy(single_shot), endpoint.log)
        return loop.run()
