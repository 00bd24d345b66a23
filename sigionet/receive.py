"""Pulling one logical message out of a non-blocking socket."""
from __future__ import annotations

import socket
from dataclasses import dataclass
from typing import Optional, Tuple, Union

from .activity import ActivityLog, log_line, report
from .codec import FRAMING_MODES, LengthPrefixFraming
from .endpoint import Endpoint
from .errors import ConfigurationError, FatalIOError


class _Marker:
    """Receive outcome that carries no message."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return self.name


# nothing is available on the socket right now
NO_DATA = _Marker("NO_DATA")
# the stream peer shut down its side; further reads only return EOF
PEER_CLOSED = _Marker("PEER_CLOSED")


@dataclass
class Message:
    payload: bytes
    sender_ip: str
    sender_port: int
    attempts: int = 1

    @property
    def sender(self) -> Tuple[str, int]:
        return self.sender_ip, self.sender_port

    @property
    def text(self) -> str:
        return self.payload.split(b"\0", 1)[0].decode("utf-8", errors="replace")


def _split_address(address) -> Tuple[str, int]:
    if not address:
        return "", 0
    return address[0], address[1]


class ReceiveProtocol:
    """Receive messages of at most ``max_bytes`` per attempt.

    In ``legacy`` framing an attempt that fills the whole buffer is taken as
    a hint that the sender's message was cut, and the socket is read again
    straight away; payloads are concatenated until an attempt comes back
    short. A message of exactly ``max_bytes`` can't be told apart from a
    truncated one, so it is always followed by one extra attempt.
    ``single`` disables the continuation and ``length-prefix`` expects a
    4-byte length header in front of every payload.
    """

    def __init__(self, max_bytes: int, framing: str = "legacy", log: Optional[ActivityLog] = None) -> None:
        if max_bytes <= 0:
            raise ConfigurationError(f"max_bytes must be positive, got {max_bytes}")
        if framing not in FRAMING_MODES:
            raise ConfigurationError(f"unknown framing mode {framing!r}")
        self.max_bytes = max_bytes
        self.framing = framing
        self.log = log
        self._framer = LengthPrefixFraming()

    def _attempt(self, sock: socket.socket, size: int) -> Tuple[bytes, Tuple[str, int]]:
        if sock.type == socket.SOCK_STREAM:
            try:
                peer = sock.getpeername()
            except OSError:
                peer = None
            return sock.recv(size), _split_address(peer)
        data, address = sock.recvfrom(size)
        return data, _split_address(address)

    def _fatal(self, exc: OSError) -> FatalIOError:
        log_line(self.log, f"Error receiving the message: {exc}", level="ERROR")
        return FatalIOError(f"error receiving the message: {exc}")

    def receive(self, sock: socket.socket) -> Union[Message, _Marker]:
        size = self.max_bytes
        if self.framing == "length-prefix":
            size += self._framer.header_size

        try:
            data, (ip, port) = self._attempt(sock, size)
        except (BlockingIOError, InterruptedError):
            return NO_DATA
        except OSError as exc:
            raise self._fatal(exc) from exc

        if not data and sock.type == socket.SOCK_STREAM:
            log_line(self.log, f"Peer {ip}:{port} closed the connection.")
            return PEER_CLOSED

        log_line(self.log, f"Received {len(data)} bytes from {ip}:{port}.")
        payload = bytearray(data)
        attempts = 1

        if self.framing == "legacy":
            while len(data) == self.max_bytes:
                log_line(self.log, f"Buffer filled ({self.max_bytes} bytes); more data may be pending, reading again.")
                try:
                    data, _ = self._attempt(sock, size)
                except (BlockingIOError, InterruptedError):
                    break
                except OSError as exc:
                    raise self._fatal(exc) from exc
                attempts += 1
                payload.extend(data)
                log_line(self.log, f"Continuation brought {len(data)} more bytes ({len(payload)} in total).")
        elif self.framing == "length-prefix":
            try:
                payload = bytearray(self._framer.unframe(bytes(payload)))
            except FatalIOError as exc:
                log_line(self.log, f"Malformed frame from {ip}:{port}: {exc}", level="ERROR")
                raise

        return Message(bytes(payload), ip, port, attempts)


def accept_connection(listener: socket.socket, log: Optional[ActivityLog] = None) -> Union[Endpoint, _Marker]:
    """Accept one pending connection on a non-blocking listening socket."""
    try:
        conn, address = listener.accept()
    except (BlockingIOError, InterruptedError):
        return NO_DATA
    except OSError as exc:
        log_line(log, f"Error accepting a connection: {exc}", level="ERROR")
        raise FatalIOError(f"could not accept the connection: {exc}") from exc

    conn.setblocking(True)
    ip, port = _split_address(address)
    client = Endpoint(family=listener.family, sock_type=socket.SOCK_STREAM, port=port, ip=ip, sock=conn)
    report(log, f"Client connected from {ip}:{port}.")
    return client
