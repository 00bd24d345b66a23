"""Local and remote communication parties."""
from __future__ import annotations

import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .activity import ActivityLog, log_line, open_log, report
from .errors import ConfigurationError, FatalIOError
from .hostinfo import HostInfo, discover_host_info

NO_SOCKET = -1


@dataclass
class SocketSettings:
    timeout: float = 0.0
    recv_buffer: int = 0
    send_buffer: int = 0
    nonblocking: bool = False

    def apply(self, sock: socket.socket, *, allow_nonblocking: bool = True) -> None:
        if self.recv_buffer > 0:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, self.recv_buffer)
        if self.send_buffer > 0:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, self.send_buffer)
        if allow_nonblocking and self.nonblocking:
            sock.setblocking(False)
        elif self.timeout > 0:
            sock.settimeout(self.timeout)
        else:
            # None resets to system default blocking behaviour
            sock.settimeout(None)

    def describe(self) -> str:
        return (
            f"timeout={self.timeout}s, recv_buffer={self.recv_buffer} bytes, "
            f"send_buffer={self.send_buffer} bytes, nonblocking={self.nonblocking}"
        )


@dataclass
class Endpoint:
    """A party of a conversation.

    Local endpoints own their socket and activity log. Remote endpoints
    only carry addressing information, except for connections handed out
    by accept(), whose socket they own so it can be closed with them.
    """

    family: int = socket.AF_INET
    sock_type: int = socket.SOCK_DGRAM
    port: int = 0
    ip: str = ""
    hostname: str = ""
    local_ips: List[str] = field(default_factory=list)
    public_ip: str = ""
    log: Optional[ActivityLog] = None
    sock: Optional[socket.socket] = None

    @property
    def fd(self) -> int:
        if self.sock is None:
            return NO_SOCKET
        return self.sock.fileno()

    @property
    def is_open(self) -> bool:
        return self.fd != NO_SOCKET

    @property
    def local_ip(self) -> str:
        return self.local_ips[0] if self.local_ips else ""

    @property
    def address(self) -> Tuple[str, int]:
        return self.ip, self.port

    def describe(self) -> str:
        return f"Hostname: {self.hostname}; IP: {self.public_ip or self.local_ip}; Port: {self.port}"

    def close(self) -> None:
        """Release the socket and log; safe to call any number of times."""
        log_line(self.log, "Closing host...")
        try:
            if self.sock is not None:
                sock, self.sock = self.sock, None
                try:
                    sock.close()
                except OSError as exc:
                    log_line(self.log, f"Error closing the host socket: {exc}", level="ERROR")
                    raise FatalIOError(f"could not close the host socket: {exc}") from exc
        finally:
            if self.log is not None:
                self.log.close()
            self.family = socket.AF_INET
            self.sock_type = socket.SOCK_DGRAM
            self.port = 0
            self.ip = ""
            self.hostname = ""
            self.local_ips = []
            self.public_ip = ""
            self.log = None

    def __enter__(self) -> "Endpoint":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def validate_ip(ip: str, family: int = socket.AF_INET) -> str:
    try:
        socket.inet_pton(family, ip)
    except (OSError, TypeError) as exc:
        raise ConfigurationError(f"The given IP ({ip}) is not valid") from exc
    return ip


def create_local_endpoint(
    sock_type: int,
    port: int,
    log_path: Optional[Union[str, Path]] = None,
    *,
    backlog: Optional[int] = None,
    settings: Optional[SocketSettings] = None,
    clock=None,
    lookup_public: bool = True,
    bind_host: str = "",
    family: int = socket.AF_INET,
) -> Endpoint:
    """Open, bind and (for listening stream sockets) listen on a local endpoint."""
    log = open_log(log_path, clock=clock)
    log_line(log, "Initialising host...")

    info: HostInfo = discover_host_info(lookup_public=lookup_public, log=log)
    endpoint = Endpoint(
        family=family,
        sock_type=sock_type,
        port=port,
        hostname=info.hostname,
        local_ips=info.local_ips,
        public_ip=info.public_ip,
        log=log,
    )

    try:
        sock = socket.socket(family, sock_type)
    except OSError as exc:
        log_line(log, f"Error creating the host socket: {exc}", level="ERROR")
        endpoint.close()
        raise FatalIOError(f"could not create the socket: {exc}") from exc
    endpoint.sock = sock

    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        if settings is not None:
            settings.apply(sock)
        sock.bind((bind_host, port))
        endpoint.port = sock.getsockname()[1]
    except OSError as exc:
        log_line(log, f"Error binding the host socket to port {port}: {exc}", level="ERROR")
        endpoint.close()
        raise FatalIOError(f"could not bind port {port}: {exc}") from exc

    if sock_type == socket.SOCK_STREAM and backlog is not None:
        try:
            sock.listen(backlog)
        except OSError as exc:
            log_line(log, f"Error marking the host socket as passive: {exc}", level="ERROR")
            endpoint.close()
            raise FatalIOError(f"could not listen on port {port}: {exc}") from exc

    report(log, f"Host created successfully. {endpoint.describe()}")
    return endpoint


def create_remote_endpoint(sock_type: int, ip: str, port: int, family: int = socket.AF_INET) -> Endpoint:
    return Endpoint(family=family, sock_type=sock_type, port=port, ip=validate_ip(ip, family))
