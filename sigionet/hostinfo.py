"""Discovery of the local hostname, interface addresses and public IP."""
from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .activity import ActivityLog, log_line

PUBLIC_IP_HOST = "api.ipify.org"
PUBLIC_IP_PORT = 80
HTTP_BUFFER = 1024


@dataclass
class HostInfo:
    hostname: str = ""
    local_ips: List[str] = field(default_factory=list)
    public_ip: str = ""


def classify_address(ip: str) -> str:
    if ip.startswith("192.168."):
        return "Wi-Fi / LAN"
    if ip.startswith("10."):
        return "VPN"
    if ip.startswith("127."):
        return "Localhost"
    if ip.startswith("172."):
        return "Docker or Internal Network"
    if ":" in ip:
        return "IPv6 Interface"
    return "Unknown Interface"


def local_hostname() -> str:
    try:
        return socket.gethostname()
    except OSError:
        return ""


def local_addresses(family: int = socket.AF_INET, hostname: Optional[str] = None) -> List[Tuple[str, str]]:
    """Return (label, ip) pairs for the addresses this host answers on.

    Non-loopback addresses come first so callers can use the first entry
    as "the" local IP.
    """
    hostname = hostname if hostname is not None else local_hostname()
    try:
        addr_info = socket.getaddrinfo(hostname, None, family)
    except socket.gaierror:
        addr_info = []
    seen = set()
    found: List[Tuple[str, str]] = []
    for info in addr_info:
        ip = info[4][0]
        if ip in seen:
            continue
        seen.add(ip)
        found.append((classify_address(ip), ip))
    loopback = "127.0.0.1" if family == socket.AF_INET else "::1"
    if loopback not in seen:
        found.append((classify_address(loopback), loopback))
    found.sort(key=lambda item: item[0] == "Localhost")
    return found


def _http_body(response: bytes) -> str:
    _, sep, body = response.partition(b"\r\n\r\n")
    if not sep:
        return ""
    return body.decode("ascii", errors="ignore").strip()


def public_ip(timeout: float = 3.0) -> str:
    """Ask api.ipify.org for the address this host reaches the internet with.

    Returns an empty string on any failure.
    """
    request = (
        f"GET / HTTP/1.1\r\nHost: {PUBLIC_IP_HOST}\r\nConnection: close\r\n\r\n"
    ).encode("ascii")
    chunks = bytearray()
    try:
        with socket.create_connection((PUBLIC_IP_HOST, PUBLIC_IP_PORT), timeout=timeout) as sock:
            sock.sendall(request)
            while True:
                data = sock.recv(HTTP_BUFFER)
                if not data:
                    break
                chunks.extend(data)
    except OSError:
        return ""
    body = _http_body(bytes(chunks))
    try:
        socket.inet_pton(socket.AF_INET, body)
    except OSError:
        return ""
    return body


def discover_host_info(lookup_public: bool = True, log: Optional[ActivityLog] = None) -> HostInfo:
    info = HostInfo()
    info.hostname = local_hostname()
    if info.hostname:
        log_line(log, f"Hostname configured: {info.hostname}.")
    else:
        log_line(log, "Could not obtain the hostname.", level="WARNING")

    info.local_ips = [ip for _, ip in local_addresses(hostname=info.hostname)]
    log_line(log, f"Local IPs: {', '.join(info.local_ips)}.")

    if lookup_public:
        info.public_ip = public_ip()
        if info.public_ip:
            log_line(log, f"Public IP configured: {info.public_ip}.")
        else:
            log_line(log, "Could not obtain the public IP.", level="WARNING")
    return info


def machine_information(lookup_public: bool = True) -> HostInfo:
    print("\nMachine Information")
    print("-------------------")
    info = discover_host_info(lookup_public=lookup_public)
    print(f"Host name : {info.hostname or 'Unknown'}")
    print(f"Public IP : {info.public_ip or ('Unknown' if lookup_public else 'not requested')}")
    print("\nNetwork Interfaces:")
    for label, ip in local_addresses(hostname=info.hostname):
        print(f"  {label:<26}: {ip}")
    return info
