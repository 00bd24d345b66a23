import socket

import pytest

from sigionet import hostinfo
from sigionet.activity import ActivityLog
from sigionet.hostinfo import _http_body, classify_address, discover_host_info, local_addresses, public_ip


@pytest.mark.parametrize(
    "ip, label",
    [
        ("192.168.1.20", "Wi-Fi / LAN"),
        ("10.8.0.2", "VPN"),
        ("127.0.1.1", "Localhost"),
        ("172.17.0.1", "Docker or Internal Network"),
        ("fe80::1", "IPv6 Interface"),
        ("8.8.8.8", "Unknown Interface"),
    ],
)
def test_classify_address(ip, label):
    assert classify_address(ip) == label


def test_loopback_is_listed_last(monkeypatch):
    def fake_getaddrinfo(host, port, family):
        return [
            (family, socket.SOCK_DGRAM, 0, "", ("127.0.1.1", 0)),
            (family, socket.SOCK_DGRAM, 0, "", ("192.168.1.20", 0)),
            (family, socket.SOCK_STREAM, 0, "", ("192.168.1.20", 0)),
        ]

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    assert local_addresses(hostname="box") == [
        ("Wi-Fi / LAN", "192.168.1.20"),
        ("Localhost", "127.0.1.1"),
        ("Localhost", "127.0.0.1"),
    ]


def test_unknown_hostname_still_has_loopback(monkeypatch):
    def fake_getaddrinfo(host, port, family):
        raise socket.gaierror("no such host")

    monkeypatch.setattr(socket, "getaddrinfo", fake_getaddrinfo)
    assert local_addresses(hostname="nowhere") == [("Localhost", "127.0.0.1")]


def test_http_body():
    response = b"HTTP/1.1 200 OK\r\nContent-Type: text/plain\r\n\r\n203.0.113.9\n"
    assert _http_body(response) == "203.0.113.9"
    assert _http_body(b"garbage") == ""


def test_public_ip_failure_is_empty(monkeypatch):
    def refuse(*args, **kwargs):
        raise ConnectionRefusedError(111, "Connection refused")

    monkeypatch.setattr(socket, "create_connection", refuse)
    assert public_ip(timeout=0.1) == ""


def test_discovery_without_public_lookup(monkeypatch, log_path, clock):
    monkeypatch.setattr(hostinfo, "public_ip", lambda timeout=3.0: pytest.fail("public lookup not expected"))
    with ActivityLog(log_path, clock=clock) as log:
        info = discover_host_info(lookup_public=False, log=log)
    assert info.public_ip == ""
    assert "127.0.0.1" in info.local_ips
    assert "Local IPs: " in log_path.read_text()


def test_discovery_logs_missing_public_ip(monkeypatch, log_path, clock):
    monkeypatch.setattr(hostinfo, "public_ip", lambda timeout=3.0: "")
    with ActivityLog(log_path, clock=clock) as log:
        discover_host_info(log=log)
    assert "WARNING] Could not obtain the public IP." in log_path.read_text()
