import socket

import pytest

from sigionet.activity import ActivityLog
from sigionet.endpoint import (
    NO_SOCKET,
    Endpoint,
    SocketSettings,
    create_local_endpoint,
    create_remote_endpoint,
    validate_ip,
)
from sigionet.errors import ConfigurationError, FatalIOError

from .helpers import ScriptedSocket


def test_close_is_idempotent(log_path, clock):
    sock = ScriptedSocket([])
    endpoint = Endpoint(port=8200, ip="127.0.0.1", hostname="box", local_ips=["127.0.0.1"], log=ActivityLog(log_path, clock=clock), sock=sock)
    log = endpoint.log

    endpoint.close()
    endpoint.close()
    endpoint.close()

    assert sock.closed == 1
    assert log.closed
    assert endpoint.fd == NO_SOCKET
    assert not endpoint.is_open
    assert (endpoint.port, endpoint.ip, endpoint.hostname, endpoint.local_ips, endpoint.public_ip) == (0, "", "", [], "")
    assert log_path.read_text().count("Closing host...") == 1


def test_closing_a_remote_endpoint_clears_it():
    remote = create_remote_endpoint(socket.SOCK_DGRAM, "10.0.0.7", 9200)
    assert remote.address == ("10.0.0.7", 9200)
    assert remote.fd == NO_SOCKET
    remote.close()
    assert remote.address == ("", 0)


@pytest.mark.parametrize("ip", ["300.1.1.1", "not-an-ip", "", "1.2.3"])
def test_invalid_remote_ip(ip):
    with pytest.raises(ConfigurationError):
        create_remote_endpoint(socket.SOCK_DGRAM, ip, 8200)


def test_validate_ip_accepts_ipv6_for_ipv6_family():
    assert validate_ip("::1", socket.AF_INET6) == "::1"


def test_local_datagram_endpoint(log_path, clock):
    with create_local_endpoint(socket.SOCK_DGRAM, 0, log_path, clock=clock, lookup_public=False, bind_host="127.0.0.1") as endpoint:
        assert endpoint.is_open
        assert endpoint.port > 0
        assert endpoint.sock.getsockname() == ("127.0.0.1", endpoint.port)
        assert endpoint.local_ips
        port = endpoint.port
    assert not endpoint.is_open

    text = log_path.read_text()
    assert "[Mon, 19 Oct 2026, 08:00:00.000000 | Test | PID=" in text
    assert "Initialising host..." in text
    assert "Host created successfully. Hostname: " in text
    assert f"Port: {port}" in text
    assert text.index("Host created successfully") < text.index("Closing host...")


def test_local_stream_endpoint_listens():
    endpoint = create_local_endpoint(socket.SOCK_STREAM, 0, backlog=4, lookup_public=False, bind_host="127.0.0.1")
    try:
        with socket.create_connection(("127.0.0.1", endpoint.port), timeout=2.0):
            pass
    finally:
        endpoint.close()


def test_bind_failure_is_fatal_and_closes_the_log(log_path, clock):
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as taken:
        taken.bind(("127.0.0.1", 0))
        port = taken.getsockname()[1]
        with pytest.raises(FatalIOError):
            create_local_endpoint(socket.SOCK_DGRAM, port, log_path, clock=clock, lookup_public=False, bind_host="127.0.0.1")
    text = log_path.read_text()
    assert f"ERROR] Error binding the host socket to port {port}" in text
    assert "Closing host..." in text


def test_settings_apply_blocking_modes():
    settings = SocketSettings(timeout=1.5)
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
        settings.apply(sock)
        assert sock.gettimeout() == 1.5
        SocketSettings(nonblocking=True).apply(sock)
        assert sock.gettimeout() == 0.0
        SocketSettings(nonblocking=True).apply(sock, allow_nonblocking=False)
        assert sock.gettimeout() is None


class _FailingCloseSocket(ScriptedSocket):
    def close(self):
        super().close()
        raise OSError(9, "Bad file descriptor")


def test_failed_socket_close_still_releases_the_log(log_path, clock):
    log = ActivityLog(log_path, clock=clock)
    endpoint = Endpoint(port=8200, hostname="box", log=log, sock=_FailingCloseSocket([]))

    with pytest.raises(FatalIOError):
        endpoint.close()

    assert log.closed
    assert endpoint.log is None
    assert (endpoint.port, endpoint.hostname) == (0, "")
    assert not endpoint.is_open
    assert "ERROR] Error closing the host socket" in log_path.read_text()
    endpoint.close()
