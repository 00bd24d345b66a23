import pytest

from sigionet import cli, programs
from sigionet.activity import ActivityLog
from sigionet.config import ECHO_MESSAGE, ProgramConfig, parse_ip, parse_port
from sigionet.errors import ConfigurationError, FatalIOError


def configure(*argv):
    return cli.config_from_args(cli.build_parser().parse_args(list(argv)))


def test_receiver_defaults():
    config = configure("receiver")
    assert (config.port, config.log_path, config.max_bytes) == (8200, "receptor.log", 1000)
    assert config.framing == "legacy"
    assert not config.single_shot
    assert config.lookup_public


def test_options_win_over_positionals():
    assert configure("receiver", "9001").port == 9001
    assert configure("receiver", "9001", "-p", "9002").port == 9002


def test_sender_positionals():
    config = configure("sender", "8101", "10.0.0.5", "8300", "-n", "--no-public-ip")
    assert (config.port, config.remote_ip, config.remote_port) == (8101, "10.0.0.5", 8300)
    assert config.log_path is None
    assert not config.lookup_public


def test_sender_defaults():
    config = configure("sender")
    assert (config.port, config.remote_ip, config.remote_port, config.log_path) == (8100, "127.0.0.1", 8200, "emisor.log")


def test_client_accepts_localhost():
    config = configure("greet-client", "localhost")
    assert (config.remote_ip, config.remote_port, config.log_path) == ("127.0.0.1", 8000, None)


def test_server_programs_defaults():
    greet = configure("greet-server", "--single")
    assert (greet.port, greet.backlog, greet.log_path, greet.single_shot) == (8000, 16, "log", True)
    echo = configure("echo-server", "--timeout", "2.5", "--rcvbuf", "4096")
    assert (echo.port, echo.backlog) == (9000, 5)
    assert echo.settings.timeout == 2.5
    assert echo.settings.recv_buffer == 4096
    upper = configure("upper-client", "-f", "datos.txt")
    assert (upper.port, upper.remote_port, upper.input_file, upper.log_path) == (9100, 9200, "datos.txt", "clienteUDP.log")
    assert configure("echo-client").message == ECHO_MESSAGE


@pytest.mark.parametrize(
    "argv",
    [
        ["receiver", "70000"],
        ["receiver", "-p", "0"],
        ["sender", "8100", "300.0.0.1"],
        ["receiver", "-b", "0"],
        ["receiver", "--framing", "chunked"],
        ["echo-server", "--timeout", "-1"],
        ["receiver", "-l", "x.log", "-n"],
    ],
)
def test_invalid_arguments_exit_with_usage_error(argv, capsys):
    with pytest.raises(SystemExit) as excinfo:
        cli.main(argv)
    assert excinfo.value.code == 2
    assert "error:" in capsys.readouterr().err


def test_validators():
    assert parse_port("65535") == 65535
    assert parse_ip("localhost") == "127.0.0.1"
    with pytest.raises(ConfigurationError):
        parse_port("http")
    with pytest.raises(ConfigurationError):
        parse_port("0")
    with pytest.raises(ConfigurationError):
        ProgramConfig("receiver", codec="wav")


def test_fatal_errors_exit_with_one(monkeypatch, capsys):
    def broken(config):
        raise FatalIOError("could not bind port 8200: in use")

    monkeypatch.setattr(programs, "run_receiver", broken)
    assert cli.main(["receiver", "-n"]) == 1
    assert "ERROR: could not bind port 8200" in capsys.readouterr().err


def test_program_receives_parsed_config(monkeypatch):
    seen = []
    monkeypatch.setattr(programs, "run_upper_server", lambda config: seen.append(config) or 0)
    assert cli.main(["upper-server", "9300", "--single", "--framing", "single"]) == 0
    assert seen[0].port == 9300
    assert seen[0].framing == "single"
    assert seen[0].log_path == "servidorUDP.log"


def test_log_command(tmp_path, clock, capsys):
    path = tmp_path / "receptor.log"
    with ActivityLog(path, clock=clock) as log:
        log.write("Host created successfully.")
        log.write("Error binding", level="ERROR")
    assert cli.main(["log", str(path), "--summary"]) == 0
    out = capsys.readouterr().out
    assert "ERROR   : 1" in out
    assert "INFO    : 1" in out
    assert cli.main(["log", str(path), "--limit", "1"]) == 0
    assert "Error binding" in capsys.readouterr().out
