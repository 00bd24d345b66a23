"""Program defaults and validation of user supplied values."""
from __future__ import annotations

import socket
from dataclasses import dataclass, field
from typing import Optional

from .codec import CODECS, FRAMING_MODES
from .endpoint import SocketSettings
from .errors import ConfigurationError

LOCALHOST = "127.0.0.1"
MAX_BYTES = 1000

RECEIVER_PORT = 8200
RECEIVER_LOG = "receptor.log"
SENDER_PORT = 8100
SENDER_LOG = "emisor.log"

GREET_PORT = 8000
GREET_BACKLOG = 16
GREET_LOG = "log"
GREET_MESSAGE_SIZE = 128

ECHO_PORT = 9000
ECHO_BACKLOG = 5
ECHO_PAYLOAD = 2048
ECHO_MESSAGE = "Test message. This will be echoed"

UPPER_SERVER_PORT = 9200
UPPER_SERVER_LOG = "servidorUDP.log"
UPPER_CLIENT_PORT = 9100
UPPER_CLIENT_LOG = "clienteUDP.log"
UPPER_INPUT_FILE = "leeme.txt"


def parse_port(text) -> int:
    try:
        port = int(text)
    except (TypeError, ValueError):
        raise ConfigurationError(f"The given port ({text}) is not valid") from None
    if not 1 <= port <= 65535:
        raise ConfigurationError(f"The given port ({text}) is not valid")
    return port


def parse_positive(text, what: str = "value") -> int:
    try:
        number = int(text)
    except (TypeError, ValueError):
        raise ConfigurationError(f"The given {what} ({text}) is not valid") from None
    if number <= 0:
        raise ConfigurationError(f"The given {what} ({text}) is not valid")
    return number


def parse_non_negative(text, what: str = "value") -> float:
    try:
        number = float(text)
    except (TypeError, ValueError):
        raise ConfigurationError(f"The given {what} ({text}) is not valid") from None
    if number < 0:
        raise ConfigurationError(f"The given {what} ({text}) is not valid")
    return number


def parse_ip(text: str) -> str:
    """Validate an IPv4 literal; "localhost" is accepted as 127.0.0.1."""
    if text == "localhost":
        return LOCALHOST
    try:
        socket.inet_pton(socket.AF_INET, text)
    except (OSError, TypeError):
        raise ConfigurationError(f"The given IP ({text}) is not valid") from None
    return text


@dataclass
class ProgramConfig:
    program: str
    port: int = 0
    remote_ip: str = LOCALHOST
    remote_port: int = 0
    max_bytes: int = MAX_BYTES
    log_path: Optional[str] = None
    backlog: int = GREET_BACKLOG
    framing: str = "legacy"
    codec: str = "text"
    single_shot: bool = False
    input_file: str = UPPER_INPUT_FILE
    message: Optional[str] = None
    settings: SocketSettings = field(default_factory=SocketSettings)
    lookup_public: bool = True
    ntp_server: Optional[str] = None

    def __post_init__(self) -> None:
        if self.framing not in FRAMING_MODES:
            raise ConfigurationError(f"Unknown framing mode ({self.framing})")
        if self.codec not in CODECS:
            raise ConfigurationError(f"Unknown codec ({self.codec})")
        if self.max_bytes <= 0:
            raise ConfigurationError(f"The given max bytes ({self.max_bytes}) is not valid")
