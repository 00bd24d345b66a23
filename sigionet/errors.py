"""Exception types shared by every program."""
from __future__ import annotations


class SigioNetError(Exception):
    """Base class for errors raised by sigionet."""


class ConfigurationError(SigioNetError, ValueError):
    """Invalid user supplied configuration (port, IP literal, sizes)."""


class FatalIOError(SigioNetError, OSError):
    """Socket or signal setup failure that must end the program."""
