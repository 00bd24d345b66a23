"""Signal-driven non-blocking socket exercises built on one shared core."""
from __future__ import annotations

from .errors import ConfigurationError, FatalIOError, SigioNetError

__version__ = "0.3.0"

__all__ = ["ConfigurationError", "FatalIOError", "SigioNetError", "__version__"]
