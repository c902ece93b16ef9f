"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Errors fall into two families:

    ┌─────────────────────────────────────────────────────────────────────┐
    │  FATAL STARTUP ERRORS                                               │
    │  ─────────────────────────────────────────────────────────────────  │
    │  ConfigError          bad port, output format, encoding, ...        │
    │  BindError            listening socket could not be bound           │
    │  ClassifierLoadError  model file or bundled resource unusable       │
    │                                                                      │
    │  Raised before any connection is accepted. main() turns them into   │
    │  a message on stderr and a non-zero exit status. Never retried.     │
    ├─────────────────────────────────────────────────────────────────────┤
    │  PER-CONNECTION ERRORS                                              │
    │  ─────────────────────────────────────────────────────────────────  │
    │  OSError, UnicodeError, LineTooLongError, classifier exceptions     │
    │                                                                      │
    │  Contained in the session (or the accept iteration) that hit them.  │
    │  Logged locally; the client only ever sees a closed connection.     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from typing import Optional


class TaggerServerError(Exception):
    """Base class for all errors raised by the tagging server."""


class ConfigError(TaggerServerError, ValueError):
    """Invalid startup configuration (usage error)."""


class BindError(TaggerServerError, OSError):
    """
    The listening socket could not be created or bound.

    Attributes:
        host: Address we tried to bind.
        port: Port we tried to bind.
    """

    def __init__(self, host: str, port: int, reason: Optional[str] = None):
        self.host = host
        self.port = port
        message = f"Cannot listen on {host}:{port}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ClassifierLoadError(TaggerServerError):
    """A classifier model could not be loaded."""


class LineTooLongError(TaggerServerError, ValueError):
    """A request line exceeded the configured maximum size."""

    def __init__(self, limit: int):
        self.limit = limit
        super().__init__(f"Request line exceeds {limit} bytes")
