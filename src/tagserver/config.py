"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized, immutable configuration for the tagging server.

The ServerConfig is built ONCE at startup (from the command line, from the
environment, or directly in code), validated eagerly, and then shared
read-only by the listener and every session. Because it is frozen, sessions
can read it from any thread without locking.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line options                                           │
    │      └── python -m tagserver -port 9191 -outputFormat xml          │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TAGGER_PORT=9191 python -m tagserver                      │
    │                                                                      │
    │   3. Default values (in this dataclass)                            │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
OUTPUT FORMATS
=============================================================================

The server never interprets the output format, it only forwards it to the
classifier on every call. The accepted values are fixed:

    slashTags   Alice/PERSON works/O at/O Foo/ORGANIZATION
    xml         <wi num="0" entity="PERSON">Alice</wi> ...
    inlineXML   <PERSON>Alice</PERSON> works at <ORGANIZATION>Foo</ORGANIZATION>

Anything else is rejected at startup, before a socket is opened.

=============================================================================
"""

import codecs
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from .errors import ConfigError


class OutputFormat(str, Enum):
    """Serialization style of the annotated text."""

    SLASH_TAGS = "slashTags"
    XML = "xml"
    INLINE_XML = "inlineXML"

    @classmethod
    def parse(cls, value: Optional[str]) -> "OutputFormat":
        """
        Parse an output format name.

        Matching is exact and case-sensitive. None or "" selects the default.

        Raises:
            ConfigError: If the value is not one of the accepted names.
        """
        if value is None or value == "":
            return cls.SLASH_TAGS
        if isinstance(value, cls):
            return value
        for fmt in cls:
            if fmt.value == value:
                return fmt
        choices = "|".join(fmt.value for fmt in cls)
        raise ConfigError(f"Invalid output format: {value!r} (expected {choices})")

    def __str__(self) -> str:
        return self.value


def parse_bool(value: Optional[str]) -> bool:
    """"true" in any case is True. Everything else, including None, is False."""
    return value is not None and value.strip().lower() == "true"


def parse_port(value: Any) -> int:
    """
    Parse a port number.

    Raises:
        ConfigError: If the value is missing or not an integer.
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ConfigError("A port is required")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Non-numerical port: {value!r}") from None


_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """
    Configuration for the tagging server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size, accept_poll_interval

    PROTOCOL SETTINGS
    - charset, max_line_bytes

    TAGGING SETTINGS
    - output_format, preserve_spacing

    LIMITS (off by default)
    - read_timeout, max_sessions

    LOGGING
    - log_level

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    port: int = 0
    """
    TCP port to listen on (1-65535).
    0 asks the OS for a free ephemeral port, which is handy in tests.
    """

    host: str = "0.0.0.0"
    """
    Address to bind. The default listens on every interface.
    Use "127.0.0.1" to accept local clients only.
    """

    backlog: int = 128
    """Maximum number of connections queued by the OS before accept()."""

    buffer_size: int = 4096
    """Bytes requested per recv() call."""

    accept_poll_interval: float = 1.0
    """
    Timeout on the listening socket, in seconds.
    accept() wakes up this often to notice a shutdown request.
    """

    # ─────────────────────────────────────────────────────────────────────
    # PROTOCOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    charset: str = "utf-8"
    """Character set used to decode requests and encode responses."""

    max_line_bytes: int = 1024 * 1024
    """Largest request line accepted (1 MB). Longer lines are read errors."""

    # ─────────────────────────────────────────────────────────────────────
    # TAGGING SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    output_format: OutputFormat = OutputFormat.SLASH_TAGS
    """Forwarded unchanged to the classifier."""

    preserve_spacing: bool = True
    """Forwarded unchanged to the classifier."""

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────
    # Both default to None: a silent client may hold its session open for
    # as long as it likes, and there is no cap on concurrent sessions.

    read_timeout: Optional[float] = None
    """Seconds a session waits for its request line. None waits forever."""

    max_sessions: Optional[int] = None
    """Concurrent session cap. Connections beyond it are closed unanswered."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    def __post_init__(self):
        # Accept plain strings for the format so callers can pass "xml".
        if not isinstance(self.output_format, OutputFormat):
            object.__setattr__(self, "output_format", OutputFormat.parse(self.output_format))

    @property
    def log_level_value(self) -> int:
        """The numeric logging level."""
        return getattr(logging, self.log_level.upper(), logging.INFO)

    @classmethod
    def from_env(cls, environ: Optional[dict] = None, **overrides: Any) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TAGGER_HOST              Bind address (default: 0.0.0.0)
        TAGGER_PORT              Port (required unless passed as override)
        TAGGER_ENCODING          Socket charset (default: utf-8)
        TAGGER_OUTPUT_FORMAT     slashTags | xml | inlineXML
        TAGGER_PRESERVE_SPACING  true | false (default: true)
        TAGGER_READ_TIMEOUT      Seconds (default: no timeout)
        TAGGER_MAX_SESSIONS      Integer (default: unlimited)
        TAGGER_LOG_LEVEL         Logging level (default: INFO)

        Keyword overrides win over the environment; None overrides are
        ignored so argparse namespaces can be passed straight through.

        =====================================================================
        """
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("TAGGER_HOST"):
            values["host"] = env["TAGGER_HOST"]
        if env.get("TAGGER_PORT"):
            values["port"] = parse_port(env["TAGGER_PORT"])
        if env.get("TAGGER_ENCODING"):
            values["charset"] = env["TAGGER_ENCODING"]
        if env.get("TAGGER_OUTPUT_FORMAT"):
            values["output_format"] = OutputFormat.parse(env["TAGGER_OUTPUT_FORMAT"])
        if env.get("TAGGER_PRESERVE_SPACING"):
            values["preserve_spacing"] = parse_bool(env["TAGGER_PRESERVE_SPACING"])
        if env.get("TAGGER_READ_TIMEOUT"):
            values["read_timeout"] = _number(env["TAGGER_READ_TIMEOUT"], float, "TAGGER_READ_TIMEOUT")
        if env.get("TAGGER_MAX_SESSIONS"):
            values["max_sessions"] = _number(env["TAGGER_MAX_SESSIONS"], int, "TAGGER_MAX_SESSIONS")
        if env.get("TAGGER_LOG_LEVEL"):
            values["log_level"] = env["TAGGER_LOG_LEVEL"]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    def validate(self) -> None:
        """
        Validate configuration values.

        Everything is checked at startup, before the socket is bound, so a
        typo never surfaces as a failure on the first request.

        Raises:
            ConfigError: On the first invalid value found.
        """
        if not isinstance(self.port, int) or not 0 <= self.port < 65536:
            raise ConfigError(
                f"Invalid port: {self.port}. Must be 1-65535, or 0 for an ephemeral port."
            )

        try:
            codecs.lookup(self.charset)
        except LookupError:
            raise ConfigError(f"Unknown encoding: {self.charset!r}") from None

        if self.backlog < 1:
            raise ConfigError("backlog must be >= 1")

        if self.buffer_size < 1:
            raise ConfigError("buffer_size must be >= 1")

        if self.max_line_bytes < 1:
            raise ConfigError("max_line_bytes must be >= 1")

        if self.accept_poll_interval <= 0:
            raise ConfigError("accept_poll_interval must be > 0")

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ConfigError("read_timeout must be > 0")

        if self.max_sessions is not None and self.max_sessions < 1:
            raise ConfigError("max_sessions must be >= 1")

        if self.log_level.upper() not in _LOG_LEVELS:
            raise ConfigError(f"Unknown log level: {self.log_level!r}")


def _number(value: str, kind: type, name: str):
    try:
        return kind(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}") from None
