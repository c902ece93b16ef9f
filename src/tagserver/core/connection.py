"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

This module wraps one accepted client socket with the small API a tagging
session needs: read one line, write one line, close.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL!
=============================================================================

TCP does NOT preserve message boundaries. A client that sends

    "Alice works at Foo\\n"

may arrive as one recv() or as several:

    recv() → "Alice wo"
    recv() → "rks at Foo\\n"

So the request is buffered until the newline delimiter shows up (or the
peer closes its side). Only the FIRST line is input; anything after the
newline is discarded, because the protocol is one request per connection.

=============================================================================
CHARACTER ENCODING
=============================================================================

Bytes are decoded only once the whole line has been received. Decoding
chunk by chunk would break multi-byte characters that straddle two recv()
calls:

    "é" in UTF-8 is b"\\xc3\\xa9"
    recv() → b"caf\\xc3"        ← half a character!
    recv() → b"\\xa9\\n"

The configured charset is used in both directions.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──► READING ──┬──► CLASSIFYING ──► WRITING ──┐
                      │                              │
                      └──────────────────────────────┴──► CLOSING ──► CLOSED

Every path ends in CLOSED. A Connection is never reused.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..errors import LineTooLongError


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Connection lifecycle states, used for logging and assertions."""

    NEW = "new"                  # Just accepted
    READING = "reading"          # Waiting for the request line
    CLASSIFYING = "classifying"  # Request read, classifier running
    WRITING = "writing"          # Sending the response line
    CLOSING = "closing"          # Releasing the socket
    CLOSED = "closed"            # Socket released


@dataclass
class Connection:
    """
    One accepted client connection.

    Owned by exactly one session from acceptance until close. Usable as a
    context manager so that every exit path closes the socket:

        with Connection(sock, addr) as conn:
            line = conn.read_line()
            ...
        # socket closed here, whatever happened above

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        charset: Codec used for both directions.
        id: Short unique identifier for log correlation.
        state: Current connection state.
    """

    socket: socket.socket
    address: Tuple[str, int]
    charset: str = "utf-8"
    buffer_size: int = 4096
    max_line_bytes: int = 1024 * 1024
    read_timeout: Optional[float] = None
    logger: logging.Logger = field(default=logger, repr=False)

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)

    def __post_init__(self):
        # Blocking with an optional deadline; None blocks forever.
        self.socket.settimeout(self.read_timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_line(self) -> Optional[str]:
        """
        Read and decode the request line.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    read_line() Flow                              │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   while no b"\\n" in buffer:                                     │
        │       chunk = recv()                                             │
        │       └── b"" → peer closed (EOF), stop reading                 │
        │       buffer += chunk                                            │
        │       └── too long → LineTooLongError                           │
        │                                                                  │
        │   nothing received at all → None                                 │
        │   otherwise → decode(buffer up to newline, minus "\\r")          │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Returns:
            The decoded line without its terminator, "" for a blank line,
            or None if the peer closed before sending anything.

        Raises:
            UnicodeDecodeError: If the bytes are not valid in the charset.
            LineTooLongError: If no newline shows up within max_line_bytes.
            socket.timeout: If read_timeout is set and expires.
            OSError: On any other socket failure.
        """
        self.state = ConnectionState.READING
        buffer = b""

        while b"\n" not in buffer:
            chunk = self.socket.recv(self.buffer_size)
            if not chunk:
                break  # EOF: the peer shut down its sending side
            buffer += chunk
            if b"\n" not in buffer and len(buffer) > self.max_line_bytes:
                raise LineTooLongError(self.max_line_bytes)

        if not buffer:
            return None

        line = buffer.split(b"\n", 1)[0]
        if len(line) > self.max_line_bytes:
            raise LineTooLongError(self.max_line_bytes)
        if line.endswith(b"\r"):
            line = line[:-1]

        return line.decode(self.charset)

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_line(self, text: str) -> None:
        """
        Encode and send one response line.

        A trailing newline is appended unless the text already ends with
        one. sendall() keeps writing until every byte has been handed to
        the OS, so nothing is left buffered when the session closes.

        Raises:
            UnicodeEncodeError: If the text cannot be encoded in the charset.
            OSError: If the peer went away.
        """
        self.state = ConnectionState.WRITING
        if not text.endswith("\n"):
            text += "\n"
        self.socket.sendall(text.encode(self.charset))

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close the connection, best effort.

        Each step is attempted on its own, so a failed shutdown() does not
        stop the close(). Failures are logged and never raised.

            1. shutdown(SHUT_RDWR)   send FIN, stop reading
            2. close()               release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # Usually the peer already disconnected.
            self.logger.debug(f"[{self.id}] shutdown failed: {e}")

        try:
            self.socket.close()
        except OSError as e:
            self.logger.warning(f"[{self.id}] Couldn't close client socket: {e}")

        self.state = ConnectionState.CLOSED
        self.logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False  # Don't suppress exceptions
