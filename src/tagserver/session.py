"""
=============================================================================
SESSION: ONE CONNECTION, ONE REQUEST, AT MOST ONE RESPONSE
=============================================================================

A session services exactly one accepted connection and is then discarded.

    Accepted ──► Reading ──┬──► Idle-Close ──────────────────────┐
                           │                                      │
                           ├──► Classifying ──► Writing ──────────┼──► Closed
                           │         │             │              │
                           └──► Error-Close ◄──────┴──────────────┘

    1. Read one line, decoded with the configured charset.
    2. Nothing received, or a blank line → no input: close silently.
    3. Read failure (I/O, decode, oversized, timeout) → log, close.
    4. classify(line, output_format, preserve_spacing).
       A classifier failure is handled like a read failure.
    5. Encode and send the result as one line.
    6. Close. Always, on every path above, exactly once.

There is no error frame in the protocol: whatever goes wrong, the client
only ever sees the connection close without a response line. Diagnostics
stay in the local log.

No retries anywhere. A failed session is simply abandoned.

=============================================================================
"""

import logging
import socket
from enum import Enum
from typing import Optional, Tuple

from .config import OutputFormat, ServerConfig
from .core.connection import Connection, ConnectionState
from .errors import LineTooLongError
from .tagging.classifier import Classifier


class SessionOutcome(Enum):
    """How a session ended."""

    RESPONDED = "responded"            # Response line written
    NO_INPUT = "no_input"              # Peer sent nothing or a blank line
    READ_ERROR = "read_error"          # I/O, decode, size or timeout failure
    CLASSIFY_ERROR = "classify_error"  # Classifier raised
    WRITE_ERROR = "write_error"        # Encode or send failed


class Session:
    """
    A single client interaction.

    Owns its Connection exclusively. Holds no state shared with other
    sessions: the classifier is only called, never modified, and the
    options are plain immutable values.
    """

    def __init__(
        self,
        connection: Connection,
        classifier: Classifier,
        output_format: OutputFormat = OutputFormat.SLASH_TAGS,
        preserve_spacing: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.connection = connection
        self.classifier = classifier
        self.output_format = output_format
        self.preserve_spacing = preserve_spacing
        self._logger = logger or logging.getLogger(__name__)
        self.outcome: Optional[SessionOutcome] = None

    def run(self) -> SessionOutcome:
        """
        Run the session to completion.

        The whole read/classify/write sequence sits inside one ``with``
        block on the connection, so the socket is closed on every exit
        path, including an unexpected exception.
        """
        conn = self.connection
        log = self._logger
        log.debug(f"[{conn.id}] Created new session for {conn.client_ip}:{conn.client_port}")

        with conn:
            self.outcome = self._serve(conn, log)
        return self.outcome

    def _serve(self, conn: Connection, log: logging.Logger) -> SessionOutcome:
        # ─────────────────────────────────────────────────────────────────
        # READ
        # ─────────────────────────────────────────────────────────────────
        try:
            line = conn.read_line()
        except UnicodeDecodeError as e:
            log.error(f"[{conn.id}] Couldn't decode input as {conn.charset}: {e}")
            return SessionOutcome.READ_ERROR
        except LineTooLongError as e:
            log.error(f"[{conn.id}] Couldn't read input: {e}")
            return SessionOutcome.READ_ERROR
        except socket.timeout:
            log.warning(f"[{conn.id}] Timed out waiting for input")
            return SessionOutcome.READ_ERROR
        except OSError as e:
            log.exception(f"[{conn.id}] Couldn't read input: {e}")
            return SessionOutcome.READ_ERROR

        if not line:
            # Closed before sending anything, or a blank line: not an error.
            log.debug(f"[{conn.id}] No input, closing")
            return SessionOutcome.NO_INPUT

        log.debug(f"[{conn.id}] Receiving: \"{line}\"")

        # ─────────────────────────────────────────────────────────────────
        # CLASSIFY
        # ─────────────────────────────────────────────────────────────────
        conn.state = ConnectionState.CLASSIFYING
        try:
            output = self.classifier.classify(line, self.output_format, self.preserve_spacing)
        except Exception as e:
            log.exception(f"[{conn.id}] Classifier failed: {e}")
            return SessionOutcome.CLASSIFY_ERROR

        log.debug(f"[{conn.id}] Sending: \"{output}\"")

        # ─────────────────────────────────────────────────────────────────
        # WRITE
        # ─────────────────────────────────────────────────────────────────
        try:
            conn.send_line(output)
        except UnicodeEncodeError as e:
            log.error(f"[{conn.id}] Couldn't encode output as {conn.charset}: {e}")
            return SessionOutcome.WRITE_ERROR
        except OSError as e:
            log.error(f"[{conn.id}] Couldn't send output: {e}")
            return SessionOutcome.WRITE_ERROR

        return SessionOutcome.RESPONDED


def handle_connection(
    sock: socket.socket,
    address: Tuple[str, int],
    config: ServerConfig,
    classifier: Classifier,
    logger: Optional[logging.Logger] = None,
) -> SessionOutcome:
    """
    Service one accepted socket from start to close.

    This is the unit of work spawned onto its own thread for every
    connection. If the socket cannot even be wrapped, it is closed here.
    """
    log = logger or logging.getLogger(__name__)
    try:
        conn = Connection(
            socket=sock,
            address=address,
            charset=config.charset,
            buffer_size=config.buffer_size,
            max_line_bytes=config.max_line_bytes,
            read_timeout=config.read_timeout,
            logger=log,
        )
    except OSError as e:
        log.error(f"Couldn't set up session for {address}: {e}")
        try:
            sock.close()
        except OSError as close_error:
            log.error(f"Couldn't close client: {close_error}")
        return SessionOutcome.READ_ERROR

    session = Session(
        conn,
        classifier,
        output_format=config.output_format,
        preserve_spacing=config.preserve_spacing,
        logger=log,
    )
    return session.run()
