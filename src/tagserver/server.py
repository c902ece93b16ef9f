"""
=============================================================================
TAGGER SERVER
=============================================================================

Exposes a classifier over TCP, one request per connection:

    Client                              Server
      │  connect                          │
      │ ─────────────────────────────────►│  accept()
      │                                   │  spawn session thread ──┐
      │  "Alice works at Foo\\n"           │                         │
      │ ─────────────────────────────────►│  read line              │
      │                                   │  classify()             │
      │  "Alice/PERSON works/O ...\\n"     │                         │
      │ ◄─────────────────────────────────│  write line             │
      │                                   │  close ◄────────────────┘
      │  EOF                              │
      ▼                                   ▼

=============================================================================
COMPONENTS
=============================================================================

    ServerConfig     immutable options, validated before anything binds
    Classifier       the black box doing the annotation (shared, read-only)
    SocketServer     bind + accept loop on the calling thread
    SessionSpawner   one daemon thread per connection
    Session          read → classify → write → close

Startup failures (bad config, bind failure) raise out of start()/run().
Everything that happens after the listener is up stays inside the accept
iteration or the session that caused it.

=============================================================================
"""

import functools
import logging
import socket
from typing import Optional, Tuple

from .config import ServerConfig
from .core import SessionSpawner, SocketServer
from .session import handle_connection
from .tagging.classifier import Classifier
from .tagging.loader import load_classifier


class TaggerServer:
    """
    Network front end for a text classifier.

    Usage:
        config = ServerConfig(port=9191, output_format="xml")
        server = TaggerServer(config, load_classifier())
        server.run()  # blocks until SIGINT/SIGTERM

    The classifier must be safe to call from many threads at once; the
    server adds no locking around it.
    """

    def __init__(
        self,
        config: ServerConfig,
        classifier: Classifier,
        logger: Optional[logging.Logger] = None,
    ):
        config.validate()  # Fail fast, before any socket exists
        self.config = config
        self.classifier = classifier
        self._logger = logger or logging.getLogger(__name__)

        self._socket_server = SocketServer(config, logger=self._logger)
        self._spawner = SessionSpawner(max_sessions=config.max_sessions, logger=self._logger)
        self._session = functools.partial(
            handle_connection,
            config=config,
            classifier=classifier,
            logger=self._logger,
        )

    @property
    def address(self) -> Tuple[str, int]:
        """The (host, port) the server is bound to."""
        return self._socket_server.address

    @property
    def spawner(self) -> SessionSpawner:
        return self._spawner

    @property
    def is_running(self) -> bool:
        return self._socket_server.is_running

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> "TaggerServer":
        """
        Bind the listening socket.

        Raises:
            BindError: Port in use, out of range or not permitted.
        """
        self._socket_server.bind()
        return self

    def run(self):
        """
        Bind (if needed) and accept connections until shut down.

        Raises:
            BindError: If the socket cannot be bound.
        """
        self.start()
        host, port = self.address
        self._logger.info(
            f"Tagging server ready on {host}:{port} "
            f"(format={self.config.output_format}, "
            f"preserveSpacing={str(self.config.preserve_spacing).lower()}, "
            f"encoding={self.config.charset})"
        )
        self._socket_server.serve_forever(self._dispatch)

    def shutdown(self):
        """Stop accepting. Sessions already running are left to finish alone."""
        self._socket_server.shutdown()

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        return self._socket_server.wait_until_ready(timeout)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def _dispatch(self, sock: socket.socket, address: Tuple[str, int]):
        """
        Hand an accepted socket to its own session thread.

        Runs on the accept loop, so it only spawns and returns. A refusal
        (session cap reached) closes the socket without a response, which
        is exactly what a failed session looks like to the client.
        """
        started = self._spawner.spawn(
            self._session, sock, address,
            name=f"session-{address[0]}:{address[1]}",
        )
        if not started:
            self._logger.warning(
                f"Session limit ({self.config.max_sessions}) reached, "
                f"closing connection from {address[0]}:{address[1]}"
            )
            sock.close()


def create_server(
    config: ServerConfig,
    classifier: Optional[Classifier] = None,
    logger: Optional[logging.Logger] = None,
) -> TaggerServer:
    """Build a server, loading the default classifier when none is given."""
    if classifier is None:
        classifier = load_classifier()
    return TaggerServer(config, classifier, logger=logger)
