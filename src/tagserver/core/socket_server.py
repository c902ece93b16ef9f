"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket and runs the accept loop. It knows nothing about
tagging: each accepted (socket, address) pair is handed to a callback,
which is expected to return quickly (the tagging server spawns a thread).

SOCKET LIFECYCLE (Server Side):
────────────────────────────────

    1. socket()    Create a TCP socket
    2. bind()      Associate it with host:port       ← fatal if this fails
    3. listen()    Start queueing incoming connections
    4. accept()    Loop forever, one new socket per client
    5. close()     Only when the process is told to stop

=============================================================================
THE ACCEPT LOOP NEVER GIVES UP
=============================================================================

    ┌─────────────────────────────────────────────────────────────────┐
    │   while running:                                                │
    │       accept()                                                  │
    │         ├── timeout       → loop (lets us notice shutdown)      │
    │         ├── OSError       → log, close half-open client, loop   │
    │         └── (sock, addr)  → handler(sock, addr), loop           │
    └─────────────────────────────────────────────────────────────────┘

A failed accept (EMFILE, ECONNABORTED, ...) is transient: it is logged and
the loop carries on. If a client socket was already obtained when the
failure happened, it is closed, and a failure to close it is logged too.
Nothing that happens per connection stops the listener.

The only ways out are a signal (SIGINT/SIGTERM) or an explicit shutdown()
from another thread. In-flight sessions are not waited on.

=============================================================================
"""

import logging
import signal
import socket
import threading
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from ..errors import BindError

ConnectionHandler = Callable[[socket.socket, Tuple[str, int]], None]


class SocketServer:
    """
    Low-level TCP socket server.

    Usage:
        def handle(sock, address):
            ...  # must not block for long

        server = SocketServer(config)
        server.bind()                 # raises BindError
        server.serve_forever(handle)  # blocks until shutdown()
    """

    def __init__(self, config: ServerConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self._logger = logger or logging.getLogger(__name__)

        self._socket: Optional[socket.socket] = None
        self._address: Optional[Tuple[str, int]] = None

        self._ready = threading.Event()
        self._shutdown_event = threading.Event()
        self._original_handlers: dict = {}

    @property
    def is_running(self) -> bool:
        return self._ready.is_set() and not self._shutdown_event.is_set()

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured one before bind()."""
        return self._address or (self.config.host, self.config.port)

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen on the server socket.

        Returns:
            The actual bound address (port 0 resolves to a real port).

        Raises:
            BindError: Port in use, permission denied, bad address, ...
        """
        if self._socket is not None:
            return self.address

        host, port = self.config.host, self.config.port
        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        except OSError as e:
            raise BindError(host, port, str(e)) from e

        try:
            # Rebind right after a restart instead of waiting out TIME_WAIT.
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((host, port))
            sock.listen(self.config.backlog)
            # Periodic wake-ups so shutdown() is noticed.
            sock.settimeout(self.config.accept_poll_interval)
        except (OSError, OverflowError) as e:
            sock.close()
            self._logger.error(f"Failed to bind to {host}:{port}: {e}")
            raise BindError(host, port, str(e)) from e

        self._socket = sock
        self._address = sock.getsockname()[:2]
        self._logger.info(f"Listening on {self._address[0]}:{self._address[1]}")
        return self._address

    def serve_forever(self, handler: ConnectionHandler):
        """
        Accept connections until shutdown() is called.

        Args:
            handler: Called with (client_socket, client_address) for every
                     accepted connection. Takes ownership of the socket.
        """
        self.bind()
        self._setup_signals()
        self._ready.set()

        try:
            self._accept_loop(handler)
        finally:
            self._cleanup()

    def _accept_loop(self, handler: ConnectionHandler):
        # Never cleared: a shutdown() that lands before the loop starts still counts.
        while not self._shutdown_event.is_set():
            client_socket = None
            try:
                client_socket, client_address = self._socket.accept()
                self._logger.debug(
                    f"Accepted request from {client_address[0]}:{client_address[1]}"
                )
                handler(client_socket, client_address)

            except socket.timeout:
                continue

            except (OSError, RuntimeError) as e:
                if self._shutdown_event.is_set():
                    break  # The socket was closed under us by shutdown()
                self._logger.exception(f"Couldn't accept: {e}")
                if client_socket is not None:
                    self._close_quietly(client_socket)

    def _close_quietly(self, client_socket: socket.socket):
        try:
            client_socket.close()
        except OSError as e:
            self._logger.error(f"Couldn't close client: {e}")

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def _setup_signals(self):
        """
        Turn SIGINT/SIGTERM into shutdown().

        signal.signal() only works on the main thread; when the server runs
        on a worker thread (tests, embedding) the handlers are left alone.
        """
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            self._logger.info(f"Received {signal.Signals(signum).name}, shutting down...")
            self.shutdown()

        for sig in (signal.SIGTERM, signal.SIGINT):
            self._original_handlers[sig] = signal.signal(sig, shutdown_handler)

    def _restore_signals(self):
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self):
        """
        Stop the accept loop. Idempotent, safe from any thread.

        Takes effect even when called before serve_forever(); a stopped
        server is not restarted.
        """
        self._shutdown_event.set()

    def _cleanup(self):
        self._restore_signals()
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass  # Already closed
            self._socket = None
        self._ready.clear()
        self._logger.info("Listener stopped")

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the accept loop is running. Used by tests."""
        return self._ready.wait(timeout)

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown() has been called."""
        return self._shutdown_event.wait(timeout)
