"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, Optional

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tagserver import ServerConfig, TaggerServer, load_classifier
from tagserver.config import OutputFormat
from tagserver.tagging.classifier import Classifier


class EchoClassifier(Classifier):
    """Returns its arguments verbatim so tests can see what was forwarded."""

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()

    def classify(self, text, output_format, preserve_spacing):
        with self._lock:
            self.calls.append((text, output_format, preserve_spacing))
        return f"{OutputFormat.parse(output_format).value}|{preserve_spacing}|{text}"


class FailingClassifier(Classifier):
    """Always raises."""

    def classify(self, text, output_format, preserve_spacing):
        raise RuntimeError("model exploded")


@pytest.fixture
def echo_classifier() -> EchoClassifier:
    return EchoClassifier()


@pytest.fixture(scope="session")
def default_classifier():
    """The bundled default gazetteer model."""
    return load_classifier()


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def socket_pair() -> Generator:
    """A connected (server_side, client_side) socket pair."""
    server_side, client_side = socket.socketpair()
    yield server_side, client_side
    for s in (server_side, client_side):
        try:
            s.close()
        except OSError:
            pass


def make_config(**overrides) -> ServerConfig:
    """Loopback, ephemeral port, fast shutdown polling."""
    values = dict(host="127.0.0.1", port=0, accept_poll_interval=0.05, log_level="DEBUG")
    values.update(overrides)
    return ServerConfig(**values)


class ServerThread:
    """Runs a TaggerServer's accept loop in a background thread."""

    def __init__(self, server: TaggerServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self) -> "ServerThread":
        self.server.start()  # Bind here so the port is known right away
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()
        if not self.server.wait_until_ready(timeout=5.0):
            raise RuntimeError("Server failed to start")
        return self

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def request(self, payload: bytes, timeout: float = 5.0) -> bytes:
        """Send raw bytes on a fresh connection, return everything until EOF."""
        with socket.create_connection(("127.0.0.1", self.port), timeout=timeout) as s:
            if payload:
                s.sendall(payload)
            return read_until_eof(s)


def read_until_eof(sock: socket.socket) -> bytes:
    chunks = []
    while True:
        chunk = sock.recv(4096)
        if not chunk:
            return b"".join(chunks)
        chunks.append(chunk)


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll until condition() is true or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


@pytest.fixture
def run_server() -> Generator[Callable[..., ServerThread], None, None]:
    """
    Factory fixture: run_server(classifier, **config_overrides).

    Every server started through it is stopped at teardown.
    """
    started = []

    def _start(classifier: Classifier, **overrides) -> ServerThread:
        server = TaggerServer(make_config(**overrides), classifier)
        thread = ServerThread(server).start()
        started.append(thread)
        return thread

    yield _start

    for thread in started:
        thread.stop()
