"""
Unit tests for the listening socket and the accept loop.
"""

import logging
import socket
import threading

import pytest

from tagserver.config import ServerConfig
from tagserver.core.socket_server import SocketServer
from tagserver.errors import BindError


class FakeClient:
    """An accepted client socket stand-in."""

    def __init__(self, fail_close=False):
        self.fail_close = fail_close
        self.closed = False

    def close(self):
        self.closed = True
        if self.fail_close:
            raise OSError("close failed")


class ScriptedListener:
    """
    Replays a list of accept() results.

    Each item is either an exception to raise or a client to return. When
    the script runs out the server is shut down.
    """

    def __init__(self, server, script):
        self.server = server
        self.script = list(script)
        self.accept_calls = 0

    def accept(self):
        self.accept_calls += 1
        if not self.script:
            self.server.shutdown()
            raise socket.timeout()
        item = self.script.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item, ("10.0.0.1", 5555)

    def close(self):
        pass


def run_scripted(script, handler):
    server = SocketServer(ServerConfig(host="127.0.0.1", port=0))
    listener = ScriptedListener(server, script)
    server._socket = listener
    server._accept_loop(handler)
    return listener


class TestBind:
    """Tests for SocketServer.bind()."""

    def test_ephemeral_port(self):
        """Test binding port 0."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0))
        try:
            host, port = server.bind()
            assert host == "127.0.0.1"
            assert port > 0
            assert server.address == (host, port)
        finally:
            server._cleanup()

    def test_bind_is_idempotent(self):
        """Test calling bind() twice."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0))
        try:
            assert server.bind() == server.bind()
        finally:
            server._cleanup()

    def test_port_in_use(self):
        """Test binding a port that is taken."""
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as taken:
            taken.bind(("127.0.0.1", 0))
            taken.listen(1)
            port = taken.getsockname()[1]

            server = SocketServer(ServerConfig(host="127.0.0.1", port=port))
            with pytest.raises(BindError) as exc_info:
                server.bind()

        assert exc_info.value.port == port
        assert isinstance(exc_info.value.__cause__, OSError)
        assert not server.is_running

    def test_unbindable_address(self):
        """Test binding an address not on this host."""
        server = SocketServer(ServerConfig(host="203.0.113.254", port=0))

        with pytest.raises(BindError):
            server.bind()


class TestAcceptLoop:
    """Tests for the accept loop's error handling."""

    def test_hands_each_client_to_handler(self):
        """Test that each accepted client reaches the handler."""
        clients = [FakeClient(), FakeClient()]
        handled = []

        run_scripted(clients, lambda sock, addr: handled.append((sock, addr)))

        assert [sock for sock, _ in handled] == clients
        assert handled[0][1] == ("10.0.0.1", 5555)

    def test_accept_error_does_not_stop_the_loop(self, caplog):
        """Test that accept errors are logged and skipped."""
        client = FakeClient()
        handled = []

        with caplog.at_level(logging.ERROR):
            listener = run_scripted(
                [OSError("EMFILE"), ConnectionAbortedError("aborted"), client],
                lambda sock, addr: handled.append(sock),
            )

        assert handled == [client]
        assert listener.accept_calls == 4
        assert caplog.text.count("Couldn't accept") == 2

    def test_handler_failure_closes_the_client(self, caplog):
        """Test that a failed handoff closes the client."""
        client, survivor = FakeClient(), FakeClient()
        handled = []

        def handler(sock, addr):
            if sock is client:
                raise RuntimeError("can't start new thread")
            handled.append(sock)

        with caplog.at_level(logging.ERROR):
            run_scripted([client, survivor], handler)

        assert client.closed
        assert handled == [survivor]

    def test_close_failure_is_logged_and_ignored(self, caplog):
        """Test a client that cannot be closed."""
        client, survivor = FakeClient(fail_close=True), FakeClient()
        handled = []

        def handler(sock, addr):
            if sock is client:
                raise OSError("setsockopt failed")
            handled.append(sock)

        with caplog.at_level(logging.ERROR):
            run_scripted([client, survivor], handler)

        assert client.closed
        assert handled == [survivor]
        assert "Couldn't close client" in caplog.text

    def test_error_after_shutdown_ends_the_loop(self):
        """Test an accept error caused by shutdown."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0))

        class ClosedListener:
            def accept(self):
                server.shutdown()
                raise OSError("Bad file descriptor")

        server._socket = ClosedListener()
        server._accept_loop(lambda sock, addr: None)

        assert not server.is_running


class TestShutdown:
    """Tests for shutdown()."""

    def test_shutdown_is_idempotent(self):
        """Test calling shutdown() twice."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0))

        server.shutdown()
        server.shutdown()

        assert server.wait_for_shutdown(0)
        assert not server.is_running

    def test_shutdown_before_serve_forever(self):
        """Test that an early shutdown() stops the loop as soon as it starts."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0, accept_poll_interval=0.05))
        server.bind()
        server.shutdown()
        handled = []

        thread = threading.Thread(
            target=server.serve_forever,
            args=(lambda sock, addr: handled.append(sock),),
            daemon=True,
        )
        thread.start()
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert handled == []
        assert not server.is_running

    def test_is_running_while_serving(self):
        """Test is_running across the server lifecycle."""
        server = SocketServer(ServerConfig(host="127.0.0.1", port=0, accept_poll_interval=0.05))
        assert not server.is_running

        thread = threading.Thread(
            target=server.serve_forever, args=(lambda sock, addr: sock.close(),), daemon=True,
        )
        thread.start()
        assert server.wait_until_ready(5.0)
        assert server.is_running

        server.shutdown()
        thread.join(timeout=2.0)
        assert not thread.is_alive()
        assert not server.is_running
