"""
Unit tests for the Connection wrapper.
"""

import socket

import pytest

from tagserver.core.connection import Connection, ConnectionState
from tagserver.errors import LineTooLongError


ADDRESS = ("127.0.0.1", 40000)


def make_connection(sock, **kwargs) -> Connection:
    return Connection(socket=sock, address=ADDRESS, **kwargs)


class BrokenSocket:
    """A socket stand-in whose shutdown/close fail."""

    def __init__(self):
        self.close_calls = 0

    def settimeout(self, value):
        pass

    def shutdown(self, how):
        raise OSError("shutdown failed")

    def close(self):
        self.close_calls += 1
        raise OSError("close failed")


class TestReadLine:
    """Tests for Connection.read_line()."""

    def test_reads_one_line(self, socket_pair):
        """Test reading a single line."""
        server_side, client_side = socket_pair
        client_side.sendall(b"Alice works at Foo\n")

        assert make_connection(server_side).read_line() == "Alice works at Foo"

    def test_line_split_across_chunks(self, socket_pair):
        """Test a line arriving in several recv() calls."""
        server_side, client_side = socket_pair
        client_side.sendall(b"Alice works at Foo\n")

        conn = make_connection(server_side, buffer_size=3)
        assert conn.read_line() == "Alice works at Foo"

    def test_only_first_line_is_returned(self, socket_pair):
        """Test that bytes after the first newline are dropped."""
        server_side, client_side = socket_pair
        client_side.sendall(b"first line\nsecond line\n")

        assert make_connection(server_side).read_line() == "first line"

    def test_crlf_terminator(self, socket_pair):
        """Test that a trailing \\r is stripped."""
        server_side, client_side = socket_pair
        client_side.sendall(b"windows\r\n")

        assert make_connection(server_side).read_line() == "windows"

    def test_eof_without_newline_returns_data(self, socket_pair):
        """Test a request ended by EOF instead of a newline."""
        server_side, client_side = socket_pair
        client_side.sendall(b"no newline")
        client_side.shutdown(socket.SHUT_WR)

        assert make_connection(server_side).read_line() == "no newline"

    def test_immediate_eof_returns_none(self, socket_pair):
        """Test a peer that closes before sending."""
        server_side, client_side = socket_pair
        client_side.shutdown(socket.SHUT_WR)

        assert make_connection(server_side).read_line() is None

    def test_blank_line_returns_empty_string(self, socket_pair):
        """Test a blank request line."""
        server_side, client_side = socket_pair
        client_side.sendall(b"\n")

        assert make_connection(server_side).read_line() == ""

    def test_multibyte_character_split_across_chunks(self, socket_pair):
        """Test a character split between two reads."""
        server_side, client_side = socket_pair
        client_side.sendall("café crème\n".encode("utf-8"))

        conn = make_connection(server_side, buffer_size=4)
        assert conn.read_line() == "café crème"

    def test_configured_charset(self, socket_pair):
        """Test decoding with a non-default charset."""
        server_side, client_side = socket_pair
        client_side.sendall("Müller\n".encode("latin-1"))

        assert make_connection(server_side, charset="latin-1").read_line() == "Müller"

    def test_decode_error(self, socket_pair):
        """Test bytes that are invalid in the charset."""
        server_side, client_side = socket_pair
        client_side.sendall(b"\xff\xfe\xfd\n")

        with pytest.raises(UnicodeDecodeError):
            make_connection(server_side).read_line()

    def test_line_too_long_without_newline(self, socket_pair):
        """Test the size cap on an unterminated line."""
        server_side, client_side = socket_pair
        client_side.sendall(b"x" * 64)

        with pytest.raises(LineTooLongError):
            make_connection(server_side, max_line_bytes=16).read_line()

    def test_line_too_long_with_newline(self, socket_pair):
        """Test the size cap on a complete line."""
        server_side, client_side = socket_pair
        client_side.sendall(b"x" * 20 + b"\n")

        with pytest.raises(LineTooLongError):
            make_connection(server_side, max_line_bytes=16).read_line()

    def test_read_timeout(self, socket_pair):
        """Test the optional read timeout."""
        server_side, _ = socket_pair

        with pytest.raises(socket.timeout):
            make_connection(server_side, read_timeout=0.05).read_line()

    def test_state_is_reading(self, socket_pair):
        """Test the state change on read."""
        server_side, client_side = socket_pair
        client_side.sendall(b"x\n")
        conn = make_connection(server_side)

        assert conn.state is ConnectionState.NEW
        conn.read_line()
        assert conn.state is ConnectionState.READING


class TestSendLine:
    """Tests for Connection.send_line()."""

    def test_appends_newline(self, socket_pair):
        """Test that a newline is added."""
        server_side, client_side = socket_pair
        make_connection(server_side).send_line("Alice/PERSON")

        assert client_side.recv(1024) == b"Alice/PERSON\n"

    def test_does_not_double_newline(self, socket_pair):
        """Test that an existing newline is kept single."""
        server_side, client_side = socket_pair
        make_connection(server_side).send_line("done\n")

        assert client_side.recv(1024) == b"done\n"

    def test_encodes_with_charset(self, socket_pair):
        """Test encoding with a non-default charset."""
        server_side, client_side = socket_pair
        make_connection(server_side, charset="latin-1").send_line("Müller")

        assert client_side.recv(1024) == "Müller\n".encode("latin-1")

    def test_unencodable_text(self, socket_pair):
        """Test text the charset cannot represent."""
        server_side, _ = socket_pair

        with pytest.raises(UnicodeEncodeError):
            make_connection(server_side, charset="ascii").send_line("naïve")


class TestClose:
    """Tests for Connection.close()."""

    def test_peer_sees_eof(self, socket_pair):
        """Test that close() ends the stream for the peer."""
        server_side, client_side = socket_pair
        conn = make_connection(server_side)

        conn.close()

        assert conn.state is ConnectionState.CLOSED
        assert client_side.recv(1024) == b""

    def test_idempotent(self, socket_pair):
        """Test calling close() twice."""
        server_side, _ = socket_pair
        conn = make_connection(server_side)

        conn.close()
        conn.close()

        assert conn.state is ConnectionState.CLOSED

    def test_failures_are_swallowed(self):
        """Test that close() never raises."""
        sock = BrokenSocket()
        conn = make_connection(sock)

        conn.close()

        assert sock.close_calls == 1  # close() still attempted after shutdown() failed
        assert conn.state is ConnectionState.CLOSED

    def test_failures_are_logged(self, caplog):
        """Test that close failures are logged."""
        conn = make_connection(BrokenSocket())

        with caplog.at_level("DEBUG"):
            conn.close()

        assert "Couldn't close client socket" in caplog.text

    def test_context_manager_closes_on_error(self, socket_pair):
        """Test closing when the with block raises."""
        server_side, client_side = socket_pair

        with pytest.raises(RuntimeError):
            with make_connection(server_side) as conn:
                raise RuntimeError("boom")

        assert conn.state is ConnectionState.CLOSED
        assert client_side.recv(1024) == b""

    def test_client_address_helpers(self, socket_pair):
        """Test client_ip, client_port and id."""
        server_side, _ = socket_pair
        conn = make_connection(server_side)

        assert conn.client_ip == "127.0.0.1"
        assert conn.client_port == 40000
        assert len(conn.id) == 8
