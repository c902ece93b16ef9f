"""
=============================================================================
CLIENT HARNESS
=============================================================================

The client mirrors the server's one-shot protocol: every request gets its
own connection.

    for each line typed by the operator (a blank line ends the loop):
        connect(host, port)
        send line + "\\n"
        read one line back
        print it
        close

A server that closes without answering (unreadable request, classifier
failure, session cap) shows up here as ``None`` from TaggerClient.tag().

=============================================================================
"""

import socket
import sys
from typing import Optional, TextIO


PROMPT = "Input some text and press RETURN to tag it, or just RETURN to finish."


class TaggerClient:
    """
    Talks to a tagging server, one connection per request.

    Usage:
        client = TaggerClient("localhost", 9191)
        print(client.tag("Alice works at Foo"))
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 1234,
        charset: str = "utf-8",
        timeout: Optional[float] = None,
        buffer_size: int = 4096,
    ):
        self.host = host or "localhost"
        self.port = port
        self.charset = charset
        self.timeout = timeout
        self.buffer_size = buffer_size

    def tag(self, text: str) -> Optional[str]:
        """
        Send one line and return the server's answer.

        Returns:
            The response line without its terminator, or None if the server
            closed the connection without sending anything.

        Raises:
            socket.gaierror: If the host name cannot be resolved.
            OSError: On connection or I/O failure.
        """
        with socket.create_connection((self.host, self.port), timeout=self.timeout) as sock:
            sock.sendall(f"{text}\n".encode(self.charset))
            return self._read_line(sock)

    def _read_line(self, sock: socket.socket) -> Optional[str]:
        buffer = b""
        while b"\n" not in buffer:
            chunk = sock.recv(self.buffer_size)
            if not chunk:
                break
            buffer += chunk
        if not buffer:
            return None
        line = buffer.split(b"\n", 1)[0]
        return line.rstrip(b"\r").decode(self.charset)


def communicate(
    host: Optional[str],
    port: int,
    charset: str = "utf-8",
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    """
    Interactive loop: tag each input line until EOF or a blank line.

    Returns:
        0 when the operator finished, 1 on a connection problem.
    """
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr
    client = TaggerClient(host or "localhost", port, charset=charset)

    print(PROMPT, file=stdout, flush=True)

    for raw in stdin:
        text = raw.rstrip("\r\n")
        if not text:
            break
        try:
            response = client.tag(text)
        except socket.gaierror:
            print(f"Cannot find host: {client.host}", file=stderr)
            return 1
        except OSError:
            print(f"I/O error in the connection to: {client.host}", file=stderr)
            return 1
        print(response if response is not None else "", file=stdout, flush=True)

    return 0
