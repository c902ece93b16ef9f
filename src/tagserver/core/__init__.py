"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The networking plumbing underneath the tagging server:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds host:port, runs the accept() loop on the calling thread    │
    │  • Logs and survives accept failures                                │
    │  • Stops on SIGINT/SIGTERM or shutdown()                            │
    └─────────────────────────────────────────────────────────────────────┘
                                    │  (socket, address)
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                        SESSION SPAWNER                               │
    │  • One daemon thread per connection, fire-and-forget                │
    │  • Optional cap on concurrent sessions                              │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered line read, charset decode                               │
    │  • Encoded line write                                               │
    │  • Best-effort close, context manager                               │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .spawner import SessionSpawner

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "SessionSpawner",
]
