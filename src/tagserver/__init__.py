"""
=============================================================================
TAGSERVER - A Text Tagger Served Over TCP
=============================================================================

Clients open a connection, send one line of text, and get the same text
back annotated with labelled spans, in one of three formats. Then the
connection closes.

    $ python -m tagserver -port 9191 &
    $ printf 'Alice works at Foo\\n' | nc localhost 9191
    Alice/PERSON works/O at/O Foo/ORGANIZATION

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tagserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m tagserver)
    ├── server.py            # TaggerServer: listener + session spawning
    ├── session.py           # One connection: read → classify → write → close
    ├── client.py            # One-connection-per-line client and harness
    ├── config.py            # ServerConfig dataclass, OutputFormat
    ├── errors.py            # Exception hierarchy
    ├── core/                # Networking plumbing
    │   ├── socket_server.py # Bind + accept loop
    │   ├── connection.py    # Line-oriented socket wrapper
    │   └── spawner.py       # Thread-per-connection
    ├── tagging/             # The classifier side
    │   ├── classifier.py    # Classifier interface, gazetteer tagger
    │   ├── formats.py       # slashTags / xml / inlineXML
    │   └── loader.py        # Model loading
    └── classifiers/         # Bundled models

=============================================================================
QUICK START
=============================================================================

    from tagserver import ServerConfig, TaggerServer, load_classifier

    server = TaggerServer(ServerConfig(port=9191), load_classifier())
    server.run()

=============================================================================
"""

__version__ = "1.0.0"

from .config import OutputFormat, ServerConfig
from .errors import (
    BindError,
    ClassifierLoadError,
    ConfigError,
    LineTooLongError,
    TaggerServerError,
)
from .server import TaggerServer, create_server
from .session import Session, SessionOutcome, handle_connection
from .client import TaggerClient, communicate
from .tagging import Classifier, GazetteerClassifier, load_classifier

__all__ = [
    "__version__",
    "OutputFormat",
    "ServerConfig",
    "TaggerServer",
    "create_server",
    "Session",
    "SessionOutcome",
    "handle_connection",
    "TaggerClient",
    "communicate",
    "Classifier",
    "GazetteerClassifier",
    "load_classifier",
    "TaggerServerError",
    "ConfigError",
    "BindError",
    "ClassifierLoadError",
    "LineTooLongError",
]
