"""
=============================================================================
TAGGING SERVER CLI ENTRY POINT
=============================================================================

    # Serve the default model on port 9191
    python -m tagserver -port 9191

    # A model file, XML output, collapsed spacing
    python -m tagserver -port 9191 -loadClassifier models/news.json \\
        -outputFormat xml -preserveSpacing false

    # A bundled model, Latin-1 on the wire
    python -m tagserver -port 9191 -loadJarClassifier default -encoding latin-1

    # Interactive client against a running server
    python -m tagserver -port 9191 -client localhost

Options may be spelled with one dash (-port) or two (--port).

=============================================================================
EXIT STATUS
=============================================================================

    2   usage error: missing/non-numeric port, bad output format,
        unknown encoding (usage is printed, no socket is opened)
    1   the classifier could not be loaded, or the port could not be bound
    0   client finished, or the server was stopped by a signal

Once listening, the server does not exit on its own.

=============================================================================
"""

import argparse
import logging
import sys
from typing import List, Optional

from . import __version__
from .client import communicate
from .config import OutputFormat, ServerConfig, parse_bool
from .errors import BindError, ClassifierLoadError, ConfigError
from .server import TaggerServer
from .tagging.loader import load_classifier

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _port(value: str) -> int:
    try:
        port = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Non-numerical port: {value!r}") from None
    if not 0 < port < 65536:
        raise argparse.ArgumentTypeError(f"Invalid port: {port}. Must be 1-65535.")
    return port


def _positive_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not a number: {value!r}") from None
    if number <= 0:
        raise argparse.ArgumentTypeError(f"Must be > 0: {value!r}")
    return number


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Not an integer: {value!r}") from None
    if number < 1:
        raise argparse.ArgumentTypeError(f"Must be >= 1: {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagserver",
        description="Serve a text tagger over TCP, one line in, one line out.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m tagserver -port 9191
  python -m tagserver -port 9191 -outputFormat inlineXML
  python -m tagserver -port 9191 -loadClassifier models/news.json
  python -m tagserver -port 9191 -client localhost
        """,
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-port", "--port",
        type=_port,
        required=True,
        help="TCP port to listen on (or to connect to with -client)",
    )
    parser.add_argument(
        "-host", "--host",
        default=None,
        help="Address to bind (default: 0.0.0.0, all interfaces)",
    )
    parser.add_argument(
        "-encoding", "--encoding",
        default=None,
        help="Character set for socket I/O (default: utf-8)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # CLASSIFIER
    # ─────────────────────────────────────────────────────────────────────

    model = parser.add_mutually_exclusive_group()
    model.add_argument(
        "-loadClassifier", "--loadClassifier",
        metavar="FILE",
        default=None,
        help="Load the classifier model from a file",
    )
    model.add_argument(
        "-loadJarClassifier", "--loadJarClassifier",
        metavar="RESOURCE",
        default=None,
        help="Load a classifier model bundled with the package",
    )

    parser.add_argument(
        "-outputFormat", "--outputFormat",
        choices=[fmt.value for fmt in OutputFormat],
        default=None,
        help="Annotation style (default: slashTags)",
    )
    parser.add_argument(
        "-preserveSpacing", "--preserveSpacing",
        metavar="{true,false}",
        type=parse_bool,
        default=None,
        help="Keep the input whitespace between tokens (default: true)",
    )

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS (off unless given)
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-readTimeout", "--readTimeout",
        type=_positive_float,
        default=None,
        metavar="SECONDS",
        help="Close sessions whose request does not arrive in time",
    )
    parser.add_argument(
        "-maxSessions", "--maxSessions",
        type=_positive_int,
        default=None,
        metavar="N",
        help="Refuse connections beyond N concurrent sessions",
    )

    # ─────────────────────────────────────────────────────────────────────
    # MODES / META
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "-client", "--client",
        nargs="?",
        const="localhost",
        default=None,
        metavar="HOST",
        help="Run the interactive client against HOST (default: localhost)",
    )
    parser.add_argument(
        "-logLevel", "--logLevel",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--version", "-version",
        action="version",
        version=f"tagserver {__version__}",
    )

    return parser


def configure_logging(level: int = logging.INFO):
    """Send log records to stderr in the server's standard format."""
    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    logging.getLogger("tagserver").setLevel(level)


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """
    Merge command-line options over the environment.

    Raises:
        ConfigError: If the merged configuration is invalid.
    """
    config = ServerConfig.from_env(
        port=args.port,
        host=args.host,
        charset=args.encoding,
        output_format=args.outputFormat,
        preserve_spacing=args.preserveSpacing,
        read_timeout=args.readTimeout,
        max_sessions=args.maxSessions,
        log_level=args.logLevel,
    )
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """
    Run the server (or the client) and return the exit status.

    Usage errors exit through argparse (status 2) before anything else
    happens.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = config_from_args(args)
    except ConfigError as e:
        parser.error(str(e))

    configure_logging(config.log_level_value)

    if args.client is not None:
        return communicate(args.client, config.port, charset=config.charset)

    try:
        classifier = load_classifier(path=args.loadClassifier, resource=args.loadJarClassifier)
    except ClassifierLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        TaggerServer(config, classifier).run()
    except BindError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
