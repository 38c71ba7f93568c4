"""
Command-line entry point.

Usage:
    python -m apphost
    python -m apphost 8080
    python -m apphost --port 8080 --root ./www --log-level DEBUG
    python -m apphost --config appsettings.json --no-browser
"""

import sys
import errno
import argparse

from . import __version__
from .config import HostConfig
from .server import AppHostServer


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="apphost",
        description="Serve a folder of web apps locally, with a gallery and manifest editor.",
    )
    parser.add_argument(
        "port_arg",
        nargs="?",
        type=int,
        metavar="PORT",
        help="Port to listen on (shorthand for --port)",
    )
    parser.add_argument("--host", "-H", help="Host to bind to (default: 127.0.0.1)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 5000)")
    parser.add_argument("--root", "-r", help="Content root directory (default: www)")
    parser.add_argument("--config", "-c", help="JSON settings file")
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-format", choices=["text", "json"], help="Access log format")
    parser.add_argument("--no-browser", action="store_true", help="Do not open a browser on startup")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> HostConfig:
    """Defaults ← settings file ← environment ← flags."""
    config = HostConfig()
    if args.config:
        config = HostConfig.from_file(args.config, base=config)
    config = HostConfig.from_env(base=config)

    if args.host:
        config.host = args.host
    if args.port is not None:
        config.port = args.port
    if args.root:
        config.content_root = args.root
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format
    if args.no_browser:
        config.open_browser = False

    # A bare positional port wins over everything
    if args.port_arg is not None:
        config.port = args.port_arg

    return config


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
        server = AppHostServer(config)
    except (OSError, ValueError) as e:
        parser.error(str(e))

    try:
        server.run()
    except OSError as e:
        if e.errno == errno.EADDRINUSE:
            print(f"Port {config.port} is already in use. Pick another one with --port.", file=sys.stderr)
            return 1
        raise
    return 0


if __name__ == "__main__":
    sys.exit(main())
