"""
=============================================================================
XEND CLI
=============================================================================

    $ xend                                   # serve . on localhost:8000
    $ xend -host 0.0.0.0 -port 9000 -dir ./public
    $ python -m xend -dir ~/Downloads

Flags take one dash, like Go tools; two dashes work as well. Defaults can
come from XEND_HOST, XEND_PORT, XEND_DIR and XEND_LOG_LEVEL; flags win.

Exit codes:
    0   stopped by SIGINT/SIGTERM
    1   the server could not start (address in use, bad host)
    2   invalid flags or settings

=============================================================================
"""

import argparse
import logging
import sys
from dataclasses import replace
from typing import Optional, Sequence

from . import __version__
from .config import ServerConfig
from .server import HTTPServer, setup_logging


logger = logging.getLogger("xend")


class _HelpFormatter(
    argparse.RawDescriptionHelpFormatter,
    argparse.ArgumentDefaultsHelpFormatter,
):
    pass


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="xend",
        usage="xend [options]",
        description="xend - A local file-server",
        formatter_class=_HelpFormatter,
        epilog="Example: xend -host 0.0.0.0 -port 9000 -dir ./public",
    )

    parser.add_argument(
        "-host", "--host",
        default=defaults.host,
        help="Host to listen on",
    )
    parser.add_argument(
        "-port", "--port",
        type=int,
        default=defaults.port,
        help="Port to listen on",
    )
    parser.add_argument(
        "-dir", "--dir",
        dest="directory",
        default=defaults.directory,
        help="Directory to serve",
    )
    parser.add_argument(
        "-log-level", "--log-level",
        dest="log_level",
        type=str.upper,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=defaults.log_level,
        help="Logging level",
    )
    parser.add_argument(
        "-version", "--version",
        action="version",
        version=f"xend {__version__}",
    )

    return parser


def parse_config(argv: Optional[Sequence[str]] = None) -> ServerConfig:
    """
    Build a validated ServerConfig from the environment and flags.

    Exits with status 2 (argparse's usage error) on anything invalid.
    """
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        defaults = ServerConfig()
        build_parser(defaults).error(str(e))

    parser = build_parser(defaults)
    args = parser.parse_args(argv)

    config = replace(
        defaults,
        host=args.host,
        port=args.port,
        directory=args.directory,
        log_level=args.log_level,
    )

    try:
        config.validate()
    except ValueError as e:
        parser.error(str(e))

    return config


def main(argv: Optional[Sequence[str]] = None):
    """CLI entry point."""
    config = parse_config(argv)
    setup_logging(config.log_level)

    server = HTTPServer(config)

    try:
        server.run()
    except OSError as e:
        logger.critical("HTTP server error: %s", e)
        sys.exit(1)


if __name__ == "__main__":
    main()
