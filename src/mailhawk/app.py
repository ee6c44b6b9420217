# =============================================================================
# Mailhawk Server Application
# =============================================================================
# Command-line entry point: parses arguments, loads configuration and serves
# the gateway's FastAPI application with uvicorn.
#
# Configuration sources, later ones winning:
#   - Built-in defaults
#   - The TOML config file (XDG location or --config)
#   - Environment variables (a .env file in the working directory is read)
#   - --host / --port on the command line
# =============================================================================

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

from mailhawk import __version__, __app_name__
from mailhawk.config import Config, ConfigError, print_paths
from mailhawk.web.api import create_app

logger = logging.getLogger(__name__)


def configure_logging(debug: bool = False) -> None:
    """Send log records to stderr; DEBUG level with --debug."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    )
    # aioimaplib logs every command and response at DEBUG
    logging.getLogger("aioimaplib").setLevel(logging.DEBUG if debug else logging.WARNING)


# =============================================================================
# CLI Entry Point
# =============================================================================

def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace.
    """
    parser = argparse.ArgumentParser(
        prog=__app_name__,
        description="Mailhawk: an IMAP/SMTP gateway with a JSON API",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--paths",
        action="store_true",
        help="Print configuration paths and exit",
    )

    parser.add_argument(
        "--init-config",
        action="store_true",
        help="Write the default config file and exit",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config file (default: XDG config location)",
    )

    parser.add_argument(
        "--host",
        help="Interface to bind (overrides config)",
    )

    parser.add_argument(
        "--port",
        type=int,
        help="Port to listen on (overrides config)",
    )

    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode (verbose logging)",
    )

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Mailhawk.

    This function:
        1. Parses command-line arguments
        2. Handles special commands (--paths, --init-config, --version)
        3. Loads configuration
        4. Serves the API until interrupted

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    args = parse_args(argv)

    # Handle --paths flag
    if args.paths:
        print_paths()
        return 0

    if args.init_config:
        path = Config().save(args.config)
        print(f"Wrote default config to {path}")
        return 0

    configure_logging(args.debug)

    # Load configuration
    try:
        config = Config.load(args.config)
    except ConfigError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    if args.host:
        config.server.host = args.host
    if args.port:
        config.server.port = args.port

    logger.info(f"Mailhawk {__version__} listening on {config.server.host}:{config.server.port}")
    uvicorn.run(
        create_app(config),
        host=config.server.host,
        port=config.server.port,
        log_level="debug" if args.debug else "info",
    )

    return 0


if __name__ == "__main__":
    sys.exit(main())
