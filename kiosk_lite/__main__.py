"""Command-line entry for kiosk_lite."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the kiosk_lite CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="kiosk-lite",
        description="Kiosk calendar and tasks server with a stale-while-revalidate cache",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m kiosk_lite                      # Start server on default port (5055)
  python -m kiosk_lite --port 3000          # Start server on port 3000
  python -m kiosk_lite --config kiosk.yaml  # Read settings from a YAML file
  python -m kiosk_lite --refresh            # Refresh cached data once and exit
  python -m kiosk_lite --oauth-bootstrap    # Authorize Google Tasks access
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 5055, or from PORT env var)",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="YAML configuration file; environment variables override its values",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--refresh",
        action="store_true",
        help="Force-refresh calendar and tasks once, then exit",
    )
    mode.add_argument(
        "--oauth-bootstrap",
        action="store_true",
        help="Run the Google OAuth consent flow and save tokens, then exit",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the kiosk_lite CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)
    sys.exit(run_server(args))


if __name__ == "__main__":
    main()
