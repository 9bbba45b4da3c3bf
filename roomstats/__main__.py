"""Command-line entry for roomstats.

Without arguments the API server is started. ``--report`` fetches the room
feeds once and prints a usage report to stdout instead.
"""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn

from . import run_report, run_server
from .exceptions import RoomStatsError


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the roomstats CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="roomstats",
        description="roomstats - room calendar usage analytics server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m roomstats                               # Start server on default port (8080)
  python -m roomstats --port 3000                   # Start server on port 3000
  python -m roomstats --report all --range week     # Print a JSON usage report
  python -m roomstats --report confa --format csv   # Print a CSV report for one room
        """,
    )

    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from ROOMSTATS_WEB_PORT env var)",
    )
    parser.add_argument(
        "--report",
        metavar="ROOM",
        help="Print a usage report for ROOM (or 'all') instead of starting the server",
    )
    parser.add_argument(
        "--range",
        default="week",
        choices=["day", "week", "month"],
        help="Report window (default: week)",
    )
    parser.add_argument(
        "--format",
        default="json",
        choices=["json", "csv"],
        help="Report format (default: json)",
    )

    return parser


def main(argv: list[str] | None = None) -> NoReturn:
    """Run the roomstats CLI."""
    parser = _create_parser()
    args = parser.parse_args(argv)

    if args.report:
        try:
            output = run_report(args)
        except RoomStatsError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            sys.exit(2)
        sys.stdout.write(output)
        if not output.endswith("\n"):
            sys.stdout.write("\n")
        sys.exit(0)

    run_server(args)
    sys.exit(0)


if __name__ == "__main__":
    main()
