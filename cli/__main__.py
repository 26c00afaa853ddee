"""Entry point for running the CLI as a module."""

import argparse
import asyncio
import sys

from metis.configs.system import DEFAULT_DASHBOARD

from .metis_cli import main


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Interactive CLI for the Metis API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--host", type=str, default="localhost", help="Server host (default: localhost)"
    )
    parser.add_argument(
        "--port", type=int, default=8080, help="Server port (default: 8080)"
    )
    parser.add_argument(
        "--dashboard",
        type=str,
        default=DEFAULT_DASHBOARD,
        help=f"Dashboard whose conversation is resumed (default: {DEFAULT_DASHBOARD})",
    )
    parser.add_argument(
        "--show-tool-results",
        action="store_true",
        help="Print a preview of every query result",
    )
    parser.add_argument(
        "--debug", action="store_true", help="Enable debug logging"
    )
    return parser.parse_args()


def cli_entry() -> None:
    args = parse_args()
    try:
        asyncio.run(
            main(
                host=args.host,
                port=args.port,
                dashboard=args.dashboard,
                debug=args.debug,
                show_tool_results=args.show_tool_results,
            )
        )
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    cli_entry()
