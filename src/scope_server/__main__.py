"""Command-line entry point for the scope control-plane server."""

from __future__ import annotations

import argparse
from pathlib import Path

from .server import run_from_cli


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the SCPI control-plane server")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config.yaml"),
        help="Path to the server configuration file",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()
    run_from_cli(args.config, verbose=args.verbose)


if __name__ == "__main__":
    main()
