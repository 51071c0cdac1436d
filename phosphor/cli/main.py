"""Main CLI entry point for phosphor."""

from __future__ import annotations

import argparse
import sys

from phosphor import __version__

from .export_cli import build_export_parser
from .presets_cli import build_presets_parser


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="phosphor",
        description="Export still images as an animated GIF, APNG or WebP",
    )
    parser.add_argument("--version", action="version", version=f"phosphor {__version__}")
    subparsers = parser.add_subparsers(dest="command")
    build_export_parser(subparsers)
    build_presets_parser(subparsers)
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


def cli_entry() -> None:
    sys.exit(main())
