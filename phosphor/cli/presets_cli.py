"""
CLI command listing canvas presets and platform targets.

Usage:
    phosphor presets
    phosphor presets --format webp
"""

from __future__ import annotations

import argparse

from ..config import PLATFORM_PRESETS, RESIZE_PRESETS
from ..types import ExportFormat


def _format_preset_table(fmt: ExportFormat) -> str:
    presets = RESIZE_PRESETS[fmt]
    id_w = max(len(p.id) for p in presets)
    lines = [f"{fmt.name} canvas presets:"]
    for p in presets:
        lines.append(f"  {p.id:<{id_w}}   {p.display_label}")
    return "\n".join(lines) + "\n"


def _format_platform_table() -> str:
    id_w = max(len(p.id) for p in PLATFORM_PRESETS)
    lines = ["Platform targets:"]
    for p in PLATFORM_PRESETS:
        lines.append(
            f"  {p.id:<{id_w}}   {p.max_width}x{p.max_height}, "
            f"<= {p.max_file_size_mb:g} MB, {p.recommended_frame_rate:g} fps   {p.notes}"
        )
    return "\n".join(lines) + "\n"


def cmd_presets(args: argparse.Namespace) -> int:
    """Handler for ``phosphor presets``."""
    formats = [ExportFormat(args.format)] if args.format else list(ExportFormat)
    for fmt in formats:
        print(_format_preset_table(fmt))
    print(_format_platform_table(), end="")
    return 0


def build_presets_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``presets`` subcommand."""
    p = subparsers.add_parser(
        "presets",
        help="List canvas presets and platform targets",
    )
    p.add_argument(
        "--format", choices=[f.value for f in ExportFormat], default=None,
        help="Only list presets for this format",
    )
    p.set_defaults(func=cmd_presets)
