"""
CLI command for exporting a sequence of images as an animation.

Usage:
    phosphor export frames/*.png -o out.gif --fps 12
    phosphor export a.jpg b.jpg c.jpg -o out.webp --canvas 512x512 --scale-mode fit
    phosphor export frames/ -o sticker.gif --platform whatsapp-sticker --color-depth 8
"""

from __future__ import annotations

import argparse
import logging
import re
import sys
from concurrent.futures import TimeoutError as FutureTimeoutError
from pathlib import Path

from tqdm import tqdm

from ..config import (
    CanvasMode,
    ExportSettings,
    ScaleMode,
    find_resize_preset,
    load_settings,
    parse_color,
)
from ..exceptions import PhosphorError, format_bytes
from ..frames import SourceFrame, is_supported_path
from ..timing import delay_for_frame_rate
from ..types import ExportFormat, ExportResult, ExportStatus
from ..worker import BackgroundExport

logger = logging.getLogger(__name__)

_CANVAS_RE = re.compile(r"^(\d+)[xX](\d+)$")

_FORMAT_BY_SUFFIX = {
    ".gif": ExportFormat.GIF,
    ".png": ExportFormat.APNG,
    ".apng": ExportFormat.APNG,
    ".webp": ExportFormat.WEBP,
}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def _configure_logging(verbosity: int) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def parse_canvas(raw: str) -> tuple[int, int]:
    m = _CANVAS_RE.match(raw.strip())
    if not m:
        raise ValueError(f"Cannot parse canvas size '{raw}' (expected WxH)")
    return int(m.group(1)), int(m.group(2))


def collect_images(inputs: list[str]) -> list[Path]:
    """Expand directories into their supported images, sorted by name."""
    paths: list[Path] = []
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            paths.extend(sorted(p for p in path.iterdir() if is_supported_path(p)))
        elif path.is_file():
            paths.append(path)
        else:
            raise FileNotFoundError(f"file not found: {path}")
    return paths


def build_settings(args: argparse.Namespace) -> ExportSettings:
    """Start from ``--config`` (if any) and apply command-line overrides."""
    settings = load_settings(Path(args.config)) if args.config else ExportSettings()

    if args.format:
        settings.format = ExportFormat(args.format)
    elif args.output and Path(args.output).suffix.lower() in _FORMAT_BY_SUFFIX:
        settings.format = _FORMAT_BY_SUFFIX[Path(args.output).suffix.lower()]

    if args.platform:
        settings.apply_platform_preset(args.platform)

    if args.delay is not None:
        settings.frame_delay_ms = args.delay
    elif args.fps is not None:
        settings.frame_delay_ms = delay_for_frame_rate(args.fps)
    if args.loop is not None:
        settings.loop_count = args.loop
    if args.quality is not None:
        settings.quality = args.quality
    if args.no_dither:
        settings.enable_dithering = False
    if args.color_depth is not None:
        settings.color_depth_enabled = args.color_depth > 0
        if args.color_depth > 0:
            settings.color_depth_levels = args.color_depth

    if args.canvas:
        settings.canvas_mode = CanvasMode.CUSTOM
        settings.canvas_width, settings.canvas_height = parse_canvas(args.canvas)
    elif args.preset:
        if find_resize_preset(settings.format, args.preset) is None:
            raise ValueError(f"Unknown {settings.format.value} preset '{args.preset}'")
        settings.canvas_mode = CanvasMode.PRESET
        settings.selected_preset_id = args.preset
    if args.scale_mode:
        settings.scale_mode = ScaleMode(args.scale_mode)
    if args.background:
        settings.fit_background_color = parse_color(args.background)
        settings.use_auto_background_color = False
    if args.auto_background:
        settings.use_auto_background_color = True
    if args.scale is not None:
        settings.scale_percent = args.scale

    if args.skip is not None:
        settings.frame_skipping_enabled = args.skip > 1
        settings.frame_skip_interval = args.skip
    if args.max_size_mb is not None:
        settings.size_limit_enabled = True
        settings.max_file_size_mb = args.max_size_mb
    return settings


def _run_with_progress(
    background: BackgroundExport,
    frames: list[SourceFrame],
    output_path: Path,
    settings: ExportSettings,
) -> ExportResult:
    """Start the export and pump queued progress into a tqdm bar."""
    background.start(frames, output_path, settings.snapshot())
    bar = tqdm(
        total=100, desc="Exporting", unit="%",
        file=sys.stderr, dynamic_ncols=True,
    )
    try:
        while True:
            result = None
            try:
                result = background.result(timeout=0.1)
            except FutureTimeoutError:
                pass
            except KeyboardInterrupt:
                print("\nCancelling ...", file=sys.stderr)
                background.cancel()
                result = background.result()
            for value in background.drain_progress():
                bar.update(round(value * 100) - bar.n)
            if result is not None:
                return result
    finally:
        bar.close()


def cmd_export(args: argparse.Namespace) -> int:
    """Main handler for ``phosphor export``."""
    _configure_logging(args.verbose)

    try:
        image_paths = collect_images(args.images)
        settings = build_settings(args)
    except (OSError, ValueError, PhosphorError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_FAILED

    if not image_paths:
        print("Error: no supported images found.", file=sys.stderr)
        return EXIT_FAILED
    unsupported = [p for p in image_paths if not is_supported_path(p)]
    if unsupported:
        logger.warning("Unrecognised image extension: %s", ", ".join(p.name for p in unsupported))

    if args.output:
        output_path = Path(args.output)
    else:
        output_path = Path(image_paths[0].stem + f".{settings.format.file_extension}")

    frames = [SourceFrame(path) for path in image_paths]
    print(f"Exporting {len(frames)} images as {settings.format.name} ...")

    with BackgroundExport() as background:
        result = _run_with_progress(background, frames, output_path, settings)

    if result.status is ExportStatus.CANCELLED:
        print("Export cancelled.", file=sys.stderr)
        return EXIT_CANCELLED
    if not result.success:
        print(f"Error: {result.message}", file=sys.stderr)
        return EXIT_FAILED

    merged = result.source_frame_count - result.frame_count
    note = f", {merged} repeated frames merged" if merged > 0 else ""
    print(
        f"Done! {result.frame_count} frames -> {result.path} "
        f"({format_bytes(result.size_bytes)}{note})"
    )
    return EXIT_OK


def build_export_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``export`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "export",
        help="Export images into an animation",
        description="Combine still images into an animated GIF, APNG, or WebP.",
    )
    p.add_argument(
        "images", nargs="+",
        help="Image files or directories of images, in frame order",
    )
    p.add_argument(
        "-o", "--output", default=None,
        help="Output file path (default: <first_image_stem>.<format>)",
    )
    p.add_argument(
        "--format", choices=[f.value for f in ExportFormat], default=None,
        help="Output format (default: from the output suffix, else gif)",
    )
    timing = p.add_mutually_exclusive_group()
    timing.add_argument(
        "--delay", type=float, default=None,
        help="Frame delay in milliseconds (default: 100)",
    )
    timing.add_argument(
        "--fps", type=float, default=None,
        help="Frames per second, 1 -- 60",
    )
    p.add_argument(
        "--loop", type=int, default=None,
        help="Number of plays; 0 = loop forever (default: 0)",
    )
    p.add_argument(
        "--quality", type=float, default=None,
        help="GIF palette size (16 -- 256 colors) / WebP quality, 0.0 -- 1.0 (default: 0.8)",
    )
    p.add_argument(
        "--no-dither", action="store_true",
        help="Disable dithering after color-depth reduction",
    )
    p.add_argument(
        "--color-depth", type=int, default=None,
        help="Posterize GIF frames to N levels per channel (2 -- 30); 0 disables",
    )
    canvas = p.add_mutually_exclusive_group()
    canvas.add_argument(
        "--canvas", default=None,
        help="Custom canvas size, e.g. 512x512",
    )
    canvas.add_argument(
        "--preset", default=None,
        help="Canvas preset id (see 'phosphor presets')",
    )
    canvas.add_argument(
        "--platform", default=None,
        help="Platform target id, e.g. whatsapp-sticker",
    )
    p.add_argument(
        "--scale-mode", choices=[m.value for m in ScaleMode], default=None,
        help="How images meet the canvas (default: fill)",
    )
    p.add_argument(
        "--background", default=None,
        help="Letterbox color for --scale-mode fit, e.g. '#000000'",
    )
    p.add_argument(
        "--auto-background", action="store_true",
        help="Use the first frame's top-left pixel as the letterbox color",
    )
    p.add_argument(
        "--scale", type=float, default=None,
        help="Resize by PERCENT when no canvas is set",
    )
    p.add_argument(
        "--skip", type=int, default=None,
        help="Keep every Nth frame",
    )
    p.add_argument(
        "--max-size-mb", type=float, default=None,
        help="Fail if the output is larger than this many megabytes",
    )
    p.add_argument(
        "--config", default=None,
        help="YAML file of export settings; command-line options override it",
    )
    p.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="Increase log verbosity (-v info, -vv debug)",
    )
    p.set_defaults(func=cmd_export)
