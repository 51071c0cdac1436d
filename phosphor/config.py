"""
Live export settings, canvas presets and platform targets.

``ExportSettings`` is the mutable object an interactive front end edits.
``snapshot()`` clamps every value into range and freezes it into an
``ExportConfiguration``; the pipeline only ever sees the snapshot, so
settings changed during an export do not affect it.

Settings can be read from a YAML file for the command line::

    format: gif
    frame_delay_ms: 80
    loop_count: 0
    canvas_mode: custom
    canvas_width: 480
    canvas_height: 480
    scale_mode: fit
    fit_background_color: "#202020"
    color_depth_enabled: true
    color_depth_levels: 8
"""

from __future__ import annotations

import dataclasses
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

import yaml
from PIL import ImageColor

from phosphor.constants import (
    COLOR_DEPTH_DISABLED,
    COLOR_DEPTH_MAX,
    COLOR_DEPTH_MIN,
    FRAME_DELAY_MAX_MS,
    FRAME_DELAY_MIN_MS,
    LOOP_COUNT_INFINITE,
    LOOP_COUNT_MAX,
    LOOP_COUNT_MIN,
    QUALITY_MAX,
    QUALITY_MIN,
)
from phosphor.exceptions import ConfigurationError
from phosphor.processing import approximate_color_count
from phosphor.resize import clamp_canvas_dimension
from phosphor.timing import delay_for_frame_rate
from phosphor.types import (
    Color,
    ExportConfiguration,
    ExportFormat,
    FillResize,
    FitResize,
    ResizeInstruction,
    ScaleResize,
)

logger = logging.getLogger(__name__)


class CanvasMode(enum.Enum):
    ORIGINAL = "original"   # source dimensions, no resize
    PRESET = "preset"
    CUSTOM = "custom"


class ScaleMode(enum.Enum):
    FILL = "fill"           # crop to cover the canvas
    FIT = "fit"             # letterbox, whole image visible


# ---------------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ResizePreset:
    id: str
    label: str
    width: int
    height: int

    @property
    def display_label(self) -> str:
        return f"{self.label} ({self.width}x{self.height})"


@dataclass(frozen=True)
class PlatformPreset:
    """Size and timing constraints of a sticker / emoji platform."""
    id: str
    label: str
    max_width: int
    max_height: int
    max_file_size_mb: float
    recommended_frame_rate: float
    notes: str = ""

    @property
    def max_file_size_bytes(self) -> int:
        return int(self.max_file_size_mb * 1024 * 1024)


RESIZE_PRESETS: dict[ExportFormat, tuple[ResizePreset, ...]] = {
    ExportFormat.GIF: (
        ResizePreset("gif-square", "Square", 480, 480),
        ResizePreset("gif-sd", "SD", 640, 480),
        ResizePreset("gif-720", "HD 720p", 1280, 720),
        ResizePreset("gif-1080", "HD 1080p", 1920, 1080),
    ),
    ExportFormat.WEBP: (
        ResizePreset("webp-story", "Story", 1080, 1920),
        ResizePreset("webp-720", "HD 720p", 1280, 720),
        ResizePreset("webp-1080", "HD 1080p", 1920, 1080),
        ResizePreset("webp-1440", "QHD", 2560, 1440),
    ),
    ExportFormat.APNG: (
        ResizePreset("apng-small", "Small", 512, 512),
        ResizePreset("apng-720", "HD 720p", 1280, 720),
        ResizePreset("apng-1080", "HD 1080p", 1920, 1080),
        ResizePreset("apng-1440", "QHD", 2560, 1440),
    ),
}

PLATFORM_PRESETS: tuple[PlatformPreset, ...] = (
    PlatformPreset("whatsapp-sticker", "WhatsApp Sticker", 512, 512, 1.0, 8, "512x512 px, < 1 MB"),
    PlatformPreset("discord-emoji", "Discord Emoji", 320, 320, 0.48, 15, "320x320 px, 512 KB"),
    PlatformPreset("slack-sticker", "Slack Sticker", 512, 512, 0.98, 12, "512x512 px, 1 MB"),
    PlatformPreset("telegram-sticker", "Telegram Sticker", 512, 512, 1.9, 24, "Animated sticker, < 2 MB"),
)


def resize_presets(fmt: ExportFormat) -> tuple[ResizePreset, ...]:
    return RESIZE_PRESETS[fmt]


def find_resize_preset(fmt: ExportFormat, preset_id: str) -> ResizePreset | None:
    for preset in RESIZE_PRESETS[fmt]:
        if preset.id == preset_id:
            return preset
    return None


def default_preset_id(fmt: ExportFormat) -> str:
    return RESIZE_PRESETS[fmt][0].id


def find_platform_preset(preset_id: str) -> PlatformPreset | None:
    for preset in PLATFORM_PRESETS:
        if preset.id == preset_id:
            return preset
    return None


def parse_color(value: Any) -> Color:
    """Accept "#rrggbb", CSS color names, or an (r, g, b) sequence."""
    if isinstance(value, str):
        try:
            rgb = ImageColor.getrgb(value)
        except ValueError as exc:
            raise ConfigurationError(f"Unknown color {value!r}") from exc
        return (rgb[0], rgb[1], rgb[2])
    try:
        r, g, b = (int(c) for c in value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid color {value!r}") from exc
    return (r, g, b)


# ---------------------------------------------------------------------------
# Live settings
# ---------------------------------------------------------------------------

@dataclass
class ExportSettings:
    """Mutable export settings; call ``snapshot()`` to start an export."""
    format: ExportFormat = ExportFormat.GIF
    frame_delay_ms: float = 100.0
    loop_count: int = LOOP_COUNT_INFINITE
    quality: float = 0.8
    enable_dithering: bool = True
    canvas_mode: CanvasMode = CanvasMode.ORIGINAL
    canvas_width: float = 640
    canvas_height: float = 480
    selected_preset_id: str | None = None
    scale_mode: ScaleMode = ScaleMode.FILL
    scale_percent: float | None = None
    fit_background_color: Color = (255, 255, 255)
    use_auto_background_color: bool = False
    color_depth_enabled: bool = False
    color_depth_levels: float = 16
    frame_skipping_enabled: bool = False
    frame_skip_interval: int = 2
    size_limit_enabled: bool = False
    max_file_size_mb: float = 8.0
    override_custom_frame_timings: bool = False
    selected_platform_id: str | None = None

    # -- derived values ------------------------------------------------------

    @property
    def clamped_color_depth_levels(self) -> int:
        if not self.color_depth_enabled:
            return COLOR_DEPTH_DISABLED
        levels = int(round(self.color_depth_levels))
        return max(COLOR_DEPTH_MIN, min(levels, COLOR_DEPTH_MAX))

    @property
    def approximate_color_count(self) -> int:
        return approximate_color_count(self.clamped_color_depth_levels)

    @property
    def effective_frame_skip_interval(self) -> int:
        if not self.frame_skipping_enabled:
            return 1
        return max(1, int(self.frame_skip_interval))

    @property
    def max_file_size_bytes(self) -> int | None:
        if not self.size_limit_enabled:
            return None
        return int(max(0.01, self.max_file_size_mb) * 1024 * 1024)

    @property
    def resolved_canvas_size(self) -> tuple[int, int] | None:
        """Target canvas in px, clamped to the supported range, or None."""
        if self.canvas_mode is CanvasMode.ORIGINAL:
            return None
        if self.canvas_mode is CanvasMode.PRESET:
            preset_id = self.selected_preset_id or default_preset_id(self.format)
            preset = find_resize_preset(self.format, preset_id)
            if preset is None:
                logger.warning(
                    "Unknown %s preset %r, exporting at original size",
                    self.format.name, preset_id,
                )
                return None
            width, height = preset.width, preset.height
        else:
            width, height = self.canvas_width, self.canvas_height
        return clamp_canvas_dimension(width), clamp_canvas_dimension(height)

    @property
    def resize_instruction(self) -> ResizeInstruction | None:
        target = self.resolved_canvas_size
        if target is None:
            if self.scale_percent is not None and self.scale_percent != 100:
                return ScaleResize(percent=float(self.scale_percent))
            return None
        if self.scale_mode is ScaleMode.FIT:
            return FitResize(target[0], target[1], background=self.fit_background_color)
        return FillResize(target[0], target[1])

    # -- mutations -----------------------------------------------------------

    def apply_platform_preset(self, preset_id: str) -> None:
        """Adopt a platform's canvas, size limit and frame rate."""
        preset = find_platform_preset(preset_id)
        if preset is None:
            raise ConfigurationError(f"Unknown platform preset {preset_id!r}")
        self.selected_platform_id = preset.id
        self.canvas_mode = CanvasMode.CUSTOM
        self.canvas_width = preset.max_width
        self.canvas_height = preset.max_height
        self.size_limit_enabled = True
        self.max_file_size_mb = preset.max_file_size_mb
        self.frame_delay_ms = delay_for_frame_rate(preset.recommended_frame_rate)

    def snapshot(self) -> ExportConfiguration:
        """Clamp into range and freeze into an ExportConfiguration."""
        delay = min(max(self.frame_delay_ms, FRAME_DELAY_MIN_MS), FRAME_DELAY_MAX_MS)
        if delay != self.frame_delay_ms:
            logger.warning("Frame delay %.1f ms clamped to %.1f ms", self.frame_delay_ms, delay)

        loop_count = int(self.loop_count)
        if loop_count != LOOP_COUNT_INFINITE:
            loop_count = min(max(loop_count, LOOP_COUNT_MIN), LOOP_COUNT_MAX)

        return ExportConfiguration(
            format=self.format,
            global_frame_delay_ms=delay,
            loop_count=loop_count,
            quality=min(max(float(self.quality), QUALITY_MIN), QUALITY_MAX),
            dithering_enabled=self.enable_dithering,
            resize_instruction=self.resize_instruction,
            color_depth_levels=self.clamped_color_depth_levels,
            use_auto_background_color=self.use_auto_background_color,
            frame_skip_interval=self.effective_frame_skip_interval,
            max_file_size_bytes=self.max_file_size_bytes,
            override_custom_frame_timings=self.override_custom_frame_timings,
        )

    # -- loading ---------------------------------------------------------------

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> ExportSettings:
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigurationError(f"Unknown export settings: {', '.join(unknown)}")

        values = dict(data)
        try:
            if "format" in values:
                values["format"] = ExportFormat(str(values["format"]).lower())
            if "canvas_mode" in values:
                values["canvas_mode"] = CanvasMode(str(values["canvas_mode"]).lower())
            if "scale_mode" in values:
                values["scale_mode"] = ScaleMode(str(values["scale_mode"]).lower())
        except ValueError as exc:
            raise ConfigurationError(str(exc)) from exc
        if "fit_background_color" in values:
            values["fit_background_color"] = parse_color(values["fit_background_color"])

        settings = cls(**values)
        platform = values.get("selected_platform_id")
        if platform:
            settings.apply_platform_preset(platform)
        return settings


def load_settings(path: Path) -> ExportSettings:
    """Read ExportSettings from a YAML file."""
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"{path}: invalid YAML: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path}: expected a mapping of settings")
    logger.debug("Loaded %d export settings from %s", len(data), path)
    return ExportSettings.from_mapping(data)
