"""
Core data structures used throughout the export pipeline.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from PIL import Image

from phosphor.constants import (
    CANVAS_DIMENSION_MAX,
    CANVAS_DIMENSION_MIN,
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
    RIGHT_ANGLES,
    SCALE_PERCENT_MAX,
    SCALE_PERCENT_MIN,
)
from phosphor.exceptions import ConfigurationError


class ExportFormat(enum.Enum):
    """Supported animation containers."""
    GIF = "gif"
    APNG = "apng"
    WEBP = "webp"

    @property
    def file_extension(self) -> str:
        return "png" if self is ExportFormat.APNG else self.value

    @property
    def is_palette_limited(self) -> bool:
        """Only GIF goes through color-depth reduction and dithering."""
        return self is ExportFormat.GIF


class ExportPhase(enum.Enum):
    """Orchestrator lifecycle."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# Per-frame transform
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FrameTransform:
    """Rotation (clockwise degrees), uniform scale (%) and pixel offset.

    Offsets are measured from the centered position: +x moves the image
    right, +y moves it down.
    """
    rotation: int = 0
    scale: float = 100.0
    offset_x: float = 0.0
    offset_y: float = 0.0

    def __post_init__(self) -> None:
        rotation = int(self.rotation) % 360
        if rotation not in RIGHT_ANGLES or rotation != self.rotation % 360:
            raise ConfigurationError(
                f"Rotation must be a multiple of 90 degrees, got {self.rotation!r}"
            )
        object.__setattr__(self, "rotation", rotation)
        scale = min(max(float(self.scale), SCALE_PERCENT_MIN), SCALE_PERCENT_MAX)
        object.__setattr__(self, "scale", scale)

    @property
    def is_identity(self) -> bool:
        return (
            self.rotation == 0
            and self.scale == 100.0
            and self.offset_x == 0
            and self.offset_y == 0
        )

    @property
    def swaps_dimensions(self) -> bool:
        return self.rotation in (90, 270)

    def rotated_clockwise(self) -> FrameTransform:
        return replace(self, rotation=(self.rotation + 90) % 360)

    def rotated_counter_clockwise(self) -> FrameTransform:
        return replace(self, rotation=(self.rotation - 90) % 360)

    def rotated_180(self) -> FrameTransform:
        return replace(self, rotation=(self.rotation + 180) % 360)

    def with_scale(self, scale: float) -> FrameTransform:
        return replace(self, scale=scale)

    def with_offset(self, offset_x: float, offset_y: float) -> FrameTransform:
        return replace(self, offset_x=offset_x, offset_y=offset_y)


IDENTITY = FrameTransform()


# ---------------------------------------------------------------------------
# Resize instruction (closed sum type)
# ---------------------------------------------------------------------------

Color = tuple[int, int, int]


@dataclass(frozen=True)
class ScaleResize:
    """Uniform percentage resize of the whole frame."""
    percent: float


@dataclass(frozen=True)
class FillResize:
    """Cover the target canvas; overflow is clipped."""
    width: int
    height: int

    @property
    def target_size(self) -> tuple[int, int]:
        return (self.width, self.height)


@dataclass(frozen=True)
class FitResize:
    """Contain within the target canvas; the letterbox gets *background*."""
    width: int
    height: int
    background: Color = (255, 255, 255)

    @property
    def target_size(self) -> tuple[int, int]:
        return (self.width, self.height)


ResizeInstruction = Union[ScaleResize, FillResize, FitResize]


def instruction_target_size(
    instruction: ResizeInstruction | None,
) -> tuple[int, int] | None:
    """Canvas size implied by *instruction*, or None for scale / no resize."""
    if isinstance(instruction, (FillResize, FitResize)):
        return instruction.target_size
    return None


# ---------------------------------------------------------------------------
# Export configuration snapshot
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExportConfiguration:
    """Immutable settings snapshot taken once per export."""
    format: ExportFormat = ExportFormat.GIF
    global_frame_delay_ms: float = 100.0
    loop_count: int = LOOP_COUNT_INFINITE        # 0 = infinite
    quality: float = 0.8                         # GIF / WebP only
    dithering_enabled: bool = True
    resize_instruction: Optional[ResizeInstruction] = None
    color_depth_levels: int = COLOR_DEPTH_DISABLED
    use_auto_background_color: bool = False
    frame_skip_interval: int = 1
    max_file_size_bytes: int | None = None
    override_custom_frame_timings: bool = False

    def __post_init__(self) -> None:
        if not FRAME_DELAY_MIN_MS - 1e-6 <= self.global_frame_delay_ms <= FRAME_DELAY_MAX_MS:
            raise ConfigurationError(
                f"global_frame_delay_ms must be in "
                f"[{FRAME_DELAY_MIN_MS:.1f}, {FRAME_DELAY_MAX_MS:.0f}], "
                f"got {self.global_frame_delay_ms}"
            )
        if self.loop_count != LOOP_COUNT_INFINITE and not (
            LOOP_COUNT_MIN <= self.loop_count <= LOOP_COUNT_MAX
        ):
            raise ConfigurationError(
                f"loop_count must be 0 (infinite) or in "
                f"[{LOOP_COUNT_MIN}, {LOOP_COUNT_MAX}], got {self.loop_count}"
            )
        if not QUALITY_MIN <= self.quality <= QUALITY_MAX:
            raise ConfigurationError(f"quality must be in [0, 1], got {self.quality}")
        if self.color_depth_levels != COLOR_DEPTH_DISABLED and not (
            COLOR_DEPTH_MIN <= self.color_depth_levels <= COLOR_DEPTH_MAX
        ):
            raise ConfigurationError(
                f"color_depth_levels must be 0 (disabled) or in "
                f"[{COLOR_DEPTH_MIN}, {COLOR_DEPTH_MAX}], got {self.color_depth_levels}"
            )
        target = instruction_target_size(self.resize_instruction)
        if target is not None and not all(
            CANVAS_DIMENSION_MIN <= side <= CANVAS_DIMENSION_MAX for side in target
        ):
            raise ConfigurationError(
                f"canvas must be within [{CANVAS_DIMENSION_MIN}, {CANVAS_DIMENSION_MAX}] "
                f"px per side, got {target[0]}x{target[1]}"
            )
        if self.frame_skip_interval < 1:
            raise ConfigurationError(
                f"frame_skip_interval must be >= 1, got {self.frame_skip_interval}"
            )
        if self.max_file_size_bytes is not None and self.max_file_size_bytes <= 0:
            raise ConfigurationError("max_file_size_bytes must be positive")

    @property
    def quantization_active(self) -> bool:
        return (
            self.format.is_palette_limited
            and self.color_depth_levels != COLOR_DEPTH_DISABLED
        )

    @property
    def dithering_active(self) -> bool:
        return self.quantization_active and self.dithering_enabled


# ---------------------------------------------------------------------------
# Pipeline products
# ---------------------------------------------------------------------------

@dataclass
class EncodedFrame:
    """A fully processed raster and its resolved display time."""
    index: int
    image: Image.Image
    delay_s: float

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


class ExportStatus(enum.Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class ExportResult:
    """Outcome of one export invocation."""
    status: ExportStatus
    path: Path | None = None
    error: Exception | None = None
    frame_count: int = 0              # frames stored in the file
    source_frame_count: int = 0       # unmuted frames that went in
    size_bytes: int = 0

    @property
    def success(self) -> bool:
        return self.status is ExportStatus.COMPLETED

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if self.status is ExportStatus.CANCELLED:
            return "Export cancelled"
        return f"Exported {self.frame_count} frames to {self.path}"
