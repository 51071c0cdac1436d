"""
phosphor -- Animated image export pipeline.

Turns an ordered set of still images into an animated GIF, APNG or WebP:
per-frame rotate/scale/pan, canvas resizing, optional color-depth
reduction with dithering, and streaming frame-by-frame encoding.
"""

__version__ = "0.1.0"

from phosphor.config import ExportSettings, load_settings
from phosphor.exceptions import ExportError, PhosphorError
from phosphor.export import CancellationToken, ExportOrchestrator, export
from phosphor.frames import SourceFrame
from phosphor.types import (
    ExportConfiguration,
    ExportFormat,
    ExportResult,
    ExportStatus,
    FillResize,
    FitResize,
    FrameTransform,
    ScaleResize,
)

__all__ = [
    "CancellationToken",
    "ExportConfiguration",
    "ExportError",
    "ExportFormat",
    "ExportOrchestrator",
    "ExportResult",
    "ExportSettings",
    "ExportStatus",
    "FillResize",
    "FitResize",
    "FrameTransform",
    "PhosphorError",
    "ScaleResize",
    "SourceFrame",
    "export",
    "load_settings",
]
