"""
Custom exception hierarchy for phosphor.

All phosphor exceptions inherit from PhosphorError so callers can catch
the entire family with a single except clause.  Export failures share the
ExportError base and carry one human-readable ``message`` each.
"""

from __future__ import annotations


def format_bytes(size_bytes: int) -> str:
    """Render a byte count the way the CLI summary does (B / KB / MB)."""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    return f"{size_bytes / (1024 * 1024):.1f} MB"


class PhosphorError(Exception):
    """Base exception for all phosphor errors."""

    @property
    def message(self) -> str:
        return str(self)


class ConfigurationError(PhosphorError, ValueError):
    """Raised when an export setting is outside its valid range."""


class UnsupportedRasterError(PhosphorError):
    """Raised when a raster mode cannot be quantized or dithered."""


class EncoderStateError(PhosphorError):
    """Raised when an encoder is used outside Created -> Finalized order."""


class ExportInProgressError(PhosphorError):
    """Raised when a second export is started while one is pending."""


class ExportError(PhosphorError):
    """Base class for the export failure taxonomy."""

    default_message = "Export failed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class NoFramesError(ExportError):
    """Raised when the export set contains no unmuted frames."""

    default_message = "No images to export"


class DestinationCreationError(ExportError):
    """Raised when the output file cannot be created."""

    default_message = "Failed to create export destination"


class FrameProcessingError(ExportError):
    """Raised when decode/transform/resize/quantize/dither fails for a frame."""

    default_message = "Failed to process image"

    def __init__(self, index: int, message: str | None = None) -> None:
        self.index = index
        detail = f": {message}" if message else ""
        super().__init__(f"Failed to process frame {index + 1}{detail}")


class FinalizationError(ExportError):
    """Raised when the container cannot be flushed to disk."""

    default_message = "Failed to finalize export"


class SizeLimitExceededError(ExportError):
    """Raised when the finished file is larger than the configured limit."""

    def __init__(self, max_bytes: int, actual_bytes: int) -> None:
        self.max_bytes = max_bytes
        self.actual_bytes = actual_bytes
        super().__init__(
            f"Export exceeds your size limit "
            f"({format_bytes(actual_bytes)} > {format_bytes(max_bytes)})."
        )


class ExportCancelledError(ExportError):
    """Raised when a cancellation request is observed at a frame boundary."""

    default_message = "Export cancelled"
