"""
Offset clamping and the 9-point anchor grid.

The largest useful offset along an axis is half the difference between
the scaled image and the canvas.  When the image is larger than the
canvas this keeps every canvas edge covered; when it is smaller it keeps
the whole image visible.  Anchor presets are computed from the same
formula rather than stored, so "which anchor is active" is recovered by
comparing offsets within a tolerance.
"""

from __future__ import annotations

import enum

from phosphor.constants import ANCHOR_TOLERANCE_FRACTION
from phosphor.types import FrameTransform

Size = tuple[float, float]


def scaled_image_size(image_size: Size, transform: FrameTransform) -> Size:
    """Size of the image after rotation and scale, before any offset."""
    w, h = image_size
    if transform.swaps_dimensions:
        w, h = h, w
    factor = transform.scale / 100.0
    return (w * factor, h * factor)


def max_offset(scaled_size: Size, canvas_size: Size) -> Size:
    return (
        abs(scaled_size[0] - canvas_size[0]) / 2.0,
        abs(scaled_size[1] - canvas_size[1]) / 2.0,
    )


def clamp_offset(
    offset_x: float,
    offset_y: float,
    scaled_size: Size,
    canvas_size: Size,
) -> tuple[float, float]:
    limit_x, limit_y = max_offset(scaled_size, canvas_size)
    return (
        min(max(offset_x, -limit_x), limit_x),
        min(max(offset_y, -limit_y), limit_y),
    )


def clamp_transform(
    transform: FrameTransform,
    image_size: Size,
    canvas_size: Size,
) -> FrameTransform:
    """Return *transform* with its offsets pulled into the permitted range."""
    scaled = scaled_image_size(image_size, transform)
    x, y = clamp_offset(transform.offset_x, transform.offset_y, scaled, canvas_size)
    if (x, y) == (transform.offset_x, transform.offset_y):
        return transform
    return transform.with_offset(x, y)


class PositionAnchor(enum.Enum):
    """Preset positions; the value is the (column, row) sign pair."""
    TOP_LEFT = (1, 1)
    TOP_CENTER = (0, 1)
    TOP_RIGHT = (-1, 1)
    MIDDLE_LEFT = (1, 0)
    CENTER = (0, 0)
    MIDDLE_RIGHT = (-1, 0)
    BOTTOM_LEFT = (1, -1)
    BOTTOM_CENTER = (0, -1)
    BOTTOM_RIGHT = (-1, -1)

    @property
    def label(self) -> str:
        return self.name.replace("_", " ").title()

    def offset(self, scaled_size: Size, canvas_size: Size) -> tuple[float, float]:
        """Offset that shows this anchor's corner/edge of the image.

        TOP_LEFT moves the image right and down so its top-left region
        is what the canvas shows.
        """
        limit_x, limit_y = max_offset(scaled_size, canvas_size)
        sx, sy = self.value
        return (sx * limit_x, sy * limit_y)


def detect_anchor(
    offset_x: float,
    offset_y: float,
    scaled_size: Size,
    canvas_size: Size,
) -> PositionAnchor | None:
    """Return the anchor whose preset offset matches, if any.

    CENTER is tested first so an image the same size as the canvas,
    where every preset collapses to (0, 0), reports CENTER.
    """
    tolerance = min(canvas_size) * ANCHOR_TOLERANCE_FRACTION
    ordered = [PositionAnchor.CENTER]
    ordered += [a for a in PositionAnchor if a is not PositionAnchor.CENTER]
    for anchor in ordered:
        ex, ey = anchor.offset(scaled_size, canvas_size)
        if abs(offset_x - ex) < tolerance and abs(offset_y - ey) < tolerance:
            return anchor
    return None
