"""
Canvas resizing: scale, fill (cover) and fit (contain / letterbox).

All resampling is Lanczos.  Zero-sized inputs are treated as 1 px before
any ratio is computed.
"""

from __future__ import annotations

import logging

from PIL import Image

from phosphor.constants import CANVAS_DIMENSION_MAX, CANVAS_DIMENSION_MIN
from phosphor.types import FillResize, FitResize, ResizeInstruction, ScaleResize

logger = logging.getLogger(__name__)


def clamp_canvas_dimension(value: float) -> int:
    """Clamp a requested canvas side into [64, 4096] px."""
    return int(min(max(round(value), CANVAS_DIMENSION_MIN), CANVAS_DIMENSION_MAX))


def _source_dims(img: Image.Image) -> tuple[int, int]:
    return max(1, img.width), max(1, img.height)


def _drawable(img: Image.Image) -> Image.Image:
    if img.width == 0 or img.height == 0:
        return Image.new("RGBA", (1, 1), (0, 0, 0, 0))
    return img.convert("RGBA")


def _target_dims(width: float, height: float) -> tuple[int, int]:
    return max(1, int(round(width))), max(1, int(round(height)))


def resize_scale(img: Image.Image, percent: float) -> Image.Image:
    """Resize by *percent* of the source size."""
    factor = max(percent, 1.0) / 100.0
    src_w, src_h = _source_dims(img)
    new_size = _target_dims(src_w * factor, src_h * factor)
    if new_size == img.size:
        return img
    return _drawable(img).resize(new_size, Image.Resampling.LANCZOS)


def resize_fill(img: Image.Image, width: int, height: int) -> Image.Image:
    """Scale to cover ``width x height``, centered, overflow clipped."""
    target_w, target_h = _target_dims(width, height)
    src_w, src_h = _source_dims(img)
    scale = max(target_w / src_w, target_h / src_h)
    # Never round below the target, or a 1 px seam of background shows.
    draw_w = max(target_w, round(src_w * scale))
    draw_h = max(target_h, round(src_h * scale))

    drawn = _drawable(img)
    if (draw_w, draw_h) != drawn.size:
        drawn = drawn.resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (target_w, target_h), (0, 0, 0, 0))
    canvas.paste(drawn, ((target_w - draw_w) // 2, (target_h - draw_h) // 2))
    return canvas


def resize_fit(
    img: Image.Image,
    width: int,
    height: int,
    background: tuple[int, int, int] = (255, 255, 255),
) -> Image.Image:
    """Scale to fit inside ``width x height`` over a *background* letterbox."""
    target_w, target_h = _target_dims(width, height)
    src_w, src_h = _source_dims(img)
    scale = min(target_w / src_w, target_h / src_h)
    draw_w = min(target_w, max(1, round(src_w * scale)))
    draw_h = min(target_h, max(1, round(src_h * scale)))

    drawn = _drawable(img)
    if (draw_w, draw_h) != drawn.size:
        drawn = drawn.resize((draw_w, draw_h), Image.Resampling.LANCZOS)
    canvas = Image.new("RGBA", (target_w, target_h), (*background, 255))
    canvas.alpha_composite(drawn, dest=((target_w - draw_w) // 2, (target_h - draw_h) // 2))
    return canvas


def resize(img: Image.Image, instruction: ResizeInstruction) -> Image.Image:
    """Dispatch on the resize instruction variant."""
    if isinstance(instruction, ScaleResize):
        return resize_scale(img, instruction.percent)
    if isinstance(instruction, FillResize):
        return resize_fill(img, instruction.width, instruction.height)
    if isinstance(instruction, FitResize):
        return resize_fit(img, instruction.width, instruction.height, instruction.background)
    raise TypeError(f"Unknown resize instruction: {instruction!r}")
