"""
Per-frame rotate / scale / pan onto a canvas-sized buffer.

Steps for a non-identity transform:
    1. Rotate by a right angle around the image center (lossless transpose).
    2. Uniformly scale by ``transform.scale / 100``.
    3. Paste centered onto a transparent canvas, shifted by the offset.

Offsets are clamped by the caller (see ``phosphor.geometry``); nothing
here clamps them.
"""

from __future__ import annotations

import logging

from PIL import Image

from phosphor.types import FrameTransform

logger = logging.getLogger(__name__)

# Clockwise rotation -> Pillow transpose (Pillow's ROTATE_* are counter-clockwise).
_CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def rotate_right_angle(img: Image.Image, degrees: int) -> Image.Image:
    """Rotate clockwise by 0/90/180/270; 90 and 270 swap width and height."""
    if degrees == 0:
        return img
    return img.transpose(_CLOCKWISE_TRANSPOSE[degrees])


def scale_uniform(img: Image.Image, percent: float) -> Image.Image:
    if percent == 100.0:
        return img
    factor = percent / 100.0
    new_size = (
        max(1, round(img.width * factor)),
        max(1, round(img.height * factor)),
    )
    return img.resize(new_size, Image.Resampling.LANCZOS)


def apply_transform(
    img: Image.Image,
    transform: FrameTransform,
    canvas_size: tuple[int, int] | None = None,
) -> Image.Image:
    """Apply *transform* and composite onto a canvas of *canvas_size*.

    Returns *img* itself when the transform is the identity.  When no
    canvas size is given the source dimensions are used.
    """
    if transform.is_identity:
        return img

    canvas_w, canvas_h = canvas_size or img.size
    rotated = rotate_right_angle(img.convert("RGBA"), transform.rotation)
    scaled = scale_uniform(rotated, transform.scale)

    canvas = Image.new("RGBA", (int(canvas_w), int(canvas_h)), (0, 0, 0, 0))
    origin = (
        round((canvas_w - scaled.width) / 2 + transform.offset_x),
        round((canvas_h - scaled.height) / 2 + transform.offset_y),
    )
    canvas.paste(scaled, origin)
    logger.debug(
        "Transformed %s -> %s (rot=%d, scale=%.0f%%, origin=%s)",
        img.size, canvas.size, transform.rotation, transform.scale, origin,
    )
    return canvas
