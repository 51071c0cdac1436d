"""
Image post-processing pipeline.

Turns one source frame into an encoder-ready raster:
    1. Decode (EXIF orientation applied, RGBA)
    2. Rotate / scale / pan onto the canvas   (non-identity transform only)
    3. Resize to the export canvas            (resize configured only)
    4. Posterize to N levels per channel      (GIF, color depth enabled)
    5. Error-diffusion dither                 (GIF, posterized, dithering on)

The order is fixed: dithering before posterizing or resizing after it
gives visibly different output.  APNG and WebP stop after step 3.
"""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image, ImageFilter

from phosphor.compositor import apply_transform
from phosphor.constants import (
    COLOR_DEPTH_DISABLED,
    COLOR_DEPTH_MAX,
    COLOR_DEPTH_MIN,
    DEFAULT_DITHER_INTENSITY,
)
from phosphor.exceptions import ConfigurationError, UnsupportedRasterError
from phosphor.frames import SourceFrame
from phosphor.resize import resize
from phosphor.types import ExportConfiguration, ResizeInstruction, instruction_target_size

logger = logging.getLogger(__name__)

_QUANTIZABLE_MODES = frozenset({"RGB", "RGBA", "L", "LA", "P", "PA"})
_DITHER_BLUR_RADIUS = 2.0
# Level-unit deltas below this are blur rounding noise, not banding.
_DITHER_DEADZONE = 0.02


def approximate_color_count(levels: int) -> int:
    """Upper bound on distinct colors after posterizing to *levels*."""
    if levels <= COLOR_DEPTH_DISABLED:
        return 0
    return levels ** 3


def _check_levels(levels: int) -> None:
    if not COLOR_DEPTH_MIN <= levels <= COLOR_DEPTH_MAX:
        raise ConfigurationError(
            f"levels must be in [{COLOR_DEPTH_MIN}, {COLOR_DEPTH_MAX}], got {levels}"
        )


def _as_rgba(img: Image.Image) -> Image.Image:
    if img.mode not in _QUANTIZABLE_MODES:
        raise UnsupportedRasterError(f"Cannot reduce colors of a {img.mode!r} raster")
    return img if img.mode == "RGBA" else img.convert("RGBA")


def posterize(img: Image.Image, levels: int) -> Image.Image:
    """Map each color channel onto *levels* evenly spaced values.

    Alpha is left untouched.  Callers skip this step entirely when color
    depth reduction is disabled.
    """
    _check_levels(levels)
    rgba = _as_rgba(img)
    step = 255.0 / (levels - 1)
    arr = np.array(rgba, dtype=np.float32)
    arr[..., :3] = np.round(arr[..., :3] / step) * step
    return Image.fromarray(np.clip(np.round(arr), 0, 255).astype(np.uint8))


def dither(
    img: Image.Image,
    levels: int,
    intensity: float = DEFAULT_DITHER_INTENSITY,
) -> Image.Image:
    """Floyd-Steinberg error diffusion over a posterized raster.

    A blurred copy estimates the smooth gradient the posterization cut
    into bands.  *intensity* of the difference is pushed back towards
    that gradient and the result is re-quantized to the same *levels*
    grid with error diffusion, which breaks hard band edges into a
    pixel pattern.  Flat regions come back unchanged.
    """
    _check_levels(levels)
    rgba = _as_rgba(img)
    step = 255.0 / (levels - 1)
    arr = np.asarray(rgba, dtype=np.float32)
    smooth = np.asarray(
        rgba.filter(ImageFilter.GaussianBlur(radius=_DITHER_BLUR_RADIUS)),
        dtype=np.float32,
    )

    index = np.round(arr[..., :3] / step)
    delta = intensity * (smooth[..., :3] - arr[..., :3]) / step
    delta[np.abs(delta) < _DITHER_DEADZONE] = 0.0
    target = np.clip(index + delta, 0, levels - 1)
    base = np.floor(target)
    frac = target - base

    out = arr.copy()
    for channel in range(3):
        frac_img = Image.fromarray(np.round(frac[..., channel] * 255).astype(np.uint8))
        bits = np.asarray(
            frac_img.convert("1", dither=Image.Dither.FLOYDSTEINBERG),
            dtype=np.float32,
        )
        out[..., channel] = np.minimum(base[..., channel] + bits, levels - 1) * step
    return Image.fromarray(np.clip(np.round(out), 0, 255).astype(np.uint8))


def process_frame(
    frame: SourceFrame,
    config: ExportConfiguration,
    resize_instruction: ResizeInstruction | None = None,
) -> Image.Image:
    """Run the per-frame pipeline and return the encoder-ready raster.

    *resize_instruction* is the configuration's instruction with any
    automatic background color already resolved; it defaults to
    ``config.resize_instruction``.
    """
    if resize_instruction is None:
        resize_instruction = config.resize_instruction

    img = frame.decode()
    logger.debug("Decoded %s (%dx%d)", frame.name, img.width, img.height)

    if not frame.transform.is_identity:
        canvas_size = instruction_target_size(resize_instruction) or img.size
        img = apply_transform(img, frame.transform, canvas_size)

    if resize_instruction is not None:
        img = resize(img, resize_instruction)

    if config.quantization_active:
        levels = config.color_depth_levels
        img = posterize(img, levels)
        if config.dithering_enabled:
            img = dither(img, levels)

    return img
