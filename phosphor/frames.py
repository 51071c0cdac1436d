"""
Source frames, decoding, and the value snapshot taken at export start.

    frame store  -->  snapshot_frames  -->  unmuted_frames  -->  select_frames

The pipeline never reads the caller's list again after the snapshot, so
edits made by the frame store during an export are not observed.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from PIL import Image, ImageOps

from phosphor.types import Color, FrameTransform, IDENTITY

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = frozenset({
    ".jpg", ".jpeg", ".png", ".gif", ".tif", ".tiff", ".bmp",
    ".heic", ".heif", ".webp", ".tga",
})


@dataclass
class SourceFrame:
    """One entry of the frame store.

    ``source`` is either a path to an image file or an already decoded
    Pillow image.  The remaining fields are the mutable per-frame state
    edited by the frame store.
    """
    source: Union[Path, Image.Image]
    transform: FrameTransform = IDENTITY
    custom_delay_ms: Optional[float] = None
    muted: bool = False
    name: str = field(default="")

    def __post_init__(self) -> None:
        if isinstance(self.source, str):
            self.source = Path(self.source)
        if not self.name:
            if isinstance(self.source, Path):
                self.name = self.source.name
            else:
                self.name = f"<image {self.source.size[0]}x{self.source.size[1]}>"

    def decode(self) -> Image.Image:
        """Return a fresh RGBA raster with EXIF orientation applied."""
        if isinstance(self.source, Image.Image):
            img = self.source.copy()
        else:
            with Image.open(self.source) as opened:
                opened.load()
                img = ImageOps.exif_transpose(opened) or opened.copy()
        if img.mode != "RGBA":
            img = img.convert("RGBA")
        return img


def is_supported_path(path: Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def snapshot_frames(frames: Sequence[SourceFrame]) -> List[SourceFrame]:
    """Copy each frame's state so later edits to *frames* are invisible."""
    return [copy.copy(f) for f in frames]


def unmuted_frames(frames: Sequence[SourceFrame]) -> List[SourceFrame]:
    return [f for f in frames if not f.muted]


def select_frames(frames: Sequence[SourceFrame], skip_interval: int = 1) -> List[SourceFrame]:
    """Keep every *skip_interval*-th frame, starting with the first."""
    interval = max(1, int(skip_interval))
    selected = list(frames[::interval])
    if interval > 1:
        logger.info("Frame skipping kept %d of %d frames.", len(selected), len(frames))
    return selected


def sample_corner_color(frame: SourceFrame) -> Color:
    """Top-left pixel of *frame*, used as the automatic letterbox color."""
    img = frame.decode()
    r, g, b, _a = img.getpixel((0, 0))
    return (r, g, b)
