"""
Animation container encoders.

One encoder per format, all built on Pillow's multi-frame writers and all
following the same state machine::

    Created --add_frame()*--> Finalized
        \\--abort()---------> Aborted

Construction reserves a temporary file next to the destination (this is
where an unwritable destination is detected).  ``finalize()`` writes the
container into that file, checks the optional size limit and only then
renames it onto the destination, so a failed export never leaves a
half-written file at the requested path.

Loop count semantics differ per container.  The export setting is the
number of times the sequence plays (0 = forever):

* **GIF** stores a NETSCAPE *repeat* count: 0 = forever, N = N extra
  plays.  A single play is expressed by omitting the extension.
* **APNG** stores ``num_plays`` directly: 0 = forever, N = N plays.
* **WebP** stores the loop count directly, like APNG.
"""

from __future__ import annotations

import abc
import enum
import io
import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from PIL import Image

from phosphor.constants import LOOP_COUNT_INFINITE
from phosphor.exceptions import (
    DestinationCreationError,
    EncoderStateError,
    FinalizationError,
    SizeLimitExceededError,
)
from phosphor.timing import clamp_delay_s
from phosphor.types import EncodedFrame, ExportConfiguration, ExportFormat

logger = logging.getLogger(__name__)

GIF_MIN_PALETTE_SIZE = 16


class EncoderState(enum.Enum):
    CREATED = "created"
    FINALIZED = "finalized"
    ABORTED = "aborted"


def gif_repeat_count(loop_count: int) -> int | None:
    """NETSCAPE repeat field for a play count; None means "omit" (play once)."""
    if loop_count == LOOP_COUNT_INFINITE:
        return 0
    if loop_count == 1:
        return None
    return loop_count - 1


def gif_palette_size(quality: float) -> int:
    """Palette entries used when converting a frame to GIF's indexed mode.

    Quality trades colors for size but never drops below
    ``GIF_MIN_PALETTE_SIZE`` entries, so the lowest setting stays a usable
    picture rather than a near-monochrome one.
    """
    q = max(0.0, min(1.0, quality))
    return GIF_MIN_PALETTE_SIZE + round(q * (256 - GIF_MIN_PALETTE_SIZE))


def webp_quality(quality: float) -> int:
    return int(round(max(0.0, min(1.0, quality)) * 100))


def _bare_rgba(image: Image.Image) -> Image.Image:
    """RGBA copy without source metadata (loop, duration, ...)."""
    rgba = image.convert("RGBA")
    rgba.info.clear()
    return rgba


def _reserve_temp_path(destination: Path) -> Path:
    """Create an empty sibling file to receive the encoded container."""
    if destination.is_dir():
        raise DestinationCreationError(f"Destination is a directory: {destination}")
    try:
        fd, name = tempfile.mkstemp(
            prefix=f".{destination.name}.",
            suffix=".part",
            dir=str(destination.parent),
        )
    except OSError as exc:
        raise DestinationCreationError(
            f"Failed to create export destination {destination}: {exc}"
        ) from exc
    os.close(fd)
    return Path(name)


# ===================================================================
#  BASE ENCODER
# ===================================================================

class FormatEncoder(abc.ABC):
    """Common state machine, temp-file handling and size-limit check."""

    format: ExportFormat

    def __init__(
        self,
        destination: Path,
        config: ExportConfiguration,
        canvas_size: tuple[int, int] | None = None,
    ) -> None:
        self.destination = Path(destination)
        self.config = config
        self.canvas_size = canvas_size
        self.state = EncoderState.CREATED
        self._frames: list[Image.Image] = []
        self._count = 0
        self._written_count = 0
        self._temp_path = _reserve_temp_path(self.destination)
        logger.debug(
            "%s encoder created for %s (temp %s)",
            self.format.name, self.destination, self._temp_path.name,
        )

    @property
    def frame_count(self) -> int:
        """Frames accepted so far (kept after finalization)."""
        return self._count

    @property
    def written_frame_count(self) -> int:
        """Frames in the finished container (0 before finalization).

        The container writers merge a frame identical to the one before it
        into that frame and add up the delays, so a held image is stored
        once. This can be smaller than :attr:`frame_count`.
        """
        return self._written_count

    def _require_created(self, action: str) -> None:
        if self.state is not EncoderState.CREATED:
            raise EncoderStateError(
                f"Cannot {action}: {self.format.name} encoder is {self.state.value}"
            )

    def add_frame(self, frame: EncodedFrame) -> None:
        """Append one processed frame with its resolved delay."""
        self._require_created("add a frame")
        self._add(frame.image, clamp_delay_s(frame.delay_s))
        self._count += 1

    def finalize(self) -> Path:
        """Write the container and move it onto the destination."""
        self._require_created("finalize")
        if not self._frames:
            raise EncoderStateError("Cannot finalize an encoder with no frames")
        try:
            self._write(self._temp_path)
            with Image.open(self._temp_path) as written:
                written_count = getattr(written, "n_frames", 1)
        except Exception as exc:
            self.abort()
            raise FinalizationError(f"Failed to finalize export: {exc}") from exc
        if written_count < self._count:
            logger.info(
                "%d repeated frames merged into the frame before them",
                self._count - written_count,
            )

        size = self._temp_path.stat().st_size
        limit = self.config.max_file_size_bytes
        if limit is not None and size > limit:
            self.abort()
            raise SizeLimitExceededError(max_bytes=limit, actual_bytes=size)

        try:
            os.replace(self._temp_path, self.destination)
        except OSError as exc:
            self.abort()
            raise FinalizationError(f"Failed to finalize export: {exc}") from exc

        self.state = EncoderState.FINALIZED
        self._written_count = written_count
        self._frames.clear()
        logger.info(
            "Wrote %s (%d bytes) to %s", self.format.name, size, self.destination,
        )
        return self.destination

    def abort(self) -> None:
        """Discard buffered frames and the temporary file."""
        if self.state is EncoderState.FINALIZED:
            return
        self.state = EncoderState.ABORTED
        self._frames.clear()
        try:
            self._temp_path.unlink()
        except FileNotFoundError:
            pass

    @abc.abstractmethod
    def _add(self, image: Image.Image, delay_s: float) -> None:
        ...

    @abc.abstractmethod
    def _write(self, path: Path) -> None:
        ...


# ===================================================================
#  GIF
# ===================================================================

@dataclass(frozen=True)
class GifFrameProperties:
    """What gets written for one GIF frame.

    GIF stores delays in whole centiseconds; ``unclamped_delay_s`` keeps
    the intended value for players that honor finer timing.
    """
    delay_cs: int
    unclamped_delay_s: float
    quality: float


class GifEncoder(FormatEncoder):
    """Indexed-color GIF with a per-frame adaptive palette."""

    format = ExportFormat.GIF

    def __init__(self, destination, config, canvas_size=None) -> None:
        super().__init__(destination, config, canvas_size)
        self.repeat_count = gif_repeat_count(config.loop_count)
        self.frame_properties: list[GifFrameProperties] = []

    def _to_indexed(self, image: Image.Image, colors: int) -> Image.Image:
        """Convert to P mode, reserving index 255 for transparent pixels."""
        rgba = image.convert("RGBA")
        alpha = rgba.getchannel("A")
        transparent_mask = alpha.point(lambda a: 255 if a < 128 else 0)
        has_transparency = transparent_mask.getbbox() is not None

        if has_transparency:
            colors = min(colors, 255)
        indexed = rgba.convert("RGB").quantize(
            colors=colors,
            method=Image.Quantize.MEDIANCUT,
            dither=Image.Dither.NONE,
        )
        indexed.info.clear()
        if has_transparency:
            palette = indexed.getpalette() or []
            indexed.putpalette(palette + [0] * (768 - len(palette)))
            indexed.paste(255, mask=transparent_mask)
            indexed.info["transparency"] = 255
        return indexed

    def _add(self, image: Image.Image, delay_s: float) -> None:
        quality = max(0.0, min(1.0, self.config.quality))
        props = GifFrameProperties(
            delay_cs=max(1, round(delay_s * 100)),
            unclamped_delay_s=delay_s,
            quality=quality,
        )
        self._frames.append(self._to_indexed(image, gif_palette_size(quality)))
        self.frame_properties.append(props)

    def _write(self, path: Path) -> None:
        kwargs: dict[str, Any] = {}
        if self.repeat_count is not None:
            kwargs["loop"] = self.repeat_count
        first, rest = self._frames[0], self._frames[1:]
        first.save(
            str(path),
            format="GIF",
            save_all=True,
            append_images=rest,
            duration=[p.delay_cs * 10 for p in self.frame_properties],
            disposal=2,
            optimize=False,
            **kwargs,
        )


# ===================================================================
#  APNG
# ===================================================================

class ApngEncoder(FormatEncoder):
    """Full RGBA animated PNG; per-frame delay only."""

    format = ExportFormat.APNG

    def __init__(self, destination, config, canvas_size=None) -> None:
        super().__init__(destination, config, canvas_size)
        self.num_plays = config.loop_count
        self.delays_s: list[float] = []

    def _add(self, image: Image.Image, delay_s: float) -> None:
        self._frames.append(_bare_rgba(image))
        self.delays_s.append(delay_s)

    def _write(self, path: Path) -> None:
        first, rest = self._frames[0], self._frames[1:]
        first.save(
            str(path),
            format="PNG",
            save_all=True,
            append_images=rest,
            duration=[d * 1000.0 for d in self.delays_s],
            loop=self.num_plays,
            default_image=False,
        )


# ===================================================================
#  WEBP
# ===================================================================

class WebpEncoder(FormatEncoder):
    """Animated WebP buffered in memory and written in one piece.

    The canvas is fixed at construction from the first processed frame;
    every later frame must already match it.
    """

    format = ExportFormat.WEBP
    method = 4  # compression effort 0 -- 6

    def __init__(self, destination, config, canvas_size=None) -> None:
        if canvas_size is None:
            raise ValueError("WebP encoder needs the canvas size of the first frame")
        super().__init__(destination, config, canvas_size)
        self.quality = webp_quality(config.quality)
        self.durations_ms: list[int] = []

    def _add(self, image: Image.Image, delay_s: float) -> None:
        if image.size != self.canvas_size:
            raise ValueError(
                f"WebP frame is {image.size[0]}x{image.size[1]}, canvas is "
                f"{self.canvas_size[0]}x{self.canvas_size[1]}"
            )
        self._frames.append(_bare_rgba(image))
        self.durations_ms.append(int(round(delay_s * 1000)))

    def encode(self, loop_count: int) -> bytes:
        """Encode the whole animation into a byte buffer."""
        buf = io.BytesIO()
        first, rest = self._frames[0], self._frames[1:]
        first.save(
            buf,
            format="WEBP",
            save_all=True,
            append_images=rest,
            duration=self.durations_ms,
            loop=loop_count,
            quality=self.quality,
            method=self.method,
            lossless=False,
        )
        return buf.getvalue()

    def _write(self, path: Path) -> None:
        path.write_bytes(self.encode(self.config.loop_count))


# ===================================================================
#  FACTORY
# ===================================================================

_ENCODERS: dict[ExportFormat, type[FormatEncoder]] = {
    ExportFormat.GIF: GifEncoder,
    ExportFormat.APNG: ApngEncoder,
    ExportFormat.WEBP: WebpEncoder,
}


def create_encoder(
    destination: Path,
    config: ExportConfiguration,
    canvas_size: tuple[int, int] | None = None,
) -> FormatEncoder:
    """Instantiate the encoder for ``config.format``."""
    encoder_cls = _ENCODERS.get(config.format)
    if encoder_cls is None:
        raise ValueError(f"Unsupported output format: {config.format}")
    return encoder_cls(destination, config, canvas_size)
