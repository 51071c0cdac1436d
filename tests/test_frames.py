"""
Tests for source frames, decoding and frame selection.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from phosphor.frames import (
    SourceFrame,
    is_supported_path,
    sample_corner_color,
    select_frames,
    snapshot_frames,
    unmuted_frames,
)
from phosphor.types import FrameTransform


class TestSourceFrame:
    def test_path_from_string(self, image_files):
        frame = SourceFrame(str(image_files[0]))
        assert isinstance(frame.source, Path)
        assert frame.name == "frame_00.png"

    def test_in_memory_name(self):
        frame = SourceFrame(Image.new("RGB", (12, 7)))
        assert frame.name == "<image 12x7>"

    def test_decode_file_returns_rgba(self, image_files):
        img = SourceFrame(image_files[1]).decode()
        assert img.mode == "RGBA"
        assert img.size == (48, 32)
        assert img.getpixel((0, 0)) == (0, 255, 0, 255)

    def test_decode_returns_a_copy(self):
        src = Image.new("RGBA", (4, 4), (1, 2, 3, 255))
        decoded = SourceFrame(src).decode()
        decoded.putpixel((0, 0), (9, 9, 9, 255))
        assert src.getpixel((0, 0)) == (1, 2, 3, 255)

    def test_decode_applies_exif_orientation(self, tmp_path):
        img = Image.new("RGB", (40, 20), (255, 0, 0))
        exif = Image.Exif()
        exif[0x0112] = 6  # rotate 90 CW on display
        path = tmp_path / "rotated.jpg"
        img.save(path, exif=exif)
        assert SourceFrame(path).decode().size == (20, 40)

    def test_decode_missing_file(self, tmp_path):
        with pytest.raises(OSError):
            SourceFrame(tmp_path / "nope.png").decode()

    def test_decode_garbage(self, tmp_path):
        path = tmp_path / "broken.png"
        path.write_bytes(b"not an image")
        with pytest.raises(OSError):
            SourceFrame(path).decode()


class TestSupportedPaths:
    @pytest.mark.parametrize("name", [
        "a.png", "b.JPG", "c.jpeg", "d.gif", "e.tiff", "f.bmp", "g.heic", "h.webp", "i.tga",
    ])
    def test_supported(self, name):
        assert is_supported_path(Path(name))

    @pytest.mark.parametrize("name", ["notes.txt", "movie.mp4", "noext"])
    def test_unsupported(self, name):
        assert not is_supported_path(Path(name))


class TestSelection:
    def test_snapshot_is_independent(self, memory_frames):
        snap = snapshot_frames(memory_frames)
        memory_frames[0].muted = True
        memory_frames[1].transform = FrameTransform(rotation=90)
        assert not snap[0].muted
        assert snap[1].transform.rotation == 0

    def test_unmuted_preserves_order(self, memory_frames):
        memory_frames[1].muted = True
        memory_frames[3].muted = True
        assert [f.name for f in unmuted_frames(memory_frames)] == ["f0", "f2", "f4"]

    def test_all_muted(self, memory_frames):
        for f in memory_frames:
            f.muted = True
        assert unmuted_frames(memory_frames) == []

    def test_select_every_frame_by_default(self, memory_frames):
        assert select_frames(memory_frames) == list(memory_frames)

    def test_skip_interval(self, memory_frames):
        assert [f.name for f in select_frames(memory_frames, 2)] == ["f0", "f2", "f4"]
        assert [f.name for f in select_frames(memory_frames, 3)] == ["f0", "f3"]

    def test_sample_corner_color(self):
        img = Image.new("RGBA", (10, 10), (0, 0, 0, 255))
        img.putpixel((0, 0), (12, 34, 56, 255))
        assert sample_corner_color(SourceFrame(img)) == (12, 34, 56)
