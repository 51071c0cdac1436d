"""
Shared fixtures for the phosphor test suite.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from phosphor.frames import SourceFrame
from phosphor.types import ExportConfiguration, ExportFormat

# Distinct colors: the container writers merge a frame identical to the one
# before it, so repeated-frame behavior is tested separately.
FRAME_COLORS = [
    (255, 0, 0),
    (0, 255, 0),
    (0, 0, 255),
    (255, 255, 0),
    (0, 255, 255),
    (255, 0, 255),
    (128, 64, 0),
    (0, 128, 64),
    (64, 0, 128),
    (200, 200, 200),
]


@pytest.fixture
def sample_rgba_frame():
    """A 200x200 RGBA frame with a red square on white background."""
    img = Image.new("RGBA", (200, 200), "white")
    img.paste((255, 0, 0, 255), (50, 50, 150, 150))
    return img


@pytest.fixture
def gradient_frame():
    """A 64x16 horizontal grey ramp, useful for banding checks."""
    img = Image.new("RGBA", (64, 16))
    for x in range(64):
        img.paste((x * 4, x * 4, x * 4, 255), (x, 0, x + 1, 16))
    return img


@pytest.fixture
def memory_frames():
    """Five 40x30 in-memory frames, each a different solid color."""
    return [
        SourceFrame(Image.new("RGBA", (40, 30), (*FRAME_COLORS[i], 255)), name=f"f{i}")
        for i in range(5)
    ]


@pytest.fixture
def image_files(tmp_path) -> list[Path]:
    """Four 48x32 PNG files on disk, each a different solid color."""
    paths = []
    for i in range(4):
        path = tmp_path / f"frame_{i:02d}.png"
        Image.new("RGB", (48, 32), FRAME_COLORS[i]).save(path)
        paths.append(path)
    return paths


@pytest.fixture(params=list(ExportFormat), ids=lambda f: f.value)
def export_format(request) -> ExportFormat:
    return request.param


@pytest.fixture
def gif_config() -> ExportConfiguration:
    return ExportConfiguration(format=ExportFormat.GIF)
