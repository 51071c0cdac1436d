"""
Numeric limits shared by the settings layer and the export pipeline.
"""

from __future__ import annotations

# Canvas dimensions (px) when a resize is active.
CANVAS_DIMENSION_MIN = 64
CANVAS_DIMENSION_MAX = 4096

FRAME_RATE_MIN = 1.0
FRAME_RATE_MAX = 60.0

# Global frame delay (ms), derived from the frame rate range.
FRAME_DELAY_MIN_MS = 1000.0 / FRAME_RATE_MAX
FRAME_DELAY_MAX_MS = 1000.0 / FRAME_RATE_MIN

# Smallest delay written to any container (s).
MIN_CONTAINER_DELAY_S = 0.01

LOOP_COUNT_INFINITE = 0
LOOP_COUNT_MIN = 1
LOOP_COUNT_MAX = 100

QUALITY_MIN = 0.0
QUALITY_MAX = 1.0

COLOR_DEPTH_DISABLED = 0
COLOR_DEPTH_MIN = 2
COLOR_DEPTH_MAX = 30

SCALE_PERCENT_MIN = 50.0
SCALE_PERCENT_MAX = 200.0

RIGHT_ANGLES = (0, 90, 180, 270)

DEFAULT_DITHER_INTENSITY = 0.2

# Anchor detection tolerance as a fraction of the smaller canvas side.
ANCHOR_TOLERANCE_FRACTION = 0.02
