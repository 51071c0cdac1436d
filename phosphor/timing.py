"""
Frame timing: global vs. per-frame delay, clamping, and the uniform-delay
shortcut.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from phosphor.constants import FRAME_RATE_MAX, FRAME_RATE_MIN, MIN_CONTAINER_DELAY_S
from phosphor.frames import SourceFrame
from phosphor.types import ExportConfiguration


def clamp_delay_s(delay_s: float) -> float:
    """Containers cannot represent zero / near-zero durations reliably."""
    return max(MIN_CONTAINER_DELAY_S, delay_s)


def resolve_delay(frame: SourceFrame, config: ExportConfiguration) -> float:
    """Display time for *frame* in seconds."""
    delay_ms = config.global_frame_delay_ms
    if frame.custom_delay_ms is not None and not config.override_custom_frame_timings:
        delay_ms = frame.custom_delay_ms
    return clamp_delay_s(delay_ms / 1000.0)


def global_delay_s(config: ExportConfiguration) -> float:
    return clamp_delay_s(config.global_frame_delay_ms / 1000.0)


def per_frame_delays(
    frames: Sequence[SourceFrame],
    config: ExportConfiguration,
) -> Optional[List[float]]:
    """Per-frame delays in seconds, or None when every frame uses the global delay."""
    if config.override_custom_frame_timings:
        return None
    if not any(f.custom_delay_ms is not None for f in frames):
        return None
    return [resolve_delay(f, config) for f in frames]


def snap_frame_rate(fps: float) -> float:
    return min(max(float(round(fps)), FRAME_RATE_MIN), FRAME_RATE_MAX)


def delay_for_frame_rate(fps: float) -> float:
    """Global delay (ms) for a frame rate, snapped to a whole fps in range."""
    return 1000.0 / snap_frame_rate(fps)


def frame_rate_for_delay(delay_ms: float) -> float:
    if delay_ms <= 0:
        raise ValueError(f"delay must be positive, got {delay_ms}")
    return snap_frame_rate(1000.0 / delay_ms)
