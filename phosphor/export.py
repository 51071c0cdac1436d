"""
Export orchestration: the sequential per-frame pipeline.

    snapshot  -->  unmuted  -->  [process frame i  -->  encoder.add_frame]*  -->  finalize

Frames are processed strictly in order; frame *i+1* is not decoded until
frame *i* has been handed to the encoder, and each frame's intermediate
rasters go out of scope before the next one starts.

Progress
--------
After every frame the callback receives ``(index + 1) / total``.  Values
are delivered in order on the exporting thread and the last one is
exactly 1.0.  Callers that own UI state should forward the value through
a queue (see ``phosphor.worker``) rather than touching state directly.

Error handling
--------------
Fail-fast: the first error aborts the export, the encoder's temporary
file is removed and the error is returned inside an ``ExportResult``.
Cancellation is polled once per frame boundary and never interrupts a
frame in flight.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from phosphor.encoders import FormatEncoder, create_encoder
from phosphor.exceptions import (
    ExportCancelledError,
    ExportError,
    ExportInProgressError,
    FrameProcessingError,
    NoFramesError,
)
from phosphor.frames import (
    SourceFrame,
    sample_corner_color,
    select_frames,
    snapshot_frames,
    unmuted_frames,
)
from phosphor.processing import process_frame
from phosphor.timing import global_delay_s, per_frame_delays
from phosphor.types import (
    EncodedFrame,
    ExportConfiguration,
    ExportPhase,
    ExportResult,
    ExportStatus,
    FitResize,
    ResizeInstruction,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]
EncoderFactory = Callable[..., FormatEncoder]


class CancellationToken:
    """Thread-safe flag polled by the orchestrator between frames."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

@dataclass
class ExportPlan:
    """Everything decided once, before the first frame is processed."""
    frames: List[SourceFrame]
    config: ExportConfiguration
    resize_instruction: Optional[ResizeInstruction]
    per_frame_delays: Optional[List[float]]
    uniform_delay_s: float

    @property
    def total(self) -> int:
        return len(self.frames)

    def delay_for(self, index: int) -> float:
        if self.per_frame_delays is None:
            return self.uniform_delay_s
        return self.per_frame_delays[index]


def _resolve_resize_instruction(
    config: ExportConfiguration,
    first_frame: SourceFrame,
) -> Optional[ResizeInstruction]:
    """Replace the letterbox color with the first frame's corner, if requested.

    The color is sampled once for the whole export.
    """
    instruction = config.resize_instruction
    if isinstance(instruction, FitResize) and config.use_auto_background_color:
        try:
            color = sample_corner_color(first_frame)
        except Exception as exc:
            raise FrameProcessingError(0, str(exc)) from exc
        logger.debug("Automatic letterbox color %s from %s", color, first_frame.name)
        return replace(instruction, background=color)
    return instruction


def plan_export(
    frames: Sequence[SourceFrame],
    config: ExportConfiguration,
) -> ExportPlan:
    """Snapshot and filter *frames*; raise NoFramesError if none remain."""
    selected = select_frames(
        unmuted_frames(snapshot_frames(frames)),
        config.frame_skip_interval,
    )
    if not selected:
        raise NoFramesError()
    return ExportPlan(
        frames=selected,
        config=config,
        resize_instruction=_resolve_resize_instruction(config, selected[0]),
        per_frame_delays=per_frame_delays(selected, config),
        uniform_delay_s=global_delay_s(config),
    )


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class ExportOrchestrator:
    """Drives one export at a time: Idle -> Running -> Completed | Failed | Cancelled."""

    def __init__(self, encoder_factory: EncoderFactory = create_encoder) -> None:
        self._encoder_factory = encoder_factory
        self._lock = threading.Lock()
        self.phase = ExportPhase.IDLE
        self.frame_index = 0
        self.progress = 0.0
        self.result: ExportResult | None = None

    def _start(self) -> None:
        with self._lock:
            if self.phase is ExportPhase.RUNNING:
                raise ExportInProgressError("An export is already running")
            self.phase = ExportPhase.RUNNING
            self.frame_index = 0
            self.progress = 0.0
            self.result = None

    def _finish(self, result: ExportResult) -> ExportResult:
        self.result = result
        self.phase = {
            ExportStatus.COMPLETED: ExportPhase.COMPLETED,
            ExportStatus.FAILED: ExportPhase.FAILED,
            ExportStatus.CANCELLED: ExportPhase.CANCELLED,
        }[result.status]
        return result

    def run(
        self,
        frames: Sequence[SourceFrame],
        destination: Path,
        config: ExportConfiguration,
        on_progress: ProgressCallback | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> ExportResult:
        """Export *frames* to *destination*; never raises ExportError."""
        self._start()
        destination = Path(destination)
        encoder: FormatEncoder | None = None
        try:
            plan = plan_export(frames, config)
            logger.info(
                "Exporting %d frames as %s to %s",
                plan.total, config.format.name, destination,
            )
            for index, frame in enumerate(plan.frames):
                self._check_cancelled(cancel_token)
                self.frame_index = index
                encoder = self._export_frame(plan, index, frame, encoder, destination)
                self.progress = (index + 1) / plan.total
                if on_progress is not None:
                    on_progress(self.progress)

            self._check_cancelled(cancel_token)
            path = encoder.finalize()
        except ExportCancelledError as exc:
            if encoder is not None:
                encoder.abort()
            logger.info("Export cancelled at frame %d", self.frame_index + 1)
            return self._finish(ExportResult(
                status=ExportStatus.CANCELLED, error=exc,
            ))
        except ExportError as exc:
            if encoder is not None:
                encoder.abort()
            logger.error("Export failed: %s", exc)
            return self._finish(ExportResult(status=ExportStatus.FAILED, error=exc))
        except BaseException:
            if encoder is not None:
                encoder.abort()
            self.phase = ExportPhase.FAILED
            raise

        return self._finish(ExportResult(
            status=ExportStatus.COMPLETED,
            path=path,
            frame_count=encoder.written_frame_count,
            source_frame_count=encoder.frame_count,
            size_bytes=path.stat().st_size,
        ))

    @staticmethod
    def _check_cancelled(cancel_token: CancellationToken | None) -> None:
        if cancel_token is not None and cancel_token.cancelled:
            raise ExportCancelledError()

    def _export_frame(
        self,
        plan: ExportPlan,
        index: int,
        frame: SourceFrame,
        encoder: FormatEncoder | None,
        destination: Path,
    ) -> FormatEncoder:
        try:
            image = process_frame(frame, plan.config, plan.resize_instruction)
        except Exception as exc:
            raise FrameProcessingError(index, str(exc)) from exc

        if encoder is None:
            # WebP fixes its canvas from the first processed frame.
            encoder = self._encoder_factory(destination, plan.config, image.size)

        try:
            encoder.add_frame(EncodedFrame(index=index, image=image, delay_s=plan.delay_for(index)))
        except Exception as exc:
            # The caller never sees a freshly created encoder on this path.
            encoder.abort()
            raise FrameProcessingError(index, str(exc)) from exc
        logger.debug("Frame %d/%d encoded (%s)", index + 1, plan.total, frame.name)
        return encoder


def export(
    frames: Sequence[SourceFrame],
    destination: Path,
    config: ExportConfiguration,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancellationToken | None = None,
) -> ExportResult:
    """Run a single export with a fresh orchestrator."""
    return ExportOrchestrator().run(
        frames, destination, config,
        on_progress=on_progress, cancel_token=cancel_token,
    )
