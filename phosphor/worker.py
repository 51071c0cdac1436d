"""
Run an export off the interactive thread.

The export itself runs on a single-worker ``ThreadPoolExecutor``.  The
progress callback only puts plain floats into a ``queue.Queue``; the
interactive thread calls ``drain_progress()`` (e.g. from a timer) and
applies the values to its own state.  Nothing UI-owned is captured by
the worker.
"""

from __future__ import annotations

import logging
import queue
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import List, Sequence

from phosphor.exceptions import ExportInProgressError
from phosphor.export import CancellationToken, ExportOrchestrator
from phosphor.frames import SourceFrame, snapshot_frames
from phosphor.types import ExportConfiguration, ExportResult

logger = logging.getLogger(__name__)


class BackgroundExport:
    """One export at a time, with queued progress and cooperative cancel."""

    def __init__(self, orchestrator: ExportOrchestrator | None = None) -> None:
        self._orchestrator = orchestrator or ExportOrchestrator()
        self._executor = ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="phosphor-export",
        )
        self._progress: queue.Queue[float] = queue.Queue()
        self._future: Future[ExportResult] | None = None
        self._token: CancellationToken | None = None

    @property
    def running(self) -> bool:
        return self._future is not None and not self._future.done()

    def start(
        self,
        frames: Sequence[SourceFrame],
        destination: Path,
        config: ExportConfiguration,
    ) -> None:
        """Snapshot *frames* on the calling thread and start exporting."""
        if self.running:
            raise ExportInProgressError("An export is already running")
        frames_snapshot = snapshot_frames(frames)
        self._token = CancellationToken()
        self._progress = queue.Queue()
        self._future = self._executor.submit(
            self._orchestrator.run,
            frames_snapshot,
            Path(destination),
            config,
            self._progress.put,
            self._token,
        )
        logger.debug("Background export started (%d frames)", len(frames_snapshot))

    def cancel(self) -> None:
        """Request cancellation; honored at the next frame boundary."""
        if self._token is not None:
            self._token.cancel()

    def drain_progress(self) -> List[float]:
        """Return every progress value posted since the last call, in order."""
        values: List[float] = []
        while True:
            try:
                values.append(self._progress.get_nowait())
            except queue.Empty:
                return values

    def result(self, timeout: float | None = None) -> ExportResult:
        if self._future is None:
            raise RuntimeError("No export has been started")
        return self._future.result(timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> BackgroundExport:
        return self

    def __exit__(self, *exc_info) -> None:
        self.shutdown()
