"""
End-to-end tests for the export orchestrator.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

import phosphor.encoders
import phosphor.processing
from phosphor.encoders import create_encoder
from phosphor.exceptions import (
    DestinationCreationError,
    ExportCancelledError,
    ExportInProgressError,
    FinalizationError,
    FrameProcessingError,
    NoFramesError,
    SizeLimitExceededError,
)
from phosphor.export import CancellationToken, ExportOrchestrator, export, plan_export
from phosphor.frames import SourceFrame
from phosphor.types import (
    ExportConfiguration,
    ExportFormat,
    ExportPhase,
    ExportStatus,
    FitResize,
)


pytestmark = pytest.mark.filterwarnings("ignore::pytest.PytestUnraisableExceptionWarning")

FRAME_COLORS = [(255, 0, 0), (0, 255, 0), (0, 0, 255), (255, 255, 0), (0, 255, 255), (255, 0, 255)]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _make_frames(n: int = 3, size: tuple[int, int] = (40, 30)) -> list[SourceFrame]:
    return [
        SourceFrame(Image.new("RGBA", size, (*FRAME_COLORS[i], 255)), name=f"f{i}")
        for i in range(n)
    ]


def _read_durations(path: Path) -> list[float]:
    durations = []
    with Image.open(path) as img:
        for i in range(img.n_frames):
            img.seek(i)
            durations.append(img.info["duration"])
    return durations


class _RecordingFactory:
    """Encoder factory that remembers how often it was called."""

    def __init__(self) -> None:
        self.calls = 0

    def __call__(self, destination, config, canvas_size=None):
        self.calls += 1
        return create_encoder(destination, config, canvas_size)


# ---------------------------------------------------------------------------
# Planning
# ---------------------------------------------------------------------------

class TestPlanExport:
    def test_uniform_delay(self):
        plan = plan_export(_make_frames(), ExportConfiguration())
        assert plan.total == 3
        assert plan.per_frame_delays is None
        assert plan.delay_for(2) == pytest.approx(0.1)

    def test_custom_delay_array(self):
        frames = _make_frames()
        frames[1].custom_delay_ms = 250
        plan = plan_export(frames, ExportConfiguration(global_frame_delay_ms=100))
        assert plan.per_frame_delays == pytest.approx([0.1, 0.25, 0.1])

    def test_muted_and_skipped(self):
        frames = _make_frames(6)
        frames[0].muted = True
        plan = plan_export(frames, ExportConfiguration(frame_skip_interval=2))
        assert [f.name for f in plan.frames] == ["f1", "f3", "f5"]

    def test_no_frames(self):
        frames = _make_frames(2)
        for f in frames:
            f.muted = True
        with pytest.raises(NoFramesError):
            plan_export(frames, ExportConfiguration())

    def test_auto_background_sampled_from_first_frame(self):
        frames = _make_frames()
        frames[0].source.putpixel((0, 0), (10, 20, 30, 255))
        config = ExportConfiguration(
            resize_instruction=FitResize(64, 64), use_auto_background_color=True,
        )
        plan = plan_export(frames, config)
        assert plan.resize_instruction == FitResize(64, 64, background=(10, 20, 30))

    def test_manual_background_kept(self):
        config = ExportConfiguration(resize_instruction=FitResize(64, 64, (1, 2, 3)))
        assert plan_export(_make_frames(), config).resize_instruction.background == (1, 2, 3)


# ---------------------------------------------------------------------------
# Successful exports
# ---------------------------------------------------------------------------

class TestExportScenarios:
    def test_three_frame_gif(self, tmp_path):
        dest = tmp_path / "out.gif"
        config = ExportConfiguration(
            format=ExportFormat.GIF, global_frame_delay_ms=100, loop_count=0,
        )
        result = export(_make_frames(3), dest, config)
        assert result.status is ExportStatus.COMPLETED
        assert result.path == dest
        assert result.frame_count == 3
        assert result.size_bytes == dest.stat().st_size
        with Image.open(dest) as img:
            assert img.n_frames == 3
            assert img.info["loop"] == 0
        assert _read_durations(dest) == [100, 100, 100]

    def test_no_quantization_when_color_depth_disabled(self, tmp_path, monkeypatch):
        def _fail(*args, **kwargs):
            raise AssertionError("color reduction must not run")

        monkeypatch.setattr(phosphor.processing, "posterize", _fail)
        monkeypatch.setattr(phosphor.processing, "dither", _fail)
        config = ExportConfiguration(color_depth_levels=0, dithering_enabled=True)
        result = export(_make_frames(), tmp_path / "out.gif", config)
        assert result.success

    def test_custom_delay_written(self, tmp_path):
        frames = _make_frames()
        frames[1].custom_delay_ms = 250
        dest = tmp_path / "out.png"
        config = ExportConfiguration(format=ExportFormat.APNG, global_frame_delay_ms=100)
        assert export(frames, dest, config).success
        assert _read_durations(dest) == pytest.approx([100.0, 250.0, 100.0])

    def test_empty_set_creates_nothing(self, tmp_path):
        factory = _RecordingFactory()
        dest = tmp_path / "out.gif"
        frames = _make_frames(2)
        for f in frames:
            f.muted = True
        result = ExportOrchestrator(factory).run(frames, dest, ExportConfiguration())
        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, NoFramesError)
        assert result.message == "No images to export"
        assert factory.calls == 0
        assert list(tmp_path.iterdir()) == []

    def test_frame_count_matches_unmuted(self, tmp_path, export_format):
        frames = _make_frames(5)
        frames[1].muted = True
        frames[4].muted = True
        dest = tmp_path / f"out.{export_format.file_extension}"
        result = export(frames, dest, ExportConfiguration(format=export_format))
        assert result.frame_count == 3
        with Image.open(dest) as img:
            assert img.n_frames == 3

    def test_repeated_frames_reported_as_written(self, tmp_path, export_format):
        frames = [
            SourceFrame(Image.new("RGBA", (40, 30), (255, 0, 0, 255)), name=f"hold{i}")
            for i in range(3)
        ]
        dest = tmp_path / f"out.{export_format.file_extension}"
        result = export(frames, dest, ExportConfiguration(format=export_format))
        assert result.success
        assert result.source_frame_count == 3
        with Image.open(dest) as img:
            assert result.frame_count == img.n_frames == 1

    def test_identity_keeps_source_size(self, tmp_path):
        dest = tmp_path / "out.png"
        export(_make_frames(2, size=(37, 23)), dest, ExportConfiguration(format=ExportFormat.APNG))
        with Image.open(dest) as img:
            assert img.size == (37, 23)

    def test_tiny_delay_clamped(self, tmp_path):
        frames = _make_frames(2)
        for f in frames:
            f.custom_delay_ms = 5
        dest = tmp_path / "out.gif"
        export(frames, dest, ExportConfiguration())
        assert all(d >= 10 for d in _read_durations(dest))

    def test_auto_background_letterbox(self, tmp_path):
        frames = _make_frames(2, size=(100, 50))
        frames[0].source.putpixel((0, 0), (10, 20, 30, 255))
        config = ExportConfiguration(
            format=ExportFormat.APNG,
            resize_instruction=FitResize(64, 64),
            use_auto_background_color=True,
        )
        dest = tmp_path / "out.png"
        assert export(frames, dest, config).success
        with Image.open(dest) as img:
            assert img.size == (64, 64)
            assert img.convert("RGBA").getpixel((32, 2)) == (10, 20, 30, 255)

    def test_webp_with_resize(self, tmp_path):
        frames = _make_frames(3, size=(120, 40))
        config = ExportConfiguration(
            format=ExportFormat.WEBP, resize_instruction=FitResize(64, 64, (0, 0, 0)),
        )
        dest = tmp_path / "out.webp"
        assert export(frames, dest, config).success
        with Image.open(dest) as img:
            assert img.size == (64, 64)
            assert img.n_frames == 3


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

class TestProgress:
    def test_monotonic_and_ends_at_one(self, tmp_path):
        seen: list[float] = []
        export(_make_frames(4), tmp_path / "out.gif", ExportConfiguration(), on_progress=seen.append)
        assert seen == pytest.approx([0.25, 0.5, 0.75, 1.0])
        assert seen == sorted(seen)
        assert seen[-1] == 1.0

    def test_orchestrator_state(self, tmp_path):
        orch = ExportOrchestrator()
        assert orch.phase is ExportPhase.IDLE
        result = orch.run(_make_frames(), tmp_path / "out.gif", ExportConfiguration())
        assert orch.phase is ExportPhase.COMPLETED
        assert orch.progress == 1.0
        assert orch.result is result

    def test_frames_edited_mid_export_are_ignored(self, tmp_path):
        frames = _make_frames(3)

        def _mute_everything(_value):
            for f in frames:
                f.muted = True

        result = export(frames, tmp_path / "out.gif", ExportConfiguration(), on_progress=_mute_everything)
        assert result.frame_count == 3


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------

class TestFailures:
    def test_fail_fast_on_unreadable_frame(self, tmp_path):
        frames = _make_frames(3)
        frames[1] = SourceFrame(tmp_path / "missing.png")
        seen: list[float] = []
        dest = tmp_path / "out.gif"
        result = export(frames, dest, ExportConfiguration(), on_progress=seen.append)
        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, FrameProcessingError)
        assert result.error.index == 1
        assert result.message.startswith("Failed to process frame 2")
        assert seen == pytest.approx([1 / 3])
        assert list(tmp_path.iterdir()) == []

    def test_missing_destination_directory(self, tmp_path):
        result = export(_make_frames(), tmp_path / "nope" / "out.gif", ExportConfiguration())
        assert isinstance(result.error, DestinationCreationError)

    def test_size_limit(self, tmp_path):
        dest = tmp_path / "out.gif"
        result = export(_make_frames(), dest, ExportConfiguration(max_file_size_bytes=16))
        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, SizeLimitExceededError)
        assert "exceeds your size limit" in result.message
        assert list(tmp_path.iterdir()) == []

    def test_webp_frame_size_mismatch(self, tmp_path):
        frames = _make_frames(2)
        frames.append(SourceFrame(Image.new("RGBA", (10, 10), (9, 9, 9, 255))))
        result = export(frames, tmp_path / "out.webp", ExportConfiguration(format=ExportFormat.WEBP))
        assert isinstance(result.error, FrameProcessingError)
        assert result.error.index == 2
        assert list(tmp_path.iterdir()) == []

    def test_previous_destination_survives_failure(self, tmp_path):
        dest = tmp_path / "out.gif"
        dest.write_bytes(b"previous")
        export(_make_frames(), dest, ExportConfiguration(max_file_size_bytes=16))
        assert dest.read_bytes() == b"previous"

    def test_container_writer_crash_is_reported(self, tmp_path, monkeypatch):
        def _explode(self, path):
            raise RuntimeError("anim encoder failed")

        monkeypatch.setattr(phosphor.encoders.GifEncoder, "_write", _explode)
        orch = ExportOrchestrator()
        result = orch.run(_make_frames(), tmp_path / "out.gif", ExportConfiguration())
        assert result.status is ExportStatus.FAILED
        assert isinstance(result.error, FinalizationError)
        assert orch.phase is ExportPhase.FAILED
        assert list(tmp_path.iterdir()) == []

    def test_second_concurrent_run_rejected(self, tmp_path):
        orch = ExportOrchestrator()
        orch.phase = ExportPhase.RUNNING
        with pytest.raises(ExportInProgressError):
            orch.run(_make_frames(), tmp_path / "out.gif", ExportConfiguration())


# ---------------------------------------------------------------------------
# Cancellation
# ---------------------------------------------------------------------------

class TestCancellation:
    def test_cancel_at_frame_boundary(self, tmp_path):
        token = CancellationToken()
        seen: list[float] = []

        def _cancel_after_first(value):
            seen.append(value)
            token.cancel()

        dest = tmp_path / "out.gif"
        orch = ExportOrchestrator()
        result = orch.run(
            _make_frames(3), dest, ExportConfiguration(),
            on_progress=_cancel_after_first, cancel_token=token,
        )
        assert result.status is ExportStatus.CANCELLED
        assert isinstance(result.error, ExportCancelledError)
        assert orch.phase is ExportPhase.CANCELLED
        assert seen == pytest.approx([1 / 3])
        assert list(tmp_path.iterdir()) == []

    def test_cancel_before_start(self, tmp_path):
        token = CancellationToken()
        token.cancel()
        factory = _RecordingFactory()
        result = ExportOrchestrator(factory).run(
            _make_frames(), tmp_path / "out.gif", ExportConfiguration(), cancel_token=token,
        )
        assert result.status is ExportStatus.CANCELLED
        assert factory.calls == 0

    def test_cancel_after_last_frame(self, tmp_path):
        token = CancellationToken()

        def _cancel_at_end(value):
            if value == 1.0:
                token.cancel()

        result = export(
            _make_frames(2), tmp_path / "out.gif", ExportConfiguration(),
            on_progress=_cancel_at_end, cancel_token=token,
        )
        assert result.status is ExportStatus.CANCELLED
        assert list(tmp_path.iterdir()) == []
