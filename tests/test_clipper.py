from __future__ import annotations

import threading
import time
from pathlib import Path

from clipforge.extraction.clipper import FfmpegClipCutter, build_extract_command, clip_window
from clipforge.models import ExtractedClip, SignalMoment


def _moment(timestamp: float, duration: float = 13.0) -> SignalMoment:
    return SignalMoment(timestamp=timestamp, duration=duration, score=70, confidence=1 / 3, signal_count=1)


def test_clip_window_applies_rolls_and_clamps_at_zero() -> None:
    assert clip_window(_moment(60.0, 18.0), pre_roll=5.0, post_roll=8.0) == (55.0, 81.0)
    assert clip_window(_moment(2.0), pre_roll=5.0, post_roll=8.0)[0] == 0.0


def test_build_extract_command_uses_quality_preset() -> None:
    command = build_extract_command(
        input_path="/vod.mp4",
        output_path="/out.mp4",
        start=55.0,
        duration=26.0,
        quality="high",
    )

    assert command[command.index("-ss") + 1] == "55.000"
    assert command[command.index("-t") + 1] == "26.000"
    assert command[command.index("-crf") + 1] == "18"
    assert command[-1] == "/out.mp4"


def test_extract_batch_bounds_concurrency_and_keeps_order(tmp_path: Path, monkeypatch) -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def _fake_extract(self, video_path, dest_dir, moment, quality="medium"):
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        time.sleep(0.01)
        with lock:
            active -= 1
        return ExtractedClip(
            id=f"clip-{moment.timestamp:g}",
            path=str(Path(dest_dir) / f"{moment.timestamp:g}.mp4"),
            thumbnail_path="",
            start_time=moment.timestamp - 5,
            end_time=moment.timestamp + 16,
            duration=21.0,
            moment=moment,
        )

    monkeypatch.setattr(FfmpegClipCutter, "extract_clip", _fake_extract)
    progress: list[tuple[int, int]] = []
    moments = [_moment(float(t)) for t in (100, 20, 300, 40, 500)]

    clips = FfmpegClipCutter().extract_batch(
        tmp_path / "vod.mp4",
        tmp_path,
        moments,
        max_concurrent=2,
        on_progress=lambda done, total: progress.append((done, total)),
    )

    assert [clip.id for clip in clips] == ["clip-100", "clip-20", "clip-300", "clip-40", "clip-500"]
    assert peak <= 2
    assert progress == [(2, 5), (4, 5), (5, 5)]
