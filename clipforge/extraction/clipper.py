from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Sequence

from clipforge.ingest.commands import run_media_command
from clipforge.models import ExtractedClip, QualityLabel, SignalMoment

logger = logging.getLogger(__name__)

QUALITY_PRESETS: dict[str, dict[str, str]] = {
    "high": {"crf": "18", "preset": "slow", "audio_bitrate": "192k"},
    "medium": {"crf": "23", "preset": "medium", "audio_bitrate": "128k"},
    "low": {"crf": "28", "preset": "fast", "audio_bitrate": "96k"},
}

BatchProgressHook = Callable[[int, int], None]


def clip_window(moment: SignalMoment, pre_roll: float, post_roll: float) -> tuple[float, float]:
    """Source-time (start, end) of the clip cut around a moment."""

    start = max(0.0, moment.timestamp - pre_roll)
    end = moment.timestamp + moment.duration - pre_roll + post_roll
    return start, end


def build_extract_command(
    *,
    input_path: str,
    output_path: str,
    start: float,
    duration: float,
    quality: str = "medium",
) -> list[str]:
    preset = QUALITY_PRESETS.get(quality, QUALITY_PRESETS["medium"])
    return [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-ss",
        f"{start:.3f}",
        "-i",
        input_path,
        "-t",
        f"{duration:.3f}",
        "-c:v",
        "libx264",
        "-crf",
        preset["crf"],
        "-preset",
        preset["preset"],
        "-c:a",
        "aac",
        "-b:a",
        preset["audio_bitrate"],
        "-movflags",
        "+faststart",
        output_path,
    ]


def build_thumbnail_command(*, clip_path: str, thumbnail_path: str, offset: float) -> list[str]:
    return [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-ss",
        f"{offset:.3f}",
        "-i",
        clip_path,
        "-vframes",
        "1",
        "-q:v",
        "2",
        thumbnail_path,
    ]


class FfmpegClipCutter:
    """ClipCutter that re-encodes each moment window with ffmpeg and grabs a thumbnail."""

    def __init__(self, pre_roll: float = 5.0, post_roll: float = 8.0) -> None:
        self.pre_roll = pre_roll
        self.post_roll = post_roll

    def extract_clip(
        self,
        video_path: str | Path,
        dest_dir: str | Path,
        moment: SignalMoment,
        quality: QualityLabel = "medium",
    ) -> ExtractedClip:
        output_dir = Path(dest_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        start, end = clip_window(moment, self.pre_roll, self.post_roll)
        duration = end - start
        clip_id = uuid.uuid4().hex[:12]
        output_path = output_dir / f"{clip_id}.mp4"
        thumbnail_path = output_dir / f"{clip_id}_thumb.jpg"

        run_media_command(
            build_extract_command(
                input_path=str(video_path),
                output_path=str(output_path),
                start=start,
                duration=duration,
                quality=quality,
            )
        )
        # thumbnail at the peak, relative to the clip start
        run_media_command(
            build_thumbnail_command(
                clip_path=str(output_path),
                thumbnail_path=str(thumbnail_path),
                offset=moment.timestamp - start,
            )
        )

        return ExtractedClip(
            id=clip_id,
            path=str(output_path),
            thumbnail_path=str(thumbnail_path),
            start_time=start,
            end_time=end,
            duration=duration,
            moment=moment,
        )

    def extract_batch(
        self,
        video_path: str | Path,
        dest_dir: str | Path,
        moments: Sequence[SignalMoment],
        *,
        max_concurrent: int = 2,
        quality: QualityLabel = "medium",
        on_progress: BatchProgressHook | None = None,
    ) -> list[ExtractedClip]:
        """Extract clips with at most `max_concurrent` ffmpeg processes; keeps input order."""

        total = len(moments)
        results: list[ExtractedClip] = []
        workers = max(1, max_concurrent)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            for batch_start in range(0, total, workers):
                batch = moments[batch_start : batch_start + workers]
                futures = [
                    executor.submit(self.extract_clip, video_path, dest_dir, moment, quality)
                    for moment in batch
                ]
                results.extend(future.result() for future in futures)
                logger.info("Extracted %d/%d clips", len(results), total)
                if on_progress is not None:
                    on_progress(len(results), total)

        return results
