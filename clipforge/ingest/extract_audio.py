from __future__ import annotations

import logging
from pathlib import Path

from clipforge.ingest.commands import run_media_command

logger = logging.getLogger(__name__)

ANALYSIS_SAMPLE_RATE = 16000


def extract_audio(
    video_path: str | Path,
    dest_audio_path: str | Path,
    target_sample_rate: int = ANALYSIS_SAMPLE_RATE,
) -> Path:
    """Extract a mono 16-bit PCM WAV track for loudness analysis and transcription."""

    source_path = Path(video_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Video file not found: {source_path}")

    output_path = Path(dest_audio_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    command = [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-i",
        str(source_path),
        "-vn",
        "-ac",
        "1",
        "-ar",
        str(target_sample_rate),
        "-c:a",
        "pcm_s16le",
        str(output_path),
    ]
    run_media_command(command)
    logger.info("Extracted analysis audio %s -> %s", source_path.name, output_path)
    return output_path


class FfmpegAudioExtractor:
    """AudioExtractor backed by ffmpeg."""

    def extract(self, video_path: str | Path, dest_audio_path: str | Path) -> None:
        extract_audio(video_path, dest_audio_path)
