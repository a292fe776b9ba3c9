from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from clipforge.ingest.commands import run_media_command


@dataclass(slots=True, frozen=True)
class VideoDimensions:
    width: int
    height: int


def probe_media(media_path: str | Path) -> dict[str, Any]:
    """Probe media metadata via ffprobe and return a normalized summary."""

    source_path = Path(media_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Media file not found: {source_path}")

    return _normalize_probe_payload(source_path, _run_ffprobe(source_path))


def probe_video_dimensions(media_path: str | Path) -> VideoDimensions:
    """Width/height of the first video stream."""

    metadata = probe_media(media_path)
    for stream in metadata["streams"]:
        if stream["codec_type"] == "video" and stream["width"] and stream["height"]:
            return VideoDimensions(width=stream["width"], height=stream["height"])
    raise RuntimeError(f"No video stream with dimensions found in {metadata['media_path']}")


def probe_duration_seconds(media_path: str | Path) -> float:
    metadata = probe_media(media_path)
    duration = metadata["format"]["duration_seconds"]
    if duration is None:
        raise RuntimeError(f"ffprobe reported no duration for {metadata['media_path']}")
    return duration


def _run_ffprobe(media_path: Path) -> dict[str, Any]:
    command = [
        "ffprobe",
        "-v",
        "error",
        "-print_format",
        "json",
        "-show_format",
        "-show_streams",
        str(media_path),
    ]

    completed = run_media_command(
        command,
        failure_message=f"ffprobe failed while probing media file: {media_path}.",
    )

    try:
        return json.loads(completed.stdout)
    except json.JSONDecodeError as exc:
        raise RuntimeError("ffprobe returned invalid JSON output.") from exc


def _normalize_probe_payload(media_path: Path, payload: dict[str, Any]) -> dict[str, Any]:
    stream_entries = payload.get("streams", [])
    format_entry = payload.get("format", {})

    streams = [_normalize_stream(stream) for stream in stream_entries]

    return {
        "media_path": str(media_path),
        "format": {
            "format_name": format_entry.get("format_name"),
            "duration_seconds": _to_float(format_entry.get("duration")),
            "size_bytes": _to_int(format_entry.get("size")),
        },
        "streams": streams,
        "audio_stream_count": sum(1 for stream in streams if stream["codec_type"] == "audio"),
        "video_stream_count": sum(1 for stream in streams if stream["codec_type"] == "video"),
    }


def _normalize_stream(stream: dict[str, Any]) -> dict[str, Any]:
    return {
        "index": stream.get("index"),
        "codec_type": stream.get("codec_type"),
        "codec_name": stream.get("codec_name"),
        "width": _to_int(stream.get("width")),
        "height": _to_int(stream.get("height")),
        "duration_seconds": _to_float(stream.get("duration")),
    }


def _to_float(raw_value: Any) -> float | None:
    if raw_value in (None, "N/A", ""):
        return None
    return float(raw_value)


def _to_int(raw_value: Any) -> int | None:
    if raw_value in (None, "N/A", ""):
        return None
    return int(raw_value)
