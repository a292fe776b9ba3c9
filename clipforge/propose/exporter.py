from __future__ import annotations

import csv
import json
import shlex
from dataclasses import asdict
from pathlib import Path
from typing import Any, Sequence

from clipforge.analysis.fusion import estimate_clip_quality
from clipforge.models import AudioSignal, ChatSignal, ClipsSignal, MomentSignals, SignalMoment


def export_moments(moments: Sequence[SignalMoment], output_path: str | Path) -> Path:
    """Export signal moments to JSON (default) or CSV, based on file extension."""

    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix.lower() == ".csv":
        _write_csv(moments, path)
    else:
        _write_json(moments, path)

    return path


def export_final_outputs(
    moments: Sequence[SignalMoment],
    output_dir: str | Path,
    *,
    basename: str = "moments",
    vod_path: str | None = None,
    pre_roll: float = 5.0,
    include_ffmpeg_commands: bool = True,
) -> dict[str, Path]:
    """Export JSON/CSV moment files and a review manifest for quick triage."""

    resolved_output_dir = Path(output_dir)
    resolved_output_dir.mkdir(parents=True, exist_ok=True)

    json_path = resolved_output_dir / f"{basename}.json"
    csv_path = resolved_output_dir / f"{basename}.csv"
    review_path = resolved_output_dir / f"{basename}_review.json"

    export_moments(moments, json_path)
    export_moments(moments, csv_path)

    review_manifest = generate_review_manifest(
        moments,
        vod_path=vod_path,
        pre_roll=pre_roll,
        include_ffmpeg_commands=include_ffmpeg_commands,
    )
    review_path.write_text(json.dumps(review_manifest, indent=2, ensure_ascii=False), encoding="utf-8")

    return {
        "json": json_path,
        "csv": csv_path,
        "review": review_path,
    }


def generate_review_manifest(
    moments: Sequence[SignalMoment],
    *,
    vod_path: str | None = None,
    pre_roll: float = 5.0,
    include_ffmpeg_commands: bool = True,
) -> list[dict[str, Any]]:
    """Build a lightweight review manifest with quality/reason summaries."""

    manifest: list[dict[str, Any]] = []
    for idx, moment in enumerate(moments, start=1):
        start, end = moment.interval(pre_roll)
        quality = estimate_clip_quality(moment)
        entry = {
            "index": idx,
            "timestamp": moment.timestamp,
            "start_seconds": round(max(start, 0.0), 3),
            "end_seconds": round(end, 3),
            "duration_seconds": moment.duration,
            "score": moment.score,
            "confidence": round(moment.confidence, 3),
            "quality": quality.quality,
            "reasons": quality.reasons,
            "title": moment.suggested_title,
        }
        if include_ffmpeg_commands and vod_path:
            entry["ffmpeg_command"] = build_ffmpeg_clip_command(
                vod_path=vod_path,
                moment=moment,
                index=idx,
                pre_roll=pre_roll,
            )
        manifest.append(entry)

    return manifest


def build_ffmpeg_clip_command(
    *,
    vod_path: str,
    moment: SignalMoment,
    index: int,
    pre_roll: float = 5.0,
    output_dir: str = "clips",
) -> str:
    """Generate a copy-paste ffmpeg command for a moment's clip interval."""

    start = max(0.0, moment.timestamp - pre_roll)
    output_path = f"{output_dir.rstrip('/')}/moment_{index:04d}.mp4"

    return (
        "ffmpeg "
        f"-ss {start:.3f} "
        f"-i {shlex.quote(vod_path)} "
        f"-t {moment.duration:g} "
        "-c:v libx264 -preset veryfast -crf 18 "
        "-c:a aac -b:a 160k "
        f"{shlex.quote(output_path)}"
    )


def load_moments(path: str | Path) -> list[SignalMoment]:
    """Load signal moments written by `export_moments` (JSON)."""

    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Moment file must be a JSON array.")

    moments: list[SignalMoment] = []
    for idx, row in enumerate(payload, start=1):
        if not isinstance(row, dict):
            raise ValueError(f"Moment row {idx} must be an object.")
        moments.append(moment_from_dict(row))
    return moments


def moment_to_dict(moment: SignalMoment) -> dict[str, Any]:
    return asdict(moment)


def moment_from_dict(row: dict[str, Any]) -> SignalMoment:
    signals = row.get("signals") or {}
    chat = signals.get("chat")
    audio = signals.get("audio")
    clips = signals.get("clips")
    return SignalMoment(
        timestamp=float(row["timestamp"]),
        duration=float(row["duration"]),
        score=int(row["score"]),
        confidence=float(row["confidence"]),
        signal_count=int(row.get("signal_count", 0)),
        signals=MomentSignals(
            chat=ChatSignal(score=float(chat["score"]), velocity=float(chat["velocity"])) if chat else None,
            audio=AudioSignal(score=float(audio["score"]), kind=audio["kind"]) if audio else None,
            clips=ClipsSignal(score=float(clips["score"]), count=int(clips["count"])) if clips else None,
        ),
        suggested_title=str(row.get("suggested_title") or "Highlight moment"),
    )


def _write_json(moments: Sequence[SignalMoment], path: Path) -> None:
    payload = [moment_to_dict(moment) for moment in moments]
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def _write_csv(moments: Sequence[SignalMoment], path: Path) -> None:
    fields = [
        "timestamp",
        "duration",
        "score",
        "confidence",
        "signal_count",
        "quality",
        "sources",
        "title",
    ]

    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=fields)
        writer.writeheader()
        for moment in moments:
            writer.writerow(
                {
                    "timestamp": f"{moment.timestamp:.3f}",
                    "duration": f"{moment.duration:g}",
                    "score": moment.score,
                    "confidence": f"{moment.confidence:.3f}",
                    "signal_count": moment.signal_count,
                    "quality": estimate_clip_quality(moment).quality,
                    "sources": "|".join(_source_names(moment.signals)),
                    "title": moment.suggested_title,
                }
            )


def _source_names(signals: MomentSignals) -> list[str]:
    return [name for name in ("chat", "audio", "clips") if getattr(signals, name) is not None]
