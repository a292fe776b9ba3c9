from __future__ import annotations

import csv
import json

from clipforge.models import AudioSignal, ChatSignal, ClipsSignal, MomentSignals, SignalMoment
from clipforge.propose.exporter import (
    build_ffmpeg_clip_command,
    export_final_outputs,
    export_moments,
    generate_review_manifest,
    load_moments,
)


def _sample_moments() -> list[SignalMoment]:
    return [
        SignalMoment(
            timestamp=17.5,
            duration=18.0,
            score=88,
            confidence=2 / 3,
            signal_count=2,
            signals=MomentSignals(
                chat=ChatSignal(score=80, velocity=6.0),
                audio=AudioSignal(score=90, kind="sustained"),
            ),
            suggested_title="Insane reaction",
        ),
        SignalMoment(
            timestamp=70.0,
            duration=13.0,
            score=35,
            confidence=1 / 3,
            signal_count=1,
            signals=MomentSignals(clips=ClipsSignal(score=40.0, count=1)),
        ),
    ]


def test_export_moments_json_keeps_nested_signals(tmp_path) -> None:
    out = tmp_path / "moments.json"
    export_moments(_sample_moments(), out)

    payload = json.loads(out.read_text(encoding="utf-8"))
    assert isinstance(payload, list)
    assert payload[0]["signals"]["audio"] == {"score": 90, "kind": "sustained"}
    assert payload[1]["signals"]["chat"] is None


def test_export_moments_csv_contains_quality_and_sources(tmp_path) -> None:
    out = tmp_path / "moments.csv"
    export_moments(_sample_moments(), out)

    with out.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))

    assert rows[0]["quality"] == "high"
    assert rows[0]["sources"] == "chat|audio"
    assert rows[1]["quality"] == "low"
    assert rows[1]["title"] == "Highlight moment"


def test_generate_review_manifest_with_ffmpeg_command() -> None:
    manifest = generate_review_manifest(_sample_moments(), vod_path="/tmp/vod.mkv", pre_roll=5.0)

    assert manifest[0]["quality"] == "high"
    assert manifest[0]["start_seconds"] == 12.5
    assert manifest[0]["end_seconds"] == 30.5
    assert "-ss 12.500" in manifest[0]["ffmpeg_command"]
    assert "ffmpeg_command" not in generate_review_manifest(_sample_moments())[0]


def test_export_final_outputs_and_load_roundtrip(tmp_path) -> None:
    exported = export_final_outputs(_sample_moments(), tmp_path, basename="final", vod_path="/tmp/vod.mkv")

    assert exported["json"].exists()
    assert exported["csv"].exists()
    assert exported["review"].exists()
    assert load_moments(exported["json"]) == _sample_moments()


def test_build_ffmpeg_clip_command_has_expected_output_path() -> None:
    cmd = build_ffmpeg_clip_command(
        vod_path="/tmp/source vod.mkv",
        moment=_sample_moments()[0],
        index=3,
        output_dir="snippets",
    )

    assert "snippets/moment_0003.mp4" in cmd
    assert "'/tmp/source vod.mkv'" in cmd
    assert cmd.startswith("ffmpeg -ss 12.500")
