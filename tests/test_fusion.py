from __future__ import annotations

import numpy as np
import pytest

from clipforge.analysis.fusion import (
    SIGNAL_SOURCE_COUNT,
    _nearest,
    deduplicate_moments,
    estimate_clip_quality,
    fuse_signals,
    select_top_moments,
    viewer_clip_score,
)
from clipforge.config import FusionSettings
from clipforge.models import (
    AudioMoment,
    AudioSignal,
    ChatMoment,
    ClipsSignal,
    MomentSignals,
    SignalMoment,
    ViewerClip,
)


def _chat(timestamp: float, score: int, velocity: float = 3.0) -> ChatMoment:
    return ChatMoment(timestamp=timestamp, velocity=velocity, emote_score=1.0, score=score)


def _audio(timestamp: float, score: int, kind: str = "peak") -> AudioMoment:
    return AudioMoment(timestamp=timestamp, amplitude=0.9, rms_level=0.5, score=score, kind=kind)


def _moment(timestamp: float, score: int, duration: float = 13.0, signal_count: int = 1) -> SignalMoment:
    return SignalMoment(
        timestamp=timestamp,
        duration=duration,
        score=score,
        confidence=signal_count / SIGNAL_SOURCE_COUNT,
        signal_count=signal_count,
    )


def test_chat_and_audio_converge_into_one_moment() -> None:
    moments = fuse_signals([_chat(10.0, 80)], [_audio(11.0, 90, "sustained")])

    assert len(moments) == 1
    moment = moments[0]
    assert moment.timestamp == 10.0
    assert moment.signal_count == 2
    assert moment.confidence == pytest.approx(2 / 3, abs=1e-3)
    # 80 * 0.4 + 90 * 0.4 + one convergence bonus
    assert moment.score == 88
    # pre/post roll plus the sustained-audio extension
    assert moment.duration == 18.0
    assert moment.suggested_title == "Insane reaction"
    assert moment.signals.audio == AudioSignal(score=90, kind="sustained")


def test_weak_single_source_moment_is_dropped() -> None:
    assert fuse_signals([_chat(10.0, 50)], []) == []


def test_min_score_is_checked_before_the_cap() -> None:
    settings = FusionSettings(min_score=101.0)
    chat = [_chat(10.0, 100)]
    audio = [_audio(10.0, 100)]
    clips = [ViewerClip(timestamp=10.0, duration=30, view_count=10_000, title="clip")] * 3

    # raw total is well above 100 and survives; the stored score is capped
    moments = fuse_signals(chat, audio, clips, settings)

    assert [m.score for m in moments] == [100]
    assert moments[0].confidence == 1.0


def test_viewer_clip_title_wins_and_score_is_log_scaled() -> None:
    clips = [
        ViewerClip(timestamp=40.0, duration=30, view_count=99, title="Huge clutch"),
        ViewerClip(timestamp=45.0, duration=30, view_count=9, title="ok"),
    ]

    assert viewer_clip_score(clips[:1]) == pytest.approx(40.0)
    moments = fuse_signals([_chat(41.0, 70)], [_audio(40.0, 70)], clips)

    assert moments[0].suggested_title == "Huge clutch"
    assert moments[0].signals.clips == ClipsSignal(score=pytest.approx(70.0), count=2)
    assert moments[0].signal_count == 3


def test_nearest_match_prefers_the_earliest_on_ties() -> None:
    chat = [_chat(8.0, 60), _chat(12.0, 90)]

    assert _nearest(chat, 10.0, 5.0).score == 60
    assert _nearest(chat, 11.0, 5.0).score == 90
    assert _nearest(chat, 20.0, 5.0) is None


def test_overlapping_candidates_reduce_to_single_best() -> None:
    ranked = [_moment(20.0, 90), _moment(25.0, 80), _moment(15.0, 70)]

    survivors = deduplicate_moments(ranked, pre_roll=5.0)

    assert [m.timestamp for m in survivors] == [20.0]


def test_fused_moments_never_overlap() -> None:
    rng = np.random.default_rng(3)
    settings = FusionSettings()

    for _ in range(100):
        chat = [_chat(float(t), int(rng.integers(20, 100))) for t in rng.uniform(0, 600, size=20)]
        audio = [
            _audio(float(t), int(rng.integers(20, 100)), str(rng.choice(["peak", "sustained", "silence_break"])))
            for t in rng.uniform(0, 600, size=20)
        ]
        clips = [
            ViewerClip(timestamp=float(t), duration=30, view_count=int(rng.integers(0, 5000)), title="c")
            for t in rng.uniform(0, 600, size=5)
        ]
        moments = fuse_signals(chat, audio, clips, settings)

        intervals = [m.interval(settings.pre_roll) for m in moments]
        assert [m.timestamp for m in moments] == sorted(m.timestamp for m in moments)
        assert all(prev_end <= start for (_, prev_end), (start, _) in zip(intervals, intervals[1:]))
        for m in moments:
            assert 0 <= m.score <= 100
            assert m.confidence == pytest.approx(m.signal_count / SIGNAL_SOURCE_COUNT)
            assert settings.min_duration <= m.duration <= settings.max_duration


def test_more_sources_never_lower_the_score() -> None:
    rng = np.random.default_rng(5)

    for _ in range(100):
        chat_score = int(rng.integers(0, 101))
        audio_score = int(rng.integers(0, 101))
        settings = FusionSettings(min_score=0)

        chat_only = fuse_signals([_chat(30.0, chat_score)], [], [], settings)
        both = fuse_signals([_chat(30.0, chat_score)], [_audio(30.0, audio_score)], [], settings)

        assert both[0].score >= chat_only[0].score
        assert both[0].signal_count > chat_only[0].signal_count


def test_select_top_moments_keeps_best_in_timeline_order() -> None:
    moments = [_moment(10.0, 40), _moment(50.0, 90), _moment(90.0, 60), _moment(130.0, 75)]

    assert [m.timestamp for m in select_top_moments(moments, 2)] == [50.0, 130.0]
    assert select_top_moments(moments, 0) == []


def test_clip_quality_classification() -> None:
    strong = SignalMoment(
        timestamp=10.0,
        duration=18.0,
        score=88,
        confidence=2 / 3,
        signal_count=2,
        signals=MomentSignals(audio=AudioSignal(score=90, kind="silence_break"), clips=ClipsSignal(60.0, 2)),
    )
    weak = _moment(10.0, 35)

    quality = estimate_clip_quality(strong)
    assert quality.quality == "high"
    assert quality.reasons == [
        "Multiple signal convergence",
        "High combined score",
        "Viewer-validated moment",
        "Comedic timing detected",
    ]
    assert estimate_clip_quality(weak).quality == "low"
    assert estimate_clip_quality(_moment(10.0, 55)).quality == "medium"
