from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Sequence

from clipforge.config import FusionSettings
from clipforge.models import (
    AudioMoment,
    AudioSignal,
    ChatMoment,
    ChatSignal,
    ClipQuality,
    ClipsSignal,
    MomentSignals,
    SignalMoment,
    ViewerClip,
)

logger = logging.getLogger(__name__)

# Number of independent source types (chat, audio, viewer clips). Confidence is
# signal_count divided by this, so it must change if a source type is added.
SIGNAL_SOURCE_COUNT = 3

SUSTAINED_AUDIO_BONUS_SECONDS = 5.0
HIGH_VELOCITY_BONUS_SECONDS = 3.0
HIGH_VELOCITY_DURATION_THRESHOLD = 5.0

FALLBACK_TITLE = "Highlight moment"


@dataclass(slots=True)
class _Candidate:
    timestamp: float
    score: float
    signal_count: int
    signals: MomentSignals
    nearby_clips: list[ViewerClip]


def fuse_signals(
    chat_moments: Sequence[ChatMoment],
    audio_moments: Sequence[AudioMoment],
    viewer_clips: Sequence[ViewerClip] = (),
    settings: FusionSettings | None = None,
) -> list[SignalMoment]:
    """Fuse per-source moments into ranked, non-overlapping signal moments.

    Pipeline:
    1) collect candidate timestamps (rounded, deduplicated) from every source
    2) score each candidate from the nearest matching evidence per source
    3) reward multi-source agreement with a convergence bonus
    4) shape duration/title, drop weak candidates
    5) greedy highest-score-wins interval deduplication, returned in timeline order
    """

    cfg = settings or FusionSettings()

    timestamps: set[int] = set()
    timestamps.update(int(round(m.timestamp)) for m in chat_moments)
    timestamps.update(int(round(m.timestamp)) for m in audio_moments)
    timestamps.update(int(round(c.timestamp)) for c in viewer_clips)

    moments: list[SignalMoment] = []
    for timestamp in sorted(timestamps):
        candidate = _score_candidate(float(timestamp), chat_moments, audio_moments, viewer_clips, cfg)
        if candidate.score < cfg.min_score:
            continue
        moments.append(_to_signal_moment(candidate, cfg))

    ranked = sorted(moments, key=lambda m: (-m.score, -m.signal_count, m.timestamp))
    accepted = deduplicate_moments(ranked, pre_roll=cfg.pre_roll)
    logger.info(
        "Fused %d chat, %d audio, %d viewer-clip signals into %d moments (%d candidates)",
        len(chat_moments),
        len(audio_moments),
        len(viewer_clips),
        len(accepted),
        len(timestamps),
    )
    return accepted


def deduplicate_moments(ranked: Sequence[SignalMoment], pre_roll: float) -> list[SignalMoment]:
    """Keep each moment unless its interval overlaps an already accepted one.

    `ranked` must already be in priority order (best first). The result is in
    timeline order.
    """

    accepted: list[SignalMoment] = []
    for moment in ranked:
        start, end = moment.interval(pre_roll)
        overlaps = False
        for kept in accepted:
            kept_start, kept_end = kept.interval(pre_roll)
            if start < kept_end and end > kept_start:
                overlaps = True
                break
        if not overlaps:
            accepted.append(moment)

    return sorted(accepted, key=lambda m: m.timestamp)


def select_top_moments(moments: Sequence[SignalMoment], limit: int) -> list[SignalMoment]:
    """Keep the `limit` best-scoring moments, returned in timeline order."""

    if limit <= 0:
        return []
    ranked = sorted(moments, key=lambda m: (-m.score, -m.signal_count, m.timestamp))
    return sorted(ranked[:limit], key=lambda m: m.timestamp)


def estimate_clip_quality(moment: SignalMoment) -> ClipQuality:
    """Classify a fused moment for display; reasons never feed back into ranking."""

    reasons: list[str] = []
    if moment.confidence >= 0.66:
        reasons.append("Multiple signal convergence")
    if moment.score >= 70:
        reasons.append("High combined score")
    if moment.signals.clips is not None and moment.signals.clips.count >= 2:
        reasons.append("Viewer-validated moment")
    if moment.signals.audio is not None and moment.signals.audio.kind == "silence_break":
        reasons.append("Comedic timing detected")

    if moment.score >= 70 and moment.confidence >= 0.5:
        quality = "high"
    elif moment.score >= 50 or moment.confidence >= 0.66:
        quality = "medium"
    else:
        quality = "low"

    return ClipQuality(quality=quality, reasons=reasons)


def viewer_clip_score(clips: Sequence[ViewerClip]) -> float:
    """Evidence strength of a group of viewer clips: count plus log-scaled views."""

    raw = len(clips) * 20 + sum(math.log10(max(clip.view_count, 0) + 1) * 10 for clip in clips)
    return min(raw, 100.0)


def _score_candidate(
    timestamp: float,
    chat_moments: Sequence[ChatMoment],
    audio_moments: Sequence[AudioMoment],
    viewer_clips: Sequence[ViewerClip],
    cfg: FusionSettings,
) -> _Candidate:
    weights = cfg.weights
    score = 0.0
    signal_count = 0
    chat_signal: ChatSignal | None = None
    audio_signal: AudioSignal | None = None
    clips_signal: ClipsSignal | None = None

    chat = _nearest(chat_moments, timestamp, cfg.convergence_window)
    if chat is not None:
        chat_signal = ChatSignal(score=chat.score, velocity=chat.velocity)
        score += chat.score * weights.chat
        signal_count += 1

    audio = _nearest(audio_moments, timestamp, cfg.convergence_window)
    if audio is not None:
        audio_signal = AudioSignal(score=audio.score, kind=audio.kind)
        score += audio.score * weights.audio
        signal_count += 1

    nearby_clips = [c for c in viewer_clips if abs(c.timestamp - timestamp) <= cfg.convergence_window * 2]
    if nearby_clips:
        clip_score = viewer_clip_score(nearby_clips)
        clips_signal = ClipsSignal(score=clip_score, count=len(nearby_clips))
        score += clip_score * weights.clips
        signal_count += 1

    if signal_count >= 2:
        score += cfg.convergence_bonus * (signal_count - 1)

    return _Candidate(
        timestamp=timestamp,
        score=score,
        signal_count=signal_count,
        signals=MomentSignals(chat=chat_signal, audio=audio_signal, clips=clips_signal),
        nearby_clips=nearby_clips,
    )


def _to_signal_moment(candidate: _Candidate, cfg: FusionSettings) -> SignalMoment:
    signals = candidate.signals

    duration = cfg.pre_roll + cfg.post_roll
    if signals.audio is not None and signals.audio.kind == "sustained":
        duration += SUSTAINED_AUDIO_BONUS_SECONDS
    if signals.chat is not None and signals.chat.velocity > HIGH_VELOCITY_DURATION_THRESHOLD:
        duration += HIGH_VELOCITY_BONUS_SECONDS
    duration = max(cfg.min_duration, min(duration, cfg.max_duration))

    return SignalMoment(
        timestamp=candidate.timestamp,
        duration=duration,
        score=int(round(min(candidate.score, 100.0))),
        confidence=candidate.signal_count / SIGNAL_SOURCE_COUNT,
        signal_count=candidate.signal_count,
        signals=signals,
        suggested_title=_suggest_title(signals, candidate.nearby_clips),
    )


def _nearest(moments, timestamp: float, window: float):
    best = None
    best_distance = None
    for moment in moments:
        distance = abs(moment.timestamp - timestamp)
        if distance > window:
            continue
        if best_distance is None or distance < best_distance:
            best = moment
            best_distance = distance
    return best


def _suggest_title(signals: MomentSignals, nearby_clips: Sequence[ViewerClip]) -> str:
    if nearby_clips:
        best_clip = max(nearby_clips, key=lambda clip: clip.view_count)
        if best_clip.title and len(best_clip.title) > 3:
            return best_clip.title

    if signals.audio is not None and signals.audio.kind == "silence_break":
        return "The moment everyone waited for"
    if signals.audio is not None and signals.audio.score > 80:
        return "Insane reaction"
    if signals.chat is not None and signals.chat.velocity > 8:
        return "Chat went crazy"
    if signals.clips is not None and signals.clips.count > 3:
        return "The clip everyone made"
    return FALLBACK_TITLE
