from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, Sequence

from clipforge.config import ChatSettings
from clipforge.models import ChatMessage, ChatMoment

logger = logging.getLogger(__name__)

# Lexical hype markers (Twitch global emotes and common spam) with their weights.
HYPE_EMOTES: dict[str, float] = {
    "PogChamp": 1.5,
    "Pog": 1.3,
    "POGGERS": 1.5,
    "Kreygasm": 1.2,
    "PogU": 1.4,
    "OMEGALUL": 1.3,
    "LULW": 1.2,
    "LUL": 1.0,
    "monkaS": 1.3,
    "monkaW": 1.4,
    "Jebaited": 1.0,
    "HeyGuys": 0.5,
    "Kappa": 0.8,
    "catJAM": 0.9,
    "pepeLaugh": 1.1,
    "Sadge": 0.7,
    "EZ": 1.0,
    "gg": 0.6,
    "GG": 0.6,
    "F": 0.8,
    "Clap": 1.0,
    "HYPERS": 1.6,
    "FeelsGoodMan": 0.9,
    "FeelsBadMan": 0.7,
    "ResidentSleeper": 0.3,
    "4Head": 0.9,
    "BibleThump": 0.8,
    "WutFace": 1.1,
    "NotLikeThis": 1.0,
    "!": 0.3,
    "?!": 0.5,
    "LETSGO": 1.2,
    "LETS GO": 1.2,
    "INSANE": 1.3,
    "CRAZY": 1.2,
    "OMG": 1.1,
    "WTF": 1.2,
    "WHAT": 1.0,
    "HOW": 1.0,
    "NO WAY": 1.3,
    "NOWAY": 1.3,
}

CAPS_RATIO_THRESHOLD = 0.7
CAPS_MIN_LENGTH = 5
CAPS_BONUS = 0.5
REPEAT_BONUS = 0.3
MIN_MOMENT_SCORE = 20
VELOCITY_CAP = 10.0
SAMPLE_MESSAGE_COUNT = 5

_REPEATED_CHAR = re.compile(r"(.)\1{4,}")
_LOG_LINE = re.compile(r"\[(\d{2}):(\d{2}):(\d{2})\]\s*(\w+):\s*(.+)")


def analyze_chat_messages(
    messages: Sequence[ChatMessage],
    settings: ChatSettings | None = None,
) -> list[ChatMoment]:
    """Detect chat hype moments with a sliding window over message velocity and emotes."""

    cfg = settings or ChatSettings()
    if not messages:
        return []

    ordered = sorted(messages, key=lambda message: message.timestamp)
    start_time = ordered[0].timestamp
    end_time = ordered[-1].timestamp

    moments: list[ChatMoment] = []
    window_start = start_time
    while window_start <= end_time - cfg.window_size:
        window_end = window_start + cfg.window_size
        members = [m for m in ordered if window_start <= m.timestamp < window_end]

        if len(members) >= cfg.min_velocity:
            moment = _score_window(members, window_start, cfg)
            if moment is not None:
                moments.append(moment)

        window_start += cfg.step_size

    merged = _merge_moments(moments, cfg.window_size)
    logger.debug("Chat analysis kept %d of %d scored windows", len(merged), len(moments))
    return merged


def message_emote_score(message: str) -> float:
    """Lexical excitement score of a single chat message."""

    score = sum(weight for token, weight in HYPE_EMOTES.items() if token in message)

    if message:
        caps_ratio = sum(1 for ch in message if "A" <= ch <= "Z") / len(message)
        if caps_ratio > CAPS_RATIO_THRESHOLD and len(message) > CAPS_MIN_LENGTH:
            score += CAPS_BONUS

    if _REPEATED_CHAR.search(message):
        score += REPEAT_BONUS

    return score


def parse_chat_log(raw_log: str) -> list[ChatMessage]:
    """Parse `[HH:MM:SS] username: message` lines, skipping anything else."""

    messages: list[ChatMessage] = []
    for line in raw_log.splitlines():
        match = _LOG_LINE.search(line)
        if not match:
            continue

        hours, minutes, seconds, username, text = match.groups()
        messages.append(
            ChatMessage(
                timestamp=float(int(hours) * 3600 + int(minutes) * 60 + int(seconds)),
                username=username,
                message=text.strip(),
            )
        )
    return messages


class FileChatLogSource:
    """ChatLogSource reading `<vod_id>.log` files from a directory."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def fetch(self, vod_id: str) -> list[ChatMessage]:
        log_path = self.directory / f"{vod_id}.log"
        if not log_path.exists():
            logger.info("No chat log for VOD %s at %s", vod_id, log_path)
            return []
        return parse_chat_log(log_path.read_text(encoding="utf-8"))


class NullChatLogSource:
    def fetch(self, vod_id: str) -> list[ChatMessage]:
        return []


def _score_window(
    members: Sequence[ChatMessage],
    window_start: float,
    cfg: ChatSettings,
) -> ChatMoment | None:
    velocity = len(members) / cfg.window_size
    emote_score = sum(message_emote_score(m.message) for m in members) / len(members)

    velocity_score = min(velocity / VELOCITY_CAP, 1.0) * 100
    emote_contribution = min(emote_score * 20, 100.0)
    score = int(round(velocity_score * (1 - cfg.emote_weight) + emote_contribution * cfg.emote_weight))
    if score < MIN_MOMENT_SCORE:
        return None

    return ChatMoment(
        timestamp=window_start + cfg.window_size / 2,
        velocity=velocity,
        emote_score=emote_score,
        score=score,
        sample_messages=tuple(m.message for m in members[:SAMPLE_MESSAGE_COUNT]),
    )


def _merge_moments(moments: Iterable[ChatMoment], window_size: float) -> list[ChatMoment]:
    timeline = sorted(moments, key=lambda moment: moment.timestamp)
    if not timeline:
        return []

    merged: list[ChatMoment] = []
    current_peak = timeline[0]
    for moment in timeline[1:]:
        if moment.timestamp - current_peak.timestamp < window_size:
            if moment.score > current_peak.score:
                current_peak = moment
            continue
        merged.append(current_peak)
        current_peak = moment

    merged.append(current_peak)
    return merged
