from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from clipforge.config import CaptionSettings

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class TranscriptionWord:
    word: str
    start: float
    end: float
    confidence: float


@dataclass(slots=True, frozen=True)
class TranscriptionSegment:
    text: str
    start: float
    end: float
    words: tuple[TranscriptionWord, ...] = ()


@dataclass(slots=True)
class TranscriptionResult:
    text: str
    segments: list[TranscriptionSegment] = field(default_factory=list)
    language: str | None = None
    duration: float = 0.0


class WhisperTranscriber:
    """Transcriber backed by faster-whisper with word-level timestamps.

    The model is loaded lazily on first use and reused for every clip of a job.
    """

    def __init__(self, settings: CaptionSettings | None = None) -> None:
        self.settings = settings or CaptionSettings()
        self._model: Any = None

    def transcribe(self, audio_path: str | Path, config: CaptionSettings | None = None) -> TranscriptionResult:
        cfg = config or self.settings
        source_path = Path(audio_path).expanduser().resolve()
        if not source_path.exists():
            raise FileNotFoundError(f"Audio file not found: {source_path}")

        model = self._load_model(cfg)
        segments_iter, info = model.transcribe(
            str(source_path),
            language=cfg.language,
            vad_filter=True,
            word_timestamps=True,
        )

        segments = [_normalize_segment(segment) for segment in segments_iter]
        text = " ".join(segment.text for segment in segments if segment.text)
        language = getattr(info, "language", None) or cfg.language
        duration = float(getattr(info, "duration", 0.0) or 0.0)
        logger.info("Transcribed %s: %d segments (%s)", source_path.name, len(segments), language)
        return TranscriptionResult(text=text, segments=segments, language=language, duration=duration)

    def _load_model(self, cfg: CaptionSettings) -> Any:
        if self._model is None:
            from faster_whisper import WhisperModel

            logger.info("Loading faster-whisper model %s on %s", cfg.model_size, cfg.device)
            self._model = WhisperModel(cfg.model_size, device=cfg.device, compute_type=cfg.compute_type)
        return self._model


def _normalize_segment(segment: Any) -> TranscriptionSegment:
    words = tuple(
        TranscriptionWord(
            word=str(word.word).strip(),
            start=round(float(word.start), 3),
            end=round(float(word.end), 3),
            confidence=_word_confidence(getattr(word, "probability", None)),
        )
        for word in (getattr(segment, "words", None) or [])
    )
    return TranscriptionSegment(
        text=str(segment.text).strip(),
        start=round(float(segment.start), 3),
        end=round(float(segment.end), 3),
        words=words,
    )


def _word_confidence(probability: Any) -> float:
    if probability is None or (isinstance(probability, float) and math.isnan(probability)):
        return 0.0
    return round(min(max(float(probability), 0.0), 1.0), 4)
