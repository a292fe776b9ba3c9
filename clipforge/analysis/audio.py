from __future__ import annotations

import logging
import wave
from pathlib import Path
from typing import Sequence

import numpy as np

from clipforge.config import AudioSettings
from clipforge.models import AudioLevel, AudioMoment

logger = logging.getLogger(__name__)

SILENCE_SPAN_SECONDS = 1.0
LOOKAHEAD_SAMPLES = 10
SUSTAINED_MIN_COUNT = 5
SUSTAIN_RATIO = 0.7
BASELINE_MULTIPLIER = 3.0


def analyze_audio_levels(
    levels: Sequence[AudioLevel],
    settings: AudioSettings | None = None,
) -> list[AudioMoment]:
    """Turn a loudness time series into peak, sustained and silence-break moments.

    Samples must be sorted by timestamp. Both detectors share one cursor so that
    consecutive moments are always at least `min_gap` seconds apart; the
    silence-break check runs before the peak check on every sample.
    """

    cfg = settings or AudioSettings()
    if len(levels) < 2:
        return []

    amplitudes = sorted(level.amplitude for level in levels)
    baseline = amplitudes[len(amplitudes) // 2]
    threshold = max(baseline * BASELINE_MULTIPLIER, cfg.peak_threshold)

    moments: list[AudioMoment] = []
    last_moment_time = -cfg.min_gap
    in_silence = False
    silence_start = 0.0

    for index, level in enumerate(levels):
        timestamp = level.timestamp
        amplitude = level.amplitude

        if amplitude < cfg.silence_threshold:
            if not in_silence:
                silence_start = timestamp
                in_silence = True
        else:
            if (
                in_silence
                and timestamp - silence_start > SILENCE_SPAN_SECONDS
                and amplitude > threshold
                and timestamp - last_moment_time >= cfg.min_gap
            ):
                moments.append(
                    AudioMoment(
                        timestamp=timestamp,
                        amplitude=amplitude,
                        rms_level=level.rms,
                        score=_clamp_score(amplitude / threshold * 60 + 40),
                        kind="silence_break",
                    )
                )
                last_moment_time = timestamp
            in_silence = False

        if amplitude > threshold and timestamp - last_moment_time >= cfg.min_gap:
            sustained_count = _count_sustained(levels, index, threshold * SUSTAIN_RATIO)
            moments.append(
                AudioMoment(
                    timestamp=timestamp,
                    amplitude=amplitude,
                    rms_level=level.rms,
                    score=_clamp_score(amplitude / threshold * 50 + sustained_count * 5),
                    kind="sustained" if sustained_count >= SUSTAINED_MIN_COUNT else "peak",
                )
            )
            last_moment_time = timestamp

    logger.debug(
        "Audio analysis found %d moments (baseline=%.4f, threshold=%.4f, samples=%d)",
        len(moments),
        baseline,
        threshold,
        len(levels),
    )
    return moments


def sample_audio_levels(audio_path: str | Path, window_size: float = 0.5) -> list[AudioLevel]:
    """Read a 16-bit PCM WAV and return one peak/RMS row per analysis window."""

    source_path = Path(audio_path).expanduser().resolve()
    if not source_path.exists():
        raise FileNotFoundError(f"Audio file not found: {source_path}")

    samples, sample_rate = _read_wav_mono(source_path)
    frame_size = max(int(round(sample_rate * max(window_size, 0.01))), 1)
    return _build_levels(samples=samples, sample_rate=sample_rate, frame_size=frame_size)


class WavLevelSampler:
    """LevelSampler backed by `sample_audio_levels`."""

    def sample(self, audio_path: str | Path, window_size: float) -> list[AudioLevel]:
        return sample_audio_levels(audio_path, window_size=window_size)


def _count_sustained(levels: Sequence[AudioLevel], start: int, floor: float) -> int:
    window = levels[start : start + LOOKAHEAD_SAMPLES]
    return sum(1 for level in window if level.amplitude > floor)


def _clamp_score(raw_score: float) -> int:
    return int(round(max(0.0, min(raw_score, 100.0))))


def _read_wav_mono(path: Path) -> tuple[np.ndarray, int]:
    with wave.open(str(path), "rb") as wav_file:
        channels = wav_file.getnchannels()
        sample_rate = int(wav_file.getframerate())
        sample_width = wav_file.getsampwidth()
        frames = wav_file.readframes(wav_file.getnframes())

    if sample_width != 2:
        raise ValueError("Only 16-bit PCM WAV input is supported for level sampling.")

    samples = np.frombuffer(frames, dtype=np.int16)
    if channels > 1:
        samples = samples.reshape(-1, channels).mean(axis=1).astype(np.int16)

    normalized = samples.astype(np.float32) / 32768.0
    return normalized, sample_rate


def _build_levels(samples: np.ndarray, sample_rate: int, frame_size: int) -> list[AudioLevel]:
    if sample_rate <= 0 or len(samples) == 0:
        return []

    levels: list[AudioLevel] = []
    for start in range(0, len(samples), frame_size):
        segment = samples[start : start + frame_size]
        if len(segment) == 0:
            continue

        peak = float(np.max(np.abs(segment)))
        rms = float(np.sqrt(np.mean(np.square(segment))))
        levels.append(
            AudioLevel(
                timestamp=round(start / sample_rate, 3),
                amplitude=round(min(peak, 1.0), 6),
                rms=round(rms, 6),
            )
        )
    return levels
