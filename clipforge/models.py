from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Literal

AudioMomentKind = Literal["peak", "silence_break", "sustained"]
QualityLabel = Literal["high", "medium", "low"]
OutputFormat = Literal["vertical", "square", "horizontal"]


@dataclass(slots=True, frozen=True)
class AudioLevel:
    """One loudness sample produced by a level sampler."""

    timestamp: float
    amplitude: float
    rms: float


@dataclass(slots=True, frozen=True)
class AudioMoment:
    """A discrete notable point in the audio track."""

    timestamp: float
    amplitude: float
    rms_level: float
    score: int
    kind: AudioMomentKind


@dataclass(slots=True, frozen=True)
class ChatMessage:
    timestamp: float
    username: str
    message: str


@dataclass(slots=True, frozen=True)
class ChatMoment:
    """A chat activity burst, timestamped at the centre of its window."""

    timestamp: float
    velocity: float
    emote_score: float
    score: int
    sample_messages: tuple[str, ...] = ()


@dataclass(slots=True, frozen=True)
class ViewerClip:
    """A clip viewers cut from the VOD themselves."""

    timestamp: float
    duration: float
    view_count: int
    title: str


@dataclass(slots=True, frozen=True)
class ChatSignal:
    score: float
    velocity: float


@dataclass(slots=True, frozen=True)
class AudioSignal:
    score: float
    kind: AudioMomentKind


@dataclass(slots=True, frozen=True)
class ClipsSignal:
    score: float
    count: int


@dataclass(slots=True, frozen=True)
class MomentSignals:
    """Per-source evidence that contributed to a fused moment."""

    chat: ChatSignal | None = None
    audio: AudioSignal | None = None
    clips: ClipsSignal | None = None


@dataclass(slots=True, frozen=True)
class SignalMoment:
    """Fused, deduplicated highlight candidate consumed by clip extraction."""

    timestamp: float
    duration: float
    score: int
    confidence: float
    signal_count: int = 0
    signals: MomentSignals = field(default_factory=MomentSignals)
    suggested_title: str = "Highlight moment"

    def interval(self, pre_roll: float) -> tuple[float, float]:
        """Effective extraction interval around the peak."""

        start = self.timestamp - pre_roll
        return start, start + self.duration


@dataclass(slots=True, frozen=True)
class ClipQuality:
    quality: QualityLabel
    reasons: list[str]


@dataclass(slots=True, frozen=True)
class ExtractedClip:
    id: str
    path: str
    thumbnail_path: str
    start_time: float
    end_time: float
    duration: float
    moment: SignalMoment


@dataclass(slots=True, frozen=True)
class ReframedClip:
    clip_id: str
    path: str
    method: str = "center_crop"


@dataclass(slots=True, frozen=True)
class CaptionedClip:
    clip_id: str
    path: str
    captions_path: str | None = None


@dataclass(slots=True, frozen=True)
class UploadedClip:
    clip_id: str
    video_path: str
    thumbnail_path: str
    video_url: str
    thumbnail_url: str


@dataclass(slots=True, frozen=True)
class JobSettings:
    """User-facing knobs carried on the job record."""

    clip_count: int = 10
    min_duration: float = 15
    max_duration: float = 60
    chat_analysis: bool = True
    audio_peaks: bool = True
    auto_captions: bool = True
    output_format: OutputFormat = "vertical"
    quality: QualityLabel = "medium"


@dataclass(slots=True)
class PipelineJob:
    """Job record as persisted by the job store."""

    id: str
    vod_id: str
    vod_url: str
    user_id: str = "local"
    title: str = ""
    settings: JobSettings = field(default_factory=JobSettings)
    status: str = "queued"
    progress: float = 0.0
    current_step: str = "Waiting"
    error: str | None = None
    clip_ids: list[str] = field(default_factory=list)


@dataclass(slots=True, frozen=True)
class PipelineContext:
    """State threaded through the stages of one job.

    Stages never mutate a context; they return a copy built with
    `dataclasses.replace` (or `with_cleanup`).
    """

    job_id: str
    vod_id: str
    user_id: str
    vod_url: str
    work_dir: str
    temp_dir: str
    output_dir: str
    vod_title: str = ""
    settings: JobSettings = field(default_factory=JobSettings)
    downloaded_path: str | None = None
    audio_path: str | None = None
    audio_moments: tuple[AudioMoment, ...] = ()
    chat_moments: tuple[ChatMoment, ...] = ()
    moments: tuple[SignalMoment, ...] = ()
    extracted_clips: tuple[ExtractedClip, ...] = ()
    reframed_clips: tuple[ReframedClip, ...] = ()
    captioned_clips: tuple[CaptionedClip, ...] = ()
    uploaded_clips: tuple[UploadedClip, ...] = ()
    progress: float = 0.0
    current_stage: str | None = None
    files_to_cleanup: tuple[str, ...] = ()

    def with_cleanup(self, *paths: str | Path) -> PipelineContext:
        """Return a copy with extra paths registered for failure cleanup."""

        registered = list(self.files_to_cleanup)
        for path in paths:
            value = str(path)
            if value not in registered:
                registered.append(value)
        return replace(self, files_to_cleanup=tuple(registered))
