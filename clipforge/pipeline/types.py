from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

from clipforge.captions.transcribe import TranscriptionResult
from clipforge.extraction.reframe import ReframeResult
from clipforge.models import AudioLevel, ChatMessage, ExtractedClip, PipelineContext, SignalMoment, ViewerClip
from clipforge.storage import UploadResult


class JobStatus(str, Enum):
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    ANALYZING = "analyzing"
    EXTRACTING = "extracting"
    REFRAMING = "reframing"
    CAPTIONING = "captioning"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# The status a job reports while a stage runs. Upload has no state of its own
# and is reported as the tail of captioning.
STAGE_STATUS: dict[str, JobStatus] = {
    "download": JobStatus.DOWNLOADING,
    "analyze": JobStatus.ANALYZING,
    "extract": JobStatus.EXTRACTING,
    "reframe": JobStatus.REFRAMING,
    "caption": JobStatus.CAPTIONING,
    "upload": JobStatus.CAPTIONING,
}


@dataclass(slots=True, frozen=True)
class JobUpdate:
    status: JobStatus
    progress: float
    current_step: str
    error: str | None = None
    clip_ids: list[str] = field(default_factory=list)


@runtime_checkable
class Stage(Protocol):
    """A named unit of work; all state lives in the context it is given."""

    name: str
    retryable: bool
    max_retries: int

    def execute(self, context: PipelineContext) -> PipelineContext: ...


class ProgressReporter(Protocol):
    def update(self, job_id: str, update: JobUpdate) -> None: ...


class Downloader(Protocol):
    def download(self, source_url: str, dest_dir: str | Path, filename: str = ...) -> Path: ...


class AudioExtractor(Protocol):
    def extract(self, video_path: str | Path, dest_audio_path: str | Path) -> None: ...


class LevelSampler(Protocol):
    def sample(self, audio_path: str | Path, window_size: float) -> list[AudioLevel]: ...


class ChatLogSource(Protocol):
    def fetch(self, vod_id: str) -> list[ChatMessage]: ...


class ViewerClipSource(Protocol):
    def fetch(self, vod_id: str) -> list[ViewerClip]: ...


class ClipCutter(Protocol):
    def extract_batch(
        self,
        video_path: str | Path,
        dest_dir: str | Path,
        moments: Sequence[SignalMoment],
        *,
        max_concurrent: int = ...,
        quality: str = ...,
    ) -> list[ExtractedClip]: ...


class Reframer(Protocol):
    def reframe(self, input_path: str | Path, output_path: str | Path, target_aspect: str) -> ReframeResult: ...


class Transcriber(Protocol):
    def transcribe(self, audio_path: str | Path, config: Any = ...) -> TranscriptionResult: ...


class CaptionBurner(Protocol):
    def burn(self, video_path: str | Path, subtitle_path: str | Path, output_path: str | Path) -> None: ...


class Uploader(Protocol):
    def upload(self, local_path: str | Path, destination_key: str) -> UploadResult: ...
