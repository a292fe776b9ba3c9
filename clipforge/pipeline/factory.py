from __future__ import annotations

import threading
from typing import Callable

from clipforge.analysis.audio import WavLevelSampler
from clipforge.analysis.chat import FileChatLogSource, NullChatLogSource
from clipforge.analysis.viewer_clips import JsonViewerClipSource
from clipforge.captions.subtitles import FfmpegCaptionBurner
from clipforge.captions.transcribe import WhisperTranscriber
from clipforge.config import Settings
from clipforge.extraction.clipper import FfmpegClipCutter
from clipforge.extraction.reframe import CenterCropReframer
from clipforge.ingest.download import YtDlpDownloader
from clipforge.ingest.extract_audio import FfmpegAudioExtractor
from clipforge.pipeline.orchestrator import PipelineOrchestrator
from clipforge.pipeline.stages.analyze import AnalyzeStage
from clipforge.pipeline.stages.caption import CaptionStage
from clipforge.pipeline.stages.download import DownloadStage
from clipforge.pipeline.stages.extract import ExtractStage
from clipforge.pipeline.stages.reframe import ReframeStage
from clipforge.pipeline.stages.upload import UploadStage
from clipforge.pipeline.types import ProgressReporter, Stage
from clipforge.storage import LocalStorageUploader


def build_default_stages(settings: Settings) -> list[Stage]:
    """Wire every stage to the ffmpeg / yt-dlp / faster-whisper backed collaborators."""

    pipeline = settings.pipeline
    chat_source = FileChatLogSource(pipeline.chat_log_dir) if pipeline.chat_log_dir else NullChatLogSource()
    viewer_clip_source = JsonViewerClipSource(pipeline.viewer_clip_dir) if pipeline.viewer_clip_dir else None
    transcriber = WhisperTranscriber(settings.captions) if settings.captions.enabled else None

    return [
        DownloadStage(YtDlpDownloader()),
        AnalyzeStage(settings, FfmpegAudioExtractor(), WavLevelSampler(), chat_source, viewer_clip_source),
        ExtractStage(
            FfmpegClipCutter(pre_roll=settings.fusion.pre_roll, post_roll=settings.fusion.post_roll),
            max_concurrent=pipeline.max_concurrent_extractions,
        ),
        ReframeStage(CenterCropReframer()),
        CaptionStage(transcriber, FfmpegCaptionBurner(), settings.captions),
        UploadStage(LocalStorageUploader(settings.storage)),
    ]


def build_orchestrator(
    settings: Settings,
    reporter: ProgressReporter,
    *,
    stages: list[Stage] | None = None,
    sleep: Callable[[float], None] | None = None,
    cancel_event: threading.Event | None = None,
) -> PipelineOrchestrator:
    kwargs = {"sleep": sleep} if sleep is not None else {}
    return PipelineOrchestrator(
        stages if stages is not None else build_default_stages(settings),
        reporter,
        settings.pipeline,
        cancel_event=cancel_event,
        **kwargs,
    )
