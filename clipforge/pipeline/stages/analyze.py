from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from clipforge.analysis.audio import analyze_audio_levels
from clipforge.analysis.chat import analyze_chat_messages
from clipforge.analysis.fusion import fuse_signals, select_top_moments
from clipforge.config import Settings
from clipforge.models import AudioMoment, ChatMoment, PipelineContext, ViewerClip
from clipforge.pipeline.errors import require_fields
from clipforge.pipeline.types import AudioExtractor, ChatLogSource, LevelSampler, ViewerClipSource
from clipforge.propose.exporter import export_final_outputs

logger = logging.getLogger(__name__)

ANALYZE_PROGRESS_END = 40.0


class AnalyzeStage:
    """Extract audio, score audio and chat, fuse with viewer clips, keep the best moments."""

    name = "analyze"
    retryable = True
    max_retries = 1

    def __init__(
        self,
        settings: Settings,
        audio_extractor: AudioExtractor,
        level_sampler: LevelSampler,
        chat_source: ChatLogSource,
        viewer_clip_source: ViewerClipSource | None = None,
    ) -> None:
        self.settings = settings
        self.audio_extractor = audio_extractor
        self.level_sampler = level_sampler
        self.chat_source = chat_source
        self.viewer_clip_source = viewer_clip_source

    def execute(self, context: PipelineContext) -> PipelineContext:
        require_fields(context, self.name, "downloaded_path")
        job_settings = context.settings

        audio_path: Path | None = None
        audio_moments: list[AudioMoment] = []
        if job_settings.audio_peaks:
            audio_path = Path(context.temp_dir) / f"{context.vod_id}_audio.wav"
            self.audio_extractor.extract(context.downloaded_path, audio_path)
            context = context.with_cleanup(audio_path)
            levels = self.level_sampler.sample(audio_path, self.settings.audio.window_size)
            audio_moments = analyze_audio_levels(levels, self.settings.audio)

        chat_moments: list[ChatMoment] = []
        if job_settings.chat_analysis:
            messages = self.chat_source.fetch(context.vod_id)
            chat_moments = analyze_chat_messages(messages, self.settings.chat)

        viewer_clips: list[ViewerClip] = []
        if self.viewer_clip_source is not None:
            viewer_clips = self.viewer_clip_source.fetch(context.vod_id)

        fusion_settings = self.settings.fusion.model_copy(
            update={"min_duration": job_settings.min_duration, "max_duration": job_settings.max_duration}
        )
        fused = fuse_signals(chat_moments, audio_moments, viewer_clips, fusion_settings)
        moments = select_top_moments(fused, job_settings.clip_count)
        logger.info(
            "VOD %s: %d audio, %d chat, %d viewer signals -> %d moments (kept %d)",
            context.vod_id,
            len(audio_moments),
            len(chat_moments),
            len(viewer_clips),
            len(fused),
            len(moments),
        )

        export_final_outputs(
            moments,
            context.output_dir,
            vod_path=context.downloaded_path,
            pre_roll=fusion_settings.pre_roll,
        )

        return replace(
            context,
            audio_path=str(audio_path) if audio_path is not None else None,
            audio_moments=tuple(audio_moments),
            chat_moments=tuple(chat_moments),
            moments=tuple(moments),
            progress=ANALYZE_PROGRESS_END,
        )
