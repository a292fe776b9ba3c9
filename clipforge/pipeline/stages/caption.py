from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from clipforge.captions.subtitles import generate_ass
from clipforge.config import CaptionSettings
from clipforge.models import CaptionedClip, PipelineContext, ReframedClip
from clipforge.pipeline.types import CaptionBurner, Transcriber

logger = logging.getLogger(__name__)

CAPTION_PROGRESS_END = 85.0


class CaptionStage:
    """Burn word-highlight captions into each reframed clip.

    A clip whose transcription or burn fails keeps its uncaptioned video so one
    bad clip never sinks the job.
    """

    name = "caption"
    retryable = True
    max_retries = 2

    def __init__(
        self,
        transcriber: Transcriber | None,
        burner: CaptionBurner,
        settings: CaptionSettings | None = None,
    ) -> None:
        self.transcriber = transcriber
        self.burner = burner
        self.settings = settings or CaptionSettings()

    def execute(self, context: PipelineContext) -> PipelineContext:
        if not self._enabled_for(context):
            logger.info("Captions disabled for job %s; passing clips through", context.job_id)
            passthrough = tuple(CaptionedClip(clip_id=clip.clip_id, path=clip.path) for clip in context.reframed_clips)
            return replace(context, captioned_clips=passthrough, progress=CAPTION_PROGRESS_END)

        output_dir = Path(context.work_dir) / "captioned"
        output_dir.mkdir(parents=True, exist_ok=True)

        captioned: list[CaptionedClip] = []
        for clip in context.reframed_clips:
            try:
                captioned.append(self._caption_clip(clip, output_dir))
            except Exception as exc:
                logger.warning("Captioning failed for clip %s, keeping uncaptioned video: %s", clip.clip_id, exc)
                captioned.append(CaptionedClip(clip_id=clip.clip_id, path=clip.path))

        registered = [
            path
            for clip in captioned
            if clip.captions_path is not None
            for path in (clip.path, clip.captions_path)
        ]
        return replace(
            context.with_cleanup(*registered),
            captioned_clips=tuple(captioned),
            progress=CAPTION_PROGRESS_END,
        )

    def _enabled_for(self, context: PipelineContext) -> bool:
        return self.transcriber is not None and self.settings.enabled and context.settings.auto_captions

    def _caption_clip(self, clip: ReframedClip, output_dir: Path) -> CaptionedClip:
        transcription = self.transcriber.transcribe(clip.path, self.settings)
        if not transcription.segments:
            logger.info("No speech found in clip %s", clip.clip_id)
            return CaptionedClip(clip_id=clip.clip_id, path=clip.path)

        subtitle_path = output_dir / f"{clip.clip_id}.ass"
        subtitle_path.write_text(
            generate_ass(
                transcription.segments,
                font_name=self.settings.font_name,
                font_size=self.settings.font_size,
                position=self.settings.position,
            ),
            encoding="utf-8",
        )

        output_path = output_dir / f"{clip.clip_id}.mp4"
        self.burner.burn(clip.path, subtitle_path, output_path)
        return CaptionedClip(clip_id=clip.clip_id, path=str(output_path), captions_path=str(subtitle_path))
