from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from clipforge.extraction.reframe import OUTPUT_FORMAT_TO_ASPECT
from clipforge.models import PipelineContext, ReframedClip
from clipforge.pipeline.types import Reframer

logger = logging.getLogger(__name__)

REFRAME_PROGRESS_END = 70.0


class ReframeStage:
    name = "reframe"
    retryable = True
    max_retries = 2

    def __init__(self, reframer: Reframer) -> None:
        self.reframer = reframer

    def execute(self, context: PipelineContext) -> PipelineContext:
        target_aspect = OUTPUT_FORMAT_TO_ASPECT[context.settings.output_format]
        output_dir = Path(context.work_dir) / "reframed"

        reframed: list[ReframedClip] = []
        for clip in context.extracted_clips:
            output_path = output_dir / f"{clip.id}.mp4"
            result = self.reframer.reframe(clip.path, output_path, target_aspect)
            reframed.append(ReframedClip(clip_id=clip.id, path=str(result.output_path), method=result.method))

        if not reframed:
            logger.warning("Job %s has no extracted clips to reframe", context.job_id)

        return replace(
            context.with_cleanup(*(clip.path for clip in reframed)),
            reframed_clips=tuple(reframed),
            progress=REFRAME_PROGRESS_END,
        )
