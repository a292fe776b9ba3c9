from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path

from clipforge.models import PipelineContext
from clipforge.pipeline.errors import require_fields
from clipforge.pipeline.types import ClipCutter

logger = logging.getLogger(__name__)

EXTRACT_PROGRESS_END = 55.0


class ExtractStage:
    name = "extract"
    retryable = True
    max_retries = 2

    def __init__(self, cutter: ClipCutter, max_concurrent: int = 2) -> None:
        self.cutter = cutter
        self.max_concurrent = max_concurrent

    def execute(self, context: PipelineContext) -> PipelineContext:
        require_fields(context, self.name, "downloaded_path", "moments")

        clips = self.cutter.extract_batch(
            context.downloaded_path,
            Path(context.work_dir) / "clips",
            context.moments,
            max_concurrent=self.max_concurrent,
            quality=context.settings.quality,
        )
        logger.info("Extracted %d clip(s) for job %s", len(clips), context.job_id)

        registered = [path for clip in clips for path in (clip.path, clip.thumbnail_path)]
        return replace(
            context.with_cleanup(*registered),
            extracted_clips=tuple(clips),
            progress=EXTRACT_PROGRESS_END,
        )
