from __future__ import annotations

import logging
from dataclasses import replace

from clipforge.models import PipelineContext
from clipforge.pipeline.types import Downloader

logger = logging.getLogger(__name__)

DOWNLOAD_PROGRESS_END = 15.0


class DownloadStage:
    name = "download"
    retryable = True
    max_retries = 3

    def __init__(self, downloader: Downloader) -> None:
        self.downloader = downloader

    def execute(self, context: PipelineContext) -> PipelineContext:
        downloaded = self.downloader.download(context.vod_url, context.work_dir)
        logger.info("Downloaded VOD %s to %s", context.vod_id, downloaded)
        return replace(
            context.with_cleanup(downloaded),
            downloaded_path=str(downloaded),
            progress=DOWNLOAD_PROGRESS_END,
        )
