from __future__ import annotations

import logging
from dataclasses import replace

from clipforge.models import PipelineContext, UploadedClip
from clipforge.pipeline.errors import FatalStageError
from clipforge.pipeline.types import Uploader

logger = logging.getLogger(__name__)

UPLOAD_PROGRESS_END = 100.0


class UploadStage:
    name = "upload"
    retryable = False
    max_retries = 0

    def __init__(self, uploader: Uploader) -> None:
        self.uploader = uploader

    def execute(self, context: PipelineContext) -> PipelineContext:
        thumbnails = {clip.id: clip.thumbnail_path for clip in context.extracted_clips}
        prefix = f"{context.user_id}/{context.job_id}"

        uploaded: list[UploadedClip] = []
        for clip in context.captioned_clips:
            try:
                video = self.uploader.upload(clip.path, f"{prefix}/{clip.clip_id}.mp4")
            except Exception as exc:
                logger.warning("Upload failed for clip %s, skipping: %s", clip.clip_id, exc)
                continue

            thumbnail = None
            thumbnail_path = thumbnails.get(clip.clip_id)
            if thumbnail_path:
                try:
                    thumbnail = self.uploader.upload(thumbnail_path, f"{prefix}/{clip.clip_id}_thumb.jpg")
                except Exception as exc:
                    logger.warning("Thumbnail upload failed for clip %s, keeping video only: %s", clip.clip_id, exc)

            uploaded.append(
                UploadedClip(
                    clip_id=clip.clip_id,
                    video_path=video.stored_path,
                    thumbnail_path=thumbnail.stored_path if thumbnail else "",
                    video_url=video.signed_url,
                    thumbnail_url=thumbnail.signed_url if thumbnail else "",
                )
            )

        if not uploaded:
            raise FatalStageError(f"No clips were uploaded for job {context.job_id}")

        logger.info("Uploaded %d/%d clip(s) for job %s", len(uploaded), len(context.captioned_clips), context.job_id)
        return replace(context, uploaded_clips=tuple(uploaded), progress=UPLOAD_PROGRESS_END)
