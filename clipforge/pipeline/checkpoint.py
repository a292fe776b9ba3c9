from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Any

from clipforge.models import (
    AudioMoment,
    CaptionedClip,
    ChatMoment,
    ExtractedClip,
    JobSettings,
    PipelineContext,
    ReframedClip,
    UploadedClip,
)
from clipforge.propose.exporter import moment_from_dict

logger = logging.getLogger(__name__)

CHECKPOINT_FILENAME = "checkpoint.json"


def checkpoint_path(work_dir: str | Path) -> Path:
    return Path(work_dir) / CHECKPOINT_FILENAME


def save_checkpoint(context: PipelineContext) -> Path:
    """Persist a context snapshot next to the job's work files."""

    path = checkpoint_path(context.work_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(context_to_dict(context), indent=2), encoding="utf-8")
    logger.debug("Checkpoint written for job %s after stage %s", context.job_id, context.current_stage)
    return path


def load_checkpoint(work_dir: str | Path) -> PipelineContext | None:
    path = checkpoint_path(work_dir)
    if not path.exists():
        return None

    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Ignoring unreadable checkpoint at %s (%s)", path, exc)
        return None
    return context_from_dict(payload)


def context_to_dict(context: PipelineContext) -> dict[str, Any]:
    return asdict(context)


def context_from_dict(payload: dict[str, Any]) -> PipelineContext:
    return PipelineContext(
        job_id=str(payload["job_id"]),
        vod_id=str(payload["vod_id"]),
        user_id=str(payload["user_id"]),
        vod_url=str(payload["vod_url"]),
        work_dir=str(payload["work_dir"]),
        temp_dir=str(payload["temp_dir"]),
        output_dir=str(payload["output_dir"]),
        vod_title=str(payload.get("vod_title", "")),
        settings=JobSettings(**(payload.get("settings") or {})),
        downloaded_path=payload.get("downloaded_path"),
        audio_path=payload.get("audio_path"),
        audio_moments=tuple(AudioMoment(**row) for row in payload.get("audio_moments", [])),
        chat_moments=tuple(
            ChatMoment(**{**row, "sample_messages": tuple(row.get("sample_messages", ()))})
            for row in payload.get("chat_moments", [])
        ),
        moments=tuple(moment_from_dict(row) for row in payload.get("moments", [])),
        extracted_clips=tuple(
            ExtractedClip(**{**row, "moment": moment_from_dict(row["moment"])})
            for row in payload.get("extracted_clips", [])
        ),
        reframed_clips=tuple(ReframedClip(**row) for row in payload.get("reframed_clips", [])),
        captioned_clips=tuple(CaptionedClip(**row) for row in payload.get("captioned_clips", [])),
        uploaded_clips=tuple(UploadedClip(**row) for row in payload.get("uploaded_clips", [])),
        progress=float(payload.get("progress", 0.0)),
        current_stage=payload.get("current_stage"),
        files_to_cleanup=tuple(payload.get("files_to_cleanup", [])),
    )
