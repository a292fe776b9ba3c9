from __future__ import annotations

import json
import logging
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from clipforge.models import JobSettings, PipelineJob
from clipforge.pipeline.types import JobUpdate

logger = logging.getLogger(__name__)


class JsonJobStore:
    """Job records kept as one JSON file per job; doubles as the progress reporter."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def create(self, job: PipelineJob) -> PipelineJob:
        self._write(job)
        return job

    def get(self, job_id: str) -> PipelineJob:
        path = self._path(job_id)
        if not path.exists():
            raise KeyError(f"Unknown job: {job_id}")
        return job_from_dict(json.loads(path.read_text(encoding="utf-8")))

    def update(self, job_id: str, update: JobUpdate) -> None:
        job = self.get(job_id)
        updated = replace(
            job,
            status=update.status.value,
            progress=update.progress,
            current_step=update.current_step,
            error=update.error,
            clip_ids=list(update.clip_ids) or job.clip_ids,
        )
        self._write(updated)
        logger.debug("Job %s -> %s %.0f%% (%s)", job_id, update.status.value, update.progress, update.current_step)

    def _write(self, job: PipelineJob) -> None:
        path = self._path(job.id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(asdict(job), indent=2, sort_keys=True), encoding="utf-8")

    def _path(self, job_id: str) -> Path:
        return self.root / f"{job_id}.json"


def job_from_dict(payload: dict[str, Any]) -> PipelineJob:
    settings = payload.get("settings") or {}
    return PipelineJob(
        id=str(payload["id"]),
        vod_id=str(payload["vod_id"]),
        vod_url=str(payload["vod_url"]),
        user_id=str(payload.get("user_id", "local")),
        title=str(payload.get("title", "")),
        settings=JobSettings(**settings),
        status=str(payload.get("status", "queued")),
        progress=float(payload.get("progress", 0.0)),
        current_step=str(payload.get("current_step", "Waiting")),
        error=payload.get("error"),
        clip_ids=[str(clip_id) for clip_id in payload.get("clip_ids", [])],
    )
