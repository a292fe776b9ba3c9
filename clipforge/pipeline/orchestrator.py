from __future__ import annotations

import logging
import shutil
import threading
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Sequence

from clipforge.config import PipelineSettings
from clipforge.models import PipelineContext, PipelineJob
from clipforge.pipeline.checkpoint import load_checkpoint, save_checkpoint
from clipforge.pipeline.errors import FatalStageError, JobCancelledError, PipelineError
from clipforge.pipeline.types import STAGE_STATUS, JobStatus, JobUpdate, ProgressReporter, Stage

logger = logging.getLogger(__name__)

DEFAULT_STAGE_ORDER = ("download", "analyze", "extract", "reframe", "caption", "upload")

STAGE_LABELS = {
    "download": "Downloading VOD",
    "analyze": "Analyzing signals",
    "extract": "Extracting clips",
    "reframe": "Reframing clips",
    "caption": "Adding captions",
    "upload": "Uploading clips",
}


class PipelineOrchestrator:
    """Runs a fixed, ordered list of stages for one job at a time."""

    def __init__(
        self,
        stages: Sequence[Stage],
        reporter: ProgressReporter,
        settings: PipelineSettings | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: threading.Event | None = None,
    ) -> None:
        names = [stage.name for stage in stages]
        if len(set(names)) != len(names):
            raise ValueError(f"Stage names must be unique: {names}")

        self.stages = list(stages)
        self.reporter = reporter
        self.settings = settings or PipelineSettings()
        self._sleep = sleep
        self._cancel_event = cancel_event

    def run(self, job: PipelineJob) -> PipelineContext:
        context = self.build_context(job)
        logger.info("Starting job %s for VOD %s (%d stages)", job.id, job.vod_id, len(self.stages))
        return self._run_stages(context, self.stages)

    def resume(self, job: PipelineJob, from_stage: str) -> PipelineContext:
        index = self._stage_index(from_stage)
        context = self.rebuild_context(job)
        logger.info("Resuming job %s from stage %s at %.0f%%", job.id, from_stage, context.progress)
        return self._run_stages(context, self.stages[index:])

    def build_context(self, job: PipelineJob) -> PipelineContext:
        job_dir = self._job_dir(job.id)
        work_dir = job_dir / "work"
        temp_dir = work_dir / "tmp"
        output_dir = work_dir / "output"
        for directory in (work_dir, temp_dir, output_dir):
            directory.mkdir(parents=True, exist_ok=True)

        context = PipelineContext(
            job_id=job.id,
            vod_id=job.vod_id,
            user_id=job.user_id,
            vod_url=job.vod_url,
            vod_title=job.title,
            settings=job.settings,
            work_dir=str(work_dir),
            temp_dir=str(temp_dir),
            output_dir=str(output_dir),
        )
        return context.with_cleanup(job_dir)

    def rebuild_context(self, job: PipelineJob) -> PipelineContext:
        """Seed a context from the job record plus whatever the last run checkpointed."""

        fresh = self.build_context(job)
        restored = load_checkpoint(fresh.work_dir)
        if restored is None:
            logger.warning("No checkpoint found for job %s; resuming from the job record only", job.id)
            return replace(fresh, progress=job.progress)

        restored = replace(restored, settings=job.settings, progress=max(restored.progress, job.progress))
        return restored.with_cleanup(*fresh.files_to_cleanup)

    def execute_stage_with_retry(self, context: PipelineContext, stage: Stage) -> PipelineContext:
        attempts = stage.max_retries + 1 if stage.retryable else 1

        for attempt in range(attempts):
            self._raise_if_cancelled(context, stage.name)
            try:
                result = stage.execute(context)
            except Exception as exc:
                logger.warning(
                    "Stage %s failed on attempt %d/%d: %s", stage.name, attempt + 1, attempts, exc
                )
                self._notify_stage_error(stage, context, exc)
                if isinstance(exc, FatalStageError) or attempt + 1 >= attempts:
                    raise PipelineError(stage.name, context, exc) from exc

                delay = self.settings.retry_delay_seconds * (attempt + 1)
                self._raise_if_cancelled(context, stage.name)
                logger.info("Retrying stage %s in %.1fs", stage.name, delay)
                self._sleep(delay)
                continue

            return replace(result, current_stage=stage.name, progress=max(context.progress, result.progress))

        raise ValueError(f"Stage '{stage.name}' has no attempts left to run")

    def _run_stages(self, context: PipelineContext, stages: Sequence[Stage]) -> PipelineContext:
        status = JobStatus.QUEUED
        try:
            for stage in stages:
                status = STAGE_STATUS.get(stage.name, status)
                label = STAGE_LABELS.get(stage.name, stage.name)
                context = replace(context, current_stage=stage.name)
                self._report(context.job_id, JobUpdate(status=status, progress=context.progress, current_step=label))

                context = self.execute_stage_with_retry(context, stage)
                save_checkpoint(context)
                self._report(
                    context.job_id,
                    JobUpdate(status=status, progress=context.progress, current_step=f"{label} done"),
                )
        except Exception as exc:
            error = exc if isinstance(exc, PipelineError) else PipelineError(
                context.current_stage or "pipeline", context, exc
            )
            self._handle_failure(context, error)
            if error is exc:
                raise
            raise error from exc

        clip_ids = [clip.clip_id for clip in context.uploaded_clips]
        self._report(
            context.job_id,
            JobUpdate(status=JobStatus.COMPLETED, progress=100.0, current_step="Complete", clip_ids=clip_ids),
        )
        logger.info("Job %s completed with %d clip(s)", context.job_id, len(clip_ids))
        return replace(context, progress=100.0)

    def _handle_failure(self, context: PipelineContext, error: PipelineError) -> None:
        message = error.root_cause_message()
        logger.error("Job %s failed in stage %s: %s", context.job_id, error.stage_name, message)

        if self.settings.cleanup_on_failure:
            cleanup_paths(context.files_to_cleanup)

        self._report(
            context.job_id,
            JobUpdate(
                status=JobStatus.FAILED,
                progress=context.progress,
                current_step=f"Failed during {error.stage_name}",
                error=message,
            ),
        )

    def _notify_stage_error(self, stage: Stage, context: PipelineContext, error: Exception) -> None:
        on_error = getattr(stage, "on_error", None)
        if on_error is None:
            return
        try:
            on_error(context, error)
        except Exception as hook_error:
            logger.warning("on_error hook for stage %s raised: %s", stage.name, hook_error)

    def _raise_if_cancelled(self, context: PipelineContext, stage_name: str) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            cause = JobCancelledError(f"Job {context.job_id} was cancelled")
            raise PipelineError(stage_name, context, cause) from cause

    def _report(self, job_id: str, update: JobUpdate) -> None:
        try:
            self.reporter.update(job_id, update)
        except Exception as exc:
            logger.warning("Progress report for job %s failed: %s", job_id, exc)

    def _stage_index(self, stage_name: str) -> int:
        for index, stage in enumerate(self.stages):
            if stage.name == stage_name:
                return index
        known = ", ".join(stage.name for stage in self.stages)
        raise ValueError(f"Unknown stage '{stage_name}'. Expected one of: {known}")

    def _job_dir(self, job_id: str) -> Path:
        return Path(self.settings.work_root).expanduser().resolve() / job_id


def cleanup_paths(paths: Sequence[str]) -> list[str]:
    """Best-effort removal of each registered path, once; returns the paths that failed."""

    failed: list[str] = []
    for raw_path in dict.fromkeys(paths):
        try:
            _remove_path(Path(raw_path))
        except OSError as exc:
            logger.warning("Cleanup of %s failed: %s", raw_path, exc)
            failed.append(raw_path)
    return failed


def _remove_path(path: Path) -> None:
    if path.is_dir() and not path.is_symlink():
        shutil.rmtree(path)
    elif path.exists() or path.is_symlink():
        path.unlink()
