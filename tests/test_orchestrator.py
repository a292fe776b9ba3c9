from __future__ import annotations

import threading
from dataclasses import replace
from pathlib import Path

import pytest

import clipforge.pipeline.orchestrator as orchestrator_module
from clipforge.config import PipelineSettings
from clipforge.models import PipelineContext, PipelineJob
from clipforge.pipeline.errors import (
    JobCancelledError,
    PipelineError,
    TransientStageError,
    ValidationError,
)
from clipforge.pipeline.orchestrator import PipelineOrchestrator
from clipforge.pipeline.types import JobStatus, JobUpdate


class _RecordingReporter:
    def __init__(self) -> None:
        self.updates: list[JobUpdate] = []

    def update(self, job_id: str, update: JobUpdate) -> None:
        self.updates.append(update)


class _Stage:
    def __init__(
        self,
        name: str,
        *,
        progress: float = 0.0,
        failures: int = 0,
        error: Exception | None = None,
        retryable: bool = True,
        max_retries: int = 3,
        register: tuple[str, ...] = (),
        downloaded_path: str | None = None,
    ) -> None:
        self.name = name
        self.retryable = retryable
        self.max_retries = max_retries
        self.calls = 0
        self._progress = progress
        self._failures = failures
        self._error = error or TransientStageError(f"{name} flaked")
        self._register = register
        self._downloaded_path = downloaded_path

    def execute(self, context: PipelineContext) -> PipelineContext:
        self.calls += 1
        if self.calls <= self._failures:
            raise self._error
        updated = replace(context.with_cleanup(*self._register), progress=self._progress)
        if self._downloaded_path is not None:
            updated = replace(updated, downloaded_path=self._downloaded_path)
        return updated


def _job() -> PipelineJob:
    return PipelineJob(id="job-1", vod_id="vod-1", vod_url="https://example.invalid/vod-1")


def _settings(tmp_path: Path, **overrides) -> PipelineSettings:
    return PipelineSettings(work_root=tmp_path / "jobs", retry_delay_seconds=2.0, **overrides)


def _orchestrator(tmp_path: Path, stages, reporter=None, sleeps=None, **kwargs) -> PipelineOrchestrator:
    recorded = sleeps if sleeps is not None else []
    return PipelineOrchestrator(
        stages,
        reporter or _RecordingReporter(),
        kwargs.pop("settings", None) or _settings(tmp_path),
        sleep=recorded.append,
        **kwargs,
    )


@pytest.mark.parametrize("failures", [0, 1, 2, 3])
def test_flaky_stage_is_retried_with_linear_backoff(tmp_path: Path, failures: int) -> None:
    stage = _Stage("download", progress=15.0, failures=failures, max_retries=3)
    sleeps: list[float] = []

    _orchestrator(tmp_path, [stage], sleeps=sleeps).run(_job())

    assert stage.calls == failures + 1
    assert sleeps == [2.0 * (attempt + 1) for attempt in range(failures)]
    assert sum(sleeps) == pytest.approx(2.0 * sum(range(1, failures + 1)))


def test_exhausted_retries_raise_pipeline_error(tmp_path: Path) -> None:
    stage = _Stage("extract", failures=10, max_retries=2)
    sleeps: list[float] = []

    with pytest.raises(PipelineError) as excinfo:
        _orchestrator(tmp_path, [stage], sleeps=sleeps).run(_job())

    assert stage.calls == 3
    assert sleeps == [2.0, 4.0]
    assert excinfo.value.stage_name == "extract"
    assert isinstance(excinfo.value.cause, TransientStageError)


def test_non_retryable_stage_runs_exactly_once(tmp_path: Path) -> None:
    stage = _Stage("upload", failures=10, retryable=False, max_retries=5, error=RuntimeError("storage down"))
    reporter = _RecordingReporter()
    sleeps: list[float] = []

    with pytest.raises(PipelineError, match="upload"):
        _orchestrator(tmp_path, [stage], reporter=reporter, sleeps=sleeps).run(_job())

    assert stage.calls == 1
    assert sleeps == []
    assert reporter.updates[-1].status is JobStatus.FAILED
    assert reporter.updates[-1].error == "storage down"


def test_validation_errors_are_not_retried(tmp_path: Path) -> None:
    stage = _Stage("analyze", failures=10, error=ValidationError("missing downloaded_path"))

    with pytest.raises(PipelineError) as excinfo:
        _orchestrator(tmp_path, [stage]).run(_job())

    assert stage.calls == 1
    assert excinfo.value.root_cause_message() == "missing downloaded_path"


def test_on_error_failures_do_not_stop_retries(tmp_path: Path) -> None:
    stage = _Stage("download", progress=15.0, failures=1)
    seen: list[str] = []

    def _on_error(context: PipelineContext, error: Exception) -> None:
        seen.append(str(error))
        raise RuntimeError("hook exploded")

    stage.on_error = _on_error

    context = _orchestrator(tmp_path, [stage]).run(_job())

    assert stage.calls == 2
    assert seen == ["download flaked"]
    assert context.progress == 100.0


def test_each_registered_path_is_cleaned_once_on_failure(tmp_path: Path, monkeypatch) -> None:
    first = tmp_path / "a.mp4"
    second = tmp_path / "b.wav"
    first.write_bytes(b"x")
    second.write_bytes(b"y")
    removed: list[Path] = []
    monkeypatch.setattr(orchestrator_module, "_remove_path", removed.append)

    stages = [
        _Stage("download", progress=15.0, register=(str(first),)),
        _Stage("analyze", progress=40.0, register=(str(second), str(first))),
        _Stage("extract", failures=10, retryable=False),
    ]

    with pytest.raises(PipelineError):
        _orchestrator(tmp_path, stages).run(_job())

    job_dir = (tmp_path / "jobs" / "job-1").resolve()
    assert sorted(removed) == sorted([job_dir, first, second])


def test_failure_cleanup_removes_files_and_job_directory(tmp_path: Path) -> None:
    artifact = tmp_path / "elsewhere" / "source.mp4"
    artifact.parent.mkdir()
    artifact.write_bytes(b"x")

    stages = [
        _Stage("download", progress=15.0, register=(str(artifact),)),
        _Stage("analyze", failures=10, retryable=False),
    ]

    with pytest.raises(PipelineError):
        _orchestrator(tmp_path, stages).run(_job())

    assert not artifact.exists()
    assert not (tmp_path / "jobs" / "job-1").exists()


def test_cleanup_can_be_disabled(tmp_path: Path) -> None:
    stages = [_Stage("download", failures=10, retryable=False)]
    settings = _settings(tmp_path, cleanup_on_failure=False)

    with pytest.raises(PipelineError):
        _orchestrator(tmp_path, stages, settings=settings).run(_job())

    assert (tmp_path / "jobs" / "job-1" / "work").is_dir()


def test_progress_is_monotonic_and_completion_is_reported(tmp_path: Path) -> None:
    reporter = _RecordingReporter()
    stages = [
        _Stage("download", progress=15.0),
        _Stage("analyze", progress=40.0),
        # a stage that reports a lower value must not move progress backwards
        _Stage("extract", progress=10.0),
    ]

    context = _orchestrator(tmp_path, stages, reporter=reporter).run(_job())

    progress = [update.progress for update in reporter.updates]
    assert progress == sorted(progress)
    assert reporter.updates[-1] == JobUpdate(
        status=JobStatus.COMPLETED, progress=100.0, current_step="Complete", clip_ids=[]
    )
    assert [u.status for u in reporter.updates[:2]] == [JobStatus.DOWNLOADING, JobStatus.DOWNLOADING]
    assert context.progress == 100.0


def test_failure_report_keeps_last_progress(tmp_path: Path) -> None:
    reporter = _RecordingReporter()
    stages = [
        _Stage("download", progress=15.0),
        _Stage("analyze", failures=10, retryable=False, error=RuntimeError("ffmpeg crashed")),
    ]

    with pytest.raises(PipelineError):
        _orchestrator(tmp_path, stages, reporter=reporter).run(_job())

    final = reporter.updates[-1]
    assert final.status is JobStatus.FAILED
    assert final.progress == 15.0
    assert final.error == "ffmpeg crashed"
    assert "analyze" in final.current_step


def test_resume_skips_completed_stages_and_keeps_their_outputs(tmp_path: Path) -> None:
    settings = _settings(tmp_path, cleanup_on_failure=False)
    download = _Stage("download", progress=15.0, downloaded_path="/videos/source.mp4")
    analyze = _Stage("analyze", progress=40.0, failures=10, retryable=False)

    with pytest.raises(PipelineError):
        _orchestrator(tmp_path, [download, analyze], settings=settings).run(_job())

    fixed_analyze = _Stage("analyze", progress=40.0)
    fresh_download = _Stage("download", progress=15.0)
    job = replace(_job(), progress=15.0, status="failed")

    context = _orchestrator(tmp_path, [fresh_download, fixed_analyze], settings=settings).resume(job, "analyze")

    assert fresh_download.calls == 0
    assert fixed_analyze.calls == 1
    assert context.downloaded_path == "/videos/source.mp4"
    assert context.progress == 100.0


def test_resume_from_unknown_stage_raises(tmp_path: Path) -> None:
    orchestrator = _orchestrator(tmp_path, [_Stage("download")])

    with pytest.raises(ValueError, match="Unknown stage 'publish'"):
        orchestrator.resume(_job(), "publish")


def test_cancelled_job_runs_no_stage(tmp_path: Path) -> None:
    event = threading.Event()
    event.set()
    stage = _Stage("download")
    reporter = _RecordingReporter()

    with pytest.raises(PipelineError) as excinfo:
        _orchestrator(tmp_path, [stage], reporter=reporter, cancel_event=event).run(_job())

    assert stage.calls == 0
    assert isinstance(excinfo.value.cause, JobCancelledError)
    assert reporter.updates[-1].status is JobStatus.FAILED


def test_cancellation_is_checked_before_backoff_sleep(tmp_path: Path) -> None:
    event = threading.Event()
    sleeps: list[float] = []

    class _CancellingStage(_Stage):
        def execute(self, context: PipelineContext) -> PipelineContext:
            event.set()
            return super().execute(context)

    stage = _CancellingStage("download", failures=5)

    with pytest.raises(PipelineError) as excinfo:
        _orchestrator(tmp_path, [stage], sleeps=sleeps, cancel_event=event).run(_job())

    assert stage.calls == 1
    assert sleeps == []
    assert isinstance(excinfo.value.cause, JobCancelledError)


def test_duplicate_stage_names_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="unique"):
        _orchestrator(tmp_path, [_Stage("download"), _Stage("download")])


def test_stage_with_negative_retry_budget_is_rejected(tmp_path: Path) -> None:
    stage = _Stage("download", max_retries=-1)
    orchestrator = _orchestrator(tmp_path, [stage])
    context = orchestrator.build_context(_job())

    with pytest.raises(ValueError, match="no attempts left"):
        orchestrator.execute_stage_with_retry(context, stage)

    assert stage.calls == 0
