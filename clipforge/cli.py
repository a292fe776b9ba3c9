from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict
from pathlib import Path
from time import perf_counter
from typing import Callable, Sequence, TypeVar

import typer

from clipforge.analysis.audio import analyze_audio_levels, sample_audio_levels
from clipforge.analysis.chat import analyze_chat_messages, parse_chat_log
from clipforge.analysis.fusion import fuse_signals, select_top_moments
from clipforge.analysis.viewer_clips import load_viewer_clips
from clipforge.config import DEFAULT_CONFIG_PATH, Settings, load_settings
from clipforge.ingest.extract_audio import extract_audio
from clipforge.logging_config import configure_logging
from clipforge.models import JobSettings, PipelineJob
from clipforge.pipeline.errors import PipelineError
from clipforge.pipeline.factory import build_orchestrator
from clipforge.pipeline.job_store import JsonJobStore
from clipforge.pipeline.orchestrator import DEFAULT_STAGE_ORDER, STAGE_LABELS
from clipforge.pipeline.types import JobUpdate, ProgressReporter
from clipforge.propose.exporter import export_final_outputs

app = typer.Typer(help="VOD highlight detection and short-clip pipeline.")
config_app = typer.Typer(help="Configuration commands.")
analyze_app = typer.Typer(help="Signal analysis commands.")

app.add_typer(config_app, name="config")
app.add_typer(analyze_app, name="analyze")

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLI_ERRORS = (PipelineError, RuntimeError, ValueError, KeyError, FileNotFoundError)

ConfigOption = typer.Option(
    DEFAULT_CONFIG_PATH,
    "--config",
    "-c",
    envvar="CLIPFORGE_CONFIG",
    help="Path to YAML configuration file.",
)


def _run_with_progress(step_index: int, total_steps: int, label: str, work: Callable[[], T]) -> T:
    typer.echo(f"[{step_index}/{total_steps}] {label}...", err=True)
    started_at = perf_counter()
    try:
        result = work()
    except Exception:
        elapsed = perf_counter() - started_at
        typer.echo(f"[{step_index}/{total_steps}] {label} failed after {elapsed:.1f}s", err=True)
        raise
    elapsed = perf_counter() - started_at
    typer.echo(f"[{step_index}/{total_steps}] {label} done in {elapsed:.1f}s", err=True)
    return result


def _bootstrap(config_path: Path) -> Settings:
    settings = load_settings(config_path)
    configure_logging(settings.logging)
    logger.debug("Loaded runtime settings from %s", config_path)
    return settings


def _fail(exc: Exception) -> typer.Exit:
    message = exc.args[0] if isinstance(exc, KeyError) and exc.args else str(exc)
    logger.error("Command failed: %s", message)
    typer.echo(f"Error: {message}", err=True)
    return typer.Exit(code=1)


class _EchoingReporter:
    """Persists job updates and mirrors stage boundaries to stderr."""

    def __init__(self, store: JsonJobStore, stage_names: Sequence[str]) -> None:
        self.store = store
        self._labels = [STAGE_LABELS.get(name, name) for name in stage_names]

    def update(self, job_id: str, update: JobUpdate) -> None:
        self.store.update(job_id, update)

        step = update.current_step
        label = step.removesuffix(" done")
        if label in self._labels:
            index = self._labels.index(label) + 1
            suffix = " done" if step.endswith(" done") else "..."
            typer.echo(f"[{index}/{len(self._labels)}] {label}{suffix} ({update.progress:.0f}%)", err=True)
        else:
            typer.echo(f"{step} ({update.progress:.0f}%)", err=True)


def _job_store(settings: Settings) -> JsonJobStore:
    return JsonJobStore(Path(settings.pipeline.work_root) / "records")


def _reporter(store: JsonJobStore) -> ProgressReporter:
    return _EchoingReporter(store, DEFAULT_STAGE_ORDER)


@config_app.command("show")
def show_config(config_path: Path = ConfigOption) -> None:
    """Print resolved runtime configuration."""

    settings = _bootstrap(config_path)
    typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


@analyze_app.command("audio")
def analyze_audio(audio_path: Path, config_path: Path = ConfigOption) -> None:
    """Detect audio moments in a 16-bit PCM WAV file."""

    settings = _bootstrap(config_path)
    try:
        levels = sample_audio_levels(audio_path, settings.audio.window_size)
        moments = analyze_audio_levels(levels, settings.audio)
    except _CLI_ERRORS as exc:
        raise _fail(exc) from exc

    logger.info("Found %d audio moments in %s", len(moments), audio_path)
    typer.echo(json.dumps([asdict(moment) for moment in moments], indent=2))


@analyze_app.command("chat")
def analyze_chat(log_path: Path, config_path: Path = ConfigOption) -> None:
    """Detect chat activity bursts in a `[HH:MM:SS] user: message` log."""

    settings = _bootstrap(config_path)
    try:
        messages = parse_chat_log(log_path.read_text(encoding="utf-8"))
        moments = analyze_chat_messages(messages, settings.chat)
    except (*_CLI_ERRORS, OSError) as exc:
        raise _fail(exc) from exc

    logger.info("Found %d chat moments in %d messages", len(moments), len(messages))
    typer.echo(json.dumps([asdict(moment) for moment in moments], indent=2))


@analyze_app.command("vod")
def analyze_vod(
    vod_path: Path,
    chat_log: Path | None = typer.Option(None, help="Optional chat log for the VOD."),
    viewer_clips: Path | None = typer.Option(None, help="Optional JSON array of viewer-made clips."),
    output_dir: Path = typer.Option(Path("data/output"), help="Directory for moment exports."),
    top_k: int = typer.Option(10, help="Number of moments to keep."),
    config_path: Path = ConfigOption,
) -> None:
    """Fuse audio, chat and viewer-clip signals for a local VOD and export the moments."""

    settings = _bootstrap(config_path)
    resolved_vod_path = vod_path.expanduser().resolve()
    total_steps = 5

    try:
        if not resolved_vod_path.exists():
            raise FileNotFoundError(f"VOD file not found: {resolved_vod_path}")

        audio_path = output_dir / f"{resolved_vod_path.stem}_audio.wav"
        _run_with_progress(1, total_steps, "Extract audio", lambda: extract_audio(resolved_vod_path, audio_path))
        audio_moments = _run_with_progress(
            2,
            total_steps,
            "Analyze audio",
            lambda: analyze_audio_levels(
                sample_audio_levels(audio_path, settings.audio.window_size),
                settings.audio,
            ),
        )
        chat_moments = _run_with_progress(
            3,
            total_steps,
            "Analyze chat",
            lambda: analyze_chat_messages(
                parse_chat_log(chat_log.read_text(encoding="utf-8")) if chat_log else [],
                settings.chat,
            ),
        )
        clips = load_viewer_clips(viewer_clips) if viewer_clips else []
        moments = _run_with_progress(
            4,
            total_steps,
            "Fuse signals",
            lambda: select_top_moments(fuse_signals(chat_moments, audio_moments, clips, settings.fusion), top_k),
        )
        exported = _run_with_progress(
            5,
            total_steps,
            "Export outputs",
            lambda: export_final_outputs(
                moments,
                output_dir,
                basename=f"{resolved_vod_path.stem}_moments",
                vod_path=str(resolved_vod_path),
                pre_roll=settings.fusion.pre_roll,
            ),
        )
    except _CLI_ERRORS as exc:
        raise _fail(exc) from exc

    typer.echo(
        json.dumps(
            {
                "status": "ok",
                "vod_path": str(resolved_vod_path),
                "moment_count": len(moments),
                "signals": {"audio": len(audio_moments), "chat": len(chat_moments), "viewer_clips": len(clips)},
                "outputs": {key: str(value) for key, value in exported.items()},
            },
            indent=2,
        )
    )


@app.command()
def run(
    vod_url: str,
    vod_id: str = typer.Option(..., help="Identifier used for chat logs, viewer clips and output names."),
    title: str = typer.Option("", help="VOD title."),
    user_id: str = typer.Option("local", help="Owner of the produced clips."),
    job_id: str | None = typer.Option(None, help="Job id; generated when omitted."),
    clip_count: int = typer.Option(10, help="Maximum number of clips to produce."),
    min_duration: float = typer.Option(15, help="Minimum clip duration in seconds."),
    max_duration: float = typer.Option(60, help="Maximum clip duration in seconds."),
    output_format: str = typer.Option("vertical", help="vertical, square or horizontal."),
    quality: str = typer.Option("medium", help="high, medium or low."),
    chat_analysis: bool = typer.Option(True, help="Use chat activity as a signal."),
    audio_peaks: bool = typer.Option(True, help="Use audio loudness as a signal."),
    captions: bool = typer.Option(True, help="Burn word-highlight captions into the clips."),
    config_path: Path = ConfigOption,
) -> None:
    """Run every pipeline stage for one VOD."""

    settings = _bootstrap(config_path)
    store = _job_store(settings)

    try:
        if output_format not in ("vertical", "square", "horizontal"):
            raise ValueError(f"Unsupported output format '{output_format}'.")
        if quality not in ("high", "medium", "low"):
            raise ValueError(f"Unsupported quality '{quality}'.")

        job = store.create(
            PipelineJob(
                id=job_id or uuid.uuid4().hex[:12],
                vod_id=vod_id,
                vod_url=vod_url,
                user_id=user_id,
                title=title,
                settings=JobSettings(
                    clip_count=clip_count,
                    min_duration=min_duration,
                    max_duration=max_duration,
                    chat_analysis=chat_analysis,
                    audio_peaks=audio_peaks,
                    auto_captions=captions,
                    output_format=output_format,
                    quality=quality,
                ),
            )
        )
        orchestrator = build_orchestrator(settings, _reporter(store))
        context = orchestrator.run(job)
    except _CLI_ERRORS as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps(_job_summary(store.get(job.id), [asdict(clip) for clip in context.uploaded_clips]), indent=2))


@app.command()
def resume(
    job_id: str,
    from_stage: str = typer.Option(..., help="Stage to restart from (download, analyze, extract, ...)."),
    config_path: Path = ConfigOption,
) -> None:
    """Resume a previously started job from the named stage."""

    settings = _bootstrap(config_path)
    store = _job_store(settings)

    try:
        job = store.get(job_id)
        orchestrator = build_orchestrator(settings, _reporter(store))
        context = orchestrator.resume(job, from_stage)
    except _CLI_ERRORS as exc:
        raise _fail(exc) from exc

    typer.echo(json.dumps(_job_summary(store.get(job_id), [asdict(clip) for clip in context.uploaded_clips]), indent=2))


@app.command()
def status(job_id: str, config_path: Path = ConfigOption) -> None:
    """Print the stored job record."""

    settings = _bootstrap(config_path)
    try:
        job = _job_store(settings).get(job_id)
    except KeyError as exc:
        raise _fail(exc) from exc
    typer.echo(json.dumps(asdict(job), indent=2))


def _job_summary(job: PipelineJob, clips: list[dict]) -> dict:
    return {
        "job_id": job.id,
        "status": job.status,
        "progress": job.progress,
        "current_step": job.current_step,
        "clips": clips,
    }


if __name__ == "__main__":
    app()
