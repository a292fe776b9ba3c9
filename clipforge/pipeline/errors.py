from __future__ import annotations

from typing import Any


class StageError(Exception):
    """Base class for failures raised from inside a pipeline stage."""


class TransientStageError(StageError):
    """A failure worth retrying (flaky network, transient tool crash)."""


class FatalStageError(StageError):
    """A failure that retrying cannot fix."""


class ValidationError(FatalStageError):
    """The context is missing fields a stage needs before it can run."""


class JobCancelledError(FatalStageError):
    """The caller asked for the job to stop."""


class DownloadError(TransientStageError):
    """The VOD could not be fetched."""


class PipelineError(Exception):
    """A stage failed terminally; carries the stage name and a context snapshot."""

    def __init__(self, stage_name: str, context: Any, cause: BaseException) -> None:
        super().__init__(f"Stage '{stage_name}' failed: {cause}")
        self.stage_name = stage_name
        self.context = context
        self.cause = cause
        self.__cause__ = cause

    def root_cause_message(self) -> str:
        return root_cause_message(self.cause)


def root_cause_message(error: BaseException) -> str:
    """Human-readable message of the innermost exception in a `__cause__` chain."""

    innermost = error
    seen = {id(innermost)}
    while innermost.__cause__ is not None and id(innermost.__cause__) not in seen:
        innermost = innermost.__cause__
        seen.add(id(innermost))
    return str(innermost) or innermost.__class__.__name__


def require_fields(context: Any, stage_name: str, *field_names: str) -> None:
    """Raise `ValidationError` naming every empty context field the stage needs."""

    missing = [name for name in field_names if not getattr(context, name, None)]
    if missing:
        raise ValidationError(f"Stage '{stage_name}' requires context field(s): {', '.join(missing)}")
