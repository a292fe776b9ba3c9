from __future__ import annotations

import logging
import subprocess
from typing import Sequence

logger = logging.getLogger(__name__)

_SHARED_LIBRARY_MARKERS = ("error while loading shared libraries", "cannot open shared object file")


def run_media_command(
    command: Sequence[str],
    failure_message: str | None = None,
) -> subprocess.CompletedProcess[str]:
    """Run an external media tool and translate failures into readable RuntimeErrors."""

    tool = command[0]
    logger.debug("Running %s", " ".join(command))
    try:
        return subprocess.run(
            list(command),
            check=True,
            capture_output=True,
            text=True,
        )
    except FileNotFoundError as exc:
        raise RuntimeError(
            f"{tool} executable was not found. Install it so {tool} is available on PATH."
        ) from exc
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        if any(marker in stderr for marker in _SHARED_LIBRARY_MARKERS):
            raise RuntimeError(
                f"{tool} is installed but failed to start because required shared libraries are missing. "
                f"{tool} stderr: {stderr}"
            ) from exc
        details = f" {tool} stderr: {stderr}" if stderr else ""
        message = failure_message or f"{tool} exited with code {exc.returncode}."
        raise RuntimeError(f"{message}{details}") from exc
