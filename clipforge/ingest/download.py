from __future__ import annotations

import logging
import re
import subprocess
from collections import deque
from pathlib import Path
from typing import Callable

from clipforge.pipeline.errors import DownloadError

logger = logging.getLogger(__name__)

_PROGRESS_LINE = re.compile(r"\[download\]\s+(\d+(?:\.\d+)?)%")

OUTPUT_TAIL_LINES = 20

ProgressHook = Callable[[float], None]


def parse_download_progress(line: str) -> float | None:
    """Percentage from a yt-dlp `[download]  45.2% of ...` line."""

    match = _PROGRESS_LINE.search(line)
    if not match:
        return None
    return float(match.group(1))


class YtDlpDownloader:
    """Downloader backed by the yt-dlp command-line tool."""

    def __init__(self, executable: str = "yt-dlp", on_progress: ProgressHook | None = None) -> None:
        self.executable = executable
        self.on_progress = on_progress

    def download(self, source_url: str, dest_dir: str | Path, filename: str = "source") -> Path:
        output_dir = Path(dest_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        output_path = output_dir / f"{filename}.mp4"

        for partial in output_dir.glob("*.part"):
            partial.unlink(missing_ok=True)

        command = [
            self.executable,
            "--format",
            "best[ext=mp4]/best",
            "--output",
            str(output_path),
            "--progress",
            "--newline",
            source_url,
        ]
        logger.info("Downloading %s -> %s", source_url, output_path)

        try:
            # stderr is merged into stdout so only one pipe needs draining
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
            )
        except FileNotFoundError as exc:
            raise DownloadError(
                f"{self.executable} executable was not found. Install yt-dlp so it is available on PATH."
            ) from exc

        last_progress = 0.0
        output_tail: deque[str] = deque(maxlen=OUTPUT_TAIL_LINES)
        with process:
            try:
                for line in process.stdout or ():
                    progress = parse_download_progress(line)
                    if progress is None:
                        output_tail.append(line.rstrip())
                    elif progress > last_progress:
                        last_progress = progress
                        if self.on_progress is not None:
                            self.on_progress(progress)
            except BaseException:
                process.kill()
                raise
            return_code = process.wait()

        if return_code != 0:
            details = "\n".join(line for line in output_tail if line)
            raise DownloadError(f"yt-dlp failed with code {return_code}: {details}")

        if not output_path.exists():
            raise DownloadError(f"Downloaded file not found: {output_path}")

        logger.info("Downloaded %s (%.1f MiB)", output_path.name, output_path.stat().st_size / 2**20)
        return output_path
