from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from clipforge.models import ViewerClip

logger = logging.getLogger(__name__)


class JsonViewerClipSource:
    """ViewerClipSource reading `<vod_id>.json` arrays of viewer-made clips."""

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def fetch(self, vod_id: str) -> list[ViewerClip]:
        clip_path = self.directory / f"{vod_id}.json"
        if not clip_path.exists():
            logger.info("No viewer clips for VOD %s at %s", vod_id, clip_path)
            return []
        return load_viewer_clips(clip_path)


class NullViewerClipSource:
    def fetch(self, vod_id: str) -> list[ViewerClip]:
        return []


def load_viewer_clips(path: str | Path) -> list[ViewerClip]:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, list):
        raise ValueError("Viewer clip file must be a JSON array.")
    return [viewer_clip_from_dict(row) for row in payload]


def viewer_clip_from_dict(row: dict[str, Any]) -> ViewerClip:
    return ViewerClip(
        timestamp=float(row["timestamp"]),
        duration=float(row.get("duration", 30.0)),
        view_count=int(row.get("view_count", 0)),
        title=str(row.get("title", "")),
    )
