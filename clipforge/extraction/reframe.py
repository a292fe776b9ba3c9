from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from clipforge.ingest.commands import run_media_command
from clipforge.ingest.probe import VideoDimensions, probe_video_dimensions

logger = logging.getLogger(__name__)

AspectRatio = Literal["9:16", "1:1", "16:9", "4:5"]

# Output dimensions per aspect ratio at 1080p.
ASPECT_DIMENSIONS: dict[str, tuple[int, int]] = {
    "9:16": (1080, 1920),
    "1:1": (1080, 1080),
    "16:9": (1920, 1080),
    "4:5": (1080, 1350),
}

OUTPUT_FORMAT_TO_ASPECT: dict[str, AspectRatio] = {
    "vertical": "9:16",
    "square": "1:1",
    "horizontal": "16:9",
}


@dataclass(slots=True, frozen=True)
class CropWindow:
    x: int
    y: int
    width: int
    height: int


@dataclass(slots=True, frozen=True)
class ReframeResult:
    output_path: str
    method: str
    crop: CropWindow


def center_crop(source: VideoDimensions, target_aspect: str) -> CropWindow:
    """Largest centered window of the source that matches the target aspect."""

    target_width, target_height = ASPECT_DIMENSIONS[target_aspect]
    target_ratio = target_width / target_height
    source_ratio = source.width / source.height

    if source_ratio > target_ratio:
        crop_height = source.height
        crop_width = int(round(source.height * target_ratio))
    else:
        crop_width = source.width
        crop_height = int(round(source.width / target_ratio))

    # even sizes keep libx264 happy
    crop_width -= crop_width % 2
    crop_height -= crop_height % 2

    return CropWindow(
        x=int(round((source.width - crop_width) / 2)),
        y=int(round((source.height - crop_height) / 2)),
        width=crop_width,
        height=crop_height,
    )


def build_reframe_command(
    *,
    input_path: str,
    output_path: str,
    crop: CropWindow,
    target_aspect: str,
) -> list[str]:
    out_width, out_height = ASPECT_DIMENSIONS[target_aspect]
    video_filter = f"crop={crop.width}:{crop.height}:{crop.x}:{crop.y},scale={out_width}:{out_height}"
    return [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-i",
        input_path,
        "-vf",
        video_filter,
        "-c:v",
        "libx264",
        "-crf",
        "20",
        "-preset",
        "medium",
        "-c:a",
        "copy",
        output_path,
    ]


class CenterCropReframer:
    """Reframer using a deterministic center crop followed by a 1080p scale."""

    def __init__(self, probe: Callable[[str | Path], VideoDimensions] = probe_video_dimensions) -> None:
        self._probe = probe

    def reframe(self, input_path: str | Path, output_path: str | Path, target_aspect: str) -> ReframeResult:
        if target_aspect not in ASPECT_DIMENSIONS:
            raise ValueError(
                f"Unsupported aspect ratio '{target_aspect}'. Expected one of: {', '.join(ASPECT_DIMENSIONS)}."
            )

        source = self._probe(input_path)
        crop = center_crop(source, target_aspect)
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        run_media_command(
            build_reframe_command(
                input_path=str(input_path),
                output_path=str(output_path),
                crop=crop,
                target_aspect=target_aspect,
            )
        )
        logger.debug("Reframed %s to %s with crop %s", input_path, target_aspect, crop)
        return ReframeResult(output_path=str(output_path), method="center_crop", crop=crop)
