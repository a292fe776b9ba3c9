from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from clipforge.extraction.reframe import ASPECT_DIMENSIONS, CenterCropReframer, CropWindow, center_crop
from clipforge.ingest.probe import VideoDimensions


def test_landscape_source_is_cropped_to_centered_vertical_window() -> None:
    crop = center_crop(VideoDimensions(1920, 1080), "9:16")

    assert crop == CropWindow(x=656, y=0, width=608, height=1080)


@pytest.mark.parametrize("aspect", sorted(ASPECT_DIMENSIONS))
@pytest.mark.parametrize("source", [VideoDimensions(1920, 1080), VideoDimensions(1280, 720), VideoDimensions(720, 1280)])
def test_crop_is_centered_inside_source_and_matches_ratio(source: VideoDimensions, aspect: str) -> None:
    crop = center_crop(source, aspect)
    target_width, target_height = ASPECT_DIMENSIONS[aspect]

    assert crop.width % 2 == 0 and crop.height % 2 == 0
    assert 0 <= crop.x and crop.x + crop.width <= source.width
    assert 0 <= crop.y and crop.y + crop.height <= source.height
    assert abs(crop.x - (source.width - crop.x - crop.width)) <= 1
    assert abs(crop.y - (source.height - crop.y - crop.height)) <= 1
    assert crop.width / crop.height == pytest.approx(target_width / target_height, rel=0.01)


def test_reframer_runs_ffmpeg_with_crop_filter(tmp_path: Path, monkeypatch) -> None:
    commands: list[list[str]] = []
    monkeypatch.setattr(
        subprocess,
        "run",
        lambda command, **kwargs: commands.append(command) or subprocess.CompletedProcess(command, 0, "", ""),
    )
    reframer = CenterCropReframer(probe=lambda _: VideoDimensions(1920, 1080))

    result = reframer.reframe(tmp_path / "in.mp4", tmp_path / "out" / "clip.mp4", "9:16")

    assert result.method == "center_crop"
    assert "crop=608:1080:656:0,scale=1080:1920" in commands[0]


def test_reframer_rejects_unknown_aspect(tmp_path: Path) -> None:
    reframer = CenterCropReframer(probe=lambda _: VideoDimensions(1920, 1080))

    with pytest.raises(ValueError, match="Unsupported aspect ratio"):
        reframer.reframe(tmp_path / "in.mp4", tmp_path / "out.mp4", "21:9")
