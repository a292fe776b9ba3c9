from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Sequence

from clipforge.captions.transcribe import TranscriptionSegment
from clipforge.ingest.commands import run_media_command

logger = logging.getLogger(__name__)

PRIMARY_COLOR = "&HFFFFFF"
HIGHLIGHT_COLOR = "&H00FFFF"  # yellow, ASS colours are BGR
OUTLINE_COLOR = "&H000000"

_VERTICAL_POSITIONS = {"top": 200, "center": 540, "bottom": 800}


def generate_srt(segments: Sequence[TranscriptionSegment]) -> str:
    lines: list[str] = []
    for index, segment in enumerate(segments, start=1):
        lines.append(str(index))
        lines.append(f"{format_srt_time(segment.start)} --> {format_srt_time(segment.end)}")
        lines.append(segment.text.strip())
        lines.append("")
    return "\n".join(lines)


def generate_ass(
    segments: Sequence[TranscriptionSegment],
    *,
    font_name: str = "Arial Black",
    font_size: int = 48,
    position: str = "center",
) -> str:
    """Vertical-video ASS subtitles that highlight the word currently being spoken."""

    margin_v = _VERTICAL_POSITIONS.get(position, _VERTICAL_POSITIONS["center"])
    style_tail = f"&H80000000,-1,0,0,0,100,100,0,0,1,3,0,2,10,10,{margin_v},1"
    header = "\n".join(
        [
            "[Script Info]",
            "Title: clipforge captions",
            "ScriptType: v4.00+",
            "PlayResX: 1080",
            "PlayResY: 1920",
            "",
            "[V4+ Styles]",
            "Format: Name, Fontname, Fontsize, PrimaryColour, SecondaryColour, OutlineColour, BackColour, "
            "Bold, Italic, Underline, StrikeOut, ScaleX, ScaleY, Spacing, Angle, BorderStyle, Outline, "
            "Shadow, Alignment, MarginL, MarginR, MarginV, Encoding",
            f"Style: Default,{font_name},{font_size},{PRIMARY_COLOR},{HIGHLIGHT_COLOR},{OUTLINE_COLOR},{style_tail}",
            "",
            "[Events]",
            "Format: Layer, Start, End, Style, Name, MarginL, MarginR, MarginV, Effect, Text",
            "",
        ]
    )

    events: list[str] = []
    for segment in segments:
        if not segment.words:
            events.append(_dialogue(segment.start, segment.end, escape_ass(segment.text)))
            continue

        words = segment.words
        for index, word in enumerate(words):
            before = " ".join(w.word for w in words[:index])
            after = " ".join(w.word for w in words[index + 1 :])
            text = "".join(
                [
                    f"{{\\c{PRIMARY_COLOR}}}{escape_ass(before)} " if before else "",
                    f"{{\\c{HIGHLIGHT_COLOR}}}{escape_ass(word.word)}",
                    f"{{\\c{PRIMARY_COLOR}}} {escape_ass(after)}" if after else "",
                ]
            )
            end = words[index + 1].start if index + 1 < len(words) else word.end
            events.append(_dialogue(word.start, end, text))

    return header + "\n".join(events) + "\n"


def format_srt_time(seconds: float) -> str:
    total_ms = int(round(max(seconds, 0.0) * 1000))
    hours, remainder = divmod(total_ms, 3_600_000)
    minutes, remainder = divmod(remainder, 60_000)
    secs, millis = divmod(remainder, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def format_ass_time(seconds: float) -> str:
    total_cs = int(round(max(seconds, 0.0) * 100))
    hours, remainder = divmod(total_cs, 360_000)
    minutes, remainder = divmod(remainder, 6000)
    secs, centis = divmod(remainder, 100)
    return f"{hours}:{minutes:02d}:{secs:02d}.{centis:02d}"


def escape_ass(text: str) -> str:
    return (
        text.replace("\\", "\\\\")
        .replace("{", "\\{")
        .replace("}", "\\}")
        .replace("\n", "\\N")
    )


def build_burn_command(video_path: str, subtitle_path: str, output_path: str) -> list[str]:
    escaped = subtitle_path.replace("\\", "/").replace(":", "\\:").replace("'", "\\'")
    if subtitle_path.lower().endswith(".ass"):
        video_filter = f"ass='{escaped}'"
    else:
        video_filter = (
            f"subtitles='{escaped}':force_style='FontSize=24,PrimaryColour=&Hffffff,"
            "OutlineColour=&H000000,Outline=2'"
        )
    return [
        "ffmpeg",
        "-v",
        "error",
        "-y",
        "-i",
        video_path,
        "-vf",
        video_filter,
        "-c:v",
        "libx264",
        "-crf",
        "20",
        "-c:a",
        "copy",
        output_path,
    ]


class FfmpegCaptionBurner:
    """CaptionBurner that renders ASS/SRT subtitles into the video stream."""

    def burn(self, video_path: str | Path, subtitle_path: str | Path, output_path: str | Path) -> None:
        Path(output_path).parent.mkdir(parents=True, exist_ok=True)
        run_media_command(build_burn_command(str(video_path), str(subtitle_path), str(output_path)))
        logger.debug("Burned captions %s into %s", subtitle_path, output_path)


def _dialogue(start: float, end: float, text: str) -> str:
    if math.isclose(start, end) or end < start:
        end = start + 0.01
    return f"Dialogue: 0,{format_ass_time(start)},{format_ass_time(end)},Default,,0,0,0,,{text}"
