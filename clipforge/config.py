from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field

DEFAULT_CONFIG_PATH = Path("configs/default.yaml")
ENV_PREFIX = "CLIPFORGE_"


class AudioSettings(BaseModel):
    window_size: float = 0.5
    peak_threshold: float = 0.7
    silence_threshold: float = 0.1
    min_gap: float = 3.0


class ChatSettings(BaseModel):
    window_size: float = 10.0
    step_size: float = 2.0
    min_velocity: int = 5
    emote_weight: float = 0.4


class FusionWeights(BaseModel):
    chat: float = 0.4
    audio: float = 0.4
    clips: float = 0.2


class FusionSettings(BaseModel):
    weights: FusionWeights = Field(default_factory=FusionWeights)
    pre_roll: float = 5.0
    post_roll: float = 8.0
    min_duration: float = 10.0
    max_duration: float = 60.0
    min_score: float = 30.0
    convergence_bonus: float = 20.0
    convergence_window: float = 5.0


class PipelineSettings(BaseModel):
    work_root: Path = Path("data/jobs")
    retry_delay_seconds: float = 2.0
    cleanup_on_failure: bool = True
    max_concurrent_extractions: int = 2
    chat_log_dir: Path | None = None
    viewer_clip_dir: Path | None = None


class CaptionSettings(BaseModel):
    enabled: bool = True
    model_size: str = "base"
    language: str | None = None
    device: str = "auto"
    compute_type: str = "default"
    font_name: str = "Arial Black"
    font_size: int = 48
    position: Literal["top", "center", "bottom"] = "center"


class StorageSettings(BaseModel):
    root: Path = Path("data/storage")
    base_url: str = "http://localhost:8000/storage"
    signing_secret: str = "change-me"
    signed_url_expiry_seconds: int = 86400


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    audio: AudioSettings = Field(default_factory=AudioSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    fusion: FusionSettings = Field(default_factory=FusionSettings)
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    captions: CaptionSettings = Field(default_factory=CaptionSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load typed settings from YAML with environment-variable overrides."""

    resolved_path = Path(
        config_path
        or os.getenv(f"{ENV_PREFIX}CONFIG")
        or DEFAULT_CONFIG_PATH
    )
    raw_config = yaml.safe_load(resolved_path.read_text(encoding="utf-8")) or {}
    data = Settings.model_validate(raw_config).model_dump(mode="python")

    for key, raw_value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue

        suffix = key[len(ENV_PREFIX) :]
        if suffix == "CONFIG":
            continue

        path = [part.lower() for part in suffix.split("__")]
        _apply_override(data, path, raw_value)

    return Settings.model_validate(data)


def _apply_override(data: dict[str, Any], path: list[str], raw_value: str) -> None:
    current: Any = data
    for segment in path[:-1]:
        if not isinstance(current, dict) or segment not in current:
            return
        current = current[segment]

    if not isinstance(current, dict):
        return

    final_key = path[-1]
    if final_key not in current:
        return

    current[final_key] = _coerce_value(raw_value, current[final_key])


def _coerce_value(raw_value: str, existing_value: Any) -> Any:
    if isinstance(existing_value, bool):
        return raw_value.lower() in {"1", "true", "yes", "on"}
    if isinstance(existing_value, int) and not isinstance(existing_value, bool):
        return int(raw_value)
    if isinstance(existing_value, float):
        return float(raw_value)
    if isinstance(existing_value, list | dict):
        return json.loads(raw_value)
    if isinstance(existing_value, Path):
        return Path(raw_value)
    return raw_value
