from __future__ import annotations

from pathlib import Path

from clipforge.config import load_settings


def _write_config(tmp_path: Path) -> Path:
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "fusion:",
                "  min_score: 25",
                "  weights:",
                "    chat: 0.5",
                "pipeline:",
                "  work_root: /tmp/clipforge-jobs",
            ]
        ),
        encoding="utf-8",
    )
    return path


def test_yaml_values_override_defaults(tmp_path: Path) -> None:
    settings = load_settings(_write_config(tmp_path))

    assert settings.fusion.min_score == 25
    assert settings.fusion.weights.chat == 0.5
    assert settings.fusion.weights.audio == 0.4
    assert settings.pipeline.work_root == Path("/tmp/clipforge-jobs")
    assert settings.audio.peak_threshold == 0.7


def test_environment_overrides_are_coerced(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIPFORGE_FUSION__MIN_SCORE", "40")
    monkeypatch.setenv("CLIPFORGE_FUSION__WEIGHTS__CLIPS", "0.3")
    monkeypatch.setenv("CLIPFORGE_PIPELINE__CLEANUP_ON_FAILURE", "false")
    monkeypatch.setenv("CLIPFORGE_CHAT__MIN_VELOCITY", "8")
    monkeypatch.setenv("CLIPFORGE_UNKNOWN__KEY", "ignored")

    settings = load_settings(_write_config(tmp_path))

    assert settings.fusion.min_score == 40.0
    assert settings.fusion.weights.clips == 0.3
    assert settings.pipeline.cleanup_on_failure is False
    assert settings.chat.min_velocity == 8


def test_config_path_can_come_from_environment(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("CLIPFORGE_CONFIG", str(_write_config(tmp_path)))

    assert load_settings().fusion.min_score == 25


def test_shipped_default_config_loads() -> None:
    settings = load_settings(Path(__file__).resolve().parents[1] / "configs" / "default.yaml")

    assert settings.fusion.convergence_window == 5.0
    assert settings.storage.signed_url_expiry_seconds == 86400
