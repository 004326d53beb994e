from __future__ import annotations

from pathlib import Path

import pytest

from wowflutter.config import MeterConfig, load_config


def test_defaults_match_device_constants() -> None:
    cfg = load_config()
    assert cfg.window_seconds == 20.0
    assert cfg.plot.seconds == 20.0
    assert cfg.plot.max_points == 1200
    assert cfg.tick.ui_sec == 0.05
    assert cfg.tick.metric_sec == 0.25
    assert cfg.min_samples == 50
    assert cfg.stop_epsilon == 1e-6
    assert cfg.rate_smoothing == 0.1


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "meter.json"
    cfg_path.write_text(
        """
        {
          "window_seconds": 10,
          "plot": {"seconds": 5, "max_points": 300},
          "presets": [33.3333333, 45, 78]
        }
        """,
        encoding="utf-8",
    )
    cfg = load_config(cfg_path, overrides=["tick.metric_sec=0.5", "min_samples=20"])
    assert isinstance(cfg, MeterConfig)
    assert cfg.window_seconds == 10.0
    assert cfg.plot.seconds == 5.0
    assert cfg.plot.max_points == 300
    assert cfg.tick.metric_sec == 0.5
    assert cfg.tick.ui_sec == 0.05
    assert cfg.min_samples == 20
    assert cfg.presets == [33.3333333, 45.0, 78.0]


def test_repo_config_loads() -> None:
    cfg = load_config(Path(__file__).resolve().parents[1] / "config" / "meter.json")
    assert cfg.recompute_tolerance == 0.005


@pytest.mark.parametrize(
    "override",
    ["window_seconds=0", "rate_smoothing=1.5", "plot.max_points=0", "tick.ui_sec=-1", "nokey"],
)
def test_invalid_overrides(override: str) -> None:
    with pytest.raises(ValueError):
        load_config(overrides=[override])
