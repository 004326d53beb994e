from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Sequence


@dataclass
class TickConfig:
    ui_sec: float = 0.05
    metric_sec: float = 0.25


@dataclass
class PlotConfig:
    seconds: float = 20.0
    max_points: int = 1200


@dataclass
class MeterConfig:
    window_seconds: float = 20.0
    min_samples: int = 50
    stop_epsilon: float = 1e-6
    rate_smoothing: float = 0.1
    recompute_tolerance: float = 0.005
    low_rate_warning_hz: float = 20.0
    presets: List[float] = field(default_factory=lambda: [33.3333333, 45.0])
    plot: PlotConfig = field(default_factory=PlotConfig)
    tick: TickConfig = field(default_factory=TickConfig)

    def validate(self) -> "MeterConfig":
        if self.window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        if self.plot.seconds <= 0:
            raise ValueError("plot.seconds must be positive")
        if self.plot.max_points <= 0:
            raise ValueError("plot.max_points must be positive")
        if self.tick.ui_sec <= 0 or self.tick.metric_sec <= 0:
            raise ValueError("tick periods must be positive")
        if self.min_samples < 1:
            raise ValueError("min_samples must be >= 1")
        if self.stop_epsilon < 0:
            raise ValueError("stop_epsilon must be >= 0")
        if not 0.0 < self.rate_smoothing <= 1.0:
            raise ValueError("rate_smoothing must be in (0, 1]")
        if self.recompute_tolerance < 0:
            raise ValueError("recompute_tolerance must be >= 0")
        return self


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def config_from_mapping(data: Dict[str, Any]) -> MeterConfig:
    defaults = MeterConfig()
    plot_data = data.get("plot") or {}
    tick_data = data.get("tick") or {}
    presets = data.get("presets", defaults.presets)
    if not isinstance(presets, list):
        raise ValueError("presets must be a list of display RPM values")
    return MeterConfig(
        window_seconds=float(data.get("window_seconds", defaults.window_seconds)),
        min_samples=int(data.get("min_samples", defaults.min_samples)),
        stop_epsilon=float(data.get("stop_epsilon", defaults.stop_epsilon)),
        rate_smoothing=float(data.get("rate_smoothing", defaults.rate_smoothing)),
        recompute_tolerance=float(data.get("recompute_tolerance", defaults.recompute_tolerance)),
        low_rate_warning_hz=float(data.get("low_rate_warning_hz", defaults.low_rate_warning_hz)),
        presets=[float(value) for value in presets],
        plot=PlotConfig(
            seconds=float(plot_data.get("seconds", defaults.plot.seconds)),
            max_points=int(plot_data.get("max_points", defaults.plot.max_points)),
        ),
        tick=TickConfig(
            ui_sec=float(tick_data.get("ui_sec", defaults.tick.ui_sec)),
            metric_sec=float(tick_data.get("metric_sec", defaults.tick.metric_sec)),
        ),
    ).validate()


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> MeterConfig:
    """
    Load meter tunables from JSON (optional) and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["window_seconds=10", "tick.metric_sec=0.5"]
    """
    data: Dict[str, Any] = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    return config_from_mapping(_merge(data, override_data))


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    return key, _coerce_value(raw_value.strip())


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
