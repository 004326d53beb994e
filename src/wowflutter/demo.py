"""Synthetic capture utilities."""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import pandas as pd

from .config import MeterConfig
from .host import MeterHost
from .plotting import render_snapshot
from .reporting import export_results

logger = logging.getLogger(__name__)


def create_demo_capture(
    seconds: float = 30.0,
    rate_hz: float = 100.0,
    target_rpm: float = 33.3333333,
    *,
    wow_pct: float = 0.08,
    flutter_pct: float = 0.02,
    jitter: float = 0.15,
    seed: int = 42,
) -> pd.DataFrame:
    """
    Simulate a notify stream: once-per-revolution wow, 8 Hz flutter and
    noise, delivered with jittered inter-arrival times.
    """
    rng = np.random.default_rng(seed)
    count = int(seconds * rate_hz)
    intervals = (1.0 / rate_hz) * (1.0 + jitter * rng.uniform(-1.0, 1.0, size=count))
    t = np.cumsum(intervals)

    rev_hz = target_rpm / 60.0
    deviation_pct = (
        wow_pct * np.sin(2 * np.pi * rev_hz * t)
        + flutter_pct * np.sin(2 * np.pi * 8.0 * t + 0.3)
        + rng.normal(scale=0.005, size=count)
    )
    speed = target_rpm * (1.0 + deviation_pct / 100.0)
    error = (target_rpm - speed) * 10.0 * 2.0 * np.pi / 60.0
    loop_us = rng.integers(480, 520, size=count)

    return pd.DataFrame(
        {
            "t_s": t,
            "speed": speed,
            "error": error,
            "loop_us": loop_us,
            "target": np.full(count, target_rpm),
        }
    )


def run_demo(out_dir: Path, config: MeterConfig | None = None) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    csv_path = out_dir / "demo_capture.csv"
    df = create_demo_capture()
    df.to_csv(csv_path, index=False)

    host = MeterHost(config)
    result = host.replay(df)
    figure_path = None
    try:
        figure_path = render_snapshot(result.snapshot, out_dir / "telemetry.png")
    except RuntimeError as exc:
        logger.warning("plotting skipped: %s", exc)

    export_results(result, out_dir, figure_path=figure_path, input_path=csv_path)
