"""Static rendering of the plot buffers."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

import numpy as np

from .buffers import PlotPoint
from .model import TelemetrySnapshot


def render_snapshot(snapshot: TelemetrySnapshot, path: Path) -> Path:
    """Draw speed and weighted deviation series of *snapshot* to a PNG."""
    plt = _require_matplotlib()
    path.parent.mkdir(parents=True, exist_ok=True)
    fig, (ax_speed, ax_dev) = plt.subplots(2, 1, figsize=(11, 6), sharex=True)

    t0 = _origin(snapshot.plot_speed, snapshot.plot_weighted)
    t_speed, v_speed = _series(snapshot.plot_speed, t0)
    t_dev, v_dev = _series(snapshot.plot_weighted, t0)

    ax_speed.plot(t_speed, v_speed, color="tab:blue", label="speed")
    if abs(snapshot.target) > 0:
        ax_speed.axhline(snapshot.target, color="black", linestyle="--", label="target")
    ax_speed.set_ylabel("RPM")
    ax_speed.set_title(_title(snapshot))
    ax_speed.legend(loc="best")

    ax_dev.plot(t_dev, v_dev, color="tab:red")
    ax_dev.set_ylabel("Weighted deviation (%)")
    ax_dev.set_xlabel("Time (s)")

    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)
    return path


def _title(snapshot: TelemetrySnapshot) -> str:
    metrics = snapshot.metrics
    if metrics is None:
        return f"RPM / weighted dev%  {snapshot.metric_note}".rstrip()
    return (
        f"WRMS {metrics.unweighted_rms:.4f} %  2σ {metrics.unweighted_two_sigma:.4f} %  "
        f"(weighted {metrics.weighted_rms:.4f} %)"
    )


def _origin(*series: Sequence[PlotPoint]) -> float:
    starts = [points[0].t for points in series if points]
    return min(starts) if starts else 0.0


def _series(points: Sequence[PlotPoint], t0: float) -> tuple[np.ndarray, np.ndarray]:
    times = np.array([p.t - t0 for p in points], dtype=float)
    values = np.array([p.value for p in points], dtype=float)
    return times, values


def _require_matplotlib() -> Any:
    home_cache = Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install wowflutter[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
