from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from .buffers import PlotPoint, TimeBoundedBuffer
from .codec import TelemetryFrame, decode_telemetry
from .config import MeterConfig
from .filters import FilterChain
from .rate import RateEstimator
from .scheduler import UpdateCoalescer
from .stats import WindowStats, compute_window_stats

logger = logging.getLogger(__name__)

NOTE_INSUFFICIENT = "insufficient samples"


@dataclass(frozen=True)
class TelemetrySnapshot:
    """Immutable view of the model handed to UI consumers."""

    speed: float
    error: float
    loop_us: int
    last_arrival: Optional[float]
    target: float
    rate_hz: Optional[float]
    metrics: Optional[WindowStats]
    metric_note: str
    window_samples: int
    velocity_pid: Optional[Tuple[float, float, float]]
    current_pi: Optional[Tuple[float, float]]
    plot_speed: Tuple[PlotPoint, ...]
    plot_weighted: Tuple[PlotPoint, ...]

    @property
    def has_metrics(self) -> bool:
        return self.metrics is not None


class TelemetryModel:
    """
    Ingestion-owned state: deviation window, plot series, rate estimate and
    the live weighting filter.

    ``ingest`` is the single writer. Every mutation and every snapshot runs
    under one lock, so consumers on other threads never observe a half
    evicted buffer or half redesigned filter. The metric pass copies what it
    needs under the lock and computes outside it.
    """

    def __init__(
        self,
        config: Optional[MeterConfig] = None,
        coalescer: Optional[UpdateCoalescer] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or MeterConfig()
        self.coalescer = coalescer or UpdateCoalescer()
        self._clock = clock
        self._lock = threading.Lock()

        self._rate = RateEstimator(self.config.rate_smoothing)
        self._chain = FilterChain(self.config.recompute_tolerance)
        self._window = TimeBoundedBuffer(self.config.window_seconds)
        self._plot_speed = TimeBoundedBuffer(self.config.plot.seconds, self.config.plot.max_points)
        self._plot_weighted = TimeBoundedBuffer(
            self.config.plot.seconds, self.config.plot.max_points
        )

        self._speed = 0.0
        self._error = 0.0
        self._loop_us = 0
        self._last_arrival: Optional[float] = None
        self._target = 0.0
        self._last_weighted = 0.0
        self._metrics: Optional[WindowStats] = None
        self._note = ""
        self._generation = 0
        self._velocity_pid: Optional[Tuple[float, float, float]] = None
        self._current_pi: Optional[Tuple[float, float]] = None
        self._stats: Dict[str, int] = {"frames": 0, "short_payloads": 0}

    # -- ingestion ---------------------------------------------------------

    def ingest(self, payload: bytes, now: Optional[float] = None) -> Optional[TelemetryFrame]:
        """Decode and fold one telemetry payload. Short payloads change nothing."""
        arrival = self._clock() if now is None else float(now)
        frame = decode_telemetry(payload, arrival)
        if frame is None:
            with self._lock:
                self._stats["short_payloads"] += 1
            logger.debug("Dropping short telemetry payload (%d bytes)", len(payload))
            return None
        with self._lock:
            self._fold(frame)
        return frame

    def _fold(self, frame: TelemetryFrame) -> None:
        self._stats["frames"] += 1
        self._speed = frame.speed
        self._error = frame.error
        self._loop_us = frame.loop_us
        self._last_arrival = frame.arrival_time

        rate_hz = self._rate.update(frame.arrival_time)
        if rate_hz is not None:
            self._chain.update_rate(rate_hz)

        if self._is_running():
            deviation = 100.0 * (frame.speed - self._target) / self._target
            self._window.append(frame.arrival_time, deviation)
            if len(self._window) >= 2:
                self._last_weighted = self._chain.process(deviation - self._window.mean())
            self.coalescer.mark(ui=False, metric=True)
        else:
            self._reset_meter()

        self._plot_speed.append(frame.arrival_time, frame.speed)
        self._plot_weighted.append(frame.arrival_time, self._last_weighted)
        self.coalescer.mark(ui=True)

    def _is_running(self) -> bool:
        return abs(self._target) > self.config.stop_epsilon

    def _reset_meter(self) -> None:
        self._window.clear()
        self._chain.reset()
        self._last_weighted = 0.0
        self._metrics = None
        self._note = ""
        self._generation += 1

    # -- commands and readback ---------------------------------------------

    def set_target(self, display_rpm: float) -> None:
        """Record the commanded display speed; a stop clears the meter."""
        with self._lock:
            self._target = float(display_rpm)
            if not self._is_running():
                self._reset_meter()
        self.coalescer.mark(ui=True)

    @property
    def target(self) -> float:
        with self._lock:
            return self._target

    def set_velocity_pid(self, p: float, i: float, d: float) -> None:
        with self._lock:
            self._velocity_pid = (float(p), float(i), float(d))
        self.coalescer.mark(ui=True)

    def set_current_pi(self, p: float, i: float) -> None:
        with self._lock:
            self._current_pi = (float(p), float(i))
        self.coalescer.mark(ui=True)

    def reset(self) -> None:
        """Full reset including the rate estimate and plot series."""
        with self._lock:
            self._reset_meter()
            self._rate.reset()
            self._chain = FilterChain(self.config.recompute_tolerance)
            self._plot_speed.clear()
            self._plot_weighted.clear()
        self.coalescer.mark(ui=True)

    # -- metric pass -------------------------------------------------------

    def compute_metrics(self) -> Optional[WindowStats]:
        """
        Recompute the windowed statistics and publish them.

        Returns the published result, or ``None`` when stopped, gated by the
        sample count, or superseded by a meter reset during computation.
        """
        with self._lock:
            if not self._is_running():
                self._metrics = None
                self._note = ""
                return None
            values = self._window.values()
            chain = self._chain.clone()
            generation = self._generation
            min_samples = self.config.min_samples

        result = compute_window_stats(values, chain, min_samples=min_samples)

        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding metrics computed before a meter reset")
                return None
            self._metrics = result
            self._note = NOTE_INSUFFICIENT if result is None else self._rate_note()
        self.coalescer.mark(ui=True)
        return result

    def _rate_note(self) -> str:
        fs = self._rate.estimate or 0.0
        if fs < self.config.low_rate_warning_hz:
            return f"warning: fs={fs:.1f} Hz (too low for standard weighting)"
        return f"fs={fs:.1f} Hz"

    # -- readers -----------------------------------------------------------

    def snapshot(self) -> TelemetrySnapshot:
        with self._lock:
            return TelemetrySnapshot(
                speed=self._speed,
                error=self._error,
                loop_us=self._loop_us,
                last_arrival=self._last_arrival,
                target=self._target,
                rate_hz=self._rate.estimate,
                metrics=self._metrics,
                metric_note=self._note,
                window_samples=len(self._window),
                velocity_pid=self._velocity_pid,
                current_pi=self._current_pi,
                plot_speed=self._plot_speed.points(),
                plot_weighted=self._plot_weighted.points(),
            )

    @property
    def metrics(self) -> Optional[WindowStats]:
        with self._lock:
            return self._metrics

    def window_values(self) -> np.ndarray:
        with self._lock:
            return self._window.values()

    def stats(self) -> Dict[str, int]:
        with self._lock:
            stats = dict(self._stats)
            stats["non_monotonic"] = self._rate.rejected
            stats["filter_redesigns"] = self._chain.redesigns
            stats["window_samples"] = len(self._window)
        return stats
