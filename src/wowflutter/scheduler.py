from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from .config import TickConfig
    from .model import TelemetrySnapshot, TelemetryModel

logger = logging.getLogger(__name__)


class UpdateCoalescer:
    """
    Two dirty flags set by the ingestion path and cleared by their consumers.

    Any number of marks between two consumer runs collapse into one unit of
    work for that consumer.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._ui = False
        self._metric = False

    def mark(self, ui: bool = True, metric: bool = False) -> None:
        with self._lock:
            if ui:
                self._ui = True
            if metric:
                self._metric = True

    def consume_ui(self) -> bool:
        with self._lock:
            dirty = self._ui
            self._ui = False
            return dirty

    def consume_metric(self) -> bool:
        with self._lock:
            dirty = self._metric
            self._metric = False
            return dirty

    @property
    def ui_dirty(self) -> bool:
        with self._lock:
            return self._ui

    @property
    def metric_dirty(self) -> bool:
        with self._lock:
            return self._metric


class PeriodicConsumer(threading.Thread):
    """Daemon thread running ``work`` every ``period`` seconds until stopped."""

    def __init__(self, name: str, period: float, work: Callable[[], object]) -> None:
        super().__init__(name=name, daemon=True)
        if period <= 0:
            raise ValueError(f"period must be positive, got {period}")
        self.period = float(period)
        self._work = work
        self._stop_event = threading.Event()

    def run(self) -> None:
        while not self._stop_event.wait(self.period):
            try:
                self._work()
            except Exception:
                logger.exception("Unexpected error in %s consumer", self.name)

    def stop(self) -> None:
        self._stop_event.set()


class Scheduler:
    """
    Pull-based UI and metric consumers over a :class:`TelemetryModel`.

    ``start``/``stop`` run both consumers on their own threads. ``run_due``
    drives the same ticks from an external clock, which keeps replays
    deterministic.
    """

    def __init__(self, model: "TelemetryModel", ticks: Optional["TickConfig"] = None) -> None:
        self.model = model
        self.coalescer = model.coalescer
        self.ticks = ticks or model.config.tick
        self._listeners: List[Callable[["TelemetrySnapshot"], None]] = []
        self._consumers: List[PeriodicConsumer] = []
        self._next_ui: Optional[float] = None
        self._next_metric: Optional[float] = None
        self._counts: Dict[str, int] = {"ui_ticks": 0, "ui_publishes": 0, "metric_ticks": 0, "metric_runs": 0}
        self._counts_lock = threading.Lock()

    def add_listener(self, listener: Callable[["TelemetrySnapshot"], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[["TelemetrySnapshot"], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _count(self, key: str) -> None:
        with self._counts_lock:
            self._counts[key] += 1

    def ui_tick(self) -> bool:
        """Publish a snapshot if anything changed since the last publish."""
        self._count("ui_ticks")
        if not self.coalescer.consume_ui():
            return False
        snapshot = self.model.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed")
        self._count("ui_publishes")
        return True

    def metric_tick(self) -> bool:
        """Recompute statistics if new samples arrived since the last run."""
        self._count("metric_ticks")
        if not self.coalescer.consume_metric():
            return False
        self.model.compute_metrics()
        self._count("metric_runs")
        return True

    def _metric_then_ui(self) -> None:
        self.metric_tick()
        self.ui_tick()

    def run_due(self, now: float) -> None:
        """Run every tick whose period elapsed by ``now`` (external clock)."""
        if self._next_ui is None or self._next_metric is None:
            self._next_ui = now + self.ticks.ui_sec
            self._next_metric = now + self.ticks.metric_sec
            return
        if now >= self._next_metric:
            self._metric_then_ui()
            self._next_metric = _advance(self._next_metric, self.ticks.metric_sec, now)
        if now >= self._next_ui:
            self.ui_tick()
            self._next_ui = _advance(self._next_ui, self.ticks.ui_sec, now)

    def flush(self) -> None:
        """Run both consumers once regardless of their schedule."""
        self._metric_then_ui()

    def start(self) -> None:
        if self._consumers:
            return
        self._consumers = [
            PeriodicConsumer("ui-tick", self.ticks.ui_sec, self.ui_tick),
            PeriodicConsumer("metric-tick", self.ticks.metric_sec, self.metric_tick),
        ]
        for consumer in self._consumers:
            consumer.start()
        logger.info(
            "Scheduler started (ui=%.0f ms, metric=%.0f ms)",
            self.ticks.ui_sec * 1000.0,
            self.ticks.metric_sec * 1000.0,
        )

    def stop(self, timeout: float = 1.0) -> None:
        consumers, self._consumers = self._consumers, []
        for consumer in consumers:
            consumer.stop()
        for consumer in consumers:
            consumer.join(timeout=timeout)
        if consumers:
            logger.info("Scheduler stopped (%s)", self.counts())

    @property
    def running(self) -> bool:
        return bool(self._consumers)

    def counts(self) -> Dict[str, int]:
        with self._counts_lock:
            return dict(self._counts)


def _advance(deadline: float, period: float, now: float) -> float:
    # Skip missed periods instead of bursting to catch up.
    while deadline <= now:
        deadline += period
    return deadline
