from __future__ import annotations

import threading
import time

from wowflutter.codec import encode_telemetry
from wowflutter.config import MeterConfig, TickConfig
from wowflutter.model import TelemetryModel
from wowflutter.scheduler import PeriodicConsumer, Scheduler, UpdateCoalescer


def _burst(model: TelemetryModel, count: int, start: float = 0.0) -> float:
    t = start
    for _ in range(count):
        model.ingest(encode_telemetry(33.1, 0.0, 500), now=t)
        t += 0.01
    return t


def test_coalescer_flags_are_independent() -> None:
    flags = UpdateCoalescer()
    flags.mark(ui=True, metric=True)
    assert flags.consume_ui()
    assert not flags.consume_ui()
    assert flags.consume_metric()
    assert not flags.consume_metric()
    flags.mark(ui=False, metric=True)
    assert not flags.ui_dirty
    assert flags.metric_dirty


def test_ui_tick_is_noop_without_ingestion() -> None:
    model = TelemetryModel()
    scheduler = Scheduler(model)
    published = []
    scheduler.add_listener(published.append)
    assert not scheduler.ui_tick()
    assert published == []


def test_ui_tick_publishes_once_per_burst() -> None:
    model = TelemetryModel()
    scheduler = Scheduler(model)
    published = []
    scheduler.add_listener(published.append)

    _burst(model, 25)
    assert scheduler.ui_tick()
    assert not scheduler.ui_tick()
    assert len(published) == 1
    assert published[0].speed == _approx_float32(33.1)

    _burst(model, 3, start=1.0)
    assert scheduler.ui_tick()
    assert len(published) == 2
    assert scheduler.counts()["ui_publishes"] == 2


def _approx_float32(value: float) -> float:
    import struct

    return struct.unpack("<f", struct.pack("<f", value))[0]


def test_metric_tick_runs_only_on_new_samples_and_marks_ui() -> None:
    model = TelemetryModel()
    scheduler = Scheduler(model)
    calls = []
    original = model.compute_metrics

    def counting():
        calls.append(1)
        return original()

    model.compute_metrics = counting  # type: ignore[method-assign]
    assert not scheduler.metric_tick()
    model.set_target(33.0)
    _burst(model, 60)
    model.coalescer.consume_ui()
    assert scheduler.metric_tick()
    assert not scheduler.metric_tick()
    assert len(calls) == 1
    assert model.coalescer.ui_dirty
    assert model.metrics is not None


def test_listener_errors_do_not_stop_publishing() -> None:
    model = TelemetryModel()
    scheduler = Scheduler(model)
    seen = []

    def broken(_snap):
        raise RuntimeError("boom")

    scheduler.add_listener(broken)
    scheduler.add_listener(seen.append)
    _burst(model, 1)
    assert scheduler.ui_tick()
    assert len(seen) == 1


def test_run_due_follows_external_clock() -> None:
    model = TelemetryModel(MeterConfig(tick=TickConfig(ui_sec=0.05, metric_sec=0.25)))
    model.set_target(33.0)
    scheduler = Scheduler(model)
    t = 0.0
    for _ in range(100):
        model.ingest(encode_telemetry(33.1, 0.0, 500), now=t)
        scheduler.run_due(t)
        t += 0.01
    counts = scheduler.counts()
    assert 3 <= counts["metric_runs"] <= 4
    assert 18 <= counts["ui_publishes"] <= 24


def test_periodic_consumer_runs_and_stops() -> None:
    ran = threading.Event()
    consumer = PeriodicConsumer("test", 0.01, ran.set)
    consumer.start()
    try:
        assert ran.wait(1.0)
    finally:
        consumer.stop()
        consumer.join(timeout=1.0)
    assert not consumer.is_alive()


def test_scheduler_threads_publish_ingested_data() -> None:
    model = TelemetryModel(MeterConfig(tick=TickConfig(ui_sec=0.01, metric_sec=0.02)))
    model.set_target(33.0)
    scheduler = Scheduler(model)
    published = threading.Event()
    scheduler.add_listener(lambda snap: published.set() if snap.metrics is not None else None)
    scheduler.start()
    try:
        _burst(model, 80)
        assert published.wait(2.0)
    finally:
        scheduler.stop()
    assert not scheduler.running
    ticks = scheduler.counts()["ui_ticks"]
    time.sleep(0.05)
    assert scheduler.counts()["ui_ticks"] == ticks


def test_listeners_only_called_from_ui_thread() -> None:
    model = TelemetryModel(MeterConfig(tick=TickConfig(ui_sec=0.005, metric_sec=0.005)))
    model.set_target(33.0)
    scheduler = Scheduler(model)
    threads = set()
    active = []
    overlaps = []
    guard = threading.Lock()

    def listener(_snap) -> None:
        with guard:
            active.append(1)
            if len(active) > 1:
                overlaps.append(1)
            threads.add(threading.current_thread().name)
        time.sleep(0.001)
        with guard:
            active.pop()

    scheduler.add_listener(listener)
    scheduler.start()
    try:
        t = 0.0
        for _ in range(300):
            model.ingest(encode_telemetry(33.1, 0.0, 500), now=t)
            t += 0.001
            time.sleep(0.001)
        time.sleep(0.05)
    finally:
        scheduler.stop()
    assert threads == {"ui-tick"}
    assert overlaps == []
    assert scheduler.counts()["metric_runs"] > 0
