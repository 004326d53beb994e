from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

import pandas as pd

from .codec import (
    Channel,
    decode_current_pi,
    decode_velocity_pid,
    display_rpm_to_rad_per_sec,
    encode_current_pi,
    encode_target,
    encode_telemetry,
    encode_velocity_pid,
)
from .config import MeterConfig
from .model import TelemetryModel, TelemetrySnapshot
from .scheduler import Scheduler

logger = logging.getLogger(__name__)

REQUIRED_CAPTURE_COLUMNS = {"t_s", "speed"}


class Transport(Protocol):
    """Connected device link. Discovery and connection live outside this package."""

    def subscribe(self, callback: Callable[[bytes], None]) -> None: ...

    def unsubscribe(self) -> None: ...

    def write(self, channel: Channel, payload: bytes) -> None: ...

    def read(self, channel: Channel) -> bytes: ...


@dataclass(frozen=True)
class ReplayResult:
    snapshot: TelemetrySnapshot
    history: pd.DataFrame
    stats: Dict[str, int]


class MeterHost:
    """Wires a transport to the telemetry model and its two periodic consumers."""

    def __init__(self, config: Optional[MeterConfig] = None, clock: Callable[[], float] = time.monotonic):
        self.config = config or MeterConfig()
        self.model = TelemetryModel(self.config, clock=clock)
        self.scheduler = Scheduler(self.model)
        self._transport: Optional[Transport] = None

    # -- link --------------------------------------------------------------

    def attach(self, transport: Transport, *, read_gains: bool = True) -> None:
        if self._transport is not None:
            self.detach()
        self._transport = transport
        transport.subscribe(self._on_notify)
        logger.info("Telemetry subscription active")
        if read_gains:
            self.read_gains()

    def detach(self) -> None:
        transport, self._transport = self._transport, None
        if transport is None:
            return
        try:
            transport.unsubscribe()
        finally:
            logger.info("Telemetry subscription closed (%s)", self.model.stats())

    @property
    def attached(self) -> bool:
        return self._transport is not None

    def _on_notify(self, payload: bytes) -> None:
        self.model.ingest(bytes(payload))

    def _require_transport(self) -> Transport:
        if self._transport is None:
            raise RuntimeError("No transport attached")
        return self._transport

    def _write(self, channel: Channel, payload: bytes) -> None:
        transport = self._require_transport()
        try:
            transport.write(channel, payload)
        except Exception as exc:
            logger.warning("Write to %s failed: %s", channel.name, exc)
            raise

    # -- commands ----------------------------------------------------------

    def set_target(self, display_rpm: float) -> bytes:
        """Command a display speed; returns the payload written to the device."""
        payload = encode_target(display_rpm_to_rad_per_sec(display_rpm))
        self._write(Channel.TARGET, payload)
        self.model.set_target(display_rpm)
        logger.info("Target set to %.4f display RPM", display_rpm)
        return payload

    def stop_motor(self) -> bytes:
        return self.set_target(0.0)

    def apply_preset(self, index: int) -> bytes:
        presets = self.config.presets
        if not 0 <= index < len(presets):
            raise ValueError(f"Preset index {index} out of range (0..{len(presets) - 1})")
        return self.set_target(presets[index])

    def apply_velocity_pid(self, p: float, i: float, d: float) -> Optional[Tuple[float, float, float]]:
        self._write(Channel.VELOCITY_PID, encode_velocity_pid(p, i, d))
        return self._read_velocity_pid()

    def apply_current_pi(self, p: float, i: float) -> Optional[Tuple[float, float]]:
        self._write(Channel.CURRENT_PI, encode_current_pi(p, i))
        return self._read_current_pi()

    def read_gains(self) -> Tuple[Optional[Tuple[float, float, float]], Optional[Tuple[float, float]]]:
        return self._read_velocity_pid(), self._read_current_pi()

    def _read_velocity_pid(self) -> Optional[Tuple[float, float, float]]:
        gains = decode_velocity_pid(self._require_transport().read(Channel.VELOCITY_PID))
        if gains is None:
            logger.warning("Velocity PID readback too short")
            return None
        self.model.set_velocity_pid(*gains)
        return gains

    def _read_current_pi(self) -> Optional[Tuple[float, float]]:
        gains = decode_current_pi(self._require_transport().read(Channel.CURRENT_PI))
        if gains is None:
            logger.warning("Current PI readback too short")
            return None
        self.model.set_current_pi(*gains)
        return gains

    # -- consumers ---------------------------------------------------------

    def add_listener(self, listener: Callable[[TelemetrySnapshot], None]) -> None:
        self.scheduler.add_listener(listener)

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def __enter__(self) -> "MeterHost":
        self.start()
        return self

    def __exit__(self, *exc: Any) -> None:
        self.stop()
        self.detach()

    # -- replay ------------------------------------------------------------

    def replay(self, capture: pd.DataFrame, *, target: Optional[float] = None) -> ReplayResult:
        """
        Feed a recorded capture through the core on the capture's own clock.

        ``capture`` needs ``t_s`` and ``speed`` columns; ``error``, ``loop_us``
        and a per-row ``target`` (display RPM) are optional.
        """
        missing = REQUIRED_CAPTURE_COLUMNS - set(capture.columns)
        if missing:
            raise ValueError(f"Missing required columns: {sorted(missing)}")
        history: List[Dict[str, Any]] = []

        def recorder(snap: TelemetrySnapshot) -> None:
            _record(history, snap)

        self.scheduler.add_listener(recorder)
        if target is not None:
            self.model.set_target(target)
        has_target = "target" in capture.columns
        try:
            for row in capture.itertuples(index=False):
                t = float(row.t_s)
                if has_target:
                    row_target = float(row.target)
                    if row_target != self.model.target:
                        self.model.set_target(row_target)
                payload = encode_telemetry(
                    float(row.speed),
                    float(getattr(row, "error", 0.0)),
                    int(getattr(row, "loop_us", 0)),
                )
                self.model.ingest(payload, now=t)
                self.scheduler.run_due(t)
            self.scheduler.flush()
        finally:
            self.scheduler.remove_listener(recorder)
        stats = self.model.stats()
        logger.info(
            "Replayed %d frames (short=%d non_monotonic=%d redesigns=%d)",
            stats["frames"],
            stats["short_payloads"],
            stats["non_monotonic"],
            stats["filter_redesigns"],
        )
        return ReplayResult(
            snapshot=self.model.snapshot(),
            history=pd.DataFrame(history, columns=HISTORY_COLUMNS),
            stats=stats,
        )


HISTORY_COLUMNS = [
    "t_s",
    "speed",
    "target",
    "rate_hz",
    "samples",
    "unweighted_rms",
    "unweighted_two_sigma",
    "weighted_rms",
    "weighted_two_sigma",
]


def _record(history: List[Dict[str, Any]], snap: TelemetrySnapshot) -> None:
    metrics = snap.metrics
    if metrics is None:
        return
    row = {
        "t_s": snap.last_arrival,
        "speed": snap.speed,
        "target": snap.target,
        "rate_hz": snap.rate_hz,
        "samples": metrics.samples,
        "unweighted_rms": metrics.unweighted_rms,
        "unweighted_two_sigma": metrics.unweighted_two_sigma,
        "weighted_rms": metrics.weighted_rms,
        "weighted_two_sigma": metrics.weighted_two_sigma,
    }
    if history and history[-1] == row:
        return
    history.append(row)


def load_capture(path: Path | str) -> pd.DataFrame:
    """Load a telemetry capture CSV (``t_s``, ``speed`` and optional columns)."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    df = pd.read_csv(path)
    missing = REQUIRED_CAPTURE_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    return df.reset_index(drop=True)
