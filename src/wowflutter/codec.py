from __future__ import annotations

import enum
import math
import struct
from dataclasses import dataclass
from typing import Iterable, Optional, Tuple


DEVICE_NAME = "FOC_TURNTABLE"
SERVICE_UUID = "c0de0001-1d7a-4b2a-9d2f-000000000001"

TELEMETRY_STRUCT = struct.Struct("<ffI")
TELEMETRY_SIZE = TELEMETRY_STRUCT.size  # 12

# Display RPM is scaled by the firmware; commanded RPM = display * 10.
CMD_RPM_SCALE = 10.0
RPM_TO_RAD = 2.0 * math.pi / 60.0


class Channel(str, enum.Enum):
    TARGET = "c0de0002-1d7a-4b2a-9d2f-000000000001"
    VELOCITY_PID = "c0de0003-1d7a-4b2a-9d2f-000000000001"
    CURRENT_PI = "c0de0004-1d7a-4b2a-9d2f-000000000001"
    TELEMETRY = "c0de0005-1d7a-4b2a-9d2f-000000000001"


@dataclass(frozen=True)
class TelemetryFrame:
    speed: float
    error: float
    loop_us: int
    arrival_time: float


def decode_telemetry(payload: bytes, arrival_time: float) -> Optional[TelemetryFrame]:
    """
    Decode one notify payload: float32 speed, float32 error, uint32 loop time.

    Payloads shorter than 12 bytes yield ``None``; trailing bytes are ignored.
    """
    if len(payload) < TELEMETRY_SIZE:
        return None
    speed, error, loop_us = TELEMETRY_STRUCT.unpack_from(payload, 0)
    return TelemetryFrame(
        speed=float(speed),
        error=float(error),
        loop_us=int(loop_us),
        arrival_time=float(arrival_time),
    )


def encode_telemetry(speed: float, error: float, loop_us: int) -> bytes:
    return TELEMETRY_STRUCT.pack(float(speed), float(error), int(loop_us) & 0xFFFFFFFF)


def encode_scalar(value: float) -> bytes:
    return struct.pack("<f", float(value))


def encode_vector(values: Iterable[float]) -> bytes:
    floats = [float(value) for value in values]
    return struct.pack(f"<{len(floats)}f", *floats)


def decode_vector(payload: bytes, count: int) -> Optional[Tuple[float, ...]]:
    if count <= 0 or len(payload) < 4 * count:
        return None
    return tuple(float(value) for value in struct.unpack_from(f"<{count}f", payload, 0))


def display_rpm_to_rad_per_sec(display_rpm: float) -> float:
    return float(display_rpm) * CMD_RPM_SCALE * RPM_TO_RAD


def encode_target(rad_per_sec: float) -> bytes:
    return encode_scalar(rad_per_sec)


def encode_velocity_pid(p: float, i: float, d: float) -> bytes:
    return encode_vector((p, i, d))


def encode_current_pi(p: float, i: float) -> bytes:
    return encode_vector((p, i))


def decode_velocity_pid(payload: bytes) -> Optional[Tuple[float, float, float]]:
    values = decode_vector(payload, 3)
    if values is None:
        return None
    return values[0], values[1], values[2]


def decode_current_pi(payload: bytes) -> Optional[Tuple[float, float]]:
    values = decode_vector(payload, 2)
    if values is None:
        return None
    return values[0], values[1]
