from __future__ import annotations

import math
import struct

import pytest

from wowflutter.codec import (
    decode_current_pi,
    decode_telemetry,
    decode_vector,
    decode_velocity_pid,
    display_rpm_to_rad_per_sec,
    encode_current_pi,
    encode_scalar,
    encode_target,
    encode_telemetry,
    encode_vector,
    encode_velocity_pid,
)

CANONICAL = bytes.fromhex("00509a44" "000080be" "f4010000")


def test_decode_canonical_frame() -> None:
    frame = decode_telemetry(CANONICAL, arrival_time=3.5)
    assert frame is not None
    assert frame.speed == 1234.5
    assert frame.error == -0.25
    assert frame.loop_us == 500
    assert frame.arrival_time == 3.5


@pytest.mark.parametrize("length", range(12))
def test_decode_short_payload_returns_none(length: int) -> None:
    assert decode_telemetry(CANONICAL[:length], arrival_time=0.0) is None


def test_decode_ignores_trailing_bytes() -> None:
    frame = decode_telemetry(CANONICAL + b"\xff\xff", arrival_time=0.0)
    assert frame is not None
    assert frame.loop_us == 500


def test_encode_telemetry_matches_wire_layout() -> None:
    assert encode_telemetry(1234.5, -0.25, 500) == CANONICAL


def test_command_payload_lengths() -> None:
    assert len(encode_scalar(1.0)) == 4
    assert len(encode_current_pi(0.1, 2.0)) == 8
    assert len(encode_velocity_pid(0.5, 1.5, 0.0)) == 12
    assert encode_vector([1.0, 2.0]) == struct.pack("<ff", 1.0, 2.0)


def test_pid_readback_order() -> None:
    assert decode_velocity_pid(encode_velocity_pid(0.5, 1.5, 0.25)) == (0.5, 1.5, 0.25)
    assert decode_current_pi(encode_current_pi(2.0, 40.0)) == (2.0, 40.0)
    assert decode_velocity_pid(b"\x00" * 8) is None
    assert decode_current_pi(b"\x00" * 4) is None
    assert decode_vector(b"", 0) is None


def test_display_rpm_conversion() -> None:
    rad = display_rpm_to_rad_per_sec(45.0)
    assert math.isclose(rad, 450.0 * 2.0 * math.pi / 60.0)
    (value,) = struct.unpack("<f", encode_target(rad))
    assert math.isclose(value, rad, rel_tol=1e-6)
