"""RBJ biquad sections and the bandpass/lowpass weighting chain."""

from __future__ import annotations

import logging
import math
from typing import Optional, Tuple

import numpy as np
from numpy.typing import ArrayLike
from scipy import signal

logger = logging.getLogger(__name__)

BANDPASS_CENTER_HZ = 4.0
BANDPASS_Q = 1.0
LOWPASS_CORNER_HZ = 200.0
LOWPASS_Q = 0.707
NYQUIST_MARGIN = 0.45


class BiquadSection:
    """
    Second-order IIR section in transposed direct form II.

    Coefficients start as the identity, so an undesigned section passes
    samples through unchanged.
    """

    __slots__ = ("b0", "b1", "b2", "a0", "a1", "a2", "z1", "z2")

    def __init__(self) -> None:
        self.b0 = 1.0
        self.b1 = 0.0
        self.b2 = 0.0
        self.a0 = 1.0
        self.a1 = 0.0
        self.a2 = 0.0
        self.z1 = 0.0
        self.z2 = 0.0

    def reset(self) -> None:
        self.z1 = 0.0
        self.z2 = 0.0

    def clone(self) -> "BiquadSection":
        """Copy the coefficients only; the delay line of the copy starts at zero."""
        other = BiquadSection()
        other.b0, other.b1, other.b2 = self.b0, self.b1, self.b2
        other.a0, other.a1, other.a2 = self.a0, self.a1, self.a2
        return other

    def process(self, x: float) -> float:
        y = (self.b0 / self.a0) * x + self.z1
        self.z1 = (self.b1 / self.a0) * x - (self.a1 / self.a0) * y + self.z2
        self.z2 = (self.b2 / self.a0) * x - (self.a2 / self.a0) * y
        return y

    def set_bandpass(self, *, fs: float, f0: float, q: float) -> None:
        cosw0, sinw0, alpha = _design_terms(fs, f0, q)
        self.b0 = sinw0 / 2.0
        self.b1 = 0.0
        self.b2 = -sinw0 / 2.0
        self.a0 = 1.0 + alpha
        self.a1 = -2.0 * cosw0
        self.a2 = 1.0 - alpha
        self.reset()

    def set_lowpass(self, *, fs: float, f0: float, q: float) -> None:
        cosw0, _, alpha = _design_terms(fs, f0, q)
        self.b0 = (1.0 - cosw0) / 2.0
        self.b1 = 1.0 - cosw0
        self.b2 = (1.0 - cosw0) / 2.0
        self.a0 = 1.0 + alpha
        self.a1 = -2.0 * cosw0
        self.a2 = 1.0 - alpha
        self.reset()

    def normalized(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return ``(b, a)`` divided by ``a0`` in the layout scipy expects."""
        b = np.array([self.b0, self.b1, self.b2], dtype=float) / self.a0
        a = np.array([self.a0, self.a1, self.a2], dtype=float) / self.a0
        return b, a


def _design_terms(fs: float, f0: float, q: float) -> Tuple[float, float, float]:
    w0 = 2.0 * math.pi * f0 / fs
    cosw0 = math.cos(w0)
    sinw0 = math.sin(w0)
    alpha = sinw0 / (2.0 * q)
    return cosw0, sinw0, alpha


class FilterChain:
    """
    Wow & flutter weighting approximation: a 4 Hz bandpass followed by a
    lowpass, both redesigned from the estimated sample rate.

    ``recompute_tolerance`` is the relative change in sample rate that
    triggers a redesign; 0 redesigns on every rate update.
    """

    def __init__(self, recompute_tolerance: float = 0.0) -> None:
        if recompute_tolerance < 0:
            raise ValueError(f"recompute_tolerance must be >= 0, got {recompute_tolerance}")
        self.recompute_tolerance = float(recompute_tolerance)
        self.bandpass = BiquadSection()
        self.lowpass = BiquadSection()
        self._design_fs: Optional[float] = None
        self._redesigns = 0

    @property
    def ready(self) -> bool:
        return self._design_fs is not None

    @property
    def design_fs(self) -> Optional[float]:
        return self._design_fs

    @property
    def redesigns(self) -> int:
        return self._redesigns

    def update_rate(self, fs: float) -> bool:
        """Redesign both sections for ``fs`` if it moved enough. Returns True on redesign."""
        if not fs > 0 or not math.isfinite(fs):
            return False
        if self._design_fs is not None:
            change = abs(fs - self._design_fs) / self._design_fs
            if self.recompute_tolerance > 0 and change <= self.recompute_tolerance:
                return False
        self.bandpass.set_bandpass(
            fs=fs, f0=min(BANDPASS_CENTER_HZ, fs * NYQUIST_MARGIN), q=BANDPASS_Q
        )
        self.lowpass.set_lowpass(
            fs=fs, f0=min(LOWPASS_CORNER_HZ, fs * NYQUIST_MARGIN), q=LOWPASS_Q
        )
        if self._design_fs is None:
            logger.debug("Weighting filter designed for fs=%.2f Hz", fs)
        self._design_fs = float(fs)
        self._redesigns += 1
        return True

    def process(self, x: float) -> float:
        if not self.ready:
            return x
        return self.lowpass.process(self.bandpass.process(x))

    def reset(self) -> None:
        self.bandpass.reset()
        self.lowpass.reset()

    def clone(self) -> "FilterChain":
        """Coefficient-only copy with zeroed delay lines."""
        other = FilterChain(self.recompute_tolerance)
        other.bandpass = self.bandpass.clone()
        other.lowpass = self.lowpass.clone()
        other._design_fs = self._design_fs
        return other

    def filter_block(self, values: ArrayLike) -> np.ndarray:
        """
        Run ``values`` through the chain starting from zero state.

        Uses the chain's coefficients only; its live delay lines are neither
        read nor modified.
        """
        data = np.asarray(values, dtype=float)
        if not self.ready or data.size == 0:
            return data.copy()
        b_bp, a_bp = self.bandpass.normalized()
        b_lp, a_lp = self.lowpass.normalized()
        return signal.lfilter(b_lp, a_lp, signal.lfilter(b_bp, a_bp, data))
