from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)


class RateEstimator:
    """
    Exponentially smoothed estimate of the sample arrival rate.

    Notes
    -----
    - Timestamps are in seconds.
    - The first valid interval initialises the estimate directly; later
      intervals are blended in with weight ``smoothing``.
    - Non-positive intervals (clock steps backwards, duplicate stamps) are
      skipped and leave the previous estimate in place.
    """

    def __init__(self, smoothing: float = 0.1) -> None:
        if not 0.0 < smoothing <= 1.0:
            raise ValueError(f"smoothing must be in (0, 1], got {smoothing}")
        self.smoothing = float(smoothing)
        self._last_time: Optional[float] = None
        self._rate_hz: Optional[float] = None
        self._rejected = 0

    def update(self, timestamp: float) -> Optional[float]:
        """
        Feed the arrival time of a new sample and return the current estimate.

        Returns ``None`` until at least one valid interval has been observed.
        """
        t = float(timestamp)
        if self._last_time is None:
            self._last_time = t
            return self._rate_hz
        dt = t - self._last_time
        self._last_time = t
        if dt <= 0:
            self._rejected += 1
            logger.debug("Ignoring non-positive sample interval (dt=%.6f s)", dt)
            return self._rate_hz
        inst = 1.0 / dt
        if self._rate_hz is None:
            self._rate_hz = inst
        else:
            self._rate_hz = self._rate_hz * (1.0 - self.smoothing) + inst * self.smoothing
        return self._rate_hz

    @property
    def estimate(self) -> Optional[float]:
        return self._rate_hz

    @property
    def rejected(self) -> int:
        """Number of intervals skipped because they were not positive."""
        return self._rejected

    def reset(self) -> None:
        self._last_time = None
        self._rate_hz = None
        self._rejected = 0
