from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Deque, Iterator, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class PlotPoint:
    t: float
    value: float


class TimeBoundedBuffer:
    """
    Ordered (t, value) buffer bounded by age and, optionally, by count.

    Every insert drops the oldest points beyond ``max_points`` and then every
    point older than ``max_age`` seconds relative to the newest time seen.
    Points are kept in time order; a late point is inserted in place, and one
    already older than the cutoff when it arrives is rejected. A running sum
    keeps :meth:`mean` constant time.
    """

    __slots__ = ("max_age", "max_points", "_points", "_newest", "_sum")

    def __init__(self, max_age: float, max_points: Optional[int] = None) -> None:
        if max_age <= 0:
            raise ValueError(f"max_age must be positive, got {max_age}")
        if max_points is not None and max_points <= 0:
            raise ValueError(f"max_points must be positive, got {max_points}")
        self.max_age = float(max_age)
        self.max_points = max_points
        self._points: Deque[PlotPoint] = deque()
        self._newest: Optional[float] = None
        self._sum = 0.0

    def append(self, t: float, value: float) -> bool:
        """Insert a point; returns False if it was too old to keep."""
        t = float(t)
        newest = t if self._newest is None else max(self._newest, t)
        cutoff = newest - self.max_age
        if t < cutoff:
            return False
        self._newest = newest
        point = PlotPoint(t, float(value))
        if not self._points or t >= self._points[-1].t:
            self._points.append(point)
        else:
            self._insert_sorted(point)
        self._sum += point.value
        if self.max_points is not None:
            while len(self._points) > self.max_points:
                self._sum -= self._points.popleft().value
        while self._points and self._points[0].t < cutoff:
            self._sum -= self._points.popleft().value
        if not self._points:
            self._sum = 0.0
        return True

    def _insert_sorted(self, point: PlotPoint) -> None:
        index = len(self._points)
        while index > 0 and self._points[index - 1].t > point.t:
            index -= 1
        self._points.insert(index, point)

    def clear(self) -> None:
        self._points.clear()
        self._newest = None
        self._sum = 0.0

    @property
    def newest_time(self) -> Optional[float]:
        return self._newest

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[PlotPoint]:
        return iter(self._points)

    def points(self) -> Tuple[PlotPoint, ...]:
        return tuple(self._points)

    def times(self) -> np.ndarray:
        return np.fromiter((p.t for p in self._points), dtype=np.float64, count=len(self._points))

    def values(self) -> np.ndarray:
        return np.fromiter(
            (p.value for p in self._points), dtype=np.float64, count=len(self._points)
        )

    def mean(self) -> float:
        if not self._points:
            return 0.0
        return self._sum / len(self._points)
