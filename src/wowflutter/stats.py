"""Windowed wow & flutter statistics."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import ArrayLike

from .filters import FilterChain

DEFAULT_MIN_SAMPLES = 50


@dataclass(frozen=True)
class WindowStats:
    """RMS and 2-sigma deviation in percent, unweighted and filter-weighted."""

    unweighted_rms: float
    unweighted_two_sigma: float
    weighted_rms: float
    weighted_two_sigma: float
    samples: int


def _rms_and_two_sigma(values: np.ndarray) -> tuple[float, float]:
    n = float(values.size)
    sum_sq = float(np.dot(values, values))
    rms = float(np.sqrt(sum_sq / n))
    ex = float(np.sum(values)) / n
    ex2 = sum_sq / n
    std = float(np.sqrt(max(0.0, ex2 - ex * ex)))
    return rms, 2.0 * std


def compute_window_stats(
    values: ArrayLike,
    chain: FilterChain,
    *,
    min_samples: int = DEFAULT_MIN_SAMPLES,
) -> Optional[WindowStats]:
    """
    Evaluate the deviation window.

    Parameters
    ----------
    values:
        Deviation samples in percent, oldest first.
    chain:
        Filter chain whose current coefficients define the weighting. Only a
        zero-state copy is run, so the chain's own delay lines are untouched.
    min_samples:
        Gate below which no result is produced.

    Returns
    -------
    WindowStats or None
        ``None`` when the window holds fewer than ``min_samples`` samples.
    """
    data = np.asarray(values, dtype=float)
    if data.size < max(min_samples, 1):
        return None
    centered = data - float(np.mean(data))
    rms, two_sigma = _rms_and_two_sigma(centered)
    weighted = chain.clone().filter_block(centered)
    w_rms, w_two_sigma = _rms_and_two_sigma(weighted)
    return WindowStats(
        unweighted_rms=rms,
        unweighted_two_sigma=two_sigma,
        weighted_rms=w_rms,
        weighted_two_sigma=w_two_sigma,
        samples=int(data.size),
    )
