from __future__ import annotations

import numpy as np
import pytest

from wowflutter.filters import FilterChain
from wowflutter.stats import compute_window_stats


def _designed_chain(fs: float = 100.0) -> FilterChain:
    chain = FilterChain()
    chain.update_rate(fs)
    return chain


def _sine(freq_hz: float, amplitude: float, fs: float = 100.0, seconds: float = 20.0) -> np.ndarray:
    t = np.arange(int(fs * seconds)) / fs
    return 0.4 + amplitude * np.sin(2 * np.pi * freq_hz * t)


@pytest.mark.parametrize("count", [0, 1, 2, 49])
def test_gate_below_min_samples(count: int) -> None:
    values = np.linspace(-1.0, 1.0, count)
    assert compute_window_stats(values, _designed_chain()) is None


@pytest.mark.parametrize("count", [50, 51, 500])
def test_gate_at_or_above_min_samples(count: int) -> None:
    rng = np.random.default_rng(count)
    result = compute_window_stats(rng.normal(size=count) * 1e6, _designed_chain())
    assert result is not None
    assert result.samples == count


def test_custom_gate() -> None:
    assert compute_window_stats(np.zeros(9), FilterChain(), min_samples=10) is None
    assert compute_window_stats(np.zeros(10), FilterChain(), min_samples=10) is not None


def test_constant_window_is_exactly_zero() -> None:
    result = compute_window_stats(np.full(400, 2.0), _designed_chain())
    assert result is not None
    assert result.unweighted_rms == 0.0
    assert result.unweighted_two_sigma == 0.0
    assert result.weighted_rms == 0.0
    assert result.weighted_two_sigma == 0.0


def test_unweighted_matches_population_statistics() -> None:
    rng = np.random.default_rng(11)
    values = rng.normal(loc=1.5, scale=0.2, size=1000)
    result = compute_window_stats(values, FilterChain())
    assert result is not None
    assert result.unweighted_rms == pytest.approx(np.std(values), rel=1e-9)
    assert result.unweighted_two_sigma == pytest.approx(2 * np.std(values), rel=1e-9)
    # an undesigned chain weights nothing
    assert result.weighted_rms == pytest.approx(result.unweighted_rms)


def test_in_band_sinusoid_passes_weighting() -> None:
    result = compute_window_stats(_sine(4.0, 0.1), _designed_chain())
    assert result is not None
    assert result.unweighted_rms == pytest.approx(0.1 / np.sqrt(2), rel=1e-3)
    assert result.weighted_rms / result.unweighted_rms > 0.9


def test_out_of_band_sinusoid_is_attenuated() -> None:
    result = compute_window_stats(_sine(30.0, 0.1), _designed_chain())
    assert result is not None
    assert result.weighted_rms < 0.3 * result.unweighted_rms


def test_weighted_rms_scales_with_amplitude() -> None:
    chain = _designed_chain()
    small = compute_window_stats(_sine(2.0, 0.05), chain)
    large = compute_window_stats(_sine(2.0, 0.2), chain)
    assert small is not None and large is not None
    assert large.weighted_rms == pytest.approx(4.0 * small.weighted_rms, rel=1e-6)


def test_bulk_pass_leaves_live_filter_untouched() -> None:
    chain = _designed_chain()
    for x in (0.3, -0.1, 0.2):
        chain.process(x)
    state = (chain.bandpass.z1, chain.bandpass.z2, chain.lowpass.z1, chain.lowpass.z2)
    first = compute_window_stats(_sine(1.0, 0.1), chain)
    second = compute_window_stats(_sine(1.0, 0.1), chain)
    assert (chain.bandpass.z1, chain.bandpass.z2, chain.lowpass.z1, chain.lowpass.z2) == state
    assert first == second
