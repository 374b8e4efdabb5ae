"""Tests for changepoint detection."""

import numpy as np
import pytest

from stock_livedata.detector.changepoint import ChangepointConfig, changepoints


@pytest.fixture
def step_series() -> list[float]:
    """Two regimes of 50 samples with a mean shift at index 50."""
    rng = np.random.default_rng(0)
    return list(np.concatenate([rng.normal(0.0, 1.0, 50), rng.normal(5.0, 1.0, 50)]))


class TestChangepoints:
    """Tests for changepoints."""

    def test_detects_mean_shift(self, step_series: list[float]) -> None:
        found = changepoints(step_series)
        assert any(abs(c - 50) <= 3 for c in found)
        assert len(found) <= 3

    def test_indices_ascending(self, step_series: list[float]) -> None:
        found = changepoints(step_series)
        assert found == sorted(found)

    def test_constant_series(self) -> None:
        assert changepoints([3.0] * 100) == []

    def test_too_short(self) -> None:
        assert changepoints([1.0, 5.0, 1.0]) == []

    def test_non_finite(self, step_series: list[float]) -> None:
        step_series[10] = float("inf")
        assert changepoints(step_series) == []

    def test_smoothing_maps_back_to_original_indices(self) -> None:
        rng = np.random.default_rng(1)
        series = list(np.concatenate([rng.normal(0.0, 1.0, 100), rng.normal(6.0, 1.0, 100)]))
        found = changepoints(series, smooth=2)
        assert all(c % 2 == 0 for c in found)
        assert any(abs(c - 100) <= 6 for c in found)

    def test_min_segment_limits_spacing(self, step_series: list[float]) -> None:
        found = changepoints(step_series, config=ChangepointConfig(min_segment=10))
        assert all(b - a >= 10 for a, b in zip(found, found[1:]))
