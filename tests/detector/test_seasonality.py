"""Tests for seasonality detection."""

import numpy as np
import pytest

from stock_livedata.detector.seasonality import (
    recurring_events_in_series,
    seasonality,
    smooth_series,
    split_series_into_seasons,
)


def sine(period: int, length: int, amplitude: float = 1.0, offset: float = 100.0) -> list[float]:
    t = np.arange(length)
    return list(offset + amplitude * np.sin(2 * np.pi * t / period))


class TestSeasonality:
    """Tests for seasonality."""

    def test_detects_sine_period(self) -> None:
        periods = seasonality(sine(20, 400))
        assert periods
        assert abs(periods[0] - 20) <= 1

    def test_trend_does_not_hide_period(self) -> None:
        series = [v + 0.05 * i for i, v in enumerate(sine(24, 480))]
        periods = seasonality(series)
        assert abs(periods[0] - 24) <= 1

    @pytest.mark.parametrize(("period", "length"), [(100, 300), (90, 200), (150, 300), (37, 500)])
    def test_long_periods_within_one_sample(self, period: int, length: int) -> None:
        periods = seasonality(sine(period, length))
        assert periods
        assert abs(periods[0] - period) <= 1

    def test_noisy_period(self) -> None:
        rng = np.random.default_rng(7)
        series = np.asarray(sine(60, 600, amplitude=2.0)) + rng.normal(0.0, 0.3, 600)
        periods = seasonality(list(series))
        assert abs(periods[0] - 60) <= 1

    def test_linear_series_has_no_period(self) -> None:
        assert seasonality([0.5 * i for i in range(200)]) == []

    def test_constant_series(self) -> None:
        assert seasonality([5.0] * 100) == []

    def test_short_series(self) -> None:
        assert seasonality([1.0, 2.0, 3.0]) == []

    def test_period_outside_band(self) -> None:
        assert 20 not in seasonality(sine(20, 400), min_period=30, max_period=100)

    def test_smoothing_measures_in_blocks(self) -> None:
        periods = seasonality(sine(40, 800), smooth=2)
        assert abs(periods[0] - 20) <= 1

    def test_non_finite_values(self) -> None:
        series = sine(20, 100)
        series[5] = float("nan")
        assert seasonality(series) == []


class TestRecurringEvents:
    """Tests for recurring_events_in_series."""

    def test_minutes_scale_with_spacing(self) -> None:
        series = sine(20, 400)
        timestamps = [i * 300 for i in range(400)]
        events = recurring_events_in_series("SAP", timestamps, series)
        assert events
        assert events[0].time_scale == pytest.approx(5.0)
        assert abs(events[0].minutes_period - 100) <= 5
        assert events[0].symbol == "SAP"

    def test_length_mismatch(self) -> None:
        assert recurring_events_in_series("SAP", [0, 60], [1.0, 2.0, 3.0]) == []

    def test_non_increasing_timestamps(self) -> None:
        assert recurring_events_in_series("SAP", [60] * 100, sine(20, 100)) == []


class TestHelpers:
    """Tests for smooth_series and split_series_into_seasons."""

    def test_smooth_series(self) -> None:
        assert smooth_series([1.0, 3.0, 5.0, 7.0, 9.0], 2) == [2.0, 6.0, 9.0]

    def test_smooth_series_identity(self) -> None:
        assert smooth_series([1, 2, 3], 1) == [1.0, 2.0, 3.0]

    def test_split_drops_incomplete_tail(self) -> None:
        seasons = split_series_into_seasons(list(range(10)), 6, 2)
        assert seasons == [[0.0, 1.0, 2.0], [3.0, 4.0, 5.0], [6.0, 7.0, 8.0]]

    def test_split_invalid_step(self) -> None:
        assert split_series_into_seasons([1.0, 2.0], 60, 0) == []
