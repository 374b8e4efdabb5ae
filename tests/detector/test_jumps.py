"""Tests for jump and drop detection."""

import pytest

from stock_livedata.detector.jumps import jumps_in_series


class TestJumpsInSeries:
    """Tests for jumps_in_series."""

    def test_jump_and_drop(self) -> None:
        events = jumps_in_series("SAP", [0, 60, 120], [100.0, 150.0, 100.0], 10.0, 10.0)
        assert [e.timestamp for e in events] == [60, 120]
        assert events[0].percent == pytest.approx(50.0)
        assert events[1].percent == pytest.approx(-33.333333, rel=1e-6)
        assert events[1].is_drop
        assert all(e.symbol == "SAP" for e in events)

    def test_below_thresholds(self) -> None:
        assert jumps_in_series("SAP", [0, 60, 120], [100.0, 104.0, 100.0], 5.0, 5.0) == []

    def test_threshold_is_exclusive(self) -> None:
        assert jumps_in_series("SAP", [0, 60], [128.0, 160.0], 25.0, 25.0) == []

    def test_negative_down_threshold_uses_magnitude(self) -> None:
        events = jumps_in_series("SAP", [0, 60], [100.0, 80.0], 10.0, -10.0)
        assert len(events) == 1
        assert events[0].percent == pytest.approx(-20.0)

    def test_length_mismatch(self) -> None:
        assert jumps_in_series("SAP", [0, 60], [100.0, 150.0, 100.0], 10.0, 10.0) == []

    def test_non_positive_previous_price_skipped(self) -> None:
        assert jumps_in_series("SAP", [0, 60, 120], [0.0, 10.0, 10.0], 10.0, 10.0) == []

    def test_empty(self) -> None:
        assert jumps_in_series("SAP", [], [], 10.0, 10.0) == []
