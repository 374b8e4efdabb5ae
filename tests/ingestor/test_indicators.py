"""Tests for technical indicators."""

import numpy as np
import pytest

from stock_livedata.ingestor.indicators import ema, enrich, macd, rsi, sma, stochastic
from stock_livedata.ingestor.models import RawBar


class TestIndicators:
    """Tests for the indicator functions."""

    def test_sma(self) -> None:
        assert list(sma([1, 2, 3, 4, 5], 3)) == [0.0, 0.0, 2.0, 3.0, 4.0]

    def test_sma_short_input(self) -> None:
        assert list(sma([1, 2], 3)) == [0.0, 0.0]

    def test_ema_seeded_with_sma(self) -> None:
        assert list(ema([1, 2, 3, 4, 5], 3)) == pytest.approx([0.0, 0.0, 2.0, 3.0, 4.0])

    def test_rsi_only_gains(self) -> None:
        values = rsi(list(range(20)), 14)
        assert values[13] == 0.0
        assert values[14] == pytest.approx(100.0)
        assert values[-1] == pytest.approx(100.0)

    def test_rsi_balanced(self) -> None:
        series = [10.0, 11.0] * 15
        assert rsi(series, 14)[-1] == pytest.approx(50.0, abs=5.0)

    def test_stochastic_flat_window(self) -> None:
        flat = [5.0] * 20
        values = stochastic(flat, flat, flat, 14)
        assert values[12] == 0.0
        assert values[13] == 50.0

    def test_stochastic_at_high(self) -> None:
        close = np.arange(20, dtype=float)
        values = stochastic(close + 0.0, close - 1.0, close, 14)
        assert values[-1] == pytest.approx(100.0)

    def test_macd_short_series(self) -> None:
        line, signal, hist = macd(list(range(10)))
        assert not line.any() and not signal.any() and not hist.any()

    def test_macd_rising_series(self) -> None:
        line, signal, hist = macd([float(i) ** 1.5 for i in range(60)])
        assert line[-1] > 0
        assert line[24] == 0.0
        assert hist[-1] == pytest.approx(line[-1] - signal[-1])

    def test_enrich_preserves_prices(self) -> None:
        bars = [RawBar(open=float(i), high=float(i) + 1, low=float(i) - 1, close=float(i), timestamp=60 * i) for i in range(40)]
        enriched = enrich(bars)
        assert [b.close for b in enriched] == [b.close for b in bars]
        assert [b.timestamp for b in enriched] == [b.timestamp for b in bars]
        assert enriched[-1].sma == pytest.approx(np.mean([float(i) for i in range(30, 40)]))
        assert enriched[-1].macd != 0.0

    def test_enrich_empty(self) -> None:
        assert enrich([]) == []
