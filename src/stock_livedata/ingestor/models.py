"""Data models for provider output."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True)
class RawBar:
    """One OHLCV bar as returned by a provider.

    Attributes:
        open: Opening price.
        high: Highest price.
        low: Lowest price.
        close: Closing price.
        volume: Traded volume.
        timestamp: Epoch seconds (UTC) reported by the provider, if any.
        trade_date: Trading date for daily bars, if any.
        sma: Simple moving average of the close (10 bars).
        ema: Exponential moving average of the close (20 bars).
        rsi: Relative strength index (14 bars).
        stochastic: Stochastic oscillator %K (14 bars).
        macd: MACD line (12/26).
        macd_signal: MACD signal line (9).
        macd_hist: MACD histogram.
    """

    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    timestamp: int | None = None
    trade_date: date | None = None
    sma: float = 0.0
    ema: float = 0.0
    rsi: float = 0.0
    stochastic: float = 0.0
    macd: float = 0.0
    macd_signal: float = 0.0
    macd_hist: float = 0.0
