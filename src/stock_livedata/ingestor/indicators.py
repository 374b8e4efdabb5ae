"""Technical indicators attached to minute bars before storage.

All functions return an array aligned with the input; positions before an
indicator has enough history hold 0.0.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import replace

import numpy as np

from stock_livedata.ingestor.models import RawBar

SMA_PERIOD = 10
EMA_PERIOD = 20
RSI_PERIOD = 14
STOCHASTIC_PERIOD = 14
MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9


def sma(values: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    x = np.asarray(values, dtype=float)
    out = np.zeros(len(x))
    if period <= 0 or len(x) < period:
        return out
    csum = np.cumsum(np.insert(x, 0, 0.0))
    out[period - 1 :] = (csum[period:] - csum[:-period]) / period
    return out


def ema(values: Sequence[float] | np.ndarray, period: int) -> np.ndarray:
    """Exponential moving average seeded with the SMA of the first window."""
    x = np.asarray(values, dtype=float)
    out = np.zeros(len(x))
    if period <= 0 or len(x) < period:
        return out
    alpha = 2.0 / (period + 1.0)
    out[period - 1] = x[:period].mean()
    for i in range(period, len(x)):
        out[i] = alpha * x[i] + (1.0 - alpha) * out[i - 1]
    return out


def rsi(values: Sequence[float] | np.ndarray, period: int = RSI_PERIOD) -> np.ndarray:
    """Relative strength index with Wilder smoothing."""
    x = np.asarray(values, dtype=float)
    out = np.zeros(len(x))
    if period <= 0 or len(x) <= period:
        return out
    delta = np.diff(x)
    gains = np.clip(delta, 0.0, None)
    losses = np.clip(-delta, 0.0, None)
    avg_gain = gains[:period].mean()
    avg_loss = losses[:period].mean()
    for i in range(period, len(x)):
        if i > period:
            avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = 100.0 if avg_loss == 0 else 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    return out


def stochastic(
    high: Sequence[float] | np.ndarray,
    low: Sequence[float] | np.ndarray,
    close: Sequence[float] | np.ndarray,
    period: int = STOCHASTIC_PERIOD,
) -> np.ndarray:
    """Stochastic oscillator %K; a flat window reads 50."""
    h = np.asarray(high, dtype=float)
    lo = np.asarray(low, dtype=float)
    c = np.asarray(close, dtype=float)
    out = np.zeros(len(c))
    for i in range(period - 1, len(c)):
        hh = h[i - period + 1 : i + 1].max()
        ll = lo[i - period + 1 : i + 1].min()
        out[i] = 50.0 if hh == ll else (c[i] - ll) / (hh - ll) * 100.0
    return out


def macd(
    values: Sequence[float] | np.ndarray,
    fast: int = MACD_FAST,
    slow: int = MACD_SLOW,
    signal: int = MACD_SIGNAL,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """MACD line, signal line and histogram."""
    x = np.asarray(values, dtype=float)
    n = len(x)
    line = np.zeros(n)
    sig = np.zeros(n)
    hist = np.zeros(n)
    if n < slow:
        return line, sig, hist
    line[slow - 1 :] = (ema(x, fast) - ema(x, slow))[slow - 1 :]
    sig_tail = ema(line[slow - 1 :], signal)
    sig[slow - 1 :] = sig_tail
    ready = slow - 1 + signal - 1
    if n > ready:
        hist[ready:] = line[ready:] - sig[ready:]
    return line, sig, hist


def enrich(bars: Sequence[RawBar]) -> list[RawBar]:
    """Return copies of the bars with all indicator fields filled in."""
    if not bars:
        return []
    close = np.array([b.close for b in bars])
    high = np.array([b.high for b in bars])
    low = np.array([b.low for b in bars])
    sma_v = sma(close, SMA_PERIOD)
    ema_v = ema(close, EMA_PERIOD)
    rsi_v = rsi(close, RSI_PERIOD)
    stoch_v = stochastic(high, low, close, STOCHASTIC_PERIOD)
    macd_v, signal_v, hist_v = macd(close)
    return [
        replace(
            bar,
            sma=float(sma_v[i]),
            ema=float(ema_v[i]),
            rsi=float(rsi_v[i]),
            stochastic=float(stoch_v[i]),
            macd=float(macd_v[i]),
            macd_signal=float(signal_v[i]),
            macd_hist=float(hist_v[i]),
        )
        for i, bar in enumerate(bars)
    ]
