"""Seasonality (periodicity) detection with a least-squares periodogram.

Every integer period in the requested band is scored directly: a sine and
cosine of that period are fitted together with a linear trend, and the
score is the share of the detrended variance the sinusoid explains. Local
maxima of the score whose value reaches ``threshold`` times the strongest
in-band peak are reported as candidate periods, measured in samples.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import numpy as np

from stock_livedata.detector.models import RecurringEvent

logger = logging.getLogger(__name__)

DEFAULT_MIN_PERIOD = 3
DEFAULT_MAX_PERIOD = 300
DEFAULT_THRESHOLD = 0.9
RESIDUAL_TOLERANCE = 1e-12


def smooth_series(series: Sequence[float], n: int) -> list[float]:
    """Average every ``n`` consecutive samples (a trailing partial block included)."""
    if n <= 1:
        return [float(v) for v in series]
    values = np.asarray(series, dtype=float)
    return [float(values[i : i + n].mean()) for i in range(0, len(values), n)]


def _period_scores(values: np.ndarray, periods: np.ndarray) -> np.ndarray:
    """Fraction of the detrended variance explained by a sinusoid of each period."""
    n = len(values)
    t = np.arange(n, dtype=float)
    trend = np.column_stack([np.ones(n), t / (n - 1)])
    coeffs, *_ = np.linalg.lstsq(trend, values, rcond=None)
    detrended = values - trend @ coeffs
    base = float(detrended @ detrended)
    centered = values - values.mean()
    scores = np.zeros(len(periods))
    # A purely linear series leaves nothing to explain.
    if base <= RESIDUAL_TOLERANCE * float(centered @ centered):
        return scores

    for j, period in enumerate(periods):
        phase = 2.0 * np.pi * t / period
        design = np.column_stack([trend, np.sin(phase), np.cos(phase)])
        fit, *_ = np.linalg.lstsq(design, values, rcond=None)
        rest = values - design @ fit
        scores[j] = 1.0 - float(rest @ rest) / base
    return scores


def seasonality(
    series: Sequence[float],
    min_period: int = DEFAULT_MIN_PERIOD,
    max_period: int = DEFAULT_MAX_PERIOD,
    threshold: float = DEFAULT_THRESHOLD,
    *,
    smooth: int = 0,
) -> list[int]:
    """Find candidate periods of a series.

    Args:
        series: Samples, oldest first.
        min_period: Shortest period (samples) to report.
        max_period: Longest period (samples) to report; capped at half the
            series length so at least two cycles are observed.
        threshold: Relative score (0, 1] a peak needs versus the strongest one.
        smooth: When > 1, block-average every ``smooth`` samples first. The
            returned periods are then measured in smoothed samples.

    Returns:
        Periods ordered by decreasing score, without duplicates.
    """
    values = np.asarray(smooth_series(series, smooth) if smooth > 1 else series, dtype=float)
    if values.ndim != 1 or len(values) < 4 or not np.all(np.isfinite(values)):
        return []
    if float(np.ptp(values)) == 0.0:
        return []

    max_period = min(max_period, len(values) // 2)
    if min_period < 2 or max_period < min_period:
        return []

    # One neighbour on each side so band edges can be local maxima.
    periods = np.arange(max(2, min_period - 1), max_period + 2)
    scores = _period_scores(values, periods)

    left = np.concatenate(([-np.inf], scores[:-1]))
    right = np.concatenate((scores[1:], [-np.inf]))
    in_band = (periods >= min_period) & (periods <= max_period)
    candidates = np.flatnonzero((scores > left) & (scores >= right) & in_band)
    if candidates.size == 0:
        return []

    strongest = float(scores[candidates].max())
    if strongest <= 0.0:
        return []
    ranked = sorted(candidates, key=lambda k: scores[k], reverse=True)
    result = [int(periods[k]) for k in ranked if scores[k] >= threshold * strongest]
    logger.debug("Seasonality candidates: %s", result)
    return result


def recurring_events_in_series(
    symbol: str,
    timestamps: Sequence[int],
    series: Sequence[float],
    threshold: float = DEFAULT_THRESHOLD,
    *,
    min_period: int = DEFAULT_MIN_PERIOD,
    max_period: int = DEFAULT_MAX_PERIOD,
) -> list[RecurringEvent]:
    """Express the periods of a timestamped series as recurring events.

    The sample spacing is taken from the first two timestamps (seconds).
    """
    if len(timestamps) != len(series) or len(series) < 2:
        return []
    time_scale = (timestamps[1] - timestamps[0]) / 60.0
    if time_scale <= 0:
        logger.warning("Non-increasing timestamps for %s; skipping seasonality", symbol)
        return []

    events: list[RecurringEvent] = []
    seen: set[int] = set()
    for period in seasonality(series, min_period, max_period, threshold):
        minutes = int(round(period * time_scale))
        if minutes in seen:
            continue
        seen.add(minutes)
        events.append(RecurringEvent(symbol=symbol, minutes_period=minutes, time_scale=time_scale))
    return events


def split_series_into_seasons(
    series: Sequence[float],
    minutes_per_period: int,
    minutes_per_step: int,
) -> list[list[float]]:
    """Cut a series into consecutive full seasons; the incomplete tail is dropped."""
    if minutes_per_step <= 0 or minutes_per_period < minutes_per_step:
        return []
    size = minutes_per_period // minutes_per_step
    return [
        [float(v) for v in series[i : i + size]] for i in range(0, len(series) - size + 1, size)
    ]
