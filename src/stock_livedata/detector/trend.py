"""Trend acceleration detection on recent price samples."""

from __future__ import annotations

import logging
from collections.abc import Sequence

logger = logging.getLogger(__name__)

MIN_TREND_POINTS = 15
SHORT_WINDOW = 5
MEDIUM_WINDOW = 10
LONG_WINDOW = 15


def slope(series: Sequence[float], last_x: int) -> float:
    """Average per-step change across the last `last_x` adjacent pairs.

    The pairs are ``(s[i], s[i+1])`` for ``i`` in ``[len - 1 - last_x, len - 1)``,
    so the most recent pair ends at ``series[-1]``. Each contributes
    ``(s[i+1] - s[i]) / last_x``. When ``last_x == len`` only ``len - 1`` pairs
    exist and the window starts at 0.

    Returns 0.0 when ``last_x`` is 0, the series is empty, or ``last_x``
    exceeds the series length.
    """
    n = len(series)
    if last_x <= 0 or n == 0 or last_x > n:
        return 0.0
    end = n - 1
    start = max(end - last_x, 0)
    total = 0.0
    for i in range(start, end):
        total += (series[i + 1] - series[i]) / last_x
    return total


def increasing_slope(series: Sequence[float], threshold_up: float, threshold_down: float) -> float:
    """Detect an accelerating trend over the most recent samples.

    Slopes are taken over the last 5, 10 and 15 points. The trend counts
    when all three share a sign and the shorter windows are strictly steeper.

    Args:
        series: Price samples, oldest first.
        threshold_up: Minimum rise (%) over the last five samples.
        threshold_down: Minimum fall (%) over the last five samples; the sign
            is ignored.

    Returns:
        Percentage change from ``series[-6]`` to ``series[-1]`` when a trend
        is detected, otherwise 0.0.
    """
    if len(series) < MIN_TREND_POINTS:
        return 0.0

    s5 = slope(series, SHORT_WINDOW)
    s10 = slope(series, MEDIUM_WINDOW)
    s15 = slope(series, LONG_WINDOW)

    base = series[-1 - SHORT_WINDOW]
    if base == 0:
        return 0.0
    pct = (series[-1] - base) / base * 100.0

    if s5 < 0 and s10 < 0 and s15 < 0 and s5 < s10 < s15 and abs(pct) > abs(threshold_down):
        logger.debug("Falling trend: slopes=(%.4f, %.4f, %.4f) pct=%.2f", s5, s10, s15, pct)
        return pct
    if s5 > 0 and s10 > 0 and s15 > 0 and s5 > s10 > s15 and pct > threshold_up:
        logger.debug("Rising trend: slopes=(%.4f, %.4f, %.4f) pct=%.2f", s5, s10, s15, pct)
        return pct
    return 0.0
