"""Jump and drop detection on adjacent price samples."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from stock_livedata.detector.models import JumpEvent

logger = logging.getLogger(__name__)


def jumps_in_series(
    symbol: str,
    timestamps: Sequence[int],
    series: Sequence[float],
    threshold_up: float,
    threshold_down: float,
) -> list[JumpEvent]:
    """Find bar-to-bar moves larger than the thresholds.

    A rise above ``threshold_up`` percent yields a positive event, a fall
    whose magnitude exceeds ``|threshold_down|`` percent yields a negative
    one. The event carries the timestamp of the later sample.

    Returns an empty list when the inputs differ in length.
    """
    if len(timestamps) != len(series):
        logger.warning(
            "Skipping jump detection for %s: %d timestamps vs %d prices",
            symbol,
            len(timestamps),
            len(series),
        )
        return []

    down = abs(threshold_down)
    events: list[JumpEvent] = []
    for i in range(1, len(series)):
        prev = series[i - 1]
        if prev <= 0:
            continue
        pct = (series[i] - prev) / prev * 100.0
        if pct > threshold_up or (pct < 0 and -pct > down):
            events.append(JumpEvent(timestamp=int(timestamps[i]), symbol=symbol, percent=pct))
    return events
