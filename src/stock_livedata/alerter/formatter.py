"""Notification message formatting.

This module turns detector results into short, human-readable
notifications (a title and a plain-text body).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Literal

from stock_livedata.detector.models import JumpEvent


@dataclass(frozen=True)
class FormattedAlert:
    """A notification ready for delivery."""

    title: str
    body: str
    symbol: str
    kind: str


def format_percent(value: float) -> str:
    """Format a signed percentage with two decimals."""
    return f"{value:+.2f}%"


def format_price(value: float, currency: str = "") -> str:
    """Format a price with an optional currency code."""
    return f"{value:,.2f} {currency}".strip()


def trend_direction(percent: float) -> str:
    return "rising" if percent > 0 else "falling"


class AlertFormatter:
    """Formats detector outputs into notifications.

    Supports two verbosity levels:
    - compact: one line per notification
    - detailed: additional context lines (exchange, time, events)
    """

    def __init__(self, verbosity: Literal["compact", "detailed"] = "detailed") -> None:
        self.verbosity = verbosity

    def format_trend(
        self,
        symbol: str,
        percent: float,
        *,
        last_price: float,
        currency: str = "",
        exchange: str = "",
        at: datetime | None = None,
    ) -> FormattedAlert:
        """Notification for an accelerating trend."""
        direction = trend_direction(percent)
        title = f"{symbol} {direction} {format_percent(percent)}"
        if self.verbosity == "compact":
            body = f"{symbol} is {direction} fast: {format_percent(percent)} over 5 minutes"
        else:
            lines = [
                f"Symbol: {symbol}",
                f"Trend: {direction}, accelerating",
                f"Change (5 min): {format_percent(percent)}",
                f"Last price: {format_price(last_price, currency)}",
            ]
            if exchange:
                lines.append(f"Exchange: {exchange}")
            lines.append(f"Time: {(at or datetime.now(UTC)).strftime('%Y-%m-%d %H:%M %Z')}")
            body = "\n".join(lines)
        return FormattedAlert(title=title, body=body, symbol=symbol, kind="trend")

    def format_session_outlier(
        self,
        symbol: str,
        *,
        sessions_compared: int,
        last_close: float | None = None,
        currency: str = "",
    ) -> FormattedAlert:
        """Notification for a trading session unlike its predecessors."""
        title = f"{symbol} unusual session"
        if self.verbosity == "compact":
            body = f"Today's {symbol} session deviates from the previous {sessions_compared}"
        else:
            lines = [
                f"Symbol: {symbol}",
                f"Today's price path deviates from the previous {sessions_compared} sessions",
            ]
            if last_close is not None:
                lines.append(f"Last close: {format_price(last_close, currency)}")
            body = "\n".join(lines)
        return FormattedAlert(title=title, body=body, symbol=symbol, kind="session_outlier")

    def format_jumps(self, symbol: str, events: list[JumpEvent]) -> FormattedAlert:
        """Digest of the jumps and drops found in one batch."""
        jumps = [e for e in events if not e.is_drop]
        drops = [e for e in events if e.is_drop]
        title = f"{symbol}: {len(jumps)} jumps, {len(drops)} drops"
        lines = [title]
        if self.verbosity == "detailed":
            for event in sorted(events, key=lambda e: e.timestamp):
                when = datetime.fromtimestamp(event.timestamp, tz=UTC).strftime("%Y-%m-%d %H:%M")
                lines.append(f"{when} UTC {format_percent(event.percent)}")
        return FormattedAlert(title=title, body="\n".join(lines), symbol=symbol, kind="jumps")
