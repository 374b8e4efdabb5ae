"""Data models for detected market events."""

from __future__ import annotations

from dataclasses import dataclass


class MalformedInputError(ValueError):
    """Raised when a detector receives structurally invalid input."""


@dataclass(frozen=True)
class JumpEvent:
    """A large bar-to-bar price change.

    Attributes:
        timestamp: Epoch seconds of the bar at which the move completed.
        symbol: The affected symbol.
        percent: Signed percentage change (positive jump, negative drop).
    """

    timestamp: int
    symbol: str
    percent: float

    @property
    def is_drop(self) -> bool:
        return self.percent < 0


@dataclass(frozen=True)
class RecurringEvent:
    """A detected periodicity in a symbol's price series.

    Attributes:
        symbol: The affected symbol.
        minutes_period: Length of one period in minutes.
        time_scale: Minutes between consecutive samples of the analysed series.
    """

    symbol: str
    minutes_period: int
    time_scale: float
