"""Twelve Data time-series provider."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING, Any

from stock_livedata.ingestor.base import (
    MarketDataProvider,
    ProviderResponseError,
    RateLimitedError,
    to_float,
)
from stock_livedata.ingestor.models import RawBar

if TYPE_CHECKING:
    from stock_livedata.storage.directory import SymbolMetadata

logger = logging.getLogger(__name__)

MAX_OUTPUT_SIZE = 5000
SESSION_OPEN = time(7, 0)


def intraday_output_size(start: datetime, end: datetime) -> int:
    """Number of minute bars to request for a window.

    When the window starts on an earlier day only today's session (from
    07:00) is requested.
    """
    if start.date() != end.date():
        start = datetime.combine(end.date(), SESSION_OPEN, tzinfo=end.tzinfo)
    return min(abs(round((end - start).total_seconds() / 60.0)), MAX_OUTPUT_SIZE)


class TwelveDataProvider(MarketDataProvider):
    """Client for https://api.twelvedata.com/time_series."""

    name = "twelvedata"
    base_url = "https://api.twelvedata.com"

    def _parse(self, payload: Any, *, daily: bool) -> list[RawBar]:
        if not isinstance(payload, dict):
            raise ProviderResponseError("twelvedata returned a non-object payload")
        if payload.get("status") == "error":
            message = str(payload.get("message", ""))
            if payload.get("code") == 429 or "limit" in message.lower():
                raise RateLimitedError(f"twelvedata: {message}")
            raise ProviderResponseError(f"twelvedata: {message or 'unknown error'}")

        bars: list[RawBar] = []
        for value in payload.get("values") or []:
            stamp = str(value.get("datetime", ""))
            try:
                if daily:
                    day = date.fromisoformat(stamp[:10])
                    ts = None
                else:
                    day = None
                    ts = int(datetime.fromisoformat(stamp).replace(tzinfo=UTC).timestamp())
            except ValueError as e:
                raise ProviderResponseError(f"twelvedata: bad datetime {stamp!r}") from e
            bars.append(
                RawBar(
                    open=to_float(value.get("open")),
                    high=to_float(value.get("high")),
                    low=to_float(value.get("low")),
                    close=to_float(value.get("close")),
                    volume=to_float(value.get("volume")),
                    timestamp=ts,
                    trade_date=day,
                )
            )
        # Values arrive newest first.
        bars.reverse()
        return bars

    def _params(self, symbol: str, interval: str, outputsize: int, metadata: SymbolMetadata | None) -> dict[str, Any]:
        params: dict[str, Any] = {
            "symbol": symbol,
            "interval": interval,
            "outputsize": outputsize,
            "timezone": "UTC",
            "apikey": self._api_key,
        }
        if metadata is not None and metadata.exchange_code:
            params["mic_code"] = metadata.exchange_code
        return params

    async def fetch_intraday(
        self,
        symbol: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        end = end or datetime.now(UTC)
        start = start or end - timedelta(days=1)
        outputsize = intraday_output_size(start, end)
        if outputsize == 0:
            logger.debug("No new minute data expected for %s", symbol)
            return []
        payload = await self._get_json(
            f"{self.base_url}/time_series", self._params(symbol, "1min", outputsize, metadata)
        )
        start_ts = int(start.timestamp())
        return [b for b in self._parse(payload, daily=False) if b.timestamp is None or b.timestamp >= start_ts]

    async def fetch_daily(
        self,
        symbol: str,
        lookback_days: int,
        *,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        if lookback_days <= 0:
            return []
        payload = await self._get_json(
            f"{self.base_url}/time_series",
            self._params(symbol, "1day", min(lookback_days, MAX_OUTPUT_SIZE), metadata),
        )
        return self._parse(payload, daily=True)
