"""Polygon.io aggregates provider."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta
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

INTRADAY_LIMIT = 960
DAILY_LIMIT = 5000


class PolygonProvider(MarketDataProvider):
    """Client for https://api.polygon.io/v2/aggs."""

    name = "polygon"
    base_url = "https://api.polygon.io"

    def _parse(self, payload: Any, *, daily: bool) -> list[RawBar]:
        if not isinstance(payload, dict):
            raise ProviderResponseError("polygon returned a non-object payload")
        status = str(payload.get("status", "")).upper()
        if status == "ERROR":
            message = str(payload.get("error") or payload.get("message") or "unknown error")
            if "exceeded" in message.lower() or "limit" in message.lower():
                raise RateLimitedError(f"polygon: {message}")
            raise ProviderResponseError(f"polygon: {message}")

        bars: list[RawBar] = []
        for item in payload.get("results") or []:
            t = item.get("t")
            if t is None:
                raise ProviderResponseError("polygon: aggregate without timestamp")
            ts = int(t) // 1000
            bars.append(
                RawBar(
                    open=to_float(item.get("o")),
                    high=to_float(item.get("h")),
                    low=to_float(item.get("l")),
                    close=to_float(item.get("c")),
                    volume=to_float(item.get("v")),
                    timestamp=None if daily else ts,
                    trade_date=datetime.fromtimestamp(ts, tz=UTC).date() if daily else None,
                )
            )
        return bars

    async def _aggregates(self, symbol: str, timespan: str, start: str, end: str, limit: int) -> Any:
        return await self._get_json(
            f"{self.base_url}/v2/aggs/ticker/{symbol}/range/1/{timespan}/{start}/{end}",
            {"adjusted": "true", "sort": "asc", "limit": limit, "apiKey": self._api_key},
        )

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
        if start >= end:
            return []
        payload = await self._aggregates(
            symbol,
            "minute",
            str(int(start.timestamp() * 1000)),
            str(int(end.timestamp() * 1000)),
            INTRADAY_LIMIT,
        )
        return self._parse(payload, daily=False)

    async def fetch_daily(
        self,
        symbol: str,
        lookback_days: int,
        *,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        if lookback_days <= 0:
            return []
        today = datetime.now(UTC).date()
        payload = await self._aggregates(
            symbol,
            "day",
            (today - timedelta(days=lookback_days)).isoformat(),
            today.isoformat(),
            DAILY_LIMIT,
        )
        return self._parse(payload, daily=True)
