"""Alpha Vantage time-series provider."""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, timedelta
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

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

COMPACT_DAYS = 100
INTRADAY_KEY = "Time Series (1min)"
DAILY_KEY = "Time Series (Daily)"


def _zone(payload: dict[str, Any]) -> ZoneInfo:
    meta = payload.get("Meta Data") or {}
    for key, value in meta.items():
        if "Time Zone" in key:
            try:
                return ZoneInfo(str(value))
            except (ZoneInfoNotFoundError, ValueError):
                logger.warning("Unknown Alpha Vantage time zone %r; assuming UTC", value)
                break
    return ZoneInfo("UTC")


def _bar(values: dict[str, Any], *, timestamp: int | None = None, trade_date: date | None = None) -> RawBar:
    return RawBar(
        open=to_float(values.get("1. open")),
        high=to_float(values.get("2. high")),
        low=to_float(values.get("3. low")),
        close=to_float(values.get("4. close")),
        volume=to_float(values.get("5. volume")),
        timestamp=timestamp,
        trade_date=trade_date,
    )


class AlphaVantageProvider(MarketDataProvider):
    """Client for https://www.alphavantage.co/query."""

    name = "alphavantage"
    base_url = "https://www.alphavantage.co"

    def _check(self, payload: Any, series_key: str) -> dict[str, Any]:
        if not isinstance(payload, dict):
            raise ProviderResponseError("alphavantage returned a non-object payload")
        if "Note" in payload or "Information" in payload:
            raise RateLimitedError(f"alphavantage: {payload.get('Note') or payload.get('Information')}")
        if "Error Message" in payload:
            raise ProviderResponseError(f"alphavantage: {payload['Error Message']}")
        series = payload.get(series_key)
        if series is None:
            return {}
        if not isinstance(series, dict):
            raise ProviderResponseError(f"alphavantage: malformed {series_key!r}")
        return series

    async def fetch_intraday(
        self,
        symbol: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        payload = await self._get_json(
            f"{self.base_url}/query",
            {
                "function": "TIME_SERIES_INTRADAY",
                "symbol": symbol,
                "interval": "1min",
                "outputsize": "compact",
                "apikey": self._api_key,
            },
        )
        series = self._check(payload, INTRADAY_KEY)
        zone = _zone(payload)
        start_ts = int(start.timestamp()) if start else None
        end_ts = int(end.timestamp()) if end else None

        bars: list[RawBar] = []
        for stamp, values in series.items():
            try:
                local = datetime.fromisoformat(stamp).replace(tzinfo=zone)
            except ValueError as e:
                raise ProviderResponseError(f"alphavantage: bad datetime {stamp!r}") from e
            ts = int(local.astimezone(UTC).timestamp())
            if (start_ts is not None and ts < start_ts) or (end_ts is not None and ts > end_ts):
                continue
            bars.append(_bar(values, timestamp=ts))
        bars.sort(key=lambda b: b.timestamp or 0)
        return bars

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
            f"{self.base_url}/query",
            {
                "function": "TIME_SERIES_DAILY",
                "symbol": symbol,
                "outputsize": "compact" if lookback_days <= COMPACT_DAYS else "full",
                "apikey": self._api_key,
            },
        )
        series = self._check(payload, DAILY_KEY)
        first_day = datetime.now(UTC).date() - timedelta(days=lookback_days)

        bars: list[RawBar] = []
        for stamp, values in series.items():
            try:
                day = date.fromisoformat(stamp[:10])
            except ValueError as e:
                raise ProviderResponseError(f"alphavantage: bad date {stamp!r}") from e
            if day >= first_day:
                bars.append(_bar(values, trade_date=day))
        bars.sort(key=lambda b: b.trade_date or date.min)
        return bars
