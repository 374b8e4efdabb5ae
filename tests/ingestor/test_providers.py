"""Tests for the market-data provider clients."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, date, datetime, timedelta

import httpx
import pytest

from stock_livedata.ingestor.alphavantage import AlphaVantageProvider
from stock_livedata.ingestor.base import (
    FetchTimeoutError,
    ProviderResponseError,
    RateLimitedError,
    to_float,
)
from stock_livedata.ingestor.polygon_io import PolygonProvider
from stock_livedata.ingestor.twelvedata import TwelveDataProvider, intraday_output_size
from stock_livedata.storage.directory import SymbolMetadata

END = datetime(2024, 1, 3, 10, 0, tzinfo=UTC)


def make_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def ohlc(price: float) -> dict[str, str]:
    return {"open": str(price), "high": str(price + 1), "low": str(price - 1), "close": str(price), "volume": "100"}


# ============================================================================
# Shared plumbing
# ============================================================================


class TestBase:
    """Tests for shared provider plumbing."""

    def test_to_float(self) -> None:
        assert to_float("1.5") == 1.5
        assert to_float(None) == 0.0
        assert to_float("", default=2.0) == 2.0
        with pytest.raises(ProviderResponseError):
            to_float("abc")

    @pytest.mark.asyncio
    async def test_http_429_is_rate_limited(self) -> None:
        client = make_client(lambda request: httpx.Response(429))
        provider = TwelveDataProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(RateLimitedError):
            await provider.fetch_daily("SAP", 10)

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        client = make_client(lambda request: httpx.Response(503))
        provider = TwelveDataProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(ProviderResponseError):
            await provider.fetch_daily("SAP", 10)

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = TwelveDataProvider("key", client=make_client(handler), requests_per_minute=6000)
        with pytest.raises(FetchTimeoutError):
            await provider.fetch_daily("SAP", 10)

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        client = make_client(lambda request: httpx.Response(200, content=b"<html>"))
        provider = TwelveDataProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(ProviderResponseError):
            await provider.fetch_daily("SAP", 10)


# ============================================================================
# Twelve Data
# ============================================================================


class TestTwelveDataProvider:
    """Tests for TwelveDataProvider."""

    def test_output_size_same_day(self) -> None:
        assert intraday_output_size(END - timedelta(minutes=5), END) == 5

    def test_output_size_from_session_open(self) -> None:
        assert intraday_output_size(END - timedelta(days=1), END) == 180

    def test_output_size_capped(self) -> None:
        end = datetime(2024, 1, 3, 23, 59, tzinfo=UTC)
        assert intraday_output_size(datetime(2024, 1, 3, 0, 0, tzinfo=UTC), end) == 1439
        assert intraday_output_size(end - timedelta(days=10), end) <= 5000

    @pytest.mark.asyncio
    async def test_fetch_intraday(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "meta": {"symbol": "SAP"},
                    "values": [
                        {"datetime": "2024-01-03 09:59:00", **ohlc(102.0)},
                        {"datetime": "2024-01-03 09:58:00", **ohlc(101.0)},
                        {"datetime": "2024-01-03 09:50:00", **ohlc(100.0)},
                    ],
                    "status": "ok",
                },
            )

        provider = TwelveDataProvider("key", client=make_client(handler), requests_per_minute=6000)
        metadata = SymbolMetadata(symbol="SAP", exchange_code="XFRA")
        bars = await provider.fetch_intraday("SAP", start=END - timedelta(minutes=5), end=END, metadata=metadata)

        assert [b.close for b in bars] == [101.0, 102.0]
        assert bars[0].timestamp == int(datetime(2024, 1, 3, 9, 58, tzinfo=UTC).timestamp())
        params = seen[0].url.params
        assert seen[0].url.path == "/time_series"
        assert params["interval"] == "1min"
        assert params["outputsize"] == "5"
        assert params["mic_code"] == "XFRA"
        assert params["timezone"] == "UTC"

    @pytest.mark.asyncio
    async def test_empty_window_skips_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        provider = TwelveDataProvider("key", client=make_client(handler), requests_per_minute=6000)
        assert await provider.fetch_intraday("SAP", start=END, end=END) == []

    @pytest.mark.asyncio
    async def test_fetch_daily(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.params["interval"] == "1day"
            return httpx.Response(
                200,
                json={
                    "values": [
                        {"datetime": "2024-01-03", **ohlc(11.0)},
                        {"datetime": "2024-01-02", **ohlc(10.0)},
                    ],
                    "status": "ok",
                },
            )

        provider = TwelveDataProvider("key", client=make_client(handler), requests_per_minute=6000)
        bars = await provider.fetch_daily("SAP", 2)
        assert [b.trade_date for b in bars] == [date(2024, 1, 2), date(2024, 1, 3)]
        assert all(b.timestamp is None for b in bars)

    @pytest.mark.asyncio
    async def test_error_payloads(self) -> None:
        payloads = iter(
            [
                {"status": "error", "code": 429, "message": "You have run out of API credits"},
                {"status": "error", "code": 400, "message": "symbol not found"},
            ]
        )
        client = make_client(lambda request: httpx.Response(200, json=next(payloads)))
        provider = TwelveDataProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(RateLimitedError):
            await provider.fetch_daily("SAP", 5)
        with pytest.raises(ProviderResponseError):
            await provider.fetch_daily("SAP", 5)


# ============================================================================
# Alpha Vantage
# ============================================================================


class TestAlphaVantageProvider:
    """Tests for AlphaVantageProvider."""

    @staticmethod
    def av_bar(price: float) -> dict[str, str]:
        return {
            "1. open": str(price),
            "2. high": str(price + 1),
            "3. low": str(price - 1),
            "4. close": str(price),
            "5. volume": "100",
        }

    @pytest.mark.asyncio
    async def test_fetch_intraday_converts_time_zone(self) -> None:
        payload = {
            "Meta Data": {"1. Information": "Intraday", "6. Time Zone": "America/New_York"},
            "Time Series (1min)": {
                "2024-01-03 09:31:00": self.av_bar(101.0),
                "2024-01-03 09:30:00": self.av_bar(100.0),
            },
        }
        client = make_client(lambda request: httpx.Response(200, json=payload))
        provider = AlphaVantageProvider("key", client=client, requests_per_minute=6000)
        bars = await provider.fetch_intraday("IBM")

        assert [b.close for b in bars] == [100.0, 101.0]
        assert bars[0].timestamp == int(datetime(2024, 1, 3, 14, 30, tzinfo=UTC).timestamp())

    @pytest.mark.asyncio
    async def test_fetch_daily_limits_lookback(self) -> None:
        today = datetime.now(UTC).date()
        payload = {
            "Time Series (Daily)": {
                (today - timedelta(days=1)).isoformat(): self.av_bar(11.0),
                (today - timedelta(days=2)).isoformat(): self.av_bar(10.0),
                (today - timedelta(days=400)).isoformat(): self.av_bar(5.0),
            }
        }
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=payload)

        provider = AlphaVantageProvider("key", client=make_client(handler), requests_per_minute=6000)
        bars = await provider.fetch_daily("IBM", 30)

        assert [b.close for b in bars] == [10.0, 11.0]
        assert seen[0].url.params["outputsize"] == "compact"
        assert seen[0].url.params["function"] == "TIME_SERIES_DAILY"

    @pytest.mark.asyncio
    async def test_note_is_rate_limited(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"Note": "API call frequency exceeded"}))
        provider = AlphaVantageProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(RateLimitedError):
            await provider.fetch_intraday("IBM")

    @pytest.mark.asyncio
    async def test_error_message(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"Error Message": "Invalid API call"}))
        provider = AlphaVantageProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(ProviderResponseError):
            await provider.fetch_daily("IBM", 5)


# ============================================================================
# Polygon.io
# ============================================================================


class TestPolygonProvider:
    """Tests for PolygonProvider."""

    @pytest.mark.asyncio
    async def test_fetch_intraday(self) -> None:
        t0 = int(datetime(2024, 1, 3, 9, 58, tzinfo=UTC).timestamp())
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [
                        {"o": 1, "h": 2, "l": 0.5, "c": 1.5, "v": 10, "t": t0 * 1000},
                        {"o": 1.5, "h": 2, "l": 1, "c": 1.8, "v": 12, "t": (t0 + 60) * 1000},
                    ],
                },
            )

        provider = PolygonProvider("key", client=make_client(handler), requests_per_minute=6000)
        bars = await provider.fetch_intraday("AAPL", start=END - timedelta(minutes=5), end=END)

        assert [b.timestamp for b in bars] == [t0, t0 + 60]
        assert "/v2/aggs/ticker/AAPL/range/1/minute/" in seen[0].url.path
        assert seen[0].url.params["sort"] == "asc"

    @pytest.mark.asyncio
    async def test_fetch_daily(self) -> None:
        t0 = int(datetime(2024, 1, 2, 5, 0, tzinfo=UTC).timestamp())
        client = make_client(
            lambda request: httpx.Response(
                200, json={"status": "OK", "results": [{"o": 1, "h": 1, "l": 1, "c": 1, "v": 1, "t": t0 * 1000}]}
            )
        )
        provider = PolygonProvider("key", client=client, requests_per_minute=6000)
        bars = await provider.fetch_daily("AAPL", 5)
        assert bars[0].trade_date == date(2024, 1, 2)
        assert bars[0].timestamp is None

    @pytest.mark.asyncio
    async def test_limit_error(self) -> None:
        client = make_client(
            lambda request: httpx.Response(
                200, json={"status": "ERROR", "error": "You've exceeded the maximum requests per minute"}
            )
        )
        provider = PolygonProvider("key", client=client, requests_per_minute=6000)
        with pytest.raises(RateLimitedError):
            await provider.fetch_daily("AAPL", 5)

    @pytest.mark.asyncio
    async def test_missing_results_is_empty(self) -> None:
        client = make_client(lambda request: httpx.Response(200, json={"status": "OK", "resultsCount": 0}))
        provider = PolygonProvider("key", client=client, requests_per_minute=6000)
        assert await provider.fetch_daily("AAPL", 5) == []
