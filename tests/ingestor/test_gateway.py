"""Tests for provider selection and the provider gateway."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from stock_livedata.config import ProviderSettings
from stock_livedata.ingestor.alphavantage import AlphaVantageProvider
from stock_livedata.ingestor.base import MarketDataProvider, ProviderUnconfiguredError
from stock_livedata.ingestor.gateway import ProviderGateway, select_provider
from stock_livedata.ingestor.models import RawBar
from stock_livedata.ingestor.polygon_io import PolygonProvider
from stock_livedata.ingestor.twelvedata import TwelveDataProvider


@pytest.fixture(autouse=True)
def _no_provider_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("TWELVEDATA_TOKEN", "ALPHAVANTAGE_TOKEN", "POLYGON_APIKEY"):
        monkeypatch.delenv(name, raising=False)


def provider_settings(**tokens: str) -> ProviderSettings:
    return ProviderSettings(_env_file=None, **tokens)


def make_bars(count: int) -> list[RawBar]:
    return [RawBar(open=100.0 + i, high=101.0 + i, low=99.0 + i, close=100.0 + i, timestamp=60 * i) for i in range(count)]


class TestSelectProvider:
    """Tests for select_provider."""

    def test_twelvedata_has_priority(self) -> None:
        settings = provider_settings(TWELVEDATA_TOKEN="a", ALPHAVANTAGE_TOKEN="b", POLYGON_APIKEY="c")
        assert isinstance(select_provider(settings), TwelveDataProvider)

    def test_alphavantage_before_polygon(self) -> None:
        settings = provider_settings(ALPHAVANTAGE_TOKEN="b", POLYGON_APIKEY="c")
        assert isinstance(select_provider(settings), AlphaVantageProvider)

    def test_polygon_only(self) -> None:
        assert isinstance(select_provider(provider_settings(POLYGON_APIKEY="c")), PolygonProvider)

    def test_empty_token_is_skipped(self) -> None:
        settings = provider_settings(TWELVEDATA_TOKEN="", POLYGON_APIKEY="c")
        assert isinstance(select_provider(settings), PolygonProvider)

    def test_none_configured(self) -> None:
        assert select_provider(provider_settings()) is None


class TestProviderGateway:
    """Tests for ProviderGateway."""

    @pytest.fixture
    def provider(self) -> MagicMock:
        mock = MagicMock(spec=MarketDataProvider)
        mock.name = "mock"
        mock.fetch_intraday = AsyncMock(return_value=make_bars(30))
        mock.fetch_daily = AsyncMock(return_value=make_bars(3))
        mock.aclose = AsyncMock()
        return mock

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self) -> None:
        gateway = ProviderGateway.from_settings(provider_settings())
        assert gateway.provider_name is None
        with pytest.raises(ProviderUnconfiguredError):
            await gateway.fetch_intraday("SAP")
        with pytest.raises(ProviderUnconfiguredError):
            await gateway.fetch_daily("SAP", 10)
        await gateway.aclose()

    @pytest.mark.asyncio
    async def test_intraday_is_enriched(self, provider: MagicMock) -> None:
        gateway = ProviderGateway(provider)
        end = datetime(2024, 1, 3, 10, 0, tzinfo=UTC)
        bars = await gateway.fetch_intraday("SAP", end=end)

        provider.fetch_intraday.assert_awaited_once_with("SAP", start=None, end=end, metadata=None)
        assert len(bars) == 30
        assert bars[-1].sma == pytest.approx(sum(100.0 + i for i in range(20, 30)) / 10)
        assert bars[-1].rsi == pytest.approx(100.0)

    @pytest.mark.asyncio
    async def test_daily_is_not_enriched(self, provider: MagicMock) -> None:
        gateway = ProviderGateway(provider)
        bars = await gateway.fetch_daily("SAP", 3)
        provider.fetch_daily.assert_awaited_once_with("SAP", 3, metadata=None)
        assert all(b.sma == 0.0 for b in bars)

    @pytest.mark.asyncio
    async def test_aclose_closes_provider(self, provider: MagicMock) -> None:
        gateway = ProviderGateway(provider)
        assert gateway.provider_name == "mock"
        await gateway.aclose()
        provider.aclose.assert_awaited_once()
