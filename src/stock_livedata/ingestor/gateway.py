"""Provider gateway: one configured market-data source behind a fixed contract.

The provider is chosen once, at construction, from a prioritized list of
(credential, factory) pairs. The first configured credential wins for the
lifetime of the process.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

import httpx

from stock_livedata.ingestor.alphavantage import AlphaVantageProvider
from stock_livedata.ingestor.base import MarketDataProvider, ProviderUnconfiguredError
from stock_livedata.ingestor.indicators import enrich
from stock_livedata.ingestor.polygon_io import PolygonProvider
from stock_livedata.ingestor.twelvedata import TwelveDataProvider

if TYPE_CHECKING:
    from pydantic import SecretStr

    from stock_livedata.config import ProviderSettings
    from stock_livedata.ingestor.models import RawBar
    from stock_livedata.storage.directory import SymbolMetadata

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderChoice:
    """One entry of the provider priority list."""

    env_var: str
    credential: Callable[[ProviderSettings], SecretStr | None]
    factory: type[MarketDataProvider]


PROVIDER_PRIORITY: tuple[ProviderChoice, ...] = (
    ProviderChoice("TWELVEDATA_TOKEN", lambda s: s.twelvedata_token, TwelveDataProvider),
    ProviderChoice("ALPHAVANTAGE_TOKEN", lambda s: s.alphavantage_token, AlphaVantageProvider),
    ProviderChoice("POLYGON_APIKEY", lambda s: s.polygon_apikey, PolygonProvider),
)


def select_provider(
    settings: ProviderSettings,
    *,
    client: httpx.AsyncClient | None = None,
) -> MarketDataProvider | None:
    """Instantiate the highest-priority provider that has a credential."""
    for choice in PROVIDER_PRIORITY:
        secret = choice.credential(settings)
        if secret is None or not secret.get_secret_value():
            continue
        logger.info("Using market-data provider %s (%s)", choice.factory.name, choice.env_var)
        return choice.factory(
            secret.get_secret_value(),
            timeout=settings.timeout_seconds,
            requests_per_minute=settings.requests_per_minute,
            client=client,
        )
    logger.warning(
        "No market-data provider configured; set one of %s",
        ", ".join(c.env_var for c in PROVIDER_PRIORITY),
    )
    return None


class ProviderGateway:
    """Uniform fetch interface over the selected provider.

    Intraday bars are enriched with indicators. Failures propagate to the
    caller; the gateway does not retry.
    """

    def __init__(self, provider: MarketDataProvider | None, *, enrich_intraday: bool = True) -> None:
        self._provider = provider
        self._enrich_intraday = enrich_intraday

    @classmethod
    def from_settings(
        cls,
        settings: ProviderSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> ProviderGateway:
        return cls(select_provider(settings, client=client))

    @property
    def provider_name(self) -> str | None:
        return self._provider.name if self._provider else None

    def _require(self) -> MarketDataProvider:
        if self._provider is None:
            raise ProviderUnconfiguredError("No market-data provider credential is configured")
        return self._provider

    async def fetch_intraday(
        self,
        symbol: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        provider = self._require()
        bars = await provider.fetch_intraday(symbol, start=start, end=end, metadata=metadata)
        logger.debug("Fetched %d minute bars for %s from %s", len(bars), symbol, provider.name)
        return enrich(bars) if self._enrich_intraday else bars

    async def fetch_daily(
        self,
        symbol: str,
        lookback_days: int,
        *,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        provider = self._require()
        bars = await provider.fetch_daily(symbol, lookback_days, metadata=metadata)
        logger.debug("Fetched %d daily bars for %s from %s", len(bars), symbol, provider.name)
        return bars

    async def aclose(self) -> None:
        if self._provider is not None:
            await self._provider.aclose()
