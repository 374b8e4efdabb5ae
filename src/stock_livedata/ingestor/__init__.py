"""Data ingestion layer - Market-data providers and the provider gateway."""

from stock_livedata.ingestor.base import (
    FetchError,
    FetchTimeoutError,
    MarketDataProvider,
    ProviderResponseError,
    ProviderUnconfiguredError,
    RateLimitedError,
)
from stock_livedata.ingestor.gateway import ProviderGateway, select_provider
from stock_livedata.ingestor.models import RawBar

__all__ = [
    "FetchError",
    "FetchTimeoutError",
    "MarketDataProvider",
    "ProviderGateway",
    "ProviderResponseError",
    "ProviderUnconfiguredError",
    "RateLimitedError",
    "RawBar",
    "select_provider",
]
