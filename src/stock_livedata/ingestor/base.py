"""Shared plumbing for market-data providers: errors, throttling, HTTP."""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from stock_livedata.ingestor.models import RawBar
    from stock_livedata.storage.directory import SymbolMetadata

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
DEFAULT_REQUESTS_PER_MINUTE = 8.0


class FetchError(Exception):
    """Base error for provider fetches."""


class RateLimitedError(FetchError):
    """The provider rejected the request because of its rate limit."""


class ProviderUnconfiguredError(FetchError):
    """No provider credential is configured."""


class FetchTimeoutError(FetchError):
    """The provider did not answer within the timeout."""


class ProviderResponseError(FetchError):
    """The provider answered with an error or an unparseable payload."""


class RateLimiter:
    """Minimum-interval rate limiter for API requests."""

    def __init__(self, max_requests_per_minute: float = DEFAULT_REQUESTS_PER_MINUTE) -> None:
        """Initialize the rate limiter.

        Args:
            max_requests_per_minute: Maximum requests allowed per minute.
        """
        self._min_interval = 60.0 / max_requests_per_minute
        self._last_request_time: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a request slot is available."""
        async with self._lock:
            now = time.monotonic()
            if self._last_request_time is not None:
                elapsed = now - self._last_request_time
                if elapsed < self._min_interval:
                    await asyncio.sleep(self._min_interval - elapsed)
            self._last_request_time = time.monotonic()


def to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ProviderResponseError(f"Not a number: {value!r}") from e


class MarketDataProvider(ABC):
    """A market-data source reachable over HTTP with an API key."""

    name: str = "provider"
    base_url: str = ""

    def __init__(
        self,
        api_key: str,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        requests_per_minute: float = DEFAULT_REQUESTS_PER_MINUTE,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = api_key
        self._timeout = timeout
        self._limiter = RateLimiter(requests_per_minute)
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        """Throttled GET returning the decoded JSON body."""
        await self._limiter.acquire()
        try:
            resp = await self._get_client().get(url, params=params, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise FetchTimeoutError(f"{self.name} timed out after {self._timeout}s") from e
        except httpx.HTTPError as e:
            raise ProviderResponseError(f"{self.name} request failed: {e.__class__.__name__}") from e

        if resp.status_code == 429:
            raise RateLimitedError(f"{self.name} rate limit reached")
        if resp.status_code >= 400:
            raise ProviderResponseError(f"{self.name} returned HTTP {resp.status_code}")
        try:
            return resp.json()
        except ValueError as e:
            raise ProviderResponseError(f"{self.name} returned invalid JSON") from e

    @abstractmethod
    async def fetch_intraday(
        self,
        symbol: str,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        """Minute bars in [start, end], ascending."""

    @abstractmethod
    async def fetch_daily(
        self,
        symbol: str,
        lookback_days: int,
        *,
        metadata: SymbolMetadata | None = None,
    ) -> list[RawBar]:
        """Daily bars for the last ``lookback_days`` days, ascending."""
