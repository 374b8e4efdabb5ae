"""Symbol/exchange directory.

Resolves a symbol to the listing used for data fetches and storage, using
the equity and exchange reference tables.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.repos import ActiveSymbolRepository, EquityDTO, ReferenceDataRepository

logger = logging.getLogger(__name__)

DEFAULT_QUERY_WINDOW = timedelta(days=90)


class SymbolUnresolvedError(Exception):
    """Raised when a symbol has no equity record in the directory."""


def _default_end() -> datetime:
    return datetime.now(UTC)


def _default_start() -> datetime:
    return datetime.now(UTC) - DEFAULT_QUERY_WINDOW


@dataclass
class SymbolMetadata:
    """Resolved listing of a symbol.

    Attributes:
        symbol: The listing symbol.
        currency: Trading currency (ISO code).
        exchange_title: Human readable exchange name.
        exchange_code: Exchange MIC code.
        exchange_timezone: IANA time zone of the exchange.
        asset_type: Instrument type, e.g. "Common Stock".
        query_start: Start of the default historical query window.
        query_end: End of the default historical query window.
    """

    symbol: str
    currency: str = ""
    exchange_title: str = ""
    exchange_code: str = ""
    exchange_timezone: str = ""
    asset_type: str = ""
    query_start: datetime = field(default_factory=_default_start)
    query_end: datetime = field(default_factory=_default_end)

    @property
    def resolved(self) -> bool:
        """True when the metadata came from an equity record."""
        return bool(self.currency or self.exchange_code or self.exchange_title or self.asset_type)


def choose_listing(equities: list[EquityDTO], preferred_exchange_code: str) -> EquityDTO | None:
    """Pick one listing out of all listings of a symbol.

    Order: the preferred exchange, then the first EUR listing, then the
    first USD listing, then the first listing.
    """
    if not equities:
        return None
    for tier in (
        lambda e: e.mic_code == preferred_exchange_code,
        lambda e: e.currency == "EUR",
        lambda e: e.currency == "USD",
    ):
        for equity in equities:
            if tier(equity):
                return equity
    return equities[0]


class SymbolDirectory:
    """Read-only lookups over the reference data."""

    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def match_alias(self, stock_symbol: str) -> str:
        """Map an alternate spelling onto a known symbol.

        Order: the first active symbol containing the input, then the
        equity whose name matches the alias description, else the input.
        """
        async with self._db.get_async_session() as session:
            active = await ActiveSymbolRepository(session).find_containing(stock_symbol)
            if active:
                return active
            refs = ReferenceDataRepository(session)
            name = await refs.alias_name(stock_symbol)
            if name:
                equity = await refs.equity_by_name(name)
                if equity:
                    return equity.symbol
        return stock_symbol

    async def resolve(self, stock_symbol: str, preferred_exchange_code: str) -> SymbolMetadata:
        """Resolve a symbol to its metadata.

        When no equity is stored under the symbol, its alias is tried. An
        unresolvable symbol yields metadata carrying only the symbol.
        """
        async with self._db.get_async_session() as session:
            refs = ReferenceDataRepository(session)
            equities = await refs.equities_by_symbol(stock_symbol)
        symbol = stock_symbol
        if not equities:
            alias = await self.match_alias(stock_symbol)
            if alias != stock_symbol:
                async with self._db.get_async_session() as session:
                    equities = await ReferenceDataRepository(session).equities_by_symbol(alias)
                if equities:
                    symbol = alias

        listing = choose_listing(equities, preferred_exchange_code)
        if listing is None:
            logger.warning("No equity record for %s; using bare symbol", stock_symbol)
            return SymbolMetadata(symbol=stock_symbol)

        metadata = SymbolMetadata(
            symbol=symbol,
            currency=listing.currency,
            exchange_title=listing.exchange,
            exchange_code=listing.mic_code,
            asset_type=listing.asset_type,
        )
        if listing.mic_code:
            async with self._db.get_async_session() as session:
                exchange = await ReferenceDataRepository(session).exchange_by_code(listing.mic_code)
            if exchange is not None:
                metadata.exchange_title = exchange.title or metadata.exchange_title
                metadata.exchange_timezone = exchange.timezone
        return metadata

    async def require(self, stock_symbol: str, preferred_exchange_code: str) -> SymbolMetadata:
        """Like resolve, but raise SymbolUnresolvedError for unknown symbols."""
        metadata = await self.resolve(stock_symbol, preferred_exchange_code)
        if not metadata.resolved:
            raise SymbolUnresolvedError(f"Unknown symbol: {stock_symbol}")
        return metadata
