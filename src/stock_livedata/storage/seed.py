"""First-run seeding of the watch-list and reference data.

Reference files are JSON documents of the form ``{"data": [...]}``:

- ``stocks.json``: equities (symbol, name, currency, exchange, mic_code,
  country, type, figi_code, cfi_code, isin, cusip)
- ``exchanges.json``: exchanges (title, name, code, country, timezone)
- ``yahoo_symbols.json``: aliases (ysymbol, name)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.repos import (
    ActiveSymbolRepository,
    EquityDTO,
    ExchangeDTO,
    ReferenceDataRepository,
)

logger = logging.getLogger(__name__)

STOCKS_FILE = "stocks.json"
EXCHANGES_FILE = "exchanges.json"
ALIASES_FILE = "yahoo_symbols.json"

DEFAULT_ACTIVE_SYMBOLS: tuple[str, ...] = (
    "AAPL", "ADBE", "ADS", "AMD", "ARM", "ATOS", "BAB", "BAS", "BCS", "BE",
    "BIDU", "BNP", "BYD", "CHEMM", "CSIQ", "CWR", "DBK", "DELL", "DEZ", "DHER",
    "DSY", "DTE", "ENR", "EOAN", "F3C", "GOOGL", "GTLB", "HPE", "IBM", "IFX",
    "INTC", "KTN", "META", "MPW", "MRNA", "MSFT", "MU", "NET", "NOW", "NVDA",
    "OKTA", "OVH", "PAH3", "RHM", "RWE", "SAP", "SIE", "SMCI", "SSTK", "TKA",
    "VOW3", "VRNS", "WAF", "WBD", "YSN",
)  # fmt: skip


class ReferenceDataError(Exception):
    """Raised when a reference data file cannot be parsed."""


def _read_records(path: Path) -> list[dict[str, Any]]:
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ReferenceDataError(f"Cannot read {path}: {e}") from e
    records = payload.get("data") if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise ReferenceDataError(f"{path} has no 'data' list")
    return [r for r in records if isinstance(r, dict)]


def _text(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    return "" if value is None else str(value)


def load_equities(path: Path) -> list[EquityDTO]:
    return [
        EquityDTO(
            symbol=_text(r, "symbol"),
            name=_text(r, "name"),
            currency=_text(r, "currency"),
            exchange=_text(r, "exchange"),
            mic_code=_text(r, "mic_code"),
            country=_text(r, "country"),
            asset_type=_text(r, "type"),
            figi_code=_text(r, "figi_code"),
            cfi_code=_text(r, "cfi_code"),
            isin=_text(r, "isin"),
            cusip=_text(r, "cusip"),
        )
        for r in _read_records(path)
        if r.get("symbol")
    ]


def load_exchanges(path: Path) -> list[ExchangeDTO]:
    return [
        ExchangeDTO(
            code=_text(r, "code"),
            title=_text(r, "title"),
            name=_text(r, "name"),
            country=_text(r, "country"),
            timezone=_text(r, "timezone"),
        )
        for r in _read_records(path)
        if r.get("code")
    ]


def load_aliases(path: Path) -> list[tuple[str, str]]:
    return [(_text(r, "ysymbol"), _text(r, "name")) for r in _read_records(path) if r.get("ysymbol")]


async def seed_reference_data(db: DatabaseManager, directory: Path) -> dict[str, int]:
    """Load reference files into empty tables.

    Tables that already hold rows are left untouched; missing files are
    skipped with a warning.

    Returns:
        Rows loaded per table.
    """
    loaded = {"equities": 0, "exchanges": 0, "aliases": 0}
    async with db.get_async_session() as session:
        refs = ReferenceDataRepository(session)
        existing = await refs.counts()

        stocks = directory / STOCKS_FILE
        if existing["equities"] == 0 and stocks.exists():
            equities = load_equities(stocks)
            await refs.add_equities(equities)
            loaded["equities"] = len(equities)

        exchanges_path = directory / EXCHANGES_FILE
        if existing["exchanges"] == 0 and exchanges_path.exists():
            exchanges = load_exchanges(exchanges_path)
            await refs.add_exchanges(exchanges)
            loaded["exchanges"] = len(exchanges)

        aliases_path = directory / ALIASES_FILE
        if existing["aliases"] == 0 and aliases_path.exists():
            aliases = load_aliases(aliases_path)
            await refs.add_aliases(aliases)
            loaded["aliases"] = len(aliases)

    for name, path in ((STOCKS_FILE, stocks), (EXCHANGES_FILE, exchanges_path), (ALIASES_FILE, aliases_path)):
        if not path.exists():
            logger.warning("Reference file %s not found in %s", name, directory)
    logger.info(
        "Reference data loaded: %d equities, %d exchanges, %d aliases",
        loaded["equities"],
        loaded["exchanges"],
        loaded["aliases"],
    )
    return loaded


async def seed_active_symbols(db: DatabaseManager, symbols: tuple[str, ...] = DEFAULT_ACTIVE_SYMBOLS) -> int:
    """Fill the watch-list with the default symbols when it is empty."""
    async with db.get_async_session() as session:
        repo = ActiveSymbolRepository(session)
        if await repo.list_symbols():
            return 0
        added = await repo.add(list(symbols))
    logger.info("Seeded %d active symbols", added)
    return added
