"""Tests for watch-list and reference data seeding."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.repos import ActiveSymbolRepository, ReferenceDataRepository
from stock_livedata.storage.seed import (
    ALIASES_FILE,
    DEFAULT_ACTIVE_SYMBOLS,
    EXCHANGES_FILE,
    STOCKS_FILE,
    ReferenceDataError,
    load_equities,
    seed_active_symbols,
    seed_reference_data,
)


@pytest.fixture
def reference_dir(tmp_path: Path) -> Path:
    """Directory with small reference files."""
    (tmp_path / STOCKS_FILE).write_text(
        json.dumps(
            {
                "data": [
                    {
                        "symbol": "SAP",
                        "name": "SAP SE",
                        "currency": "EUR",
                        "exchange": "FSX",
                        "mic_code": "XFRA",
                        "country": "Germany",
                        "type": "Common Stock",
                        "figi_code": None,
                    },
                    {"name": "missing symbol"},
                ]
            }
        )
    )
    (tmp_path / EXCHANGES_FILE).write_text(
        json.dumps({"data": [{"title": "Frankfurt Stock Exchange", "name": "FSX", "code": "XFRA", "timezone": "Europe/Berlin"}]})
    )
    (tmp_path / ALIASES_FILE).write_text(json.dumps({"data": [{"ysymbol": "SAP.DE", "name": "SAP SE"}]}))
    return tmp_path


class TestLoaders:
    """Tests for reference file parsing."""

    def test_load_equities_maps_type(self, reference_dir: Path) -> None:
        equities = load_equities(reference_dir / STOCKS_FILE)
        assert len(equities) == 1
        assert equities[0].asset_type == "Common Stock"
        assert equities[0].figi_code == ""

    def test_invalid_json(self, tmp_path: Path) -> None:
        path = tmp_path / STOCKS_FILE
        path.write_text("{not json")
        with pytest.raises(ReferenceDataError):
            load_equities(path)

    def test_missing_data_list(self, tmp_path: Path) -> None:
        path = tmp_path / STOCKS_FILE
        path.write_text(json.dumps({"data": "nope"}))
        with pytest.raises(ReferenceDataError):
            load_equities(path)


class TestSeeding:
    """Tests for seeding into the database."""

    @pytest.mark.asyncio
    async def test_seed_reference_data_once(self, db: DatabaseManager, reference_dir: Path) -> None:
        loaded = await seed_reference_data(db, reference_dir)
        assert loaded == {"equities": 1, "exchanges": 1, "aliases": 1}

        again = await seed_reference_data(db, reference_dir)
        assert again == {"equities": 0, "exchanges": 0, "aliases": 0}

        async with db.get_async_session() as session:
            assert await ReferenceDataRepository(session).counts() == {"equities": 1, "exchanges": 1, "aliases": 1}

    @pytest.mark.asyncio
    async def test_missing_files_are_skipped(self, db: DatabaseManager, tmp_path: Path) -> None:
        assert await seed_reference_data(db, tmp_path) == {"equities": 0, "exchanges": 0, "aliases": 0}

    @pytest.mark.asyncio
    async def test_seed_active_symbols_only_when_empty(self, db: DatabaseManager) -> None:
        assert await seed_active_symbols(db) == len(DEFAULT_ACTIVE_SYMBOLS)
        assert await seed_active_symbols(db) == 0

        async with db.get_async_session() as session:
            symbols = await ActiveSymbolRepository(session).list_symbols()
        assert "SAP" in symbols
        assert len(symbols) == len(DEFAULT_ACTIVE_SYMBOLS)

    @pytest.mark.asyncio
    async def test_seed_active_symbols_respects_existing(self, db: DatabaseManager) -> None:
        async with db.get_async_session() as session:
            await ActiveSymbolRepository(session).add(["NVDA"])
        assert await seed_active_symbols(db) == 0
