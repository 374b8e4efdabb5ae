"""Pytest configuration and fixtures."""

from __future__ import annotations

import pytest

from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.directory import SymbolMetadata


@pytest.fixture
def sample_symbol() -> str:
    """Sample symbol for testing."""
    return "SAP"


@pytest.fixture
def sample_metadata(sample_symbol: str) -> SymbolMetadata:
    """Resolved metadata of the sample symbol."""
    return SymbolMetadata(
        symbol=sample_symbol,
        currency="EUR",
        exchange_title="Frankfurt Stock Exchange",
        exchange_code="XFRA",
        exchange_timezone="Europe/Berlin",
        asset_type="Common Stock",
    )


@pytest.fixture
async def db():
    """In-memory SQLite database manager with the schema created."""
    manager = DatabaseManager("sqlite+aiosqlite:///:memory:")
    await manager.init_schema_async()
    yield manager
    await manager.dispose_async()
