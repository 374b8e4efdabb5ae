"""Storage layer - Database schema, repositories and the series store."""

from stock_livedata.storage.database import (
    DatabaseManager,
    StorageUnavailableError,
    create_async_db_engine,
    create_async_session_factory,
    init_async_db,
)
from stock_livedata.storage.directory import SymbolDirectory, SymbolMetadata, SymbolUnresolvedError
from stock_livedata.storage.models import Base
from stock_livedata.storage.repos import (
    ActiveSymbolRepository,
    BarDTO,
    BarRepository,
    JumpEventRepository,
    RecurringEventRepository,
    ReferenceDataRepository,
)
from stock_livedata.storage.series import PartialWriteError, Resolution, SeriesStore

__all__ = [
    "ActiveSymbolRepository",
    "BarDTO",
    "BarRepository",
    "Base",
    "DatabaseManager",
    "JumpEventRepository",
    "PartialWriteError",
    "RecurringEventRepository",
    "ReferenceDataRepository",
    "Resolution",
    "SeriesStore",
    "StorageUnavailableError",
    "SymbolDirectory",
    "SymbolMetadata",
    "SymbolUnresolvedError",
    "create_async_db_engine",
    "create_async_session_factory",
    "init_async_db",
]
