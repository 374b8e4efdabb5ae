"""Repository pattern implementations for data access.

This module provides data access abstractions for price bars, detected
events, the active watch-list and symbol/exchange reference data.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from stock_livedata.detector.models import JumpEvent, RecurringEvent
from stock_livedata.storage.models import (
    ActiveSymbolModel,
    BarModel,
    DailyBarModel,
    DropEventModel,
    EquityModel,
    ExchangeModel,
    JumpEventModel,
    RecurringEventModel,
    SymbolAliasModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = logging.getLogger(__name__)


def _insert_ignore(
    session: AsyncSession,
    model: type[Any],
    rows: Sequence[dict[str, Any]],
    *,
    index_elements: Sequence[str],
    returning: Any | None = None,
) -> Any:
    """Build an INSERT ... ON CONFLICT DO NOTHING for the session's dialect."""
    insert = pg_insert if session.get_bind().dialect.name == "postgresql" else sqlite_insert
    stmt = insert(model).values(list(rows)).on_conflict_do_nothing(index_elements=list(index_elements))
    if returning is not None:
        stmt = stmt.returning(returning)
    return stmt


# ============================================================================
# Bars
# ============================================================================


@dataclass
class BarDTO:
    """Data transfer object for a stored bar (minute or daily)."""

    symbol: str
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0
    currency: str = ""
    exchange: str = ""
    sma: float = 0.0
    ema: float = 0.0
    rsi: float = 0.0
    stochastic: float = 0.0
    macd: float = 0.0
    macd_signal: float = 0.0
    macd_hist: float = 0.0

    @classmethod
    def from_model(cls, model: BarModel | DailyBarModel) -> BarDTO:
        """Create DTO from either bar model."""
        dto = cls(
            symbol=model.symbol,
            timestamp=model.timestamp,
            open=model.open,
            high=model.high,
            low=model.low,
            close=model.close,
            volume=model.volume,
            currency=model.currency,
            exchange=model.exchange,
        )
        if isinstance(model, BarModel):
            dto.sma = model.sma
            dto.ema = model.ema
            dto.rsi = model.rsi
            dto.stochastic = model.stochastic
            dto.macd = model.macd
            dto.macd_signal = model.macd_signal
            dto.macd_hist = model.macd_hist
        return dto

    def to_row(self, *, with_indicators: bool) -> dict[str, Any]:
        row: dict[str, Any] = {
            "symbol": self.symbol,
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
            "currency": self.currency,
            "exchange": self.exchange,
        }
        if with_indicators:
            row.update(
                sma=self.sma,
                ema=self.ema,
                rsi=self.rsi,
                stochastic=self.stochastic,
                macd=self.macd,
                macd_signal=self.macd_signal,
                macd_hist=self.macd_hist,
            )
        return row


class BarRepository:
    """Repository for one bar table (minute or daily).

    Writes are insert-or-ignore on (symbol, timestamp); an existing row is
    never modified.
    """

    def __init__(self, session: AsyncSession, model: type[BarModel] | type[DailyBarModel] = BarModel) -> None:
        self.session = session
        self.model = model

    @property
    def _with_indicators(self) -> bool:
        return self.model is BarModel

    async def count(self, symbol: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(self.model).where(self.model.symbol == symbol)
        )
        return int(result.scalar_one())

    async def list_range(
        self,
        symbol: str,
        *,
        start_ts: int | None = None,
        end_ts: int | None = None,
    ) -> list[BarDTO]:
        """List bars for a symbol in ascending timestamp order (bounds inclusive)."""
        query = select(self.model).where(self.model.symbol == symbol)
        if start_ts is not None:
            query = query.where(self.model.timestamp >= start_ts)
        if end_ts is not None:
            query = query.where(self.model.timestamp <= end_ts)
        result = await self.session.execute(query.order_by(self.model.timestamp.asc()))
        return [BarDTO.from_model(m) for m in result.scalars().all()]

    async def latest_timestamp(self, symbol: str) -> int | None:
        result = await self.session.execute(
            select(func.max(self.model.timestamp)).where(self.model.symbol == symbol)
        )
        value = result.scalar_one_or_none()
        return int(value) if value is not None else None

    async def existing_timestamps(self, symbol: str, timestamps: Iterable[int]) -> set[int]:
        wanted = sorted(set(timestamps))
        if not wanted:
            return set()
        result = await self.session.execute(
            select(self.model.timestamp).where(
                (self.model.symbol == symbol)
                & (self.model.timestamp >= wanted[0])
                & (self.model.timestamp <= wanted[-1])
            )
        )
        return {int(ts) for ts in result.scalars().all()}

    async def insert_ignore(self, bars: Sequence[BarDTO]) -> set[int]:
        """Insert bars, skipping existing keys.

        Returns:
            Timestamps of the rows actually inserted.
        """
        if not bars:
            return set()
        stmt = _insert_ignore(
            self.session,
            self.model,
            [b.to_row(with_indicators=self._with_indicators) for b in bars],
            index_elements=("symbol", "timestamp"),
            returning=self.model.timestamp,
        )
        result = await self.session.execute(stmt)
        inserted = {int(ts) for ts in result.scalars().all()}
        await self.session.flush()
        return inserted


# ============================================================================
# Events
# ============================================================================


class JumpEventRepository:
    """Repository for jump (positive) and drop (negative) events.

    The sign of an event's percent selects its table.
    """

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    @staticmethod
    def _model_for(event: JumpEvent) -> type[JumpEventModel] | type[DropEventModel]:
        return JumpEventModel if event.percent > 0 else DropEventModel

    async def insert_new(self, events: Sequence[JumpEvent]) -> list[JumpEvent]:
        """Insert events, ignoring duplicates by (symbol, timestamp).

        Returns:
            The events that were not stored before.
        """
        stored: list[JumpEvent] = []
        for model in (JumpEventModel, DropEventModel):
            batch = [e for e in events if self._model_for(e) is model]
            if not batch:
                continue
            stmt = _insert_ignore(
                self.session,
                model,
                [{"symbol": e.symbol, "timestamp": e.timestamp, "percent": e.percent} for e in batch],
                index_elements=("symbol", "timestamp"),
            ).returning(model.symbol, model.timestamp)
            result = await self.session.execute(stmt)
            keys = {(row.symbol, row.timestamp) for row in result}
            stored.extend(e for e in batch if (e.symbol, e.timestamp) in keys)
        await self.session.flush()
        return stored

    async def insert(self, events: Sequence[JumpEvent]) -> int:
        """Insert events; returns the number newly stored."""
        return len(await self.insert_new(events))

    async def _list(self, model: type[JumpEventModel] | type[DropEventModel], symbol: str) -> list[JumpEvent]:
        result = await self.session.execute(
            select(model).where(model.symbol == symbol).order_by(model.timestamp.asc())
        )
        return [
            JumpEvent(timestamp=m.timestamp, symbol=m.symbol, percent=m.percent) for m in result.scalars().all()
        ]

    async def list_jumps(self, symbol: str) -> list[JumpEvent]:
        return await self._list(JumpEventModel, symbol)

    async def list_drops(self, symbol: str) -> list[JumpEvent]:
        return await self._list(DropEventModel, symbol)

    async def count(self, symbol: str) -> tuple[int, int]:
        """Return (jumps, drops) stored for a symbol."""
        counts = []
        for model in (JumpEventModel, DropEventModel):
            result = await self.session.execute(
                select(func.count()).select_from(model).where(model.symbol == symbol)
            )
            counts.append(int(result.scalar_one()))
        return counts[0], counts[1]


class RecurringEventRepository:
    """Repository for detected periodicities."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert(self, events: Sequence[RecurringEvent]) -> int:
        if not events:
            return 0
        stmt = _insert_ignore(
            self.session,
            RecurringEventModel,
            [
                {"symbol": e.symbol, "minutes_period": e.minutes_period, "time_scale": e.time_scale}
                for e in events
            ],
            index_elements=("symbol", "minutes_period"),
            returning=RecurringEventModel.id,
        )
        result = await self.session.execute(stmt)
        inserted = len(result.scalars().all())
        await self.session.flush()
        return inserted

    async def list_for_symbol(self, symbol: str) -> list[RecurringEvent]:
        result = await self.session.execute(
            select(RecurringEventModel)
            .where(RecurringEventModel.symbol == symbol)
            .order_by(RecurringEventModel.minutes_period.asc())
        )
        return [
            RecurringEvent(symbol=m.symbol, minutes_period=m.minutes_period, time_scale=m.time_scale)
            for m in result.scalars().all()
        ]

    async def count(self, symbol: str) -> int:
        result = await self.session.execute(
            select(func.count()).select_from(RecurringEventModel).where(RecurringEventModel.symbol == symbol)
        )
        return int(result.scalar_one())

    async def delete_symbol(self, symbol: str) -> None:
        await self.session.execute(delete(RecurringEventModel).where(RecurringEventModel.symbol == symbol))
        await self.session.flush()

    async def replace(self, symbol: str, events: Sequence[RecurringEvent]) -> int:
        """Replace all recurring events of a symbol (delete then insert)."""
        await self.delete_symbol(symbol)
        return await self.insert([e for e in events if e.symbol == symbol])


# ============================================================================
# Watch-list
# ============================================================================


class ActiveSymbolRepository:
    """Repository for the active watch-list."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def list_symbols(self) -> list[str]:
        result = await self.session.execute(
            select(ActiveSymbolModel.symbol).order_by(ActiveSymbolModel.symbol.asc())
        )
        return list(result.scalars().all())

    async def add(self, symbols: Sequence[str]) -> int:
        cleaned = sorted({s.strip().upper() for s in symbols if s and s.strip()})
        if not cleaned:
            return 0
        stmt = _insert_ignore(
            self.session,
            ActiveSymbolModel,
            [{"symbol": s} for s in cleaned],
            index_elements=("symbol",),
            returning=ActiveSymbolModel.id,
        )
        result = await self.session.execute(stmt)
        added = len(result.scalars().all())
        await self.session.flush()
        return added

    async def remove(self, symbol: str) -> bool:
        result = await self.session.execute(
            delete(ActiveSymbolModel).where(ActiveSymbolModel.symbol == symbol.strip().upper())
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def find_containing(self, fragment: str) -> str | None:
        """First active symbol (alphabetically) containing the fragment."""
        result = await self.session.execute(
            select(ActiveSymbolModel.symbol)
            .where(ActiveSymbolModel.symbol.contains(fragment, autoescape=True))
            .order_by(ActiveSymbolModel.symbol.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()


# ============================================================================
# Reference data
# ============================================================================


@dataclass
class EquityDTO:
    """Data transfer object for an equity listing."""

    symbol: str
    name: str = ""
    currency: str = ""
    exchange: str = ""
    mic_code: str = ""
    country: str = ""
    asset_type: str = ""
    figi_code: str = ""
    cfi_code: str = ""
    isin: str = ""
    cusip: str = ""

    @classmethod
    def from_model(cls, model: EquityModel) -> EquityDTO:
        return cls(
            symbol=model.symbol,
            name=model.name,
            currency=model.currency,
            exchange=model.exchange,
            mic_code=model.mic_code,
            country=model.country,
            asset_type=model.asset_type,
            figi_code=model.figi_code,
            cfi_code=model.cfi_code,
            isin=model.isin,
            cusip=model.cusip,
        )


@dataclass
class ExchangeDTO:
    """Data transfer object for an exchange."""

    code: str
    title: str = ""
    name: str = ""
    country: str = ""
    timezone: str = ""

    @classmethod
    def from_model(cls, model: ExchangeModel) -> ExchangeDTO:
        return cls(
            code=model.code,
            title=model.title,
            name=model.name,
            country=model.country,
            timezone=model.timezone,
        )


class ReferenceDataRepository:
    """Read/write access to equities, exchanges and symbol aliases."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def equities_by_symbol(self, symbol: str) -> list[EquityDTO]:
        """All listings of a symbol in insertion order."""
        result = await self.session.execute(
            select(EquityModel).where(EquityModel.symbol == symbol).order_by(EquityModel.id.asc())
        )
        return [EquityDTO.from_model(m) for m in result.scalars().all()]

    async def equity_by_name(self, name: str) -> EquityDTO | None:
        result = await self.session.execute(
            select(EquityModel).where(EquityModel.name == name).order_by(EquityModel.id.asc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return EquityDTO.from_model(model) if model else None

    async def exchange_by_code(self, code: str) -> ExchangeDTO | None:
        result = await self.session.execute(
            select(ExchangeModel).where(ExchangeModel.code == code).order_by(ExchangeModel.id.asc()).limit(1)
        )
        model = result.scalar_one_or_none()
        return ExchangeDTO.from_model(model) if model else None

    async def alias_name(self, symbol: str) -> str | None:
        result = await self.session.execute(
            select(SymbolAliasModel.name)
            .where(SymbolAliasModel.symbol == symbol)
            .order_by(SymbolAliasModel.id.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def add_equities(self, equities: Sequence[EquityDTO]) -> None:
        self.session.add_all(
            EquityModel(
                symbol=e.symbol,
                name=e.name,
                currency=e.currency,
                exchange=e.exchange,
                mic_code=e.mic_code,
                country=e.country,
                asset_type=e.asset_type,
                figi_code=e.figi_code,
                cfi_code=e.cfi_code,
                isin=e.isin,
                cusip=e.cusip,
            )
            for e in equities
        )
        await self.session.flush()

    async def add_exchanges(self, exchanges: Sequence[ExchangeDTO]) -> None:
        self.session.add_all(
            ExchangeModel(title=x.title, name=x.name, code=x.code, country=x.country, timezone=x.timezone)
            for x in exchanges
        )
        await self.session.flush()

    async def add_aliases(self, aliases: Sequence[tuple[str, str]]) -> None:
        self.session.add_all(SymbolAliasModel(symbol=symbol, name=name) for symbol, name in aliases)
        await self.session.flush()

    async def counts(self) -> dict[str, int]:
        out: dict[str, int] = {}
        for key, model in (("equities", EquityModel), ("exchanges", ExchangeModel), ("aliases", SymbolAliasModel)):
            result = await self.session.execute(select(func.count()).select_from(model))
            out[key] = int(result.scalar_one())
        return out
