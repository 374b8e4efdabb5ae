"""SQLAlchemy models for persistent storage.

This module defines the database schema for price bars, detected events,
the active watch-list and the symbol/exchange reference data.
Timestamps are stored as integer epoch seconds (UTC).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import BigInteger, DateTime, Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class BarModel(Base):
    """Minute-resolution bars with derived indicator columns."""

    __tablename__ = "bars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    exchange: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    sma: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    ema: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    rsi: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    stochastic: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    macd: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    macd_signal: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    macd_hist: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("symbol", "timestamp", name="uq_bars_symbol_timestamp"),
        Index("idx_bars_symbol", "symbol"),
        Index("idx_bars_timestamp", "timestamp"),
    )


class DailyBarModel(Base):
    """Day-resolution bars, one row per trading day at 22:00 UTC."""

    __tablename__ = "daily_bars"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)

    open: Mapped[float] = mapped_column(Float, nullable=False)
    high: Mapped[float] = mapped_column(Float, nullable=False)
    low: Mapped[float] = mapped_column(Float, nullable=False)
    close: Mapped[float] = mapped_column(Float, nullable=False)
    volume: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    exchange: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        UniqueConstraint("symbol", "timestamp", name="uq_daily_bars_symbol_timestamp"),
        Index("idx_daily_bars_symbol", "symbol"),
        Index("idx_daily_bars_timestamp", "timestamp"),
    )


class JumpEventModel(Base):
    """Upward price moves above the configured threshold."""

    __tablename__ = "jump_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    percent: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("symbol", "timestamp", name="uq_jump_events_symbol_timestamp"),
        Index("idx_jump_events_symbol", "symbol"),
        Index("idx_jump_events_timestamp", "timestamp"),
    )


class DropEventModel(Base):
    """Downward price moves above the configured threshold (percent is negative)."""

    __tablename__ = "drop_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    timestamp: Mapped[int] = mapped_column(BigInteger, nullable=False)
    percent: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("symbol", "timestamp", name="uq_drop_events_symbol_timestamp"),
        Index("idx_drop_events_symbol", "symbol"),
        Index("idx_drop_events_timestamp", "timestamp"),
    )


class RecurringEventModel(Base):
    """Detected periodicities of a symbol's minute series."""

    __tablename__ = "recurring_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    minutes_period: Mapped[int] = mapped_column(Integer, nullable=False)
    time_scale: Mapped[float] = mapped_column(Float, nullable=False)

    __table_args__ = (
        UniqueConstraint("symbol", "minutes_period", name="uq_recurring_events_symbol_period"),
        Index("idx_recurring_events_symbol", "symbol"),
    )


class ActiveSymbolModel(Base):
    """Symbols on the watch-list processed by the scheduler."""

    __tablename__ = "active_symbols"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )


class EquityModel(Base):
    """Reference data: one listing of an equity on one exchange."""

    __tablename__ = "equities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    currency: Mapped[str] = mapped_column(String(8), nullable=False, default="")
    exchange: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    mic_code: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    asset_type: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    figi_code: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    cfi_code: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    isin: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    cusip: Mapped[str] = mapped_column(String(16), nullable=False, default="")

    __table_args__ = (
        Index("idx_equities_symbol", "symbol"),
        Index("idx_equities_name", "name"),
    )


class ExchangeModel(Base):
    """Reference data: exchanges keyed by MIC code."""

    __tablename__ = "exchanges"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(256), nullable=False, default="")
    name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    code: Mapped[str] = mapped_column(String(16), nullable=False)
    country: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    __table_args__ = (Index("idx_exchanges_code", "code"),)


class SymbolAliasModel(Base):
    """Reference data: alternate symbol spellings mapped to an equity name."""

    __tablename__ = "symbol_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False)
    name: Mapped[str] = mapped_column(String(256), nullable=False, default="")

    __table_args__ = (Index("idx_symbol_aliases_symbol", "symbol"),)
