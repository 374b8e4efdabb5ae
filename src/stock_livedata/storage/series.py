"""Series store: exactly-once persistence of minute and daily bars.

Every bar is keyed by (symbol, timestamp). Inserting a bar whose key is
already stored is a no-op, so repeated or overlapping fetches never create
duplicate rows.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import UTC, date, datetime
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from stock_livedata.storage.database import DatabaseManager, StorageUnavailableError
from stock_livedata.storage.models import BarModel, DailyBarModel
from stock_livedata.storage.repos import BarDTO, BarRepository

if TYPE_CHECKING:
    from stock_livedata.ingestor.models import RawBar
    from stock_livedata.storage.directory import SymbolMetadata

logger = logging.getLogger(__name__)

DAILY_BAR_HOUR_UTC = 22
DEFAULT_COMMIT_EVERY = 200


class Resolution(str, Enum):
    """Bar resolutions kept by the store."""

    MINUTE = "minute"
    DAILY = "daily"


class PartialWriteError(StorageUnavailableError):
    """A storage failure interrupted a batch after some chunks were committed."""

    def __init__(self, message: str, persisted: list[BarDTO]) -> None:
        super().__init__(message)
        self.persisted = persisted


def daily_timestamp(day: date) -> int:
    """Canonical epoch timestamp of a trading day (22:00 UTC)."""
    return int(datetime(day.year, day.month, day.day, DAILY_BAR_HOUR_UTC, tzinfo=UTC).timestamp())


def canonical_timestamps(
    bars: Sequence[RawBar],
    resolution: Resolution,
    now: datetime | None = None,
) -> list[int | None]:
    """Derive the storage timestamp of each raw bar.

    Minute bars keep the provider timestamp; bars without one are placed
    backwards from ``now`` (truncated to the minute) one minute apart, the
    last bar one minute before ``now``. Daily bars are pinned to 22:00 UTC
    of their trading date. ``None`` marks a daily bar without any date.
    """
    if resolution is Resolution.DAILY:
        out: list[int | None] = []
        for bar in bars:
            if bar.trade_date is not None:
                out.append(daily_timestamp(bar.trade_date))
            elif bar.timestamp is not None:
                out.append(daily_timestamp(datetime.fromtimestamp(bar.timestamp, tz=UTC).date()))
            else:
                out.append(None)
        return out

    current = now or datetime.now(UTC)
    base = int(current.timestamp()) // 60 * 60
    n = len(bars)
    return [bar.timestamp if bar.timestamp is not None else base - (n - i) * 60 for i, bar in enumerate(bars)]


class SeriesStore:
    """Persists and reads bars for both resolutions.

    Writes for the same (symbol, resolution) are serialized in-process; the
    unique constraint with insert-or-ignore covers concurrent writers in
    other processes.
    """

    def __init__(self, db: DatabaseManager, *, commit_every: int = DEFAULT_COMMIT_EVERY) -> None:
        if commit_every < 1:
            raise ValueError("commit_every must be >= 1")
        self._db = db
        self._commit_every = commit_every
        self._locks: dict[tuple[str, Resolution], asyncio.Lock] = {}

    @staticmethod
    def _model(resolution: Resolution) -> type[BarModel] | type[DailyBarModel]:
        return BarModel if resolution is Resolution.MINUTE else DailyBarModel

    def _lock(self, symbol: str, resolution: Resolution) -> asyncio.Lock:
        key = (symbol, resolution)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def count(self, symbol: str, resolution: Resolution = Resolution.MINUTE) -> int:
        async with self._db.get_async_session() as session:
            return await BarRepository(session, self._model(resolution)).count(symbol)

    async def read(
        self,
        symbol: str,
        start_ts: int | None = None,
        end_ts: int | None = None,
        resolution: Resolution = Resolution.MINUTE,
    ) -> list[BarDTO]:
        """Bars of a symbol within [start_ts, end_ts], ascending by timestamp."""
        async with self._db.get_async_session() as session:
            return await BarRepository(session, self._model(resolution)).list_range(
                symbol, start_ts=start_ts, end_ts=end_ts
            )

    async def latest_timestamp(self, symbol: str, resolution: Resolution = Resolution.MINUTE) -> int | None:
        async with self._db.get_async_session() as session:
            return await BarRepository(session, self._model(resolution)).latest_timestamp(symbol)

    def _to_dtos(
        self,
        metadata: SymbolMetadata,
        bars: Sequence[RawBar],
        resolution: Resolution,
        now: datetime | None,
    ) -> list[BarDTO]:
        keep_indicators = resolution is Resolution.MINUTE
        rows: dict[int, BarDTO] = {}
        skipped = 0
        for bar, ts in zip(bars, canonical_timestamps(bars, resolution, now), strict=True):
            if ts is None:
                skipped += 1
                continue
            if ts in rows:
                continue
            rows[ts] = BarDTO(
                symbol=metadata.symbol,
                timestamp=ts,
                open=bar.open,
                high=bar.high,
                low=bar.low,
                close=bar.close,
                volume=bar.volume,
                currency=metadata.currency,
                exchange=metadata.exchange_code,
                sma=bar.sma if keep_indicators else 0.0,
                ema=bar.ema if keep_indicators else 0.0,
                rsi=bar.rsi if keep_indicators else 0.0,
                stochastic=bar.stochastic if keep_indicators else 0.0,
                macd=bar.macd if keep_indicators else 0.0,
                macd_signal=bar.macd_signal if keep_indicators else 0.0,
                macd_hist=bar.macd_hist if keep_indicators else 0.0,
            )
        if skipped:
            logger.warning("Dropped %d %s bars without a date for %s", skipped, resolution.value, metadata.symbol)
        return sorted(rows.values(), key=lambda b: b.timestamp)

    async def insert(
        self,
        metadata: SymbolMetadata,
        bars: Sequence[RawBar],
        resolution: Resolution = Resolution.MINUTE,
        *,
        now: datetime | None = None,
    ) -> list[BarDTO]:
        """Persist the bars whose key is not yet stored.

        Rows are committed in chunks. A storage failure stops the batch;
        chunks committed before it are kept and reported on the raised
        PartialWriteError.

        Returns:
            The newly persisted bars, ascending by timestamp.
        """
        rows = self._to_dtos(metadata, bars, resolution, now)
        if not rows:
            return []

        model = self._model(resolution)
        inserted: list[BarDTO] = []
        async with self._lock(metadata.symbol, resolution):
            try:
                async with self._db.get_async_session() as session:
                    existing = await BarRepository(session, model).existing_timestamps(
                        metadata.symbol, (r.timestamp for r in rows)
                    )
            except SQLAlchemyError as e:
                raise StorageUnavailableError(str(e)) from e

            pending = [r for r in rows if r.timestamp not in existing]
            for start in range(0, len(pending), self._commit_every):
                chunk = pending[start : start + self._commit_every]
                try:
                    async with self._db.get_async_session() as session:
                        new_ts = await BarRepository(session, model).insert_ignore(chunk)
                except (SQLAlchemyError, StorageUnavailableError) as e:
                    logger.error(
                        "Storage failure for %s after %d new %s bars: %s",
                        metadata.symbol,
                        len(inserted),
                        resolution.value,
                        e,
                    )
                    raise PartialWriteError(str(e), inserted) from e
                inserted.extend(r for r in chunk if r.timestamp in new_ts)

        logger.debug(
            "Stored %d/%d %s bars for %s",
            len(inserted),
            len(bars),
            resolution.value,
            metadata.symbol,
        )
        return inserted
