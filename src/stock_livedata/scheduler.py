"""Background scheduler driving ingestion and detection.

This module provides the Scheduler class that wires the provider gateway,
series store, detector suite and event store together and runs them once
per tick, choosing between the per-minute live path and the end-of-day
batch from the wall clock.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from enum import Enum
from typing import TYPE_CHECKING, Any
from zoneinfo import ZoneInfo

from stock_livedata.alerter.formatter import AlertFormatter
from stock_livedata.alerter.notifier import NotificationDispatcher, build_sink
from stock_livedata.config import SchedulerSettings, Settings, get_settings
from stock_livedata.detector.changepoint import changepoints
from stock_livedata.detector.jumps import jumps_in_series
from stock_livedata.detector.outliers import cluster_seasonal_data, is_outlier
from stock_livedata.detector.seasonality import recurring_events_in_series, split_series_into_seasons
from stock_livedata.detector.trend import increasing_slope
from stock_livedata.ingestor.gateway import ProviderGateway
from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.directory import SymbolDirectory
from stock_livedata.storage.models import ActiveSymbolModel
from stock_livedata.storage.repos import ActiveSymbolRepository, JumpEventRepository, RecurringEventRepository
from stock_livedata.storage.seed import seed_active_symbols
from stock_livedata.storage.series import Resolution, SeriesStore

if TYPE_CHECKING:
    from stock_livedata.alerter.formatter import FormattedAlert
    from stock_livedata.alerter.notifier import NotificationSink
    from stock_livedata.detector.models import JumpEvent
    from stock_livedata.storage.directory import SymbolMetadata
    from stock_livedata.storage.repos import BarDTO

logger = logging.getLogger(__name__)

MIN_SESSION_SAMPLES = 30
MIN_HISTORY_SESSIONS = 3
MAX_HISTORY_SESSIONS = 20
TRADING_DAYS_PER_WEEK = 5
MINUTES_PER_DAY = 1440


class SchedulerState(str, Enum):
    """Scheduler lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class TickMode(str, Enum):
    """What a tick does."""

    IDLE = "idle"
    MINUTE_UPDATE = "minute_update"
    DAILY_BATCH = "daily_batch"


def decide_mode(now: datetime, settings: SchedulerSettings, last_batch_date: date | None = None) -> TickMode:
    """Choose the tick mode for a wall-clock time.

    The daily batch runs at the configured hour and minute; the minute
    update runs Monday to Friday within the session hours. When the date of
    the previous batch is known, the batch is due on the first tick at or
    after the trigger time of any later day, so a skipped trigger minute
    does not lose the day's batch.
    """
    clock = (now.hour, now.minute)
    trigger = (settings.daily_batch_hour, settings.daily_batch_minute)
    if last_batch_date is None:
        batch_due = clock == trigger
    else:
        batch_due = last_batch_date < now.date() and clock >= trigger
    if batch_due:
        return TickMode.DAILY_BATCH
    if now.weekday() < 5 and settings.session_start_hour <= now.hour < settings.session_end_hour:
        return TickMode.MINUTE_UPDATE
    return TickMode.IDLE


def make_clock(timezone: str | None) -> Callable[[], datetime]:
    """Wall clock in the configured zone, or host local time."""
    if timezone:
        zone = ZoneInfo(timezone)
        return lambda: datetime.now(zone)
    return lambda: datetime.now().astimezone()


@dataclass
class SchedulerStats:
    """Statistics for the scheduler."""

    started_at: datetime | None = None
    ticks: int = 0
    ticks_skipped: int = 0
    minute_updates: int = 0
    daily_batches: int = 0
    symbols_processed: int = 0
    bars_inserted: int = 0
    events_detected: int = 0
    notifications_sent: int = 0
    errors: int = 0
    last_tick_at: datetime | None = None
    last_error: str | None = None


def _closes(bars: list[BarDTO]) -> tuple[list[int], list[float]]:
    return [b.timestamp for b in bars], [b.close for b in bars]


def _relative_path(values: list[float]) -> list[float]:
    """Express a price path relative to its first sample (percent)."""
    base = values[0]
    if base == 0:
        return [0.0 for _ in values]
    return [(v - base) / base * 100.0 for v in values]


class Scheduler:
    """Recurring-tick orchestrator for the stock live-data tracker.

    Pipeline flow per symbol:
        Provider Gateway → Series Store → Detector Suite → Event Store → Notifications

    Example:
        ```python
        from stock_livedata.config import get_settings
        from stock_livedata.scheduler import Scheduler

        scheduler = Scheduler(get_settings())
        await scheduler.run()  # until request_stop() / stop()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        db: DatabaseManager | None = None,
        gateway: ProviderGateway | None = None,
        sink: NotificationSink | None = None,
        clock: Callable[[], datetime] | None = None,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            db: Database manager; created from settings when omitted.
            gateway: Provider gateway; selected from settings when omitted.
            sink: Notification sink; built from settings when omitted.
            clock: Wall-clock source used for tick decisions.
            dry_run: If True, log notifications instead of sending them.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run
        self._clock = clock or make_clock(self._settings.scheduler.timezone)

        self._owns_db = db is None
        self._db = db
        self._gateway = gateway
        self._sink = sink

        self._state = SchedulerState.STOPPED
        self._stats = SchedulerStats()

        self._series: SeriesStore | None = None
        self._directory: SymbolDirectory | None = None
        self._dispatcher: NotificationDispatcher | None = None
        self._formatter = AlertFormatter(self._settings.notification.verbosity)
        self._last_batch_date: date | None = None

        self._stop_event: asyncio.Event | None = None
        self._loop_task: asyncio.Task[None] | None = None
        self._tick_task: asyncio.Task[TickMode] | None = None

    @property
    def state(self) -> SchedulerState:
        """Current scheduler state."""
        return self._state

    @property
    def stats(self) -> SchedulerStats:
        """Current scheduler statistics."""
        return self._stats

    @property
    def is_running(self) -> bool:
        """Check if scheduler is running."""
        return self._state == SchedulerState.RUNNING

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Create components and make sure the schema exists."""
        if self._db is None:
            self._db = DatabaseManager(self._settings.database.url, echo=self._settings.database.echo)
        created = await self._db.init_schema_async()
        if ActiveSymbolModel.__tablename__ in created:
            await seed_active_symbols(self._db)
        self._series = SeriesStore(self._db)
        self._directory = SymbolDirectory(self._db)
        if self._gateway is None:
            self._gateway = ProviderGateway.from_settings(self._settings.provider)
        if self._sink is None:
            self._sink = build_sink(self._settings.notification)
        self._dispatcher = NotificationDispatcher(self._sink, dry_run=self._dry_run)
        logger.info("Scheduler components initialized (provider=%s)", self._gateway.provider_name)

    async def start(self) -> None:
        """Start the tick loop.

        Raises:
            RuntimeError: If the scheduler is already running.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot start scheduler in state {self._state}")

        self._state = SchedulerState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting scheduler...")

        try:
            await self.initialize()
            self._stats.started_at = datetime.now(UTC)
            self._last_batch_date = self._previous_batch_date(self._clock())
            self._loop_task = asyncio.create_task(self._run_loop())
            self._state = SchedulerState.RUNNING
            logger.info("Scheduler started (interval=%ss)", self._settings.scheduler.interval_seconds)
        except Exception as e:
            self._state = SchedulerState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start scheduler: %s", e)
            await self._cleanup()
            raise

    def _previous_batch_date(self, now: datetime) -> date:
        # Starting after today's trigger time does not run a batch right away.
        sched = self._settings.scheduler
        if (now.hour, now.minute) > (sched.daily_batch_hour, sched.daily_batch_minute):
            return now.date()
        return now.date() - timedelta(days=1)

    def request_stop(self) -> None:
        """Ask the loop to stop after the current tick; safe from signal handlers."""
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop the scheduler gracefully.

        An in-flight tick gets the configured grace period before it is
        cancelled.
        """
        if self._state in (SchedulerState.STOPPED, SchedulerState.STOPPING):
            return

        self._state = SchedulerState.STOPPING
        logger.info("Stopping scheduler...")
        self.request_stop()

        if self._loop_task:
            self._loop_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._loop_task
            self._loop_task = None

        if self._tick_task and not self._tick_task.done():
            grace = self._settings.scheduler.shutdown_grace_seconds
            done, _ = await asyncio.wait({self._tick_task}, timeout=grace)
            if not done:
                logger.warning("Tick still running after %.0fs; cancelling", grace)
                self._tick_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await self._tick_task
        self._tick_task = None

        await self._cleanup()
        self._state = SchedulerState.STOPPED
        logger.info("Scheduler stopped")

    async def _cleanup(self) -> None:
        """Clean up resources."""
        if self._dispatcher:
            await self._dispatcher.aclose()
            self._dispatcher = None
        if self._gateway:
            await self._gateway.aclose()
        if self._db and self._owns_db:
            await self._db.dispose_async()
            self._db = None
        logger.debug("Resources cleaned up")

    async def aclose(self) -> None:
        """Release what initialize() created; pending notifications are drained first."""
        await self._cleanup()

    async def run(self) -> None:
        """Start the scheduler and block until a stop is requested."""
        await self.start()
        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def run_once(self, symbol: str, mode: TickMode = TickMode.DAILY_BATCH) -> None:
        """Run one path for one symbol outside the tick loop.

        Unlike process_symbol, errors propagate to the caller, including
        SymbolUnresolvedError for a symbol missing from the reference data.
        """
        if self._state != SchedulerState.STOPPED:
            raise RuntimeError(f"Cannot run once in state {self._state}")
        await self.initialize()
        try:
            assert self._directory is not None
            await self._directory.require(symbol, self._settings.provider.preferred_exchange_code)
            now = self._clock()
            if mode is TickMode.MINUTE_UPDATE:
                await self.minute_update(symbol, now)
            else:
                await self.daily_batch(symbol, now)
        finally:
            await self.aclose()

    async def __aenter__(self) -> Scheduler:
        """Async context manager entry."""
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.stop()

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        if not self._stop_event:
            return
        interval = self._settings.scheduler.interval_seconds
        while not self._stop_event.is_set():
            if self._tick_task and not self._tick_task.done():
                self._stats.ticks_skipped += 1
                logger.warning("Previous tick still running; skipping this one")
            else:
                self._tick_task = asyncio.create_task(self.run_tick())
                self._tick_task.add_done_callback(self._on_tick_done)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=interval)
                break
            except TimeoutError:
                pass

    def _on_tick_done(self, task: asyncio.Task[TickMode]) -> None:
        """Record failures raised outside the per-symbol boundary."""
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._stats.errors += 1
            self._stats.last_error = f"tick: {exc}"
            logger.error("Tick failed: %s", exc)

    async def run_tick(self, now: datetime | None = None) -> TickMode:
        """Run one tick for all active symbols.

        Returns:
            The mode the tick ran in.
        """
        now = now or self._clock()
        mode = decide_mode(now, self._settings.scheduler, self._last_batch_date)
        self._stats.ticks += 1
        self._stats.last_tick_at = now
        if mode is TickMode.IDLE:
            logger.debug("Idle tick at %s", now.isoformat())
            return mode

        symbols = await self._active_symbols()
        if mode is TickMode.MINUTE_UPDATE:
            self._stats.minute_updates += 1
        else:
            self._stats.daily_batches += 1
            self._last_batch_date = now.date()
        logger.info("%s tick for %d symbols", mode.value, len(symbols))

        semaphore = asyncio.Semaphore(self._settings.scheduler.max_concurrency)

        async def guarded(symbol: str) -> None:
            async with semaphore:
                await self.process_symbol(symbol, mode, now)

        await asyncio.gather(*(guarded(s) for s in symbols))
        return mode

    async def _active_symbols(self) -> list[str]:
        assert self._db is not None
        async with self._db.get_async_session() as session:
            return await ActiveSymbolRepository(session).list_symbols()

    async def process_symbol(self, symbol: str, mode: TickMode, now: datetime) -> None:
        """Run one mode for one symbol; failures are logged and counted."""
        try:
            if mode is TickMode.MINUTE_UPDATE:
                await self.minute_update(symbol, now)
            elif mode is TickMode.DAILY_BATCH:
                await self.daily_batch(symbol, now)
            self._stats.symbols_processed += 1
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = f"{symbol}: {e}"
            logger.error("Error processing %s (%s): %s", symbol, mode.value, e)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _session_start(self, now: datetime) -> datetime:
        return now.replace(hour=self._settings.scheduler.session_start_hour, minute=0, second=0, microsecond=0)

    async def _resolve(self, symbol: str) -> SymbolMetadata:
        assert self._directory is not None
        return await self._directory.resolve(symbol, self._settings.provider.preferred_exchange_code)

    async def _ingest_intraday(self, metadata: SymbolMetadata, now: datetime) -> datetime:
        """Fetch and store today's minute bars; returns the session start."""
        assert self._gateway is not None and self._series is not None
        session_start = self._session_start(now)
        start = session_start
        latest = await self._series.latest_timestamp(metadata.symbol, Resolution.MINUTE)
        if latest is not None:
            start = max(session_start, datetime.fromtimestamp(latest, tz=UTC))
        bars = await self._gateway.fetch_intraday(metadata.symbol, start=start, end=now, metadata=metadata)
        inserted = await self._series.insert(metadata, bars, Resolution.MINUTE, now=now)
        self._stats.bars_inserted += len(inserted)
        return session_start

    async def _store_jumps(
        self, symbol: str, timestamps: list[int], closes: list[float], up: float, down: float
    ) -> list[JumpEvent]:
        """Detect and store jumps/drops; returns the newly stored ones."""
        assert self._db is not None
        events = jumps_in_series(symbol, timestamps, closes, up, down)
        if not events:
            return []
        async with self._db.get_async_session() as session:
            stored = await JumpEventRepository(session).insert_new(events)
        self._stats.events_detected += len(stored)
        return stored

    def _notify(self, alert: FormattedAlert) -> None:
        if self._dispatcher is not None and self._dispatcher.dispatch(alert):
            self._stats.notifications_sent += 1

    async def minute_update(self, symbol: str, now: datetime) -> None:
        """Live path: ingest new minute bars, detect jumps and trends."""
        assert self._series is not None
        detector = self._settings.detector
        metadata = await self._resolve(symbol)
        session_start = await self._ingest_intraday(metadata, now)

        bars = await self._series.read(metadata.symbol, int(session_start.timestamp()), int(now.timestamp()))
        timestamps, closes = _closes(bars)
        stored = await self._store_jumps(
            metadata.symbol, timestamps, closes, detector.minute_jump_up_pct, detector.minute_jump_down_pct
        )
        if stored:
            self._notify(self._formatter.format_jumps(metadata.symbol, stored))

        pct = increasing_slope(closes, detector.trend_up_pct, detector.trend_down_pct)
        if pct != 0.0:
            logger.info("Trend on %s: %+.2f%%", metadata.symbol, pct)
            self._notify(
                self._formatter.format_trend(
                    metadata.symbol,
                    pct,
                    last_price=closes[-1],
                    currency=metadata.currency,
                    exchange=metadata.exchange_title,
                    at=now,
                )
            )
        logger.debug("Minute update %s: %d bars today, %d new events", metadata.symbol, len(bars), len(stored))

    async def daily_batch(self, symbol: str, now: datetime) -> None:
        """End-of-day path: backfill daily bars and run the slower detectors."""
        assert self._db is not None and self._series is not None and self._gateway is not None
        sched = self._settings.scheduler
        detector = self._settings.detector
        metadata = await self._resolve(symbol)

        latest = await self._series.latest_timestamp(metadata.symbol, Resolution.DAILY)
        if latest is None:
            lookback = sched.initial_daily_lookback_days
        else:
            lookback = (now.astimezone(UTC).date() - datetime.fromtimestamp(latest, tz=UTC).date()).days
        if lookback > 0:
            daily = await self._gateway.fetch_daily(metadata.symbol, lookback, metadata=metadata)
            inserted = await self._series.insert(metadata, daily, Resolution.DAILY, now=now)
            self._stats.bars_inserted += len(inserted)
        else:
            logger.debug("Daily bars of %s are up to date", metadata.symbol)

        await self._ingest_intraday(metadata, now)

        now_ts = int(now.timestamp())
        window_start = int((now - timedelta(days=sched.history_window_days)).timestamp())
        daily_bars = await self._series.read(metadata.symbol, window_start, now_ts, Resolution.DAILY)
        timestamps, closes = _closes(daily_bars)
        await self._store_jumps(
            metadata.symbol, timestamps, closes, detector.daily_jump_up_pct, detector.daily_jump_down_pct
        )

        breaks = changepoints(closes)
        if breaks:
            logger.info(
                "Changepoints for %s: %s",
                metadata.symbol,
                ", ".join(datetime.fromtimestamp(timestamps[i], tz=UTC).date().isoformat() for i in breaks),
            )

        weeks = [
            _relative_path(w)
            for w in split_series_into_seasons(
                closes, TRADING_DAYS_PER_WEEK * MINUTES_PER_DAY, MINUTES_PER_DAY
            )
        ]
        if len(weeks) > 2:
            labels = cluster_seasonal_data(weeks)
            logger.debug("Weekly shape clusters for %s: %s", metadata.symbol, labels)

        minute_start = int((now - timedelta(days=sched.minute_window_days)).timestamp())
        minute_bars = await self._series.read(metadata.symbol, minute_start, now_ts)
        m_timestamps, m_closes = _closes(minute_bars)
        if m_closes:
            recurring = recurring_events_in_series(
                metadata.symbol,
                m_timestamps,
                m_closes,
                detector.seasonality_threshold,
                min_period=detector.seasonality_min_period,
                max_period=detector.seasonality_max_period,
            )
            async with self._db.get_async_session() as session:
                await RecurringEventRepository(session).replace(metadata.symbol, recurring)
            logger.debug("Recurring periods for %s: %s", metadata.symbol, [e.minutes_period for e in recurring])

        self._check_session_outlier(metadata, minute_bars, now)

    def _check_session_outlier(self, metadata: SymbolMetadata, bars: list[BarDTO], now: datetime) -> None:
        zone = now.tzinfo or UTC
        sessions: OrderedDict[Any, list[float]] = OrderedDict()
        for bar in bars:
            day = datetime.fromtimestamp(bar.timestamp, tz=zone).date()
            sessions.setdefault(day, []).append(bar.close)
        if now.date() not in sessions:
            return
        today = sessions.pop(now.date())
        history = list(sessions.values())[-MAX_HISTORY_SESSIONS:]
        if len(history) < MIN_HISTORY_SESSIONS:
            return
        length = min(len(today), *(len(s) for s in history))
        if length < MIN_SESSION_SAMPLES:
            return
        flagged = is_outlier(
            [_relative_path(s[:length]) for s in history],
            _relative_path(today[:length]),
            self._settings.detector.outlier_sensitivity,
        )
        if flagged:
            logger.info("Unusual session for %s", metadata.symbol)
            self._notify(
                self._formatter.format_session_outlier(
                    metadata.symbol,
                    sessions_compared=len(history),
                    last_close=today[-1],
                    currency=metadata.currency,
                )
            )
