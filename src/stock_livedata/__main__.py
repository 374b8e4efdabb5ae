"""Command-line interface for the stock live-data tracker."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from pydantic import ValidationError

from stock_livedata.config import Settings, get_settings
from stock_livedata.scheduler import Scheduler, TickMode
from stock_livedata.storage.database import DatabaseManager
from stock_livedata.storage.directory import SymbolUnresolvedError
from stock_livedata.storage.repos import ActiveSymbolRepository
from stock_livedata.storage.seed import seed_active_symbols, seed_reference_data

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build CLI parser."""
    parser = argparse.ArgumentParser(prog="stock-livedata", description="Stock market live-data tracker")
    parser.add_argument("--dry-run", action="store_true", help="Log notifications instead of sending them")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run", help="Run the scheduler until interrupted")

    init_db = sub.add_parser("init-db", help="Create tables and seed the default watch-list")
    init_db.add_argument("--reference-dir", type=Path, help="Directory with reference JSON files")

    symbols = sub.add_parser("symbols", help="Manage the watch-list")
    symbols_sub = symbols.add_subparsers(dest="action", required=True)
    symbols_sub.add_parser("list", help="List active symbols")
    add = symbols_sub.add_parser("add", help="Add symbols")
    add.add_argument("symbols", nargs="+")
    remove = symbols_sub.add_parser("remove", help="Remove a symbol")
    remove.add_argument("symbol")

    seed = sub.add_parser("seed-reference", help="Load reference JSON files into empty tables")
    seed.add_argument("directory", type=Path)

    detect = sub.add_parser("detect", help="Run one update for a single symbol")
    detect.add_argument("symbol")
    detect.add_argument("--minute", action="store_true", help="Run the minute update instead of the daily batch")

    sub.add_parser("config", help="Print the effective configuration with secrets redacted")
    return parser


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Request URLs carry API keys.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


async def _run(settings: Settings, dry_run: bool) -> int:
    scheduler = Scheduler(settings, dry_run=dry_run)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.request_stop)
        except NotImplementedError:
            logger.debug("Signal handlers unavailable on this platform")
    await scheduler.run()
    stats = scheduler.stats
    logger.info(
        "Processed %d symbols over %d ticks: %d bars, %d events, %d errors",
        stats.symbols_processed,
        stats.ticks,
        stats.bars_inserted,
        stats.events_detected,
        stats.errors,
    )
    return 0


async def _init_db(settings: Settings, reference_dir: Path | None) -> int:
    db = DatabaseManager(settings.database.url, echo=settings.database.echo)
    try:
        await db.init_schema_async()
        added = await seed_active_symbols(db)
        print(f"Schema ready; {added} symbols seeded")
        if reference_dir is not None:
            loaded = await seed_reference_data(db, reference_dir)
            print(json.dumps(loaded))
    finally:
        await db.dispose_async()
    return 0


async def _symbols(settings: Settings, args: argparse.Namespace) -> int:
    db = DatabaseManager(settings.database.url, echo=settings.database.echo)
    try:
        await db.init_schema_async()
        async with db.get_async_session() as session:
            repo = ActiveSymbolRepository(session)
            if args.action == "list":
                for symbol in await repo.list_symbols():
                    print(symbol)
            elif args.action == "add":
                print(f"{await repo.add(args.symbols)} added")
            elif not await repo.remove(args.symbol):
                print(f"{args.symbol.upper()} is not on the watch-list")
                return 1
    finally:
        await db.dispose_async()
    return 0


async def _seed_reference(settings: Settings, directory: Path) -> int:
    if not directory.is_dir():
        print(f"Not a directory: {directory}")
        return 2
    db = DatabaseManager(settings.database.url, echo=settings.database.echo)
    try:
        await db.init_schema_async()
        print(json.dumps(await seed_reference_data(db, directory)))
    finally:
        await db.dispose_async()
    return 0


async def _detect(settings: Settings, symbol: str, minute: bool, dry_run: bool) -> int:
    scheduler = Scheduler(settings, dry_run=dry_run)
    mode = TickMode.MINUTE_UPDATE if minute else TickMode.DAILY_BATCH
    try:
        await scheduler.run_once(symbol.upper(), mode)
    except SymbolUnresolvedError as e:
        print(f"{e}; load reference data with seed-reference first")
        return 1
    stats = scheduler.stats
    print(f"{symbol.upper()}: {stats.bars_inserted} bars stored, {stats.events_detected} events")
    return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entrypoint."""
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
    except ValidationError as exc:
        print(f"Configuration error: {exc}")
        return 2
    configure_logging(settings)
    dry_run = args.dry_run or settings.dry_run

    if args.command == "config":
        print(json.dumps(settings.redacted_summary(), indent=2))
        return 0
    if args.command == "run":
        return asyncio.run(_run(settings, dry_run))
    if args.command == "init-db":
        return asyncio.run(_init_db(settings, args.reference_dir))
    if args.command == "symbols":
        return asyncio.run(_symbols(settings, args))
    if args.command == "seed-reference":
        return asyncio.run(_seed_reference(settings, args.directory))
    if args.command == "detect":
        return asyncio.run(_detect(settings, args.symbol, args.minute, dry_run))
    return 2


if __name__ == "__main__":
    sys.exit(main())
