"""Initial schema for bars, detected events, watch-list and reference data.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000+00:00
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _bar_columns(with_indicators: bool) -> list[sa.Column]:
    columns = [
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("open", sa.Float(), nullable=False),
        sa.Column("high", sa.Float(), nullable=False),
        sa.Column("low", sa.Float(), nullable=False),
        sa.Column("close", sa.Float(), nullable=False),
        sa.Column("volume", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("exchange", sa.String(128), nullable=False),
    ]
    if with_indicators:
        for name in ("sma", "ema", "rsi", "stochastic", "macd", "macd_signal", "macd_hist"):
            columns.append(sa.Column(name, sa.Float(), nullable=False))
    columns.append(sa.Column("created_at", sa.DateTime(timezone=True), nullable=False))
    return columns


def _event_table(name: str) -> None:
    op.create_table(
        name,
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("percent", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol", "timestamp", name=f"uq_{name}_symbol_timestamp"),
    )
    op.create_index(f"idx_{name}_symbol", name, ["symbol"])
    op.create_index(f"idx_{name}_timestamp", name, ["timestamp"])


def upgrade() -> None:
    # Minute bars
    op.create_table(
        "bars",
        *_bar_columns(with_indicators=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol", "timestamp", name="uq_bars_symbol_timestamp"),
    )
    op.create_index("idx_bars_symbol", "bars", ["symbol"])
    op.create_index("idx_bars_timestamp", "bars", ["timestamp"])

    # Daily bars
    op.create_table(
        "daily_bars",
        *_bar_columns(with_indicators=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol", "timestamp", name="uq_daily_bars_symbol_timestamp"),
    )
    op.create_index("idx_daily_bars_symbol", "daily_bars", ["symbol"])
    op.create_index("idx_daily_bars_timestamp", "daily_bars", ["timestamp"])

    _event_table("jump_events")
    _event_table("drop_events")

    op.create_table(
        "recurring_events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("minutes_period", sa.Integer(), nullable=False),
        sa.Column("time_scale", sa.Float(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol", "minutes_period", name="uq_recurring_events_symbol_period"),
    )
    op.create_index("idx_recurring_events_symbol", "recurring_events", ["symbol"])

    op.create_table(
        "active_symbols",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("symbol"),
    )

    # Reference data
    op.create_table(
        "equities",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("exchange", sa.String(128), nullable=False),
        sa.Column("mic_code", sa.String(16), nullable=False),
        sa.Column("country", sa.String(64), nullable=False),
        sa.Column("asset_type", sa.String(64), nullable=False),
        sa.Column("figi_code", sa.String(32), nullable=False),
        sa.Column("cfi_code", sa.String(16), nullable=False),
        sa.Column("isin", sa.String(16), nullable=False),
        sa.Column("cusip", sa.String(16), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_equities_symbol", "equities", ["symbol"])
    op.create_index("idx_equities_name", "equities", ["name"])

    op.create_table(
        "exchanges",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(256), nullable=False),
        sa.Column("name", sa.String(128), nullable=False),
        sa.Column("code", sa.String(16), nullable=False),
        sa.Column("country", sa.String(64), nullable=False),
        sa.Column("timezone", sa.String(64), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_exchanges_code", "exchanges", ["code"])

    op.create_table(
        "symbol_aliases",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("symbol", sa.String(32), nullable=False),
        sa.Column("name", sa.String(256), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("idx_symbol_aliases_symbol", "symbol_aliases", ["symbol"])


def downgrade() -> None:
    for name in (
        "symbol_aliases",
        "exchanges",
        "equities",
        "active_symbols",
        "recurring_events",
        "drop_events",
        "jump_events",
        "daily_bars",
        "bars",
    ):
        op.drop_table(name)
