"""create_delivery_spike_tables

Revision ID: a3f1c9d2e7b4
Revises:
Create Date: 2025-07-04 21:00:52.000000
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "a3f1c9d2e7b4"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "master_stocks",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(length=50), nullable=False),
        sa.Column("series", sa.String(length=10), nullable=False, server_default="EQ"),
        sa.Column("company_name", sa.String(length=255)),
        sa.Column("isin", sa.String(length=20)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("symbol", "series", name="uq_master_stocks_symbol_series"),
    )
    op.create_index("ix_master_stocks_symbol", "master_stocks", ["symbol"])

    op.create_table(
        "bhavcopy_data",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("master_stock_id", sa.Integer()),
        sa.Column("symbol", sa.String(length=50), nullable=False),
        sa.Column("series", sa.String(length=10), nullable=False),
        sa.Column("trade_date", sa.Date(), nullable=False),
        sa.Column("prev_close", sa.Numeric(precision=10, scale=2)),
        sa.Column("open_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("high_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("low_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("last_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("close_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("avg_price", sa.Numeric(precision=10, scale=2)),
        sa.Column("total_traded_qty", sa.BigInteger()),
        sa.Column("turnover_lacs", sa.Numeric(precision=14, scale=2)),
        sa.Column("no_of_trades", sa.BigInteger()),
        sa.Column("deliv_qty", sa.BigInteger()),
        sa.Column("deliv_per", sa.Numeric(precision=5, scale=2)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("symbol", "series", "trade_date", name="uq_bhavcopy_data_symbol_series_date"),
    )
    op.create_index("ix_bhavcopy_data_master_stock_id", "bhavcopy_data", ["master_stock_id"])
    op.create_index("ix_bhavcopy_data_trade_date", "bhavcopy_data", ["trade_date"])
    op.create_index("ix_bhavcopy_data_symbol_trade_date", "bhavcopy_data", ["symbol", "trade_date"])

    op.create_table(
        "delivery_spike_counts",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(length=50), nullable=False),
        sa.Column("spikes_1w", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spikes_1m", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spikes_3m", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("spikes_6m", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_delivery_spike_counts_symbol", "delivery_spike_counts", ["symbol"], unique=True)
    op.create_index("ix_delivery_spike_counts_spikes_1w", "delivery_spike_counts", ["spikes_1w"])


def downgrade() -> None:
    op.drop_index("ix_delivery_spike_counts_spikes_1w", table_name="delivery_spike_counts")
    op.drop_index("ix_delivery_spike_counts_symbol", table_name="delivery_spike_counts")
    op.drop_table("delivery_spike_counts")

    op.drop_index("ix_bhavcopy_data_symbol_trade_date", table_name="bhavcopy_data")
    op.drop_index("ix_bhavcopy_data_trade_date", table_name="bhavcopy_data")
    op.drop_index("ix_bhavcopy_data_master_stock_id", table_name="bhavcopy_data")
    op.drop_table("bhavcopy_data")

    op.drop_index("ix_master_stocks_symbol", table_name="master_stocks")
    op.drop_table("master_stocks")
