"""create currencies and fx_usd_rates

Revision ID: 202602111800
Revises:
Create Date: 2026-02-11 18:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202602111800"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "currencies",
        sa.Column("code", sa.String(length=5), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("symbol", sa.String(length=10), nullable=False),
        sa.Column(
            "type",
            sa.Enum("fiat", "crypto", name="currencytype"),
            nullable=False,
            server_default="fiat",
        ),
    )

    op.create_table(
        "fx_usd_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("currency_code", sa.String(length=5), nullable=False),
        sa.Column("effective_date", sa.Date(), nullable=False),
        sa.Column("rate", sa.Numeric(28, 12), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("rate > 0", name="ck_fx_usd_rates_rate_positive"),
    )
    op.create_index(
        "ix_fx_usd_rates_currency_code_effective_date",
        "fx_usd_rates",
        ["currency_code", "effective_date"],
        unique=True,
    )


def downgrade() -> None:
    op.drop_index(
        "ix_fx_usd_rates_currency_code_effective_date", table_name="fx_usd_rates"
    )
    op.drop_table("fx_usd_rates")
    op.drop_table("currencies")
