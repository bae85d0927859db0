# ruff: noqa: I001
"""Transactions and detected subscriptions.

Revision ID: 0001_sd_core
Revises: None
Create Date: 2025-11-02
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_sd_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # sd_transactions
    op.create_table(
        "sd_transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("external_id", sa.Text(), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("merchant", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("source", sa.Text(), nullable=False, server_default=sa.text("'manual'")),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("user_id", "external_id", name="uq_sd_tx_user_external_id"),
        sa.CheckConstraint("source in ('plaid','manual','statement')", name="ck_sd_tx_source"),
    )
    op.create_index("ix_sd_tx_user_date", "sd_transactions", ["user_id", "date"], unique=False)

    # sd_subscriptions: one row per (user, normalized merchant), refreshed by detection
    op.create_table(
        "sd_subscriptions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("merchant", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(18, 2), nullable=False),
        sa.Column("frequency", sa.Text(), nullable=False),
        sa.Column("confidence", sa.Numeric(5, 4), nullable=False),
        sa.Column("next_billing_date", sa.Date(), nullable=False),
        sa.Column("status", sa.Text(), nullable=False, server_default=sa.text("'active'")),
        sa.Column(
            "detected_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.UniqueConstraint("user_id", "merchant", name="uq_sd_sub_user_merchant"),
        sa.CheckConstraint("frequency in ('monthly','yearly')", name="ck_sd_sub_frequency"),
        sa.CheckConstraint(
            "status in ('active','cancelled','paused')",
            name="ck_sd_sub_status",
        ),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_sd_sub_confidence"),
    )


def downgrade() -> None:
    op.drop_table("sd_subscriptions")
    op.drop_index("ix_sd_tx_user_date", table_name="sd_transactions")
    op.drop_table("sd_transactions")
