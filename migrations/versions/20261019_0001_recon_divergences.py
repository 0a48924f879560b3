# migrations/versions/20261019_0001_recon_divergences.py
"""Create recon_divergences.

Revision ID: 20261019_0001_recon_divergences
Revises:
Create Date: 2026-10-19

This migration:
  * Adds recon_divergences, one row per (entity_ref, period, rate) identity.
  * Amounts are integer minor units; the rate is canonical decimal text.
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "20261019_0001_recon_divergences"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def upgrade() -> None:
    """Apply the migration."""
    op.create_table(
        "recon_divergences",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("entity_ref", sa.String(length=128), nullable=False),
        sa.Column("period_year", sa.SmallInteger(), nullable=False),
        sa.Column("period_month", sa.SmallInteger(), nullable=False),
        sa.Column("rate", sa.String(length=32), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("remuneration_a", sa.BigInteger(), nullable=False),
        sa.Column("remuneration_b", sa.BigInteger(), nullable=False),
        sa.Column("contribution_a", sa.BigInteger(), nullable=False),
        sa.Column("contribution_b", sa.BigInteger(), nullable=False),
        sa.Column("difference", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_recon_divergences"),
        sa.UniqueConstraint(
            "entity_ref",
            "period_year",
            "period_month",
            "rate",
            name="uq_recon_divergences_identity",
        ),
        sa.CheckConstraint(
            "period_month BETWEEN 1 AND 12",
            name="ck_recon_divergences_period_month_range",
        ),
        sa.CheckConstraint(
            "status IN ('OPEN', 'RESOLVED')",
            name="ck_recon_divergences_status_valid",
        ),
    )
    op.create_index(
        "ix_recon_divergences_status_entity",
        "recon_divergences",
        ["status", "entity_ref"],
    )


def downgrade() -> None:
    """Revert the migration."""
    op.drop_index("ix_recon_divergences_status_entity", table_name="recon_divergences")
    op.drop_table("recon_divergences")
