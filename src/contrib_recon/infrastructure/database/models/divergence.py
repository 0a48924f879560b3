# src/contrib_recon/infrastructure/database/models/divergence.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""ORM model for persisted divergences.

Purpose:
    One row per divergence identity ``(entity_ref, period, rate)``. Amounts
    are stored as integer minor units in a single currency column; the rate
    is stored as its canonical decimal text so that lookups by identity are
    exact on every dialect.

Layer:
    infrastructure/database/models
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, CheckConstraint, DateTime, Index, SmallInteger, String
from sqlalchemy import UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from contrib_recon.infrastructure.database.models.base import (
    Base,
    IdentityMixin,
    ReprMixin,
    TimestampMixin,
)


class DivergenceRow(IdentityMixin, TimestampMixin, ReprMixin, Base):
    """Row in ``recon_divergences``."""

    __tablename__ = "recon_divergences"
    __repr_columns__ = ("entity_ref", "period_year", "period_month", "rate", "status")
    __table_args__ = (
        UniqueConstraint(
            "entity_ref",
            "period_year",
            "period_month",
            "rate",
            name="uq_recon_divergences_identity",
        ),
        CheckConstraint("period_month BETWEEN 1 AND 12", name="period_month_range"),
        CheckConstraint("status IN ('OPEN', 'RESOLVED')", name="status_valid"),
        Index("ix_recon_divergences_status_entity", "status", "entity_ref"),
    )

    entity_ref: Mapped[str] = mapped_column(String(128), nullable=False)
    period_year: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    period_month: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    rate: Mapped[str] = mapped_column(String(32), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    remuneration_a: Mapped[int] = mapped_column(BigInteger, nullable=False)
    remuneration_b: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contribution_a: Mapped[int] = mapped_column(BigInteger, nullable=False)
    contribution_b: Mapped[int] = mapped_column(BigInteger, nullable=False)
    difference: Mapped[int] = mapped_column(BigInteger, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


__all__ = ["DivergenceRow"]
