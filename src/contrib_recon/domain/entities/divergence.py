# src/contrib_recon/domain/entities/divergence.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Divergence entity.

Purpose:
    A persisted record of a detected mismatch between the two sources for one
    bucket. Identity is ``(entity_ref, period, rate)``; at most one record
    exists per identity and records are never deleted, only resolved.

Layer:
    domain/entities

State machine:
    ABSENT -> OPEN (first detection)
    OPEN -> OPEN (re-detected with different amounts)
    OPEN -> RESOLVED (re-run finds the bucket within tolerance)
    RESOLVED -> OPEN (re-detected by a later run)
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal

from contrib_recon.domain.entities.aggregates import BucketKey
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus


@dataclass(frozen=True, slots=True, order=True)
class DivergenceIdentity:
    """Identity tuple of a divergence."""

    entity_ref: str
    period: Period
    rate: Decimal

    @classmethod
    def from_key(cls, key: BucketKey) -> DivergenceIdentity:
        return cls(entity_ref=key.entity_ref, period=key.period, rate=key.rate)


@dataclass(frozen=True, slots=True)
class Divergence:
    """Detected mismatch for one bucket.

    Attributes:
        identity: ``(entity_ref, period, rate)``.
        remuneration_a: Remuneration total reported by the internal system.
        remuneration_b: Remuneration total reported by the external portal.
        contribution_a: Contribution total reported by the internal system.
        contribution_b: Contribution total reported by the external portal.
        difference: Signed contribution difference ``contribution_b - contribution_a``.
        detected_at: When the current amounts were detected.
        status: OPEN or RESOLVED.
        resolved_at: When the divergence was resolved, if it is.
    """

    identity: DivergenceIdentity
    remuneration_a: MonetaryAmount
    remuneration_b: MonetaryAmount
    contribution_a: MonetaryAmount
    contribution_b: MonetaryAmount
    difference: MonetaryAmount
    detected_at: datetime
    status: DivergenceStatus = DivergenceStatus.OPEN
    resolved_at: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.status is DivergenceStatus.OPEN

    def same_state(self, other: Divergence) -> bool:
        """Return True if ``other`` carries the same amounts and status.

        Timestamps are excluded: a re-detection of identical amounts is not a
        change.
        """
        return (
            self.identity == other.identity
            and self.remuneration_a == other.remuneration_a
            and self.remuneration_b == other.remuneration_b
            and self.contribution_a == other.contribution_a
            and self.contribution_b == other.contribution_b
            and self.difference == other.difference
            and self.status == other.status
        )

    def resolve(self, at: datetime) -> Divergence:
        """Return a RESOLVED copy of this divergence."""
        return replace(self, status=DivergenceStatus.RESOLVED, resolved_at=at)


__all__ = ["DivergenceIdentity", "Divergence"]
