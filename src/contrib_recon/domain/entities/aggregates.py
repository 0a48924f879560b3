# src/contrib_recon/domain/entities/aggregates.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Aggregate records and bucket keys.

Purpose:
    Define the join key shared by both upstreams, the per-source aggregate
    record reported by a fetcher, and the summed bucket totals produced by
    the bucketizer.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind


def normalize_rate(rate: Decimal | str) -> Decimal:
    """Return a canonical Decimal for a contribution rate.

    ``Decimal("0.11")`` and ``Decimal("0.1100")`` normalize to the same value
    so that both upstreams land on the same bucket key.

    Raises:
        ValueError: If the rate is negative or not finite.
    """
    dec = rate if isinstance(rate, Decimal) else Decimal(rate)
    if not dec.is_finite() or dec < 0:
        raise ValueError(f"invalid rate {rate!r}")
    normalized = dec.normalize()
    # normalize() may yield exponent notation for round values (e.g. 1E+1).
    if normalized == normalized.to_integral_value():
        try:
            return normalized.quantize(Decimal(1))
        except ArithmeticError as exc:
            raise ValueError(f"rate {rate!r} is out of range") from exc
    return normalized


@dataclass(frozen=True, slots=True, order=True)
class BucketKey:
    """Composite join key: one bucket per entity, period and applied rate.

    Attributes:
        entity_ref: Reference of the reconciled entity (e.g., an employer id).
        period: Accounting period.
        rate: Applied contribution rate as an exact decimal fraction.
    """

    entity_ref: str
    period: Period
    rate: Decimal

    def __post_init__(self) -> None:
        if not self.entity_ref or not self.entity_ref.strip():
            raise ValueError("entity_ref must not be empty")
        object.__setattr__(self, "rate", normalize_rate(self.rate))


@dataclass(frozen=True, slots=True)
class AggregateRecord:
    """Summed amounts for one bucket key as reported by one source.

    Attributes:
        key: Bucket the amounts belong to.
        source: Upstream that reported the amounts.
        remuneration: Summed remuneration (contribution base).
        contribution: Summed contribution.
    """

    key: BucketKey
    source: SourceKind
    remuneration: MonetaryAmount
    contribution: MonetaryAmount


@dataclass(frozen=True, slots=True)
class BucketTotals:
    """Summed (remuneration, contribution) pair for one bucket on one side."""

    remuneration: MonetaryAmount
    contribution: MonetaryAmount

    @classmethod
    def zero(cls, currency: str) -> BucketTotals:
        return cls(MonetaryAmount.zero(currency), MonetaryAmount.zero(currency))

    def plus(self, remuneration: MonetaryAmount, contribution: MonetaryAmount) -> BucketTotals:
        """Return new totals with the given amounts added."""
        return BucketTotals(
            remuneration=self.remuneration.add(remuneration),
            contribution=self.contribution.add(contribution),
        )


__all__ = ["normalize_rate", "BucketKey", "AggregateRecord", "BucketTotals"]
