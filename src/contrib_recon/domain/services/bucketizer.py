# src/contrib_recon/domain/services/bucketizer.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Bucketizer.

Purpose:
    Normalize aggregate records from both upstreams into a common
    ``BucketKey -> BucketTotals`` key space, one mapping per side.

Layer:
    domain/services

Notes:
    - Summation is exact (integer minor units).
    - No assumption is made about either upstream's native grouping; several
      records for the same key are simply summed.
    - Keys absent on one side are reported as zero totals by :meth:`BucketizedRun.pair`.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey, BucketTotals
from contrib_recon.domain.enums.reconciliation import SourceKind


@dataclass(frozen=True, slots=True)
class BucketizedRun:
    """Bucketed totals for both sides of one run.

    Attributes:
        side_a: Internal-system totals keyed by bucket.
        side_b: External-portal totals keyed by bucket.
        currency: Currency used for zero-filled absent sides.
    """

    side_a: Mapping[BucketKey, BucketTotals]
    side_b: Mapping[BucketKey, BucketTotals]
    currency: str

    def keys(self) -> tuple[BucketKey, ...]:
        """Return the sorted union of keys present on either side."""
        return tuple(sorted(set(self.side_a) | set(self.side_b)))

    def pair(self, key: BucketKey) -> tuple[BucketTotals, BucketTotals]:
        """Return ``(side_a, side_b)`` totals for ``key``, zero-filling absences."""
        zero = BucketTotals.zero(self.currency)
        return self.side_a.get(key, zero), self.side_b.get(key, zero)


def bucketize(records: Iterable[AggregateRecord], *, currency: str) -> BucketizedRun:
    """Group records by source and bucket key, summing amounts exactly.

    Args:
        records: Records from both sources for a run.
        currency: Expected currency of every record.

    Returns:
        BucketizedRun with one mapping per side.

    Raises:
        CurrencyMismatchError: If any record is not in ``currency``.
    """
    sides: dict[SourceKind, dict[BucketKey, BucketTotals]] = {
        SourceKind.INTERNAL: {},
        SourceKind.PORTAL: {},
    }
    zero = BucketTotals.zero(currency)
    for record in records:
        side = sides[record.source]
        current = side.get(record.key, zero)
        side[record.key] = current.plus(record.remuneration, record.contribution)

    return BucketizedRun(
        side_a=sides[SourceKind.INTERNAL],
        side_b=sides[SourceKind.PORTAL],
        currency=currency,
    )


__all__ = ["BucketizedRun", "bucketize"]
