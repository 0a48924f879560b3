# src/contrib_recon/domain/services/comparator.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Tolerance-based comparator.

Purpose:
    Decide whether two bucketed totals agree and, when they do not, build a
    fully populated :class:`Divergence`.

Layer:
    domain/services

Notes:
    Tolerance is an absolute amount in minor units, never a relative
    percentage: a large absolute error must not pass because the totals are
    large.
"""

from __future__ import annotations

from datetime import UTC, datetime

from contrib_recon.domain.entities.aggregates import BucketKey, BucketTotals
from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.services.bucketizer import BucketizedRun


def is_close(a: MonetaryAmount, b: MonetaryAmount, tolerance: int) -> bool:
    """Return True iff ``|a - b| <= tolerance`` (minor units)."""
    return a.subtract(b).abs().minor_units <= tolerance


def compare(
    key: BucketKey,
    side_a: BucketTotals,
    side_b: BucketTotals,
    tolerance: int,
    *,
    detected_at: datetime | None = None,
) -> Divergence | None:
    """Compare one bucket across sides.

    Args:
        key: Bucket being compared.
        side_a: Internal-system totals.
        side_b: External-portal totals.
        tolerance: Maximum absolute difference in minor units treated as equal.
        detected_at: Detection timestamp; defaults to now (UTC).

    Returns:
        ``None`` when both remuneration and contribution are within tolerance,
        otherwise an OPEN divergence.

    Raises:
        ValueError: If ``tolerance`` is negative.
        CurrencyMismatchError: If the sides use different currencies.
    """
    if tolerance < 0:
        raise ValueError("tolerance must be >= 0")

    if is_close(side_a.remuneration, side_b.remuneration, tolerance) and is_close(
        side_a.contribution, side_b.contribution, tolerance
    ):
        return None

    return Divergence(
        identity=DivergenceIdentity.from_key(key),
        remuneration_a=side_a.remuneration,
        remuneration_b=side_b.remuneration,
        contribution_a=side_a.contribution,
        contribution_b=side_b.contribution,
        difference=side_b.contribution.subtract(side_a.contribution),
        detected_at=detected_at or datetime.now(UTC),
    )


def compare_all(
    run: BucketizedRun,
    tolerance: int,
    *,
    detected_at: datetime | None = None,
) -> tuple[Divergence, ...]:
    """Compare every key present on either side of ``run``.

    Keys missing on one side are compared against zero totals, so a complete
    absence surfaces as a divergence.
    """
    at = detected_at or datetime.now(UTC)
    out: list[Divergence] = []
    for key in run.keys():
        side_a, side_b = run.pair(key)
        divergence = compare(key, side_a, side_b, tolerance, detected_at=at)
        if divergence is not None:
            out.append(divergence)
    return tuple(out)


__all__ = ["is_close", "compare", "compare_all"]
