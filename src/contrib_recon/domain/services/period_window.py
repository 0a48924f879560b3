# src/contrib_recon/domain/services/period_window.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Closed-period window.

Purpose:
    Compute the closed accounting periods a reconciliation run covers.

Layer:
    domain/services

Notes:
    Pure function of the reference date; no logging, no I/O.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, date, datetime

from contrib_recon.domain.entities.period import Period


def closed_periods(n: int, *, today: date | None = None) -> tuple[Period, ...]:
    """Return the last ``n`` periods strictly preceding the current month.

    Args:
        n: Number of periods. ``n <= 0`` yields an empty tuple.
        today: Reference date; defaults to the current UTC date.

    Returns:
        Periods ordered oldest to newest, contiguous and without duplicates.
    """
    if n <= 0:
        return ()
    current = Period.from_date(today or datetime.now(UTC).date())
    out: list[Period] = []
    cursor = current.previous()
    for _ in range(n):
        out.append(cursor)
        cursor = cursor.previous()
    out.reverse()
    return tuple(out)


def period_range(periods: Sequence[Period]) -> tuple[Period, Period]:
    """Return the half-open ``[start, end)`` range covering ``periods``.

    Raises:
        ValueError: If ``periods`` is empty.
    """
    if not periods:
        raise ValueError("periods must not be empty")
    return min(periods), max(periods).next()


__all__ = ["closed_periods", "period_range"]
