# src/contrib_recon/domain/interfaces/gateways/source_clients.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Upstream client ports.

Purpose:
    Describe the two external collaborators the engine consumes but does not
    implement, together with the native row shapes they return:

    * Internal system of record: "aggregate by period for a date range".
    * External portal: "aggregate by rate for a date range".

Layer:
    domain/interfaces/gateways

Notes:
    Implementations must raise :class:`TransientFailure` for retryable
    conditions and :class:`PermanentFailure` otherwise. Test doubles satisfy
    these protocols structurally.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period


@dataclass(frozen=True, slots=True)
class RateLine:
    """Amounts for one applied rate inside a period-grouped row."""

    rate: Decimal
    remuneration: MonetaryAmount
    contribution: MonetaryAmount


@dataclass(frozen=True, slots=True)
class PeriodAggregate:
    """Internal-system row: one accounting period with its per-rate lines."""

    period: Period
    lines: Sequence[RateLine]


@dataclass(frozen=True, slots=True)
class PeriodLine:
    """Amounts for one period inside a rate-grouped row."""

    period: Period
    remuneration: MonetaryAmount
    contribution: MonetaryAmount


@dataclass(frozen=True, slots=True)
class RateAggregate:
    """External-portal row: one applied rate with its per-period lines."""

    rate: Decimal
    lines: Sequence[PeriodLine]


class InternalSystemClient(Protocol):
    """Port for the internal system of record."""

    async def aggregate_by_period(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[PeriodAggregate]:
        """Return period-grouped aggregates for ``[start, end)``."""
        raise NotImplementedError


class ExternalPortalClient(Protocol):
    """Port for the external portal."""

    async def aggregate_by_rate(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[RateAggregate]:
        """Return rate-grouped aggregates for ``[start, end)``."""
        raise NotImplementedError


__all__ = [
    "RateLine",
    "PeriodAggregate",
    "PeriodLine",
    "RateAggregate",
    "InternalSystemClient",
    "ExternalPortalClient",
]
