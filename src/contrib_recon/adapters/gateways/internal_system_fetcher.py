# src/contrib_recon/adapters/gateways/internal_system_fetcher.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Internal system source fetcher.

Purpose:
    Adapt the period-grouped internal system client to the shared
    :class:`SourceFetcher` capability by flattening each period's rate lines
    into aggregate records.

Layer:
    adapters/gateways
"""

from __future__ import annotations

from collections.abc import Sequence

from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.interfaces.gateways.source_clients import InternalSystemClient


class InternalSystemFetcher:
    """SourceFetcher over the internal system of record."""

    def __init__(self, client: InternalSystemClient) -> None:
        self._client = client

    @property
    def source(self) -> SourceKind:
        return SourceKind.INTERNAL

    async def fetch(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[AggregateRecord]:
        """Fetch and flatten period-grouped rows, keeping periods within ``[start, end)``."""
        rows = await self._client.aggregate_by_period(entity_ref=entity_ref, start=start, end=end)
        return [
            AggregateRecord(
                key=BucketKey(entity_ref=entity_ref, period=row.period, rate=line.rate),
                source=SourceKind.INTERNAL,
                remuneration=line.remuneration,
                contribution=line.contribution,
            )
            for row in rows
            for line in row.lines
            if start <= row.period < end
        ]


__all__ = ["InternalSystemFetcher"]
