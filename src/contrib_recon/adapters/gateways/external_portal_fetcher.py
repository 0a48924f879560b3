# src/contrib_recon/adapters/gateways/external_portal_fetcher.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""External portal source fetcher.

Purpose:
    Adapt the rate-grouped external portal client to the shared
    :class:`SourceFetcher` capability by flattening each rate's period lines
    into aggregate records.

Layer:
    adapters/gateways
"""

from __future__ import annotations

from collections.abc import Sequence

from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.interfaces.gateways.source_clients import ExternalPortalClient


class ExternalPortalFetcher:
    """SourceFetcher over the external portal."""

    def __init__(self, client: ExternalPortalClient) -> None:
        self._client = client

    @property
    def source(self) -> SourceKind:
        return SourceKind.PORTAL

    async def fetch(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[AggregateRecord]:
        """Fetch and flatten rate-grouped rows, keeping lines within ``[start, end)``."""
        rows = await self._client.aggregate_by_rate(entity_ref=entity_ref, start=start, end=end)
        return [
            AggregateRecord(
                key=BucketKey(entity_ref=entity_ref, period=line.period, rate=row.rate),
                source=SourceKind.PORTAL,
                remuneration=line.remuneration,
                contribution=line.contribution,
            )
            for row in rows
            for line in row.lines
            if start <= line.period < end
        ]


__all__ = ["ExternalPortalFetcher"]
