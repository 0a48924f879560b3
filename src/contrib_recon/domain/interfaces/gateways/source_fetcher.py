# src/contrib_recon/domain/interfaces/gateways/source_fetcher.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Source fetcher capability.

Purpose:
    Shared capability implemented once per upstream: fetch aggregate records
    for a half-open ``[start, end)`` period range.

Layer:
    domain/interfaces/gateways
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from contrib_recon.domain.entities.aggregates import AggregateRecord
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind


class SourceFetcher(Protocol):
    """Capability: fetch aggregates for one entity and period range."""

    @property
    def source(self) -> SourceKind:
        """Upstream this fetcher reads from."""
        raise NotImplementedError

    async def fetch(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[AggregateRecord]:
        """Return records for ``entity_ref`` within ``[start, end)``.

        Raises:
            TransientFailure: Retryable upstream failure.
            PermanentFailure: Non-retryable upstream failure.
        """
        raise NotImplementedError


class FetchExecutor(Protocol):
    """Capability: run a fetcher call under concurrency and retry control."""

    async def fetch(
        self,
        fetcher: SourceFetcher,
        *,
        entity_ref: str,
        start: Period,
        end: Period,
    ) -> Sequence[AggregateRecord]:
        """Call ``fetcher.fetch`` with the executor's bounds and retry policy."""
        raise NotImplementedError


__all__ = ["SourceFetcher", "FetchExecutor"]
