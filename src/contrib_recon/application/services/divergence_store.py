# src/contrib_recon/application/services/divergence_store.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Divergence store (application layer).

Purpose:
    Idempotent persistence of divergences on top of the repository port:

    * ``upsert_if_changed`` writes only when the stored state differs, so a
      full re-run with unchanged upstream data produces no writes.
    * ``resolve_missing`` marks OPEN divergences that a run no longer detects
      as RESOLVED. Records are never deleted.

Layer:
    application/services

Notes:
    - No commit/rollback; callers control transactions via UnitOfWork.
    - A :class:`PersistenceConflict` (another writer inserted the same
      identity first) is retried once with a fresh read.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Sequence
from dataclasses import replace
from datetime import datetime

from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus
from contrib_recon.domain.exceptions.reconciliation import PersistenceConflict
from contrib_recon.domain.interfaces.repositories.divergence_repository import (
    DivergenceRepository,
)

logger = logging.getLogger(__name__)

_MAX_CONFLICT_RETRIES = 1


class DivergenceStore:
    """Idempotent upsert/resolve operations over a divergence repository."""

    def __init__(self, repository: DivergenceRepository) -> None:
        self._repo = repository

    async def upsert_if_changed(self, divergence: Divergence) -> tuple[Divergence, bool]:
        """Insert or overwrite ``divergence`` only when its state changed.

        Args:
            divergence: Freshly detected (OPEN) divergence.

        Returns:
            ``(stored, was_changed)``. ``stored`` is the record now persisted;
            ``was_changed`` is False when the existing record was field-equal
            and no write happened.

        Raises:
            PersistenceConflict: If the identity is still contested after one retry.
        """
        incoming = replace(divergence, status=DivergenceStatus.OPEN, resolved_at=None)
        retries = 0
        while True:
            existing = await self._repo.get(incoming.identity)
            try:
                if existing is None:
                    await self._repo.add(incoming)
                    return incoming, True
                if existing.same_state(incoming):
                    return existing, False
                await self._repo.update(incoming)
                if not existing.is_open:
                    logger.info(
                        "divergence.reopened",
                        extra={
                            "entity_ref": incoming.identity.entity_ref,
                            "period": str(incoming.identity.period),
                            "rate": str(incoming.identity.rate),
                        },
                    )
                return incoming, True
            except PersistenceConflict:
                if retries >= _MAX_CONFLICT_RETRIES:
                    raise
                retries += 1
                logger.warning(
                    "divergence.upsert_conflict_retry",
                    extra={
                        "entity_ref": incoming.identity.entity_ref,
                        "period": str(incoming.identity.period),
                        "rate": str(incoming.identity.rate),
                    },
                )

    async def resolve_missing(
        self,
        *,
        entity_ref: str,
        periods: Sequence[Period],
        still_divergent: Collection[DivergenceIdentity],
        at: datetime,
    ) -> list[Divergence]:
        """Resolve OPEN divergences for ``entity_ref`` that were not re-detected.

        Only identities within ``periods`` are considered, so a run over a
        shorter window never resolves older divergences.

        Args:
            entity_ref: Entity whose divergences are examined.
            periods: Periods covered by the current run.
            still_divergent: Identities detected as divergent by the current run.
            at: Resolution timestamp.

        Returns:
            Divergences transitioned to RESOLVED by this call.
        """
        if not periods:
            return []
        keep = set(still_divergent)
        resolved: list[Divergence] = []
        for current in await self._repo.list_open(entity_ref=entity_ref, periods=periods):
            if current.identity in keep:
                continue
            closed = current.resolve(at)
            await self._repo.update(closed)
            resolved.append(closed)
        return resolved


__all__ = ["DivergenceStore"]
