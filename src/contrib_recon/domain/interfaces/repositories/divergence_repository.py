# src/contrib_recon/domain/interfaces/repositories/divergence_repository.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Divergence repository interface.

Purpose:
    Define persistence and query operations for divergences. Exactly one
    record exists per identity; records are never deleted.

Layer:
    domain/interfaces/repositories

Notes:
    Implementations live in the adapters layer and must translate driver
    errors into domain exceptions:
        * unique-identity collisions on insert -> PersistenceConflict
        * unreachable store -> StoreUnavailableError
    Repositories never commit; the UnitOfWork owns the transaction.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Protocol

from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus


class DivergenceRepository(Protocol):
    """Protocol for repositories managing divergence records."""

    async def get(self, identity: DivergenceIdentity) -> Divergence | None:
        """Return the record for ``identity``, or None."""
        raise NotImplementedError

    async def add(self, divergence: Divergence) -> None:
        """Insert a new record.

        Raises:
            PersistenceConflict: If a record with the same identity already exists.
        """
        raise NotImplementedError

    async def update(self, divergence: Divergence) -> None:
        """Overwrite the record with the same identity in place."""
        raise NotImplementedError

    async def list_open(
        self, *, entity_ref: str, periods: Sequence[Period]
    ) -> Sequence[Divergence]:
        """Return OPEN records for an entity restricted to ``periods``."""
        raise NotImplementedError

    async def list(
        self,
        *,
        status: DivergenceStatus | None = None,
        entity_ref: str | None = None,
        limit: int = 500,
    ) -> Sequence[Divergence]:
        """Return records in deterministic order (entity, period, rate)."""
        raise NotImplementedError


__all__ = ["DivergenceRepository"]
