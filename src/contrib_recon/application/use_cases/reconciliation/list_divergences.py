# src/contrib_recon/application/use_cases/reconciliation/list_divergences.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: list persisted divergences.

Layer:
    application/use_cases/reconciliation
"""

from __future__ import annotations

from contrib_recon.application.uow import UnitOfWork
from contrib_recon.domain.entities.divergence import Divergence
from contrib_recon.domain.enums.reconciliation import DivergenceStatus

_MAX_LIMIT = 5000


class ListDivergencesUseCase:
    """Read-only listing of divergences in deterministic order."""

    def __init__(self, *, uow: UnitOfWork) -> None:
        self._uow = uow

    async def execute(
        self,
        *,
        status: DivergenceStatus | None = None,
        entity_ref: str | None = None,
        limit: int = 500,
    ) -> tuple[Divergence, ...]:
        """Return divergences filtered by status and/or entity.

        Raises:
            ValueError: If ``limit`` is outside 1..5000.
        """
        if not 1 <= limit <= _MAX_LIMIT:
            raise ValueError(f"limit must be between 1 and {_MAX_LIMIT}")
        async with self._uow as tx:
            rows = await tx.divergence_repo.list(status=status, entity_ref=entity_ref, limit=limit)
        return tuple(rows)


__all__ = ["ListDivergencesUseCase"]
