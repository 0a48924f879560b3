# src/contrib_recon/application/schemas/dto/reconciliation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Reconciliation run DTOs.

Purpose:
    Application-layer result shapes returned by the reconciliation use cases.
    Transport-agnostic: the CLI (or any API layer) renders these.

Layer:
    application/schemas/dto
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from contrib_recon.domain.entities.divergence import Divergence
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus


@dataclass(frozen=True, slots=True)
class EntityFailure:
    """One entity that could not be reconciled in a run.

    Attributes:
        entity_ref: Entity reference.
        code: Stable error code of the failure (e.g. ``SOURCE_TRANSIENT``).
        message: Human-readable failure message.
    """

    entity_ref: str
    code: str
    message: str


@dataclass(frozen=True, slots=True)
class ReconciliationReport:
    """Partial-success summary of one reconciliation run.

    Attributes:
        run_id: UUID string identifying the run.
        periods: Periods covered, oldest to newest.
        started_at: Run start (UTC).
        finished_at: Run end (UTC).
        divergences: Divergences produced, updated, reopened or resolved by
            this run. Empty on an idempotent re-run.
        unchanged: Count of detected divergences already stored identically.
        succeeded: Entities fully reconciled and persisted.
        failed: Entities whose fetch, comparison or persistence failed.
    """

    run_id: str
    periods: tuple[Period, ...]
    started_at: datetime
    finished_at: datetime
    divergences: tuple[Divergence, ...] = ()
    unchanged: int = 0
    succeeded: tuple[str, ...] = ()
    failed: tuple[EntityFailure, ...] = ()

    @property
    def succeeded_count(self) -> int:
        return len(self.succeeded)

    @property
    def failed_count(self) -> int:
        return len(self.failed)

    @property
    def failed_entities(self) -> tuple[str, ...]:
        return tuple(f.entity_ref for f in self.failed)

    @property
    def is_partial(self) -> bool:
        """True when at least one entity failed."""
        return bool(self.failed)

    @property
    def opened(self) -> tuple[Divergence, ...]:
        return tuple(d for d in self.divergences if d.status is DivergenceStatus.OPEN)

    @property
    def resolved(self) -> tuple[Divergence, ...]:
        return tuple(d for d in self.divergences if d.status is DivergenceStatus.RESOLVED)

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serializable summary (used for logs and CLI output)."""
        return {
            "run_id": self.run_id,
            "periods": [str(p) for p in self.periods],
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "succeeded": self.succeeded_count,
            "failed": self.failed_count,
            "failed_entities": [
                {"entity_ref": f.entity_ref, "code": f.code, "message": f.message}
                for f in self.failed
            ],
            "changed": len(self.divergences),
            "opened": len(self.opened),
            "resolved": len(self.resolved),
            "unchanged": self.unchanged,
        }


def divergence_to_dict(divergence: Divergence) -> dict[str, Any]:
    """Render a divergence as a JSON-serializable mapping (major units as strings)."""
    ident = divergence.identity
    return {
        "entity_ref": ident.entity_ref,
        "period": str(ident.period),
        "rate": str(ident.rate),
        "currency": divergence.difference.currency,
        "remuneration_a": str(divergence.remuneration_a.to_decimal()),
        "remuneration_b": str(divergence.remuneration_b.to_decimal()),
        "contribution_a": str(divergence.contribution_a.to_decimal()),
        "contribution_b": str(divergence.contribution_b.to_decimal()),
        "difference": str(divergence.difference.to_decimal()),
        "status": divergence.status.value,
        "detected_at": divergence.detected_at.isoformat(),
        "resolved_at": divergence.resolved_at.isoformat() if divergence.resolved_at else None,
    }


__all__ = ["EntityFailure", "ReconciliationReport", "divergence_to_dict"]
