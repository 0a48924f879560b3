# src/contrib_recon/application/use_cases/reconciliation/reconcile_contributions.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Use case: reconcile contributions across the two upstream sources.

Purpose:
    Orchestrate one reconciliation run:

        Period Window -> Source Fetchers (under the fetch executor)
        -> Bucketizer -> Comparator -> Divergence Store

Layer:
    application/use_cases/reconciliation

Notes:
    - Entities are fetched and compared concurrently. A fetch or comparison
      failure is recorded against that entity only; the run reports partial
      success instead of failing atomically.
    - Nothing is written until every comparison has finished. All writes of
      a run share one UnitOfWork, so a cancelled run (or a fatal store error)
      persists nothing. Each entity writes inside its own savepoint, so an
      entity that hits a persistence conflict leaves no partial writes behind.
    - StoreUnavailableError is the only run-fatal error and is re-raised.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any, cast
from uuid import uuid4

from contrib_recon.application.schemas.dto.reconciliation import (
    EntityFailure,
    ReconciliationReport,
)
from contrib_recon.application.services.divergence_store import DivergenceStore
from contrib_recon.application.uow import UnitOfWork, run_in_uow
from contrib_recon.domain.entities.divergence import Divergence
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.exceptions.base import DomainError
from contrib_recon.domain.exceptions.reconciliation import PersistenceConflict
from contrib_recon.domain.interfaces.gateways.source_fetcher import (
    FetchExecutor,
    SourceFetcher,
)
from contrib_recon.domain.services.bucketizer import bucketize
from contrib_recon.domain.services.comparator import compare_all
from contrib_recon.domain.services.period_window import closed_periods, period_range

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ReconciliationConfig:
    """Explicit configuration for the reconciliation engine.

    Attributes:
        currency: Currency every upstream amount is expected in.
        tolerance: Default absolute tolerance in minor units.
        period_count: Default number of closed periods per run.
        entities: Default entity references to reconcile.
    """

    currency: str = "BRL"
    tolerance: int = 50
    period_count: int = 3
    entities: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.tolerance < 0:
            raise ValueError("tolerance must be >= 0")


@dataclass(frozen=True, slots=True)
class _EntityOutcome:
    entity_ref: str
    divergences: tuple[Divergence, ...] = ()
    failure: EntityFailure | None = None


class ReconcileContributionsUseCase:
    """Run a reconciliation over closed periods for a set of entities.

    Args:
        uow: UnitOfWork providing the divergence repository and transaction.
        internal_fetcher: Source fetcher for the internal system (side A).
        portal_fetcher: Source fetcher for the external portal (side B).
        executor: Concurrency/retry executor wrapping every fetch.
        config: Engine configuration.
    """

    def __init__(
        self,
        *,
        uow: UnitOfWork,
        internal_fetcher: SourceFetcher,
        portal_fetcher: SourceFetcher,
        executor: FetchExecutor,
        config: ReconciliationConfig,
    ) -> None:
        self._uow = uow
        self._internal = internal_fetcher
        self._portal = portal_fetcher
        self._executor = executor
        self._config = config

    async def reconcile(
        self,
        period_count: int | None = None,
        tolerance: int | None = None,
        *,
        entities: Sequence[str] | None = None,
        today: date | None = None,
        run_id: str | None = None,
    ) -> ReconciliationReport:
        """Reconcile the last ``period_count`` closed periods.

        Args:
            period_count: Number of closed periods; defaults to the configured value.
            tolerance: Absolute tolerance in minor units; defaults to the configured value.
            entities: Entities to reconcile; defaults to the configured list.
            today: Reference date for the period window (defaults to today, UTC).
            run_id: Correlation id for this run; generated when omitted.

        Returns:
            ReconciliationReport with the divergences produced or updated by
            this run and per-entity success/failure.

        Raises:
            ValueError: If ``tolerance`` is negative or an entity reference is blank.
            StoreUnavailableError: If the divergence store cannot be reached.
        """
        n = self._config.period_count if period_count is None else period_count
        tol = self._config.tolerance if tolerance is None else tolerance
        if tol < 0:
            raise ValueError("tolerance must be >= 0")
        targets = tuple(dict.fromkeys(entities if entities is not None else self._config.entities))
        if any(not ref.strip() for ref in targets):
            raise ValueError("entity references must not be blank")

        run_id = run_id or str(uuid4())
        started_at = datetime.now(UTC)
        periods = closed_periods(n, today=today)

        log_ctx: dict[str, Any] = {
            "run_id": run_id,
            "periods": [str(p) for p in periods],
            "entities": len(targets),
            "tolerance": tol,
        }
        logger.info("reconcile.start", extra=log_ctx)

        if not periods or not targets:
            report = ReconciliationReport(
                run_id=run_id,
                periods=periods,
                started_at=started_at,
                finished_at=datetime.now(UTC),
            )
            logger.info("reconcile.empty", extra=log_ctx)
            return report

        start, end = period_range(periods)
        outcomes = await self._compare_entities(
            targets, start=start, end=end, tolerance=tol, detected_at=started_at
        )

        changed, unchanged, persisted, persist_failures = await self._persist(
            outcomes, periods=periods, at=started_at
        )

        failures = [o.failure for o in outcomes if o.failure is not None]
        failures.extend(persist_failures)
        report = ReconciliationReport(
            run_id=run_id,
            periods=periods,
            started_at=started_at,
            finished_at=datetime.now(UTC),
            divergences=tuple(changed),
            unchanged=unchanged,
            succeeded=tuple(persisted),
            failed=tuple(sorted(failures, key=lambda f: f.entity_ref)),
        )
        logger.info("reconcile.finish", extra={**log_ctx, **report.summary()})
        return report

    # ------------------------------------------------------------------ #
    # Fetch + compare                                                    #
    # ------------------------------------------------------------------ #

    async def _compare_entities(
        self,
        entities: Sequence[str],
        *,
        start: Period,
        end: Period,
        tolerance: int,
        detected_at: datetime,
    ) -> list[_EntityOutcome]:
        results = await asyncio.gather(
            *(
                self._compare_entity(
                    entity_ref,
                    start=start,
                    end=end,
                    tolerance=tolerance,
                    detected_at=detected_at,
                )
                for entity_ref in entities
            ),
            return_exceptions=True,
        )
        outcomes: list[_EntityOutcome] = []
        for result in results:
            # Anything not converted into an entity failure is a defect or a
            # cancellation and must abort the run before persistence.
            if isinstance(result, BaseException):
                raise result
            outcomes.append(result)
        return outcomes

    async def _compare_entity(
        self,
        entity_ref: str,
        *,
        start: Period,
        end: Period,
        tolerance: int,
        detected_at: datetime,
    ) -> _EntityOutcome:
        try:
            side_a, side_b = await asyncio.gather(
                self._executor.fetch(self._internal, entity_ref=entity_ref, start=start, end=end),
                self._executor.fetch(self._portal, entity_ref=entity_ref, start=start, end=end),
                return_exceptions=True,
            )
            for side in (side_a, side_b):
                if isinstance(side, BaseException):
                    raise side
            records = [*cast(Sequence[Any], side_a), *cast(Sequence[Any], side_b)]
            run = bucketize(records, currency=self._config.currency)
            divergences = compare_all(run, tolerance, detected_at=detected_at)
        except DomainError as exc:
            logger.warning(
                "reconcile.entity_failed",
                extra={"entity_ref": entity_ref, "code": exc.code, "reason": str(exc)},
            )
            return _EntityOutcome(
                entity_ref=entity_ref,
                failure=EntityFailure(entity_ref=entity_ref, code=exc.code, message=str(exc)),
            )
        return _EntityOutcome(entity_ref=entity_ref, divergences=divergences)

    # ------------------------------------------------------------------ #
    # Persistence                                                        #
    # ------------------------------------------------------------------ #

    async def _persist(
        self,
        outcomes: Sequence[_EntityOutcome],
        *,
        periods: Sequence[Period],
        at: datetime,
    ) -> tuple[list[Divergence], int, list[str], list[EntityFailure]]:
        ready = sorted(
            (o for o in outcomes if o.failure is None), key=lambda o: o.entity_ref
        )
        changed: list[Divergence] = []
        unchanged = 0
        persisted: list[str] = []
        failures: list[EntityFailure] = []
        if not ready:
            return changed, unchanged, persisted, failures

        async def _write(tx: UnitOfWork) -> None:
            nonlocal unchanged
            store = DivergenceStore(tx.divergence_repo)
            for outcome in ready:
                entity_changed: list[Divergence] = []
                entity_unchanged = 0
                try:
                    # An entity's writes land together or not at all.
                    async with tx.savepoint():
                        for divergence in outcome.divergences:
                            stored, was_changed = await store.upsert_if_changed(divergence)
                            if was_changed:
                                entity_changed.append(stored)
                            else:
                                entity_unchanged += 1
                        entity_changed.extend(
                            await store.resolve_missing(
                                entity_ref=outcome.entity_ref,
                                periods=periods,
                                still_divergent={d.identity for d in outcome.divergences},
                                at=at,
                            )
                        )
                except PersistenceConflict as exc:
                    logger.warning(
                        "reconcile.entity_persist_conflict",
                        extra={"entity_ref": outcome.entity_ref, "reason": str(exc)},
                    )
                    failures.append(
                        EntityFailure(
                            entity_ref=outcome.entity_ref, code=exc.code, message=str(exc)
                        )
                    )
                    continue
                changed.extend(entity_changed)
                unchanged += entity_unchanged
                persisted.append(outcome.entity_ref)

        await run_in_uow(self._uow, _write)

        return changed, unchanged, persisted, failures


__all__ = ["ReconciliationConfig", "ReconcileContributionsUseCase"]
