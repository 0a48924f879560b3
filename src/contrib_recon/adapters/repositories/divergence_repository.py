# src/contrib_recon/adapters/repositories/divergence_repository.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""SQLAlchemy repository for divergences.

Purpose:
    Persist and query divergence records in ``recon_divergences``, mapping
    between ORM rows and domain entities.

Layer:
    adapters/repositories

Notes:
    * Inserts run inside a SAVEPOINT so that a unique-identity collision
      surfaces as ``PersistenceConflict`` without poisoning the outer
      transaction.
    * Connectivity failures are translated to ``StoreUnavailableError``.
    * Every operation is timed into the repository metrics; metric failures
      never affect the operation itself.
"""

from __future__ import annotations

import builtins
import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Numeric, cast, select
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from contrib_recon.adapters.repositories.base_repository import BaseRepository
from contrib_recon.domain.entities.aggregates import normalize_rate
from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus
from contrib_recon.domain.exceptions.reconciliation import (
    PersistenceConflict,
    StoreUnavailableError,
)
from contrib_recon.infrastructure.database.models.divergence import DivergenceRow
from contrib_recon.infrastructure.logging.logger import get_json_logger
from contrib_recon.infrastructure.observability.metrics import (
    get_db_errors_total,
    get_db_operation_duration_seconds,
)

logger = get_json_logger(__name__)

# Rates are stored as canonical text; order them by numeric value.
_RATE_ORDER = cast(DivergenceRow.rate, Numeric)


class SqlAlchemyDivergenceRepository(BaseRepository[DivergenceRow]):
    """SQLAlchemy implementation of the divergence repository."""

    _MODEL_NAME = "recon_divergences"

    def __init__(self, session: AsyncSession) -> None:
        """Initialize the repository.

        Args:
            session: Active async SQLAlchemy session.
        """
        super().__init__(session=session)
        self._metrics_hist = get_db_operation_duration_seconds()
        self._metrics_err = get_db_errors_total()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get(self, identity: DivergenceIdentity) -> Divergence | None:
        """Return the record for ``identity``, or None if absent."""
        async with self._observed("get"):
            row = await self._get_row(identity)
        return None if row is None else self._to_domain(row)

    async def add(self, divergence: Divergence) -> None:
        """Insert a new record.

        Raises:
            PersistenceConflict: If the identity already exists.
            StoreUnavailableError: If the database cannot be reached.
        """
        async with self._observed("add"):
            try:
                async with self._session.begin_nested():
                    self._session.add(DivergenceRow(**self._to_row_dict(divergence)))
                    await self._session.flush()
            except IntegrityError as exc:
                identity = divergence.identity
                raise PersistenceConflict(
                    "Divergence identity already exists.",
                    details={
                        "entity_ref": identity.entity_ref,
                        "period": str(identity.period),
                        "rate": _rate_text(identity.rate),
                    },
                ) from exc

    async def update(self, divergence: Divergence) -> None:
        """Overwrite amounts, status and timestamps of an existing record.

        Raises:
            PersistenceConflict: If no record exists for the identity.
        """
        async with self._observed("update"):
            row = await self._get_row(divergence.identity)
            if row is None:
                raise PersistenceConflict(
                    "Divergence to update does not exist.",
                    details={
                        "entity_ref": divergence.identity.entity_ref,
                        "period": str(divergence.identity.period),
                        "rate": _rate_text(divergence.identity.rate),
                    },
                )
            for key, value in self._to_row_dict(divergence).items():
                setattr(row, key, value)
            await self._session.flush()

    async def list_open(
        self, *, entity_ref: str, periods: Sequence[Period]
    ) -> Sequence[Divergence]:
        """Return OPEN records for ``entity_ref`` within ``periods``."""
        if not periods:
            return []
        period_codes = sorted({p.year * 100 + p.month for p in periods})
        stmt = select(DivergenceRow).where(
            DivergenceRow.entity_ref == entity_ref,
            DivergenceRow.status == DivergenceStatus.OPEN.value,
            (DivergenceRow.period_year * 100 + DivergenceRow.period_month).in_(period_codes),
        )
        stmt = self.order_by_columns(
            stmt, DivergenceRow.period_year, DivergenceRow.period_month, _RATE_ORDER
        )
        async with self._observed("list_open"):
            rows = await self.fetch_all(stmt)
        return [self._to_domain(r) for r in rows]

    async def list(
        self,
        *,
        status: DivergenceStatus | None = None,
        entity_ref: str | None = None,
        limit: int = 500,
    ) -> builtins.list[Divergence]:
        """Return records ordered by entity_ref, period, then numeric rate."""
        stmt = select(DivergenceRow)
        if status is not None:
            stmt = stmt.where(DivergenceRow.status == status.value)
        if entity_ref is not None:
            stmt = stmt.where(DivergenceRow.entity_ref == entity_ref)
        stmt = self.order_by_columns(
            stmt,
            DivergenceRow.entity_ref,
            DivergenceRow.period_year,
            DivergenceRow.period_month,
            _RATE_ORDER,
        ).limit(limit)
        async with self._observed("list"):
            rows = await self.fetch_all(stmt)
        return [self._to_domain(r) for r in rows]

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _get_row(self, identity: DivergenceIdentity) -> DivergenceRow | None:
        stmt = select(DivergenceRow).where(
            DivergenceRow.entity_ref == identity.entity_ref,
            DivergenceRow.period_year == identity.period.year,
            DivergenceRow.period_month == identity.period.month,
            DivergenceRow.rate == _rate_text(identity.rate),
        )
        return await self.fetch_optional(stmt)

    @asynccontextmanager
    async def _observed(self, operation: str) -> AsyncIterator[None]:
        """Time ``operation`` and translate connectivity errors."""
        start = time.perf_counter()
        outcome = "success"
        try:
            yield
        except PersistenceConflict as exc:
            outcome = "conflict"
            self._record_error(operation, exc)
            raise
        except (OperationalError, InterfaceError, OSError) as exc:
            outcome = "error"
            self._record_error(operation, exc)
            logger.error(
                "divergence_repo.unavailable",
                extra={"operation": operation, "error": type(exc).__name__},
            )
            raise StoreUnavailableError(
                "Divergence store is unavailable.",
                details={"operation": operation, "reason": type(exc).__name__},
            ) from exc
        except DBAPIError as exc:
            outcome = "error"
            self._record_error(operation, exc)
            if exc.connection_invalidated:
                raise StoreUnavailableError(
                    "Divergence store connection was invalidated.",
                    details={"operation": operation, "reason": type(exc).__name__},
                ) from exc
            raise
        except Exception as exc:
            outcome = "error"
            self._record_error(operation, exc)
            raise
        finally:
            with suppress(Exception):
                self._metrics_hist.labels(
                    operation=operation,
                    model=self._MODEL_NAME,
                    outcome=outcome,
                ).observe(time.perf_counter() - start)

    def _record_error(self, operation: str, exc: BaseException) -> None:
        with suppress(Exception):
            self._metrics_err.labels(
                operation=operation,
                model=self._MODEL_NAME,
                reason=type(exc).__name__,
            ).inc()

    @staticmethod
    def _to_row_dict(divergence: Divergence) -> dict[str, object]:
        identity = divergence.identity
        return {
            "entity_ref": identity.entity_ref,
            "period_year": identity.period.year,
            "period_month": identity.period.month,
            "rate": _rate_text(identity.rate),
            "currency": divergence.difference.currency,
            "remuneration_a": divergence.remuneration_a.minor_units,
            "remuneration_b": divergence.remuneration_b.minor_units,
            "contribution_a": divergence.contribution_a.minor_units,
            "contribution_b": divergence.contribution_b.minor_units,
            "difference": divergence.difference.minor_units,
            "status": divergence.status.value,
            "detected_at": divergence.detected_at,
            "resolved_at": divergence.resolved_at,
        }

    @staticmethod
    def _to_domain(row: DivergenceRow) -> Divergence:
        currency = row.currency

        def amount(value: int) -> MonetaryAmount:
            return MonetaryAmount(minor_units=int(value), currency=currency)

        return Divergence(
            identity=DivergenceIdentity(
                entity_ref=row.entity_ref,
                period=Period(year=row.period_year, month=row.period_month),
                rate=Decimal(row.rate),
            ),
            remuneration_a=amount(row.remuneration_a),
            remuneration_b=amount(row.remuneration_b),
            contribution_a=amount(row.contribution_a),
            contribution_b=amount(row.contribution_b),
            difference=amount(row.difference),
            detected_at=_as_utc(row.detected_at),
            status=DivergenceStatus(row.status),
            resolved_at=None if row.resolved_at is None else _as_utc(row.resolved_at),
        )


def _rate_text(rate: Decimal) -> str:
    """Canonical fixed-point text of a rate (no exponent notation)."""
    return format(normalize_rate(rate), "f")


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps returned by dialects without tz support."""
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


__all__ = ["SqlAlchemyDivergenceRepository"]
