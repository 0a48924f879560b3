# src/contrib_recon/application/uow.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Unit of Work (Application Layer).

Purpose:
    Transaction boundary used by the reconciliation use cases. A scope opened
    with ``async with uow`` exposes the divergence repository, commits only
    when asked to, and discards everything else.

Layer:
    application

Notes:
    - Infrastructure-agnostic: the SQLAlchemy implementation lives in
      ``adapters/uow`` and satisfies this protocol structurally.
    - ``savepoint()`` opens a nested scope whose writes are discarded when
      the block raises, while the enclosing scope stays usable. The engine
      uses it to keep one entity's failed writes out of the run commit.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from types import TracebackType
from typing import Any, Protocol, TypeVar, runtime_checkable

from contrib_recon.domain.interfaces.repositories.divergence_repository import (
    DivergenceRepository,
)

TResult = TypeVar("TResult")


@runtime_checkable
class UnitOfWork(Protocol):
    """Transactional scope over the divergence store."""

    async def __aenter__(self) -> UnitOfWork: ...

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        """Leave the scope, rolling back anything not committed."""
        ...

    @property
    def divergence_repo(self) -> DivergenceRepository:
        """Repository bound to the active scope."""
        ...

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Return a nested scope rolled back if its block raises."""
        ...

    async def commit(self) -> None: ...

    async def rollback(self) -> None: ...


async def run_in_uow(  # noqa: UP047
    uow: UnitOfWork,
    fn: Callable[[UnitOfWork], Awaitable[TResult]],
) -> TResult:
    """Run ``fn`` inside one scope; commit on success, roll back otherwise.

    Cancellation is a ``BaseException`` and is rolled back like any error
    before being re-raised.
    """
    async with uow as tx:
        try:
            result = await fn(tx)
        except BaseException:
            await tx.rollback()
            raise
        await tx.commit()
        return result
