# src/contrib_recon/adapters/uow/sqlalchemy_uow.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""SQLAlchemy-backed Unit of Work implementation.

Purpose:
    Implement the application-layer UnitOfWork over one ``AsyncSession`` per
    scope, exposing the divergence repository bound to that session.

Layer:
    adapters/uow
"""

from __future__ import annotations

from collections.abc import Callable
from contextlib import AbstractAsyncContextManager
from types import TracebackType
from typing import Any

from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contrib_recon.adapters.repositories.divergence_repository import (
    SqlAlchemyDivergenceRepository,
)
from contrib_recon.domain.exceptions.reconciliation import StoreUnavailableError
from contrib_recon.domain.interfaces.repositories.divergence_repository import (
    DivergenceRepository,
)


class SqlAlchemyUnitOfWork:
    """SQLAlchemy-based UnitOfWork implementation.

    Intended usage::

        async with SqlAlchemyUnitOfWork(session_factory=...) as uow:
            await uow.divergence_repo.add(divergence)
            await uow.commit()

    An instance may be entered repeatedly (one scope at a time); each scope
    gets a fresh session and a fresh repository.
    """

    def __init__(
        self,
        *,
        session_factory: async_sessionmaker[AsyncSession],
        repo_factory: Callable[[AsyncSession], DivergenceRepository] = (
            SqlAlchemyDivergenceRepository
        ),
    ) -> None:
        """Initialize the UnitOfWork.

        Args:
            session_factory: Factory for new ``AsyncSession`` instances.
            repo_factory: Builds the divergence repository for a session.
        """
        self._session_factory = session_factory
        self._repo_factory = repo_factory
        self._session: AsyncSession | None = None
        self._repo: DivergenceRepository | None = None
        self._committed = False
        self._rolled_back = False

    # ------------------------------------------------------------------
    # Async context manager
    # ------------------------------------------------------------------

    async def __aenter__(self) -> SqlAlchemyUnitOfWork:
        """Open a new session.

        Raises:
            RuntimeError: If a scope is already active (nested usage).
        """
        if self._session is not None:
            raise RuntimeError("UnitOfWork is already active; nested usage is not supported.")
        self._session = self._session_factory()
        self._repo = None
        self._committed = False
        self._rolled_back = False
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> bool | None:
        """Roll back an uncommitted scope (errors and cancellation alike) and close it."""
        try:
            if not self._committed and not self._rolled_back:
                await self.rollback()
        finally:
            if self._session is not None:
                await self._session.close()
            self._session = None
            self._repo = None
        return None

    # ------------------------------------------------------------------
    # Scope contents
    # ------------------------------------------------------------------

    def _active_session(self) -> AsyncSession:
        if self._session is None:
            raise RuntimeError("No active UnitOfWork scope; use 'async with uow:' first.")
        return self._session

    @property
    def divergence_repo(self) -> DivergenceRepository:
        """Divergence repository bound to the active session (created once per scope).

        Raises:
            RuntimeError: Outside of an active scope.
        """
        session = self._active_session()
        if self._repo is None:
            self._repo = self._repo_factory(session)
        return self._repo

    def savepoint(self) -> AbstractAsyncContextManager[Any]:
        """Return a SAVEPOINT scope; it is rolled back when its block raises.

        Raises:
            RuntimeError: Outside of an active scope.
        """
        return self._active_session().begin_nested()

    # ------------------------------------------------------------------
    # Transaction control
    # ------------------------------------------------------------------

    async def commit(self) -> None:
        """Commit the scope; no-op once committed or rolled back.

        Raises:
            RuntimeError: Outside of an active scope.
            StoreUnavailableError: If the database cannot be reached.
        """
        session = self._active_session()
        if self._committed or self._rolled_back:
            return
        try:
            await session.commit()
        except (OperationalError, InterfaceError, OSError) as exc:
            raise StoreUnavailableError(
                "Commit failed: divergence store is unavailable.",
                details={"reason": type(exc).__name__},
            ) from exc
        self._committed = True

    async def rollback(self) -> None:
        """Roll back the scope; no-op without a session or once finished."""
        if self._session is None or self._rolled_back or self._committed:
            return
        await self._session.rollback()
        self._rolled_back = True
