# tests/conftest.py
from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus
from contrib_recon.domain.exceptions.reconciliation import PersistenceConflict
from contrib_recon.infrastructure.database.models import Base


class MemoryDivergenceRepo:
    """In-memory DivergenceRepository double that records every write."""

    def __init__(self) -> None:
        self.rows: dict[DivergenceIdentity, Divergence] = {}
        self.adds: list[Divergence] = []
        self.updates: list[Divergence] = []

    async def get(self, identity: DivergenceIdentity) -> Divergence | None:
        return self.rows.get(identity)

    async def add(self, divergence: Divergence) -> None:
        if divergence.identity in self.rows:
            raise PersistenceConflict("exists")
        self.rows[divergence.identity] = divergence
        self.adds.append(divergence)

    async def update(self, divergence: Divergence) -> None:
        if divergence.identity not in self.rows:
            raise PersistenceConflict("missing")
        self.rows[divergence.identity] = divergence
        self.updates.append(divergence)

    async def list_open(
        self, *, entity_ref: str, periods: Sequence[Period]
    ) -> Sequence[Divergence]:
        wanted = set(periods)
        return [
            d
            for ident, d in sorted(self.rows.items())
            if ident.entity_ref == entity_ref and ident.period in wanted and d.is_open
        ]

    async def list(
        self,
        *,
        status: DivergenceStatus | None = None,
        entity_ref: str | None = None,
        limit: int = 500,
    ) -> list[Divergence]:
        out = [
            d
            for ident, d in sorted(self.rows.items())
            if (status is None or d.status is status)
            and (entity_ref is None or ident.entity_ref == entity_ref)
        ]
        return out[:limit]

    @property
    def writes(self) -> int:
        return len(self.adds) + len(self.updates)


class FakeUow:
    """UnitOfWork double exposing ``divergence_repo`` and staging writes until commit."""

    def __init__(self, repo: MemoryDivergenceRepo) -> None:
        self.divergence_repo = repo
        self.committed = False
        self.rolled_back = False
        self.entered = 0
        self.savepoints = 0
        self._snapshot: dict[DivergenceIdentity, Divergence] = {}

    async def __aenter__(self) -> FakeUow:
        self.entered += 1
        self.committed = False
        self.rolled_back = False
        self._snapshot = dict(self.divergence_repo.rows)
        return self

    async def __aexit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        if not self.committed:
            await self.rollback()

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        if self.rolled_back:
            return
        self.divergence_repo.rows = dict(self._snapshot)
        self.rolled_back = True

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator[None]:
        saved = dict(self.divergence_repo.rows)
        self.savepoints += 1
        try:
            yield
        except BaseException:
            self.divergence_repo.rows = saved
            raise


@pytest.fixture
def memory_repo() -> MemoryDivergenceRepo:
    return MemoryDivergenceRepo()


@pytest.fixture
def fake_uow(memory_repo: MemoryDivergenceRepo) -> FakeUow:
    return FakeUow(memory_repo)


@pytest_asyncio.fixture
async def sqlite_engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite engine with the schema created and SAVEPOINT support enabled."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'recon.db'}")

    # Let SQLAlchemy emit BEGIN itself so SAVEPOINT/ROLLBACK behave as on PostgreSQL.
    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection: Any, _record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def sqlite_sessionmaker(sqlite_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=sqlite_engine, expire_on_commit=False, class_=AsyncSession)
