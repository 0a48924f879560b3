# src/contrib_recon/infrastructure/database/session.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Async SQLAlchemy engine/session factory.

This module owns the process-global async SQLAlchemy engine and
``async_sessionmaker`` used by the Unit of Work.

Lifecycle:
    * Call ``init_engine_and_sessionmaker(settings)`` once at process start.
    * Hand the returned factory to ``SqlAlchemyUnitOfWork``.
    * Call ``dispose_engine()`` before the event loop closes.

Notes:
    * No business logic here; repositories consume the session.
    * ``pool_pre_ping=True`` surfaces dead connections before use.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from contrib_recon.config.settings import Settings

_engine: AsyncEngine | None = None
_sessionmaker: async_sessionmaker[AsyncSession] | None = None


def init_engine_and_sessionmaker(settings: Settings) -> async_sessionmaker[AsyncSession]:
    """Initialize the global async engine and sessionmaker.

    Args:
        settings: Application settings providing ``database_url``.

    Returns:
        The global session factory.

    Raises:
        ValueError: If ``database_url`` is empty.
    """
    global _engine, _sessionmaker

    if not settings.database_url:
        raise ValueError("database_url must be configured")
    if _engine is not None and _sessionmaker is not None:
        # Already initialized (idempotent).
        return _sessionmaker

    _engine = create_async_engine(
        url=settings.database_url,
        pool_pre_ping=True,
        echo=False,
    )
    _sessionmaker = async_sessionmaker(bind=_engine, expire_on_commit=False, class_=AsyncSession)
    return _sessionmaker


async def dispose_engine() -> None:
    """Dispose the global engine and forget the sessionmaker."""
    global _engine, _sessionmaker
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _sessionmaker = None

