# migrations/env.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Alembic environment for the divergence store.

Purpose:
    Run the ``recon_divergences`` migrations offline (SQL script) or online
    (async engine), taking the target database from the same ``Settings``
    the CLI uses.

Safety:
    - ``RECON_ENVIRONMENT`` must be exported explicitly; the settings default
      is not trusted for schema changes.
    - Local environments may only migrate their own database
      (``test`` -> ``recon_test``, ``development`` -> ``recon``).
    - ``-x url=...`` overrides ``RECON_DATABASE_URL`` for one-off runs.
    - URLs are only ever logged with the password hidden.

Usage:
    RECON_ENVIRONMENT=test alembic upgrade head --sql
    RECON_ENVIRONMENT=test alembic -x show_url=1 upgrade head
"""

from __future__ import annotations

import asyncio
import logging
import logging.config
import os

from alembic import context
from sqlalchemy import pool
from sqlalchemy.engine import URL, Connection, make_url
from sqlalchemy.ext.asyncio import create_async_engine

from contrib_recon.config.settings import Environment, Settings
from contrib_recon.infrastructure.database.models import metadata

config = context.config
if config.config_file_name is not None:
    logging.config.fileConfig(config.config_file_name)

logger = logging.getLogger("alembic.env")

target_metadata = metadata

_LOCAL_DATABASES: dict[Environment, frozenset[str]] = {
    Environment.TEST: frozenset({"recon_test"}),
    Environment.DEVELOPMENT: frozenset({"recon"}),
}


def _target() -> URL:
    """Resolve and vet the database URL for this run.

    Raises:
        RuntimeError: Without an explicit environment, or when a local
            environment points at a database outside its allowlist.
    """
    if not (os.getenv("RECON_ENVIRONMENT") or "").strip():
        raise RuntimeError(
            "RECON_ENVIRONMENT is required for migrations (e.g. RECON_ENVIRONMENT=test)."
        )
    settings = Settings()
    xargs = context.get_x_argument(as_dictionary=True)
    url = make_url(xargs.get("url") or settings.database_url)

    allowed = _LOCAL_DATABASES.get(settings.environment)
    if allowed is not None and url.database not in allowed:
        raise RuntimeError(
            f"Refusing to migrate database {url.database!r} in environment "
            f"{settings.environment.value!r} (allowed: {sorted(allowed)}; "
            f"url: {url.render_as_string(hide_password=True)})."
        )
    if xargs.get("show_url") == "1":
        logger.info("Migrating %s", url.render_as_string(hide_password=True))
    return url


def run_migrations_offline() -> None:
    """Emit the migration SQL without connecting."""
    context.configure(
        url=_target().render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def _run_with_connection(connection: Connection) -> None:
    context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)
    with context.begin_transaction():
        context.run_migrations()


async def _run_migrations_async() -> None:
    engine = create_async_engine(
        _target(),
        poolclass=pool.NullPool,
        echo=os.getenv("ECHO_SQL") == "1",
    )
    try:
        async with engine.connect() as connection:
            await connection.run_sync(_run_with_connection)
    finally:
        await engine.dispose()


def run_migrations_online() -> None:
    """Apply migrations through an async engine."""
    asyncio.run(_run_migrations_async())


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
