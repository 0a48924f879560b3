# src/contrib_recon/dependencies/bootstrap.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Process wiring for the reconciliation engine.

Purpose:
    Build the object graph (HTTP clients, fetchers, fetch controller, Unit of
    Work and use cases) from :class:`Settings`, and own the lifecycle of the
    resources it opens (HTTP clients, database engine).

Layer:
    dependencies
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from contrib_recon.adapters.gateways.external_portal_fetcher import ExternalPortalFetcher
from contrib_recon.adapters.gateways.internal_system_fetcher import InternalSystemFetcher
from contrib_recon.adapters.uow.sqlalchemy_uow import SqlAlchemyUnitOfWork
from contrib_recon.application.use_cases.reconciliation.list_divergences import (
    ListDivergencesUseCase,
)
from contrib_recon.application.use_cases.reconciliation.reconcile_contributions import (
    ReconcileContributionsUseCase,
    ReconciliationConfig,
)
from contrib_recon.config.settings import Settings
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.infrastructure.database.session import (
    dispose_engine,
    init_engine_and_sessionmaker,
)
from contrib_recon.infrastructure.external_apis.external_portal.client import (
    ExternalPortalHttpClient,
)
from contrib_recon.infrastructure.external_apis.internal_system.client import (
    InternalSystemHttpClient,
)
from contrib_recon.infrastructure.resilience.fetch_controller import SourceFetchController
from contrib_recon.infrastructure.resilience.retry import RetryPolicy


def reconciliation_config(settings: Settings) -> ReconciliationConfig:
    """Derive the engine configuration value from settings."""
    return ReconciliationConfig(
        currency=settings.currency,
        tolerance=settings.tolerance_minor_units,
        period_count=settings.period_count,
        entities=settings.entities,
    )


def retry_policy(settings: Settings) -> RetryPolicy:
    return RetryPolicy(
        attempts=settings.retry_attempts,
        base=settings.retry_base_s,
        jitter=settings.retry_jitter_s,
        cap=settings.retry_cap_s,
    )


def fetch_controller(settings: Settings) -> SourceFetchController:
    """Build the controller with one concurrency bound per source."""
    return SourceFetchController(
        limits={
            SourceKind.INTERNAL: settings.internal_max_concurrency,
            SourceKind.PORTAL: settings.portal_max_concurrency,
        },
        policy=retry_policy(settings),
    )


@dataclass(frozen=True, slots=True)
class Runtime:
    """Use cases ready to execute against live resources."""

    reconcile: ReconcileContributionsUseCase
    list_divergences: ListDivergencesUseCase


@asynccontextmanager
async def open_runtime(settings: Settings) -> AsyncIterator[Runtime]:
    """Open upstream clients and the database engine; close them on exit.

    Yields:
        Runtime wired from ``settings``.
    """
    session_factory = init_engine_and_sessionmaker(settings)
    internal_client = InternalSystemHttpClient(
        base_url=settings.internal_base_url,
        currency=settings.currency,
        timeout_s=settings.internal_timeout_s,
        api_token=settings.internal_api_token,
    )
    portal_client = ExternalPortalHttpClient(
        base_url=settings.portal_base_url,
        currency=settings.currency,
        timeout_s=settings.portal_timeout_s,
        api_token=settings.portal_api_token,
    )
    try:
        yield Runtime(
            reconcile=ReconcileContributionsUseCase(
                uow=SqlAlchemyUnitOfWork(session_factory=session_factory),
                internal_fetcher=InternalSystemFetcher(internal_client),
                portal_fetcher=ExternalPortalFetcher(portal_client),
                executor=fetch_controller(settings),
                config=reconciliation_config(settings),
            ),
            list_divergences=ListDivergencesUseCase(
                uow=SqlAlchemyUnitOfWork(session_factory=session_factory),
            ),
        )
    finally:
        await internal_client.aclose()
        await portal_client.aclose()
        await dispose_engine()


__all__ = [
    "Runtime",
    "fetch_controller",
    "open_runtime",
    "reconciliation_config",
    "retry_policy",
]
