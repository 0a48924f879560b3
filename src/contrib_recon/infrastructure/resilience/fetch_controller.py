# src/contrib_recon/infrastructure/resilience/fetch_controller.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Concurrency/retry controller for source fetches.

Purpose:
    Wrap every :class:`SourceFetcher` call with:

    * an independent concurrency bound per source (one ``asyncio.Semaphore``
      each, since upstream capacities differ), acquired before *each* attempt
      and released on every exit path;
    * bounded retries of :class:`TransientFailure` with jittered exponential
      backoff (see :mod:`contrib_recon.infrastructure.resilience.retry`).

    :class:`PermanentFailure` and any other exception propagate immediately.
    The backoff sleep happens *outside* the bound so a waiting retry does not
    hold a slot.

Layer:
    infrastructure/resilience
"""

from __future__ import annotations

import asyncio
import random
import time
from collections.abc import Mapping, Sequence
from contextlib import suppress

from contrib_recon.domain.entities.aggregates import AggregateRecord
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.exceptions.reconciliation import TransientFailure
from contrib_recon.domain.interfaces.gateways.source_fetcher import SourceFetcher
from contrib_recon.infrastructure.logging.logger import get_json_logger, set_run_context
from contrib_recon.infrastructure.observability.metrics import (
    get_fetch_attempts_total,
    get_fetch_latency_seconds,
    get_fetch_retries_total,
)
from contrib_recon.infrastructure.resilience.retry import (
    RetryPolicy,
    Sleep,
    Uniform,
    retry_async,
)

logger = get_json_logger(__name__)


class SourceFetchController:
    """Bounded, retrying executor for source fetches."""

    def __init__(
        self,
        *,
        limits: Mapping[SourceKind, int],
        policy: RetryPolicy,
        sleep: Sleep = asyncio.sleep,
        uniform: Uniform = random.uniform,
    ) -> None:
        """Initialize the controller.

        Args:
            limits: Maximum concurrent in-flight calls per source (each >= 1).
            policy: Retry policy applied to transient failures.
            sleep: Awaitable sleep used between attempts (injectable for tests).
            uniform: Jitter source (injectable for tests).

        Raises:
            ValueError: If a limit is below 1.
        """
        for source, limit in limits.items():
            if limit < 1:
                raise ValueError(f"concurrency limit for {source.value} must be >= 1")
        self._limits = dict(limits)
        self._semaphores = {source: asyncio.Semaphore(limit) for source, limit in limits.items()}
        self._policy = policy
        self._sleep = sleep
        self._uniform = uniform

        self._attempts_total = get_fetch_attempts_total()
        self._retries_total = get_fetch_retries_total()
        self._latency = get_fetch_latency_seconds()

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    def limit_for(self, source: SourceKind) -> int:
        """Return the configured concurrency bound for ``source``."""
        return self._limits[source]

    async def fetch(
        self,
        fetcher: SourceFetcher,
        *,
        entity_ref: str,
        start: Period,
        end: Period,
    ) -> Sequence[AggregateRecord]:
        """Run ``fetcher.fetch`` under the source's bound with retries.

        Args:
            fetcher: Source fetcher to call.
            entity_ref: Entity to fetch.
            start: Inclusive start period.
            end: Exclusive end period.

        Returns:
            Records returned by the first successful attempt.

        Raises:
            TransientFailure: When every attempt failed transiently (last failure).
            PermanentFailure: Immediately on a non-retryable failure.
            KeyError: If no bound is configured for the fetcher's source.
        """
        source = fetcher.source
        semaphore = self._semaphores[source]
        # Callers run each fetch in its own task, so this stays task-local.
        set_run_context(entity_ref=entity_ref)

        async def _attempt(attempt: int) -> Sequence[AggregateRecord]:
            async with semaphore:
                start_ts = time.perf_counter()
                outcome = "success"
                try:
                    return await fetcher.fetch(entity_ref=entity_ref, start=start, end=end)
                except TransientFailure:
                    outcome = "transient"
                    raise
                except BaseException:
                    outcome = "error"
                    raise
                finally:
                    with suppress(Exception):
                        self._attempts_total.labels(source=source.value, outcome=outcome).inc()
                        self._latency.labels(source=source.value, outcome=outcome).observe(
                            time.perf_counter() - start_ts
                        )

        def _on_retry(attempt: int, exc: Exception, delay: float) -> None:
            with suppress(Exception):
                self._retries_total.labels(source=source.value, reason=type(exc).__name__).inc()
            logger.warning(
                "source_fetch.retry",
                extra={
                    "source": source.value,
                    "entity_ref": entity_ref,
                    "attempt": attempt,
                    "max_attempts": self._policy.attempts,
                    "delay_s": round(delay, 3),
                    "reason": str(exc),
                },
            )

        return await retry_async(
            _attempt,
            policy=self._policy,
            retry_on=lambda exc: isinstance(exc, TransientFailure),
            sleep=self._sleep,
            uniform=self._uniform,
            on_retry=_on_retry,
        )


__all__ = ["SourceFetchController"]
