# src/contrib_recon/infrastructure/resilience/retry.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Retry utilities (async) with jittered exponential backoff.

Delay before attempt ``n + 1`` (after ``n`` failed attempts)::

    min(cap, base * 2 ** (n - 1)) + uniform(0, jitter)

Jitter is *added* to the exponential term, not multiplied, so concurrent
callers that failed together do not retry together.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]
Uniform = Callable[[float, float], float]


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Configuration for retry attempts.

    Attributes:
        attempts: Total number of calls, including the first one (>= 1).
        base: Base backoff in seconds.
        jitter: Upper bound of the uniform jitter added to each delay.
        cap: Optional ceiling for the exponential term.
    """

    attempts: int = 3
    base: float = 0.5
    jitter: float = 0.25
    cap: float | None = None

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.base < 0 or self.jitter < 0:
            raise ValueError("base and jitter must be >= 0")

    def delay(self, attempt: int, *, uniform: Uniform = random.uniform) -> float:
        """Return the delay to wait after failed attempt number ``attempt`` (1-based)."""
        backoff = self.base * (2 ** (attempt - 1))
        if self.cap is not None:
            backoff = min(self.cap, backoff)
        return backoff + uniform(0.0, self.jitter)


async def retry_async(
    fn: Callable[[int], Awaitable[T]],
    *,
    policy: RetryPolicy,
    retry_on: Callable[[Exception], bool],
    sleep: Sleep = asyncio.sleep,
    uniform: Uniform = random.uniform,
    on_retry: Callable[[int, Exception, float], None] | None = None,
) -> T:
    """Call ``fn`` until it succeeds or the attempt budget is exhausted.

    Args:
        fn: Async function receiving the 1-based attempt number.
        policy: RetryPolicy defining attempt count and backoff.
        retry_on: Predicate that returns True when an exception is retryable.
        sleep: Awaitable sleep function (injectable for tests).
        uniform: Jitter source (injectable for tests).
        on_retry: Optional hook called with ``(attempt, exc, delay)`` before sleeping.

    Returns:
        The return value of ``fn`` if successful.

    Raises:
        The last exception, unchanged, once retries are exhausted or when it
        is not retryable.
    """
    attempt = 1
    while True:
        try:
            return await fn(attempt)
        except Exception as exc:  # noqa: BLE001
            if attempt >= policy.attempts or not retry_on(exc):
                raise
            delay = policy.delay(attempt, uniform=uniform)
            if on_retry is not None:
                on_retry(attempt, exc, delay)
        await sleep(delay)
        attempt += 1
