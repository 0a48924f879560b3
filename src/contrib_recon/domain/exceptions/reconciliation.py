# src/contrib_recon/domain/exceptions/reconciliation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Reconciliation domain exceptions.

Purpose:
    Error taxonomy for upstream fetches, monetary arithmetic and divergence
    persistence.

Layer:
    domain/exceptions

Notes:
    - Only :class:`TransientFailure` is retryable.
    - :class:`PersistenceConflict` is handled by the divergence store (one
      retry with a fresh read); it should not normally reach callers.
    - :class:`StoreUnavailableError` is the only run-fatal error.
"""

from __future__ import annotations

from .base import DomainError


class SourceFailure(DomainError):
    """Base class for failures raised while fetching from an upstream source."""

    code = "SOURCE_FAILURE"


class TransientFailure(SourceFailure):
    """Retryable upstream failure (timeout, connection reset, rate limit, 5xx)."""

    code = "SOURCE_TRANSIENT"


class PermanentFailure(SourceFailure):
    """Non-retryable upstream failure (authentication, malformed request/payload)."""

    code = "SOURCE_PERMANENT"


class CurrencyMismatchError(DomainError):
    """Monetary arithmetic attempted across two different currencies."""

    code = "CURRENCY_MISMATCH"


class PersistenceConflict(DomainError):
    """Concurrent writers raced on the same divergence identity."""

    code = "PERSISTENCE_CONFLICT"


class StoreUnavailableError(DomainError):
    """The divergence store could not be reached at all."""

    code = "STORE_UNAVAILABLE"


__all__ = [
    "SourceFailure",
    "TransientFailure",
    "PermanentFailure",
    "CurrencyMismatchError",
    "PersistenceConflict",
    "StoreUnavailableError",
]
