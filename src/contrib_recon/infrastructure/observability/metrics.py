# src/contrib_recon/infrastructure/observability/metrics.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Prometheus metrics for reconciliation runs (registry-aware).

Exports
-------
Collectors (names are part of the public contract and must remain stable):

* ``recon_source_fetch_attempts_total`` (Counter; source, outcome)
* ``recon_source_fetch_retries_total`` (Counter; source, reason)
* ``recon_source_fetch_latency_seconds`` (Histogram; source, outcome)
* ``recon_db_operation_duration_seconds`` (Histogram; operation, model, outcome)
* ``recon_db_errors_total`` (Counter; operation, model, reason)
* ``recon_runs_total`` (Counter; outcome)
* ``recon_run_duration_seconds`` (Histogram)

Design
------
All collectors are created against the *current* default registry
(:data:`prometheus_client.REGISTRY`). If a collector with the same name already
exists in the active registry, the existing instance is reused instead of
registering a duplicate. This keeps module re-imports and tests that swap the
registry safe.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Final

import prometheus_client as prom
from prometheus_client import Counter, Histogram
from prometheus_client.registry import CollectorRegistry

_BUCKETS: Final[tuple[float, ...]] = (
    0.005,
    0.010,
    0.025,
    0.050,
    0.100,
    0.250,
    0.500,
    1.000,
    2.500,
    5.000,
    10.000,
    30.000,
)


def _existing(name: str) -> object | None:
    registry: CollectorRegistry = prom.REGISTRY
    mapping = getattr(registry, "_names_to_collectors", {})  # internal but stable
    return mapping.get(name)


def _get_or_create_histogram(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
) -> Histogram:
    """Return a histogram bound to the current default registry.

    Args:
        name: Metric name.
        doc: Human-readable metric description.
        labelnames: Optional iterable of label names.

    Returns:
        A :class:`Histogram` bound to the current :data:`prom.REGISTRY`.
    """
    existing = _existing(name)
    if isinstance(existing, Histogram):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        return Histogram(name, doc, labels, buckets=_BUCKETS, registry=prom.REGISTRY)
    except ValueError as exc:
        # Handle concurrent or prior registration gracefully.
        if "Duplicated timeseries" in str(exc):
            again = _existing(name)
            if isinstance(again, Histogram):
                return again
        raise


def _get_or_create_counter(
    name: str,
    doc: str,
    labelnames: Sequence[str] | None = None,
) -> Counter:
    """Return a counter bound to the current default registry.

    The behavior mirrors :func:`_get_or_create_histogram`.
    """
    # Counters register under the "_total"-stripped name as well.
    existing = _existing(name) or _existing(name.removesuffix("_total"))
    if isinstance(existing, Counter):
        return existing

    labels = tuple(labelnames) if labelnames is not None else ()
    try:
        return Counter(name, doc, labels, registry=prom.REGISTRY)
    except ValueError as exc:
        if "Duplicated timeseries" in str(exc):
            again = _existing(name) or _existing(name.removesuffix("_total"))
            if isinstance(again, Counter):
                return again
        raise


def get_fetch_attempts_total() -> Counter:
    """Counter of source fetch attempts by source and outcome."""
    return _get_or_create_counter(
        "recon_source_fetch_attempts_total",
        "Source fetch attempts by source and outcome.",
        ("source", "outcome"),
    )


def get_fetch_retries_total() -> Counter:
    """Counter of scheduled retries by source and failure reason."""
    return _get_or_create_counter(
        "recon_source_fetch_retries_total",
        "Source fetch retries by source and failure reason.",
        ("source", "reason"),
    )


def get_fetch_latency_seconds() -> Histogram:
    """Histogram of single-attempt fetch latency by source and outcome."""
    return _get_or_create_histogram(
        "recon_source_fetch_latency_seconds",
        "Latency of one source fetch attempt in seconds.",
        ("source", "outcome"),
    )


def get_db_operation_duration_seconds() -> Histogram:
    """Histogram of repository operation latency by operation, model and outcome."""
    return _get_or_create_histogram(
        "recon_db_operation_duration_seconds",
        "Repository operation latency in seconds.",
        ("operation", "model", "outcome"),
    )


def get_db_errors_total() -> Counter:
    """Counter of repository failures by operation, model and exception type."""
    return _get_or_create_counter(
        "recon_db_errors_total",
        "Repository failures by operation, model and reason.",
        ("operation", "model", "reason"),
    )


def get_runs_total() -> Counter:
    """Counter of reconciliation runs by outcome (success/partial/fatal)."""
    return _get_or_create_counter(
        "recon_runs_total",
        "Reconciliation runs by outcome.",
        ("outcome",),
    )


def get_run_duration_seconds() -> Histogram:
    """Histogram of end-to-end reconciliation run duration."""
    return _get_or_create_histogram(
        "recon_run_duration_seconds",
        "Duration of a reconciliation run in seconds.",
    )


__all__ = [
    "get_fetch_attempts_total",
    "get_fetch_retries_total",
    "get_fetch_latency_seconds",
    "get_db_operation_duration_seconds",
    "get_db_errors_total",
    "get_runs_total",
    "get_run_duration_seconds",
]
