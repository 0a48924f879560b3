# src/contrib_recon/infrastructure/logging/logger.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Structured JSON logging utilities.

This module exposes an idempotent root configurator and a per-module logger
factory that produce JSON logs suitable for ingestion by log pipelines.

Features:
    * Stable keys: ``ts``, ``level``, ``logger``, ``message``.
    * Automatic enrichment with ``run_id`` and ``entity_ref`` via contextvars.
      The CLI sets the run id; the fetch controller sets the entity inside
      each fetch task, so retry and transport lines carry both.
    * Record-level ``extra`` fields are merged into the payload.

Typical usage:
    configure_root_logging()
    log = get_json_logger(__name__)
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar
from datetime import UTC, datetime
from typing import Any

__all__ = [
    "configure_root_logging",
    "get_json_logger",
    "set_run_context",
    "get_run_id",
    "get_entity_ref",
]

# Per-run / per-entity correlation context (task-local via contextvars).
_RUN_ID_CTX: ContextVar[str | None] = ContextVar("recon_run_id", default=None)
_ENTITY_REF_CTX: ContextVar[str | None] = ContextVar("recon_entity_ref", default=None)

# Attributes every LogRecord carries; anything else passed via ``extra=`` is emitted.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys() | {"message", "asctime"}
)


def set_run_context(*, run_id: str | None = None, entity_ref: str | None = None) -> None:
    """Set correlation identifiers on the current context.

    Args:
        run_id: Reconciliation run identifier, if any.
        entity_ref: Entity currently being reconciled, if any.

    Notes:
        This function is additive: passing only one argument updates that
        value and leaves the other unchanged. Values set inside an asyncio task
        do not leak to sibling tasks.
    """
    if run_id is not None:
        _RUN_ID_CTX.set(run_id)
    if entity_ref is not None:
        _ENTITY_REF_CTX.set(entity_ref)


def get_run_id() -> str | None:
    """Return the current run id from contextvars, if any."""
    return _RUN_ID_CTX.get(None)


def get_entity_ref() -> str | None:
    """Return the current entity reference from contextvars, if any."""
    return _ENTITY_REF_CTX.get(None)


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(v) for v in value]
    return str(value)


class _JsonFormatter(logging.Formatter):
    """JSON log formatter emitting stable keys and optional extras."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a JSON object.

        Args:
            record: Logging record.

        Returns:
            JSON-encoded log line.
        """
        payload: dict[str, Any] = {
            "ts": datetime.now(tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        run_id = getattr(record, "run_id", None) or _RUN_ID_CTX.get(None)
        if run_id:
            payload["run_id"] = run_id
        entity_ref = getattr(record, "entity_ref", None) or _ENTITY_REF_CTX.get(None)
        if entity_ref:
            payload["entity_ref"] = entity_ref

        # Exceptions: guard against None in exc_info tuple.
        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            if exc_type is not None:
                payload["exc_type"] = exc_type.__name__
            if exc_value is not None:
                payload["exc_message"] = str(exc_value)

        for key, value in vars(record).items():
            if key in _RESERVED_ATTRS or key in payload:
                continue
            payload[key] = _jsonable(value)

        return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


def configure_root_logging(level: str | int | None = None) -> None:
    """Initialize the root logger with a JSON stream handler (idempotent).

    Args:
        level: Logging level or level name (case-insensitive). If ``None``, use
            env ``RECON_LOG_LEVEL`` or ``INFO``.
    """
    root = logging.getLogger()

    resolved: int | str = level if level is not None else (os.getenv("RECON_LOG_LEVEL") or "INFO")
    root.setLevel(resolved.upper() if isinstance(resolved, str) else resolved)

    if root.handlers:
        # Already configured; prevent duplicate handlers on repeated CLI invocations.
        return

    handler = logging.StreamHandler()
    handler.setFormatter(_JsonFormatter())
    root.addHandler(handler)


def get_json_logger(name: str) -> logging.Logger:
    """Return a module-specific logger backed by the JSON root handler.

    This does *not* implicitly configure the root logger. Call
    :func:`configure_root_logging` once at startup for global defaults.

    Args:
        name: Logger name, typically ``__name__`` of the caller.

    Returns:
        Configured logger.
    """
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
