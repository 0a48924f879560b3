# src/contrib_recon/infrastructure/external_apis/parsing.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Payload field coercion shared by upstream clients.

Every helper raises ``PermanentFailure`` (via :func:`payload_error`) when a
field is missing or malformed; a structurally bad payload will not improve on
retry.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from decimal import Decimal, InvalidOperation
from typing import Any

from contrib_recon.domain.entities.aggregates import normalize_rate
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.infrastructure.external_apis.transport import payload_error

# Bounds of the recon_divergences columns (BIGINT amounts, String(32) rate).
MAX_MINOR_UNITS = 2**63 - 1
MAX_RATE_CHARS = 32


def require_mapping(source: SourceKind, value: Any, where: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise payload_error(source, "expected_object", where=where)
    return value


def require_list(source: SourceKind, value: Any, where: str) -> Sequence[Any]:
    if not isinstance(value, list):
        raise payload_error(source, "expected_list", where=where)
    return value


def parse_period(source: SourceKind, value: Any) -> Period:
    try:
        return Period.parse(str(value))
    except ValueError as exc:
        raise payload_error(source, "bad_period", value=str(value)) from exc


def parse_rate(source: SourceKind, value: Any) -> Decimal:
    """Parse an applied rate; its canonical text must fit the stored rate column."""
    if isinstance(value, bool) or not isinstance(value, (str, int, Decimal)):
        raise payload_error(source, "bad_rate", value=str(value)[:64])
    try:
        rate = normalize_rate(Decimal(value))
    except (InvalidOperation, ValueError) as exc:
        raise payload_error(source, "bad_rate", value=str(value)[:64]) from exc
    if len(format(rate, "f")) > MAX_RATE_CHARS:
        raise payload_error(source, "bad_rate", value=str(value)[:64])
    return rate


def parse_amount(source: SourceKind, value: Any, currency: str) -> MonetaryAmount:
    """Parse a major-unit amount such as ``"1000.00"`` or ``1000.00``."""
    if isinstance(value, bool) or not isinstance(value, (str, int, Decimal)):
        raise payload_error(source, "bad_amount", value=str(value)[:64])
    try:
        amount = MonetaryAmount.from_decimal(value, currency)
    except (TypeError, ValueError) as exc:
        raise payload_error(source, "bad_amount", value=str(value)[:64]) from exc
    if abs(amount.minor_units) > MAX_MINOR_UNITS:
        raise payload_error(source, "bad_amount", value=str(value)[:64])
    return amount


def payload_currency(source: SourceKind, body: Mapping[str, Any], default: str) -> str:
    raw = body.get("currency", default)
    if not isinstance(raw, str) or len(raw.strip()) != 3:
        raise payload_error(source, "bad_currency", value=str(raw))
    return raw.strip().upper()


__all__ = [
    "require_mapping",
    "require_list",
    "parse_period",
    "parse_rate",
    "parse_amount",
    "payload_currency",
]
