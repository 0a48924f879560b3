# src/contrib_recon/domain/enums/reconciliation.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Reconciliation enums.

Purpose:
    Define the upstream source identifiers and the divergence lifecycle states
    used by the reconciliation domain kernel.

Layer:
    domain/enums

Notes:
    - Pure domain types:
        * No logging.
        * No HTTP or transport concerns.
        * No persistence or gateways.
"""

from __future__ import annotations

from enum import Enum


class SourceKind(str, Enum):
    """Upstream source of an aggregate record.

    ``INTERNAL`` is the internal system of record (side A); ``PORTAL`` is the
    external portal (side B).
    """

    INTERNAL = "INTERNAL"
    PORTAL = "PORTAL"


class DivergenceStatus(str, Enum):
    """Lifecycle state of a persisted divergence."""

    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


__all__ = ["SourceKind", "DivergenceStatus"]
