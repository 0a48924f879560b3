# src/contrib_recon/__init__.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""contrib-recon: idempotent payroll contribution reconciliation."""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
