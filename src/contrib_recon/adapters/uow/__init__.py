# src/contrib_recon/adapters/uow/__init__.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Unit-of-Work adapters."""

from contrib_recon.adapters.uow.sqlalchemy_uow import SqlAlchemyUnitOfWork

__all__ = ["SqlAlchemyUnitOfWork"]
