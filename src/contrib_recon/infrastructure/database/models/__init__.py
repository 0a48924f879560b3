# src/contrib_recon/infrastructure/database/models/__init__.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""ORM models; importing this package registers every table on ``Base.metadata``."""

from contrib_recon.infrastructure.database.models.base import Base, metadata
from contrib_recon.infrastructure.database.models.divergence import DivergenceRow

__all__ = ["Base", "metadata", "DivergenceRow"]
