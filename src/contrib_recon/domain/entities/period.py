# src/contrib_recon/domain/entities/period.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Accounting period value object.

Purpose:
    Represent a calendar (year, month) reconciliation period with a total
    ordering and a derived "closed" predicate.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date


@dataclass(frozen=True, slots=True, order=True)
class Period:
    """Calendar year-month.

    Attributes:
        year: Four-digit calendar year (1..9999).
        month: Calendar month (1..12).
    """

    year: int
    month: int

    def __post_init__(self) -> None:
        """Validate year and month ranges.

        Raises:
            ValueError: If ``month`` is outside 1..12 or ``year`` outside 1..9999.
        """
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")
        if not 1 <= self.year <= 9999:
            raise ValueError(f"year must be in 1..9999, got {self.year}")

    @classmethod
    def from_date(cls, value: date) -> Period:
        """Return the period containing ``value``."""
        return cls(value.year, value.month)

    @classmethod
    def parse(cls, raw: str) -> Period:
        """Parse a ``YYYY-MM`` string.

        Raises:
            ValueError: If the string is not a valid ``YYYY-MM`` period.
        """
        parts = raw.strip().split("-")
        if len(parts) != 2 or not all(p.isdigit() for p in parts):
            raise ValueError(f"invalid period {raw!r}; expected YYYY-MM")
        return cls(int(parts[0]), int(parts[1]))

    @property
    def first_day(self) -> date:
        """First calendar day of the period."""
        return date(self.year, self.month, 1)

    def next(self) -> Period:
        """Return the following period."""
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> Period:
        """Return the preceding period."""
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def is_closed(self, today: date) -> bool:
        """Return True once the period is strictly before the month of ``today``."""
        return self < Period.from_date(today)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


__all__ = ["Period"]
