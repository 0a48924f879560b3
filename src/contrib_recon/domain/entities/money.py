# src/contrib_recon/domain/entities/money.py
# Copyright (c)
# SPDX-License-Identifier: MIT
"""Exact monetary amounts.

Purpose:
    Represent money as an integer count of minor units (e.g., cents) plus an
    ISO-4217 currency code. All arithmetic is exact; no floats are accepted.

Layer:
    domain/entities
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from contrib_recon.domain.exceptions.reconciliation import CurrencyMismatchError

_MINOR_UNITS_PER_MAJOR = 100


@dataclass(frozen=True, slots=True)
class MonetaryAmount:
    """Immutable monetary amount in minor units.

    Attributes:
        minor_units: Signed integer amount in minor units (cents).
        currency: Upper-case ISO-4217 code.
    """

    minor_units: int
    currency: str

    def __post_init__(self) -> None:
        """Validate the amount type and normalize the currency code.

        Raises:
            TypeError: If ``minor_units`` is not an ``int`` (bools and floats rejected).
            ValueError: If ``currency`` is not a three-letter code.
        """
        if isinstance(self.minor_units, bool) or not isinstance(self.minor_units, int):
            raise TypeError("minor_units must be an int")
        code = self.currency.strip().upper()
        if len(code) != 3 or not code.isalpha():
            raise ValueError(f"invalid currency code {self.currency!r}")
        object.__setattr__(self, "currency", code)

    # ------------------------------------------------------------------ #
    # Constructors                                                       #
    # ------------------------------------------------------------------ #

    @classmethod
    def zero(cls, currency: str) -> MonetaryAmount:
        """Return a zero amount in ``currency``."""
        return cls(0, currency)

    @classmethod
    def from_decimal(cls, value: Decimal | str | int, currency: str) -> MonetaryAmount:
        """Build an amount from a major-unit decimal value.

        Args:
            value: Major-unit value such as ``Decimal("1000.00")`` or ``"1000.00"``.
            currency: ISO-4217 code.

        Raises:
            ValueError: If the value is not a number, is out of range or has
                sub-minor-unit precision.
        """
        if isinstance(value, float):
            raise TypeError("floats are not accepted for monetary values")
        try:
            dec = Decimal(value)
        except (InvalidOperation, ValueError) as exc:
            raise ValueError(f"invalid monetary value {value!r}") from exc
        if not dec.is_finite():
            raise ValueError(f"invalid monetary value {value!r}")
        try:
            minor = dec * _MINOR_UNITS_PER_MAJOR
        except ArithmeticError as exc:
            raise ValueError(f"monetary value {value!r} is out of range") from exc
        if minor != minor.to_integral_value():
            raise ValueError(f"monetary value {value!r} has more than two decimal places")
        return cls(int(minor), currency)

    # ------------------------------------------------------------------ #
    # Arithmetic                                                         #
    # ------------------------------------------------------------------ #

    def _check(self, other: MonetaryAmount) -> None:
        if other.currency != self.currency:
            raise CurrencyMismatchError(
                "Cannot combine amounts in different currencies.",
                details={"left": self.currency, "right": other.currency},
            )

    def add(self, other: MonetaryAmount) -> MonetaryAmount:
        """Return ``self + other``."""
        self._check(other)
        return MonetaryAmount(self.minor_units + other.minor_units, self.currency)

    def subtract(self, other: MonetaryAmount) -> MonetaryAmount:
        """Return ``self - other``."""
        self._check(other)
        return MonetaryAmount(self.minor_units - other.minor_units, self.currency)

    def multiply_by_rate(self, rate: Decimal) -> MonetaryAmount:
        """Return ``self * rate`` rounded half-even to the minor unit.

        Args:
            rate: Exact decimal rate, e.g. ``Decimal("0.11")`` for 11%.
        """
        product = Decimal(self.minor_units) * rate
        return MonetaryAmount(
            int(product.quantize(Decimal(1), rounding=ROUND_HALF_EVEN)), self.currency
        )

    def negate(self) -> MonetaryAmount:
        return MonetaryAmount(-self.minor_units, self.currency)

    def abs(self) -> MonetaryAmount:
        return MonetaryAmount(abs(self.minor_units), self.currency)

    def is_zero(self) -> bool:
        return self.minor_units == 0

    def to_decimal(self) -> Decimal:
        """Return the major-unit decimal value (e.g., ``Decimal("1000.00")``)."""
        return (Decimal(self.minor_units) / _MINOR_UNITS_PER_MAJOR).quantize(Decimal("0.01"))

    def __add__(self, other: MonetaryAmount) -> MonetaryAmount:
        return self.add(other)

    def __sub__(self, other: MonetaryAmount) -> MonetaryAmount:
        return self.subtract(other)

    def __str__(self) -> str:
        return f"{self.to_decimal()} {self.currency}"


__all__ = ["MonetaryAmount"]
