# tests/unit/domain/services/test_bucketizer.py
from __future__ import annotations

from decimal import Decimal

import pytest

from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey, BucketTotals
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import SourceKind
from contrib_recon.domain.exceptions.reconciliation import CurrencyMismatchError
from contrib_recon.domain.services.bucketizer import bucketize

_JUL = Period(2026, 7)
_AUG = Period(2026, 8)


def _key(period: Period = _JUL, rate: str = "0.11", entity: str = "EMP-1") -> BucketKey:
    return BucketKey(entity, period, Decimal(rate))


def _rec(
    key: BucketKey, source: SourceKind, rem: int, con: int, currency: str = "BRL"
) -> AggregateRecord:
    return AggregateRecord(
        key=key,
        source=source,
        remuneration=MonetaryAmount(rem, currency),
        contribution=MonetaryAmount(con, currency),
    )


def test_records_for_same_key_and_source_are_summed() -> None:
    run = bucketize(
        [
            _rec(_key(), SourceKind.INTERNAL, 100000, 11000),
            _rec(_key(rate="0.110"), SourceKind.INTERNAL, 50000, 5500),
        ],
        currency="BRL",
    )
    assert run.side_a[_key()] == BucketTotals(
        MonetaryAmount(150000, "BRL"), MonetaryAmount(16500, "BRL")
    )
    assert run.side_b == {}


def test_sides_are_kept_apart() -> None:
    run = bucketize(
        [
            _rec(_key(), SourceKind.INTERNAL, 100000, 11000),
            _rec(_key(), SourceKind.PORTAL, 100000, 11049),
        ],
        currency="BRL",
    )
    a, b = run.pair(_key())
    assert a.contribution.minor_units == 11000
    assert b.contribution.minor_units == 11049


def test_keys_are_sorted_union_and_absent_side_is_zero() -> None:
    run = bucketize(
        [
            _rec(_key(_AUG), SourceKind.PORTAL, 2000, 220),
            _rec(_key(_JUL, "0.08"), SourceKind.INTERNAL, 1000, 80),
        ],
        currency="BRL",
    )
    assert run.keys() == (_key(_JUL, "0.08"), _key(_AUG))
    a, b = run.pair(_key(_AUG))
    assert a == BucketTotals.zero("BRL")
    assert b.remuneration.minor_units == 2000


def test_empty_input_yields_empty_run() -> None:
    run = bucketize([], currency="BRL")
    assert run.keys() == ()


def test_foreign_currency_record_raises() -> None:
    with pytest.raises(CurrencyMismatchError):
        bucketize([_rec(_key(), SourceKind.PORTAL, 1, 1, currency="USD")], currency="BRL")
