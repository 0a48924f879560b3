# tests/unit/domain/services/test_comparator.py
from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey, BucketTotals
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus, SourceKind
from contrib_recon.domain.services.bucketizer import bucketize
from contrib_recon.domain.services.comparator import compare, compare_all, is_close

_AT = datetime(2026, 10, 19, 3, 0, tzinfo=UTC)
_KEY = BucketKey("EMP-1", Period(2026, 7), Decimal("0.11"))


def _totals(rem: str, con: str) -> BucketTotals:
    return BucketTotals(
        MonetaryAmount.from_decimal(rem, "BRL"), MonetaryAmount.from_decimal(con, "BRL")
    )


def test_is_close_is_inclusive() -> None:
    assert is_close(MonetaryAmount(100, "BRL"), MonetaryAmount(150, "BRL"), 50)
    assert not is_close(MonetaryAmount(100, "BRL"), MonetaryAmount(151, "BRL"), 50)


def test_difference_within_tolerance_is_not_a_divergence() -> None:
    # 1100.00 vs 1100.49 -> 49 cents, tolerance 50
    side_a = _totals("10000.00", "1100.00")
    side_b = _totals("10000.00", "1100.49")
    assert compare(_KEY, side_a, side_b, 50, detected_at=_AT) is None


def test_difference_beyond_tolerance_is_a_divergence() -> None:
    side_a = _totals("10000.00", "1100.00")
    side_b = _totals("10000.00", "1100.49")
    divergence = compare(_KEY, side_a, side_b, 10, detected_at=_AT)
    assert divergence is not None
    assert divergence.difference == MonetaryAmount(49, "BRL")
    assert divergence.status is DivergenceStatus.OPEN
    assert divergence.resolved_at is None
    assert divergence.detected_at == _AT
    assert divergence.identity.entity_ref == "EMP-1"
    assert divergence.contribution_a.minor_units == 110000
    assert divergence.contribution_b.minor_units == 110049


def test_difference_sign_follows_side_b_minus_side_a() -> None:
    divergence = compare(_KEY, _totals("0", "2.00"), _totals("0", "1.00"), 0, detected_at=_AT)
    assert divergence is not None
    assert divergence.difference.minor_units == -100


def test_remuneration_alone_can_diverge() -> None:
    divergence = compare(
        _KEY, _totals("10000.00", "1100.00"), _totals("10100.00", "1100.00"), 50, detected_at=_AT
    )
    assert divergence is not None
    assert divergence.difference.is_zero()
    assert divergence.remuneration_b.minor_units - divergence.remuneration_a.minor_units == 10000


def test_large_totals_use_absolute_tolerance() -> None:
    big_a = _totals("90000000.00", "9900000.00")
    big_b = _totals("90000000.00", "9900000.51")
    assert compare(_KEY, big_a, big_b, 50, detected_at=_AT) is not None


def test_negative_tolerance_raises() -> None:
    with pytest.raises(ValueError):
        compare(_KEY, _totals("0", "0"), _totals("0", "0"), -1)


def test_compare_all_reports_bucket_missing_on_one_side() -> None:
    run = bucketize(
        [
            AggregateRecord(
                key=_KEY,
                source=SourceKind.INTERNAL,
                remuneration=MonetaryAmount(100000, "BRL"),
                contribution=MonetaryAmount(11000, "BRL"),
            )
        ],
        currency="BRL",
    )
    (divergence,) = compare_all(run, 50, detected_at=_AT)
    assert divergence.contribution_b.is_zero()
    assert divergence.difference.minor_units == -11000


def test_compare_all_skips_matching_buckets_and_keeps_order() -> None:
    k_aug = BucketKey("EMP-1", Period(2026, 8), Decimal("0.11"))

    def rec(key: BucketKey, source: SourceKind, con: int) -> AggregateRecord:
        return AggregateRecord(
            key=key,
            source=source,
            remuneration=MonetaryAmount(0, "BRL"),
            contribution=MonetaryAmount(con, "BRL"),
        )

    run = bucketize(
        [
            rec(k_aug, SourceKind.INTERNAL, 500),
            rec(k_aug, SourceKind.PORTAL, 900),
            rec(_KEY, SourceKind.INTERNAL, 500),
            rec(_KEY, SourceKind.PORTAL, 510),
        ],
        currency="BRL",
    )
    result = compare_all(run, 50, detected_at=_AT)
    assert [d.identity.period for d in result] == [Period(2026, 8)]
