# tests/unit/application/use_cases/test_list_divergences.py
from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest

from contrib_recon.application.use_cases.reconciliation.list_divergences import (
    ListDivergencesUseCase,
)
from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus

_AT = datetime(2026, 10, 1, tzinfo=UTC)


def _divergence(entity: str, month: int, *, resolved: bool = False) -> Divergence:
    amount = MonetaryAmount(100, "BRL")
    zero = MonetaryAmount.zero("BRL")
    d = Divergence(
        identity=DivergenceIdentity(entity, Period(2026, month), Decimal("0.11")),
        remuneration_a=amount,
        remuneration_b=amount,
        contribution_a=zero,
        contribution_b=amount,
        difference=amount,
        detected_at=_AT,
    )
    return d.resolve(_AT) if resolved else d


@pytest.fixture
def seeded_uow(fake_uow: Any) -> Any:
    for d in (
        _divergence("EMP-2", 7),
        _divergence("EMP-1", 8),
        _divergence("EMP-1", 7, resolved=True),
    ):
        fake_uow.divergence_repo.rows[d.identity] = d
    return fake_uow


@pytest.mark.asyncio
async def test_lists_all_in_deterministic_order(seeded_uow: Any) -> None:
    rows = await ListDivergencesUseCase(uow=seeded_uow).execute()
    assert [(d.identity.entity_ref, d.identity.period.month) for d in rows] == [
        ("EMP-1", 7),
        ("EMP-1", 8),
        ("EMP-2", 7),
    ]


@pytest.mark.asyncio
async def test_filters_by_status_and_entity(seeded_uow: Any) -> None:
    uc = ListDivergencesUseCase(uow=seeded_uow)

    open_rows = await uc.execute(status=DivergenceStatus.OPEN)
    emp1_resolved = await uc.execute(status=DivergenceStatus.RESOLVED, entity_ref="EMP-1")

    assert all(d.is_open for d in open_rows) and len(open_rows) == 2
    assert [d.identity.period for d in emp1_resolved] == [Period(2026, 7)]


@pytest.mark.asyncio
async def test_limit_truncates(seeded_uow: Any) -> None:
    rows = await ListDivergencesUseCase(uow=seeded_uow).execute(limit=1)
    assert len(rows) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1, 5001])
async def test_limit_out_of_range_is_rejected(fake_uow: Any, limit: int) -> None:
    with pytest.raises(ValueError):
        await ListDivergencesUseCase(uow=fake_uow).execute(limit=limit)
    assert fake_uow.entered == 0
