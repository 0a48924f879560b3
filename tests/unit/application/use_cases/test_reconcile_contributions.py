# tests/unit/application/use_cases/test_reconcile_contributions.py
from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping, Sequence
from datetime import date
from decimal import Decimal
from typing import Any

import pytest

from contrib_recon.application.use_cases.reconciliation.reconcile_contributions import (
    ReconcileContributionsUseCase,
    ReconciliationConfig,
)
from contrib_recon.domain.entities.aggregates import AggregateRecord, BucketKey
from contrib_recon.domain.entities.divergence import Divergence, DivergenceIdentity
from contrib_recon.domain.entities.money import MonetaryAmount
from contrib_recon.domain.entities.period import Period
from contrib_recon.domain.enums.reconciliation import DivergenceStatus, SourceKind
from contrib_recon.domain.exceptions.reconciliation import (
    PermanentFailure,
    PersistenceConflict,
    StoreUnavailableError,
    TransientFailure,
)
from contrib_recon.infrastructure.resilience.fetch_controller import SourceFetchController
from contrib_recon.infrastructure.resilience.retry import RetryPolicy

_TODAY = date(2026, 10, 19)
_JUL = Period(2026, 7)

# entity_ref -> list of (period, rate, remuneration, contribution) in major units
Rows = Mapping[str, Sequence[tuple[Period, str, str, str]]]


class _FakeFetcher:
    """SourceFetcher double serving canned rows per entity."""

    def __init__(
        self,
        source: SourceKind,
        rows: Rows,
        *,
        failures: Mapping[str, Exception] | None = None,
        currency: str = "BRL",
    ) -> None:
        self._source = source
        self.rows = dict(rows)
        self.failures = dict(failures or {})
        self.currency = currency
        self.calls: list[tuple[str, Period, Period]] = []
        self.before_return: Callable[[str], Any] | None = None

    @property
    def source(self) -> SourceKind:
        return self._source

    async def fetch(
        self, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[AggregateRecord]:
        self.calls.append((entity_ref, start, end))
        if self.before_return is not None:
            await self.before_return(entity_ref)
        if entity_ref in self.failures:
            raise self.failures[entity_ref]
        return [
            AggregateRecord(
                key=BucketKey(entity_ref, period, Decimal(rate)),
                source=self._source,
                remuneration=MonetaryAmount.from_decimal(rem, self.currency),
                contribution=MonetaryAmount.from_decimal(con, self.currency),
            )
            for period, rate, rem, con in self.rows.get(entity_ref, ())
        ]


class _DirectExecutor:
    async def fetch(
        self, fetcher: Any, *, entity_ref: str, start: Period, end: Period
    ) -> Sequence[AggregateRecord]:
        return await fetcher.fetch(entity_ref=entity_ref, start=start, end=end)


def _use_case(
    uow: Any,
    internal: _FakeFetcher,
    portal: _FakeFetcher,
    *,
    executor: Any | None = None,
    entities: tuple[str, ...] = ("EMP-1",),
    tolerance: int = 50,
) -> ReconcileContributionsUseCase:
    return ReconcileContributionsUseCase(
        uow=uow,
        internal_fetcher=internal,
        portal_fetcher=portal,
        executor=executor or _DirectExecutor(),
        config=ReconciliationConfig(
            currency="BRL", tolerance=tolerance, period_count=3, entities=entities
        ),
    )


def _pair(
    internal_con: str = "1100.00", portal_con: str = "1100.49"
) -> tuple[_FakeFetcher, _FakeFetcher]:
    internal = _FakeFetcher(
        SourceKind.INTERNAL, {"EMP-1": [(_JUL, "0.11", "10000.00", internal_con)]}
    )
    portal = _FakeFetcher(SourceKind.PORTAL, {"EMP-1": [(_JUL, "0.110", "10000.00", portal_con)]})
    return internal, portal


@pytest.mark.asyncio
async def test_difference_within_tolerance_produces_no_divergence(fake_uow: Any) -> None:
    internal, portal = _pair()
    report = await _use_case(fake_uow, internal, portal).reconcile(today=_TODAY)

    assert report.periods == (Period(2026, 7), Period(2026, 8), Period(2026, 9))
    assert report.divergences == ()
    assert report.succeeded == ("EMP-1",)
    assert report.failed == ()
    assert fake_uow.divergence_repo.writes == 0
    assert fake_uow.committed


@pytest.mark.asyncio
async def test_tight_tolerance_persists_signed_difference(fake_uow: Any) -> None:
    internal, portal = _pair()
    report = await _use_case(fake_uow, internal, portal).reconcile(tolerance=10, today=_TODAY)

    (divergence,) = report.divergences
    assert divergence.difference == MonetaryAmount(49, "BRL")
    assert divergence.identity == DivergenceIdentity("EMP-1", _JUL, Decimal("0.11"))
    assert fake_uow.committed
    assert list(fake_uow.divergence_repo.rows) == [divergence.identity]


@pytest.mark.asyncio
async def test_fetch_range_is_half_open_over_closed_periods(fake_uow: Any) -> None:
    internal, portal = _pair()
    await _use_case(fake_uow, internal, portal).reconcile(today=_TODAY)
    assert internal.calls == [("EMP-1", Period(2026, 7), Period(2026, 10))]
    assert portal.calls == internal.calls


@pytest.mark.asyncio
async def test_rerun_with_unchanged_upstreams_changes_nothing(fake_uow: Any) -> None:
    internal, portal = _pair()
    uc = _use_case(fake_uow, internal, portal)
    first = await uc.reconcile(tolerance=10, today=_TODAY)
    writes_after_first = fake_uow.divergence_repo.writes
    stored_before = dict(fake_uow.divergence_repo.rows)

    second = await uc.reconcile(tolerance=10, today=_TODAY)

    assert len(first.divergences) == 1
    assert second.divergences == ()
    assert second.unchanged == 1
    assert fake_uow.divergence_repo.writes == writes_after_first
    assert fake_uow.divergence_repo.rows == stored_before


@pytest.mark.asyncio
async def test_corrected_upstream_resolves_divergence(fake_uow: Any) -> None:
    internal, portal = _pair()
    uc = _use_case(fake_uow, internal, portal)
    await uc.reconcile(tolerance=10, today=_TODAY)

    portal.rows["EMP-1"] = [(_JUL, "0.11", "10000.00", "1100.00")]
    report = await uc.reconcile(tolerance=10, today=_TODAY)

    (resolved,) = report.resolved
    assert resolved.status is DivergenceStatus.RESOLVED
    assert report.opened == ()
    stored = fake_uow.divergence_repo.rows[resolved.identity]
    assert stored.status is DivergenceStatus.RESOLVED


@pytest.mark.asyncio
async def test_bucket_missing_on_one_side_is_a_divergence(fake_uow: Any) -> None:
    internal = _FakeFetcher(SourceKind.INTERNAL, {"EMP-1": [(_JUL, "0.11", "10000.00", "1100.00")]})
    portal = _FakeFetcher(SourceKind.PORTAL, {})
    report = await _use_case(fake_uow, internal, portal).reconcile(today=_TODAY)

    (divergence,) = report.divergences
    assert divergence.contribution_b.is_zero()
    assert divergence.difference.minor_units == -110000


@pytest.mark.asyncio
async def test_failing_entity_yields_partial_success(fake_uow: Any) -> None:
    internal = _FakeFetcher(
        SourceKind.INTERNAL,
        {
            "EMP-1": [(_JUL, "0.11", "10000.00", "1100.00")],
            "EMP-2": [(_JUL, "0.11", "5000.00", "550.00")],
        },
    )
    portal = _FakeFetcher(
        SourceKind.PORTAL,
        {"EMP-1": [(_JUL, "0.11", "10000.00", "1200.00")]},
        failures={"EMP-2": PermanentFailure("portal responded 403")},
    )
    report = await _use_case(fake_uow, internal, portal, entities=("EMP-1", "EMP-2")).reconcile(
        today=_TODAY
    )

    assert report.is_partial
    assert report.succeeded == ("EMP-1",)
    assert report.failed_entities == ("EMP-2",)
    assert report.failed[0].code == "SOURCE_PERMANENT"
    assert len(report.divergences) == 1
    assert fake_uow.committed
    assert all(i.entity_ref == "EMP-1" for i in fake_uow.divergence_repo.rows)


@pytest.mark.asyncio
async def test_failed_entity_keeps_its_previous_divergences(fake_uow: Any) -> None:
    internal, portal = _pair()
    uc = _use_case(fake_uow, internal, portal)
    await uc.reconcile(tolerance=10, today=_TODAY)

    portal.failures["EMP-1"] = TransientFailure("timeout")
    report = await uc.reconcile(tolerance=10, today=_TODAY)

    assert report.failed_entities == ("EMP-1",)
    (stored,) = fake_uow.divergence_repo.rows.values()
    assert stored.is_open


@pytest.mark.asyncio
async def test_currency_mismatch_is_an_entity_failure(fake_uow: Any) -> None:
    internal, _ = _pair()
    portal = _FakeFetcher(
        SourceKind.PORTAL, {"EMP-1": [(_JUL, "0.11", "10000.00", "1100.00")]}, currency="USD"
    )
    report = await _use_case(fake_uow, internal, portal).reconcile(today=_TODAY)
    assert report.failed[0].code == "CURRENCY_MISMATCH"
    assert report.succeeded == ()


@pytest.mark.asyncio
async def test_empty_window_or_scope_skips_everything(fake_uow: Any) -> None:
    internal, portal = _pair()
    uc = _use_case(fake_uow, internal, portal)

    no_periods = await uc.reconcile(0, today=_TODAY)
    no_entities = await uc.reconcile(today=_TODAY, entities=[])

    for report in (no_periods, no_entities):
        assert report.divergences == ()
        assert report.succeeded == () and report.failed == ()
    assert internal.calls == []
    assert fake_uow.entered == 0


@pytest.mark.asyncio
async def test_duplicate_entities_are_reconciled_once(fake_uow: Any) -> None:
    internal, portal = _pair()
    report = await _use_case(fake_uow, internal, portal).reconcile(
        today=_TODAY, entities=["EMP-1", "EMP-1"]
    )
    assert report.succeeded == ("EMP-1",)
    assert len(internal.calls) == 1


@pytest.mark.asyncio
async def test_negative_tolerance_is_rejected(fake_uow: Any) -> None:
    internal, portal = _pair()
    with pytest.raises(ValueError):
        await _use_case(fake_uow, internal, portal).reconcile(tolerance=-1, today=_TODAY)


@pytest.mark.asyncio
async def test_store_unavailable_is_fatal(fake_uow: Any) -> None:
    async def unavailable(_identity: Any) -> None:
        raise StoreUnavailableError("connection refused")

    fake_uow.divergence_repo.get = unavailable
    internal, portal = _pair()
    with pytest.raises(StoreUnavailableError):
        await _use_case(fake_uow, internal, portal).reconcile(tolerance=10, today=_TODAY)
    assert not fake_uow.committed
    assert fake_uow.rolled_back


@pytest.mark.asyncio
async def test_persistence_conflict_fails_only_that_entity(fake_uow: Any) -> None:
    repo = fake_uow.divergence_repo
    original_add = repo.add

    async def add(divergence: Divergence) -> None:
        if divergence.identity.entity_ref == "EMP-2":
            raise PersistenceConflict("contested identity")
        await original_add(divergence)

    repo.add = add
    internal = _FakeFetcher(
        SourceKind.INTERNAL,
        {e: [(_JUL, "0.11", "10000.00", "1100.00")] for e in ("EMP-1", "EMP-2")},
    )
    portal = _FakeFetcher(
        SourceKind.PORTAL,
        {e: [(_JUL, "0.11", "10000.00", "1300.00")] for e in ("EMP-1", "EMP-2")},
    )
    report = await _use_case(fake_uow, internal, portal, entities=("EMP-1", "EMP-2")).reconcile(
        today=_TODAY
    )
    assert report.succeeded == ("EMP-1",)
    assert report.failed[0].entity_ref == "EMP-2"
    assert report.failed[0].code == "PERSISTENCE_CONFLICT"
    assert fake_uow.committed


@pytest.mark.asyncio
async def test_cancellation_during_fetch_persists_nothing(fake_uow: Any) -> None:
    internal, portal = _pair(portal_con="1300.00")
    started = asyncio.Event()

    async def hang(_entity_ref: str) -> None:
        started.set()
        await asyncio.Event().wait()

    portal.before_return = hang
    task = asyncio.create_task(_use_case(fake_uow, internal, portal).reconcile(today=_TODAY))
    await started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert fake_uow.entered == 0
    assert fake_uow.divergence_repo.rows == {}


@pytest.mark.asyncio
async def test_cancellation_during_persistence_rolls_back(fake_uow: Any) -> None:
    repo = fake_uow.divergence_repo
    original_add = repo.add
    second_add = asyncio.Event()

    async def add(divergence: Divergence) -> None:
        await original_add(divergence)
        if len(repo.adds) == 2:
            second_add.set()
            await asyncio.Event().wait()

    repo.add = add
    internal = _FakeFetcher(
        SourceKind.INTERNAL,
        {"EMP-1": [(Period(2026, m), "0.11", "100.00", "11.00") for m in (7, 8, 9)]},
    )
    portal = _FakeFetcher(SourceKind.PORTAL, {})
    task = asyncio.create_task(_use_case(fake_uow, internal, portal).reconcile(today=_TODAY))
    await second_add.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert not fake_uow.committed
    assert fake_uow.rolled_back
    assert repo.rows == {}


@pytest.mark.asyncio
async def test_transient_failures_are_retried_through_controller(fake_uow: Any) -> None:
    internal, portal = _pair()
    remaining = [TransientFailure("503"), TransientFailure("503")]

    async def flaky(_entity_ref: str) -> None:
        if remaining:
            raise remaining.pop(0)

    portal.before_return = flaky

    async def no_sleep(_delay: float) -> None:
        return None

    controller = SourceFetchController(
        limits={SourceKind.INTERNAL: 4, SourceKind.PORTAL: 1},
        policy=RetryPolicy(attempts=3, base=0.01, jitter=0.0),
        sleep=no_sleep,
    )
    report = await _use_case(fake_uow, internal, portal, executor=controller).reconcile(
        today=_TODAY
    )
    assert report.succeeded == ("EMP-1",)
    assert len(portal.calls) == 3


def test_config_rejects_negative_tolerance() -> None:
    with pytest.raises(ValueError):
        ReconciliationConfig(tolerance=-5)


@pytest.mark.asyncio
async def test_caller_supplied_run_id_is_reported(fake_uow: Any) -> None:
    internal, portal = _pair()
    report = await _use_case(fake_uow, internal, portal).reconcile(
        today=_TODAY, run_id="run-42"
    )
    assert report.run_id == "run-42"
    assert report.summary()["run_id"] == "run-42"


@pytest.mark.asyncio
async def test_conflict_mid_entity_discards_its_earlier_writes(fake_uow: Any) -> None:
    repo = fake_uow.divergence_repo
    original_add = repo.add

    async def add(divergence: Divergence) -> None:
        if divergence.identity.rate == Decimal("0.2"):
            raise PersistenceConflict("identity claimed by a concurrent run")
        await original_add(divergence)

    repo.add = add
    internal = _FakeFetcher(
        SourceKind.INTERNAL,
        {
            "E1": [(_JUL, "0.11", "10000.00", "1100.00"), (_JUL, "0.2", "1000.00", "200.00")],
            "E2": [(_JUL, "0.11", "10000.00", "1100.00")],
        },
    )
    portal = _FakeFetcher(
        SourceKind.PORTAL,
        {
            "E1": [(_JUL, "0.11", "10000.00", "1200.00"), (_JUL, "0.2", "1000.00", "300.00")],
            "E2": [(_JUL, "0.11", "10000.00", "1200.00")],
        },
    )
    report = await _use_case(fake_uow, internal, portal, entities=("E1", "E2")).reconcile(
        today=_TODAY
    )

    assert report.succeeded == ("E2",)
    assert report.failed_entities == ("E1",)
    assert {d.identity.entity_ref for d in report.divergences} == {"E2"}
    assert fake_uow.committed
    assert fake_uow.savepoints == 2
    assert {i.entity_ref for i in repo.rows} == {"E2"}


@pytest.mark.asyncio
@pytest.mark.parametrize("entities", [["EMP-1", " "], [""]])
async def test_blank_entity_reference_is_rejected(fake_uow: Any, entities: list[str]) -> None:
    internal, portal = _pair()
    with pytest.raises(ValueError, match="blank"):
        await _use_case(fake_uow, internal, portal).reconcile(today=_TODAY, entities=entities)
    assert internal.calls == []
    assert fake_uow.entered == 0
