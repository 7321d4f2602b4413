"""Tests for group scans: ordering, bounded concurrency, failure isolation."""

import asyncio

import pytest

from data.benchmarks import StaticBenchmarkRepository
from data.models import Category, ScanStatus
from scanner.batch import BatchOrchestrator, aggregate_group_results, score_distribution
from scanner.scan import ScanCoordinator
from tests.conftest import (
    CARDIO_NPI,
    FAILING_NPI,
    FULL_NPI,
    IDENTITY_NPI,
    UNKNOWN_NPI,
    FIXED_TIME,
    FakeProviderSource,
)

SYNTHETIC_NPIS = [f"88{i:08d}" for i in range(12)]


def _orchestrator(source, fetch_timeout: float = 1.0, clock=None) -> BatchOrchestrator:
    extra = {"clock": clock} if clock is not None else {}
    return BatchOrchestrator(ScanCoordinator(source, StaticBenchmarkRepository(),
                                             fetch_timeout=fetch_timeout, **extra))


@pytest.mark.asyncio
async def test_outcomes_keep_input_order(provider_source):
    npis = [UNKNOWN_NPI, "bogus", FULL_NPI, FAILING_NPI, CARDIO_NPI]
    result = await _orchestrator(provider_source).run(npis, concurrency=3)

    assert [o.npi for o in result.outcomes] == npis
    assert [o.position for o in result.outcomes] == [0, 1, 2, 3, 4]
    assert [o.status for o in result.outcomes] == [
        ScanStatus.SUCCESS, ScanStatus.INVALID, ScanStatus.SUCCESS,
        ScanStatus.FAILED, ScanStatus.SUCCESS,
    ]
    assert result.outcomes[2].result.npi == FULL_NPI


@pytest.mark.asyncio
async def test_counts_cover_every_input(provider_source):
    result = await _orchestrator(provider_source).run(
        [FULL_NPI, "123", FAILING_NPI, IDENTITY_NPI], concurrency=2)
    assert result.total_providers == 4
    assert result.successful_scans == 2
    assert result.failed_scans == 2
    assert result.successful_scans + result.failed_scans == result.total_providers
    assert {o.npi for o in result.failures} == {"123", FAILING_NPI}


@pytest.mark.asyncio
async def test_malformed_ids_do_not_reach_source(provider_source):
    await _orchestrator(provider_source).run(["abc", FULL_NPI, "12345678901"], concurrency=2)
    assert provider_source.calls == [FULL_NPI]


@pytest.mark.asyncio
async def test_concurrency_is_bounded():
    source = FakeProviderSource(delay=0.02)
    result = await _orchestrator(source).run(SYNTHETIC_NPIS, concurrency=3)
    assert result.successful_scans == len(SYNTHETIC_NPIS)
    assert source.max_in_flight == 3


@pytest.mark.asyncio
async def test_concurrency_of_one_is_sequential():
    source = FakeProviderSource(delay=0.01)
    await _orchestrator(source).run(SYNTHETIC_NPIS[:4], concurrency=1)
    assert source.max_in_flight == 1
    assert source.calls == SYNTHETIC_NPIS[:4]


@pytest.mark.asyncio
async def test_invalid_concurrency_rejected(provider_source):
    with pytest.raises(ValueError):
        await _orchestrator(provider_source).run([FULL_NPI], concurrency=0)


@pytest.mark.asyncio
async def test_failure_is_captured_with_reason(provider_source):
    result = await _orchestrator(provider_source).run([FAILING_NPI, FULL_NPI], concurrency=2)
    failed = result.outcomes[0]
    assert failed.status is ScanStatus.FAILED
    assert failed.result is None
    assert "unavailable" in failed.error


@pytest.mark.asyncio
async def test_timeout_is_a_per_item_failure():
    source = FakeProviderSource(delay=0.5)
    result = await _orchestrator(source, fetch_timeout=0.01).run(SYNTHETIC_NPIS[:2], concurrency=2)
    assert result.successful_scans == 0
    assert all("timed out" in o.error for o in result.outcomes)


@pytest.mark.asyncio
async def test_all_failures_yield_empty_aggregates():
    source = FakeProviderSource(failing=set(SYNTHETIC_NPIS[:3]))
    result = await _orchestrator(source).run(SYNTHETIC_NPIS[:3], concurrency=2)
    assert result.successful_scans == 0
    assert result.average_score == 0.0
    assert result.total_missed_revenue == 0
    assert result.practice_action_plan == ()
    assert result.top_performer is None
    assert result.biggest_opportunity is None


@pytest.mark.asyncio
async def test_empty_batch():
    result = await _orchestrator(FakeProviderSource()).run([], concurrency=5)
    assert result.total_providers == 0
    assert result.outcomes == ()


@pytest.mark.asyncio
async def test_cancel_before_start_marks_everything_cancelled():
    source = FakeProviderSource()
    cancel = asyncio.Event()
    cancel.set()
    result = await _orchestrator(source).run(SYNTHETIC_NPIS[:3], concurrency=2,
                                             cancel_event=cancel)
    assert result.cancelled
    assert source.calls == []
    assert all(o.status is ScanStatus.CANCELLED for o in result.outcomes)
    assert result.failed_scans == 3


@pytest.mark.asyncio
async def test_cancel_midway_keeps_finished_scans():
    cancel = asyncio.Event()

    class CancellingSource(FakeProviderSource):
        async def fetch(self, npi):
            found = await super().fetch(npi)
            cancel.set()
            return found

    source = CancellingSource()
    result = await _orchestrator(source).run(SYNTHETIC_NPIS[:4], concurrency=1,
                                             cancel_event=cancel)
    assert result.cancelled
    assert [o.status for o in result.outcomes] == [
        ScanStatus.SUCCESS, ScanStatus.CANCELLED, ScanStatus.CANCELLED, ScanStatus.CANCELLED,
    ]
    assert result.successful_scans == 1


@pytest.mark.asyncio
async def test_aggregates_sum_successful_scans(provider_source):
    result = await _orchestrator(provider_source).run(
        [FULL_NPI, CARDIO_NPI, FAILING_NPI, UNKNOWN_NPI], concurrency=4)
    scans = result.successful

    for category in Category:
        assert result.gap_totals[category] == pytest.approx(
            sum(s.gaps_by_category[category] for s in scans))
    assert result.total_missed_revenue == pytest.approx(
        sum(s.total_missed_revenue for s in scans))
    assert result.total_current_revenue == pytest.approx(sum(s.current_revenue for s in scans))
    assert result.total_potential_revenue == pytest.approx(
        result.total_current_revenue + result.total_missed_revenue)
    assert result.average_score == pytest.approx(
        sum(s.score.overall for s in scans) / len(scans), abs=0.05)
    assert result.cms_data_count == 2
    assert result.estimated_data_count == 1
    assert sum(b.count for b in result.score_distribution) == 3
    assert sum(t.count for t in result.tier_distribution) == 3


@pytest.mark.asyncio
async def test_practice_plan_ranks_summed_gaps(provider_source):
    result = await _orchestrator(provider_source).run([FULL_NPI, CARDIO_NPI], concurrency=2)
    plan = result.practice_action_plan
    amounts = [item.estimated_revenue for item in plan]
    assert amounts == sorted(amounts, reverse=True)
    assert {item.category for item in plan} == {
        c for c, amount in result.gap_totals.items() if amount > 0}
    awv = next(item for item in plan if item.category is Category.AWV)
    assert awv.affected_providers == 2
    assert awv.description.startswith("2 providers")


@pytest.mark.asyncio
async def test_specialty_breakdown_and_performers(provider_source):
    result = await _orchestrator(provider_source).run([FULL_NPI, CARDIO_NPI], concurrency=2)
    specialties = {s.specialty: s for s in result.specialty_breakdown}
    assert set(specialties) == {"Internal Medicine", "Cardiology"}
    assert specialties["Cardiology"].current_revenue == pytest.approx(200000.0)
    assert result.top_performer == CARDIO_NPI
    assert result.bottom_performer == FULL_NPI
    assert result.biggest_opportunity == FULL_NPI

    adoption = {row.category: row for row in result.program_adoption}
    assert adoption[Category.CCM].enrolled == 100
    assert adoption[Category.CCM].eligible == 900


def test_score_distribution_buckets():
    buckets = score_distribution([0, 9, 10, 55, 99, 100])
    assert len(buckets) == 10
    assert buckets[0].count == 2
    assert buckets[1].count == 1
    assert buckets[5].count == 1
    assert (buckets[9].low, buckets[9].high, buckets[9].count) == (90, 100, 2)


def test_aggregate_without_outcomes():
    result = aggregate_group_results([], "Empty Practice")
    assert result.practice_name == "Empty Practice"
    assert result.revenue_increase_pct == 0.0
    assert all(row.rate == 0.0 for row in result.program_adoption)


@pytest.mark.asyncio
async def test_group_timestamp_comes_from_coordinator_clock(provider_source):
    result = await _orchestrator(provider_source, clock=lambda: FIXED_TIME).run(
        [FULL_NPI, CARDIO_NPI], concurrency=2)
    assert result.scanned_at == FIXED_TIME
    assert all(scan.scanned_at == FIXED_TIME for scan in result.successful)


def test_aggregate_accepts_explicit_timestamp():
    assert aggregate_group_results([], "X", scanned_at=FIXED_TIME).scanned_at == FIXED_TIME


@pytest.mark.asyncio
async def test_gap_totals_are_read_only(provider_source):
    result = await _orchestrator(provider_source).run([FULL_NPI], concurrency=1)
    before = dict(result.gap_totals)
    with pytest.raises(TypeError):
        result.gap_totals[Category.CCM] = 0.0
    assert dict(result.gap_totals) == before
