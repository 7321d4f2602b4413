"""Group practice scan: bounded concurrent fan-out plus practice roll-up.

Workers pull ``(position, npi)`` pairs from a shared queue and write each
outcome into the slot of its input position, so the output order always
matches the caller's input order. The merge runs only after every worker has
finished.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import datetime

from data.models import (
    PROGRAM_CATEGORIES,
    Category,
    DataSource,
    GroupScanResult,
    ProgramAdoption,
    ProviderOutcome,
    ScanResult,
    ScanStatus,
    ScoreBucket,
    SpecialtySummary,
    TierCount,
    is_valid_npi,
)
from scanner.actions import PRACTICE_TEMPLATES, build_action_plan
from scanner.numeric import round_half_up, safe_ratio
from scanner.scan import ScanCoordinator, utc_now
from scanner.score import SCORE_TIERS

logger = logging.getLogger(__name__)

SCORE_BUCKET_WIDTH = 10


class BatchOrchestrator:
    def __init__(self, coordinator: ScanCoordinator):
        self.coordinator = coordinator

    async def run(
        self,
        npis: Sequence[str],
        concurrency: int,
        practice_name: str = "Group Practice",
        cancel_event: asyncio.Event | None = None,
    ) -> GroupScanResult:
        """Scan every identifier with at most ``concurrency`` scans in flight."""
        if concurrency < 1:
            raise ValueError(f"concurrency must be >= 1, got {concurrency}")

        slots: list[ProviderOutcome | None] = [None] * len(npis)
        queue: asyncio.Queue[tuple[int, str]] = asyncio.Queue()

        # Malformed identifiers never occupy a worker
        for position, npi in enumerate(npis):
            if is_valid_npi(npi):
                queue.put_nowait((position, npi))
            else:
                slots[position] = ProviderOutcome(
                    position=position, npi=str(npi), status=ScanStatus.INVALID,
                    error=f"Invalid NPI {npi!r}: must be a 10-digit number",
                )

        pending = queue.qsize()
        worker_count = min(concurrency, pending)
        logger.info("Group scan of %d providers (%d valid) with %d workers",
                    len(npis), pending, worker_count)

        workers = [
            asyncio.create_task(self._worker(queue, slots, cancel_event))
            for _ in range(worker_count)
        ]
        if workers:
            await asyncio.gather(*workers)

        cancelled = False
        for position, outcome in enumerate(slots):
            if outcome is None:
                cancelled = True
                slots[position] = ProviderOutcome(
                    position=position, npi=npis[position], status=ScanStatus.CANCELLED,
                    error="Scan cancelled before it started",
                )

        result = aggregate_group_results(slots, practice_name, cancelled=cancelled,
                                         scanned_at=self.coordinator.clock())
        logger.info("Group scan finished: %d succeeded, %d failed",
                    result.successful_scans, result.failed_scans)
        return result

    async def _worker(
        self,
        queue: asyncio.Queue,
        slots: list[ProviderOutcome | None],
        cancel_event: asyncio.Event | None,
    ) -> None:
        while True:
            if cancel_event is not None and cancel_event.is_set():
                return
            try:
                position, npi = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            slots[position] = await self._scan_one(position, npi)

    async def _scan_one(self, position: int, npi: str) -> ProviderOutcome:
        try:
            result = await self.coordinator.scan(npi)
        except Exception as exc:
            logger.warning("Scan failed for NPI %s: %s", npi, exc)
            return ProviderOutcome(position=position, npi=npi, status=ScanStatus.FAILED,
                                   error=str(exc) or type(exc).__name__)
        return ProviderOutcome(position=position, npi=npi, status=ScanStatus.SUCCESS,
                               result=result)


def score_distribution(scores: Sequence[int]) -> tuple[ScoreBucket, ...]:
    """Count scores in fixed-width buckets 0-9, 10-19, ... 90-100."""
    counts = Counter(min(score // SCORE_BUCKET_WIDTH, 9) for score in scores)
    return tuple(
        ScoreBucket(low=i * SCORE_BUCKET_WIDTH,
                    high=100 if i == 9 else i * SCORE_BUCKET_WIDTH + SCORE_BUCKET_WIDTH - 1,
                    count=counts.get(i, 0))
        for i in range(10)
    )


def tier_distribution(scans: Sequence[ScanResult]) -> tuple[TierCount, ...]:
    counts = Counter(scan.score.tier for scan in scans)
    return tuple(
        TierCount(tier=tier.label, color=tier.color, count=counts[tier.label])
        for tier in SCORE_TIERS if counts[tier.label] > 0
    )


def specialty_breakdown(scans: Sequence[ScanResult]) -> tuple[SpecialtySummary, ...]:
    totals: dict[str, list[float]] = defaultdict(lambda: [0, 0.0, 0.0])
    for scan in scans:
        entry = totals[scan.provider.specialty or "Unknown"]
        entry[0] += 1
        entry[1] += scan.current_revenue
        entry[2] += scan.total_missed_revenue
    rows = [
        SpecialtySummary(specialty=name, provider_count=int(count),
                         current_revenue=round_half_up(current, 2),
                         missed_revenue=round_half_up(missed, 2))
        for name, (count, current, missed) in totals.items()
    ]
    rows.sort(key=lambda r: (-r.provider_count, r.specialty))
    return tuple(rows)


def program_adoption(scans: Sequence[ScanResult]) -> tuple[ProgramAdoption, ...]:
    rows = []
    for category in PROGRAM_CATEGORIES:
        gaps = [g for scan in scans for g in scan.program_gaps if g.category is category]
        enrolled = sum(g.enrolled_patients for g in gaps)
        eligible = sum(g.eligible_patients for g in gaps)
        rows.append(ProgramAdoption(category=category, enrolled=enrolled, eligible=eligible,
                                    rate=min(1.0, safe_ratio(enrolled, eligible))))
    return tuple(rows)


def aggregate_group_results(
    outcomes: Sequence[ProviderOutcome],
    practice_name: str,
    cancelled: bool = False,
    scanned_at: datetime | None = None,
) -> GroupScanResult:
    """Merge per-provider outcomes into a practice-level result.

    Failed, invalid and cancelled rows are kept in the outcome list but
    excluded from every aggregate.
    """
    scans = [o.result for o in outcomes if o.succeeded and o.result is not None]

    gap_totals = {category: 0.0 for category in Category}
    affected = {category: 0 for category in Category}
    for scan in scans:
        for category, amount in scan.gaps_by_category.items():
            gap_totals[category] += amount
            if amount > 0:
                affected[category] += 1

    total_current = round_half_up(sum(s.current_revenue for s in scans), 2)
    total_missed = sum(gap_totals.values())
    scores = [s.score.overall for s in scans]

    by_score = sorted(scans, key=lambda s: (-s.score.overall, s.npi))
    by_missed = sorted(scans, key=lambda s: (-s.total_missed_revenue, s.npi))

    return GroupScanResult(
        practice_name=practice_name,
        scanned_at=scanned_at or utc_now(),
        outcomes=tuple(outcomes),
        total_providers=len(outcomes),
        successful_scans=len(scans),
        failed_scans=len(outcomes) - len(scans),
        gap_totals=gap_totals,
        total_current_revenue=total_current,
        total_missed_revenue=total_missed,
        total_potential_revenue=round_half_up(total_current + total_missed, 2),
        revenue_increase_pct=round_half_up(safe_ratio(total_missed, total_current) * 100, 1),
        average_score=round_half_up(sum(scores) / len(scores), 1) if scores else 0.0,
        score_distribution=score_distribution(scores),
        tier_distribution=tier_distribution(scans),
        specialty_breakdown=specialty_breakdown(scans),
        program_adoption=program_adoption(scans),
        top_performer=by_score[0].npi if by_score else None,
        bottom_performer=by_score[-1].npi if by_score else None,
        biggest_opportunity=by_missed[0].npi if by_missed else None,
        practice_action_plan=build_action_plan(gap_totals, affected, PRACTICE_TEMPLATES),
        cms_data_count=sum(1 for s in scans if s.data_source is DataSource.CMS),
        estimated_data_count=sum(1 for s in scans if s.data_source is DataSource.ESTIMATED),
        cancelled=cancelled,
    )
