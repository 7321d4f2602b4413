import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TypeVar

from data.benchmarks import DEFAULT_BENCHMARK
from data.models import (
    DataSource,
    ProviderRecord,
    ScanResult,
    SpecialtyBenchmark,
    is_valid_npi,
)
from data.sources import BenchmarkRepository, ProviderRecordSource
from data.synthetic import synthesize_identity, synthesize_record
from scanner.actions import build_action_plan
from scanner.errors import InvalidIdentifier, UpstreamUnavailable
from scanner.gaps import calculate_gaps
from scanner.score import calculate_score

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_FETCH_TIMEOUT = 10.0


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ScanCoordinator:
    """Runs the full single-provider analysis.

    Provider resolution: a full billing record from the source is used as
    real data; an identity-only answer gets simulated billing around that
    identity; no answer at all gets a synthesized identity and billing. Both
    fallbacks are tagged as estimated.
    """

    def __init__(
        self,
        providers: ProviderRecordSource,
        benchmarks: BenchmarkRepository,
        fetch_timeout: float = DEFAULT_FETCH_TIMEOUT,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.providers = providers
        self.benchmarks = benchmarks
        self.fetch_timeout = fetch_timeout
        self.clock = clock

    async def _with_timeout(self, what: str, call: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(call, timeout=self.fetch_timeout)
        except asyncio.TimeoutError as exc:
            raise UpstreamUnavailable(f"{what} timed out after {self.fetch_timeout:g}s") from exc
        except OSError as exc:
            raise UpstreamUnavailable(f"{what} failed: {exc}") from exc

    async def resolve_provider(self, npi: str) -> tuple[ProviderRecord, DataSource]:
        found = await self._with_timeout(f"Provider lookup for {npi}",
                                         self.providers.fetch(npi))
        if isinstance(found, ProviderRecord):
            return found, DataSource.CMS

        if found is None:
            logger.info("No record for NPI %s; synthesizing an estimated provider", npi)
            identity = synthesize_identity(npi)
        else:
            logger.info("Only identity resolved for NPI %s; estimating billing", npi)
            identity = found

        benchmark = await self._benchmark_for(identity.specialty)
        return synthesize_record(identity, benchmark), DataSource.ESTIMATED

    async def _benchmark_for(self, specialty: str) -> SpecialtyBenchmark | None:
        return await self._with_timeout(f"Benchmark lookup for {specialty!r}",
                                        self.benchmarks.get(specialty))

    async def scan(self, npi: str) -> ScanResult:
        if not is_valid_npi(npi):
            raise InvalidIdentifier(npi)

        record, data_source = await self.resolve_provider(npi)
        benchmark = await self._benchmark_for(record.specialty)
        if benchmark is None:
            logger.info("No benchmark for specialty %r; using %s",
                        record.specialty, DEFAULT_BENCHMARK.specialty)

        return build_scan_result(record, benchmark, data_source, self.clock())


def build_scan_result(record: ProviderRecord, benchmark: SpecialtyBenchmark | None,
                      data_source: DataSource,
                      scanned_at: datetime) -> ScanResult:
    """Assemble a ScanResult from already-fetched inputs. Pure."""
    gaps = calculate_gaps(record, benchmark)
    score = calculate_score(record, benchmark)
    plan = build_action_plan(gaps.by_category)

    return ScanResult(
        provider=record,
        benchmark=benchmark or DEFAULT_BENCHMARK,
        benchmark_matched=benchmark is not None,
        coding_gap=gaps.coding,
        ccm_gap=gaps.ccm,
        rpm_gap=gaps.rpm,
        bhi_gap=gaps.bhi,
        awv_gap=gaps.awv,
        score=score,
        action_plan=plan,
        total_missed_revenue=gaps.total,
        data_source=data_source,
        scanned_at=scanned_at,
    )
