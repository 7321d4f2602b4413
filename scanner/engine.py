"""Entry point for scans: tier limits and usage quotas in front of the scanners."""

import asyncio
import logging
from collections.abc import Sequence

from access.tiers import get_tier
from access.usage import UsageGate
from config import Settings, settings as default_settings
from data.benchmarks import StaticBenchmarkRepository
from data.fetch import NppesProviderSource
from data.loader import FileBenchmarkRepository, SummaryFileProviderSource
from data.models import GroupScanResult, ScanResult, is_valid_npi
from data.sources import BenchmarkRepository, ChainedProviderSource, ProviderRecordSource
from scanner.batch import BatchOrchestrator
from scanner.errors import BatchTooLarge, InvalidIdentifier, RateLimitExceeded
from scanner.scan import ScanCoordinator

logger = logging.getLogger(__name__)

SCAN_USAGE = "scan"


class RevenueEngine:
    def __init__(
        self,
        providers: ProviderRecordSource,
        benchmarks: BenchmarkRepository,
        gate: UsageGate | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or default_settings
        self.gate = gate
        self.coordinator = ScanCoordinator(providers, benchmarks,
                                           fetch_timeout=self.settings.fetch_timeout_seconds)
        self.orchestrator = BatchOrchestrator(self.coordinator)

    async def _reserve(self, account_id: str | None, tier_name: str, count: int) -> None:
        if self.gate is None or count == 0:
            return
        tier = get_tier(tier_name)
        decision = await self.gate.check_and_reserve(account_id, SCAN_USAGE, count,
                                                     limit=tier.daily_scans)
        if not decision.allowed:
            raise RateLimitExceeded(decision.reason)

    async def scan_one(self, npi: str, account_id: str | None = None,
                       tier: str = "anonymous") -> ScanResult:
        if not is_valid_npi(npi):
            raise InvalidIdentifier(npi)
        await self._reserve(account_id, tier, 1)
        return await self.coordinator.scan(npi)

    async def scan_group(
        self,
        npis: Sequence[str],
        concurrency_hint: int | None = None,
        account_id: str | None = None,
        tier: str = "anonymous",
        practice_name: str = "Group Practice",
        cancel_event: asyncio.Event | None = None,
    ) -> GroupScanResult:
        """Scan a practice's providers.

        Raises BatchTooLarge or RateLimitExceeded before any provider is
        scanned; per-provider failures end up in the result instead.
        """
        policy = get_tier(tier)
        if len(npis) > policy.batch_max:
            raise BatchTooLarge(len(npis), policy.batch_max)

        await self._reserve(account_id, tier, sum(1 for npi in npis if is_valid_npi(npi)))

        requested = concurrency_hint or self.settings.default_concurrency
        concurrency = max(1, min(requested, policy.concurrency))
        logger.info("Group scan for %s (%s tier): %d providers, concurrency %d",
                    account_id or "anonymous", policy.name, len(npis), concurrency)
        return await self.orchestrator.run(npis, concurrency, practice_name=practice_name,
                                           cancel_event=cancel_event)


def build_engine(settings: Settings | None = None, gate: UsageGate | None = None) -> RevenueEngine:
    """Wire the engine to the sources named in settings.

    Providers are looked up in the processed summary file first, then in the
    NPPES registry; anything neither knows is synthesized.
    """
    settings = settings or default_settings

    sources: list[ProviderRecordSource] = []
    if settings.provider_summary_path is not None:
        sources.append(SummaryFileProviderSource(settings.provider_summary_path))
    if settings.nppes_lookup:
        sources.append(NppesProviderSource(settings.nppes_api_url,
                                           timeout=settings.fetch_timeout_seconds))

    benchmarks: BenchmarkRepository
    if settings.benchmark_path is not None:
        benchmarks = FileBenchmarkRepository(settings.benchmark_path)
    else:
        benchmarks = StaticBenchmarkRepository()

    return RevenueEngine(ChainedProviderSource(*sources), benchmarks, gate=gate, settings=settings)
