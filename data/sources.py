from typing import Protocol, runtime_checkable

from data.models import ProviderIdentity, ProviderRecord, SpecialtyBenchmark


@runtime_checkable
class BenchmarkRepository(Protocol):
    """Read-only lookup of specialty benchmarks by exact specialty name."""

    async def get(self, specialty: str) -> SpecialtyBenchmark | None:
        ...


@runtime_checkable
class ProviderRecordSource(Protocol):
    """Read-only lookup of one provider.

    Returns a full ``ProviderRecord`` when billing detail is known, a bare
    ``ProviderIdentity`` when only registry fields resolved, or ``None`` when
    the identifier is unknown. Raises ``UpstreamUnavailable`` when the backing
    store cannot be reached.
    """

    async def fetch(self, npi: str) -> ProviderRecord | ProviderIdentity | None:
        ...


class ChainedProviderSource:
    """Try each source in order and return the richest answer.

    A full ``ProviderRecord`` wins immediately; otherwise the first identity
    found is kept while later sources are consulted.
    """

    def __init__(self, *sources: ProviderRecordSource):
        self.sources = sources

    async def fetch(self, npi: str) -> ProviderRecord | ProviderIdentity | None:
        identity = None
        for source in self.sources:
            found = await source.fetch(npi)
            if isinstance(found, ProviderRecord):
                return found
            if found is not None and identity is None:
                identity = found
        return identity
