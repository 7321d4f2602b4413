"""Shared fixtures: synthetic CMS provider summary and in-memory sources."""

import asyncio
import csv
from datetime import datetime, timezone
from pathlib import Path

import pytest

from data.benchmarks import StaticBenchmarkRepository
from data.models import EMVisits, ProgramServices, ProviderIdentity, ProviderRecord
from scanner.errors import UpstreamUnavailable
from scanner.scan import ScanCoordinator

# Provider NPIs
FULL_NPI = "1000000001"         # complete CMS billing record, Internal Medicine
CARDIO_NPI = "2000000002"       # complete record with active programs
IDENTITY_NPI = "3000000003"     # registry identity only, no billing detail
UNKNOWN_NPI = "4000000004"      # no source knows it
FAILING_NPI = "5000000005"      # source raises
ODD_SPECIALTY_NPI = "6000000006"  # specialty with no benchmark

FIXED_TIME = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)


def make_record(npi: str = FULL_NPI, **overrides) -> ProviderRecord:
    """Internal Medicine provider: 1,000 patients, undercoded, no programs."""
    fields = dict(
        npi=npi,
        name="JANE DOE",
        credential="M.D.",
        specialty="Internal Medicine",
        city="HOUSTON",
        state="TX",
        total_patients=1000,
        total_payment=120000.0,
        total_services=1000,
        em_visits=EMVisits(em99213=600, em99214=300, em99215=100),
        programs=ProgramServices(),
    )
    fields.update(overrides)
    return ProviderRecord(**fields)


class FakeProviderSource:
    """In-memory provider source that records how many fetches overlap."""

    def __init__(self, records: dict | None = None, failing: set[str] | None = None,
                 delay: float = 0.0):
        self.records = records or {}
        self.failing = failing or set()
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def fetch(self, npi: str):
        self.calls.append(npi)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if npi in self.failing:
                raise UpstreamUnavailable(f"Provider store unavailable for {npi}")
            return self.records.get(npi)
        finally:
            self.in_flight -= 1


@pytest.fixture
def records() -> dict:
    return {
        FULL_NPI: make_record(),
        CARDIO_NPI: make_record(
            CARDIO_NPI, name="JOHN ROE", specialty="Cardiology", total_patients=500,
            total_payment=200000.0,
            em_visits=EMVisits(em99213=100, em99214=700, em99215=200),
            programs=ProgramServices(ccm=1200, rpm=600, bhi=0, awv=50),
        ),
        IDENTITY_NPI: ProviderIdentity(npi=IDENTITY_NPI, name="ANN LEE", credential="D.O.",
                                       specialty="Family Medicine", city="DENVER", state="CO"),
        ODD_SPECIALTY_NPI: make_record(ODD_SPECIALTY_NPI, specialty="Aerospace Medicine"),
    }


@pytest.fixture
def provider_source(records: dict) -> FakeProviderSource:
    return FakeProviderSource(records, failing={FAILING_NPI})


@pytest.fixture
def coordinator(provider_source: FakeProviderSource) -> ScanCoordinator:
    return ScanCoordinator(provider_source, StaticBenchmarkRepository(),
                           fetch_timeout=1.0, clock=lambda: FIXED_TIME)


def _summary_rows() -> list[dict]:
    """Rows in the CMS "by Provider" layout plus per-code service columns."""
    return [
        {
            "Rndrng_NPI": FULL_NPI,
            "Rndrng_Prvdr_Last_Org_Name": "DOE",
            "Rndrng_Prvdr_First_Name": "JANE",
            "Rndrng_Prvdr_Crdntls": "M.D.",
            "Rndrng_Prvdr_Type": "Internal Medicine",
            "Rndrng_Prvdr_State_Abrvtn": "TX",
            "Rndrng_Prvdr_City": "HOUSTON",
            "Tot_Benes": 1000,
            "Tot_Srvcs": 1000,
            "Tot_Mdcr_Pymt_Amt": "120000.00",
            "em_99211": 0, "em_99212": 0, "em_99213": 600, "em_99214": 300, "em_99215": 100,
            "ccm_99490_services": 0,
            "rpm_99454_services": 0,
            "rpm_99457_services": 0,
            "bhi_99484_services": 0,
        },
        {
            "Rndrng_NPI": CARDIO_NPI,
            "Rndrng_Prvdr_Last_Org_Name": "ROE",
            "Rndrng_Prvdr_First_Name": "JOHN",
            "Rndrng_Prvdr_Crdntls": "D.O.",
            "Rndrng_Prvdr_Type": "Cardiology",
            "Rndrng_Prvdr_State_Abrvtn": "IL",
            "Rndrng_Prvdr_City": "CHICAGO",
            "Tot_Benes": 500,
            "Tot_Srvcs": 2890,
            "Tot_Mdcr_Pymt_Amt": "200000.50",
            "em_99211": 0, "em_99212": 0, "em_99213": 100, "em_99214": 700, "em_99215": 200,
            "ccm_99490_services": 1200,
            "rpm_99454_services": 600,
            "rpm_99457_services": 480,
            "bhi_99484_services": 0,
        },
    ]


@pytest.fixture
def summary_csv(tmp_path: Path) -> Path:
    """Write a processed provider summary CSV and return its path.

    The AWV columns are left out on purpose; the loader fills them with zero.
    """
    filepath = tmp_path / "provider_summary.csv"
    rows = _summary_rows()
    with open(filepath, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
        writer.writeheader()
        writer.writerows(rows)
    return filepath


@pytest.fixture
def benchmark_csv(tmp_path: Path) -> Path:
    filepath = tmp_path / "benchmarks.csv"
    with open(filepath, "w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow([
            "specialty", "provider_count", "avg_medicare_patients", "avg_total_payment",
            "avg_revenue_per_patient", "pct_99213", "pct_99214", "pct_99215",
            "ccm_adoption_rate", "rpm_adoption_rate", "bhi_adoption_rate", "awv_adoption_rate",
        ])
        writer.writerow(["Internal Medicine", 100, 150, 60000, 400,
                         0.3, 0.5, 0.1, 0.05, 0.02, 0.001, 0.3])
        writer.writerow(["Sports Medicine", 20, 90, 30000, 333,
                         0.5, 0.4, 0.05, 0.0, 0.0, 0.0, 0.05])
    return filepath
