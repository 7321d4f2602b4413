from data.models import LevelMix, ProgramRates, SpecialtyBenchmark

DEFAULT_SPECIALTY = "All Specialties"

# CMS Medicare Physician & Other Practitioners, 2022 service year.
# Columns: provider_count, avg_patients, avg_total_payment, avg_revenue_per_patient,
#          pct 99213 / 99214 / 99215, adoption ccm / rpm / bhi / awv
_BENCHMARK_ROWS = {
    "Internal Medicine": (88703, 169, 77297, 457, 0.2988, 0.6073, 0.0665, 0.045, 0.0199, 0.0011, 0.3536),
    "Family Medicine": (78514, 144, 55556, 385, 0.3221, 0.6133, 0.0416, 0.052, 0.0172, 0.0014, 0.5352),
    "Orthopedics": (20699, 160, 102233, 638, 0.5388, 0.3856, 0.0222, 0.0015, 0.0022, 0.0, 0.0002),
    "Cardiology": (19399, 480, 179674, 374, 0.1611, 0.7367, 0.083, 0.0235, 0.0405, 0.0002, 0.0113),
    "Psychiatry": (18253, 82, 31564, 385, 0.35, 0.5, 0.1, 0.001, 0.001, 0.05, 0.01),
    "OB/GYN": (17962, 45, 15432, 343, 0.45, 0.45, 0.05, 0.001, 0.001, 0.001, 0.05),
    "Neurology": (15573, 220, 79417, 361, 0.25, 0.6, 0.1, 0.02, 0.015, 0.005, 0.05),
    "Gastroenterology": (14124, 280, 76335, 273, 0.35, 0.55, 0.05, 0.01, 0.005, 0.001, 0.02),
    "Dermatology": (12160, 350, 224383, 641, 0.5, 0.4, 0.03, 0.001, 0.001, 0.001, 0.01),
    "Pulmonology": (10381, 300, 95480, 318, 0.2, 0.65, 0.1, 0.04, 0.05, 0.002, 0.08),
    "Urology": (9500, 250, 85000, 340, 0.4, 0.5, 0.05, 0.01, 0.005, 0.001, 0.02),
    "Endocrinology": (6500, 280, 72000, 257, 0.25, 0.6, 0.1, 0.06, 0.04, 0.003, 0.1),
    "Nephrology": (8500, 200, 90000, 450, 0.2, 0.65, 0.1, 0.05, 0.03, 0.002, 0.05),
    "Rheumatology": (5200, 220, 65000, 295, 0.3, 0.55, 0.1, 0.03, 0.02, 0.002, 0.06),
    "Hematology/Oncology": (9000, 300, 150000, 500, 0.2, 0.6, 0.15, 0.02, 0.01, 0.005, 0.03),
    "Infectious Disease": (5000, 180, 68000, 378, 0.25, 0.6, 0.1, 0.03, 0.02, 0.002, 0.04),
    "Allergy/Immunology": (4000, 150, 55000, 367, 0.4, 0.45, 0.05, 0.01, 0.005, 0.001, 0.03),
    "Physical Medicine": (3500, 200, 60000, 300, 0.35, 0.5, 0.08, 0.01, 0.02, 0.003, 0.02),
    "Geriatric Medicine": (2500, 250, 70000, 280, 0.25, 0.55, 0.15, 0.1, 0.06, 0.01, 0.4),
    "Critical Care": (3000, 150, 120000, 800, 0.15, 0.55, 0.2, 0.02, 0.03, 0.005, 0.02),
}

# Used when a provider's specialty has no benchmark row
_DEFAULT_ROW = (0, 200, 80000, 400, 0.30, 0.55, 0.10, 0.03, 0.02, 0.005, 0.10)


def build_benchmark(specialty: str, row: tuple) -> SpecialtyBenchmark:
    """Build a benchmark from a table row.

    The published mix only covers 99213-99215; the remainder is attributed
    to 99212 so the five levels sum to one.
    """
    (provider_count, avg_patients, avg_payment, avg_rpp,
     pct213, pct214, pct215, ccm, rpm, bhi, awv) = row
    remainder = max(0.0, round(1.0 - pct213 - pct214 - pct215, 4))
    return SpecialtyBenchmark(
        specialty=specialty,
        provider_count=provider_count,
        avg_patients=avg_patients,
        avg_total_payment=avg_payment,
        avg_revenue_per_patient=avg_rpp,
        level_mix=LevelMix(pct99211=0.0, pct99212=remainder, pct99213=pct213,
                           pct99214=pct214, pct99215=pct215),
        adoption=ProgramRates(ccm=ccm, rpm=rpm, bhi=bhi, awv=awv),
    )


BENCHMARKS: dict[str, SpecialtyBenchmark] = {
    name: build_benchmark(name, row) for name, row in _BENCHMARK_ROWS.items()
}
DEFAULT_BENCHMARK = build_benchmark(DEFAULT_SPECIALTY, _DEFAULT_ROW)
SPECIALTY_LIST = list(BENCHMARKS)


class StaticBenchmarkRepository:
    """Benchmark repository over an in-memory table (the bundled one by default)."""

    def __init__(self, benchmarks: dict[str, SpecialtyBenchmark] | None = None):
        self.benchmarks = dict(BENCHMARKS if benchmarks is None else benchmarks)

    async def get(self, specialty: str) -> SpecialtyBenchmark | None:
        return self.benchmarks.get(specialty)
