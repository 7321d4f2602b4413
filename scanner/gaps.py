from dataclasses import dataclass

from data.benchmarks import DEFAULT_BENCHMARK
from data.models import (
    Category,
    CodingGap,
    ProgramGap,
    ProviderRecord,
    SpecialtyBenchmark,
)
from scanner.numeric import clamp, round_count, round_half_up, safe_ratio

# Medicare national payment rates, 2024 physician fee schedule
RATES = {
    "99213": 92.03,
    "99214": 130.04,
    "99215": 176.15,
    "99490": 66.00,   # CCM, first 20 minutes per month
    "99454": 55.72,   # RPM device supply per month
    "99457": 48.80,   # RPM first 20 minutes interactive per month
    "99484": 48.56,   # BHI per month
    "G0439": 118.88,  # subsequent AWV, per visit
}

# Share of 99213 volume that can realistically move up one level
SHIFTABLE_FRACTION = 0.15
LEVEL_PRICE_DELTA = round(RATES["99214"] - RATES["99213"], 2)


@dataclass(frozen=True)
class ProgramSpec:
    category: Category
    name: str
    code: str
    rate: float
    eligibility: float  # share of the panel expected to qualify
    cadence: int        # billable services per enrolled patient per year

    @property
    def is_monthly(self) -> bool:
        return self.cadence == 12


PROGRAMS = {
    Category.CCM: ProgramSpec(Category.CCM, "Chronic Care Management", "99490",
                              RATES["99490"], 0.60, 12),
    Category.RPM: ProgramSpec(Category.RPM, "Remote Patient Monitoring", "99453-99458",
                              round(RATES["99454"] + RATES["99457"], 2), 0.40, 12),
    Category.BHI: ProgramSpec(Category.BHI, "Behavioral Health Integration", "99484",
                              RATES["99484"], 0.15, 12),
    Category.AWV: ProgramSpec(Category.AWV, "Annual Wellness Visits", "G0438/G0439",
                              RATES["G0439"], 1.00, 1),
}


@dataclass(frozen=True)
class GapReport:
    coding: CodingGap
    ccm: ProgramGap
    rpm: ProgramGap
    bhi: ProgramGap
    awv: ProgramGap

    @property
    def programs(self) -> tuple[ProgramGap, ...]:
        return (self.ccm, self.rpm, self.bhi, self.awv)

    @property
    def by_category(self) -> dict[Category, float]:
        gaps = {Category.CODING: self.coding.annual_gap}
        for gap in self.programs:
            gaps[gap.category] = gap.annual_gap
        return gaps

    @property
    def total(self) -> float:
        return sum(self.by_category.values())


def enrolled_from_services(services: int, cadence: int) -> int:
    """Estimate enrolled patients from an annual service count."""
    if services <= 0:
        return 0
    return max(1, round_count(services / cadence))


def calculate_program_gap(spec: ProgramSpec, total_patients: int, services: int) -> ProgramGap:
    eligible = round_count(total_patients * spec.eligibility)
    enrolled = enrolled_from_services(services, spec.cadence)
    periods = 12 if spec.is_monthly else 1

    current = round_half_up(enrolled * spec.rate * periods)
    potential = round_half_up(eligible * spec.rate * periods)
    # Over-enrollment never produces a negative gap
    gap = max(0.0, potential - current)

    return ProgramGap(
        category=spec.category,
        program_name=spec.name,
        code=spec.code,
        eligible_patients=eligible,
        enrolled_patients=enrolled,
        rate_per_patient=spec.rate,
        capture_rate=clamp(safe_ratio(enrolled, eligible)),
        current_annual_revenue=current,
        potential_annual_revenue=potential,
        annual_gap=gap,
    )


def calculate_coding_gap(record: ProviderRecord, benchmark: SpecialtyBenchmark) -> CodingGap:
    """Estimate revenue from moving part of the 99213 volume up to 99214."""
    visits = record.em_visits
    mix = benchmark.level_mix
    current_high = visits.high_level_share
    target_high = mix.high_level_share

    if visits.total == 0 or current_high >= target_high:
        shiftable = 0
        description = "E&M distribution is at or above benchmark"
    else:
        deficit = round_count((target_high - current_high) * visits.total)
        shiftable = min(round_count(visits.em99213 * SHIFTABLE_FRACTION), deficit)
        if shiftable > 0:
            description = f"Shift ~{shiftable:,} visits from 99213 to 99214"
        else:
            description = "E&M distribution is close to benchmark"

    return CodingGap(
        current99213_pct=visits.share("99213"),
        current99214_pct=visits.share("99214"),
        current99215_pct=visits.share("99215"),
        benchmark99213_pct=mix.pct99213,
        benchmark99214_pct=mix.pct99214,
        benchmark99215_pct=mix.pct99215,
        shiftable_visits=shiftable,
        shift_description=description,
        annual_gap=round_half_up(shiftable * LEVEL_PRICE_DELTA),
    )


def calculate_gaps(record: ProviderRecord, benchmark: SpecialtyBenchmark | None) -> GapReport:
    """Compute all five revenue gaps for one provider.

    An unknown specialty (``benchmark is None``) is measured against the
    all-specialty default benchmark.
    """
    benchmark = benchmark or DEFAULT_BENCHMARK
    program_gaps = {
        category: calculate_program_gap(spec, record.total_patients,
                                        record.programs.for_category(category))
        for category, spec in PROGRAMS.items()
    }
    return GapReport(
        coding=calculate_coding_gap(record, benchmark),
        ccm=program_gaps[Category.CCM],
        rpm=program_gaps[Category.RPM],
        bhi=program_gaps[Category.BHI],
        awv=program_gaps[Category.AWV],
    )
