"""Composite 0-100 revenue health score.

The score is the unweighted mean of three ratios against the specialty
benchmark, each capped at 1.0 so no single factor can carry a provider past
the benchmark.
"""

from dataclasses import dataclass

from data.models import (
    ProviderRecord,
    RevenueScore,
    ScoreBreakdown,
    SpecialtyBenchmark,
)
from scanner.numeric import clamp, round_count

NEUTRAL_SCORE = 50
PROGRAM_COUNT = 4


@dataclass(frozen=True)
class ScoreTier:
    minimum: int
    label: str
    color: str


# Evaluated top-down, first match wins
SCORE_TIERS = (
    ScoreTier(90, "Elite", "#E8A824"),
    ScoreTier(75, "Strong", "#34d399"),
    ScoreTier(60, "Average", "#facc15"),
    ScoreTier(40, "Below Average", "#fb923c"),
    ScoreTier(0, "Critical", "#f87171"),
)


def get_score_tier(score: int) -> ScoreTier:
    for tier in SCORE_TIERS:
        if score >= tier.minimum:
            return tier
    return SCORE_TIERS[-1]


def estimate_percentile(score: int) -> int:
    """Approximate national percentile from the score alone."""
    if score >= 90:
        return 95 + round_count((score - 90) * 0.5)
    if score >= 75:
        return 70 + round_count((score - 75) * 1.67)
    if score >= 60:
        return 35 + round_count((score - 60) * 2.33)
    if score >= 40:
        return 10 + round_count((score - 40) * 1.25)
    return max(1, round_count(score * 0.25))


def _benchmark_ratio(value: float, benchmark: float) -> float:
    # A benchmark of zero sets no bar, so any provider value meets it
    if benchmark <= 0:
        return 1.0
    return value / benchmark


def score_breakdown(record: ProviderRecord, benchmark: SpecialtyBenchmark) -> ScoreBreakdown:
    coding = _benchmark_ratio(record.em_visits.high_level_share,
                              benchmark.level_mix.high_level_share)
    revenue = _benchmark_ratio(record.revenue_per_patient, benchmark.avg_revenue_per_patient)
    breadth = record.programs.active_programs / PROGRAM_COUNT
    return ScoreBreakdown(
        coding_intensity=clamp(coding),
        revenue_per_patient=clamp(revenue),
        program_breadth=clamp(breadth),
    )


def _build_score(overall: int, breakdown: ScoreBreakdown, neutral: bool = False) -> RevenueScore:
    tier = get_score_tier(overall)
    return RevenueScore(
        overall=overall,
        tier=tier.label,
        color=tier.color,
        percentile=estimate_percentile(overall),
        breakdown=breakdown,
        neutral=neutral,
    )


def calculate_score(record: ProviderRecord, benchmark: SpecialtyBenchmark | None) -> RevenueScore:
    if benchmark is None:
        half = NEUTRAL_SCORE / 100
        return _build_score(NEUTRAL_SCORE, ScoreBreakdown(half, half, half), neutral=True)

    breakdown = score_breakdown(record, benchmark)
    mean = (breakdown.coding_intensity + breakdown.revenue_per_patient
            + breakdown.program_breadth) / 3
    overall = int(clamp(round_count(mean * 100), 0, 100))
    return _build_score(overall, breakdown)
