import math
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType

from scanner.errors import InvalidRecord

NPI_PATTERN = re.compile(r"^\d{10}$")
EM_LEVELS = ("99211", "99212", "99213", "99214", "99215")

# Tolerance for benchmark level mixes that were rounded before publishing
MIX_TOLERANCE = 0.02


def is_valid_npi(npi: object) -> bool:
    return isinstance(npi, str) and bool(NPI_PATTERN.match(npi))


class Category(Enum):
    """Revenue opportunity categories. Declaration order is the tie-break precedence."""
    CODING = "coding"
    CCM = "ccm"
    RPM = "rpm"
    BHI = "bhi"
    AWV = "awv"

    @property
    def precedence(self) -> int:
        return list(Category).index(self)


PROGRAM_CATEGORIES = (Category.CCM, Category.RPM, Category.BHI, Category.AWV)


class Difficulty(Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class DataSource(Enum):
    CMS = "cms"
    ESTIMATED = "estimated"


class ScanStatus(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    INVALID = "invalid"
    CANCELLED = "cancelled"


def _require_non_negative(owner: str, **values: float) -> None:
    for name, value in values.items():
        if value is None or not math.isfinite(value) or value < 0:
            raise InvalidRecord(f"{owner}.{name} must be >= 0, got {value!r}")


def _require_rate(owner: str, **values: float) -> None:
    for name, value in values.items():
        if value is None or not 0.0 <= value <= 1.0:
            raise InvalidRecord(f"{owner}.{name} must be within [0, 1], got {value!r}")


@dataclass(frozen=True)
class EMVisits:
    """Annual office visit counts for the five established-patient E&M levels."""
    em99211: int = 0
    em99212: int = 0
    em99213: int = 0
    em99214: int = 0
    em99215: int = 0

    def __post_init__(self):
        _require_non_negative("EMVisits", **{f"em{lvl}": self.count(lvl) for lvl in EM_LEVELS})

    def count(self, level: str) -> int:
        return getattr(self, f"em{level}")

    @property
    def total(self) -> int:
        return sum(self.count(level) for level in EM_LEVELS)

    def share(self, level: str) -> float:
        total = self.total
        return self.count(level) / total if total > 0 else 0.0

    @property
    def high_level_share(self) -> float:
        return self.share("99214") + self.share("99215")


@dataclass(frozen=True)
class ProgramServices:
    """Annual service counts for the four care-management programs."""
    ccm: int = 0
    rpm: int = 0
    bhi: int = 0
    awv: int = 0

    def __post_init__(self):
        _require_non_negative("ProgramServices", ccm=self.ccm, rpm=self.rpm,
                              bhi=self.bhi, awv=self.awv)

    def for_category(self, category: Category) -> int:
        return getattr(self, category.value)

    @property
    def active_programs(self) -> int:
        return sum(1 for c in PROGRAM_CATEGORIES if self.for_category(c) > 0)


@dataclass(frozen=True)
class ProviderIdentity:
    """Identity fields of a provider, as returned by a registry lookup."""
    npi: str
    name: str = ""
    credential: str = ""
    specialty: str = ""
    city: str = ""
    state: str = ""

    def __post_init__(self):
        if not is_valid_npi(self.npi):
            raise InvalidRecord(f"Provider NPI must be 10 digits, got {self.npi!r}")


@dataclass(frozen=True)
class ProviderRecord(ProviderIdentity):
    """One provider's annual billing totals."""
    total_patients: int = 0
    total_payment: float = 0.0
    total_services: int = 0
    em_visits: EMVisits = field(default_factory=EMVisits)
    programs: ProgramServices = field(default_factory=ProgramServices)

    def __post_init__(self):
        super().__post_init__()
        _require_non_negative("ProviderRecord", total_patients=self.total_patients,
                              total_payment=self.total_payment,
                              total_services=self.total_services)

    @property
    def identity(self) -> ProviderIdentity:
        return ProviderIdentity(npi=self.npi, name=self.name, credential=self.credential,
                                specialty=self.specialty, city=self.city, state=self.state)

    @property
    def revenue_per_patient(self) -> float:
        return self.total_payment / self.total_patients if self.total_patients > 0 else 0.0


@dataclass(frozen=True)
class LevelMix:
    """Target share of E&M visits at each level."""
    pct99211: float = 0.0
    pct99212: float = 0.0
    pct99213: float = 0.0
    pct99214: float = 0.0
    pct99215: float = 0.0

    def __post_init__(self):
        _require_rate("LevelMix", **{f"pct{lvl}": self.share(lvl) for lvl in EM_LEVELS})
        if sum(self.share(lvl) for lvl in EM_LEVELS) > 1.0 + MIX_TOLERANCE:
            raise InvalidRecord("LevelMix shares sum to more than 1")

    def share(self, level: str) -> float:
        return getattr(self, f"pct{level}")

    @property
    def high_level_share(self) -> float:
        return self.pct99214 + self.pct99215


@dataclass(frozen=True)
class ProgramRates:
    """Share of a specialty's providers billing each program."""
    ccm: float = 0.0
    rpm: float = 0.0
    bhi: float = 0.0
    awv: float = 0.0

    def __post_init__(self):
        _require_rate("ProgramRates", ccm=self.ccm, rpm=self.rpm, bhi=self.bhi, awv=self.awv)

    def for_category(self, category: Category) -> float:
        return getattr(self, category.value)


@dataclass(frozen=True)
class SpecialtyBenchmark:
    """Aggregate billing norms for one specialty."""
    specialty: str
    provider_count: int = 0
    avg_patients: float = 0.0
    avg_total_payment: float = 0.0
    avg_revenue_per_patient: float = 0.0
    level_mix: LevelMix = field(default_factory=LevelMix)
    adoption: ProgramRates = field(default_factory=ProgramRates)

    def __post_init__(self):
        _require_non_negative("SpecialtyBenchmark", provider_count=self.provider_count,
                              avg_patients=self.avg_patients,
                              avg_total_payment=self.avg_total_payment,
                              avg_revenue_per_patient=self.avg_revenue_per_patient)


@dataclass(frozen=True)
class ProgramGap:
    """Revenue gap for one care-management program."""
    category: Category
    program_name: str
    code: str
    eligible_patients: int
    enrolled_patients: int
    rate_per_patient: float  # monthly for CCM/RPM/BHI, per visit for AWV
    capture_rate: float
    current_annual_revenue: float
    potential_annual_revenue: float
    annual_gap: float


@dataclass(frozen=True)
class CodingGap:
    """Revenue gap from undercoded E&M visits."""
    current99213_pct: float
    current99214_pct: float
    current99215_pct: float
    benchmark99213_pct: float
    benchmark99214_pct: float
    benchmark99215_pct: float
    shiftable_visits: int
    shift_description: str
    annual_gap: float


@dataclass(frozen=True)
class ScoreBreakdown:
    coding_intensity: float
    revenue_per_patient: float
    program_breadth: float


@dataclass(frozen=True)
class RevenueScore:
    """Composite 0-100 revenue health score."""
    overall: int
    tier: str
    color: str
    percentile: int
    breakdown: ScoreBreakdown
    neutral: bool = False


@dataclass(frozen=True)
class ActionItem:
    """A ranked remediation step."""
    priority: int
    category: Category
    title: str
    description: str
    timeline: str
    difficulty: Difficulty
    estimated_revenue: float
    affected_providers: int = 1


@dataclass(frozen=True)
class ScanResult:
    """Revenue opportunity analysis for a single provider."""
    provider: ProviderRecord
    benchmark: SpecialtyBenchmark
    benchmark_matched: bool
    coding_gap: CodingGap
    ccm_gap: ProgramGap
    rpm_gap: ProgramGap
    bhi_gap: ProgramGap
    awv_gap: ProgramGap
    score: RevenueScore
    action_plan: tuple[ActionItem, ...]
    total_missed_revenue: float
    data_source: DataSource
    scanned_at: datetime

    @property
    def npi(self) -> str:
        return self.provider.npi

    @property
    def program_gaps(self) -> tuple[ProgramGap, ...]:
        return (self.ccm_gap, self.rpm_gap, self.bhi_gap, self.awv_gap)

    @property
    def gaps_by_category(self) -> dict[Category, float]:
        gaps = {Category.CODING: self.coding_gap.annual_gap}
        for gap in self.program_gaps:
            gaps[gap.category] = gap.annual_gap
        return gaps

    @property
    def current_revenue(self) -> float:
        return self.provider.total_payment

    @property
    def potential_revenue(self) -> float:
        return self.provider.total_payment + self.total_missed_revenue


@dataclass(frozen=True)
class ProviderOutcome:
    """One row of a group scan, in the caller's input order."""
    position: int
    npi: str
    status: ScanStatus
    result: ScanResult | None = None
    error: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status is ScanStatus.SUCCESS


@dataclass(frozen=True)
class ScoreBucket:
    low: int
    high: int
    count: int


@dataclass(frozen=True)
class TierCount:
    tier: str
    color: str
    count: int


@dataclass(frozen=True)
class SpecialtySummary:
    specialty: str
    provider_count: int
    current_revenue: float
    missed_revenue: float


@dataclass(frozen=True)
class ProgramAdoption:
    category: Category
    enrolled: int
    eligible: int
    rate: float


@dataclass(frozen=True)
class GroupScanResult:
    """Practice-wide roll-up of many single-provider scans."""
    practice_name: str
    scanned_at: datetime
    outcomes: tuple[ProviderOutcome, ...]
    total_providers: int
    successful_scans: int
    failed_scans: int
    gap_totals: Mapping[Category, float]
    total_current_revenue: float
    total_missed_revenue: float
    total_potential_revenue: float
    revenue_increase_pct: float
    average_score: float
    score_distribution: tuple[ScoreBucket, ...]
    tier_distribution: tuple[TierCount, ...]
    specialty_breakdown: tuple[SpecialtySummary, ...]
    program_adoption: tuple[ProgramAdoption, ...]
    top_performer: str | None
    bottom_performer: str | None
    biggest_opportunity: str | None
    practice_action_plan: tuple[ActionItem, ...]
    cms_data_count: int
    estimated_data_count: int
    cancelled: bool = False

    def __post_init__(self):
        object.__setattr__(self, "gap_totals", MappingProxyType(dict(self.gap_totals)))

    @property
    def successful(self) -> list[ScanResult]:
        return [o.result for o in self.outcomes if o.succeeded and o.result is not None]

    @property
    def failures(self) -> list[ProviderOutcome]:
        return [o for o in self.outcomes if not o.succeeded]
