"""Deterministic stand-in records for providers without billing data.

Every value is drawn from a ``SeededRandom`` keyed by the NPI, so the same
identifier always produces the same provider on any machine. The generator is
a plain 32-bit mulberry32 seeded with FNV-1a, so values are reproducible
without depending on the interpreter's own random module.
"""

from collections.abc import Sequence
from typing import TypeVar

from data.benchmarks import DEFAULT_BENCHMARK
from data.models import (
    EMVisits,
    ProgramServices,
    ProviderIdentity,
    ProviderRecord,
    SpecialtyBenchmark,
)
from scanner.gaps import PROGRAMS, RATES
from scanner.numeric import round_count, round_half_up

T = TypeVar("T")

MASK32 = 0xFFFFFFFF
FNV_OFFSET = 0x811C9DC5
FNV_PRIME = 0x01000193

SPECIALTIES = [
    "Family Medicine", "Internal Medicine", "Cardiology", "Orthopedics",
    "Gastroenterology", "Neurology", "Pulmonology", "Endocrinology",
    "Dermatology", "Urology",
]
LOCATIONS = [
    ("HOUSTON", "TX"), ("CHICAGO", "IL"), ("PHOENIX", "AZ"), ("PHILADELPHIA", "PA"),
    ("DALLAS", "TX"), ("ATLANTA", "GA"), ("MIAMI", "FL"), ("DENVER", "CO"),
    ("SEATTLE", "WA"), ("BOSTON", "MA"),
]
FIRST_NAMES = ["JAMES", "ROBERT", "MICHAEL", "DAVID", "RICHARD",
               "SARAH", "JENNIFER", "MARIA", "LISA", "KAREN"]
LAST_NAMES = ["SMITH", "JOHNSON", "WILLIAMS", "BROWN", "JONES",
              "GARCIA", "MILLER", "DAVIS", "RODRIGUEZ", "MARTINEZ"]

# Enrollment relative to benchmark adoption, per program
ADOPTION_MULTIPLIERS = {"ccm": 3.0, "rpm": 2.0, "bhi": 2.0, "awv": 1.5}


def fnv1a_32(text: str) -> int:
    h = FNV_OFFSET
    for byte in text.encode("utf-8"):
        h ^= byte
        h = (h * FNV_PRIME) & MASK32
    return h


class SeededRandom:
    """mulberry32 pseudo-random generator over unsigned 32-bit state."""

    def __init__(self, seed: int):
        self.state = seed & MASK32

    @classmethod
    def for_key(cls, key: str, stream: str) -> "SeededRandom":
        return cls(fnv1a_32(f"{key}:{stream}"))

    def next_uint32(self) -> int:
        self.state = (self.state + 0x6D2B79F5) & MASK32
        t = self.state
        t = ((t ^ (t >> 15)) * (t | 1)) & MASK32
        t = ((t + (((t ^ (t >> 7)) * (t | 61)) & MASK32)) & MASK32) ^ t
        return (t ^ (t >> 14)) & MASK32

    def random(self) -> float:
        """Float in [0, 1)."""
        return self.next_uint32() / 4294967296

    def uniform(self, low: float, high: float) -> float:
        return low + self.random() * (high - low)

    def randint(self, low: int, high: int) -> int:
        """Integer in [low, high], inclusive."""
        return low + int(self.random() * (high - low + 1))

    def choice(self, options: Sequence[T]) -> T:
        return options[int(self.random() * len(options))]


def synthesize_identity(npi: str) -> ProviderIdentity:
    rng = SeededRandom.for_key(npi, "identity")
    specialty = rng.choice(SPECIALTIES)
    city, state = rng.choice(LOCATIONS)
    first = rng.choice(FIRST_NAMES)
    last = rng.choice(LAST_NAMES)
    return ProviderIdentity(
        npi=npi,
        name=f"{first} {last}",
        credential="M.D.",
        specialty=specialty,
        city=city,
        state=state,
    )


def synthesize_record(identity: ProviderIdentity,
                      benchmark: SpecialtyBenchmark | None = None) -> ProviderRecord:
    """Simulate a year of billing for ``identity`` around its specialty benchmark.

    Simulated providers skew toward 99213 and under-adopt programs, which is
    the typical pattern in the public billing data.
    """
    bench = benchmark or DEFAULT_BENCHMARK
    rng = SeededRandom.for_key(identity.npi, "billing")

    patients = round_count(bench.avg_patients * rng.uniform(0.7, 1.3))
    em_total = round_count(patients * rng.uniform(2.5, 4.0))

    shift = rng.uniform(0.08, 0.20)
    mix = bench.level_mix
    pct213 = min(0.65, mix.pct99213 + shift)
    pct215 = max(0.05, mix.pct99215 - shift * 0.6)
    pct214 = max(0.0, 1.0 - pct213 - pct215)
    em213 = round_count(em_total * pct213)
    em214 = round_count(em_total * pct214)
    em215 = round_count(em_total * pct215)
    visits = EMVisits(
        em99212=max(0, em_total - em213 - em214 - em215),
        em99213=em213,
        em99214=em214,
        em99215=em215,
    )

    adoption_factor = rng.uniform(0.1, 0.5)
    enrolled = {}
    for category, spec in PROGRAMS.items():
        eligible = patients * spec.eligibility
        rate = bench.adoption.for_category(category)
        multiplier = ADOPTION_MULTIPLIERS[category.value]
        enrolled[category.value] = round_count(eligible * adoption_factor * rate * multiplier)

    programs = ProgramServices(
        ccm=enrolled["ccm"] * 12,
        rpm=enrolled["rpm"] * 12,
        bhi=enrolled["bhi"] * 12,
        awv=enrolled["awv"],
    )

    em_revenue = em213 * RATES["99213"] + em214 * RATES["99214"] + em215 * RATES["99215"]
    program_revenue = sum(
        programs.for_category(category) * spec.rate for category, spec in PROGRAMS.items()
    )

    return ProviderRecord(
        npi=identity.npi,
        name=identity.name,
        credential=identity.credential,
        specialty=identity.specialty,
        city=identity.city,
        state=identity.state,
        total_patients=patients,
        total_payment=round_half_up(em_revenue + program_revenue, 2),
        total_services=visits.total + programs.ccm + programs.rpm + programs.bhi + programs.awv,
        em_visits=visits,
        programs=programs,
    )
