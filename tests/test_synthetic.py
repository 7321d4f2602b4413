"""Tests for deterministic provider synthesis."""

from data.benchmarks import BENCHMARKS
from data.synthetic import (
    LOCATIONS,
    SPECIALTIES,
    SeededRandom,
    fnv1a_32,
    synthesize_identity,
    synthesize_record,
)

NPIS = [f"17{i:08d}" for i in range(25)]


def test_fnv1a_known_values():
    assert fnv1a_32("") == 0x811C9DC5
    assert fnv1a_32("a") == 0xE40C292C


def test_seeded_random_is_reproducible():
    first = SeededRandom(42)
    second = SeededRandom(42)
    assert [first.next_uint32() for _ in range(5)] == [second.next_uint32() for _ in range(5)]


def test_seeded_random_ranges():
    rng = SeededRandom.for_key("1234567890", "test")
    for _ in range(200):
        assert 0.0 <= rng.random() < 1.0
        assert 3 <= rng.randint(3, 7) <= 7
        assert 0.7 <= rng.uniform(0.7, 1.3) < 1.3


def test_streams_are_independent():
    identity = SeededRandom.for_key("1234567890", "identity")
    billing = SeededRandom.for_key("1234567890", "billing")
    assert identity.next_uint32() != billing.next_uint32()


def test_identity_is_deterministic():
    for npi in NPIS:
        assert synthesize_identity(npi) == synthesize_identity(npi)


def test_identity_fields_come_from_fixed_lists():
    for npi in NPIS:
        identity = synthesize_identity(npi)
        assert identity.npi == npi
        assert identity.specialty in SPECIALTIES
        assert (identity.city, identity.state) in LOCATIONS
        assert identity.credential == "M.D."


def test_identities_vary_across_npis():
    assert len({synthesize_identity(npi).specialty for npi in NPIS}) > 1


def test_record_is_deterministic():
    identity = synthesize_identity(NPIS[0])
    benchmark = BENCHMARKS.get(identity.specialty)
    assert synthesize_record(identity, benchmark) == synthesize_record(identity, benchmark)


def test_record_keeps_identity_and_is_consistent():
    for npi in NPIS:
        identity = synthesize_identity(npi)
        benchmark = BENCHMARKS[identity.specialty]
        record = synthesize_record(identity, benchmark)

        assert record.identity == identity
        assert 0.7 * benchmark.avg_patients - 1 <= record.total_patients
        assert record.total_patients <= 1.3 * benchmark.avg_patients + 1
        assert record.em_visits.em99211 == 0
        assert record.em_visits.em99213 > 0
        assert record.programs.ccm % 12 == 0
        assert record.programs.rpm % 12 == 0
        assert record.total_payment > 0
        assert record.total_services >= record.em_visits.total


def test_record_without_benchmark_uses_default():
    identity = synthesize_identity(NPIS[3])
    record = synthesize_record(identity)
    assert record.total_patients > 0
