"""Tests for NPPES registry parsing and chained provider lookup."""

import io
import json

import pytest

from data.fetch import (
    NppesProviderSource,
    lookup_npi,
    map_taxonomy_to_specialty,
    parse_nppes_result,
)
from data.models import ProviderIdentity, ProviderRecord
from data.sources import ChainedProviderSource
from scanner.errors import UpstreamUnavailable
from tests.conftest import FULL_NPI, IDENTITY_NPI, FakeProviderSource, make_record

NPPES_RESULT = {
    "number": IDENTITY_NPI,
    "basic": {"first_name": "ANN", "middle_name": "M", "last_name": "LEE",
              "credential": "D.O."},
    "addresses": [
        {"address_purpose": "MAILING", "city": "BOULDER", "state": "CO"},
        {"address_purpose": "LOCATION", "city": "DENVER", "state": "CO"},
    ],
    "taxonomies": [
        {"desc": "Internal Medicine", "primary": False},
        {"desc": "Family Medicine", "primary": True},
    ],
}


def test_parse_individual_result():
    identity = parse_nppes_result(NPPES_RESULT)
    assert identity == ProviderIdentity(npi=IDENTITY_NPI, name="ANN M LEE", credential="D.O.",
                                        specialty="Family Medicine", city="DENVER", state="CO")


def test_parse_organization_result():
    identity = parse_nppes_result({
        "number": IDENTITY_NPI,
        "basic": {"organization_name": "DENVER HEART CLINIC"},
        "taxonomies": [{"desc": "Cardiovascular Disease"}],
    })
    assert identity.name == "DENVER HEART CLINIC"
    assert identity.specialty == "Cardiology"
    assert identity.city == ""


@pytest.mark.parametrize("desc,expected", [
    ("Orthopaedic Surgery", "Orthopedics"),
    ("Obstetrics & Gynecology", "OB/GYN"),
    ("Psychiatry", "Psychiatry"),
    ("Chiropractor", "Chiropractor"),
])
def test_map_taxonomy_to_specialty(desc, expected):
    assert map_taxonomy_to_specialty(desc) == expected


def test_lookup_npi_parses_response(monkeypatch):
    body = json.dumps({"result_count": 1, "results": [NPPES_RESULT]}).encode()
    monkeypatch.setattr("urllib.request.urlopen", lambda url, timeout: io.BytesIO(body))
    identity = lookup_npi(IDENTITY_NPI)
    assert identity is not None
    assert identity.specialty == "Family Medicine"


def test_lookup_npi_no_results(monkeypatch):
    body = json.dumps({"result_count": 0, "results": []}).encode()
    monkeypatch.setattr("urllib.request.urlopen", lambda url, timeout: io.BytesIO(body))
    assert lookup_npi(IDENTITY_NPI) is None


def test_lookup_npi_network_error_is_reported(monkeypatch):
    def fail(url, timeout):
        raise OSError("connection refused")

    monkeypatch.setattr("urllib.request.urlopen", fail)
    with pytest.raises(UpstreamUnavailable, match="connection refused"):
        lookup_npi(IDENTITY_NPI)


@pytest.mark.asyncio
async def test_nppes_source_skips_malformed_npi():
    assert await NppesProviderSource().fetch("not-an-npi") is None


@pytest.mark.asyncio
async def test_chain_prefers_full_record():
    identity = ProviderIdentity(npi=FULL_NPI, name="JANE DOE")
    chain = ChainedProviderSource(
        FakeProviderSource({FULL_NPI: identity}),
        FakeProviderSource({FULL_NPI: make_record()}),
    )
    assert isinstance(await chain.fetch(FULL_NPI), ProviderRecord)


@pytest.mark.asyncio
async def test_chain_stops_at_first_record():
    second = FakeProviderSource({FULL_NPI: make_record()})
    chain = ChainedProviderSource(FakeProviderSource({FULL_NPI: make_record()}), second)
    await chain.fetch(FULL_NPI)
    assert second.calls == []


@pytest.mark.asyncio
async def test_chain_falls_back_to_identity():
    identity = ProviderIdentity(npi=FULL_NPI, name="JANE DOE")
    chain = ChainedProviderSource(FakeProviderSource(), FakeProviderSource({FULL_NPI: identity}))
    assert await chain.fetch(FULL_NPI) == identity


@pytest.mark.asyncio
async def test_empty_chain_finds_nothing():
    assert await ChainedProviderSource().fetch(FULL_NPI) is None
