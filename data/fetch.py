import asyncio
import json
import urllib.request
from pathlib import Path

import click

from data.models import ProviderIdentity, is_valid_npi
from scanner.errors import UpstreamUnavailable

PROCESSED_DIR = Path(__file__).parent / "processed"
NPPES_API_URL = "https://npiregistry.cms.hhs.gov/api/?version=2.1&number="

# NPPES taxonomy description fragment -> benchmark specialty
TAXONOMY_SPECIALTIES = {
    "family medicine": "Family Medicine",
    "family practice": "Family Medicine",
    "internal medicine": "Internal Medicine",
    "cardiology": "Cardiology",
    "cardiovascular disease": "Cardiology",
    "pulmonary": "Pulmonology",
    "pulmonology": "Pulmonology",
    "endocrinology": "Endocrinology",
    "orthopedic": "Orthopedics",
    "orthopaedic": "Orthopedics",
    "gastroenterology": "Gastroenterology",
    "neurology": "Neurology",
    "psychiatry": "Psychiatry",
    "urology": "Urology",
    "rheumatology": "Rheumatology",
    "nephrology": "Nephrology",
    "dermatology": "Dermatology",
    "obstetrics": "OB/GYN",
    "gynecology": "OB/GYN",
    "geriatric": "Geriatric Medicine",
    "critical care": "Critical Care",
    "infectious disease": "Infectious Disease",
    "hematology": "Hematology/Oncology",
    "oncology": "Hematology/Oncology",
    "allergy": "Allergy/Immunology",
    "physical medicine": "Physical Medicine",
}


def find_summary_file(data_dir: Path | None = None) -> Path:
    """Find the processed provider summary in the data directory.

    Prefers Parquet files over CSV for faster loading.
    """
    if data_dir is None:
        data_dir = PROCESSED_DIR

    if not data_dir.exists():
        raise click.ClickException(
            f"Data directory {data_dir} not found. "
            "Place a processed provider summary in data/processed/ or pass --data-path."
        )

    data_files = list(data_dir.glob("*.parquet")) or list(data_dir.glob("*.csv"))
    if not data_files:
        raise click.ClickException(
            f"No Parquet or CSV files found in {data_dir}. "
            "Place a processed provider summary in data/processed/ or pass --data-path."
        )

    # Return the largest file (most likely the main summary)
    return max(data_files, key=lambda f: f.stat().st_size)


def map_taxonomy_to_specialty(description: str) -> str:
    desc = description.lower()
    for fragment, specialty in TAXONOMY_SPECIALTIES.items():
        if fragment in desc:
            return specialty
    return description


def parse_nppes_result(result: dict) -> ProviderIdentity:
    """Turn one NPPES registry result into a ProviderIdentity."""
    basic = result.get("basic", {})

    # Name: organization or individual
    if "organization_name" in basic:
        name = basic["organization_name"]
    else:
        parts = [basic.get("first_name", ""), basic.get("middle_name", ""),
                 basic.get("last_name", "")]
        name = " ".join(p for p in parts if p)

    # Practice address (LOCATION type preferred)
    city = state = ""
    addresses = result.get("addresses", [])
    location = next((a for a in addresses if a.get("address_purpose") == "LOCATION"),
                    addresses[0] if addresses else None)
    if location:
        city = location.get("city", "")
        state = location.get("state", "")

    # Primary taxonomy (specialty)
    specialty = ""
    taxonomies = result.get("taxonomies", [])
    primary = next((t for t in taxonomies if t.get("primary")),
                   taxonomies[0] if taxonomies else None)
    if primary:
        specialty = map_taxonomy_to_specialty(primary.get("desc", ""))

    return ProviderIdentity(
        npi=str(result.get("number", "")),
        name=name,
        credential=basic.get("credential", ""),
        specialty=specialty,
        city=city,
        state=state,
    )


def lookup_npi(npi: str, api_url: str = NPPES_API_URL, timeout: float = 10) -> ProviderIdentity | None:
    """Look up provider identity from the NPPES public registry.

    Returns None when the registry has no record for the NPI and raises
    UpstreamUnavailable when the registry cannot be reached.
    """
    try:
        with urllib.request.urlopen(api_url + npi, timeout=timeout) as resp:
            data = json.loads(resp.read())
    except (OSError, ValueError) as exc:
        raise UpstreamUnavailable(f"NPPES lookup failed for {npi}: {exc}") from exc

    if data.get("result_count", 0) == 0 or not data.get("results"):
        return None

    result = data["results"][0]
    result.setdefault("number", npi)
    return parse_nppes_result(result)


class NppesProviderSource:
    """Identity-only provider source backed by the NPPES registry."""

    def __init__(self, api_url: str = NPPES_API_URL, timeout: float = 10):
        self.api_url = api_url
        self.timeout = timeout

    async def fetch(self, npi: str) -> ProviderIdentity | None:
        if not is_valid_npi(npi):
            return None
        return await asyncio.to_thread(lookup_npi, npi, self.api_url, self.timeout)
