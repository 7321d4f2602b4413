import asyncio
import logging
from pathlib import Path

import polars as pl

from data.benchmarks import build_benchmark
from data.models import (
    EMVisits,
    ProgramServices,
    ProviderRecord,
    SpecialtyBenchmark,
    is_valid_npi,
)
from scanner.errors import UpstreamUnavailable

logger = logging.getLogger(__name__)

# Column name mapping: CMS "by Provider" dataset -> internal names.
# Processed summaries may already use the internal names; both are accepted.
COLUMN_MAP = {
    "npi": "Rndrng_NPI",
    "last_name": "Rndrng_Prvdr_Last_Org_Name",
    "first_name": "Rndrng_Prvdr_First_Name",
    "credential": "Rndrng_Prvdr_Crdntls",
    "specialty": "Rndrng_Prvdr_Type",
    "state": "Rndrng_Prvdr_State_Abrvtn",
    "city": "Rndrng_Prvdr_City",
    "total_beneficiaries": "Tot_Benes",
    "total_services": "Tot_Srvcs",
    "total_medicare_payment": "Tot_Mdcr_Pymt_Amt",
}

REVERSE_MAP = {v: k for k, v in COLUMN_MAP.items()}

TEXT_COLUMNS = ["npi", "last_name", "first_name", "credential", "specialty", "state", "city"]
COUNT_COLUMNS = [
    "total_beneficiaries", "total_services",
    "em_99211", "em_99212", "em_99213", "em_99214", "em_99215",
    "ccm_99490_services", "rpm_99454_services", "rpm_99457_services",
    "bhi_99484_services", "awv_g0438_services", "awv_g0439_services",
]
AMOUNT_COLUMNS = ["total_medicare_payment"]

BENCHMARK_COLUMNS = [
    "specialty", "provider_count", "avg_medicare_patients", "avg_total_payment",
    "avg_revenue_per_patient", "pct_99213", "pct_99214", "pct_99215",
    "ccm_adoption_rate", "rpm_adoption_rate", "bhi_adoption_rate", "awv_adoption_rate",
]


def _scan(filepath: Path) -> pl.LazyFrame:
    if filepath.suffix == ".parquet":
        return pl.scan_parquet(filepath)
    return pl.scan_csv(filepath, infer_schema_length=10000)


def _normalize(lf: pl.LazyFrame) -> pl.LazyFrame:
    """Rename CMS columns to internal names, add missing counts as zero, fix dtypes."""
    existing_cols = lf.collect_schema().names()
    rename_map = {raw: internal for raw, internal in REVERSE_MAP.items() if raw in existing_cols}
    if rename_map:
        lf = lf.rename(rename_map)

    names = set(lf.collect_schema().names())
    missing = [pl.lit(0).alias(col) for col in COUNT_COLUMNS + AMOUNT_COLUMNS if col not in names]
    missing += [pl.lit("").alias(col) for col in TEXT_COLUMNS if col not in names]
    if missing:
        lf = lf.with_columns(missing)

    return lf.with_columns(
        [pl.col(col).cast(pl.Utf8).fill_null("").str.strip_chars() for col in TEXT_COLUMNS]
        + [pl.col(col).cast(pl.Float64).fill_null(0).round(0).cast(pl.Int64) for col in COUNT_COLUMNS]
        + [pl.col(col).cast(pl.Float64).fill_null(0.0) for col in AMOUNT_COLUMNS]
    )


def load_provider_summaries(filepath: Path) -> pl.LazyFrame:
    """Load a one-row-per-NPI billing summary as a LazyFrame.

    Supports both CSV and Parquet files.
    """
    return _normalize(_scan(filepath))


def row_to_record(row: dict) -> ProviderRecord:
    """Convert a normalized summary row into a validated ProviderRecord."""
    name = " ".join(p for p in [row["first_name"], row["last_name"]] if p)
    return ProviderRecord(
        npi=row["npi"],
        name=name,
        credential=row["credential"],
        specialty=row["specialty"],
        city=row["city"],
        state=row["state"],
        total_patients=row["total_beneficiaries"],
        total_payment=row["total_medicare_payment"],
        total_services=row["total_services"],
        em_visits=EMVisits(
            em99211=row["em_99211"],
            em99212=row["em_99212"],
            em99213=row["em_99213"],
            em99214=row["em_99214"],
            em99215=row["em_99215"],
        ),
        programs=ProgramServices(
            ccm=row["ccm_99490_services"],
            # 99454 and 99457 are both billed monthly per enrolled patient
            rpm=max(row["rpm_99454_services"], row["rpm_99457_services"]),
            bhi=row["bhi_99484_services"],
            awv=row["awv_g0438_services"] + row["awv_g0439_services"],
        ),
    )


def load_benchmarks(filepath: Path) -> dict[str, SpecialtyBenchmark]:
    """Read a benchmark table (one row per specialty) into benchmark records."""
    df = _scan(filepath).select(BENCHMARK_COLUMNS).collect()
    benchmarks = {}
    for row in df.iter_rows(named=True):
        specialty = str(row["specialty"]).strip()
        benchmarks[specialty] = build_benchmark(specialty, (
            int(row["provider_count"] or 0),
            row["avg_medicare_patients"] or 0,
            row["avg_total_payment"] or 0,
            row["avg_revenue_per_patient"] or 0,
            row["pct_99213"] or 0.0,
            row["pct_99214"] or 0.0,
            row["pct_99215"] or 0.0,
            row["ccm_adoption_rate"] or 0.0,
            row["rpm_adoption_rate"] or 0.0,
            row["bhi_adoption_rate"] or 0.0,
            row["awv_adoption_rate"] or 0.0,
        ))
    return benchmarks


class SummaryFileProviderSource:
    """Provider source backed by a processed billing summary file.

    The file is read once, on first use, in a worker thread.
    """

    def __init__(self, filepath: Path):
        self.filepath = filepath
        self._frame: pl.DataFrame | None = None
        self._lock = asyncio.Lock()

    async def _load(self) -> pl.DataFrame:
        async with self._lock:
            if self._frame is None:
                try:
                    self._frame = await asyncio.to_thread(
                        lambda: load_provider_summaries(self.filepath).collect()
                    )
                except (OSError, pl.exceptions.PolarsError) as exc:
                    raise UpstreamUnavailable(
                        f"Cannot read provider summaries from {self.filepath}: {exc}"
                    ) from exc
                logger.info("Loaded %d provider summaries from %s",
                            self._frame.height, self.filepath)
            return self._frame

    async def fetch(self, npi: str) -> ProviderRecord | None:
        if not is_valid_npi(npi):
            return None
        frame = await self._load()
        rows = frame.filter(pl.col("npi") == npi).head(1).to_dicts()
        if not rows:
            return None
        return row_to_record(rows[0])


class FileBenchmarkRepository:
    """Benchmark repository backed by a benchmark table file."""

    def __init__(self, filepath: Path):
        self.filepath = filepath
        self._benchmarks: dict[str, SpecialtyBenchmark] | None = None
        self._lock = asyncio.Lock()

    async def get(self, specialty: str) -> SpecialtyBenchmark | None:
        async with self._lock:
            if self._benchmarks is None:
                try:
                    self._benchmarks = await asyncio.to_thread(load_benchmarks, self.filepath)
                except (OSError, pl.exceptions.PolarsError) as exc:
                    raise UpstreamUnavailable(
                        f"Cannot read benchmarks from {self.filepath}: {exc}"
                    ) from exc
        return self._benchmarks.get(specialty)
