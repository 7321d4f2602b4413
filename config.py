"""
Runtime settings.

All configuration comes from environment variables prefixed ``REVINTEL_``
(or a local .env file). Import the ``settings`` singleton rather than
constructing ``Settings`` in application code.
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

ROOT_DIR = Path(__file__).parent


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="REVINTEL_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    log_level: str = "WARNING"

    # ── Scanning ───────────────────────────────────────────────────────────
    fetch_timeout_seconds: float = Field(default=10.0, gt=0)
    default_concurrency: int = Field(default=5, ge=1)

    # ── Data sources ───────────────────────────────────────────────────────
    provider_summary_path: Path | None = None  # processed CMS summary (csv/parquet)
    benchmark_path: Path | None = None         # overrides the bundled benchmark table
    nppes_lookup: bool = True
    nppes_api_url: str = "https://npiregistry.cms.hhs.gov/api/?version=2.1&number="

    # ── Output ─────────────────────────────────────────────────────────────
    output_dir: Path = ROOT_DIR / "output"


settings = Settings()
