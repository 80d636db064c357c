"""
config.py — pydantic-settings Settings class.

All environment variables for the visualclimate pipeline are declared here.
There is no module-level instance: call load_settings() once at process
start and pass the result to whatever needs it.

Usage:
    from visualclimate_shared.config import load_settings
    settings = load_settings()          # raises ConfigurationError if the store is not configured
    print(settings.supabase_url)
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from visualclimate_shared.exceptions import ConfigurationError


def _find_dotenv() -> Path | None:
    """Walk up from CWD to find the nearest .env file."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / ".env"
        if candidate.is_file():
            return candidate
    return None


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=_find_dotenv() or ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # -------------------------------------------------------------------------
    # Supabase
    # -------------------------------------------------------------------------
    supabase_url: str = Field(
        default="",
        validation_alias=AliasChoices("supabase_url", "next_public_supabase_url"),
    )
    supabase_service_key: str = Field(
        default="",
        validation_alias=AliasChoices("supabase_service_role_key", "supabase_service_key"),
    )

    # -------------------------------------------------------------------------
    # Data sources
    # -------------------------------------------------------------------------
    worldbank_base_url: str = Field(default="https://api.worldbank.org/v2")
    climatewatch_emissions_url: str = Field(
        default="https://www.climatewatchdata.org/api/v1/data/historical_emissions"
    )
    climatetrace_v6_url: str = Field(default="https://api.climatetrace.org/v6")
    climatetrace_v7_url: str = Field(default="https://api.climatetrace.org/v7")
    owid_energy_csv_url: str = Field(
        default="https://nyc3.digitaloceanspaces.com/owid-public/data/energy/owid-energy-data.csv"
    )
    owid_co2_csv_url: str = Field(
        default="https://owid-public.owid.io/data/co2/owid-co2-data.csv"
    )

    # -------------------------------------------------------------------------
    # Local paths
    # -------------------------------------------------------------------------
    scratch_dir: str = Field(default="/tmp")
    ndgain_dir: str = Field(default="/tmp/ndgain")
    ndgain_fallback_dir: str = Field(default="./data/ndgain")

    # -------------------------------------------------------------------------
    # Loader
    # -------------------------------------------------------------------------
    upsert_batch_size: int = Field(default=500, gt=0)

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO"
    )
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator(
        "supabase_url",
        "worldbank_base_url",
        "climatetrace_v6_url",
        "climatetrace_v7_url",
        mode="before",
    )
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/") if isinstance(v, str) else v

    def missing_store_settings(self) -> list[str]:
        """Return the env var names required for store access that are unset."""
        missing: list[str] = []
        if not self.supabase_url:
            missing.append("SUPABASE_URL")
        if not self.supabase_service_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        return missing


def load_settings(**overrides: Any) -> Settings:
    """
    Build the process Settings and check the store is configured.

    Args:
        **overrides: Field values that take precedence over the environment.

    Returns:
        Validated Settings.

    Raises:
        ConfigurationError: SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY is missing.
    """
    settings = Settings(**overrides)
    missing = settings.missing_store_settings()
    if missing:
        raise ConfigurationError(
            f"Missing {' and '.join(missing)}. Set them in the environment or .env."
        )
    return settings
