"""
models/observations.py — Pydantic models for the country_data and indicators tables.
"""

from __future__ import annotations

import math
from typing import Any

from pydantic import BaseModel, Field, field_validator


class Observation(BaseModel):
    """
    Matches the country_data table row.

    Natural key is (country_iso3, indicator_code, year); the store keeps one
    value per key and later upserts overwrite earlier ones.
    """

    country_iso3: str = Field(min_length=3, max_length=3)
    indicator_code: str
    year: int
    value: float
    source: str

    @field_validator("country_iso3")
    @classmethod
    def upper_iso3(cls, v: str) -> str:
        return v.upper()

    @field_validator("value")
    @classmethod
    def finite_value(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("value must be a finite number")
        return v

    @property
    def natural_key(self) -> tuple[str, str, int]:
        return (self.country_iso3, self.indicator_code, self.year)

    @classmethod
    def from_db_row(cls, row: dict[str, Any]) -> "Observation":
        return cls(**row)

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()


class Indicator(BaseModel):
    """Matches the indicators table row (unique on code)."""

    code: str                        # e.g. "OWID.CO2_PER_CAPITA"
    name: str
    unit: str
    source: str                      # "OWID", "Climate TRACE", ...
    category: str = "emissions"
    domain: str = "Climate"

    def to_insert_dict(self) -> dict[str, Any]:
        return self.model_dump()
