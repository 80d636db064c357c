"""
constants.py — shared constants used across the pipeline.

Table names, the natural key, year windows, and the indicator codes the
classification stage depends on are defined here so loaders, sources and
the classifier agree on them.
"""

from __future__ import annotations

from typing import Final

# ---------------------------------------------------------------------------
# Store tables
# ---------------------------------------------------------------------------
COUNTRIES_TABLE: Final[str] = "countries"
COUNTRY_DATA_TABLE: Final[str] = "country_data"
INDICATORS_TABLE: Final[str] = "indicators"

# Uniqueness constraint on country_data
NATURAL_KEY: Final[tuple[str, str, str]] = ("country_iso3", "indicator_code", "year")

OBSERVATION_COLUMNS: Final[tuple[str, ...]] = (
    "country_iso3",
    "indicator_code",
    "year",
    "value",
    "source",
)

# ---------------------------------------------------------------------------
# Year windows
# ---------------------------------------------------------------------------
YEAR_MIN: Final[int] = 2000
YEAR_MAX: Final[int] = 2023

# ---------------------------------------------------------------------------
# Classification inputs and output
# ---------------------------------------------------------------------------
CO2_PER_CAPITA_CODE: Final[str] = "EN.GHG.CO2.PC.CE.AR5"
RENEWABLE_SHARE_CODE: Final[str] = "EMBER.RENEWABLE.PCT"

CLIMATE_CLASS_CODE: Final[str] = "DERIVED.CLIMATE_CLASS"
CLASSIFICATION_YEAR: Final[int] = 2023
CLASSIFICATION_WINDOW: Final[tuple[int, int]] = (2015, 2023)
DERIVED_SOURCE_LABEL: Final[str] = "VisualClimate derived"

# Changer=1, Starter=2, Talker=3. NoData is never stored.
CLIMATE_CLASS_VALUES: Final[dict[str, int]] = {
    "Changer": 1,
    "Starter": 2,
    "Talker": 3,
}

# Renewable share must rise by more than this many percentage points
TRANSITION_THRESHOLD_PP: Final[float] = 2.0

# ---------------------------------------------------------------------------
# Derived indicators and the report card
# ---------------------------------------------------------------------------
GDP_PER_CAPITA_CODE: Final[str] = "NY.GDP.PCAP.CD"
GDP_TOTAL_CODE: Final[str] = "NY.GDP.MKTP.CD"
GHG_TOTAL_KT_CODE: Final[str] = "EN.ATM.GHGT.KT.CE"

CO2_PER_GDP_CODE: Final[str] = "DERIVED.CO2_PER_GDP"
DECOUPLING_CODE: Final[str] = "DERIVED.DECOUPLING"
EMISSIONS_INTENSITY_CODE: Final[str] = "DERIVED.EMISSIONS_INTENSITY"
DECOUPLING_BASE_YEAR: Final[int] = 2010

REPORT_SCORE_YEAR: Final[int] = 2024
REPORT_GRADE_CODE: Final[str] = "REPORT.GRADE"
REPORT_TOTAL_CODE: Final[str] = "REPORT.TOTAL_SCORE"

# ---------------------------------------------------------------------------
# Store paging
# ---------------------------------------------------------------------------
STORE_PAGE_SIZE: Final[int] = 1000
