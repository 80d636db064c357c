"""
transforms/classification.py — Four-way climate-action classification.

For each country present in either input series:

  CAGR   of CO2 per capita (EN.GHG.CO2.PC.CE.AR5) from 2015 to the latest of
         2023 / 2022 / 2021, over 8 / 7 / 6 years respectively
  delta  of renewable share (EMBER.RENEWABLE.PCT) from 2018 (else 2019) to
         the latest of 2023 / 2022 / 2021, in percentage points

  decarbonizing = CAGR defined and < 0
  transitioning = delta defined and > 2

  both            → Changer (1)
  exactly one     → Starter (2)
  neither         → Talker  (3)
  no CAGR, no delta → NoData (no row)

Everything here is pure: the pipeline reads the observations and writes
the result frame.

Usage:
    from visualclimate_pipeline.transforms.classification import classify_observations

    results = classify_observations(observations_df)
    df = classification_frame(results)
"""

from __future__ import annotations

import enum
import math
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import polars as pl

from visualclimate_shared.constants import (
    CLASSIFICATION_WINDOW,
    CLASSIFICATION_YEAR,
    CLIMATE_CLASS_CODE,
    CLIMATE_CLASS_VALUES,
    CO2_PER_CAPITA_CODE,
    DERIVED_SOURCE_LABEL,
    RENEWABLE_SHARE_CODE,
    TRANSITION_THRESHOLD_PP,
)
from visualclimate_pipeline.transforms.normalize import observations_frame

CAGR_START_YEAR = 2015
# (end year, years elapsed) in order of preference
CAGR_END_YEARS: tuple[tuple[int, int], ...] = ((2023, 8), (2022, 7), (2021, 6))
DELTA_START_YEARS: tuple[int, ...] = (2018, 2019)
DELTA_END_YEARS: tuple[int, ...] = (2023, 2022, 2021)

DEFAULT_CLASS_VALUE = CLIMATE_CLASS_VALUES["Talker"]


class ClimateClass(str, enum.Enum):
    CHANGER = "Changer"
    STARTER = "Starter"
    TALKER = "Talker"
    NO_DATA = "NoData"


def encode_class(label: str) -> int:
    """Stored numeric code for a class label; unknown labels fall back to Talker's."""
    return CLIMATE_CLASS_VALUES.get(str(label), DEFAULT_CLASS_VALUE)


# ---------------------------------------------------------------------------
# Series index
# ---------------------------------------------------------------------------


class SeriesIndex:
    """
    Observation values keyed by (country, indicator, year).

    Built once from the rows read back from the store; later rows for the
    same key replace earlier ones.
    """

    def __init__(self) -> None:
        self._values: dict[tuple[str, str, int], float] = {}
        self._series: dict[tuple[str, str], dict[int, float]] = {}

    @classmethod
    def from_frame(
        cls,
        df: pl.DataFrame,
        *,
        year_window: tuple[int, int] | None = CLASSIFICATION_WINDOW,
    ) -> "SeriesIndex":
        index = cls()
        for row in df.iter_rows(named=True):
            year = int(row["year"])
            if year_window is not None and not (year_window[0] <= year <= year_window[1]):
                continue
            value = row["value"]
            if value is None:
                continue
            index.add(row["country_iso3"], row["indicator_code"], year, float(value))
        return index

    def add(self, country: str, indicator: str, year: int, value: float) -> None:
        self._values[(country, indicator, year)] = value
        self._series.setdefault((country, indicator), {})[year] = value

    def get(self, country: str, indicator: str, year: int) -> float | None:
        return self._values.get((country, indicator, year))

    def first(self, country: str, indicator: str, years: Iterable[int]) -> tuple[int, float] | None:
        """The first (year, value) that exists among *years*, in the order given."""
        for year in years:
            value = self.get(country, indicator, year)
            if value is not None:
                return year, value
        return None

    def series(self, country: str, indicator: str) -> dict[int, float]:
        """Every year with a value for one country and indicator, in year order."""
        years = self._series.get((country, indicator), {})
        return {year: years[year] for year in sorted(years)}

    def latest(self, country: str, indicator: str) -> float | None:
        years = self.series(country, indicator)
        return years[max(years)] if years else None

    def countries(self) -> list[str]:
        return sorted({country for country, _, _ in self._values})

    def __len__(self) -> int:
        return len(self._values)


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def compute_cagr(index: SeriesIndex, country: str, indicator: str = CO2_PER_CAPITA_CODE) -> float | None:
    """
    Compound annual growth rate from CAGR_START_YEAR to the latest end year.

    Undefined (None) when the start value is missing or not strictly
    positive, when no end year has a value, or when the ratio has no real
    root (negative end value).
    """
    start = index.get(country, indicator, CAGR_START_YEAR)
    if start is None or not start > 0:
        return None
    for end_year, years in CAGR_END_YEARS:
        end = index.get(country, indicator, end_year)
        if end is None:
            continue
        if end < 0:
            return None
        cagr = (end / start) ** (1 / years) - 1
        return cagr if math.isfinite(cagr) else None
    return None


def compute_delta(index: SeriesIndex, country: str, indicator: str = RENEWABLE_SHARE_CODE) -> float | None:
    """Renewable share change in percentage points, or None when either end is missing."""
    start = index.first(country, indicator, DELTA_START_YEARS)
    end = index.first(country, indicator, DELTA_END_YEARS)
    if start is None or end is None:
        return None
    return end[1] - start[1]


def classify(cagr: float | None, delta: float | None) -> ClimateClass:
    if cagr is None and delta is None:
        return ClimateClass.NO_DATA
    decarbonizing = cagr is not None and cagr < 0
    transitioning = delta is not None and delta > TRANSITION_THRESHOLD_PP
    if decarbonizing and transitioning:
        return ClimateClass.CHANGER
    if decarbonizing or transitioning:
        return ClimateClass.STARTER
    return ClimateClass.TALKER


@dataclass
class ClassificationResult:
    country_iso3: str
    climate_class: ClimateClass
    cagr: float | None = None
    delta: float | None = None

    @property
    def value(self) -> int:
        return encode_class(self.climate_class.value)


def classify_countries(index: SeriesIndex) -> list[ClassificationResult]:
    """Classify every country in the index. NoData countries are left out."""
    results: list[ClassificationResult] = []
    for country in index.countries():
        cagr = compute_cagr(index, country)
        delta = compute_delta(index, country)
        verdict = classify(cagr, delta)
        if verdict is ClimateClass.NO_DATA:
            continue
        results.append(ClassificationResult(country, verdict, cagr, delta))
    return results


def classify_observations(df: pl.DataFrame) -> list[ClassificationResult]:
    """Build the series index from stored observations and classify it."""
    return classify_countries(SeriesIndex.from_frame(df))


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def classification_frame(results: list[ClassificationResult]) -> pl.DataFrame:
    """One DERIVED.CLIMATE_CLASS observation per classified country."""
    return observations_frame(
        [
            {
                "country_iso3": r.country_iso3,
                "indicator_code": CLIMATE_CLASS_CODE,
                "year": CLASSIFICATION_YEAR,
                "value": float(r.value),
                "source": DERIVED_SOURCE_LABEL,
            }
            for r in results
        ]
    )


def classification_report(results: list[ClassificationResult], top_n: int = 10) -> dict[str, Any]:
    """Counts per class and the top_n Changers with the steepest CAGR decline."""
    counts = {cls.value: 0 for cls in (ClimateClass.CHANGER, ClimateClass.STARTER, ClimateClass.TALKER)}
    for r in results:
        counts[r.climate_class.value] += 1
    changers = sorted(
        (r for r in results if r.climate_class is ClimateClass.CHANGER),
        key=lambda r: r.cagr if r.cagr is not None else 0.0,
    )
    return {
        "classified": len(results),
        "counts": counts,
        "top_changers": [r.country_iso3 for r in changers[:top_n]],
    }
