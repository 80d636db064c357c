"""
transforms/derived.py — Indicators computed from stored series.

  DERIVED.CO2_PER_GDP          CO2 per capita / (GDP per capita / 1000),
                               t CO2e per 1000 US$, 4 decimals
  DERIVED.DECOUPLING           GDP-per-capita growth minus CO2-per-capita
                               growth since 2010, in percent, 2 decimals;
                               positive means GDP outgrew emissions
  DERIVED.EMISSIONS_INTENSITY  total GHG (kt CO2e) / GDP (current US$)

A (country, year) is skipped when either input is missing or the divisor
is zero. Decoupling needs both 2010 base values to be non-zero.

Like classification.py, everything here is pure: frames in, frames out.

Usage:
    from visualclimate_pipeline.transforms.derived import co2_gdp_frame

    index = SeriesIndex.from_frame(observations_df, year_window=None)
    df = co2_gdp_frame(index)
"""

from __future__ import annotations

from typing import Any

import polars as pl

from visualclimate_shared.constants import (
    CO2_PER_CAPITA_CODE,
    CO2_PER_GDP_CODE,
    DECOUPLING_BASE_YEAR,
    DECOUPLING_CODE,
    DERIVED_SOURCE_LABEL,
    EMISSIONS_INTENSITY_CODE,
    GDP_PER_CAPITA_CODE,
    GDP_TOTAL_CODE,
    GHG_TOTAL_KT_CODE,
)
from visualclimate_pipeline.transforms.classification import SeriesIndex
from visualclimate_pipeline.transforms.normalize import observations_frame


def _row(country: str, code: str, year: int, value: float) -> dict[str, Any]:
    return {
        "country_iso3": country,
        "indicator_code": code,
        "year": year,
        "value": value,
        "source": DERIVED_SOURCE_LABEL,
    }


def co2_per_gdp(index: SeriesIndex, country: str) -> dict[int, float]:
    """t CO2e per 1000 US$ of GDP for every year with both series."""
    gdp = index.series(country, GDP_PER_CAPITA_CODE)
    out: dict[int, float] = {}
    for year, co2 in index.series(country, CO2_PER_CAPITA_CODE).items():
        g = gdp.get(year)
        if g is None or g == 0:
            continue
        out[year] = round(co2 / (g / 1000), 4)
    return out


def decoupling(
    index: SeriesIndex, country: str, base_year: int = DECOUPLING_BASE_YEAR
) -> dict[int, float]:
    """
    Percent change of GDP per capita minus percent change of CO2 per capita,
    both measured from *base_year*. Empty when a base value is missing or zero.
    """
    co2 = index.series(country, CO2_PER_CAPITA_CODE)
    gdp = index.series(country, GDP_PER_CAPITA_CODE)
    co2_base = co2.get(base_year)
    gdp_base = gdp.get(base_year)
    if not co2_base or not gdp_base:
        return {}

    out: dict[int, float] = {}
    for year, c in co2.items():
        g = gdp.get(year)
        if g is None:
            continue
        co2_change = (c - co2_base) / co2_base * 100
        gdp_change = (g - gdp_base) / gdp_base * 100
        out[year] = round(gdp_change - co2_change, 2)
    return out


def emissions_intensity(index: SeriesIndex, country: str) -> dict[int, float]:
    """kt CO2e per current US$; years with no or non-positive GDP are skipped."""
    gdp = index.series(country, GDP_TOTAL_CODE)
    out: dict[int, float] = {}
    for year, ghg in index.series(country, GHG_TOTAL_KT_CODE).items():
        g = gdp.get(year)
        if g is None or g <= 0:
            continue
        out[year] = ghg / g
    return out


def co2_gdp_frame(index: SeriesIndex) -> pl.DataFrame:
    """DERIVED.CO2_PER_GDP and DERIVED.DECOUPLING rows for every country."""
    rows: list[dict[str, Any]] = []
    for country in index.countries():
        for year, value in co2_per_gdp(index, country).items():
            rows.append(_row(country, CO2_PER_GDP_CODE, year, value))
        for year, value in decoupling(index, country).items():
            rows.append(_row(country, DECOUPLING_CODE, year, value))
    return observations_frame(rows)


def emissions_intensity_frame(index: SeriesIndex) -> pl.DataFrame:
    rows = [
        _row(country, EMISSIONS_INTENSITY_CODE, year, value)
        for country in index.countries()
        for year, value in emissions_intensity(index, country).items()
    ]
    return observations_frame(rows)
