"""
sources/climatetrace.py — Climate TRACE source adapters.

Two APIs are consumed:

  v6 country/emissions (per-year)
    GET /v6/country/emissions?countries=KOR,USA,...&since=2019&to=2019
    → [ { "country": "KOR", "emissions": { "co2": ..., "ch4": ..., "n2o": ...,
                                           "co2e_100yr": 6.9e8, "co2e_20yr": ... } }, ... ]
    One request per year, 200 ms apart. A failed year is logged and skipped.
    Only co2e_100yr is read; zero or absent values are skipped.

  v7 rankings/countries (sector totals, latest year only)
    GET /v7/rankings/countries?sector=power&size=300&page=1
    → { "totals": { "start": "2024-01-01", ... },
        "rankings": [ { "country": "KOR", "emissionsQuantity": 2.4e8, ... }, ... ] }
    Paged by size; a short page ends the sector. CTRACE.TOTAL is the
    per-country sum across the nine sectors.

Usage:
    source = ClimateTraceSource(registry)
    df = await source.run(years=range(2015, 2024))

    sectors = ClimateTraceSectorSource(registry)
    df = await sectors.run()
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import date
from typing import Any

import httpx
import polars as pl

from visualclimate_shared.config import Settings
from visualclimate_shared.constants import YEAR_MIN
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry, observations_frame
from visualclimate_pipeline.utils.pager import Page, paginate, throttled
from visualclimate_pipeline.utils.retry import with_retry

SOURCE_LABEL = "Climate TRACE"

GHG_TOTAL_CODE = "CT.GHG.TOTAL"
START_YEAR = 2015
END_YEAR = 2023

SECTOR_PAGE_SIZE = 300

# sector → (indicator code, display name)
SECTORS: dict[str, tuple[str, str]] = {
    "power": ("CTRACE.POWER", "Power sector emissions"),
    "manufacturing": ("CTRACE.MANUFACTURING", "Manufacturing sector emissions"),
    "transportation": ("CTRACE.TRANSPORTATION", "Transportation sector emissions"),
    "agriculture": ("CTRACE.AGRICULTURE", "Agriculture sector emissions"),
    "fossil_fuel_operations": (
        "CTRACE.FOSSIL_FUEL_OPERATIONS",
        "Fossil fuel operations emissions",
    ),
    "buildings": ("CTRACE.BUILDINGS", "Buildings sector emissions"),
    "waste": ("CTRACE.WASTE", "Waste sector emissions"),
    "forestry_and_land_use": (
        "CTRACE.FORESTRY_AND_LAND_USE",
        "Forestry and land-use emissions",
    ),
    "mineral_extraction": ("CTRACE.MINERAL_EXTRACTION", "Mineral extraction emissions"),
}
SECTOR_TOTAL_CODE = "CTRACE.TOTAL"


class _ClimateTraceClient:
    """Shared GET helper; transport errors retry, everything else is a SourceFetchError."""

    _timeout: float

    @with_retry(max_attempts=3, base_delay=2.0)
    async def _get(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
        response = await client.get(url, params=params, headers={"Accept": "application/json"})
        response.raise_for_status()
        return response.json()

    async def _get_json(
        self, client: httpx.AsyncClient, url: str, params: dict[str, Any], what: str
    ) -> Any:
        try:
            return await self._get(client, url, params)
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(f"Climate TRACE {what}: {exc}") from exc


class ClimateTraceSource(_ClimateTraceClient, BaseSource):
    """Annual total GHG (co2e_100yr) per registry country, one request per year."""

    name = "ClimateTrace"
    source_label = SOURCE_LABEL
    year_window = (START_YEAR, END_YEAR)

    def __init__(
        self,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        countries: list[str] | None = None,
        timeout: float = 60.0,
        year_delay_s: float = 0.2,
    ) -> None:
        super().__init__(registry)
        self._base_url = (settings or Settings()).climatetrace_v6_url.rstrip("/")
        self._countries = countries
        self._timeout = timeout
        self._year_delay_s = year_delay_s
        self.failed_years: list[int] = []

    def _country_param(self) -> str:
        codes = self._countries or (list(self.registry) if self.registry is not None else [])
        if not codes:
            raise SourceFetchError("Climate TRACE: no countries to request")
        return ",".join(codes)

    async def extract(self, *, years: Any = None, **kwargs: Any) -> pl.DataFrame:
        """
        Request each year in turn; a failed year is logged and the loop moves on.

        Args:
            years: Iterable of years. Defaults to START_YEAR..END_YEAR.

        Returns:
            Raw DataFrame: country, indicator_code, year, raw_value (String).
        """
        url = f"{self._base_url}/country/emissions"
        countries = self._country_param()
        year_list = list(years) if years is not None else list(range(START_YEAR, END_YEAR + 1))
        self.failed_years = []
        rows: list[dict[str, Any]] = []

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async for year in throttled(year_list, delay_s=self._year_delay_s):
                params = {"countries": countries, "since": year, "to": year}
                try:
                    payload = await self._get_json(client, url, params, f"year {year}")
                    year_rows, missing = self._parse_year(year, payload)
                except SourceFetchError as exc:
                    self._log.error("ct_year_failed", year=year, error=str(exc))
                    self.failed_years.append(year)
                    continue

                rows.extend(year_rows)
                if missing:
                    self._log.warning("ct_no_co2e_100yr", year=year, countries=missing)
                self._log.info("ct_year", year=year, entries=len(payload))

        return self._raw_frame(rows)

    def _parse_year(
        self, year: int, payload: Any
    ) -> tuple[list[dict[str, Any]], list[str]]:
        """
        Raw rows for one year, plus the countries that reported no co2e_100yr.

        Raises:
            SourceFetchError: the payload or one of its entries is malformed.
        """
        if not isinstance(payload, list):
            raise SourceFetchError(f"Climate TRACE year {year}: expected a list")

        rows: list[dict[str, Any]] = []
        missing: list[str] = []
        for entry in payload:
            if not isinstance(entry, dict):
                continue
            emissions = entry.get("emissions")
            if emissions is None:
                emissions = {}
            if not isinstance(emissions, dict):
                raise SourceFetchError(
                    f"Climate TRACE year {year}: emissions for {entry.get('country')} is not an object"
                )
            value = emissions.get("co2e_100yr")
            if value is None or value == 0:
                missing.append(str(entry.get("country")))
                continue
            rows.append(
                {
                    "country": entry.get("country"),
                    "indicator_code": GHG_TOTAL_CODE,
                    "year": year,
                    "raw_value": value,
                }
            )
        return rows, missing

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def _round(self, value: float) -> float:
        # tonnes, whole units, halves toward +inf
        return float(math.floor(value + 0.5))

    def indicators(self) -> list[Indicator]:
        return [
            Indicator(
                code=GHG_TOTAL_CODE,
                name="Total GHG emissions (Climate TRACE, CO2e 100yr)",
                unit="tonnes CO2e",
                source=SOURCE_LABEL,
            )
        ]

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "base_url": self._base_url,
            "description": "Climate TRACE v6 country emissions, co2e_100yr per year",
            "years": [START_YEAR, END_YEAR],
            "indicators": [GHG_TOTAL_CODE],
        }


class ClimateTraceSectorSource(_ClimateTraceClient, BaseSource):
    """Latest-year sector emissions per country from the v7 rankings endpoint."""

    name = "ClimateTraceSectors"
    source_label = SOURCE_LABEL
    # v7 only serves the most recent year, which can be past the usual window
    year_window = (YEAR_MIN, date.today().year)

    def __init__(
        self,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        timeout: float = 60.0,
        page_delay_s: float = 0.3,
        sector_delay_s: float = 0.8,
        page_size: int = SECTOR_PAGE_SIZE,
    ) -> None:
        super().__init__(registry)
        self._base_url = (settings or Settings()).climatetrace_v7_url.rstrip("/")
        self._timeout = timeout
        self._page_delay_s = page_delay_s
        self._sector_delay_s = sector_delay_s
        self._page_size = page_size

    async def _fetch_sector(
        self, client: httpx.AsyncClient, sector: str
    ) -> tuple[int | None, dict[str, float]]:
        url = f"{self._base_url}/rankings/countries"
        year: int | None = None
        sums: dict[str, float] = defaultdict(float)

        async def fetch(page: int) -> Page:
            nonlocal year
            params = {"sector": sector, "size": self._page_size, "page": page}
            payload = await self._get_json(client, url, params, f"{sector} page {page}")
            if not isinstance(payload, dict):
                raise SourceFetchError(f"Climate TRACE {sector} page {page}: expected an object")
            start = (payload.get("totals") or {}).get("start")
            if isinstance(start, str) and start[:4].isdigit():
                year = int(start[:4])
            return Page(records=list(payload.get("rankings") or []))

        async for _, rankings in paginate(
            fetch, page_size=self._page_size, delay_s=self._page_delay_s
        ):
            for entry in rankings:
                iso3 = str(entry.get("country") or "").strip().upper()
                quantity = entry.get("emissionsQuantity")
                if len(iso3) != 3 or isinstance(quantity, bool):
                    continue
                if not isinstance(quantity, (int, float)):
                    continue
                sums[iso3] += quantity

        return year, dict(sums)

    async def extract(self, *, sectors: list[str] | None = None, **kwargs: Any) -> pl.DataFrame:
        """
        Page through every sector ranking and add the cross-sector total.

        Only registry countries contribute to CTRACE.TOTAL.

        Raises:
            SourceFetchError: any page fails or no data year was declared.
        """
        names = sectors or list(SECTORS)
        rows: list[dict[str, Any]] = []
        totals: dict[str, float] = defaultdict(float)
        data_year: int | None = None

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async for sector in throttled(names, delay_s=self._sector_delay_s):
                year, sums = await self._fetch_sector(client, sector)
                if year is None:
                    raise SourceFetchError(f"Climate TRACE {sector}: totals.start missing")
                if data_year is None:
                    data_year = year
                self._log.info("ct_sector", sector=sector, countries=len(sums), year=year)

                code = SECTORS[sector][0]
                for iso3, value in sums.items():
                    rows.append(
                        {"country": iso3, "indicator_code": code, "year": year, "raw_value": value}
                    )
                    if self.registry is None or iso3 in self.registry:
                        totals[iso3] += value

        for iso3, value in totals.items():
            rows.append(
                {
                    "country": iso3,
                    "indicator_code": SECTOR_TOTAL_CODE,
                    "year": data_year,
                    "raw_value": value,
                }
            )
        self._log.info("ct_sector_totals", countries=len(totals), year=data_year)
        return self._raw_frame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def indicators(self) -> list[Indicator]:
        catalogue = [
            Indicator(code=code, name=f"{name} (Climate TRACE)", unit="tonnes CO2e", source=SOURCE_LABEL)
            for code, name in SECTORS.values()
        ]
        catalogue.append(
            Indicator(
                code=SECTOR_TOTAL_CODE,
                name="Total GHG emissions, all sectors (Climate TRACE)",
                unit="tonnes CO2e",
                source=SOURCE_LABEL,
            )
        )
        return catalogue

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "base_url": self._base_url,
            "description": "Climate TRACE v7 country rankings per sector (latest year)",
            "sectors": list(SECTORS),
            "indicators": [code for code, _ in SECTORS.values()] + [SECTOR_TOTAL_CODE],
        }
