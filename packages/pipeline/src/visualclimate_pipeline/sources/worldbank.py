"""
sources/worldbank.py — World Bank Indicators API (v2) source adapter.

Endpoint:
  GET /country/all/indicator/{code}?format=json&per_page=500&date=2000:2007&page=N

Response envelope (always a two-element array):
  [
    { "page": 1, "pages": 4, "per_page": 500, "total": 1862 },
    [
      { "country": {"id": "KR", "value": "Korea, Rep."},
        "countryiso3code": "KOR", "date": "2021", "value": 11.6 },
      ...
    ]
  ]

Each indicator is fetched over three year sub-ranges so no range needs more
than a handful of pages; pages are requested one at a time with a 300 ms
pause, and there is a longer cool-down between ranges and indicators.
Null values and regional aggregates (blank countryiso3code) are dropped.

Usage:
    source = WorldBankSource(registry)
    df = await source.run(indicators=["SP.POP.TOTL"])
    # columns: country_iso3, indicator_code, year, value, source
"""

from __future__ import annotations

from typing import Any

import httpx
import polars as pl

from visualclimate_shared.config import Settings
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry, observations_frame
from visualclimate_pipeline.utils.pager import Page, paginate, throttled
from visualclimate_pipeline.utils.retry import with_retry

SOURCE_LABEL = "World Bank WDI"

# code → (name, unit, category)
WDI_INDICATORS: dict[str, tuple[str, str, str]] = {
    "EN.GHG.CO2.PC.CE.AR5": ("CO2 emissions per capita", "t CO2e/person", "emissions"),
    "NY.GDP.PCAP.CD": ("GDP per capita (current US$)", "current US$", "economy"),
    "EN.ATM.PM25.MC.M3": ("PM2.5 air pollution, mean annual exposure", "µg/m³", "environment"),
    "AG.LND.FRST.ZS": ("Forest area (% of land area)", "%", "environment"),
    "EG.USE.PCAP.KG.OE": ("Energy use per capita", "kg of oil equivalent", "energy"),
    "SP.POP.TOTL": ("Total population", "people", "socioeconomic"),
    "SP.URB.TOTL.IN.ZS": ("Urban population (% of total population)", "%", "socioeconomic"),
    "EG.FEC.RNEW.ZS": (
        "Renewable energy consumption (% of total final energy consumption)",
        "%",
        "energy",
    ),
    "EN.ATM.GHGT.KT.CE": (
        "Total greenhouse gas emissions (kt of CO2 equivalent)",
        "kt CO2e",
        "emissions",
    ),
    "NY.GDP.MKTP.CD": ("GDP (current US$)", "current US$", "economy"),
}

YEAR_RANGES: list[tuple[int, int]] = [(2000, 2007), (2008, 2015), (2016, 2023)]

PER_PAGE = 500


class WorldBankSource(BaseSource):
    """Pulls WDI indicator series for all countries from the World Bank API."""

    name = "WorldBank"
    source_label = SOURCE_LABEL

    def __init__(
        self,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        timeout: float = 60.0,
        page_delay_s: float = 0.3,
        range_delay_s: float = 2.5,
        indicator_delay_s: float = 3.0,
        per_page: int = PER_PAGE,
    ) -> None:
        super().__init__(registry)
        self._base_url = (settings or Settings()).worldbank_base_url.rstrip("/")
        self._timeout = timeout
        self._page_delay_s = page_delay_s
        self._range_delay_s = range_delay_s
        self._indicator_delay_s = indicator_delay_s
        self._per_page = per_page

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    @with_retry(max_attempts=3, base_delay=2.0)
    async def _get(self, client: httpx.AsyncClient, url: str, params: dict[str, Any]) -> Any:
        response = await client.get(url, params=params)
        response.raise_for_status()
        return response.json()

    async def _fetch_page(
        self,
        client: httpx.AsyncClient,
        code: str,
        date_from: int,
        date_to: int,
        page: int,
    ) -> Page:
        url = f"{self._base_url}/country/all/indicator/{code}"
        params = {
            "format": "json",
            "per_page": self._per_page,
            "date": f"{date_from}:{date_to}",
            "page": page,
        }
        try:
            payload = await self._get(client, url, params)
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(f"World Bank {code} page {page}: {exc}") from exc

        if not isinstance(payload, list) or len(payload) < 2 or not isinstance(payload[0], dict):
            raise SourceFetchError(f"World Bank {code} page {page}: malformed envelope")
        # an out-of-range page carries null instead of a record list
        records = payload[1] if payload[1] is not None else []
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise SourceFetchError(f"World Bank {code} page {page}: malformed envelope")

        meta = payload[0]
        self._log.info(
            "wb_page",
            indicator=code,
            range=f"{date_from}-{date_to}",
            page=page,
            pages=meta.get("pages"),
            rows=len(records),
        )
        return Page(
            records=records,
            total_pages=_as_int(meta.get("pages")),
            total_records=_as_int(meta.get("total")),
        )

    # ------------------------------------------------------------------
    # BaseSource interface
    # ------------------------------------------------------------------

    async def extract(
        self,
        *,
        indicators: list[str] | None = None,
        year_ranges: list[tuple[int, int]] | None = None,
        **kwargs: Any,
    ) -> pl.DataFrame:
        """
        Download every page of every indicator/year-range combination.

        Args:
            indicators:  WDI codes. Defaults to all WDI_INDICATORS.
            year_ranges: Inclusive (from, to) ranges. Defaults to YEAR_RANGES.

        Returns:
            Raw DataFrame: country, indicator_code, year, raw_value (String).
        """
        codes = indicators or list(WDI_INDICATORS)
        ranges = year_ranges or YEAR_RANGES
        rows: list[dict[str, Any]] = []

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            async for code in throttled(codes, delay_s=self._indicator_delay_s):
                async for date_from, date_to in throttled(ranges, delay_s=self._range_delay_s):

                    async def fetch(page: int, _c=code, _f=date_from, _t=date_to) -> Page:
                        return await self._fetch_page(client, _c, _f, _t, page)

                    async for _, records in paginate(
                        fetch, page_size=self._per_page, delay_s=self._page_delay_s
                    ):
                        for rec in records:
                            rows.append(
                                {
                                    "country": rec.get("countryiso3code"),
                                    "indicator_code": code,
                                    "year": rec.get("date"),
                                    "raw_value": rec.get("value"),
                                }
                            )

        return self._raw_frame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def indicators(self) -> list[Indicator]:
        return [
            Indicator(code=code, name=name, unit=unit, source=SOURCE_LABEL, category=category)
            for code, (name, unit, category) in WDI_INDICATORS.items()
        ]

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "base_url": self._base_url,
            "description": "World Bank World Development Indicators API",
            "indicators": list(WDI_INDICATORS),
        }


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None
