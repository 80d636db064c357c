"""
sources/climatewatch.py — Climate Watch historical emissions source adapter.

Endpoint:
  GET /api/v1/data/historical_emissions?gas=All GHG&sector=Total including LUCF&source=PIK

Response shape (one request, no paging):
  {
    "data": [
      { "iso_code3": "KOR", "country": "South Korea", "data_source": "PIK",
        "sector": "Total including LUCF", "gas": "All GHG", "unit": "MtCO₂e",
        "emissions": [ {"year": 2019, "value": 701.4}, {"year": 2020, "value": null}, ... ] },
      ...
    ]
  }

Only records matching the fixed sector/gas pair are used; everything else
the API returns alongside is ignored.

Usage:
    source = ClimateWatchSource(registry)
    df = await source.run()
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
from visualclimate_pipeline.utils.retry import with_retry

INDICATOR_CODE = "CW.TOTAL_GHG"
SOURCE_LABEL = "Climate Watch (PIK)"

SECTOR = "Total including LUCF"
GAS = "All GHG"
DATA_SOURCE = "PIK"


class ClimateWatchSource(BaseSource):
    """Pulls national total GHG emissions from the Climate Watch API."""

    name = "ClimateWatch"
    source_label = SOURCE_LABEL

    def __init__(
        self,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        timeout: float = 120.0,
    ) -> None:
        super().__init__(registry)
        self._url = (settings or Settings()).climatewatch_emissions_url
        self._timeout = timeout

    @with_retry(max_attempts=3, base_delay=2.0)
    async def _get(self) -> Any:
        params = {"gas": GAS, "sector": SECTOR, "source": DATA_SOURCE}
        self._log.info("climatewatch_fetch", url=self._url, params=params)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.get(self._url, params=params)
            response.raise_for_status()
            return response.json()

    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        """
        Download the grouped series and flatten matching records.

        Returns:
            Raw DataFrame: country, indicator_code, year, raw_value (String).

        Raises:
            SourceFetchError: HTTP failure or a payload without a data list.
        """
        try:
            payload = await self._get()
        except (httpx.HTTPError, ValueError) as exc:
            raise SourceFetchError(f"Climate Watch: {exc}") from exc

        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, list):
            raise SourceFetchError("Climate Watch: response has no data list")
        self._log.info("climatewatch_records", records=len(data))

        rows: list[dict[str, Any]] = []
        for record in data:
            if not isinstance(record, dict):
                continue
            if record.get("sector") != SECTOR or record.get("gas") != GAS:
                continue
            for point in record.get("emissions") or []:
                rows.append(
                    {
                        "country": record.get("iso_code3"),
                        "indicator_code": INDICATOR_CODE,
                        "year": point.get("year"),
                        "raw_value": point.get("value"),
                    }
                )
        return self._raw_frame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def indicators(self) -> list[Indicator]:
        return [
            Indicator(
                code=INDICATOR_CODE,
                name="Total GHG emissions including LUCF",
                unit="MtCO2e",
                source=SOURCE_LABEL,
            )
        ]

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "url": self._url,
            "description": "Climate Watch historical emissions (PIK), total incl. LUCF, all GHG",
            "indicators": [INDICATOR_CODE],
        }
