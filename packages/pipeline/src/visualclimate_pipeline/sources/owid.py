"""
sources/owid.py — Our World in Data bulk CSV source adapters.

Two long-format files, one row per country-year with named columns:

  owid-energy-data.csv  iso_code, year, renewables_share_elec, fossil_share_elec, ...
  owid-co2-data.csv     iso_code, year, co2, co2_per_capita, ...

Each file is downloaded once into the scratch directory and reused while
present. Columns are located by header name, never by position. Only
iso_code values that are already exactly three uppercase letters are
accepted, which drops OWID's own aggregates (OWID_WRL, OWID_EU27, ...)
and regional rows with a blank code.

Usage:
    source = OwidSource(ENERGY_DATASET, registry, settings=settings)
    df = await source.run()
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import polars as pl

from visualclimate_shared.config import Settings
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry, observations_frame
from visualclimate_pipeline.utils.csv_tokenizer import header_index, iter_csv_rows
from visualclimate_pipeline.utils.downloads import get_or_download

ISO_COLUMN = "iso_code"
YEAR_COLUMN = "year"


@dataclass(frozen=True)
class OwidColumn:
    """One CSV value column and the indicator it feeds."""

    csv_col: str
    code: str
    name: str
    unit: str


@dataclass(frozen=True)
class OwidDataset:
    """A bulk OWID file and the columns read from it."""

    key: str
    url_setting: str
    filename: str
    source_label: str
    category: str
    columns: tuple[OwidColumn, ...]


ENERGY_DATASET = OwidDataset(
    key="owid-energy",
    url_setting="owid_energy_csv_url",
    filename="owid-energy-data.csv",
    source_label="Ember/OWID",
    category="energy",
    columns=(
        OwidColumn("renewables_share_elec", "EMBER.RENEWABLE.PCT",
                   "Renewable share of electricity", "%"),
        OwidColumn("fossil_share_elec", "EMBER.FOSSIL.PCT",
                   "Fossil fuel share of electricity", "%"),
        OwidColumn("carbon_intensity_elec", "EMBER.CARBON.INTENSITY",
                   "Carbon intensity of electricity", "gCO2/kWh"),
    ),
)

CO2_DATASET = OwidDataset(
    key="owid-co2",
    url_setting="owid_co2_csv_url",
    filename="owid-co2-data.csv",
    source_label="OWID CO2",
    category="emissions",
    columns=(
        OwidColumn("co2", "OWID.CO2", "Annual CO2 emissions", "Mt CO2"),
        OwidColumn("co2_per_capita", "OWID.CO2_PER_CAPITA", "CO2 emissions per capita", "t CO2/person"),
        OwidColumn("co2_per_gdp", "OWID.CO2_PER_GDP", "CO2 per unit GDP", "kg CO2 per $"),
        OwidColumn("cumulative_co2", "OWID.CUMULATIVE_CO2", "Cumulative CO2 emissions", "Mt CO2"),
        OwidColumn("share_global_co2", "OWID.SHARE_GLOBAL_CO2", "Share of global CO2 emissions", "%"),
        OwidColumn("share_global_cumulative_co2", "OWID.SHARE_GLOBAL_CUMULATIVE_CO2",
                   "Share of global cumulative CO2", "%"),
        OwidColumn("consumption_co2", "OWID.CONSUMPTION_CO2", "Consumption-based CO2 emissions", "Mt CO2"),
        OwidColumn("consumption_co2_per_capita", "OWID.CONSUMPTION_CO2_PER_CAPITA",
                   "Consumption CO2 per capita", "t CO2/person"),
        OwidColumn("co2_including_luc", "OWID.CO2_INCLUDING_LUC", "CO2 including land-use change", "Mt CO2"),
        OwidColumn("methane", "OWID.METHANE", "Methane emissions", "Mt CO2e"),
        OwidColumn("methane_per_capita", "OWID.METHANE_PER_CAPITA", "Methane emissions per capita",
                   "t CO2e/person"),
        OwidColumn("nitrous_oxide", "OWID.NITROUS_OXIDE", "Nitrous oxide emissions", "Mt CO2e"),
        OwidColumn("nitrous_oxide_per_capita", "OWID.NITROUS_OXIDE_PER_CAPITA", "Nitrous oxide per capita",
                   "t CO2e/person"),
        OwidColumn("total_ghg", "OWID.TOTAL_GHG", "Total GHG emissions", "Mt CO2e"),
        OwidColumn("total_ghg_excluding_lucf", "OWID.TOTAL_GHG_EXCLUDING_LUCF",
                   "Total GHG excl. land-use change", "Mt CO2e"),
        OwidColumn("ghg_per_capita", "OWID.GHG_PER_CAPITA", "GHG emissions per capita", "t CO2e/person"),
        OwidColumn("temperature_change_from_co2", "OWID.TEMPERATURE_CHANGE_FROM_CO2",
                   "Temperature change from CO2", "°C"),
        OwidColumn("temperature_change_from_ghg", "OWID.TEMPERATURE_CHANGE_FROM_GHG",
                   "Temperature change from GHGs", "°C"),
        OwidColumn("temperature_change_from_ch4", "OWID.TEMPERATURE_CHANGE_FROM_CH4",
                   "Temperature change from CH4", "°C"),
        OwidColumn("temperature_change_from_n2o", "OWID.TEMPERATURE_CHANGE_FROM_N2O",
                   "Temperature change from N2O", "°C"),
        OwidColumn("coal_co2", "OWID.COAL_CO2", "CO2 from coal", "Mt CO2"),
        OwidColumn("oil_co2", "OWID.OIL_CO2", "CO2 from oil", "Mt CO2"),
        OwidColumn("gas_co2", "OWID.GAS_CO2", "CO2 from gas", "Mt CO2"),
        OwidColumn("cement_co2", "OWID.CEMENT_CO2", "CO2 from cement", "Mt CO2"),
        OwidColumn("flaring_co2", "OWID.FLARING_CO2", "CO2 from flaring", "Mt CO2"),
        OwidColumn("energy_per_capita", "OWID.ENERGY_PER_CAPITA", "Energy consumption per capita",
                   "kWh/person"),
        OwidColumn("energy_per_gdp", "OWID.ENERGY_PER_GDP", "Energy consumption per unit GDP", "kWh/$"),
    ),
)


class OwidSource(BaseSource):
    """Reads one OWID bulk CSV into observations for its configured columns."""

    strict_iso3 = True

    def __init__(
        self,
        dataset: OwidDataset,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        csv_path: Path | None = None,
    ) -> None:
        self.name = dataset.key
        self.source_label = dataset.source_label
        super().__init__(registry)
        settings = settings or Settings()
        self.dataset = dataset
        self._url: str = getattr(settings, dataset.url_setting)
        self._path = csv_path or Path(settings.scratch_dir) / dataset.filename

    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        """
        Make sure the CSV is on disk, then flatten it to one raw row per value cell.

        Raises:
            SourceFetchError: download failed, file empty, or iso_code / year
                              (or every value column) missing from the header.
        """
        try:
            path = await get_or_download(self._url, self._path)
        except Exception as exc:
            raise SourceFetchError(f"{self.dataset.key}: download failed: {exc}") from exc

        rows_iter = iter_csv_rows(path)
        header = next(rows_iter, None)
        if header is None:
            raise SourceFetchError(f"{self.dataset.key}: {path} is empty")

        key_cols = header_index(header, [ISO_COLUMN, YEAR_COLUMN])
        if ISO_COLUMN not in key_cols or YEAR_COLUMN not in key_cols:
            raise SourceFetchError(f"{self.dataset.key}: iso_code or year column not found")
        iso_idx, year_idx = key_cols[ISO_COLUMN], key_cols[YEAR_COLUMN]

        value_cols = header_index(header, [c.csv_col for c in self.dataset.columns])
        for col in self.dataset.columns:
            if col.csv_col not in value_cols:
                self._log.warning("owid_column_missing", column=col.csv_col)
        if not value_cols:
            raise SourceFetchError(f"{self.dataset.key}: none of the value columns found")
        targets = [(value_cols[c.csv_col], c.code) for c in self.dataset.columns if c.csv_col in value_cols]
        self._log.info("owid_columns", found=len(targets), expected=len(self.dataset.columns))

        rows: list[dict[str, Any]] = []
        lines = 0
        for fields in rows_iter:
            lines += 1
            iso = _cell(fields, iso_idx)
            year = _cell(fields, year_idx)
            for idx, code in targets:
                rows.append(
                    {"country": iso, "indicator_code": code, "year": year, "raw_value": _cell(fields, idx)}
                )
        self._log.info("owid_parsed", path=str(path), lines=lines, cells=len(rows))
        return self._raw_frame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def indicators(self) -> list[Indicator]:
        return [
            Indicator(
                code=c.code,
                name=c.name,
                unit=c.unit,
                source=self.source_label,
                category=self.dataset.category,
            )
            for c in self.dataset.columns
        ]

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "url": self._url,
            "path": str(self._path),
            "description": f"Our World in Data bulk CSV ({self.dataset.filename})",
            "indicators": [c.code for c in self.dataset.columns],
        }


def _cell(fields: list[str], idx: int) -> str | None:
    return fields[idx] if idx < len(fields) else None
