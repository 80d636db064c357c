"""
tests/test_sources/test_owid.py — Unit tests for OwidSource (energy and CO2 CSVs).
"""

from __future__ import annotations

from pathlib import Path

import httpx
import polars as pl
import pytest

from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_pipeline.sources.owid import CO2_DATASET, ENERGY_DATASET, OwidSource

FIXTURES = Path(__file__).parent.parent / "fixtures"


class TestOwidEnergy:
    @pytest.fixture
    def source(self, registry, settings) -> OwidSource:
        return OwidSource(
            ENERGY_DATASET, registry, settings=settings, csv_path=FIXTURES / "owid_energy_sample.csv"
        )

    @pytest.mark.asyncio
    async def test_cached_file_is_not_downloaded(self, source, mock_http):
        route = mock_http.get(url__regex=r".*owid-energy-data\.csv").mock(
            return_value=httpx.Response(200, text="")
        )
        await source.run()
        assert not route.called

    @pytest.mark.asyncio
    async def test_maps_ember_columns(self, source):
        df = await source.run()

        kor_2023 = {
            r["indicator_code"]: r["value"]
            for r in df.filter((pl.col("country_iso3") == "KOR") & (pl.col("year") == 2023)).iter_rows(
                named=True
            )
        }
        assert kor_2023 == {
            "EMBER.RENEWABLE.PCT": 9.6,
            "EMBER.FOSSIL.PCT": 60.8,
            "EMBER.CARBON.INTENSITY": 436.2,
        }
        assert df["source"].unique().to_list() == ["Ember/OWID"]

    @pytest.mark.asyncio
    async def test_only_strict_registry_iso_codes(self, source):
        df = await source.run()

        # OWID_WRL, blank, lowercase "usa" and non-registry FRA are all dropped
        assert sorted(df["country_iso3"].unique().to_list()) == ["BRA", "DEU", "KOR"]
        assert len(df) == 11

    @pytest.mark.asyncio
    async def test_empty_value_cell_is_dropped_not_zeroed(self, source):
        df = await source.run()

        bra = df.filter(pl.col("country_iso3") == "BRA")
        assert "EMBER.FOSSIL.PCT" not in bra["indicator_code"].to_list()
        assert source.drops["ParseError"] == 1

    @pytest.mark.asyncio
    async def test_year_window_applies(self, source):
        df = await source.run()
        assert df["year"].min() >= 2000


class TestOwidCo2:
    @pytest.fixture
    def source(self, registry, settings) -> OwidSource:
        return OwidSource(
            CO2_DATASET, registry, settings=settings, csv_path=FIXTURES / "owid_co2_sample.csv"
        )

    @pytest.mark.asyncio
    async def test_reads_available_columns(self, source):
        df = await source.run()

        assert set(df["indicator_code"].unique().to_list()) == {
            "OWID.CO2",
            "OWID.CO2_PER_CAPITA",
            "OWID.TOTAL_GHG",
            "OWID.METHANE",
        }
        assert len(df) == 10
        assert df["source"].unique().to_list() == ["OWID CO2"]

    @pytest.mark.asyncio
    async def test_non_numeric_cell_dropped(self, source):
        df = await source.run()
        usa = df.filter(pl.col("country_iso3") == "USA")
        assert "OWID.METHANE" not in usa["indicator_code"].to_list()

    def test_catalogue_lists_all_columns(self, source):
        assert len(source.indicators()) == 27
        assert len(CO2_DATASET.columns) == 27


class TestOwidFailures:
    @pytest.mark.asyncio
    async def test_missing_key_columns_raise(self, registry, settings, tmp_path):
        path = tmp_path / "broken.csv"
        path.write_text("country,yr,co2\nSouth Korea,2021,616.1\n")
        source = OwidSource(CO2_DATASET, registry, settings=settings, csv_path=path)

        with pytest.raises(SourceFetchError, match="iso_code or year"):
            await source.run()

    @pytest.mark.asyncio
    async def test_no_value_columns_raise(self, registry, settings, tmp_path):
        path = tmp_path / "no_values.csv"
        path.write_text("country,year,iso_code\nSouth Korea,2021,KOR\n")
        source = OwidSource(ENERGY_DATASET, registry, settings=settings, csv_path=path)

        with pytest.raises(SourceFetchError, match="value columns"):
            await source.run()

    @pytest.mark.asyncio
    async def test_downloads_once_into_scratch_dir(self, registry, settings, mock_http):
        body = (FIXTURES / "owid_energy_sample.csv").read_bytes()
        route = mock_http.get(settings.owid_energy_csv_url).mock(
            return_value=httpx.Response(200, content=body)
        )
        source = OwidSource(ENERGY_DATASET, registry, settings=settings)

        first = await source.run()
        second = await source.run()

        assert route.call_count == 1
        assert (Path(settings.scratch_dir) / "owid-energy-data.csv").is_file()
        assert len(first) == len(second) == 11

    @pytest.mark.asyncio
    async def test_download_failure_is_fatal(self, registry, settings, mock_http, tmp_path):
        mock_http.get(settings.owid_co2_csv_url).mock(return_value=httpx.Response(404))
        source = OwidSource(CO2_DATASET, registry, settings=settings)

        with pytest.raises(SourceFetchError, match="download failed"):
            await source.run()
        assert not (tmp_path / "owid-co2-data.csv").exists()
        assert not (tmp_path / "owid-co2-data.csv.part").exists()

