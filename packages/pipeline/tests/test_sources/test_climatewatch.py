"""
tests/test_sources/test_climatewatch.py — Unit tests for ClimateWatchSource.
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import polars as pl
import pytest

from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_pipeline.sources.climatewatch import INDICATOR_CODE, ClimateWatchSource

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def cw_payload() -> dict:
    return json.loads((FIXTURES / "climatewatch_emissions.json").read_text())


@pytest.fixture
def source(registry, settings) -> ClimateWatchSource:
    return ClimateWatchSource(registry, settings=settings)


class TestClimateWatchExtract:
    @pytest.mark.asyncio
    async def test_extract_filters_sector_and_gas(self, source, cw_payload, mock_http):
        mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(200, json=cw_payload)
        )
        raw = await source.extract()

        # Energy sector row and CO2-only gas row are ignored outright
        assert "600.0" not in raw["raw_value"].to_list()
        assert "5000.0" not in raw["raw_value"].to_list()
        assert set(raw["indicator_code"].to_list()) == {INDICATOR_CODE}

    @pytest.mark.asyncio
    async def test_extract_sends_fixed_query(self, source, cw_payload, mock_http):
        route = mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(200, json=cw_payload)
        )
        await source.extract()

        params = route.calls[0].request.url.params
        assert params["gas"] == "All GHG"
        assert params["sector"] == "Total including LUCF"
        assert params["source"] == "PIK"
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_data_list_raises(self, source, mock_http):
        mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(200, json={"errors": ["bad request"]})
        )
        with pytest.raises(SourceFetchError, match="no data list"):
            await source.extract()

    @pytest.mark.asyncio
    async def test_server_error_raises(self, source, mock_http):
        mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(500)
        )
        with pytest.raises(SourceFetchError):
            await source.extract()


class TestClimateWatchRun:
    @pytest.mark.asyncio
    async def test_run_drops_nulls_window_and_unknown_countries(self, source, cw_payload, mock_http):
        mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(200, json=cw_payload)
        )
        df = await source.run()

        got = sorted(zip(df["country_iso3"], df["year"], df["value"]))
        assert got == [("BRA", 2021, 1300.5), ("KOR", 2019, 701.4), ("KOR", 2021, 676.6)]
        assert df["source"].unique().to_list() == ["Climate Watch (PIK)"]
        # 1999 out of window, WORLD malformed, FRA unknown; 2020 null
        assert source.drops == {"ValidationError": 3, "ParseError": 1}

    @pytest.mark.asyncio
    async def test_run_without_registry_still_requires_iso3(self, settings, cw_payload, mock_http):
        mock_http.get(url__regex=r".*historical_emissions.*").mock(
            return_value=httpx.Response(200, json=cw_payload)
        )
        df = await ClimateWatchSource(settings=settings).run()

        assert "FRA" in df["country_iso3"].to_list()
        assert "WORLD" not in df["country_iso3"].to_list()
        assert isinstance(df, pl.DataFrame)


class TestClimateWatchMetadata:
    @pytest.mark.asyncio
    async def test_get_metadata(self, source):
        metadata = await source.get_metadata()
        assert metadata["source_name"] == "ClimateWatch"
        assert metadata["indicators"] == [INDICATOR_CODE]
        assert metadata["url"].endswith("historical_emissions")

    def test_catalogue_row(self, source):
        (indicator,) = source.indicators()
        assert indicator.code == "CW.TOTAL_GHG"
        assert indicator.source == "Climate Watch (PIK)"
