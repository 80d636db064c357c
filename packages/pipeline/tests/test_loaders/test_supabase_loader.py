"""
tests/test_loaders/test_supabase_loader.py — Tests for SupabaseLoader.

Uses the in-memory FakeStore from conftest for write/read behaviour and a
MagicMock client where only call shapes matter.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from pydantic import ValidationError as PydanticValidationError

from visualclimate_shared.models.observations import Indicator, Observation
from visualclimate_pipeline.loaders.supabase_loader import LoadResult, SupabaseLoader
from visualclimate_pipeline.transforms.normalize import observations_frame

NATURAL_KEY = ["country_iso3", "indicator_code", "year"]


def _rows(n: int) -> list[dict]:
    return [
        {"country_iso3": "KOR", "indicator_code": f"IND.{i}", "year": 2020, "value": float(i), "source": "t"}
        for i in range(n)
    ]


# ---------------------------------------------------------------------------
# Row models
# ---------------------------------------------------------------------------

class TestObservationModel:
    def test_natural_key_and_uppercase(self):
        obs = Observation.from_db_row(
            {"country_iso3": "kor", "indicator_code": "A", "year": "2021", "value": 1, "source": "t"}
        )
        assert obs.natural_key == ("KOR", "A", 2021)
        assert obs.to_insert_dict()["value"] == 1.0

    def test_rejects_non_finite_value(self):
        with pytest.raises(PydanticValidationError):
            Observation(country_iso3="KOR", indicator_code="A", year=2021, value=float("nan"), source="t")


# ---------------------------------------------------------------------------
# LoadResult
# ---------------------------------------------------------------------------

class TestLoadResult:
    def test_status_values(self):
        assert LoadResult(table="t", records_loaded=10).status == "success"
        assert LoadResult(table="t", records_loaded=5, records_failed=5).status == "partial_failure"
        assert LoadResult(table="t", records_failed=5).status == "failure"

    def test_success_flag(self):
        assert LoadResult(table="t", records_loaded=1).success
        assert not LoadResult(table="t", records_failed=1).success


# ---------------------------------------------------------------------------
# Upserts
# ---------------------------------------------------------------------------

class TestUpsert:
    def test_rejects_non_positive_batch_size(self, fake_store):
        with pytest.raises(ValueError):
            SupabaseLoader(fake_store, batch_size=0)

    @pytest.mark.asyncio
    async def test_batches_of_fixed_size(self, fake_store):
        loader = SupabaseLoader(fake_store, batch_size=500)
        result = await loader.upsert("country_data", _rows(1200), NATURAL_KEY)

        assert fake_store.upsert_calls == 3
        assert result.batches_total == 3
        assert result.records_loaded == 1200

    @pytest.mark.asyncio
    async def test_failed_batch_is_skipped_and_later_batches_run(self, fake_store):
        fake_store.fail_upsert_calls = {2}
        loader = SupabaseLoader(fake_store, batch_size=500)
        result = await loader.upsert("country_data", _rows(1200), NATURAL_KEY)

        assert result.records_loaded == 700
        assert result.records_failed == 500
        assert result.batches_failed == 1
        assert result.status == "partial_failure"
        assert "Batch 2/3" in result.errors[0]
        assert len(fake_store.rows("country_data")) == 700

    @pytest.mark.asyncio
    async def test_empty_input_is_a_no_op(self, fake_store):
        loader = SupabaseLoader(fake_store)
        result = await loader.upsert("country_data", [], NATURAL_KEY)
        assert result.records_loaded == 0
        assert fake_store.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_on_conflict_is_natural_key(self):
        client = MagicMock()
        loader = SupabaseLoader(client)
        await loader.upsert("country_data", _rows(2), NATURAL_KEY)

        client.table.assert_called_with("country_data")
        _, kwargs = client.table.return_value.upsert.call_args
        assert kwargs["on_conflict"] == "country_iso3,indicator_code,year"


class TestUpsertObservations:
    @pytest.mark.asyncio
    async def test_reupsert_overwrites_single_row(self, fake_store):
        loader = SupabaseLoader(fake_store)
        await loader.upsert_observations(observations_frame(_rows(1)))
        changed = _rows(1)
        changed[0]["value"] = 42.0
        await loader.upsert_observations(observations_frame(changed))

        stored = fake_store.rows("country_data")
        assert len(stored) == 1
        assert stored[0]["value"] == 42.0

    @pytest.mark.asyncio
    async def test_duplicates_within_run_keep_last(self, fake_store):
        loader = SupabaseLoader(fake_store)
        rows = _rows(1) + [{**_rows(1)[0], "value": 9.0}]
        result = await loader.upsert_observations(observations_frame(rows))

        assert result.records_loaded == 1
        assert fake_store.rows("country_data")[0]["value"] == 9.0

    @pytest.mark.asyncio
    async def test_empty_frame_writes_nothing(self, fake_store):
        result = await SupabaseLoader(fake_store).upsert_observations(observations_frame([]))
        assert result.records_loaded == 0
        assert fake_store.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_indicator_catalogue_keyed_on_code(self, fake_store):
        loader = SupabaseLoader(fake_store)
        ind = Indicator(code="CW.TOTAL_GHG", name="Total GHG", unit="MtCO2e", source="Climate Watch (PIK)")
        await loader.upsert_indicators([ind])
        await loader.upsert_indicators([ind.model_copy(update={"name": "Renamed"})])

        stored = fake_store.rows("indicators")
        assert len(stored) == 1
        assert stored[0]["name"] == "Renamed"
        assert stored[0]["domain"] == "Climate"


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------

class TestReads:
    @pytest.mark.asyncio
    async def test_fetch_country_codes(self, fake_store):
        codes = await SupabaseLoader(fake_store).fetch_country_codes()
        assert sorted(codes) == ["BGD", "BRA", "DEU", "KOR", "NGA", "USA"]

    @pytest.mark.asyncio
    async def test_fetch_observations_pages_past_row_cap(self, fake_store):
        # 250 synthetic countries x 10 years, all unique on the natural key
        rows = [
            {
                "country_iso3": f"{chr(65 + c // 26)}{chr(65 + c % 26)}X",
                "indicator_code": "EMBER.RENEWABLE.PCT",
                "year": 2014 + y,
                "value": float(c * 10 + y),
                "source": "t",
            }
            for c in range(250)
            for y in range(1, 11)
        ]
        fake_store.seed("country_data", rows, NATURAL_KEY)

        df = await SupabaseLoader(fake_store).fetch_observations(
            ["EMBER.RENEWABLE.PCT"], year_from=2015, year_to=2023
        )

        # 2024 falls outside the requested range
        assert len(df) == 2250
        assert fake_store.select_calls == 3

    @pytest.mark.asyncio
    async def test_fetch_observations_filters(self, fake_store):
        fake_store.seed(
            "country_data",
            [
                {"country_iso3": "KOR", "indicator_code": "A", "year": 2015, "value": 1.0, "source": "t"},
                {"country_iso3": "KOR", "indicator_code": "A", "year": 2014, "value": 1.0, "source": "t"},
                {"country_iso3": "KOR", "indicator_code": "B", "year": 2016, "value": 1.0, "source": "t"},
                {"country_iso3": "KOR", "indicator_code": "A", "year": 2016, "value": None, "source": "t"},
            ],
            NATURAL_KEY,
        )
        df = await SupabaseLoader(fake_store).fetch_observations(["A"], year_from=2015, year_to=2023)

        assert df.to_dicts() == [
            {"country_iso3": "KOR", "indicator_code": "A", "year": 2015, "value": 1.0, "source": "t"}
        ]
