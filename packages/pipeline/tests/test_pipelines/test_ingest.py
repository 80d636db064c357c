"""
tests/test_pipelines/test_ingest.py — End-to-end ingestion jobs against the
in-memory store.

OWID downloads are served by respx; ND-GAIN files are copied into the
settings directories.
"""

from __future__ import annotations

import shutil
from pathlib import Path

import httpx
import pytest

from visualclimate_shared.exceptions import RegistryError, SourceFetchError
from visualclimate_pipeline.pipelines import ingest

FIXTURES = Path(__file__).parent.parent / "fixtures"


@pytest.fixture
def owid_energy(settings, mock_http):
    body = (FIXTURES / "owid_energy_sample.csv").read_bytes()
    return mock_http.get(settings.owid_energy_csv_url).mock(
        return_value=httpx.Response(200, content=body)
    )


@pytest.fixture
def ndgain_files(settings):
    shutil.copytree(FIXTURES / "ndgain", settings.ndgain_dir)
    shutil.copytree(FIXTURES / "ndgain-flat", settings.ndgain_fallback_dir)


class TestIngestJobs:
    def test_every_source_has_a_job(self):
        assert list(ingest.INGEST_JOBS) == [
            "worldbank",
            "climatewatch",
            "climatetrace",
            "climatetrace-sectors",
            "owid-energy",
            "owid-co2",
            "ndgain",
        ]

    @pytest.mark.asyncio
    async def test_unknown_job(self, pipeline_ctx):
        with pytest.raises(KeyError):
            await ingest.run("nope", pipeline_ctx)


class TestOwidEnergyJob:
    @pytest.mark.asyncio
    async def test_writes_observations_and_catalogue(self, pipeline_ctx, fake_store, owid_energy):
        summary = await ingest.run("owid-energy", pipeline_ctx)

        assert summary.fetched == 11
        assert summary.upserted == 11
        assert summary.failed == 0
        assert len(fake_store.rows("country_data")) == 11
        assert {r["code"] for r in fake_store.rows("indicators")} == {
            "EMBER.RENEWABLE.PCT",
            "EMBER.FOSSIL.PCT",
            "EMBER.CARBON.INTENSITY",
        }

    @pytest.mark.asyncio
    async def test_only_registry_countries_persisted(self, pipeline_ctx, fake_store, owid_energy):
        await ingest.run("owid-energy", pipeline_ctx)

        stored = {r["country_iso3"] for r in fake_store.rows("country_data")}
        assert stored <= {"KOR", "USA", "DEU", "BRA", "NGA", "BGD"}
        assert "FRA" not in stored

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self, pipeline_ctx, fake_store, owid_energy):
        summary = await ingest.run("owid-energy", pipeline_ctx, dry_run=True)

        assert summary.dry_run
        assert summary.fetched == 11
        assert summary.upserted == 0
        assert fake_store.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent(self, pipeline_ctx, fake_store, owid_energy):
        await ingest.run("owid-energy", pipeline_ctx)
        await ingest.run("owid-energy", pipeline_ctx)

        assert len(fake_store.rows("country_data")) == 11
        # cached CSV is reused on the second run
        assert owid_energy.call_count == 1

    @pytest.mark.asyncio
    async def test_breakdown_and_drops_reported(self, pipeline_ctx, owid_energy):
        summary = await ingest.run("owid-energy", pipeline_ctx)

        breakdown = {
            (r["country_iso3"], r["indicator_code"]): r["rows"]
            for r in summary.breakdown.iter_rows(named=True)
        }
        assert breakdown[("KOR", "EMBER.RENEWABLE.PCT")] == 2
        assert summary.dropped["ParseError"] == 1
        assert summary.dropped["ValidationError"] > 0

    @pytest.mark.asyncio
    async def test_store_failure_counts_rows_failed(self, pipeline_ctx, fake_store, owid_energy):
        # call 1 is the catalogue, call 2 the only observation batch
        fake_store.fail_upsert_calls = {2}
        summary = await ingest.run("owid-energy", pipeline_ctx)

        assert summary.upserted == 0
        assert summary.failed == 11

    @pytest.mark.asyncio
    async def test_catalogue_failure_does_not_stop_observations(self, pipeline_ctx, fake_store, owid_energy):
        fake_store.fail_upsert_calls = {1}
        summary = await ingest.run("owid-energy", pipeline_ctx)

        assert summary.upserted == 11
        assert fake_store.rows("indicators") == []


class TestNdGainJob:
    @pytest.mark.asyncio
    async def test_reads_from_configured_dirs(self, pipeline_ctx, fake_store, ndgain_files):
        summary = await ingest.run("ndgain", pipeline_ctx)

        assert summary.upserted == 16
        assert len(fake_store.rows("country_data")) == 16


class TestFatalFailures:
    @pytest.mark.asyncio
    async def test_unreadable_registry_is_fatal(self, pipeline_ctx, fake_store, owid_energy):
        fake_store.fail_selects = True

        with pytest.raises(RegistryError):
            await ingest.run("owid-energy", pipeline_ctx)
        assert not owid_energy.called

    @pytest.mark.asyncio
    async def test_source_failure_propagates(self, pipeline_ctx, fake_store, settings, mock_http):
        mock_http.get(settings.owid_co2_csv_url).mock(return_value=httpx.Response(404))

        with pytest.raises(SourceFetchError):
            await ingest.run("owid-co2", pipeline_ctx)
        assert fake_store.upsert_calls == 0

    @pytest.mark.asyncio
    async def test_registry_loaded_once_per_context(self, pipeline_ctx, fake_store, owid_energy):
        await ingest.run("owid-energy", pipeline_ctx, dry_run=True)
        first = fake_store.select_calls
        await ingest.run("owid-energy", pipeline_ctx, dry_run=True)

        assert fake_store.select_calls == first
