"""
pipelines/ingest.py — Ingestion jobs, one per external source.

Every job loads the country registry first (fatal if the store cannot be
read), builds its source bound to that registry, and hands it to
run_source_pipeline().

Jobs:
  worldbank             — World Bank WDI indicators (REST, paged)
  climatewatch          — Climate Watch total GHG incl. LUCF (REST, one request)
  climatetrace          — Climate TRACE v6 annual co2e_100yr (REST, per year)
  climatetrace-sectors  — Climate TRACE v7 sector rankings (REST, paged)
  owid-energy           — Ember columns of the OWID energy CSV
  owid-co2              — OWID CO2 CSV
  ndgain                — ND-GAIN local CSVs

Usage:
    from visualclimate_pipeline.pipelines.ingest import run
    summary = await run("worldbank", ctx, dry_run=True)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from visualclimate_shared.config import Settings
from visualclimate_pipeline.pipelines.base import PipelineContext, RunSummary, run_source_pipeline
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.sources.climatetrace import ClimateTraceSectorSource, ClimateTraceSource
from visualclimate_pipeline.sources.climatewatch import ClimateWatchSource
from visualclimate_pipeline.sources.ndgain import NdGainSource
from visualclimate_pipeline.sources.owid import CO2_DATASET, ENERGY_DATASET, OwidSource
from visualclimate_pipeline.sources.worldbank import WorldBankSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry

SourceFactory = Callable[[CountryRegistry, Settings], BaseSource]

INGEST_JOBS: dict[str, SourceFactory] = {
    "worldbank": lambda registry, settings: WorldBankSource(registry, settings=settings),
    "climatewatch": lambda registry, settings: ClimateWatchSource(registry, settings=settings),
    "climatetrace": lambda registry, settings: ClimateTraceSource(registry, settings=settings),
    "climatetrace-sectors": lambda registry, settings: ClimateTraceSectorSource(
        registry, settings=settings
    ),
    "owid-energy": lambda registry, settings: OwidSource(ENERGY_DATASET, registry, settings=settings),
    "owid-co2": lambda registry, settings: OwidSource(CO2_DATASET, registry, settings=settings),
    "ndgain": lambda registry, settings: NdGainSource(registry, settings=settings),
}


async def run(
    job: str,
    ctx: PipelineContext,
    *,
    dry_run: bool = False,
    **source_kwargs: Any,
) -> RunSummary:
    """
    Run one ingestion job.

    Raises:
        KeyError:         unknown job name.
        RegistryError:    the countries table could not be read.
        SourceFetchError: the source failed as a whole.
    """
    factory = INGEST_JOBS[job]
    registry = await ctx.registry()
    source = factory(registry, ctx.settings)
    return await run_source_pipeline(ctx, job, source, dry_run=dry_run, **source_kwargs)
