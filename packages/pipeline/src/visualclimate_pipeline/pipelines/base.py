"""
pipelines/base.py — Shared run context and the source → store pipeline.

A PipelineContext is built once per process from explicit Settings and
carries the loader (and through it the store client) to every job. The
country registry is loaded lazily on first use and reused by later jobs.

run_source_pipeline() is the common path for every ingestion job:

  1. source.run()           extract → validate → deduplicate
  2. indicator catalogue    upsert to indicators (failure only warns)
  3. observations           upsert to country_data in batches

Usage:
    ctx = PipelineContext.from_settings(load_settings())
    registry = await ctx.registry()
    summary = await run_source_pipeline(ctx, "worldbank", WorldBankSource(registry, settings=ctx.settings))
    print(summary.fetched, summary.upserted)
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import polars as pl

from visualclimate_shared.config import Settings
from visualclimate_shared.db import create_supabase_client
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.loaders.supabase_loader import LoadResult, SupabaseLoader
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry, row_count_breakdown
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class RunSummary:
    """What one job fetched and wrote."""

    job: str
    fetched: int = 0
    upserted: int = 0
    failed: int = 0
    dry_run: bool = False
    dropped: dict[str, int] = field(default_factory=dict)
    breakdown: pl.DataFrame = field(default_factory=lambda: row_count_breakdown(pl.DataFrame()))
    report: dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0

    @classmethod
    def from_frame(
        cls,
        job: str,
        df: pl.DataFrame,
        result: LoadResult | None,
        *,
        dry_run: bool,
        dropped: dict[str, int] | None = None,
    ) -> "RunSummary":
        return cls(
            job=job,
            fetched=len(df),
            upserted=result.records_loaded if result is not None else 0,
            failed=result.records_failed if result is not None else 0,
            dry_run=dry_run,
            dropped=dict(dropped or {}),
            breakdown=row_count_breakdown(df),
        )


class PipelineContext:
    """
    Settings, loader and cached registry shared by the jobs of one process.

    Args:
        settings: Process settings.
        loader:   Store loader built from those settings.
    """

    def __init__(self, settings: Settings, loader: SupabaseLoader) -> None:
        self.settings = settings
        self.loader = loader
        self._registry: CountryRegistry | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "PipelineContext":
        client = create_supabase_client(settings)
        return cls(settings, SupabaseLoader(client, batch_size=settings.upsert_batch_size))

    async def registry(self) -> CountryRegistry:
        """Load the country registry once. RegistryError propagates."""
        if self._registry is None:
            self._registry = await CountryRegistry.load(self.loader)
        return self._registry


async def upsert_catalogue(loader: SupabaseLoader, indicators: list[Indicator]) -> None:
    """Write indicator metadata rows; a failure is logged and the run carries on."""
    if not indicators:
        return
    result = await loader.upsert_indicators(indicators)
    if result.records_failed:
        log.warning("indicator_catalogue_failed", errors=result.errors)
    else:
        log.info("indicator_catalogue_upserted", rows=result.records_loaded)


async def write_observations(
    ctx: PipelineContext,
    job: str,
    df: pl.DataFrame,
    indicators: list[Indicator],
    *,
    dry_run: bool,
) -> LoadResult | None:
    """Upsert catalogue then observations, or do nothing on a dry run."""
    if dry_run:
        log.info("dry_run_complete", job=job, rows=len(df))
        return None
    await upsert_catalogue(ctx.loader, indicators)
    return await ctx.loader.upsert_observations(df)


async def run_source_pipeline(
    ctx: PipelineContext,
    job: str,
    source: BaseSource,
    *,
    dry_run: bool = False,
    **source_kwargs: Any,
) -> RunSummary:
    """
    Run one source end-to-end.

    Args:
        ctx:           Shared run context.
        job:           Job name for logging and the summary.
        source:        Source adapter, already bound to the registry.
        dry_run:       Fetch and normalize but write nothing.
        source_kwargs: Forwarded to source.run().

    Returns:
        RunSummary with fetched / upserted counts and the row breakdown.

    Raises:
        SourceFetchError: the source could not be fetched.
    """
    job_log = log.bind(job=job, dry_run=dry_run)
    job_log.info("job_start", metadata=await source.get_metadata())
    t0 = time.monotonic()

    df = await source.run(**source_kwargs)
    result = await write_observations(ctx, job, df, source.indicators(), dry_run=dry_run)

    summary = RunSummary.from_frame(job, df, result, dry_run=dry_run, dropped=source.drops)
    summary.duration_ms = int((time.monotonic() - t0) * 1000)
    job_log.info(
        "job_complete",
        fetched=summary.fetched,
        upserted=summary.upserted,
        failed=summary.failed,
        duration_ms=summary.duration_ms,
    )
    return summary
