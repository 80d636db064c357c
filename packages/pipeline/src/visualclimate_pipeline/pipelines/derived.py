"""
pipelines/derived.py — Jobs that read stored series and write derived ones.

Jobs, in the order `run all` uses:
  co2-gdp              — DERIVED.CO2_PER_GDP and DERIVED.DECOUPLING from the
                         World Bank CO2 and GDP per-capita series
  emissions-intensity  — DERIVED.EMISSIONS_INTENSITY from total GHG and GDP
  classify             — DERIVED.CLIMATE_CLASS (pipelines/classification.py)
  report-card          — REPORT.* domain scores, total and grade; reads the
                         two co2-gdp outputs, so it runs last

Each job reads its inputs back from country_data, computes in memory and
upserts through the same write path as ingestion. A read failure is a
SourceFetchError.

Usage:
    from visualclimate_pipeline.pipelines.derived import DERIVED_JOBS
    summary = await DERIVED_JOBS["co2-gdp"](ctx, dry_run=True)
"""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable

import polars as pl

from visualclimate_shared.constants import (
    CO2_PER_CAPITA_CODE,
    CO2_PER_GDP_CODE,
    DECOUPLING_CODE,
    DERIVED_SOURCE_LABEL,
    EMISSIONS_INTENSITY_CODE,
    GDP_PER_CAPITA_CODE,
    GDP_TOTAL_CODE,
    GHG_TOTAL_KT_CODE,
    REPORT_GRADE_CODE,
    REPORT_SCORE_YEAR,
    REPORT_TOTAL_CODE,
    YEAR_MAX,
    YEAR_MIN,
)
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.pipelines import classification
from visualclimate_pipeline.pipelines.base import PipelineContext, RunSummary, write_observations
from visualclimate_pipeline.transforms.classification import SeriesIndex
from visualclimate_pipeline.transforms.derived import co2_gdp_frame, emissions_intensity_frame
from visualclimate_pipeline.transforms.report_card import (
    DOMAINS,
    input_codes,
    report_card_frame,
    report_card_summary,
    score_countries,
)
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="derived")

CO2_GDP_INDICATORS = [
    Indicator(
        code=CO2_PER_GDP_CODE,
        name="CO2 emissions per 1000 US$ of GDP",
        unit="t CO2e per 1000 USD",
        source=DERIVED_SOURCE_LABEL,
        category="derived",
    ),
    Indicator(
        code=DECOUPLING_CODE,
        name="GDP vs CO2 growth since 2010 (positive = decoupled)",
        unit="% points",
        source=DERIVED_SOURCE_LABEL,
        category="derived",
    ),
]

EMISSIONS_INTENSITY_INDICATOR = Indicator(
    code=EMISSIONS_INTENSITY_CODE,
    name="Emissions intensity",
    unit="kt CO2e per USD",
    source=DERIVED_SOURCE_LABEL,
    category="derived",
)

REPORT_INDICATORS = [
    *(
        Indicator(
            code=d.score_code,
            name=f"Report card {d.key.lower()} score",
            unit="score 0-100",
            source=DERIVED_SOURCE_LABEL,
            category="report",
        )
        for d in DOMAINS
    ),
    Indicator(
        code=REPORT_TOTAL_CODE,
        name="Report card total score",
        unit="score 0-100",
        source=DERIVED_SOURCE_LABEL,
        category="report",
    ),
    Indicator(
        code=REPORT_GRADE_CODE,
        name="Report card grade (7=A+ ... 0=F)",
        unit="grade",
        source=DERIVED_SOURCE_LABEL,
        category="report",
    ),
]


async def _read_index(
    ctx: PipelineContext, job: str, codes: list[str], year_from: int, year_to: int
) -> tuple[pl.DataFrame, SeriesIndex]:
    try:
        observations = await ctx.loader.fetch_observations(
            codes, year_from=year_from, year_to=year_to
        )
    except Exception as exc:
        raise SourceFetchError(f"Cannot read {job} inputs: {exc}") from exc
    if observations.is_empty():
        log.warning("derived_no_input_rows", job=job, indicators=codes)
    return observations, SeriesIndex.from_frame(observations, year_window=None)


async def _finish(
    ctx: PipelineContext,
    job: str,
    df: pl.DataFrame,
    indicators: list[Indicator],
    *,
    dry_run: bool,
    t0: float,
) -> RunSummary:
    result = await write_observations(ctx, job, df, indicators, dry_run=dry_run)
    summary = RunSummary.from_frame(job, df, result, dry_run=dry_run)
    summary.duration_ms = int((time.monotonic() - t0) * 1000)
    log.info(
        "derived_complete",
        job=job,
        rows=summary.fetched,
        upserted=summary.upserted,
        failed=summary.failed,
        duration_ms=summary.duration_ms,
    )
    return summary


async def run_co2_gdp(ctx: PipelineContext, *, dry_run: bool = False) -> RunSummary:
    """CO2 per unit of GDP and the 2010-based decoupling index."""
    job = "co2-gdp"
    log.info("derived_start", job=job, dry_run=dry_run)
    t0 = time.monotonic()

    _, index = await _read_index(
        ctx, job, [CO2_PER_CAPITA_CODE, GDP_PER_CAPITA_CODE], YEAR_MIN, YEAR_MAX
    )
    df = co2_gdp_frame(index)
    return await _finish(ctx, job, df, CO2_GDP_INDICATORS, dry_run=dry_run, t0=t0)


async def run_emissions_intensity(ctx: PipelineContext, *, dry_run: bool = False) -> RunSummary:
    job = "emissions-intensity"
    log.info("derived_start", job=job, dry_run=dry_run)
    t0 = time.monotonic()

    _, index = await _read_index(
        ctx, job, [GHG_TOTAL_KT_CODE, GDP_TOTAL_CODE], YEAR_MIN, YEAR_MAX
    )
    df = emissions_intensity_frame(index)
    return await _finish(
        ctx, job, df, [EMISSIONS_INTENSITY_INDICATOR], dry_run=dry_run, t0=t0
    )


async def run_report_card(ctx: PipelineContext, *, dry_run: bool = False) -> RunSummary:
    """
    Score every country on the five report-card domains.

    Returns:
        RunSummary; report holds the grade distribution, scored / skipped
        counts and the top and bottom ten countries.
    """
    job = "report-card"
    log.info("derived_start", job=job, dry_run=dry_run)
    t0 = time.monotonic()

    observations, index = await _read_index(
        ctx, job, input_codes(), YEAR_MIN, REPORT_SCORE_YEAR
    )
    cards, skipped = score_countries(index)
    report = report_card_summary(cards, skipped)
    log.info(
        "report_card_scored",
        input_rows=len(observations),
        scored=report["scored"],
        skipped=skipped,
        **report["grades"],
    )

    df = report_card_frame(cards)
    summary = await _finish(ctx, job, df, REPORT_INDICATORS, dry_run=dry_run, t0=t0)
    summary.report = report
    return summary


DerivedJob = Callable[..., Awaitable[RunSummary]]

DERIVED_JOBS: dict[str, DerivedJob] = {
    "co2-gdp": run_co2_gdp,
    "emissions-intensity": run_emissions_intensity,
    classification.JOB_NAME: classification.run,
    "report-card": run_report_card,
}
