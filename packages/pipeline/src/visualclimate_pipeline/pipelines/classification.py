"""
pipelines/classification.py — Derived climate-action classification job.

Orchestrates:
  1. Read EN.GHG.CO2.PC.CE.AR5 and EMBER.RENEWABLE.PCT for 2015–2023 back
     from country_data (paged past the store's row cap)
  2. Classify every country (transforms/classification.py)
  3. Log counts per class and the strongest Changers
  4. Upsert one DERIVED.CLIMATE_CLASS row per classified country, year 2023

Must run after the World Bank and OWID energy jobs have written the inputs.
NoData countries get no row; rows from earlier runs are left as they are.

Usage:
    from visualclimate_pipeline.pipelines.classification import run
    summary = await run(ctx)
"""

from __future__ import annotations

import time

from visualclimate_shared.constants import (
    CLASSIFICATION_WINDOW,
    CLIMATE_CLASS_CODE,
    CO2_PER_CAPITA_CODE,
    DERIVED_SOURCE_LABEL,
    RENEWABLE_SHARE_CODE,
)
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.pipelines.base import PipelineContext, RunSummary, write_observations
from visualclimate_pipeline.transforms.classification import (
    classification_frame,
    classification_report,
    classify_observations,
)
from visualclimate_pipeline.utils.logging import get_logger

log = get_logger(__name__, pipeline="classify")

JOB_NAME = "classify"

CLIMATE_CLASS_INDICATOR = Indicator(
    code=CLIMATE_CLASS_CODE,
    name="Climate action class (1=Changer, 2=Starter, 3=Talker)",
    unit="class",
    source=DERIVED_SOURCE_LABEL,
    category="derived",
)


async def run(ctx: PipelineContext, *, dry_run: bool = False) -> RunSummary:
    """
    Run the classification end-to-end.

    Args:
        ctx:     Shared run context.
        dry_run: Classify and report but write nothing.

    Returns:
        RunSummary; report holds the class counts and top Changers.

    Raises:
        SourceFetchError: the input series could not be read from the store.
    """
    log.info("classify_start", dry_run=dry_run)
    t0 = time.monotonic()

    year_from, year_to = CLASSIFICATION_WINDOW
    try:
        observations = await ctx.loader.fetch_observations(
            [CO2_PER_CAPITA_CODE, RENEWABLE_SHARE_CODE],
            year_from=year_from,
            year_to=year_to,
        )
    except Exception as exc:
        raise SourceFetchError(f"Cannot read classification inputs: {exc}") from exc

    if observations.is_empty():
        log.warning("classify_no_input_rows")

    results = classify_observations(observations)
    report = classification_report(results)
    log.info(
        "classification_complete",
        input_rows=len(observations),
        classified=report["classified"],
        **report["counts"],
    )
    log.info("top_changers", countries=report["top_changers"])

    df = classification_frame(results)
    result = await write_observations(
        ctx, JOB_NAME, df, [CLIMATE_CLASS_INDICATOR], dry_run=dry_run
    )

    summary = RunSummary.from_frame(JOB_NAME, df, result, dry_run=dry_run)
    summary.report = report
    summary.duration_ms = int((time.monotonic() - t0) * 1000)
    return summary
