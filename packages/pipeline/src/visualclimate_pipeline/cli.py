"""
cli.py — Click CLI entrypoint for pipeline jobs.

Usage:
    climate-pipeline run worldbank
    climate-pipeline run owid-energy --dry-run
    climate-pipeline run report-card
    climate-pipeline run all
    climate-pipeline jobs
"""

from __future__ import annotations

import asyncio
import sys

import click
import structlog

from visualclimate_shared.config import load_settings
from visualclimate_shared.exceptions import ClimateDataError
from visualclimate_pipeline.pipelines import ingest
from visualclimate_pipeline.pipelines.base import PipelineContext, RunSummary
from visualclimate_pipeline.pipelines.derived import DERIVED_JOBS
from visualclimate_pipeline.utils.logging import configure_logging

log = structlog.get_logger(__name__)

ALL_JOB = "all"
JOB_NAMES: list[str] = [*ingest.INGEST_JOBS, *DERIVED_JOBS]


async def _run_job(job: str, ctx: PipelineContext, dry_run: bool) -> RunSummary:
    if job in DERIVED_JOBS:
        return await DERIVED_JOBS[job](ctx, dry_run=dry_run)
    return await ingest.run(job, ctx, dry_run=dry_run)


async def _run_all(ctx: PipelineContext, dry_run: bool) -> tuple[list[RunSummary], list[str]]:
    """Run ingestion jobs, then derived jobs, in order; a failed job does not stop the rest."""
    summaries: list[RunSummary] = []
    failed: list[str] = []
    for job in JOB_NAMES:
        log.info("starting_job", job=job)
        try:
            summaries.append(await _run_job(job, ctx, dry_run))
        except Exception as exc:
            log.error("job_error", job=job, error=str(exc))
            click.echo(f"✗ {job}: {exc}", err=True)
            failed.append(job)
    return summaries, failed


def _echo_summary(summary: RunSummary) -> None:
    mode = " (dry run)" if summary.dry_run else ""
    click.echo(f"== {summary.job}{mode}")
    click.echo(f"fetched {summary.fetched}")
    click.echo(f"upserted {summary.upserted}")
    if summary.failed:
        click.echo(f"failed {summary.failed}")
    if summary.dropped:
        dropped = ", ".join(f"{k}={v}" for k, v in sorted(summary.dropped.items()))
        click.echo(f"dropped {dropped}")
    report = summary.report
    if "counts" in report:
        counts = ", ".join(f"{k}={v}" for k, v in report["counts"].items())
        click.echo(f"classes {counts}")
        click.echo(f"top changers {', '.join(report.get('top_changers', []))}")
    if "grades" in report:
        grades = ", ".join(f"{k}={v}" for k, v in report["grades"].items())
        click.echo(f"scored {report['scored']}, skipped {report['skipped']}")
        click.echo(f"grades {grades}")
        click.echo(f"top {', '.join(report['top'])}")
        click.echo(f"bottom {', '.join(report['bottom'])}")
    for row in summary.breakdown.iter_rows(named=True):
        click.echo(f"  {row['country_iso3']}  {row['indicator_code']:40s} {row['rows']}")


@click.group()
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: LOG_LEVEL setting)",
)
@click.option(
    "--log-format",
    default=None,
    type=click.Choice(["json", "console"]),
    help="Log renderer (default: LOG_FORMAT setting)",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None, log_format: str | None) -> None:
    """visualclimate ingestion and classification jobs."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level
    ctx.obj["log_format"] = log_format


@main.command()
@click.argument(
    "job",
    type=click.Choice([*JOB_NAMES, ALL_JOB], case_sensitive=False),
)
@click.option("--dry-run", is_flag=True, help="Fetch and normalize, but write nothing.")
@click.pass_context
def run(ctx: click.Context, job: str, dry_run: bool) -> None:
    """Run a named job, or 'all' to run every job in order."""
    job = job.lower()
    try:
        settings = load_settings()
        configure_logging(
            settings,
            log_level=ctx.obj.get("log_level"),
            log_format=ctx.obj.get("log_format"),
        )
        pipeline_ctx = PipelineContext.from_settings(settings)
    except ClimateDataError as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    log.info("pipeline_dispatch", job=job, dry_run=dry_run)

    if job == ALL_JOB:
        summaries, failed = asyncio.run(_run_all(pipeline_ctx, dry_run))
        for summary in summaries:
            _echo_summary(summary)
        if failed:
            click.echo(f"Failed jobs: {', '.join(failed)}", err=True)
            sys.exit(1)
        return

    try:
        summary = asyncio.run(_run_job(job, pipeline_ctx, dry_run))
    except ClimateDataError as exc:
        log.error("pipeline_failed", job=job, error=str(exc))
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)
    _echo_summary(summary)


@main.command()
def jobs() -> None:
    """List the available job names."""
    for name in [*JOB_NAMES, ALL_JOB]:
        click.echo(name)


if __name__ == "__main__":
    main()
