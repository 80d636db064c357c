"""
visualclimate_pipeline — ingestion and classification workers for visualclimate.

Architecture:
  sources/     — one module per external provider (World Bank, Climate Watch,
                 Climate TRACE, OWID, ND-GAIN)
  transforms/  — country registry, row validation, climate-action classification
  loaders/     — idempotent batched Supabase upserts and paged reads
  pipelines/   — orchestrators that wire sources -> transforms -> loaders
  utils/       — structlog setup, retry decorator, pager, CSV tokenizer, downloads

Quick start:
    import asyncio
    from visualclimate_shared.config import load_settings
    from visualclimate_pipeline.pipelines.base import PipelineContext
    from visualclimate_pipeline.pipelines import ingest

    ctx = PipelineContext.from_settings(load_settings())
    summary = asyncio.run(ingest.run("worldbank", ctx, dry_run=True))

CLI:
    climate-pipeline run worldbank --dry-run
    climate-pipeline run all
    climate-pipeline jobs
"""

__version__ = "0.1.0"
