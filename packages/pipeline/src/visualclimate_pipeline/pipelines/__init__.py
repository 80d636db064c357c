"""
visualclimate_pipeline.pipelines — End-to-end job orchestrators.

Ingestion jobs live in ingest.INGEST_JOBS and share run_source_pipeline();
the derived jobs in derived.DERIVED_JOBS (classification among them) run
after them, reading back what ingestion stored.

    from visualclimate_pipeline.pipelines import derived, ingest

    summary = await ingest.run("owid-energy", ctx)
    summary = await derived.DERIVED_JOBS["report-card"](ctx)
"""
