"""
loaders/supabase_loader.py — Idempotent batched upserts and reads against Supabase.

All pipelines funnel their canonical observation DataFrames through this
module to write to Supabase. The loader:
  - Converts polars DataFrames to list[dict] (JSON-serialisable)
  - Deduplicates on the natural key, keeping the last row
  - Batches rows (default 500 per request)
  - Performs upsert (INSERT … ON CONFLICT DO UPDATE) on
    (country_iso3, indicator_code, year)
  - Handles partial failures: a rejected batch is logged and skipped,
    later batches still run
  - Returns a LoadResult whose records_loaded counts confirmed rows only

It is also the narrow read interface the rest of the pipeline uses: the
country registry and the classifier's input series come from here.

Usage:
    from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader

    loader = SupabaseLoader(client, batch_size=settings.upsert_batch_size)
    result = await loader.upsert_observations(df)
    print(result.records_loaded, result.records_failed)
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from typing import Any

import polars as pl
import structlog

from visualclimate_shared.constants import (
    COUNTRIES_TABLE,
    COUNTRY_DATA_TABLE,
    INDICATORS_TABLE,
    NATURAL_KEY,
    OBSERVATION_COLUMNS,
    STORE_PAGE_SIZE,
)
from visualclimate_shared.exceptions import PersistenceError
from visualclimate_shared.models.observations import Indicator, Observation
from visualclimate_pipeline.transforms.normalize import (
    deduplicate_observations,
    observations_frame,
)
from visualclimate_pipeline.utils.pager import Page, paginate

log = structlog.get_logger(__name__)

BATCH_SIZE = 500     # rows per Supabase request


@dataclass
class LoadResult:
    """Summary of a loader upsert operation."""

    table: str
    records_loaded: int = 0
    records_failed: int = 0
    batches_total: int = 0
    batches_failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0

    @property
    def success(self) -> bool:
        return self.records_failed == 0

    @property
    def status(self) -> str:
        if self.records_failed == 0:
            return "success"
        if self.records_loaded > 0:
            return "partial_failure"
        return "failure"


class SupabaseLoader:
    """
    Handles all reads and writes against the store for the pipeline.

    Args:
        client:     A supabase.Client built with the service role key.
        batch_size: Rows per upsert request.
    """

    def __init__(self, client: Any, batch_size: int = BATCH_SIZE) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._client = client
        self._batch_size = batch_size

    # ------------------------------------------------------------------
    # Core upsert
    # ------------------------------------------------------------------

    async def upsert(
        self,
        table: str,
        rows: list[dict[str, Any]],
        conflict_columns: list[str],
    ) -> LoadResult:
        """
        Upsert rows in fixed-size batches, tolerating per-batch failure.

        Args:
            table:            Target table name.
            rows:             JSON-serialisable row dicts.
            conflict_columns: Columns that identify uniqueness for upsert.

        Returns:
            LoadResult; records_loaded counts only batches the store accepted.
        """
        result = LoadResult(table=table)
        t0 = time.monotonic()

        if not rows:
            log.warning("upsert_empty", table=table)
            return result

        loader_log = log.bind(table=table, total_rows=len(rows))
        loader_log.info("upsert_start", batch_size=self._batch_size)

        n_batches = math.ceil(len(rows) / self._batch_size)
        result.batches_total = n_batches

        for batch_idx in range(n_batches):
            start = batch_idx * self._batch_size
            batch = rows[start : start + self._batch_size]

            try:
                self._write_batch(table, batch, conflict_columns)
                result.records_loaded += len(batch)
                loader_log.debug(
                    "batch_loaded",
                    batch=batch_idx + 1,
                    n_batches=n_batches,
                    batch_size=len(batch),
                )
            except PersistenceError as exc:
                error_msg = f"Batch {batch_idx + 1}/{n_batches}: {exc}"
                loader_log.warning("batch_failed", batch=batch_idx + 1, error=str(exc))
                result.records_failed += len(batch)
                result.batches_failed += 1
                result.errors.append(error_msg)

        result.duration_ms = int((time.monotonic() - t0) * 1000)
        loader_log.info(
            "upsert_complete",
            records_loaded=result.records_loaded,
            records_failed=result.records_failed,
            duration_ms=result.duration_ms,
            status=result.status,
        )
        return result

    def _write_batch(
        self,
        table: str,
        batch: list[dict[str, Any]],
        conflict_columns: list[str],
    ) -> None:
        """Send one upsert request; any store or transport failure becomes PersistenceError."""
        try:
            self._client.table(table).upsert(
                batch,
                on_conflict=",".join(conflict_columns),
            ).execute()
        except Exception as exc:
            raise PersistenceError(str(exc)) from exc

    async def upsert_observations(self, df: pl.DataFrame) -> LoadResult:
        """
        Upsert canonical observation rows into country_data.

        Rows sharing a natural key are collapsed to the last one first so a
        single batch never touches the same key twice.
        """
        if df.is_empty():
            log.warning("upsert_empty_dataframe", table=COUNTRY_DATA_TABLE)
            return LoadResult(table=COUNTRY_DATA_TABLE)
        df = deduplicate_observations(df.select(list(OBSERVATION_COLUMNS)))
        return await self.upsert(COUNTRY_DATA_TABLE, self._to_dicts(df), list(NATURAL_KEY))

    async def upsert_indicators(self, indicators: list[Indicator]) -> LoadResult:
        """Upsert indicator catalogue rows keyed on code."""
        rows = [ind.to_insert_dict() for ind in indicators]
        return await self.upsert(INDICATORS_TABLE, rows, ["code"])

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def fetch_country_codes(self) -> list[str]:
        """
        Return every iso3 in the countries table.

        Errors propagate; the caller treats an unreadable registry as fatal.
        """
        rows = await self._select_all(COUNTRIES_TABLE, "iso3", order_by=("iso3",))
        return [str(row["iso3"]).strip().upper() for row in rows if row.get("iso3")]

    async def fetch_observations(
        self,
        indicator_codes: list[str],
        *,
        year_from: int,
        year_to: int,
    ) -> pl.DataFrame:
        """
        Read stored observations for the given indicators and year range.

        Pages past the store's per-request row cap until a short page. Rows
        with a null value are skipped; the rest are validated as Observations.
        """
        rows = await self._select_all(
            COUNTRY_DATA_TABLE,
            ",".join(OBSERVATION_COLUMNS),
            order_by=("year", "country_iso3", "indicator_code"),
            filters=lambda q: q.in_("indicator_code", indicator_codes)
            .gte("year", year_from)
            .lte("year", year_to),
        )
        log.info("observations_fetched", rows=len(rows), indicators=indicator_codes)
        return observations_frame(
            [
                Observation.from_db_row({**r, "source": r.get("source") or ""}).to_insert_dict()
                for r in rows
                if r.get("value") is not None
            ]
        )

    async def _select_all(
        self,
        table: str,
        columns: str,
        *,
        order_by: tuple[str, ...],
        filters: Any = None,
        page_size: int = STORE_PAGE_SIZE,
    ) -> list[dict[str, Any]]:
        async def fetch(page_no: int) -> Page:
            start = (page_no - 1) * page_size
            query = self._client.table(table).select(columns)
            if filters is not None:
                query = filters(query)
            for column in order_by:
                query = query.order(column)
            response = query.range(start, start + page_size - 1).execute()
            return Page(records=list(response.data or []))

        rows: list[dict[str, Any]] = []
        async for _, records in paginate(fetch, page_size=page_size):
            rows.extend(records)
        return rows

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _to_dicts(df: pl.DataFrame) -> list[dict[str, Any]]:
        """
        Convert a canonical observation DataFrame to JSON-serialisable dicts.

        Null values are omitted so DB defaults apply.
        """
        return [{k: v for k, v in row.items() if v is not None} for row in df.to_dicts()]
