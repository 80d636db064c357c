"""
sources/base.py — Abstract base class for all data source adapters.

Each concrete source must implement:
  extract()      — fetch or read raw records, return a polars DataFrame
  transform()    — validate raw records into canonical observation rows
  get_metadata() — return dict with source info for logging

The run() method orchestrates extract → transform → deduplicate and
handles timing/logging automatically. Pipelines call run() rather than the
individual methods.

Row-level rejects (ParseError / ValidationError) are counted in
self.drops by exception class name and logged once per run in aggregate.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import Counter
from typing import Any

import polars as pl
import structlog

from visualclimate_shared.constants import YEAR_MAX, YEAR_MIN
from visualclimate_shared.exceptions import ParseError, ValidationError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.transforms.normalize import (
    CountryRegistry,
    RowValidator,
    deduplicate_observations,
)

log = structlog.get_logger(__name__)


class BaseSource(ABC):
    """Abstract base for all visualclimate ingestion source adapters."""

    # Override in subclass, used for logging
    name: str = "unknown"
    # Provenance written to every row's source column
    source_label: str = ""
    # Inclusive year window; None disables the check
    year_window: tuple[int, int] | None = (YEAR_MIN, YEAR_MAX)
    # Only accept codes that are already exactly three uppercase letters
    strict_iso3: bool = False

    def __init__(self, registry: CountryRegistry | None = None) -> None:
        self._log = log.bind(source_name=self.name)
        self.registry = registry
        self.drops: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Abstract interface: subclasses implement all three
    # ------------------------------------------------------------------

    @abstractmethod
    async def extract(self, **kwargs: Any) -> pl.DataFrame:
        """
        Fetch raw records from the external source.

        Implementations should:
        - Make HTTP calls (via httpx) or read staged files, one at a time
        - Raise SourceFetchError for HTTP failures or malformed payloads
        - Return a raw polars DataFrame; values stay unparsed strings

        Returns:
            Raw polars DataFrame.
        """
        ...

    @abstractmethod
    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        """
        Turn raw records into canonical observation rows.

        Implementations pass each record through self._accept(), which
        applies the registry, year window and numeric checks.

        Returns:
            DataFrame with the canonical observation schema.
        """
        ...

    @abstractmethod
    async def get_metadata(self) -> dict[str, Any]:
        """Return source-level metadata for observability."""
        ...

    def indicators(self) -> list[Indicator]:
        """Indicator catalogue rows this source writes. Empty by default."""
        return []

    # ------------------------------------------------------------------
    # Orchestration: pipelines call this
    # ------------------------------------------------------------------

    async def run(self, **kwargs: Any) -> pl.DataFrame:
        """
        Extract + transform in sequence with timing and structured logging.

        Args:
            **kwargs: Forwarded to extract().

        Returns:
            Canonical observation DataFrame, deduplicated on the natural key.

        Raises:
            Any exception from extract() or transform() after logging it.
        """
        run_log = self._log.bind(**{k: str(v) for k, v in kwargs.items()})
        run_log.info("source_run_start")
        self.drops.clear()

        t0 = time.monotonic()
        try:
            raw = await self.extract(**kwargs)
            run_log.info(
                "extract_complete",
                raw_rows=len(raw),
                duration_ms=int((time.monotonic() - t0) * 1000),
            )

            t1 = time.monotonic()
            result = deduplicate_observations(self.transform(raw))
            run_log.info(
                "transform_complete",
                result_rows=len(result),
                duration_ms=int((time.monotonic() - t1) * 1000),
            )
            if self.drops:
                run_log.info("rows_dropped", **dict(self.drops))

            run_log.info(
                "source_run_complete",
                total_duration_ms=int((time.monotonic() - t0) * 1000),
                output_rows=len(result),
            )
            return result

        except Exception as exc:
            run_log.error(
                "source_run_failed",
                error=str(exc),
                duration_ms=int((time.monotonic() - t0) * 1000),
            )
            raise

    # ------------------------------------------------------------------
    # Shared helpers available to all subclasses
    # ------------------------------------------------------------------

    def _validator(self) -> RowValidator:
        return RowValidator(
            self.registry,
            year_window=self.year_window,
            strict_iso3=self.strict_iso3,
        )

    def _accept(
        self,
        validator: RowValidator,
        indicator_code: str,
        country: Any,
        year: Any,
        raw_value: Any,
    ) -> dict[str, Any] | None:
        """
        Validate one record into an observation row dict, or count it as dropped.

        Returns None when the record fails any row-level check.
        """
        try:
            iso3, yr, value = validator.check(country, year, raw_value)
        except (ParseError, ValidationError) as exc:
            self.drops[type(exc).__name__] += 1
            return None
        return {
            "country_iso3": iso3,
            "indicator_code": indicator_code,
            "year": yr,
            "value": self._round(value),
            "source": self.source_label,
        }

    def _round(self, value: float) -> float:
        """Per-source value rounding hook. Identity by default."""
        return value

    @staticmethod
    def _raw_frame(rows: list[dict[str, Any]]) -> pl.DataFrame:
        """
        Build the raw extract DataFrame with every column typed as String.

        None stays null; floats go through str(), which round-trips.
        """
        schema = {
            "country": pl.String,
            "indicator_code": pl.String,
            "year": pl.String,
            "raw_value": pl.String,
        }
        return pl.DataFrame(
            [
                {k: (None if row.get(k) is None else str(row.get(k))) for k in schema}
                for row in rows
            ],
            schema=schema,
        )

    def _transform_raw(self, raw: pl.DataFrame) -> list[dict[str, Any]]:
        """Run every raw record through _accept(), keeping order."""
        validator = self._validator()
        accepted: list[dict[str, Any]] = []
        for rec in raw.iter_rows(named=True):
            row = self._accept(
                validator,
                rec["indicator_code"],
                rec["country"],
                rec["year"],
                rec["raw_value"],
            )
            if row is not None:
                accepted.append(row)
        return accepted
