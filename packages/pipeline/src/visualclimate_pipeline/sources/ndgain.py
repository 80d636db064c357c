"""
sources/ndgain.py — ND-GAIN country index source adapter.

Reads the pre-staged ND-GAIN wide CSVs (one row per country, one column
per year):

  ISO3,Name,1995,1996,...,2023
  KOR,"Korea, Republic of",0.3391,0.3385,...

Files are looked up under the primary directory first and then under the
fallback directory, both at the layout of the ND-GAIN download bundle
(resources/<name>/<name>.csv) and flat (<name>.csv). A file that exists in
none of those places yields zero rows and a warning; it does not fail the run.

Year columns are discovered by scanning the header for integers inside the
year window. Values are rounded to 6 decimal digits.

Usage:
    source = NdGainSource(registry, settings=settings)
    df = await source.run()
"""

from __future__ import annotations

import math
from pathlib import Path
from typing import Any

import polars as pl

from visualclimate_shared.config import Settings
from visualclimate_shared.exceptions import SourceFetchError
from visualclimate_shared.models.observations import Indicator
from visualclimate_pipeline.sources.base import BaseSource
from visualclimate_pipeline.transforms.normalize import CountryRegistry, observations_frame
from visualclimate_pipeline.utils.csv_tokenizer import header_index, iter_csv_rows

SOURCE_LABEL = "ND-GAIN"
ISO_COLUMN = "ISO3"
DECIMALS = 6

# file stem → (indicator code, name)
NDGAIN_FILES: dict[str, tuple[str, str]] = {
    "vulnerability": ("NDGAIN.VULNERABILITY", "ND-GAIN vulnerability score"),
    "readiness": ("NDGAIN.READINESS", "ND-GAIN readiness score"),
}


class NdGainSource(BaseSource):
    """ND-GAIN vulnerability and readiness scores from local CSV files."""

    name = "NDGAIN"
    source_label = SOURCE_LABEL

    def __init__(
        self,
        registry: CountryRegistry | None = None,
        *,
        settings: Settings | None = None,
        search_dirs: list[Path] | None = None,
    ) -> None:
        super().__init__(registry)
        settings = settings or Settings()
        self._search_dirs = search_dirs or [
            Path(settings.ndgain_dir),
            Path(settings.ndgain_fallback_dir),
        ]
        self.missing_files: list[str] = []

    def locate(self, stem: str) -> Path | None:
        """Return the first existing candidate path for an ND-GAIN file, or None."""
        for base in self._search_dirs:
            for candidate in (base / "resources" / stem / f"{stem}.csv", base / f"{stem}.csv"):
                if candidate.is_file():
                    return candidate
        return None

    def _year_columns(self, header: list[str]) -> list[tuple[int, int]]:
        lo, hi = self.year_window or (-math.inf, math.inf)
        columns: list[tuple[int, int]] = []
        for idx, name in enumerate(header):
            name = name.strip()
            if name.isdigit() and lo <= int(name) <= hi:
                columns.append((idx, int(name)))
        return columns

    def _read_file(self, path: Path, code: str) -> list[dict[str, Any]]:
        rows_iter = iter_csv_rows(path)
        header = next(rows_iter, None)
        if header is None:
            self._log.warning("ndgain_file_empty", path=str(path))
            return []
        iso_col = header_index(header, [ISO_COLUMN]).get(ISO_COLUMN)
        if iso_col is None:
            raise SourceFetchError(f"ND-GAIN {path.name}: {ISO_COLUMN} column not found")
        year_cols = self._year_columns(header)
        if not year_cols:
            self._log.warning("ndgain_no_year_columns", path=str(path))

        rows: list[dict[str, Any]] = []
        for fields in rows_iter:
            country = fields[iso_col] if iso_col < len(fields) else None
            for idx, year in year_cols:
                rows.append(
                    {
                        "country": country,
                        "indicator_code": code,
                        "year": year,
                        "raw_value": fields[idx] if idx < len(fields) else None,
                    }
                )
        self._log.info("ndgain_file_parsed", path=str(path), years=len(year_cols), cells=len(rows))
        return rows

    async def extract(self, *, files: list[str] | None = None, **kwargs: Any) -> pl.DataFrame:
        """
        Parse each ND-GAIN file that can be found.

        Args:
            files: File stems to read. Defaults to every entry of NDGAIN_FILES.

        Raises:
            SourceFetchError: a file exists but has no ISO3 column.
        """
        self.missing_files = []
        rows: list[dict[str, Any]] = []
        for stem in files or list(NDGAIN_FILES):
            path = self.locate(stem)
            if path is None:
                self._log.warning(
                    "ndgain_file_missing",
                    file=f"{stem}.csv",
                    searched=[str(d) for d in self._search_dirs],
                )
                self.missing_files.append(stem)
                continue
            rows.extend(self._read_file(path, NDGAIN_FILES[stem][0]))
        return self._raw_frame(rows)

    def transform(self, raw: pl.DataFrame) -> pl.DataFrame:
        return observations_frame(self._transform_raw(raw))

    def _round(self, value: float) -> float:
        scale = 10**DECIMALS
        return math.floor(value * scale + 0.5) / scale

    def indicators(self) -> list[Indicator]:
        return [
            Indicator(code=code, name=name, unit="index (0-1)", source=SOURCE_LABEL, category="adaptation")
            for code, name in NDGAIN_FILES.values()
        ]

    async def get_metadata(self) -> dict[str, Any]:
        return {
            "source_name": self.name,
            "search_dirs": [str(d) for d in self._search_dirs],
            "description": "ND-GAIN country index, vulnerability and readiness",
            "indicators": [code for code, _ in NDGAIN_FILES.values()],
        }
