"""
transforms/normalize.py — Country registry and canonical observation rows.

Every source funnels its raw records through a RowValidator before they
become canonical observation rows:

  country_iso3    String   — registry member, three uppercase letters
  indicator_code  String
  year            Int64    — inside the source's declared window
  value           Float64  — finite, never defaulted
  source          String   — provenance label

Rows failing a check raise ParseError / ValidationError, which the source
catches and counts; they are never written.

Usage:
    from visualclimate_pipeline.transforms.normalize import CountryRegistry, RowValidator

    registry = await CountryRegistry.load(loader)        # fatal if the store is down
    validator = RowValidator(registry, year_window=(2000, 2023))
    iso3, year, value = validator.check("kor", "2021", "12.5")
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

import polars as pl
import structlog

from visualclimate_shared.constants import NATURAL_KEY
from visualclimate_shared.exceptions import ParseError, RegistryError, ValidationError
from visualclimate_shared.geo import is_strict_iso3, normalize_iso3

if TYPE_CHECKING:
    from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader

log = structlog.get_logger(__name__)

OBSERVATION_SCHEMA: dict[str, Any] = {
    "country_iso3": pl.String,
    "indicator_code": pl.String,
    "year": pl.Int64,
    "value": pl.Float64,
    "source": pl.String,
}


def empty_observations() -> pl.DataFrame:
    """Zero-row DataFrame with the canonical observation schema."""
    return pl.DataFrame(schema=OBSERVATION_SCHEMA)


def observations_frame(rows: list[dict[str, Any]]) -> pl.DataFrame:
    """Build a canonical observation DataFrame from row dicts."""
    if not rows:
        return empty_observations()
    return pl.DataFrame(rows, schema=OBSERVATION_SCHEMA)


# ---------------------------------------------------------------------------
# Country registry
# ---------------------------------------------------------------------------


class CountryRegistry:
    """The set of ISO3 codes the store knows about."""

    def __init__(self, codes: Iterable[str] = ()) -> None:
        self._codes: frozenset[str] = frozenset(
            c for c in (normalize_iso3(code) for code in codes) if c
        )

    @classmethod
    async def load(cls, loader: "SupabaseLoader") -> "CountryRegistry":
        """
        Read every code from the countries table.

        Raises:
            RegistryError: the store could not be queried.
        """
        log.info("loading_country_registry")
        try:
            codes = await loader.fetch_country_codes()
        except Exception as exc:
            raise RegistryError(f"Cannot load countries: {exc}") from exc
        registry = cls(codes)
        if not registry:
            log.warning("country_registry_empty")
        log.info("country_registry_loaded", count=len(registry))
        return registry

    def __contains__(self, code: object) -> bool:
        return code in self._codes

    def __len__(self) -> int:
        return len(self._codes)

    def __iter__(self):
        return iter(sorted(self._codes))


# ---------------------------------------------------------------------------
# Row-level parsing and validation
# ---------------------------------------------------------------------------


def parse_number(raw: Any) -> float:
    """
    Coerce a raw CSV/JSON value to a finite float.

    Raises:
        ParseError: missing, blank, non-numeric, NaN or infinite.
    """
    if raw is None or isinstance(raw, bool):
        raise ParseError("value missing")
    if isinstance(raw, str):
        raw = raw.strip()
        if not raw:
            raise ParseError("value blank")
    try:
        value = float(raw)
    except (TypeError, ValueError) as exc:
        raise ParseError(f"value not numeric: {raw!r}") from exc
    if not math.isfinite(value):
        raise ParseError(f"value not finite: {raw!r}")
    return value


def parse_year(raw: Any) -> int:
    """
    Coerce a raw year ("2021", 2021, "2021-01-01") to an int.

    Raises:
        ParseError: the leading four characters are not an integer.
    """
    if isinstance(raw, bool):
        raise ParseError("year missing")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip():
        try:
            return int(raw.strip()[:4])
        except ValueError as exc:
            raise ParseError(f"year not numeric: {raw!r}") from exc
    raise ParseError("year missing")


class RowValidator:
    """
    Applies the per-row ingestion checks for one source.

    Args:
        registry:    Known country codes. None skips the membership check
                     (codes must still be well-formed ISO3).
        year_window: Inclusive (min, max). None disables the year check.
        strict_iso3: Accept only codes already in uppercase three-letter form.
    """

    def __init__(
        self,
        registry: CountryRegistry | None,
        *,
        year_window: tuple[int, int] | None,
        strict_iso3: bool = False,
    ) -> None:
        self._registry = registry
        self._window = year_window
        self._strict = strict_iso3

    def check_country(self, raw: Any) -> str:
        if self._strict and not is_strict_iso3(raw.strip() if isinstance(raw, str) else raw):
            raise ValidationError(f"country code not canonical: {raw!r}")
        iso3 = normalize_iso3(raw)
        if iso3 is None:
            raise ValidationError(f"not an ISO3 code: {raw!r}")
        if self._registry is not None and iso3 not in self._registry:
            raise ValidationError(f"country not in registry: {iso3}")
        return iso3

    def check_year(self, raw: Any) -> int:
        year = parse_year(raw)
        if self._window is not None:
            lo, hi = self._window
            if year < lo or year > hi:
                raise ValidationError(f"year {year} outside {lo}-{hi}")
        return year

    def check(self, country: Any, year: Any, value: Any) -> tuple[str, int, float]:
        """Validate one record, returning (iso3, year, value)."""
        return self.check_country(country), self.check_year(year), parse_number(value)


# ---------------------------------------------------------------------------
# Frame helpers
# ---------------------------------------------------------------------------


def deduplicate_observations(df: pl.DataFrame) -> pl.DataFrame:
    """Keep the last row per natural key, preserving first-seen order."""
    n_before = len(df)
    df = df.unique(subset=list(NATURAL_KEY), keep="last", maintain_order=True)
    dropped = n_before - len(df)
    if dropped:
        log.debug("deduplicated", dropped=dropped)
    return df


def row_count_breakdown(df: pl.DataFrame) -> pl.DataFrame:
    """Rows per (country_iso3, indicator_code), sorted for printing."""
    if df.is_empty():
        return pl.DataFrame(
            schema={"country_iso3": pl.String, "indicator_code": pl.String, "rows": pl.UInt32}
        )
    return (
        df.group_by(["country_iso3", "indicator_code"])
        .agg(pl.len().alias("rows"))
        .sort(["country_iso3", "indicator_code"])
    )
