"""
geo.py — Country code normalization helpers.

Sources spell ISO 3166-1 alpha-3 codes inconsistently (lowercase, padded,
aggregate pseudo-codes like "OWID_WRL"). Everything is reduced to a strict
three-letter uppercase code before the registry lookup.

Usage:
    from visualclimate_shared.geo import normalize_iso3

    normalize_iso3(" kor ")     # "KOR"
    normalize_iso3("OWID_WRL")  # None
"""

from __future__ import annotations

import re

_ISO3_RE = re.compile(r"^[A-Z]{3}$")


def normalize_iso3(raw: object) -> str | None:
    """Return an uppercase ISO3 code, or None if *raw* is not one."""
    if not isinstance(raw, str):
        return None
    code = raw.strip().upper()
    return code if _ISO3_RE.match(code) else None


def is_strict_iso3(raw: object) -> bool:
    """True only for values that are already exactly three uppercase letters."""
    return isinstance(raw, str) and bool(_ISO3_RE.match(raw))
