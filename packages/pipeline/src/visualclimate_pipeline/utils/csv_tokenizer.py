"""
utils/csv_tokenizer.py — Quote-aware line tokenizer shared by the CSV sources.

A double quote toggles quoted state and is dropped; the delimiter only
splits fields outside quotes. There is no escape handling beyond that, so
``""`` inside a quoted field simply toggles twice and vanishes.

No header inference happens here: callers tokenize the first line and
look columns up by name with header_index().

Usage:
    from visualclimate_pipeline.utils.csv_tokenizer import parse_csv_line, header_index

    parse_csv_line('a,"b,c",d')                      # ["a", "b,c", "d"]
    cols = header_index(parse_csv_line(first_line), ["iso_code", "year"])
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path


def parse_csv_line(line: str, delimiter: str = ",") -> list[str]:
    """Split one line of text into its field values."""
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    for ch in line.rstrip("\r\n"):
        if ch == '"':
            in_quotes = not in_quotes
            continue
        if ch == delimiter and not in_quotes:
            fields.append("".join(current))
            current = []
            continue
        current.append(ch)
    fields.append("".join(current))
    return fields


def header_index(header: list[str], names: Iterable[str]) -> dict[str, int]:
    """
    Map each requested column name to its position in *header*.

    Names are matched after stripping whitespace; absent names are left out
    of the result so callers can decide which ones are required.
    """
    positions = {name.strip(): i for i, name in enumerate(header)}
    return {name: positions[name] for name in names if name in positions}


def iter_csv_rows(path: Path, delimiter: str = ",") -> Iterator[list[str]]:
    """
    Yield tokenized rows from a CSV file, header first, skipping blank lines.

    Reads with utf-8-sig so a leading BOM never sticks to the first column name.
    """
    with open(path, encoding="utf-8-sig", newline="") as fh:
        for line in fh:
            if not line.strip():
                continue
            yield parse_csv_line(line, delimiter)
