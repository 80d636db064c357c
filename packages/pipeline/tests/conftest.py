"""
tests/conftest.py — Shared pytest fixtures for the pipeline test suite.

Provides:
  fixture_path()   — resolves paths to tests/fixtures/
  fake_store()     — in-memory stand-in for the Supabase table API
  registry()       — CountryRegistry with the six pilot countries
  settings()       — Settings with store credentials and tmp scratch dirs
  pipeline_ctx()   — PipelineContext wired to fake_store
  mock_http        — configured respx router for faking HTTP responses
"""

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest
import respx

from visualclimate_shared.config import Settings
from visualclimate_pipeline.loaders.supabase_loader import SupabaseLoader
from visualclimate_pipeline.pipelines.base import PipelineContext
from visualclimate_pipeline.transforms.normalize import CountryRegistry

FIXTURES_DIR = Path(__file__).parent / "fixtures"

PILOT_COUNTRIES = ["KOR", "USA", "DEU", "BRA", "NGA", "BGD"]


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def fixture_path() -> Path:
    return FIXTURES_DIR


# ---------------------------------------------------------------------------
# In-memory Supabase
# ---------------------------------------------------------------------------

class FakeQuery:
    """The slice of the postgrest query builder the loader uses."""

    def __init__(self, store: "FakeStore", table: str) -> None:
        self._store = store
        self._table = table
        self._columns: list[str] | None = None
        self._filters: list[Any] = []
        self._order: list[str] = []
        self._range: tuple[int, int] | None = None
        self._upsert: tuple[list[dict[str, Any]], list[str]] | None = None

    def select(self, columns: str) -> "FakeQuery":
        self._columns = [c.strip() for c in columns.split(",")]
        return self

    def in_(self, column: str, values: list[Any]) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) in values)
        return self

    def gte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and row[column] >= value)
        return self

    def lte(self, column: str, value: Any) -> "FakeQuery":
        self._filters.append(lambda row: row.get(column) is not None and row[column] <= value)
        return self

    def order(self, column: str, desc: bool = False) -> "FakeQuery":
        self._order.append(column)
        return self

    def range(self, start: int, end: int) -> "FakeQuery":
        self._range = (start, end)
        return self

    def upsert(self, rows: list[dict[str, Any]], on_conflict: str = "") -> "FakeQuery":
        self._upsert = (rows, on_conflict.split(","))
        return self

    def execute(self) -> SimpleNamespace:
        if self._upsert is not None:
            rows, conflict = self._upsert
            self._store.write(self._table, rows, conflict)
            return SimpleNamespace(data=rows)

        self._store.select_calls += 1
        rows = [r for r in self._store.rows(self._table) if all(f(r) for f in self._filters)]
        if self._order:
            rows.sort(key=lambda r: tuple(r.get(c) for c in self._order))
        if self._range is not None:
            start, end = self._range
            rows = rows[start : end + 1]
        if self._columns is not None:
            rows = [{c: r.get(c) for c in self._columns} for r in rows]
        return SimpleNamespace(data=rows)


class FakeStore:
    """
    Tables held as dicts keyed on the upsert conflict columns.

    fail_upsert_calls lists 1-based upsert call numbers that raise, to
    simulate a batch the store rejects.
    """

    def __init__(self, countries: list[str] | None = None) -> None:
        self.tables: dict[str, dict[tuple, dict[str, Any]]] = {}
        self.upsert_calls = 0
        self.select_calls = 0
        self.fail_upsert_calls: set[int] = set()
        self.fail_selects = False
        for iso3 in countries or []:
            self.tables.setdefault("countries", {})[(iso3,)] = {"iso3": iso3}

    def table(self, name: str) -> FakeQuery:
        if self.fail_selects:
            raise ConnectionError("store unreachable")
        return FakeQuery(self, name)

    def write(self, table: str, rows: list[dict[str, Any]], conflict: list[str]) -> None:
        self.upsert_calls += 1
        if self.upsert_calls in self.fail_upsert_calls:
            raise RuntimeError("ON CONFLICT DO UPDATE command cannot affect row a second time")
        target = self.tables.setdefault(table, {})
        for row in rows:
            target[tuple(row[c] for c in conflict)] = dict(row)

    def rows(self, table: str) -> list[dict[str, Any]]:
        return list(self.tables.get(table, {}).values())

    def seed(self, table: str, rows: list[dict[str, Any]], conflict: list[str]) -> None:
        target = self.tables.setdefault(table, {})
        for row in rows:
            target[tuple(row[c] for c in conflict)] = dict(row)


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore(countries=PILOT_COUNTRIES)


@pytest.fixture
def registry() -> CountryRegistry:
    return CountryRegistry(PILOT_COUNTRIES)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-role-test-key",
        scratch_dir=str(tmp_path),
        ndgain_dir=str(tmp_path / "ndgain"),
        ndgain_fallback_dir=str(tmp_path / "ndgain-fallback"),
    )


@pytest.fixture
def pipeline_ctx(settings: Settings, fake_store: FakeStore) -> PipelineContext:
    return PipelineContext(settings, SupabaseLoader(fake_store, batch_size=500))


# ---------------------------------------------------------------------------
# respx HTTP mock router
# ---------------------------------------------------------------------------

@pytest.fixture
def mock_http():
    """
    Activate the respx mock router for all httpx requests.

    Usage in tests:
        def test_something(mock_http):
            mock_http.get("https://...").mock(return_value=httpx.Response(200, json={...}))
    """
    with respx.mock(assert_all_called=False) as router:
        yield router
