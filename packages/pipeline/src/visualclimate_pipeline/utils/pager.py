"""
utils/pager.py — Sequential pagination and inter-request throttling.

Two contracts:

  paginate()   — "fetch page N, read the declared page count, advance, sleep"
                 for REST sources with server-side pagination. Stops when the
                 declared page total is reached, the declared record total is
                 exhausted, or a page comes back shorter than page_size.
  throttled()  — "sleep between iterations" for sources paginated by an
                 explicit parameter (one request per year, per sector, ...).

Pages are requested strictly one at a time. A failing fetch is never
re-requested here; the exception propagates to the caller.

Usage:
    from visualclimate_pipeline.utils.pager import Page, paginate, throttled

    async def fetch(page: int) -> Page:
        meta, records = await get_json(page)
        return Page(records=records, total_pages=meta["pages"], total_records=meta["total"])

    async for page_no, records in paginate(fetch, delay_s=0.3):
        ...

    async for year in throttled(range(2015, 2024), delay_s=0.2):
        ...
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog

log = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass
class Page:
    """One fetched page and whatever totals the server declared with it."""

    records: list[Any] = field(default_factory=list)
    total_pages: int | None = None
    total_records: int | None = None


async def paginate(
    fetch_page: Callable[[int], Awaitable[Page]],
    *,
    page_size: int | None = None,
    delay_s: float = 0.0,
    first_page: int = 1,
) -> AsyncIterator[tuple[int, list[Any]]]:
    """
    Drive fetch_page(1), fetch_page(2), ... until the data runs out.

    Args:
        fetch_page: Coroutine returning the Page for a 1-based page number.
        page_size:  Expected records per page; a shorter page ends the loop.
        delay_s:    Sleep between consecutive page requests.
        first_page: Page number to start from.

    Yields:
        (page_number, records) in page order.
    """
    page_no = first_page
    seen = 0
    while True:
        page = await fetch_page(page_no)
        seen += len(page.records)
        log.debug(
            "page_fetched",
            page=page_no,
            total_pages=page.total_pages,
            records=len(page.records),
        )
        yield page_no, page.records

        if not page.records:
            break
        if page.total_pages is not None and page_no >= page.total_pages:
            break
        if page.total_records is not None and seen >= page.total_records:
            break
        if page_size is not None and len(page.records) < page_size:
            break

        page_no += 1
        if delay_s > 0:
            await asyncio.sleep(delay_s)


async def throttled(items: Iterable[T], *, delay_s: float = 0.0) -> AsyncIterator[T]:
    """Yield items in order, sleeping delay_s between consecutive ones."""
    first = True
    for item in items:
        if not first and delay_s > 0:
            await asyncio.sleep(delay_s)
        first = False
        yield item
