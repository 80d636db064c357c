"""
utils/downloads.py — Cached bulk-file downloads.

Bulk CSVs (OWID energy / CO2, ~50 MB) are downloaded once into the scratch
directory and reused on later runs while the file is present. Delete the
file to force a fresh copy.

Usage:
    from visualclimate_pipeline.utils.downloads import get_or_download

    path = await get_or_download(url, Path("/tmp/owid-energy-data.csv"))
"""

from __future__ import annotations

from pathlib import Path

import httpx
import structlog
from tqdm import tqdm

from visualclimate_pipeline.utils.retry import with_retry

log = structlog.get_logger(__name__)

CHUNK_SIZE = 256 * 1024


@with_retry(max_attempts=3, base_delay=2.0)
async def download_to(url: str, dest: Path, *, timeout: float = 300.0) -> Path:
    """
    Stream *url* to *dest*, writing to a .part file first.

    The .part file is renamed into place only after the body is complete so
    an interrupted download never looks like a cached file.
    """
    dest.parent.mkdir(parents=True, exist_ok=True)
    part = dest.with_name(dest.name + ".part")
    log.info("download_start", url=url, dest=str(dest))
    try:
        async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length", 0)) or None
                with open(part, "wb") as fh, tqdm(
                    total=total,
                    unit="B",
                    unit_scale=True,
                    desc=dest.name,
                    disable=total is None,
                ) as bar:
                    async for chunk in response.aiter_bytes(chunk_size=CHUNK_SIZE):
                        fh.write(chunk)
                        bar.update(len(chunk))
        part.replace(dest)
    except BaseException:
        part.unlink(missing_ok=True)
        raise
    log.info("download_complete", dest=str(dest), bytes=dest.stat().st_size)
    return dest


async def get_or_download(url: str, dest: Path) -> Path:
    """Return *dest* if it already exists, otherwise download it there first."""
    if dest.is_file():
        log.info("using_cached_file", path=str(dest))
        return dest
    return await download_to(url, dest)
