"""Map tile fetching through the versioned cache.

All tile network I/O goes through one ``httpx.AsyncClient`` owned by the
build (see ``build_http_client``). Tiles are cached under the ``gpx_tiles``
kind keyed by their URL without scheme, so every mirror of the same tile is
cached separately, exactly as it was fetched.
"""

from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING

import httpx
import structlog

from trailpress.cache import Cache
from trailpress.errors import ErrorCode, SiteError
from trailpress.models.cache import CachedTile

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from trailpress.config import GpxEmbeddingSettings

log = structlog.get_logger()

TILE_CACHE_KIND = "gpx_tiles"
# Bump when CachedTile changes shape; older entries then read as misses.
TILE_CACHE_VERSION = 1


def build_http_client(settings: GpxEmbeddingSettings) -> httpx.AsyncClient:
    """Create the shared httpx client. Called once per build."""
    return httpx.AsyncClient(
        follow_redirects=True,
        timeout=httpx.Timeout(settings.timeout_seconds),
        headers={"User-Agent": settings.user_agent},
        limits=httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        ),
    )


def build_tile_cache(root: Path, settings: GpxEmbeddingSettings) -> Cache[CachedTile]:
    return Cache(
        root,
        TILE_CACHE_KIND,
        CachedTile,
        TILE_CACHE_VERSION,
        ttl=timedelta(days=settings.tile_ttl_days),
    )


def tile_url(base: Sequence[str], zoom: int, x: int, y: int) -> str:
    """URL of one tile, spreading requests over the mirror list."""
    if not base:
        raise SiteError(code=ErrorCode.MISUSE, message="No tile server configured")
    server = base[(x + y) % len(base)].rstrip("/")
    return f"{server}/{zoom}/{x}/{y}.png"


def cache_key(url: str) -> str:
    return url.removeprefix("https://").removeprefix("http://")


class TileFetcher:
    """Fetch tiles over HTTP with read-through/write-through caching."""

    def __init__(self, client: httpx.AsyncClient, cache: Cache[CachedTile]) -> None:
        self._client = client
        self._cache = cache

    async def fetch(self, url: str) -> bytes:
        """Return the tile's PNG bytes.

        Raises SiteError on network errors and non-2xx responses; nothing is
        cached in that case.
        """
        key = cache_key(url)

        cached = await self._cache.get(key)
        if cached is not None:
            log.debug("tile_cache_hit", url=url)
            return cached.content

        log.debug("tile_fetching", url=url)
        try:
            response = await self._client.get(url)
        except httpx.HTTPError as exc:
            raise SiteError(
                code=ErrorCode.UPSTREAM_FAILED,
                message=f"Network error fetching tile {url}: {exc}",
                suggestion="The tile server may be temporarily unavailable.",
                recoverable=True,
            ) from exc

        if not response.is_success:
            raise SiteError(
                code=ErrorCode.UPSTREAM_FAILED,
                message=f"Failed to fetch tile: {url} (HTTP {response.status_code})",
                suggestion="Check gpx_embedding.base points at a {z}/{x}/{y}.png tile server.",
                recoverable=response.status_code >= 500,
            )

        content = response.content
        await self._cache.set(key, CachedTile(url=url, content=content))
        log.debug("tile_cached", url=url, size=len(content))
        return content
