"""Route maps embedded into pages as static images.

Every build plots each track again from the (cached) map tiles, writes the
PNG under ``.cache/gpx_embed/<w>/<h>/`` and publishes it at the matching
``/public/gpx_embed/...`` URL. Within one build a map is rendered once, however
many pages embed it.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from trailpress.cache import cache_dir
from trailpress.errors import ErrorCode, SiteError
from trailpress.files import crc32_digest, write_file
from trailpress.gpx import read_track
from trailpress.mapplot import render_route_map
from trailpress.site import StaticPage

if TYPE_CHECKING:
    from trailpress.state import BuildState

log = structlog.get_logger()

EMBED_DIR = "gpx_embed"
PUBLIC_PREFIX = "/public"
DEFAULT_WIDTH = 800
DEFAULT_HEIGHT = 600


async def _read_attribution(state: BuildState) -> bytes | None:
    attribution = state.config.gpx_embedding.attribution_png
    if attribution is None:
        return None
    path = state.root / attribution
    try:
        return await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to read attribution image: {path}",
            suggestion="Check gpx_embedding.attribution_png in config.yaml.",
        ) from exc


async def embed_route(
    state: BuildState,
    input: str,
    width: int = DEFAULT_WIDTH,
    height: int = DEFAULT_HEIGHT,
) -> str:
    """Render the GPX file ``input`` (relative to the project root) and return its URL."""
    if state.tile_source is None:
        raise SiteError(
            code=ErrorCode.MISUSE,
            message="Route maps need a tile source, but the build has none",
        )

    source = state.root / input.strip().lstrip("/")
    key = crc32_digest(str(source).encode("utf-8"))
    relative = f"{EMBED_DIR}/{width}/{height}/{key}.png"
    destination = cache_dir(state.root) / relative
    url = f"{PUBLIC_PREFIX}/{relative}"

    if state.site.get_page(url) is not None:
        log.debug("route_map_already_published", input=input, url=url)
        return url

    settings = state.config.gpx_embedding
    points = await asyncio.to_thread(read_track, source)
    png = await render_route_map(
        points,
        width,
        height,
        fetch=state.tile_source.fetch,
        base=settings.base,
        attribution=await _read_attribution(state),
        concurrency=settings.concurrency,
    )
    await asyncio.to_thread(write_file, destination, png)
    log.info("route_map_rendered", input=input, url=url, size=len(png))

    state.site.add_page(StaticPage(destination=url, source=destination))
    return url
