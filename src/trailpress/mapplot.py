"""Route map rendering: tiles, route overlay and attribution on one canvas.

A run moves through ``Idle -> Viewing -> Fetching -> Compositing -> Overlay
-> Done``; any failure ends it in ``Failed`` and propagates. There is no
placeholder for a tile that could not be fetched or decoded: a map with a
hole in it is not published.
"""

from __future__ import annotations

import asyncio
import io
import math
from contextlib import aclosing
from enum import StrEnum
from itertools import pairwise
from typing import TYPE_CHECKING

import structlog
from PIL import Image, ImageDraw, UnidentifiedImageError

from trailpress.errors import ErrorCode, SiteError
from trailpress.projection import TILE_SIZE, BoundingBox, View, lonlat_to_pixel
from trailpress.runner import as_completed_bounded
from trailpress.tiles import tile_url

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from trailpress.gpx import TrackPoint

log = structlog.get_logger()

ROUTE_COLOR = (255, 0, 0, 155)
ROUTE_WIDTH = 10
ROUTE_DASH = (80.0, 20.0)
DEFAULT_CONCURRENCY = 2

Point = tuple[float, float]


class MapStage(StrEnum):
    IDLE = "idle"
    VIEWING = "viewing"
    FETCHING = "fetching"
    COMPOSITING = "compositing"
    OVERLAY = "overlay"
    DONE = "done"
    FAILED = "failed"


def decode_png(content: bytes, source: str) -> Image.Image:
    """Decode image bytes into an RGBA image, or raise DECODE_FAILED."""
    try:
        with Image.open(io.BytesIO(content)) as image:
            return image.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        raise SiteError(
            code=ErrorCode.DECODE_FAILED,
            message=f"Could not decode image from {source}",
        ) from exc


def canvas_size(view: View) -> tuple[int, int]:
    """Integer pixel size of the canvas allocated for ``view``."""
    width, height = view.dimensions()
    return max(1, round(width)), max(1, round(height))


def tile_indices(view: View) -> list[tuple[int, int]]:
    """Every tile touching the view, with one extra column and row of overscan."""
    (min_x, min_y), (max_x, max_y) = view.tile_bounds()
    return [
        (x, y)
        for x in range(math.floor(min_x), math.floor(max_x) + 2)
        for y in range(math.floor(min_y), math.floor(max_y) + 2)
    ]


def dash_segments(path: Sequence[Point], pattern: tuple[float, float] = ROUTE_DASH) -> list[list[Point]]:
    """Split a polyline into the visible stretches of an on/off dash pattern.

    The pattern carries over vertices, so a dash may bend around a corner and
    come back as a multi-point stretch.
    """
    if len(path) < 2:
        return []

    dashes: list[list[Point]] = []
    phase = 0
    remaining = pattern[0]
    current: list[Point] = [path[0]]

    for (x0, y0), (x1, y1) in pairwise(path):
        length = math.hypot(x1 - x0, y1 - y0)
        position = 0.0
        while length - position > remaining:
            position += remaining
            point = (x0 + (x1 - x0) * position / length, y0 + (y1 - y0) * position / length)
            if phase == 0:
                current.append(point)
                dashes.append(current)
                current = []
            else:
                current = [point]
            phase = 1 - phase
            remaining = pattern[phase]
        remaining -= length - position
        if phase == 0:
            current.append((x1, y1))

    if phase == 0 and len(current) > 1:
        dashes.append(current)
    return dashes


class RouteMap:
    """RGBA canvas covering one view, filled tile by tile."""

    def __init__(self, view: View) -> None:
        self.view = view
        self.canvas = Image.new("RGBA", canvas_size(view), (0, 0, 0, 0))
        (min_x, min_y), _ = view.tile_bounds()
        self._origin = (min_x, min_y)

    def _pixel(self, lon: float, lat: float) -> tuple[int, int]:
        x, y = lonlat_to_pixel(lon, lat, self.view.zoom)
        return (
            math.floor(x - self._origin[0] * TILE_SIZE),
            math.floor(y - self._origin[1] * TILE_SIZE),
        )

    def place_tile(self, x: int, y: int, tile: Image.Image) -> None:
        """Paste a decoded tile at its offset from the view's top-left tile."""
        offset = (
            math.floor((x - self._origin[0]) * TILE_SIZE),
            math.floor((y - self._origin[1]) * TILE_SIZE),
        )
        self.canvas.paste(tile, offset)

    async def fill_tiles(
        self,
        fetch: Callable[[str], Awaitable[bytes]],
        base: Sequence[str],
        *,
        concurrency: int = DEFAULT_CONCURRENCY,
    ) -> int:
        """Fetch every tile of the view and place each one as it arrives.

        Tiles never overlap, so arrival order does not matter. Returns the
        number of tiles placed.
        """
        zoom = self.view.zoom

        async def load(index: tuple[int, int]) -> tuple[tuple[int, int], Image.Image]:
            x, y = index
            url = tile_url(base, zoom, x, y)
            content = await fetch(url)
            tile = await asyncio.to_thread(decode_png, content, url)
            return index, tile

        placed = 0
        tiles = as_completed_bounded(tile_indices(self.view), load, limit=concurrency)
        # A failed paste still drains the tiles in flight before it propagates
        async with aclosing(tiles):
            async for (x, y), tile in tiles:
                self.place_tile(x, y, tile)
                placed += 1
        return placed

    def plot_route(self, points: Sequence[TrackPoint]) -> None:
        """Stroke the track as a dashed, round-capped, translucent line."""
        path = [self._pixel(point.lon, point.lat) for point in points]

        # Strokes go onto their own layer so overlapping caps keep one alpha.
        overlay = Image.new("RGBA", self.canvas.size, (0, 0, 0, 0))
        draw = ImageDraw.Draw(overlay)
        radius = ROUTE_WIDTH / 2.0
        for dash in dash_segments(path):
            draw.line(dash, fill=ROUTE_COLOR, width=ROUTE_WIDTH, joint="curve")
            for cx, cy in (dash[0], dash[-1]):
                draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=ROUTE_COLOR)

        self.canvas.alpha_composite(overlay)

    def add_attribution(self, content: bytes) -> None:
        """Composite the attribution badge into the bottom-right corner."""
        badge = decode_png(content, "attribution image")
        width, height = self.canvas.size

        if badge.width > width or badge.height > height:
            ratio = min(width / badge.width, height / badge.height)
            badge = badge.resize(
                (max(1, math.floor(badge.width * ratio)), max(1, math.floor(badge.height * ratio))),
                Image.Resampling.LANCZOS,
            )

        self.canvas.alpha_composite(badge, dest=(width - badge.width, height - badge.height))

    def to_png(self) -> bytes:
        buffer = io.BytesIO()
        self.canvas.save(buffer, format="PNG")
        return buffer.getvalue()


async def render_route_map(
    points: Sequence[TrackPoint],
    width: float,
    height: float,
    *,
    fetch: Callable[[str], Awaitable[bytes]],
    base: Sequence[str],
    attribution: bytes | None = None,
    concurrency: int = DEFAULT_CONCURRENCY,
) -> bytes:
    """Render ``points`` over map tiles into a PNG of roughly width x height."""
    stage = MapStage.IDLE
    run_log = log.bind(points=len(points), width=width, height=height)

    def advance(next_stage: MapStage, **context: object) -> None:
        nonlocal stage
        stage = next_stage
        run_log.debug("route_map_stage", stage=str(stage), **context)

    try:
        if not points:
            raise SiteError(
                code=ErrorCode.INVALID_INPUT,
                message="Cannot render a route map without track points",
            )

        advance(MapStage.VIEWING)
        bbox = BoundingBox.from_points((point.lon, point.lat) for point in points)
        try:
            view = View.fit(bbox, width, height)
        except ValueError as exc:
            raise SiteError(code=ErrorCode.INVALID_INPUT, message=str(exc)) from exc
        route_map = RouteMap(view)

        advance(MapStage.FETCHING, zoom=view.zoom, tiles=len(tile_indices(view)))
        await route_map.fill_tiles(fetch, base, concurrency=concurrency)

        advance(MapStage.COMPOSITING)
        await asyncio.to_thread(route_map.plot_route, points)

        advance(MapStage.OVERLAY, attribution=attribution is not None)
        if attribution is not None:
            await asyncio.to_thread(route_map.add_attribution, attribution)
        png = await asyncio.to_thread(route_map.to_png)

        advance(MapStage.DONE, size=len(png))
        return png
    except BaseException:
        run_log.warning("route_map_failed", stage=str(stage))
        stage = MapStage.FAILED
        raise
