"""Route map rendering through the tile cache and the build cache."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import pytest

from trailpress.cli import build_site
from trailpress.config import GpxEmbeddingSettings
from trailpress.embed import embed_route
from trailpress.errors import ErrorCode, SiteError
from trailpress.gpx import TrackPoint
from trailpress.mapplot import render_route_map
from trailpress.site import Site, StaticPage
from trailpress.tiles import TileFetcher, build_http_client, build_tile_cache

if TYPE_CHECKING:
    from pathlib import Path

    import respx

    from trailpress.config import Config
    from trailpress.state import BuildState

BASE = ["https://a.tile.test", "https://b.tile.test"]
TRACK = [
    TrackPoint(lon=8.30, lat=46.50),
    TrackPoint(lon=8.40, lat=46.55),
    TrackPoint(lon=8.45, lat=46.60),
]
ALPS_TRACK = (
    '<gpx><trk><trkseg><trkpt lat="46.5" lon="8.3"/><trkpt lat="46.6" lon="8.4"/></trkseg></trk></gpx>'
)
SYDNEY_TRACK = (
    '<gpx><trk><trkseg><trkpt lat="-33.9" lon="151.2"/><trkpt lat="-33.8" lon="151.3"/>'
    '<trkpt lat="-33.85" lon="151.4"/></trkseg></trk></gpx>'
)


async def _render(root: Path) -> bytes:
    settings = GpxEmbeddingSettings(base=BASE)
    async with build_http_client(settings) as client:
        fetcher = TileFetcher(client, build_tile_cache(root, settings))
        return await render_route_map(TRACK, 320, 240, fetch=fetcher.fetch, base=BASE)


class TestTileCache:
    async def test_warm_cache_renders_offline(self, tmp_path: Path, tiles: respx.Route) -> None:
        first = await _render(tmp_path)
        fetched = tiles.call_count
        assert fetched > 0

        second = await _render(tmp_path)

        assert tiles.call_count == fetched
        assert second == first

    async def test_tile_server_error_fails_render(self, tmp_path: Path, tiles: respx.Route) -> None:
        tiles.mock(return_value=httpx.Response(503))

        with pytest.raises(SiteError) as exc_info:
            await _render(tmp_path)

        assert exc_info.value.code == ErrorCode.UPSTREAM_FAILED
        assert not (tmp_path / ".cache" / "gpx_tiles").exists()


class TestEmbedRoute:
    async def test_registers_public_url(self, state: BuildState) -> None:
        (state.root / "ride.gpx").write_text(ALPS_TRACK)

        url = await embed_route(state, "/ride.gpx", 200, 100)

        assert url.startswith("/public/gpx_embed/200/100/")
        page = state.site.get_page(url)
        assert isinstance(page, StaticPage)
        assert page.source is not None
        assert page.source.is_file()
        assert page.source.is_relative_to(state.root / ".cache" / "gpx_embed")

    async def test_rendered_once_per_build(self, state: BuildState) -> None:
        (state.root / "ride.gpx").write_text(ALPS_TRACK)
        first = await embed_route(state, "/ride.gpx", 200, 100)
        fetched = len(state.tile_source.urls)

        second = await embed_route(state, "ride.gpx", 200, 100)

        assert second == first
        assert len(state.tile_source.urls) == fetched

    async def test_edited_track_is_rendered_again(self, state: BuildState) -> None:
        track = state.root / "ride.gpx"
        track.write_text(ALPS_TRACK)
        url = await embed_route(state, "/ride.gpx", 200, 100)
        image = state.root / ".cache" / url.removeprefix("/public/")
        before = image.read_bytes()

        track.write_text(SYDNEY_TRACK)
        state.site = Site(state.site.dist)
        fetched = len(state.tile_source.urls)
        assert await embed_route(state, "/ride.gpx", 200, 100) == url

        assert len(state.tile_source.urls) > fetched
        assert image.read_bytes() != before

    async def test_missing_track_file(self, state: BuildState) -> None:
        with pytest.raises(SiteError) as exc_info:
            await embed_route(state, "/missing.gpx")
        assert exc_info.value.code == ErrorCode.IO_FAILED

    async def test_without_tile_source(self, state: BuildState) -> None:
        state.tile_source = None
        with pytest.raises(SiteError) as exc_info:
            await embed_route(state, "/ride.gpx")
        assert exc_info.value.code == ErrorCode.MISUSE


class TestRebuild:
    async def test_second_build_needs_no_network(
        self, gpx_project: Path, config: Config, tiles: respx.Route
    ) -> None:
        await build_site(gpx_project, config)
        fetched = tiles.call_count
        embed_dir = gpx_project / ".cache" / "gpx_embed"
        first_png = next(embed_dir.rglob("*.png")).read_bytes()

        # The map is plotted again, with every tile read from the tile cache
        await build_site(gpx_project, config)
        assert tiles.call_count == fetched
        assert next(embed_dir.rglob("*.png")).read_bytes() == first_png

    async def test_edited_track_changes_published_map(
        self, gpx_project: Path, config: Config, tiles: respx.Route
    ) -> None:
        await build_site(gpx_project, config)
        published = next((gpx_project / "dist" / "public" / "gpx_embed").rglob("*.png"))
        before = published.read_bytes()

        (gpx_project / "tracks" / "ride.gpx").write_text(SYDNEY_TRACK)
        await build_site(gpx_project, config)

        assert published.read_bytes() != before
