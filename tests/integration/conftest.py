"""Integration test fixtures.

Builds run against the real httpx client with every tile server mocked by
respx. Project and config fixtures come from tests/conftest.py.
"""

from __future__ import annotations

import io
from typing import TYPE_CHECKING

import httpx
import pytest
import respx
from PIL import Image

if TYPE_CHECKING:
    from collections.abc import Iterator
    from pathlib import Path

TILE_PATTERN = r"^https://[ab]\.tile\.test/\d+/\d+/\d+\.png$"

RIDE_GPX = """\
<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="46.50" lon="8.30"><ele>1400</ele></trkpt>
    <trkpt lat="46.55" lon="8.40"><ele>2100</ele></trkpt>
    <trkpt lat="46.60" lon="8.45"><ele>1800</ele></trkpt>
  </trkseg></trk>
</gpx>
"""

RIDE_TEMPLATE = """\
{% set doc = get_page_by_path(path) %}
<h1>{{ doc.metadata.title }}</h1>
<img src="{{ render_gpx(input="/tracks/ride.gpx", width=320, height=240) }}">
{% set stats = track_stats(input="/tracks/ride.gpx") %}
<p>{{ "%.1f" | format(stats.distance_km) }} km</p>
<img src="{{ get_image_url(src=doc.metadata.image) }}">
"""


def tile_png() -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", (256, 256), (200, 220, 200, 255)).save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture()
def tiles() -> Iterator[respx.Route]:
    """Mock both tile mirrors; the yielded route records every request."""
    with respx.mock(assert_all_called=False) as router:
        route = router.get(url__regex=TILE_PATTERN).mock(
            return_value=httpx.Response(200, content=tile_png())
        )
        yield route


@pytest.fixture()
def gpx_project(project: Path) -> Path:
    """The base project with the alps ride rendering a route map."""
    (project / "tracks").mkdir()
    (project / "tracks" / "ride.gpx").write_text(RIDE_GPX)
    (project / "images").mkdir()
    (project / "images" / "alps.jpg").write_bytes(b"jpeg")
    (project / "templates" / "post.html").write_text(RIDE_TEMPLATE)
    return project
