"""Shared test fixtures for the trailpress test suite."""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import pytest
from PIL import Image

from trailpress.config import Config
from trailpress.site import Site
from trailpress.state import BuildState

CONFIG_YAML = """\
domain: https://example.com
title: Trail Notes
description: Rides and hikes
template_config:
  author: Jane
gpx_embedding:
  base:
    - https://a.tile.test
    - https://b.tile.test
"""

INDEX_TEMPLATE = """\
<h1>{{ config.title }}</h1>
{{ add_page(path="/rides/alps.html", template="post.html", title="Alps") }}
{{ add_page(path="/tags/bike.html", template="tag.html", title="bike") }}
<a href="{{ add_feed(path="/feed.json", type="json") }}">json</a>
<a href="{{ add_feed(path="/atom.xml", type="atom") }}">atom</a>
<link rel="stylesheet" href="{{ get_static_file(path="/style.css") }}">
"""

POST_TEMPLATE = """\
{% set doc = get_page_by_path(path) %}
<h1>{{ doc.metadata.title }}</h1>
{{ doc.body | markdown }}
{% for pid in get_similar(pid=doc.pid) %}<a href="{{ pid }}.html">{{ pid }}</a>{% endfor %}
"""

TAG_TEMPLATE = """\
{% set slice = get_pages_by_tag(tag=title, limit=1) %}
{% for doc in slice.pages %}<li>{{ doc.metadata.title }}</li>{% endfor %}
{% for n in slice.numbers %}{{ n.display }}{% endfor %}
"""

ALPS_DOC = """\
---
title: Crossing the Alps
date: 2024-06-01T08:00:00+02:00
image: /images/alps.jpg
preview: Three passes in one day
tags: [bike, alps]
---
Climbing **all day**.
"""

COAST_DOC = """\
---
title: Coast Ride
date: 2024-05-01T08:00:00+00:00
tags: [bike]
---
Flat and windy.
"""


def png_bytes(color: tuple[int, int, int, int] = (0, 128, 0, 255), size: tuple[int, int] = (256, 256)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGBA", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


class FakeTileSource:
    """In-memory tile source that records every URL it served."""

    def __init__(self, content: bytes | None = None) -> None:
        self.content = content if content is not None else png_bytes()
        self.urls: list[str] = []

    async def fetch(self, url: str) -> bytes:
        self.urls.append(url)
        return self.content


@pytest.fixture()
def make_png() -> Callable[..., bytes]:
    return png_bytes


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """A minimal site project: config, two documents, three templates, one stylesheet."""
    root = tmp_path / "site"
    (root / "content" / "rides").mkdir(parents=True)
    (root / "templates").mkdir()
    (root / "static").mkdir()

    (root / "config.yaml").write_text(CONFIG_YAML)
    (root / "content" / "rides" / "alps.md").write_text(ALPS_DOC)
    (root / "content" / "coast.md").write_text(COAST_DOC)
    (root / "templates" / "index.html").write_text(INDEX_TEMPLATE)
    (root / "templates" / "post.html").write_text(POST_TEMPLATE)
    (root / "templates" / "tag.html").write_text(TAG_TEMPLATE)
    (root / "static" / "style.css").write_text("body { color: black; }\n")
    return root


@pytest.fixture()
def config(project: Path) -> Config:
    return Config.load(project)


@pytest.fixture()
def tile_source() -> FakeTileSource:
    return FakeTileSource()


@pytest.fixture()
def state(project: Path, config: Config, tile_source: FakeTileSource) -> BuildState:
    return BuildState(
        config=config,
        root=project,
        site=Site(project / config.dist_path),
        tile_source=tile_source,
    )
