"""Build state container.

BuildState is created once per build by the CLI and passed to every build
step: site initialisation, document loading, template globals, route-map
embedding and rendering. Nothing in the package keeps process-wide state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    import httpx

    from trailpress.config import Config
    from trailpress.content import Documents
    from trailpress.protocols import TileSource
    from trailpress.site import Site


@dataclass
class BuildState:
    """Holds all shared state of one build."""

    config: Config
    root: Path
    site: Site

    # Set by load_documents()
    documents: Documents | None = None

    # Network: only needed when a template embeds a route map
    http_client: httpx.AsyncClient | None = None
    tile_source: TileSource | None = None
