"""Protocol interfaces for swappable components.

The route-map pipeline and the alt-text processor reference these
protocols, not the concrete implementations. This allows:
- Tests to plug in deterministic in-memory tile sources and describers
- Other tile or captioning backends without touching the pipeline code
"""

from __future__ import annotations

from typing import Protocol


class TileSource(Protocol):
    """Anything that can return the PNG bytes for a tile URL."""

    async def fetch(self, url: str) -> bytes: ...


class Describer(Protocol):
    """Image captioning service: image bytes in, one-sentence description out."""

    async def describe(self, image: bytes) -> str: ...
