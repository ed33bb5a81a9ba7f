from __future__ import annotations

from trailpress.models.cache import CachedTile, CacheEntry
from trailpress.models.content import Document, Metadata, PageSlice, SliceNumber
from trailpress.models.feed import JsonFeed, JsonFeedItem

__all__ = [
    # cache
    "CacheEntry",
    "CachedTile",
    # content
    "Metadata",
    "Document",
    "PageSlice",
    "SliceNumber",
    # feed
    "JsonFeed",
    "JsonFeedItem",
]
