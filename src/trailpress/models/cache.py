from __future__ import annotations

from datetime import datetime
from typing import Generic, TypeVar

from pydantic import BaseModel, ConfigDict

T = TypeVar("T")


class CacheEntry(BaseModel, Generic[T]):
    """On-disk envelope for a cached payload."""

    data: T
    version: int
    created_at: datetime


class CachedTile(BaseModel):
    """A fetched map tile, keyed in the cache by its scheme-less URL."""

    # PNG bytes travel as base64 inside the JSON file
    model_config = ConfigDict(ser_json_bytes="base64", val_json_bytes="base64")

    url: str
    content: bytes
