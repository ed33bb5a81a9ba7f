"""Versioned JSON file cache for expensive derived artifacts.

Each entry lives at ``<root>/.cache/<kind>/<key>.json`` and holds
``{data, version, created_at}``. A lookup is a miss when the file is absent,
when the stored version differs from the cache's version, or when a TTL is
set and the entry is too old; callers cannot tell these cases apart and
simply recompute and ``set`` again.

A file that exists but cannot be read back is not a miss: it raises
``ErrorCode.CACHE_CORRUPTED``, since it usually means a storage problem that
must not be papered over by silently refetching.
"""

from __future__ import annotations

import asyncio
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Generic, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from trailpress.errors import ErrorCode, SiteError
from trailpress.models.cache import CacheEntry

if TYPE_CHECKING:
    from datetime import timedelta

log = structlog.get_logger()

T = TypeVar("T")

CACHE_DIR_NAME = ".cache"


class _EntryHeader(BaseModel):
    """Envelope fields only, readable whatever shape ``data`` has."""

    version: int
    created_at: datetime


def cache_dir(root: Path) -> Path:
    return root / CACHE_DIR_NAME


class Cache(Generic[T]):
    """File-backed cache for one kind of payload at one schema version."""

    def __init__(
        self,
        root: Path,
        kind: str,
        payload_type: type[T],
        version: int,
        *,
        ttl: timedelta | None = None,
    ) -> None:
        self.kind = kind
        self.version = version
        self.ttl = ttl
        self._dir = cache_dir(root) / kind
        self._entry_model = CacheEntry[payload_type]  # type: ignore[valid-type]

    def path_for(self, key: str) -> Path:
        relative = PurePosixPath(f"{key}.json")
        if relative.is_absolute() or ".." in relative.parts:
            raise SiteError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Cache key escapes the cache directory: {key!r}",
            )
        return self._dir / relative

    async def get(self, key: str) -> T | None:
        """Return the cached payload, or ``None`` on any kind of miss."""
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: T) -> None:
        """Store ``value``, fully replacing any previous entry for ``key``."""
        await asyncio.to_thread(self._write, key, value)

    def _read(self, key: str) -> T | None:
        path = self.path_for(key)

        if not path.exists():
            return None

        if not path.is_file():
            raise SiteError(
                code=ErrorCode.CACHE_CORRUPTED,
                message=f"Cache path {path} is not a file",
                suggestion="Remove the cache directory with 'trailpress clear'.",
            )

        try:
            raw = path.read_bytes()
        except OSError as exc:
            raise SiteError(
                code=ErrorCode.IO_FAILED,
                message=f"Failed to read cache entry for key: {key}",
            ) from exc

        try:
            header = _EntryHeader.model_validate_json(raw)
        except ValidationError as exc:
            raise SiteError(
                code=ErrorCode.CACHE_CORRUPTED,
                message=f"Failed to deserialize cache data for key: {key}",
                suggestion="Remove the cache directory with 'trailpress clear'.",
            ) from exc

        if header.version != self.version:
            log.debug(
                "cache_version_mismatch",
                kind=self.kind,
                key=key,
                stored=header.version,
                expected=self.version,
            )
            return None

        if self.ttl is not None and datetime.now(UTC) - header.created_at >= self.ttl:
            log.debug("cache_expired", kind=self.kind, key=key)
            return None

        try:
            entry = self._entry_model.model_validate_json(raw)
        except ValidationError as exc:
            raise SiteError(
                code=ErrorCode.CACHE_CORRUPTED,
                message=f"Failed to deserialize cache data for key: {key}",
                suggestion="Remove the cache directory with 'trailpress clear'.",
            ) from exc

        return entry.data

    def _write(self, key: str, value: T) -> None:
        path = self.path_for(key)
        entry = self._entry_model(data=value, version=self.version, created_at=datetime.now(UTC))
        serialized = entry.model_dump_json()

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write-then-rename so readers never observe a partial entry.
            fd, tmp_name = tempfile.mkstemp(dir=path.parent, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                    tmp.write(serialized)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise SiteError(
                code=ErrorCode.IO_FAILED,
                message=f"Failed to write cache for key: {key}",
            ) from exc
