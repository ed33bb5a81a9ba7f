"""Filesystem helpers shared by the build steps."""

from __future__ import annotations

import base64
import zlib
from typing import TYPE_CHECKING

from trailpress.errors import ErrorCode, SiteError

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

_CHUNK_SIZE = 64 * 1024


def files_by_ext(root: Path, extensions: Iterable[str]) -> list[Path]:
    """Every file below ``root`` (recursively) whose extension is whitelisted.

    Extensions are compared case-insensitively and without the leading dot.
    The result is sorted so builds are reproducible.
    """
    wanted = {ext.lower().lstrip(".") for ext in extensions}
    try:
        return sorted(
            path
            for path in root.rglob("*")
            if path.is_file() and path.suffix.lower().lstrip(".") in wanted
        )
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to scan directory: {root}",
        ) from exc


def write_file(path: Path, content: str | bytes) -> None:
    """Create parent directories and write ``content``, truncating any old file."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            path.write_bytes(content)
        else:
            path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to write file: {path}",
        ) from exc


def _encode(checksum: int) -> str:
    return base64.urlsafe_b64encode((checksum & 0xFFFFFFFF).to_bytes(4, "big")).rstrip(b"=").decode("ascii")


def crc32_digest(data: bytes) -> str:
    """CRC32 as URL-safe base64 of its big-endian bytes, padding stripped."""
    return _encode(zlib.crc32(data))


def crc32_checksum(path: Path) -> str:
    """:func:`crc32_digest` of a file's content, read in chunks."""
    checksum = 0
    try:
        with path.open("rb") as f:
            while chunk := f.read(_CHUNK_SIZE):
                checksum = zlib.crc32(chunk, checksum)
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to read file for checksum: {path}",
        ) from exc
    return _encode(checksum)
