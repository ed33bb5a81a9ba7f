"""Source documents: Markdown files with a YAML metadata header.

Documents are parsed concurrently, optionally post-processed (alt text),
and gathered into a read-only ``Documents`` collection that templates query
by pid, by tag and by similarity.
"""

from __future__ import annotations

import asyncio
import math
from collections import Counter
from typing import TYPE_CHECKING

import frontmatter
import structlog
import yaml
from pydantic import ValidationError

from trailpress.errors import ErrorCode, SiteError
from trailpress.files import files_by_ext
from trailpress.models.content import Document, Metadata, PageSlice, SliceNumber
from trailpress.runner import try_map

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from pathlib import Path

    from trailpress.alt_text import AltTextProcessor
    from trailpress.state import BuildState

log = structlog.get_logger()

DOCUMENT_EXTENSION = "md"


class Documents:
    """All source documents, ordered newest first (ties broken by pid)."""

    def __init__(self, documents: Iterable[Document]) -> None:
        ordered = sorted(documents, key=Document.sort_key)
        self._by_pid: dict[str, Document] = {}
        self._by_tag: dict[str, list[Document]] = {}
        for document in ordered:
            self._by_pid[document.pid] = document
            for tag in document.metadata.tags:
                self._by_tag.setdefault(tag, []).append(document)

    def __len__(self) -> int:
        return len(self._by_pid)

    def __iter__(self) -> Iterator[Document]:
        return iter(self._by_pid.values())

    def __contains__(self, pid: object) -> bool:
        return pid in self._by_pid

    def get(self, pid: str) -> Document | None:
        return self._by_pid.get(pid)

    def pids(self) -> list[str]:
        return list(self._by_pid)

    def tags(self) -> set[str]:
        return set(self._by_tag)

    def by_tag(self, tag: str, limit: int = 3, offset: int = 0) -> PageSlice:
        """One page of the documents carrying ``tag``.

        An unknown tag yields an empty slice with zero total slices.
        """
        if limit < 1 or offset < 0:
            raise SiteError(
                code=ErrorCode.MISUSE,
                message=f"Invalid pagination: limit={limit}, offset={offset}",
                suggestion="limit must be at least 1 and offset must not be negative.",
            )

        tagged = self._by_tag.get(tag, [])
        current = offset // limit
        total = math.ceil(len(tagged) / limit)
        return PageSlice(
            pages=tagged[offset : offset + limit],
            current_slice=current,
            total_slices=total,
            slice_size=limit,
            numbers=[
                SliceNumber(number=i, is_current=i == current, display=i + 1)
                for i in range(total)
            ],
        )

    def similar(self, pid: str, limit: int = 3) -> list[str]:
        """Pids of the documents sharing the most tags with ``pid``."""
        document = self._by_pid.get(pid)
        if document is None:
            return []

        shared: Counter[str] = Counter()
        for tag in set(document.metadata.tags):
            for other in self._by_tag[tag]:
                if other.pid != pid:
                    shared[other.pid] += 1

        # Counter preserves first-seen order, so sort explicitly for stable ties
        order = {p: i for i, p in enumerate(self._by_pid)}
        ranked = sorted(shared, key=lambda p: (-shared[p], order[p]))
        return ranked[:limit]


def parse_document(pid: str, text: str) -> Document:
    """Split the YAML header off ``text`` and validate it."""
    try:
        post = frontmatter.loads(text)
    except yaml.YAMLError as exc:
        raise SiteError(
            code=ErrorCode.DECODE_FAILED,
            message=f"Metadata header of {pid} is not valid YAML",
        ) from exc

    try:
        metadata = Metadata.model_validate(post.metadata)
    except ValidationError as exc:
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Metadata header of {pid} is incomplete or invalid",
            suggestion="Every document needs at least 'title' and a timezone-aware 'date'.",
        ) from exc

    return Document(pid=pid, metadata=metadata, body=post.content)


def document_pid(path: Path, content_root: Path) -> str:
    return "/" + path.relative_to(content_root).with_suffix("").as_posix()


async def read_document(path: Path, content_root: Path) -> Document:
    pid = document_pid(path, content_root)
    try:
        text = await asyncio.to_thread(path.read_text, encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to read document: {path}",
        ) from exc
    return parse_document(pid, text)


async def load_documents(
    state: BuildState,
    alt_text: AltTextProcessor | None = None,
) -> Documents:
    """Parse every document below the content root and store them on ``state``."""
    content_root = state.root / state.config.content_path
    if not content_root.is_dir():
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Content directory not found: {content_root}",
            suggestion="Set content_path in config.yaml.",
        )

    paths = files_by_ext(content_root, [DOCUMENT_EXTENSION])
    log.info("documents_loading", directory=str(content_root), count=len(paths))

    loaded = await try_map(paths, lambda path: read_document(path, content_root))

    if alt_text is not None:
        log.info("alt_text_processing", documents=len(loaded))
        loaded = await try_map(loaded, alt_text.process)

    documents = Documents(loaded)
    state.documents = documents
    log.info("documents_loaded", count=len(documents), tags=len(documents.tags()))
    return documents
