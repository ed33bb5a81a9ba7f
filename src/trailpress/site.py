"""The site build graph: every output artifact, keyed by its destination path.

Pages are discovered while rendering (a template may register more pages,
feeds or route images), so the registry is shared by every build step and
guarded by one lock. The lock is only ever held for dictionary access, never
across an ``await``.
"""

from __future__ import annotations

import asyncio
import dataclasses
import shutil
import threading
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, assert_never

import structlog

from trailpress.errors import ErrorCode, SiteError
from trailpress.files import files_by_ext, write_file
from trailpress.runner import try_for_each

if TYPE_CHECKING:
    from trailpress.state import BuildState

log = structlog.get_logger()

ENTRY_PAGE = "/"
ENTRY_TEMPLATE = "index.html"
ROBOTS_PATH = "/robots.txt"
ROBOTS_FALLBACK = "User-agent: *\nAllow: /\n"
SAVE_CONCURRENCY = 50


class FeedType(StrEnum):
    JSON = "json"
    ATOM = "atom"


@dataclass(frozen=True)
class StaticPage:
    """A file copied verbatim from ``source``, or ``fallback`` text if there is none."""

    destination: str
    source: Path | None = None
    fallback: str | None = None


@dataclass(frozen=True)
class DynamicPage:
    """A page produced by evaluating ``template``; ``content`` is set once rendered."""

    path: str
    template: str = ENTRY_TEMPLATE
    title: str = ""
    description: str = ""
    page_num: int = 0
    content: str | None = None


@dataclass(frozen=True)
class Feed:
    path: str
    type: FeedType
    content: str | None = None


Page = StaticPage | DynamicPage | Feed


def page_path(page: Page) -> str:
    match page:
        case StaticPage():
            return page.destination
        case DynamicPage() | Feed():
            return page.path
        case _:
            assert_never(page)


def output_path(dist: Path, path: str) -> Path:
    """Map a site path to its file under ``dist``; ``/`` becomes ``index.html``."""
    relative = "index.html" if path == ENTRY_PAGE else path.lstrip("/")
    parts = PurePosixPath(relative).parts
    if not relative or ".." in parts:
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Page path does not name a file inside the output directory: {path!r}",
        )
    return dist.joinpath(*parts)


class Site:
    """Registry of every page of the site, keyed by destination path.

    The first registration of a path wins; later ones are ignored.
    """

    def __init__(self, dist: Path) -> None:
        self.dist = dist
        self._pages: dict[str, Page] = {}
        self._lock = threading.Lock()

    def add_page(self, page: Page) -> bool:
        """Register ``page``; return False if its path was already taken."""
        path = page_path(page)
        with self._lock:
            if path in self._pages:
                return False
            self._pages[path] = page
        log.debug("page_added", path=path, kind=type(page).__name__)
        return True

    def get_page(self, path: str) -> Page | None:
        with self._lock:
            return self._pages.get(path)

    def pages(self) -> list[Page]:
        """Snapshot of all registered pages."""
        with self._lock:
            return list(self._pages.values())

    def __len__(self) -> int:
        with self._lock:
            return len(self._pages)

    def set_page_content(self, path: str, content: str) -> None:
        """Store the rendered output of a dynamic page or feed. Allowed once per page."""
        with self._lock:
            page = self._pages.get(path)
            match page:
                case None:
                    raise SiteError(
                        code=ErrorCode.MISUSE,
                        message=f"Cannot set content of unknown page: {path}",
                    )
                case StaticPage():
                    raise SiteError(
                        code=ErrorCode.MISUSE,
                        message=f"Cannot set content of static page: {path}",
                    )
                case DynamicPage() | Feed():
                    if page.content is not None:
                        raise SiteError(
                            code=ErrorCode.MISUSE,
                            message=f"Page content already set: {path}",
                        )
                    self._pages[path] = dataclasses.replace(page, content=content)
                case _:
                    assert_never(page)

    def next_unrendered_dynamic_page(self) -> DynamicPage | None:
        with self._lock:
            for page in self._pages.values():
                if isinstance(page, DynamicPage) and page.content is None:
                    return page
        return None

    def next_unrendered_feed(self) -> Feed | None:
        with self._lock:
            for page in self._pages.values():
                if isinstance(page, Feed) and page.content is None:
                    return page
        return None

    async def save(self) -> None:
        """Replace the output directory with every registered page.

        The directory is cleared first, so a failed save can leave a partial
        tree behind; the next successful build replaces it.
        """
        await asyncio.to_thread(self._reset_dist)
        pages = self.pages()
        log.info("site_saving", dist=str(self.dist), pages=len(pages))
        await try_for_each(pages, self._flush, limit=SAVE_CONCURRENCY)
        log.info("site_saved", dist=str(self.dist), pages=len(pages))

    def _reset_dist(self) -> None:
        try:
            self.dist.mkdir(parents=True, exist_ok=True)
            shutil.rmtree(self.dist)
        except OSError as exc:
            raise SiteError(
                code=ErrorCode.IO_FAILED,
                message=f"Failed to clear output directory: {self.dist}",
            ) from exc

    async def _flush(self, page: Page) -> None:
        target = output_path(self.dist, page_path(page))
        match page:
            case StaticPage(source=Path() as source):
                await asyncio.to_thread(_copy_file, source, target)
            case StaticPage(fallback=str() as fallback):
                await asyncio.to_thread(write_file, target, fallback)
            case StaticPage():
                raise SiteError(
                    code=ErrorCode.MISUSE,
                    message=f"Static page has neither a source nor a fallback: {page.destination}",
                )
            case DynamicPage(content=str() as content) | Feed(content=str() as content):
                await asyncio.to_thread(write_file, target, content)
            case DynamicPage() | Feed():
                raise SiteError(
                    code=ErrorCode.MISUSE,
                    message=f"Page was never rendered: {page.path}",
                )
            case _:
                assert_never(page)


def _copy_file(source: Path, target: Path) -> None:
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
    except OSError as exc:
        raise SiteError(
            code=ErrorCode.IO_FAILED,
            message=f"Failed to copy {source} to {target}",
        ) from exc


def init_site(state: BuildState) -> None:
    """Register the static assets, the entry page and the robots.txt fallback."""
    config = state.config
    static_root = state.root / config.static_source_path

    static_files = files_by_ext(static_root, config.static_files_extensions)
    for source in static_files:
        destination = "/" + source.relative_to(static_root).as_posix()
        state.site.add_page(StaticPage(destination=destination, source=source))
    log.info("static_files_registered", directory=str(static_root), count=len(static_files))

    state.site.add_page(DynamicPage(path=ENTRY_PAGE, template=ENTRY_TEMPLATE))
    # A robots.txt shipped in the static directory was registered above and wins
    state.site.add_page(StaticPage(destination=ROBOTS_PATH, fallback=ROBOTS_FALLBACK))
