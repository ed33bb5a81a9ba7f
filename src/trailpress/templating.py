"""Jinja2 environment with the functions templates use to shape the site.

Templates are evaluated in Jinja's async mode so that functions doing I/O
(route maps, checksums) are plain coroutines awaited by the template. Some
functions register pages as a side effect; the renderer keeps rendering
until no unrendered page is left.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

import jinja2
import mistune
import structlog
from markupsafe import Markup

from trailpress.content import Documents
from trailpress.embed import DEFAULT_HEIGHT, DEFAULT_WIDTH, embed_route
from trailpress.errors import ErrorCode, SiteError
from trailpress.files import crc32_checksum, crc32_digest
from trailpress.gpx import TrackStats, read_track, track_stats
from trailpress.highlight import highlight_code
from trailpress.models.content import Document, PageSlice
from trailpress.site import DynamicPage, Feed, FeedType, StaticPage

if TYPE_CHECKING:
    from trailpress.state import BuildState

log = structlog.get_logger()

_markdown = mistune.create_markdown(plugins=["strikethrough", "table", "url", "footnotes"])


def crc32_filter(value: str) -> str:
    return crc32_digest(str(value).encode("utf-8"))


def markdown_filter(value: str) -> Markup:
    return Markup(_markdown(str(value)))


class TemplateFunctions:
    """Callables exposed to templates as globals, bound to one build."""

    def __init__(self, state: BuildState, documents: Documents) -> None:
        self._state = state
        self._documents = documents

    def add_page(
        self,
        path: str = "/",
        template: str = "index.html",
        title: str = "",
        description: str = "",
        page_num: int = 0,
    ) -> str:
        self._state.site.add_page(
            DynamicPage(
                path=path,
                template=template,
                title=title,
                description=description,
                page_num=int(page_num),
            )
        )
        return ""

    def add_feed(self, path: str, type: str) -> str:
        try:
            feed_type = FeedType(type)
        except ValueError as exc:
            raise SiteError(
                code=ErrorCode.INVALID_INPUT,
                message=f"Unknown feed type {type!r} for {path}",
                suggestion=f"Use one of: {', '.join(t.value for t in FeedType)}.",
            ) from exc
        self._state.site.add_page(Feed(path=path, type=feed_type))
        return path

    async def get_static_file(self, path: str) -> str:
        """Cache-busted URL of a registered static file."""
        page = self._state.site.get_page(path)
        match page:
            case StaticPage(source=source) if source is not None:
                checksum = await asyncio.to_thread(crc32_checksum, source)
                return f"{path}?cb={checksum}"
            case None:
                raise SiteError(
                    code=ErrorCode.MISUSE,
                    message=f"{path} not found",
                    suggestion="Static files must live in the static directory with a whitelisted extension.",
                )
            case _:
                raise SiteError(
                    code=ErrorCode.MISUSE,
                    message=f"{path} is not a path to a static file",
                )

    def get_pages_by_tag(self, tag: str = "", limit: int = 3, offset: int = 0) -> PageSlice:
        return self._documents.by_tag(tag, int(limit), int(offset))

    def get_page_by_path(self, path: str) -> Document | None:
        return self._documents.get(path.removesuffix(".html"))

    def get_page_by_pid(self, pid: str) -> Document | None:
        return self._documents.get(pid)

    def get_similar(self, pid: str, limit: int = 3) -> list[str]:
        return self._documents.similar(pid, int(limit))

    def get_image_url(self, src: str) -> str:
        """Publish a local image and return its URL; remote URLs pass through."""
        src = src.strip()
        if src.startswith("/"):
            self._state.site.add_page(
                StaticPage(destination=src, source=self._state.root / src.lstrip("/"))
            )
        return src

    async def render_gpx(
        self,
        input: str,
        width: int = DEFAULT_WIDTH,
        height: int = DEFAULT_HEIGHT,
    ) -> str:
        return await embed_route(self._state, input, int(width), int(height))

    async def track_stats(self, input: str) -> TrackStats:
        points = await asyncio.to_thread(read_track, self._state.root / input.strip().lstrip("/"))
        return track_stats(points)

    def as_globals(self) -> dict[str, Any]:
        return {
            "add_page": self.add_page,
            "add_feed": self.add_feed,
            "get_static_file": self.get_static_file,
            "get_pages_by_tag": self.get_pages_by_tag,
            "get_page_by_path": self.get_page_by_path,
            "get_page_by_pid": self.get_page_by_pid,
            "get_similar": self.get_similar,
            "get_image_url": self.get_image_url,
            "render_gpx": self.render_gpx,
            "track_stats": self.track_stats,
            "code": highlight_code,
        }


def create_environment(state: BuildState) -> jinja2.Environment:
    template_dir = state.root / state.config.template
    if not template_dir.is_dir():
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Template directory not found: {template_dir}",
            suggestion="Set template in config.yaml.",
        )

    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(template_dir),
        autoescape=jinja2.select_autoescape(["html", "xml"]),
        enable_async=True,
        keep_trailing_newline=True,
    )
    documents = state.documents if state.documents is not None else Documents([])
    env.globals.update(TemplateFunctions(state, documents).as_globals())
    env.filters["crc32"] = crc32_filter
    env.filters["markdown"] = markdown_filter
    log.info("templates_initialized", directory=str(template_dir))
    return env


async def render_page(env: jinja2.Environment, state: BuildState, page: DynamicPage) -> str:
    """Evaluate the page's template; every failure is reported against the page."""
    context = {
        "config": state.config,
        "template_config": state.config.template_config,
        "title": page.title,
        "description": page.description,
        "path": page.path,
        "page_num": page.page_num,
    }
    try:
        template = env.get_template(page.template)
        return await template.render_async(context)
    except (jinja2.TemplateError, SiteError, TypeError, ValueError) as exc:
        raise SiteError(
            code=ErrorCode.TEMPLATE_FAILED,
            message=f"Failed to render {page.path} with template {page.template}",
        ) from exc
