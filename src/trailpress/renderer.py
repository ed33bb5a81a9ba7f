"""Render every dynamic page, then every feed.

Rendering a page may register more pages, so dynamic pages are rendered
until none is left unrendered. Feeds come last: they list every document
page the loop produced, newest first.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, assert_never

import structlog

from trailpress.content import Documents
from trailpress.feeds import (
    FeedInfo,
    FeedItem,
    absolute_url,
    render_atom_feed,
    render_json_feed,
    sort_items,
)
from trailpress.site import Feed, FeedType
from trailpress.templating import render_page

if TYPE_CHECKING:
    import jinja2

    from trailpress.state import BuildState

log = structlog.get_logger()

ICON_PATH = "/icon.png"
FAVICON_PATH = "/favicon.ico"


def feed_info(state: BuildState, feed: Feed) -> FeedInfo:
    config = state.config
    site = state.site
    return FeedInfo(
        title=config.title,
        description=config.description,
        home_page_url=config.domain,
        feed_url=absolute_url(config.domain, feed.path),
        language=config.language,
        icon=absolute_url(config.domain, ICON_PATH) if site.get_page(ICON_PATH) else None,
        favicon=absolute_url(config.domain, FAVICON_PATH) if site.get_page(FAVICON_PATH) else None,
    )


async def render_site(state: BuildState, env: jinja2.Environment) -> None:
    site = state.site
    documents = state.documents if state.documents is not None else Documents([])
    log.info("render_started")

    items: list[FeedItem] = []
    rendered = 0
    while (page := site.next_unrendered_dynamic_page()) is not None:
        log.debug("page_rendering", path=page.path, template=page.template)
        content = await render_page(env, state, page)
        site.set_page_content(page.path, content)
        rendered += 1

        document = documents.get(page.path.removesuffix(".html"))
        if document is not None:
            items.append(FeedItem.from_document(document, state.config.domain))

    items = sort_items(items)

    feeds = 0
    while (feed := site.next_unrendered_feed()) is not None:
        info = feed_info(state, feed)
        match feed.type:
            case FeedType.JSON:
                content = render_json_feed(info, items)
            case FeedType.ATOM:
                content = render_atom_feed(info, items)
            case _:
                assert_never(feed.type)
        site.set_page_content(feed.path, content)
        feeds += 1

    log.info("render_complete", pages=rendered, feeds=feeds, feed_items=len(items))
