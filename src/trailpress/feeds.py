"""Syndication feeds: JSON Feed 1.1 and Atom 1.0."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING
from xml.etree.ElementTree import Element, SubElement, indent, tostring

from trailpress.models.feed import JsonFeed, JsonFeedItem

if TYPE_CHECKING:
    from collections.abc import Sequence

    from trailpress.models.content import Document

ATOM_NS = "http://www.w3.org/2005/Atom"
EMPTY_FEED_UPDATED = datetime(1970, 1, 1, tzinfo=UTC)


def absolute_url(domain: str, path: str) -> str:
    if path.startswith(("http://", "https://")):
        return path
    return f"{domain}/{path.lstrip('/')}"


@dataclass(frozen=True)
class FeedItem:
    id: str
    url: str
    title: str
    content_text: str
    image: str | None
    date: datetime
    tags: tuple[str, ...]

    @classmethod
    def from_document(cls, document: Document, domain: str) -> FeedItem:
        metadata = document.metadata
        return cls(
            id=document.pid,
            url=f"{domain}{document.pid}.html",
            title=metadata.title,
            content_text=metadata.preview or "",
            image=absolute_url(domain, metadata.image) if metadata.image else None,
            date=metadata.date,
            tags=metadata.tags,
        )

    @property
    def date_published(self) -> str:
        return self.date.isoformat()


def sort_items(items: Sequence[FeedItem]) -> list[FeedItem]:
    """Newest first; items published at the same instant keep id order."""
    return sorted(items, key=lambda item: (-item.date.timestamp(), item.id))


@dataclass(frozen=True)
class FeedInfo:
    """Site-level fields shared by both feed formats."""

    title: str
    description: str
    home_page_url: str
    feed_url: str
    language: str
    icon: str | None = None
    favicon: str | None = None


def render_json_feed(info: FeedInfo, items: Sequence[FeedItem]) -> str:
    feed = JsonFeed(
        title=info.title,
        home_page_url=info.home_page_url,
        feed_url=info.feed_url,
        description=info.description or None,
        icon=info.icon,
        favicon=info.favicon,
        language=info.language,
        items=[
            JsonFeedItem(
                id=item.id,
                url=item.url,
                title=item.title,
                content_text=item.content_text,
                image=item.image,
                date_published=item.date_published,
                tags=list(item.tags),
            )
            for item in sort_items(items)
        ],
    )
    return feed.model_dump_json(exclude_none=True)


def render_atom_feed(info: FeedInfo, items: Sequence[FeedItem]) -> str:
    items = sort_items(items)
    # An empty feed still needs <updated>
    updated = items[0].date if items else EMPTY_FEED_UPDATED

    root = Element("feed", attrib={"xmlns": ATOM_NS, "xml:lang": info.language})
    SubElement(root, "id").text = info.home_page_url + "/"
    SubElement(root, "title").text = info.title
    if info.description:
        SubElement(root, "subtitle").text = info.description
    SubElement(root, "updated").text = updated.isoformat()
    author = SubElement(root, "author")
    SubElement(author, "name").text = info.title
    SubElement(root, "link", attrib={"href": info.home_page_url + "/"})
    SubElement(root, "link", attrib={"rel": "self", "href": info.feed_url})
    if info.favicon:
        SubElement(root, "icon").text = info.favicon
    if info.icon:
        SubElement(root, "logo").text = info.icon

    for item in items:
        entry = SubElement(root, "entry")
        SubElement(entry, "id").text = item.url
        SubElement(entry, "title").text = item.title
        SubElement(entry, "link", attrib={"href": item.url})
        SubElement(entry, "updated").text = item.date_published
        SubElement(entry, "published").text = item.date_published
        for tag in item.tags:
            SubElement(entry, "category", attrib={"term": tag})
        if item.image:
            SubElement(entry, "link", attrib={"rel": "enclosure", "href": item.image})
        if item.content_text:
            SubElement(entry, "summary").text = item.content_text

    indent(root)
    return "<?xml version='1.0' encoding='UTF-8'?>\n" + tostring(root, encoding="unicode") + "\n"
