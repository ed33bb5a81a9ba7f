from __future__ import annotations

from pydantic import BaseModel


class JsonFeedItem(BaseModel):
    """Item of a JSON Feed 1.1 document (https://www.jsonfeed.org/version/1.1/)."""

    id: str
    url: str
    title: str
    content_text: str
    image: str | None = None
    date_published: str
    tags: list[str] = []


class JsonFeed(BaseModel):
    version: str = "https://jsonfeed.org/version/1.1"
    title: str
    home_page_url: str
    feed_url: str
    description: str | None = None
    icon: str | None = None
    favicon: str | None = None
    language: str | None = None
    items: list[JsonFeedItem] = []
