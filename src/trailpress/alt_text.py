"""Alt text for images that were published without one.

Markdown images with an empty description (``![](src)``) are sent to an
image captioning service and the answer is written back into the document
body. Descriptions are cached per image source with no expiry: captioning
is slow, and an image at a given source rarely changes.
"""

from __future__ import annotations

import base64
import dataclasses
import hashlib
import re
from typing import TYPE_CHECKING

import httpx
import structlog

from trailpress.cache import Cache
from trailpress.errors import ErrorCode, SiteError
from trailpress.runner import try_map

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from pathlib import Path

    from trailpress.config import AltTextSettings
    from trailpress.models.content import Document
    from trailpress.protocols import Describer

log = structlog.get_logger()

ALT_CACHE_KIND = "image_alt"
ALT_CACHE_VERSION = 1
DESCRIBE_CONCURRENCY = 4

_EMPTY_ALT_IMAGE = re.compile(r"!\[\]\((?P<src>[^)\s]+)\)")


class HttpDescriber:
    """Post images to a captioning endpoint that answers ``{"text": ...}``."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        endpoint: str,
        prompt: str,
        temperature: float,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._prompt = prompt
        self._temperature = temperature

    @classmethod
    def from_settings(cls, client: httpx.AsyncClient, settings: AltTextSettings) -> HttpDescriber:
        return cls(client, settings.endpoint, settings.prompt, settings.temperature)

    async def describe(self, image: bytes) -> str:
        payload = {
            "prompt": self._prompt,
            "temperature": self._temperature,
            "image": base64.b64encode(image).decode("ascii"),
        }
        try:
            response = await self._client.post(self._endpoint, json=payload)
        except httpx.HTTPError as exc:
            raise SiteError(
                code=ErrorCode.UPSTREAM_FAILED,
                message=f"Network error calling captioning service: {exc}",
                recoverable=True,
            ) from exc

        if not response.is_success:
            raise SiteError(
                code=ErrorCode.UPSTREAM_FAILED,
                message=f"Captioning service returned HTTP {response.status_code}",
                suggestion="Check processors.generate_alt_text.endpoint in config.yaml.",
                recoverable=response.status_code >= 500,
            )

        try:
            text = response.json()["text"]
        except (ValueError, KeyError, TypeError) as exc:
            raise SiteError(
                code=ErrorCode.DECODE_FAILED,
                message="Captioning service response has no 'text' field",
            ) from exc
        return str(text).strip()


def build_alt_cache(root: Path) -> Cache[str]:
    return Cache(root, ALT_CACHE_KIND, str, ALT_CACHE_VERSION)


def make_image_loader(
    client: httpx.AsyncClient, search_roots: list[Path]
) -> Callable[[str], Awaitable[bytes]]:
    """Loader for image sources: URLs are downloaded, paths looked up locally.

    A local source such as ``/images/a.jpg`` is tried below each of
    ``search_roots`` in turn.
    """

    async def load(src: str) -> bytes:
        if src.startswith(("http://", "https://")):
            try:
                response = await client.get(src)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise SiteError(
                    code=ErrorCode.UPSTREAM_FAILED,
                    message=f"Failed to download image: {src}",
                ) from exc
            return response.content

        relative = src.lstrip("/")
        for base in search_roots:
            candidate = base / relative
            if candidate.is_file():
                try:
                    return candidate.read_bytes()
                except OSError as exc:
                    raise SiteError(
                        code=ErrorCode.IO_FAILED,
                        message=f"Failed to read image: {candidate}",
                    ) from exc

        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Image file does not exist: {src}",
            suggestion="Image paths are resolved against the static directory, then the project root.",
        )

    return load


class AltTextProcessor:
    """Fill in missing alt text in document bodies."""

    def __init__(
        self,
        describer: Describer,
        cache: Cache[str],
        load_image: Callable[[str], Awaitable[bytes]],
    ) -> None:
        self._describer = describer
        self._cache = cache
        self._load_image = load_image

    async def describe(self, src: str) -> str:
        key = hashlib.sha256(src.encode("utf-8")).hexdigest()
        cached = await self._cache.get(key)
        if cached is not None:
            return cached

        log.info("alt_text_generating", src=src)
        image = await self._load_image(src)
        text = await self._describer.describe(image)
        await self._cache.set(key, text)
        return text

    async def process(self, document: Document) -> Document:
        sources = list(dict.fromkeys(m.group("src") for m in _EMPTY_ALT_IMAGE.finditer(document.body)))
        if not sources:
            return document

        described = await try_map(
            sources,
            self._describe_pair,
            limit=DESCRIBE_CONCURRENCY,
        )
        alts = dict(described)

        def substitute(match: re.Match[str]) -> str:
            alt = _escape_alt(alts[match.group("src")])
            return f"![{alt}]({match.group('src')})"

        body = _EMPTY_ALT_IMAGE.sub(substitute, document.body)
        log.debug("alt_text_applied", pid=document.pid, images=len(sources))
        return dataclasses.replace(document, body=body)

    async def _describe_pair(self, src: str) -> tuple[str, str]:
        return src, await self.describe(src)


def _escape_alt(text: str) -> str:
    return " ".join(text.split()).replace("[", "\\[").replace("]", "\\]")
