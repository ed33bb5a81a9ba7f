from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from pydantic import AwareDatetime, BaseModel, ConfigDict, field_validator


class Metadata(BaseModel):
    """YAML header of a source document."""

    model_config = ConfigDict(frozen=True)

    title: str
    date: AwareDatetime
    image: str | None = None
    preview: str | None = None
    tags: tuple[str, ...] = ()
    is_draft: bool = False

    @field_validator("tags", mode="before")
    @classmethod
    def validate_tags(cls, v: object) -> object:
        # An empty ``tags:`` key in YAML arrives as None
        return () if v is None else v


@dataclass(frozen=True)
class Document:
    """One parsed source document.

    ``pid`` is the path relative to the content root without extension and
    with a leading slash, e.g. ``/rides/alps``.
    """

    pid: str
    metadata: Metadata
    body: str

    @property
    def date(self) -> datetime:
        return self.metadata.date

    def sort_key(self) -> tuple[float, str]:
        # Newest first, then by pid
        return (-self.metadata.date.timestamp(), self.pid)


@dataclass(frozen=True)
class SliceNumber:
    number: int
    is_current: bool
    display: int


@dataclass(frozen=True)
class PageSlice:
    """One page of a tag listing, with the numbers needed to paginate."""

    pages: list[Document]
    current_slice: int
    total_slices: int
    slice_size: int
    numbers: list[SliceNumber] = field(default_factory=list)
