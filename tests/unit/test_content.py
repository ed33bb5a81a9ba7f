"""Unit tests for trailpress.content."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from trailpress.content import Documents, document_pid, load_documents, parse_document
from trailpress.errors import ErrorCode, SiteError
from trailpress.models.content import Document, Metadata

if TYPE_CHECKING:
    from pathlib import Path

    from trailpress.state import BuildState

BASE_DATE = datetime(2024, 1, 1, tzinfo=UTC)


def _doc(pid: str, days: int = 0, tags: tuple[str, ...] = ()) -> Document:
    return Document(
        pid=pid,
        metadata=Metadata(title=pid.strip("/"), date=BASE_DATE + timedelta(days=days), tags=tags),
        body="",
    )


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParseDocument:
    def test_metadata_and_body(self) -> None:
        doc = parse_document(
            "/a",
            "---\ntitle: A\ndate: 2024-03-01T10:00:00+01:00\ntags: [x, y]\n---\nHello *there*\n",
        )
        assert doc.pid == "/a"
        assert doc.metadata.title == "A"
        assert doc.metadata.date.utcoffset() == timedelta(hours=1)
        assert doc.metadata.tags == ("x", "y")
        assert doc.metadata.is_draft is False
        assert doc.body == "Hello *there*"

    def test_empty_tags_key(self) -> None:
        doc = parse_document("/a", "---\ntitle: A\ndate: 2024-03-01T10:00:00Z\ntags:\n---\nbody")
        assert doc.metadata.tags == ()

    def test_missing_title_is_invalid(self) -> None:
        with pytest.raises(SiteError) as exc_info:
            parse_document("/a", "---\ndate: 2024-03-01T10:00:00Z\n---\nbody")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_naive_date_is_invalid(self) -> None:
        with pytest.raises(SiteError) as exc_info:
            parse_document("/a", "---\ntitle: A\ndate: 2024-03-01 10:00:00\n---\nbody")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_broken_yaml(self) -> None:
        with pytest.raises(SiteError) as exc_info:
            parse_document("/a", "---\ntitle: [unclosed\n---\nbody")
        assert exc_info.value.code == ErrorCode.DECODE_FAILED


class TestDocumentPid:
    def test_nested_path(self, tmp_path: Path) -> None:
        assert document_pid(tmp_path / "rides" / "alps.md", tmp_path) == "/rides/alps"


# ---------------------------------------------------------------------------
# Documents collection
# ---------------------------------------------------------------------------


class TestDocuments:
    def test_newest_first_then_pid(self) -> None:
        docs = Documents([_doc("/old", 0), _doc("/b", 5), _doc("/a", 5)])
        assert docs.pids() == ["/a", "/b", "/old"]

    def test_get_and_tags(self) -> None:
        docs = Documents([_doc("/a", tags=("x",)), _doc("/b", tags=("x", "y"))])
        assert docs.get("/a") is not None
        assert docs.get("/missing") is None
        assert docs.tags() == {"x", "y"}
        assert "/b" in docs
        assert len(docs) == 2


class TestByTag:
    @pytest.fixture()
    def docs(self) -> Documents:
        return Documents([_doc(f"/p{i}", days=i, tags=("t",)) for i in range(5)])

    def test_first_slice(self, docs: Documents) -> None:
        page_slice = docs.by_tag("t", limit=2, offset=0)
        assert [d.pid for d in page_slice.pages] == ["/p4", "/p3"]
        assert page_slice.current_slice == 0
        assert page_slice.total_slices == 3
        assert page_slice.slice_size == 2
        assert [(n.number, n.display, n.is_current) for n in page_slice.numbers] == [
            (0, 1, True),
            (1, 2, False),
            (2, 3, False),
        ]

    def test_last_partial_slice(self, docs: Documents) -> None:
        page_slice = docs.by_tag("t", limit=2, offset=4)
        assert [d.pid for d in page_slice.pages] == ["/p0"]
        assert page_slice.current_slice == 2

    def test_unknown_tag_is_empty(self, docs: Documents) -> None:
        page_slice = docs.by_tag("nope", limit=2)
        assert page_slice.pages == []
        assert page_slice.total_slices == 0
        assert page_slice.numbers == []

    def test_zero_limit_is_misuse(self, docs: Documents) -> None:
        with pytest.raises(SiteError) as exc_info:
            docs.by_tag("t", limit=0)
        assert exc_info.value.code == ErrorCode.MISUSE


class TestSimilar:
    def test_ranked_by_shared_tags(self) -> None:
        docs = Documents(
            [
                _doc("/1", 1, ("t1", "t2", "t3", "t4")),
                _doc("/2", 2, ("t1", "t7")),
                _doc("/3", 3, ("t2", "t3", "t4")),
                _doc("/4", 4, ("t5",)),
                _doc("/5", 5, ("t1", "t2", "t3", "t4")),
            ]
        )
        assert docs.similar("/1", limit=3) == ["/5", "/3", "/2"]
        assert docs.similar("/1", limit=1) == ["/5"]

    def test_no_shared_tags(self) -> None:
        docs = Documents([_doc("/a", tags=("x",)), _doc("/b", tags=("y",))])
        assert docs.similar("/a") == []

    def test_unknown_pid(self) -> None:
        assert Documents([]).similar("/nope") == []


# ---------------------------------------------------------------------------
# load_documents
# ---------------------------------------------------------------------------


class TestLoadDocuments:
    async def test_loads_project_documents(self, state: BuildState) -> None:
        documents = await load_documents(state)

        assert state.documents is documents
        assert documents.pids() == ["/rides/alps", "/coast"]
        alps = documents.get("/rides/alps")
        assert alps is not None
        assert alps.metadata.title == "Crossing the Alps"
        assert alps.metadata.image == "/images/alps.jpg"
        assert documents.tags() == {"bike", "alps"}

    async def test_bad_document_fails_build(self, state: BuildState) -> None:
        (state.root / "content" / "broken.md").write_text("no header at all")
        with pytest.raises(SiteError) as exc_info:
            await load_documents(state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    async def test_missing_content_dir(self, state: BuildState, tmp_path: Path) -> None:
        state.root = tmp_path / "elsewhere"
        with pytest.raises(SiteError) as exc_info:
            await load_documents(state)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
