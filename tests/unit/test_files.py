"""Unit tests for trailpress.files."""

from __future__ import annotations

import base64
import zlib
from typing import TYPE_CHECKING

from trailpress.files import crc32_checksum, crc32_digest, files_by_ext, write_file

if TYPE_CHECKING:
    from pathlib import Path


class TestCrc32:
    def test_known_value(self) -> None:
        # crc32(b"hello") == 0x3610A686
        assert crc32_digest(b"hello") == base64.urlsafe_b64encode(bytes.fromhex("3610a686")).decode().rstrip("=")
        assert crc32_digest(b"hello") == "NhCmhg"

    def test_no_padding(self) -> None:
        assert "=" not in crc32_digest(b"anything at all")
        assert len(crc32_digest(b"")) == 6

    def test_file_checksum_matches_digest(self, tmp_path: Path) -> None:
        data = bytes(range(256)) * 1000
        path = tmp_path / "blob.bin"
        path.write_bytes(data)
        assert crc32_checksum(path) == crc32_digest(data)
        assert zlib.crc32(data).to_bytes(4, "big") == base64.urlsafe_b64decode(crc32_checksum(path) + "==")


class TestFilesByExt:
    def test_recursive_and_filtered(self, tmp_path: Path) -> None:
        (tmp_path / "css").mkdir()
        (tmp_path / "css" / "site.css").write_text("")
        (tmp_path / "logo.PNG").write_bytes(b"")
        (tmp_path / "notes.md").write_text("")

        found = files_by_ext(tmp_path, ["css", ".png"])
        assert [p.relative_to(tmp_path).as_posix() for p in found] == ["css/site.css", "logo.PNG"]

    def test_missing_directory_is_empty(self, tmp_path: Path) -> None:
        assert files_by_ext(tmp_path / "nope", ["css"]) == []


class TestWriteFile:
    def test_creates_parents_and_truncates(self, tmp_path: Path) -> None:
        path = tmp_path / "a" / "b" / "c.txt"
        write_file(path, "long content here")
        write_file(path, "short")
        assert path.read_text() == "short"

    def test_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / "x.bin"
        write_file(path, b"\x00\x01")
        assert path.read_bytes() == b"\x00\x01"
