"""Unit tests for trailpress.highlight."""

from __future__ import annotations

import pytest
from markupsafe import Markup

from trailpress.errors import ErrorCode, SiteError
from trailpress.highlight import highlight_code


class TestHighlightCode:
    def test_returns_highlighted_markup(self) -> None:
        html = highlight_code("fn main() {}\n", "rust")
        assert isinstance(html, Markup)
        assert html.startswith('<div class="highlight">')
        assert "<span" in html
        assert "main" in html

    @pytest.mark.parametrize("alias", ["js", "ts", "jsx", "rs", "sh", "bash", "JS"])
    def test_aliases(self, alias: str) -> None:
        assert '<div class="highlight">' in highlight_code("x", alias)

    def test_code_is_escaped(self) -> None:
        html = highlight_code("if a < b: pass\n", "python")
        assert "&lt;" in html
        assert "a < b" not in html

    def test_unknown_language(self) -> None:
        with pytest.raises(SiteError) as exc_info:
            highlight_code("x", "no-such-language")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert "no-such-language" in exc_info.value.message
