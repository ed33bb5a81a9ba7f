"""Syntax highlighting for code samples embedded by templates."""

from __future__ import annotations

from markupsafe import Markup
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from trailpress.errors import ErrorCode, SiteError

# Short names authors commonly use, mapped to the lexer that renders them
LANGUAGE_ALIASES = {
    "js": "javascript",
    "ts": "typescript",
    "jsx": "typescript",
    "rs": "rust",
    "sh": "bash",
}

_formatter = HtmlFormatter(cssclass="highlight")


def highlight_code(code: str, language: str) -> Markup:
    """Render ``code`` as HTML with Pygments token classes."""
    name = language.strip().lower()
    name = LANGUAGE_ALIASES.get(name, name)
    try:
        lexer = get_lexer_by_name(name)
    except ClassNotFound as exc:
        raise SiteError(
            code=ErrorCode.INVALID_INPUT,
            message=f"Language {language!r} is not supported",
            suggestion=f"Use a Pygments lexer name or one of: {', '.join(sorted(LANGUAGE_ALIASES))}.",
        ) from exc
    return Markup(highlight(code, lexer, _formatter))
