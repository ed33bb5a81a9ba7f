"""Unit tests for trailpress.errors."""

from __future__ import annotations

from trailpress.errors import RETRY_HINT, ErrorCode, SiteError, error_chain, format_error_chain


def _chained() -> SiteError:
    try:
        try:
            raise SiteError(
                code=ErrorCode.UPSTREAM_FAILED,
                message="Tile server returned HTTP 503",
                recoverable=True,
            )
        except SiteError as exc:
            raise SiteError(
                code=ErrorCode.TEMPLATE_FAILED,
                message="Failed to render /",
                suggestion="Check the template.",
            ) from exc
    except SiteError as outer:
        return outer


class TestErrorChain:
    def test_newest_frame_first(self) -> None:
        codes = [frame.code for frame in error_chain(_chained())]
        assert codes == [ErrorCode.TEMPLATE_FAILED, ErrorCode.UPSTREAM_FAILED]

    def test_plain_exception_cause(self) -> None:
        try:
            try:
                raise OSError("disk full")
            except OSError as exc:
                raise SiteError(code=ErrorCode.IO_FAILED, message="write failed") from exc
        except SiteError as error:
            lines = format_error_chain(error)
        assert lines == ["error: [IO_FAILED] write failed", "caused by: OSError: disk full"]


class TestFormatErrorChain:
    def test_hint_and_retry_lines(self) -> None:
        assert format_error_chain(_chained()) == [
            "error: [TEMPLATE_FAILED] Failed to render /",
            "  hint: Check the template.",
            "caused by: [UPSTREAM_FAILED] Tile server returned HTTP 503",
            f"  retry: {RETRY_HINT}",
        ]

    def test_no_retry_line_for_permanent_failure(self) -> None:
        lines = format_error_chain(SiteError(code=ErrorCode.MISUSE, message="bad call"))
        assert lines == ["error: [MISUSE] bad call"]
