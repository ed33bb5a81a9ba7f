from __future__ import annotations

from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ErrorCode(StrEnum):
    IO_FAILED = "IO_FAILED"
    DECODE_FAILED = "DECODE_FAILED"
    CACHE_CORRUPTED = "CACHE_CORRUPTED"
    INVALID_INPUT = "INVALID_INPUT"
    MISUSE = "MISUSE"
    UPSTREAM_FAILED = "UPSTREAM_FAILED"
    WORKER_CRASHED = "WORKER_CRASHED"
    TEMPLATE_FAILED = "TEMPLATE_FAILED"
    CONFIG_INVALID = "CONFIG_INVALID"


RETRY_HINT = "this failure may be temporary; running the command again can succeed."


class SiteError(Exception):
    """Raised for every expected failure during a build.

    Call sites that can add context raise a new SiteError ``from`` the
    original one, so the full chain survives up to the CLI, which prints it
    newest frame first and exits non-zero. Never catch this inside a build
    step just to log it: a half-built site is worse than a failed build.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable


def error_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield ``exc`` and every exception behind it, newest frame first."""
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or (
            None if current.__suppress_context__ else current.__context__
        )


def format_error_chain(exc: BaseException) -> list[str]:
    """Render an exception chain as human-readable lines for stderr."""
    lines: list[str] = []
    for index, frame in enumerate(error_chain(exc)):
        prefix = "error" if index == 0 else "caused by"
        if isinstance(frame, SiteError):
            lines.append(f"{prefix}: [{frame.code}] {frame.message}")
            if frame.suggestion:
                lines.append(f"  hint: {frame.suggestion}")
            if frame.recoverable:
                lines.append(f"  retry: {RETRY_HINT}")
        else:
            lines.append(f"{prefix}: {type(frame).__name__}: {frame}")
    return lines
