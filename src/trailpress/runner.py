"""Bounded concurrent execution of async work.

Two scheduling strategies share one failure policy:

* ``try_map`` / ``try_for_each`` run the input in chunks of ``limit`` and wait
  for a whole chunk before starting the next one.
* ``as_completed_bounded`` keeps exactly ``limit`` operations in flight and
  starts the next item as soon as any running one finishes.

The first error stops new work from being scheduled. Operations that are
already running are awaited to completion (never cancelled: arbitrary
external I/O cannot be assumed safe to interrupt) and whatever they produce
is discarded. A ``SiteError`` raised by the mapping function propagates
unchanged; any other exception is a worker crash and is reported as
``ErrorCode.WORKER_CRASHED``.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import TYPE_CHECKING, TypeVar

import structlog

from trailpress.errors import ErrorCode, SiteError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable, Iterable

log = structlog.get_logger()

T = TypeVar("T")
R = TypeVar("R")

DEFAULT_LIMIT = 50


async def _run_one(fn: Callable[[T], Awaitable[R]], item: T) -> R:
    try:
        return await fn(item)
    except SiteError:
        raise
    except Exception as exc:
        raise SiteError(
            code=ErrorCode.WORKER_CRASHED,
            message=f"Worker crashed: {type(exc).__name__}: {exc}",
            suggestion="This is a bug in a build step rather than a problem with the input.",
        ) from exc


async def _drain(tasks: Iterable[asyncio.Task]) -> None:
    """Wait for in-flight tasks to finish and discard their outcomes."""
    tasks = list(tasks)
    if not tasks:
        return
    log.debug("runner_draining", in_flight=len(tasks))
    await asyncio.gather(*tasks, return_exceptions=True)


def _check_limit(limit: int) -> None:
    if limit < 1:
        raise SiteError(
            code=ErrorCode.MISUSE,
            message=f"Concurrency limit must be at least 1, got {limit}",
        )


async def try_map(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    limit: int = DEFAULT_LIMIT,
) -> list[R]:
    """Apply ``fn`` to every item, at most ``limit`` at a time, chunk by chunk.

    Returns all results (order not guaranteed) or raises the first error.
    """
    _check_limit(limit)
    output: list[R] = []

    for chunk in itertools.batched(items, limit):
        tasks = [asyncio.create_task(_run_one(fn, item)) for item in chunk]
        for future in asyncio.as_completed(tasks):
            try:
                output.append(await future)
            except BaseException:
                await _drain(tasks)
                raise

    return output


async def try_for_each(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[object]],
    *,
    limit: int = DEFAULT_LIMIT,
) -> None:
    """Like :func:`try_map`, for operations run only for their side effects."""
    _check_limit(limit)

    for chunk in itertools.batched(items, limit):
        tasks = [asyncio.create_task(_run_one(fn, item)) for item in chunk]
        for future in asyncio.as_completed(tasks):
            try:
                await future
            except BaseException:
                await _drain(tasks)
                raise


async def as_completed_bounded(
    items: Iterable[T],
    fn: Callable[[T], Awaitable[R]],
    *,
    limit: int,
) -> AsyncIterator[R]:
    """Sliding-window fan-out: yield results as they complete.

    Exactly ``limit`` operations are in flight while input remains; each
    completion immediately schedules the next item. If an operation fails,
    or the consumer stops iterating, nothing new is started and the
    remaining in-flight operations are drained before control returns.
    """
    _check_limit(limit)
    iterator = iter(items)
    pending: set[asyncio.Task[R]] = set()

    def refill() -> None:
        for item in itertools.islice(iterator, limit - len(pending)):
            pending.add(asyncio.create_task(_run_one(fn, item)))

    refill()
    try:
        while pending:
            done, _ = await asyncio.wait(pending, return_when=asyncio.FIRST_COMPLETED)
            pending.difference_update(done)
            # Successful results in the same batch are handed out before any
            # failure, so every finished task is retrieved exactly once.
            finished = sorted(done, key=lambda task: task.exception() is not None)
            for task in finished:
                yield task.result()
            refill()
    finally:
        await _drain(pending)
