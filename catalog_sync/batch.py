"""Chunked, bounded-concurrency executor for per-item write operations."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Sequence, TypeVar

from catalog_sync.config import settings
from catalog_sync.errors import MutationFailed, PartialBatchFailure

log = logging.getLogger("batch")

T = TypeVar("T")

Operation = Callable[[], Awaitable[T]]
ProgressCallback = Callable[[int, int], Any]


@dataclass(slots=True)
class BatchResult(Generic[T]):
    succeeded_ids: list[str] = field(default_factory=list)
    failures: dict[str, BaseException] = field(default_factory=dict)
    results: dict[str, T] = field(default_factory=dict)
    chunks: int = 0

    @property
    def failed_ids(self) -> list[str]:
        return list(self.failures)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def total(self) -> int:
        return len(self.succeeded_ids) + len(self.failures)

    @property
    def ok(self) -> bool:
        return not self.failures

    def as_error(self) -> PartialBatchFailure | None:
        if not self.failures:
            return None
        return PartialBatchFailure(self.succeeded_ids, self.failures)

    def summary(self) -> str:
        if not self.failures:
            return f"{len(self.succeeded_ids)} updated"
        return f"{len(self.succeeded_ids)} updated, {self.failed_count} failed"


def _chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def _run_one(item_id: str, operation: Operation[T]) -> tuple[bool, T | BaseException]:
    try:
        return True, await operation()
    except MutationFailed as exc:
        return False, exc
    except Exception as exc:  # noqa: BLE001 - recorded per item, never aborts siblings
        return False, MutationFailed(item_id, str(exc) or exc.__class__.__name__, cause=exc)


async def _notify(callback: ProgressCallback | None, completed: int, total: int) -> None:
    if callback is None:
        return
    outcome = callback(completed, total)
    if inspect.isawaitable(outcome):
        await outcome


async def run_batch(
    items: Iterable[tuple[str, Operation[T]]],
    *,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
    label: str = "batch",
) -> BatchResult[T]:
    """Run ``(item_id, operation)`` pairs in chunks of ``concurrency_limit``.

    Items inside a chunk run concurrently; the next chunk starts only after
    the whole previous chunk settled. A failing item is recorded under its id
    as :class:`MutationFailed` and never affects its siblings. Cancellation
    propagates.
    """

    limit = concurrency_limit or settings.BATCH_CONCURRENCY_LIMIT
    if limit <= 0:
        raise ValueError("concurrency_limit must be positive")

    pending = list(items)
    result: BatchResult[T] = BatchResult()
    started = time.perf_counter()
    completed = 0

    for chunk in _chunked(pending, limit):
        outcomes = await asyncio.gather(*(_run_one(item_id, operation) for item_id, operation in chunk))
        for (item_id, _), (ok, value) in zip(chunk, outcomes):
            if ok:
                result.succeeded_ids.append(item_id)
                result.results[item_id] = value  # type: ignore[assignment]
            else:
                result.failures[item_id] = value  # type: ignore[assignment]
                log.warning("%s item failed id=%s error=%s", label, item_id, value)
        result.chunks += 1
        completed += len(chunk)
        await _notify(on_progress, completed, len(pending))

    duration_ms = (time.perf_counter() - started) * 1000
    log.info(
        "%s done: succeeded=%s failed=%s chunks=%s duration_ms=%.1f",
        label,
        len(result.succeeded_ids),
        result.failed_count,
        result.chunks,
        duration_ms,
    )
    return result


__all__ = ["BatchResult", "Operation", "ProgressCallback", "run_batch"]
