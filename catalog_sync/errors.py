"""Failure kinds surfaced by the synchronization layer."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


class CatalogSyncError(RuntimeError):
    """Base class for every failure raised by ``catalog_sync``."""


class RequestTimeout(CatalogSyncError):
    """A single HTTP round-trip exceeded its timeout."""

    def __init__(self, operation: str, timeout: float | None = None) -> None:
        detail = f" after {timeout:g}s" if timeout else ""
        super().__init__(f"{operation} timed out{detail}")
        self.operation = operation
        self.timeout = timeout


class CatalogFetchFailed(CatalogSyncError):
    """Non-timeout HTTP or parse failure while reading the catalog."""


class NotFound(CatalogSyncError):
    """The identity has no corresponding catalog record."""

    def __init__(self, identity: str) -> None:
        super().__init__(f"catalog record not found: {identity}")
        self.identity = identity


class MutationFailed(CatalogSyncError):
    """A single-item write failed."""

    def __init__(self, item_id: str, message: str, *, cause: BaseException | None = None) -> None:
        super().__init__(f"{item_id}: {message}")
        self.item_id = item_id
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, RequestTimeout)


class PartialBatchFailure(CatalogSyncError):
    """Aggregate outcome of a batch where some items failed.

    Informational only: successes already applied stand.
    """

    def __init__(self, succeeded_ids: Sequence[str], failures: Mapping[str, BaseException]) -> None:
        self.succeeded_ids = list(succeeded_ids)
        self.failures = dict(failures)
        super().__init__(
            f"{len(self.succeeded_ids)} succeeded, {len(self.failures)} failed: "
            + ", ".join(self.failures)
        )

    @property
    def failed_ids(self) -> list[str]:
        return list(self.failures)

    @property
    def failed_count(self) -> int:
        return len(self.failures)


__all__ = [
    "CatalogFetchFailed",
    "CatalogSyncError",
    "MutationFailed",
    "NotFound",
    "PartialBatchFailure",
    "RequestTimeout",
]
