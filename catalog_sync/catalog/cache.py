"""TTL-bounded store of the most recent broad catalog fetch, backed by aiocache."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Mapping, Sequence

from aiocache import Cache
from aiocache.serializers import PickleSerializer

from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings
from catalog_sync.identity import normalize

log = logging.getLogger("catalog.cache")

_NAMESPACE = "catalog-cache"
_ENTRY_KEY = "broad-fetch"

ProductPatch = Callable[[CatalogProduct], CatalogProduct]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    products: tuple[CatalogProduct, ...]
    timestamp: float
    complete: bool

    def is_valid_for(self, requested: int, *, now: float, ttl: float) -> bool:
        """Reusable iff fresh and either large enough or the whole catalog."""

        if now - self.timestamp >= ttl:
            return False
        return len(self.products) >= requested or self.complete


def apply_patches(
    products: Iterable[CatalogProduct],
    patches: Mapping[str, ProductPatch],
) -> tuple[tuple[CatalogProduct, ...], set[str]]:
    """Return ``products`` with each patch applied to the product it targets.

    Patches are keyed by any spelling of the product id. The second element is
    the set of normalized ids that were actually patched.
    """

    by_key = {normalize(key): patch for key, patch in patches.items()}
    patched: set[str] = set()
    result: list[CatalogProduct] = []
    for product in products:
        patch = by_key.get(product.key)
        if patch is None:
            result.append(product)
            continue
        result.append(patch(product))
        patched.add(product.key)
    return tuple(result), patched


class CatalogCache:
    """Holds one :class:`CacheEntry`; replaced wholesale or patched under a lock."""

    def __init__(
        self,
        *,
        ttl: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        backend: Cache | None = None,
    ) -> None:
        self.ttl = ttl if ttl is not None else settings.CATALOG_CACHE_TTL
        self._clock = clock
        self._namespace = f"{_NAMESPACE}:{uuid.uuid4().hex}"
        self._backend = backend or Cache(
            Cache.MEMORY,
            namespace=self._namespace,
            serializer=PickleSerializer(),
        )
        self._write_lock = asyncio.Lock()

    async def peek(self) -> CacheEntry | None:
        """Current entry regardless of validity."""

        return await self._backend.get(_ENTRY_KEY)

    async def get(self, requested: int) -> CacheEntry | None:
        entry = await self.peek()
        if entry is None:
            log.debug("cache miss: empty")
            return None
        if not entry.is_valid_for(requested, now=self._clock(), ttl=self.ttl):
            log.debug(
                "cache miss: requested=%s cached=%s complete=%s age=%.1fs",
                requested,
                len(entry.products),
                entry.complete,
                self._clock() - entry.timestamp,
            )
            return None
        log.debug("cache hit: requested=%s cached=%s", requested, len(entry.products))
        return entry

    async def set(self, products: Sequence[CatalogProduct], *, complete: bool) -> CacheEntry:
        entry = CacheEntry(products=tuple(products), timestamp=self._clock(), complete=complete)
        async with self._write_lock:
            await self._backend.set(_ENTRY_KEY, entry, ttl=self.ttl)
        log.info("cache replaced: products=%s complete=%s", len(entry.products), complete)
        return entry

    async def invalidate(self) -> None:
        async with self._write_lock:
            await self._backend.delete(_ENTRY_KEY)
        log.info("cache invalidated")

    async def patch(self, patches: Mapping[str, ProductPatch]) -> set[str]:
        """Apply local patches after a successful mutation.

        Timestamp and completeness are preserved; the entry is swapped as a
        whole so readers never observe a half-patched list.
        """

        if not patches:
            return set()
        async with self._write_lock:
            entry = await self._backend.get(_ENTRY_KEY)
            if entry is None:
                return set()
            products, patched = apply_patches(entry.products, patches)
            if not patched:
                return set()
            remaining = max(0.0, self.ttl - (self._clock() - entry.timestamp))
            if remaining <= 0:
                return set()
            await self._backend.set(_ENTRY_KEY, replace(entry, products=products), ttl=remaining)
        log.info("cache patched: products=%s", len(patched))
        return patched

    async def clear(self) -> None:
        await self._backend.clear(namespace=self._backend.namespace)


__all__ = ["CacheEntry", "CatalogCache", "ProductPatch", "apply_patches"]
