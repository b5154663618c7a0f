"""Cursor-paginated catalog reads in front of :class:`CatalogCache`."""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from catalog_sync.catalog.cache import CatalogCache
from catalog_sync.catalog.client import CatalogPage
from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings
from catalog_sync.identity import matches

log = logging.getLogger("catalog")


class CatalogSource(Protocol):
    async def list_products(
        self,
        count: int,
        cursor: str | None = None,
        query: str | None = None,
        *,
        timeout: float | None = None,
    ) -> CatalogPage: ...

    async def get_product(self, product_id: str, *, timeout: float | None = None) -> CatalogProduct: ...


class CatalogFetcher:
    """Fetch ``count`` products, reusing the cache for broad unfiltered reads.

    Filtered queries are never cached. Pages are requested strictly in cursor
    order; a failure anywhere discards everything accumulated so far and
    leaves the previous cache entry untouched.
    """

    def __init__(
        self,
        source: CatalogSource,
        cache: CatalogCache,
        *,
        broad_fetch_threshold: int | None = None,
        page_size: int | None = None,
        single_page_timeout: float | None = None,
        paginated_timeout: float | None = None,
    ) -> None:
        self.source = source
        self.cache = cache
        self.broad_fetch_threshold = (
            broad_fetch_threshold if broad_fetch_threshold is not None else settings.CATALOG_BROAD_FETCH_THRESHOLD
        )
        self.page_size = page_size or settings.CATALOG_PAGE_SIZE
        self.single_page_timeout = single_page_timeout or settings.CATALOG_SINGLE_PAGE_TIMEOUT
        self.paginated_timeout = paginated_timeout or settings.CATALOG_PAGINATED_TIMEOUT

    def is_broad(self, count: int, query: str | None) -> bool:
        return not query and count >= self.broad_fetch_threshold

    async def fetch_catalog(
        self,
        count: int,
        query: str | None = None,
        *,
        force_refresh: bool = False,
        is_alive: Callable[[], bool] | None = None,
    ) -> list[CatalogProduct]:
        """Return up to ``count`` products in catalog order.

        ``force_refresh`` skips cache reuse but still replaces the entry.
        ``is_alive`` is checked before committing to the cache; a fetch whose
        consumer went away is returned but never written to shared state.
        """

        if count <= 0:
            return []

        broad = self.is_broad(count, query)
        if broad and not force_refresh:
            entry = await self.cache.get(count)
            if entry is not None:
                return list(entry.products[:count])

        products, exhausted = await self._fetch_pages(count, query)
        complete = len(products) < count or exhausted

        if broad:
            if is_alive is not None and not is_alive():
                log.info("discarding stale catalog fetch: products=%s", len(products))
                return products
            await self.cache.set(products, complete=complete)
        return products

    async def get_product(self, product_id: str) -> CatalogProduct:
        """Look ``product_id`` up in the current cache entry, else ask the catalog."""

        entry = await self.cache.peek()
        if entry is not None:
            for product in entry.products:
                if matches(product.id, product_id):
                    return product
        return await self.source.get_product(product_id, timeout=self.single_page_timeout)

    async def _fetch_pages(self, count: int, query: str | None) -> tuple[list[CatalogProduct], bool]:
        if count <= self.page_size:
            page = await self.source.list_products(count, None, query, timeout=self.single_page_timeout)
            return list(page.products[:count]), not page.has_more

        accumulated: list[CatalogProduct] = []
        cursor: str | None = None
        pages = 0
        while len(accumulated) < count:
            batch = min(self.page_size, count - len(accumulated))
            page = await self.source.list_products(batch, cursor, query, timeout=self.paginated_timeout)
            pages += 1
            accumulated.extend(page.products)
            log.debug("catalog page=%s received=%s total=%s", pages, len(page.products), len(accumulated))
            if not page.has_more:
                return accumulated[:count], True
            if not page.products:
                log.warning("catalog returned an empty page with more pages pending; stopping")
                break
            cursor = page.next_cursor
        return accumulated[:count], False


__all__ = ["CatalogFetcher", "CatalogSource"]
