"""Working product list held by a consuming view."""

from __future__ import annotations

import logging
from collections.abc import Callable

from catalog_sync.catalog.fetcher import CatalogFetcher
from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings
from catalog_sync.merge import DisplayProduct, resolve_all
from catalog_sync.overrides import Overlay, OverrideStore
from catalog_sync.poller import ReconciliationPoller

log = logging.getLogger("catalog")


class ProductListView:
    """Owns a product list, its merged display form and the reconciliation poller.

    Each load takes a generation token; a load finishing after a newer one
    started, or after unmount, is dropped instead of applied. The token is
    checked again after the overlay read, so nothing lands once superseded.
    """

    def __init__(
        self,
        fetcher: CatalogFetcher,
        *,
        store: OverrideStore | None = None,
        count: int | None = None,
        poll_interval: float | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.store = store
        self.count = count or settings.CATALOG_DASHBOARD_COUNT
        self.products: list[CatalogProduct] = []
        self.display: list[DisplayProduct] = []
        self.overlay = Overlay()
        self._mounted = False
        self._generation = 0
        self.poller = ReconciliationPoller(
            fetcher,
            self._apply_poll,
            interval=poll_interval,
            count=self.count,
            is_alive=self.is_mounted,
        )

    def is_mounted(self) -> bool:
        return self._mounted

    async def mount(self) -> None:
        self._mounted = True
        await self.load()
        self.poller.start()

    async def unmount(self) -> None:
        self._mounted = False
        self._generation += 1
        await self.poller.stop()

    def _liveness(self, token: int) -> Callable[[], bool]:
        def alive() -> bool:
            return self._mounted and token == self._generation

        return alive

    async def load(self, query: str | None = None, *, force_refresh: bool = False) -> list[CatalogProduct]:
        self._generation += 1
        alive = self._liveness(self._generation)

        products = await self.fetcher.fetch_catalog(
            self.count, query, force_refresh=force_refresh, is_alive=alive
        )
        if not alive():
            log.info("discarding superseded load: products=%s", len(products))
            return self.products
        await self.replace_products(products, is_alive=alive)
        return self.products

    async def _apply_poll(self, products: list[CatalogProduct]) -> None:
        await self.replace_products(products, is_alive=self._liveness(self._generation))

    async def replace_products(
        self,
        products: list[CatalogProduct],
        *,
        is_alive: Callable[[], bool] | None = None,
    ) -> bool:
        """Merge ``products`` with the overlay and apply; ``False`` when dropped."""

        overlay = self.overlay
        if self.store is not None:
            overlay = await self.store.load_overlay(product.id for product in products)
        if is_alive is not None and not is_alive():
            log.info("discarding superseded overlay: products=%s", len(products))
            return False
        self.products = list(products)
        self.overlay = overlay
        self.display = resolve_all(self.products, overlay)
        return True


__all__ = ["ProductListView"]
