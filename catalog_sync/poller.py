"""Periodic catalog reconciliation on an APScheduler interval job."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from catalog_sync.catalog.fetcher import CatalogFetcher
from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings

log = logging.getLogger("poller")

JOB_ID = "catalog-reconcile"

RefreshCallback = Callable[[list[CatalogProduct]], Any]


def _wrap_job(
    job: Callable[..., Awaitable[Any]],
    *,
    name: str,
    logger: logging.Logger,
) -> Callable[..., Awaitable[Any]]:
    """Wrap coroutine job to log duration and swallow exceptions."""

    @wraps(job)
    async def _inner(*args: Any, **kwargs: Any) -> Any:
        started = time.perf_counter()
        logger.debug("job started job=%s", name)
        try:
            result = await job(*args, **kwargs)
        except Exception:
            duration = time.perf_counter() - started
            logger.exception("job failed job=%s duration=%.3fs", name, duration)
            return None

        duration = time.perf_counter() - started
        logger.info("job finished job=%s duration=%.3fs", name, duration)
        return result

    return _inner


class ReconciliationPoller:
    """Re-fetch the catalog every ``interval`` seconds while started.

    Every tick bypasses cache reuse and hands the fresh list to ``on_refresh``.
    A failed tick is logged and leaves the consumer's previous list in place.
    """

    def __init__(
        self,
        fetcher: CatalogFetcher,
        on_refresh: RefreshCallback,
        *,
        interval: float | None = None,
        count: int | None = None,
        is_alive: Callable[[], bool] | None = None,
    ) -> None:
        self.fetcher = fetcher
        self.on_refresh = on_refresh
        self.interval = interval or settings.CATALOG_POLL_INTERVAL
        self.count = count or settings.CATALOG_DASHBOARD_COUNT
        self._is_alive = is_alive
        self._scheduler: AsyncIOScheduler | None = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def scheduler(self) -> AsyncIOScheduler | None:
        return self._scheduler

    def _alive(self) -> bool:
        if self._stopped:
            return False
        return self._is_alive() if self._is_alive is not None else True

    async def tick(self) -> list[CatalogProduct] | None:
        """Run one reconciliation; returns ``None`` if the consumer went away."""

        products = await self.fetcher.fetch_catalog(self.count, force_refresh=True, is_alive=self._alive)
        if not self._alive():
            log.info("poll result discarded: poller stopped during fetch")
            return None
        outcome = self.on_refresh(products)
        if inspect.isawaitable(outcome):
            await outcome
        log.info("poll applied products=%s", len(products))
        return products

    def start(self) -> AsyncIOScheduler:
        """Schedule the interval job. Must be called from a running event loop."""

        if self._scheduler is not None:
            return self._scheduler
        self._stopped = False
        scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": max(1, int(self.interval)),
            },
        )
        scheduler.add_job(
            _wrap_job(self.tick, name=JOB_ID, logger=log),
            trigger=IntervalTrigger(seconds=self.interval),
            id=JOB_ID,
            name=JOB_ID,
            replace_existing=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        log.info("poller started interval=%ss count=%s", self.interval, self.count)
        return scheduler

    async def stop(self) -> None:
        """Remove the job and shut the scheduler down, including its loop timer."""

        self._stopped = True
        scheduler, self._scheduler = self._scheduler, None
        if scheduler is None:
            return
        scheduler.remove_all_jobs()
        scheduler.shutdown(wait=False)
        # AsyncIOScheduler defers the actual shutdown to the next loop iteration.
        await asyncio.sleep(0)
        log.info("poller stopped")


__all__ = ["JOB_ID", "ReconciliationPoller", "RefreshCallback"]
