"""Override store client: editorial records kept beside the catalog.

Every method is an independent round-trip with its own session; nothing here
is transactionally linked to catalog mutations. Rows are written under the
bare product id and looked up under either historical spelling.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, AsyncIterator, Iterable, Mapping

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from catalog_sync.db import models
from catalog_sync.identity import normalize
from catalog_sync.repo import collections as collections_repo
from catalog_sync.repo import costs as costs_repo
from catalog_sync.repo import offers as offers_repo
from catalog_sync.repo import option_aliases as aliases_repo
from catalog_sync.repo import overrides as overrides_repo
from catalog_sync.repo import tags as tags_repo

log = logging.getLogger("overrides")

DEFAULT_TAG_GROUP = "Otros"


def _to_decimal(value: float | None) -> Decimal | None:
    if value is None:
        return None
    return Decimal(str(value))


def _to_float(value: Decimal | float | int | str | None) -> float | None:
    if value is None:
        return None
    return float(value)


@dataclass(frozen=True, slots=True)
class OverrideRecord:
    product_id: str
    title: str | None = None
    subtitle: str | None = None
    description: str | None = None
    price: Decimal | None = None
    price_enabled: bool = False
    title_separator: str | None = None

    @classmethod
    def from_row(cls, row: models.ProductOverride) -> "OverrideRecord":
        return cls(
            product_id=normalize(row.product_id),
            title=row.title,
            subtitle=row.subtitle,
            description=row.description,
            price=_to_decimal(row.price),
            price_enabled=bool(row.price_enabled),
            title_separator=row.title_separator,
        )


@dataclass(frozen=True, slots=True)
class TagRecord:
    id: int
    name: str
    slug: str
    group: str | None = None

    @classmethod
    def from_row(cls, row: models.ProductTag) -> "TagRecord":
        return cls(id=row.id, name=row.name, slug=row.slug, group=row.group_name)


@dataclass(frozen=True, slots=True)
class CollectionRecord:
    id: int
    name: str
    slug: str
    description: str | None = None
    image_url: str | None = None
    is_active: bool = True

    @classmethod
    def from_row(cls, row: models.Collection) -> "CollectionRecord":
        return cls(
            id=row.id,
            name=row.name,
            slug=row.slug,
            description=row.description,
            image_url=row.image_url,
            is_active=bool(row.is_active),
        )


@dataclass(frozen=True, slots=True)
class CostRecord:
    product_id: str
    product_cost: Decimal
    shipping_cost: Decimal
    notes: str | None = None
    supplier_ref: str | None = None

    @property
    def total(self) -> Decimal:
        return self.product_cost + self.shipping_cost

    @classmethod
    def from_row(cls, row: models.ProductCost) -> "CostRecord":
        return cls(
            product_id=normalize(row.product_id),
            product_cost=_to_decimal(row.product_cost) or Decimal("0"),
            shipping_cost=_to_decimal(row.shipping_cost) or Decimal("0"),
            notes=row.notes,
            supplier_ref=row.supplier_ref,
        )


@dataclass(frozen=True, slots=True)
class OfferRecord:
    product_id: str
    offer_active: bool = False
    discount_percent: Decimal | None = None
    original_price: Decimal | None = None
    offer_text: str | None = None
    offer_end_date: datetime | None = None
    promo_text: str | None = None
    promo_subtext: str | None = None
    promo_active: bool = False
    low_stock_threshold: int | None = None
    low_stock_active: bool = False

    @classmethod
    def from_row(cls, row: models.ProductOffer) -> "OfferRecord":
        return cls(
            product_id=normalize(row.product_id),
            offer_active=bool(row.offer_active),
            discount_percent=_to_decimal(row.discount_percent),
            original_price=_to_decimal(row.original_price),
            offer_text=row.offer_text,
            offer_end_date=row.offer_end_date,
            promo_text=row.promo_text,
            promo_subtext=row.promo_subtext,
            promo_active=bool(row.promo_active),
            low_stock_threshold=row.low_stock_threshold,
            low_stock_active=bool(row.low_stock_active),
        )


@dataclass(frozen=True, slots=True)
class Overlay:
    """Override-store data for a product list, keyed by normalized id."""

    overrides: Mapping[str, OverrideRecord] = field(default_factory=dict)
    tags: Mapping[str, list[TagRecord]] = field(default_factory=dict)
    offers: Mapping[str, OfferRecord] = field(default_factory=dict)
    costs: Mapping[str, CostRecord] = field(default_factory=dict)
    aliases: Mapping[str, Mapping[str, str]] = field(default_factory=dict)

    def override_for(self, product_id: str) -> OverrideRecord | None:
        return self.overrides.get(normalize(product_id))

    def tags_for(self, product_id: str) -> list[TagRecord]:
        return list(self.tags.get(normalize(product_id), ()))

    def offer_for(self, product_id: str) -> OfferRecord | None:
        return self.offers.get(normalize(product_id))

    def cost_for(self, product_id: str) -> CostRecord | None:
        return self.costs.get(normalize(product_id))

    def aliases_for(self, product_id: str) -> Mapping[str, str]:
        return self.aliases.get(normalize(product_id), {})


_DECIMAL_OFFER_FIELDS = ("discount_percent", "original_price")


class OverrideStore:
    """Keyed CRUD over overrides, tags, collections, costs, offers and aliases."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession] | None = None) -> None:
        if session_factory is None:
            from catalog_sync.db.session import async_session_factory

            session_factory = async_session_factory
        self._session_factory = session_factory

    @asynccontextmanager
    async def _read(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            yield session

    @asynccontextmanager
    async def _write(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    # ------------------------------------------------------------- overrides

    async def get_override(self, product_id: str) -> OverrideRecord | None:
        async with self._read() as session:
            row = await overrides_repo.get_override(session, product_id)
            return OverrideRecord.from_row(row) if row else None

    async def list_overrides(self) -> dict[str, OverrideRecord]:
        async with self._read() as session:
            rows = await overrides_repo.list_overrides(session)
            records = [OverrideRecord.from_row(row) for row in rows]
        return {record.product_id: record for record in records}

    async def upsert_override(self, product_id: str, **fields: Any) -> OverrideRecord:
        """Create or partially update the override for ``product_id``.

        Only the keyword arguments passed are written; everything else keeps
        its stored value.
        """

        if "price" in fields:
            fields["price"] = _to_float(fields["price"])
        async with self._write() as session:
            row = await overrides_repo.upsert_override(session, product_id, fields)
            record = OverrideRecord.from_row(row)
        log.info("override saved product=%s fields=%s", record.product_id, ",".join(sorted(fields)))
        return record

    async def delete_override(self, product_id: str) -> bool:
        async with self._write() as session:
            deleted = await overrides_repo.delete_override(session, product_id)
        if deleted:
            log.info("override removed product=%s", normalize(product_id))
        return bool(deleted)

    # ------------------------------------------------------------------ tags

    async def list_tags(self) -> list[TagRecord]:
        async with self._read() as session:
            rows = await tags_repo.list_tags(session)
            return [TagRecord.from_row(row) for row in rows]

    async def tags_by_group(self) -> dict[str, list[TagRecord]]:
        grouped: dict[str, list[TagRecord]] = defaultdict(list)
        for tag in await self.list_tags():
            grouped[tag.group or DEFAULT_TAG_GROUP].append(tag)
        return dict(grouped)

    async def create_tag(self, name: str, group: str | None = None) -> TagRecord:
        async with self._write() as session:
            row = await tags_repo.create_tag(session, name.strip(), group)
            return TagRecord.from_row(row)

    async def rename_tag(self, tag_id: int, name: str) -> TagRecord | None:
        async with self._write() as session:
            row = await tags_repo.rename_tag(session, tag_id, name.strip())
            return TagRecord.from_row(row) if row else None

    async def delete_tag(self, tag_id: int) -> bool:
        async with self._write() as session:
            return await tags_repo.delete_tag(session, tag_id)

    async def get_tags_for(self, product_id: str) -> list[TagRecord]:
        async with self._read() as session:
            rows = await tags_repo.tags_for_product(session, product_id)
            return [TagRecord.from_row(row) for row in rows]

    async def tag_assignments(self) -> dict[str, list[TagRecord]]:
        """All assignments grouped by normalized product id."""

        tags = {tag.id: tag for tag in await self.list_tags()}
        async with self._read() as session:
            pairs = await tags_repo.list_assignments(session)
        result: dict[str, list[TagRecord]] = defaultdict(list)
        for product_id, tag_id in pairs:
            tag = tags.get(tag_id)
            if tag is not None and tag not in result[normalize(product_id)]:
                result[normalize(product_id)].append(tag)
        return dict(result)

    async def products_for_tag(self, tag_id: int) -> list[str]:
        async with self._read() as session:
            product_ids = await tags_repo.product_ids_for_tag(session, tag_id)
        return list(dict.fromkeys(normalize(product_id) for product_id in product_ids))

    async def assign_tag(self, product_id: str, tag_id: int) -> bool:
        """Attach a tag. An existing assignment counts as success."""

        try:
            async with self._write() as session:
                created = await tags_repo.assign_tag(session, product_id, tag_id)
        except IntegrityError:
            log.info("tag already assigned product=%s tag=%s", normalize(product_id), tag_id)
            return True
        if created:
            log.info("tag assigned product=%s tag=%s", normalize(product_id), tag_id)
        return True

    async def remove_tag(self, product_id: str, tag_id: int) -> bool:
        async with self._write() as session:
            removed = await tags_repo.remove_tag(session, product_id, tag_id)
        return bool(removed)

    # ----------------------------------------------------------- collections

    async def list_collections(self, *, active_only: bool = False) -> list[CollectionRecord]:
        async with self._read() as session:
            rows = await collections_repo.list_collections(session, active_only=active_only)
            return [CollectionRecord.from_row(row) for row in rows]

    async def create_collection(
        self, name: str, description: str | None = None, image_url: str | None = None
    ) -> CollectionRecord:
        async with self._write() as session:
            row = await collections_repo.create_collection(session, name.strip(), description, image_url)
            return CollectionRecord.from_row(row)

    async def update_collection(self, collection_id: int, **updates: Any) -> CollectionRecord | None:
        async with self._write() as session:
            row = await collections_repo.update_collection(session, collection_id, updates)
            return CollectionRecord.from_row(row) if row else None

    async def delete_collection(self, collection_id: int) -> bool:
        async with self._write() as session:
            return await collections_repo.delete_collection(session, collection_id)

    async def add_to_collection(self, collection_id: int, product_id: str, position: int = 0) -> bool:
        try:
            async with self._write() as session:
                return await collections_repo.add_product(session, collection_id, product_id, position)
        except IntegrityError:
            return False

    async def remove_from_collection(self, collection_id: int, product_id: str) -> bool:
        async with self._write() as session:
            removed = await collections_repo.remove_product(session, collection_id, product_id)
        return bool(removed)

    async def products_for_collection(self, collection_id: int) -> list[str]:
        async with self._read() as session:
            product_ids = await collections_repo.product_ids(session, collection_id)
        return list(dict.fromkeys(normalize(product_id) for product_id in product_ids))

    async def is_in_collection(self, collection_id: int, product_id: str) -> bool:
        return normalize(product_id) in await self.products_for_collection(collection_id)

    # ----------------------------------------------------------------- costs

    async def get_cost(self, product_id: str) -> CostRecord | None:
        async with self._read() as session:
            row = await costs_repo.get_cost(session, product_id)
            return CostRecord.from_row(row) if row else None

    async def list_costs(self) -> dict[str, CostRecord]:
        async with self._read() as session:
            rows = await costs_repo.list_costs(session)
            records = [CostRecord.from_row(row) for row in rows]
        return {record.product_id: record for record in records}

    async def save_cost(
        self,
        product_id: str,
        product_cost: Decimal | float,
        shipping_cost: Decimal | float,
        notes: str | None = None,
        supplier_ref: str | None = None,
    ) -> CostRecord:
        async with self._write() as session:
            row = await costs_repo.save_cost(
                session,
                product_id,
                float(product_cost),
                float(shipping_cost),
                notes,
                supplier_ref,
            )
            return CostRecord.from_row(row)

    # ---------------------------------------------------------------- offers

    async def get_offer(self, product_id: str) -> OfferRecord | None:
        async with self._read() as session:
            row = await offers_repo.get_offer(session, product_id)
            return OfferRecord.from_row(row) if row else None

    async def list_offers(self) -> dict[str, OfferRecord]:
        async with self._read() as session:
            rows = await offers_repo.list_offers(session)
            records = [OfferRecord.from_row(row) for row in rows]
        return {record.product_id: record for record in records}

    async def upsert_offer(self, product_id: str, **fields: Any) -> OfferRecord:
        for name in _DECIMAL_OFFER_FIELDS:
            if name in fields:
                fields[name] = _to_float(fields[name])
        async with self._write() as session:
            row = await offers_repo.upsert_offer(session, product_id, fields)
            return OfferRecord.from_row(row)

    # ------------------------------------------------------- option aliases

    async def get_option_aliases(self, product_id: str) -> dict[str, str]:
        async with self._read() as session:
            return await aliases_repo.aliases_for_product(session, product_id)

    async def save_option_alias(self, product_id: str, original_name: str, display_name: str) -> bool:
        async with self._write() as session:
            return await aliases_repo.save_alias(session, product_id, original_name, display_name.strip())

    # ----------------------------------------------------------------- merge

    async def load_overlay(self, product_ids: Iterable[str] | None = None) -> Overlay:
        """Fetch everything the merge step needs in one pass.

        ``product_ids`` restricts option aliases, which are stored per product.
        """

        aliases: dict[str, Mapping[str, str]] = {}
        for product_id in product_ids or ():
            found = await self.get_option_aliases(product_id)
            if found:
                aliases[normalize(product_id)] = found
        return Overlay(
            overrides=await self.list_overrides(),
            tags=await self.tag_assignments(),
            offers=await self.list_offers(),
            costs=await self.list_costs(),
            aliases=aliases,
        )


__all__ = [
    "DEFAULT_TAG_GROUP",
    "CollectionRecord",
    "CostRecord",
    "OfferRecord",
    "OverrideRecord",
    "Overlay",
    "OverrideStore",
    "TagRecord",
]
