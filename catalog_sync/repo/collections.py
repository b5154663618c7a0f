"""Persistence helpers for curated collections and their ordered members."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from slugify import slugify
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import Collection, CollectionProduct
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause

COLLECTION_FIELDS = frozenset({"name", "description", "image_url", "is_active"})


async def list_collections(session: AsyncSession, *, active_only: bool = False) -> Sequence[Collection]:
    stmt = select(Collection).order_by(Collection.created_at.desc(), Collection.id.desc())
    if active_only:
        stmt = stmt.where(Collection.is_active.is_(True))
    result = await session.execute(stmt)
    return result.scalars().all()


async def create_collection(
    session: AsyncSession,
    name: str,
    description: str | None = None,
    image_url: str | None = None,
) -> Collection:
    collection = Collection(
        name=name,
        slug=slugify(name),
        description=description,
        image_url=image_url,
        is_active=True,
    )
    session.add(collection)
    await session.flush()
    return collection


async def update_collection(
    session: AsyncSession, collection_id: int, updates: Mapping[str, Any]
) -> Collection | None:
    unknown = set(updates) - COLLECTION_FIELDS
    if unknown:
        raise ValueError(f"unknown collection fields: {', '.join(sorted(unknown))}")
    collection = await session.get(Collection, collection_id)
    if collection is None:
        return None
    for name, value in updates.items():
        setattr(collection, name, value)
    if updates.get("name"):
        collection.slug = slugify(updates["name"])
    await session.flush()
    return collection


async def delete_collection(session: AsyncSession, collection_id: int) -> bool:
    await session.execute(delete(CollectionProduct).where(CollectionProduct.collection_id == collection_id))
    result = await session.execute(delete(Collection).where(Collection.id == collection_id))
    return bool(result.rowcount)


async def add_product(session: AsyncSession, collection_id: int, product_id: str, position: int = 0) -> bool:
    """Add a member; duplicates are a no-op returning ``False``."""

    stmt = select(CollectionProduct.id).where(
        CollectionProduct.collection_id == collection_id,
        product_key_clause(CollectionProduct.product_id, product_id),
    )
    result = await session.execute(stmt)
    if result.first() is not None:
        return False
    session.add(CollectionProduct(collection_id=collection_id, product_id=normalize(product_id), position=position))
    await session.flush()
    return True


async def remove_product(session: AsyncSession, collection_id: int, product_id: str) -> int:
    stmt = delete(CollectionProduct).where(
        CollectionProduct.collection_id == collection_id,
        product_key_clause(CollectionProduct.product_id, product_id),
    )
    result = await session.execute(stmt)
    return result.rowcount or 0


async def product_ids(session: AsyncSession, collection_id: int) -> list[str]:
    stmt = (
        select(CollectionProduct.product_id)
        .where(CollectionProduct.collection_id == collection_id)
        .order_by(CollectionProduct.position, CollectionProduct.id)
    )
    result = await session.execute(stmt)
    return [product_id for product_id, in result.all()]
