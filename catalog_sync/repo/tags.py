"""Persistence helpers for the tag catalogue and tag assignments."""

from __future__ import annotations

from typing import Sequence

from slugify import slugify
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import ProductTag, ProductTagAssignment
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause


async def list_tags(session: AsyncSession) -> Sequence[ProductTag]:
    result = await session.execute(select(ProductTag).order_by(ProductTag.name))
    return result.scalars().all()


async def create_tag(session: AsyncSession, name: str, group_name: str | None = None) -> ProductTag:
    tag = ProductTag(name=name, slug=slugify(name), group_name=group_name)
    session.add(tag)
    await session.flush()
    return tag


async def rename_tag(session: AsyncSession, tag_id: int, name: str) -> ProductTag | None:
    tag = await session.get(ProductTag, tag_id)
    if tag is None:
        return None
    tag.name = name
    tag.slug = slugify(name)
    await session.flush()
    return tag


async def delete_tag(session: AsyncSession, tag_id: int) -> bool:
    await session.execute(delete(ProductTagAssignment).where(ProductTagAssignment.tag_id == tag_id))
    result = await session.execute(delete(ProductTag).where(ProductTag.id == tag_id))
    return bool(result.rowcount)


async def tags_for_product(session: AsyncSession, product_id: str) -> Sequence[ProductTag]:
    stmt = (
        select(ProductTag)
        .join(ProductTagAssignment, ProductTagAssignment.tag_id == ProductTag.id)
        .where(product_key_clause(ProductTagAssignment.product_id, product_id))
        .order_by(ProductTag.name)
        .distinct()
    )
    result = await session.execute(stmt)
    return result.scalars().all()


async def list_assignments(session: AsyncSession) -> Sequence[tuple[str, int]]:
    stmt = select(ProductTagAssignment.product_id, ProductTagAssignment.tag_id).order_by(ProductTagAssignment.id)
    result = await session.execute(stmt)
    return [(product_id, tag_id) for product_id, tag_id in result.all()]


async def product_ids_for_tag(session: AsyncSession, tag_id: int) -> list[str]:
    stmt = select(ProductTagAssignment.product_id).where(ProductTagAssignment.tag_id == tag_id)
    result = await session.execute(stmt)
    return [product_id for product_id, in result.all()]


async def assign_tag(session: AsyncSession, product_id: str, tag_id: int) -> bool:
    """Attach ``tag_id``; returns ``False`` when it was already attached."""

    stmt = select(ProductTagAssignment.id).where(
        product_key_clause(ProductTagAssignment.product_id, product_id),
        ProductTagAssignment.tag_id == tag_id,
    )
    result = await session.execute(stmt)
    if result.first() is not None:
        return False
    session.add(ProductTagAssignment(product_id=normalize(product_id), tag_id=tag_id))
    await session.flush()
    return True


async def remove_tag(session: AsyncSession, product_id: str, tag_id: int) -> int:
    stmt = delete(ProductTagAssignment).where(
        product_key_clause(ProductTagAssignment.product_id, product_id),
        ProductTagAssignment.tag_id == tag_id,
    )
    result = await session.execute(stmt)
    return result.rowcount or 0
