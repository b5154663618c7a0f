"""Persistence helpers for per-product editorial overrides."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import ProductOverride
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause

OVERRIDE_FIELDS = frozenset({"title", "subtitle", "description", "price", "price_enabled", "title_separator"})


async def get_override(session: AsyncSession, product_id: str) -> ProductOverride | None:
    stmt = (
        select(ProductOverride)
        .where(product_key_clause(ProductOverride.product_id, product_id))
        .order_by(ProductOverride.id)
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalars().first()


async def list_overrides(session: AsyncSession) -> Sequence[ProductOverride]:
    result = await session.execute(select(ProductOverride).order_by(ProductOverride.id))
    return result.scalars().all()


async def upsert_override(session: AsyncSession, product_id: str, fields: Mapping[str, Any]) -> ProductOverride:
    unknown = set(fields) - OVERRIDE_FIELDS
    if unknown:
        raise ValueError(f"unknown override fields: {', '.join(sorted(unknown))}")

    override = await get_override(session, product_id)
    if override is None:
        override = ProductOverride(product_id=normalize(product_id), price_enabled=False)
        session.add(override)
    for name, value in fields.items():
        setattr(override, name, value)

    await session.flush()
    return override


async def delete_override(session: AsyncSession, product_id: str) -> int:
    stmt = delete(ProductOverride).where(product_key_clause(ProductOverride.product_id, product_id))
    result = await session.execute(stmt)
    return result.rowcount or 0
