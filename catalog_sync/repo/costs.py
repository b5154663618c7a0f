from __future__ import annotations

from typing import Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import ProductCost
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause


async def get_cost(session: AsyncSession, product_id: str) -> ProductCost | None:
    stmt = select(ProductCost).where(product_key_clause(ProductCost.product_id, product_id)).limit(1)
    result = await session.execute(stmt)
    return result.scalars().first()


async def list_costs(session: AsyncSession) -> Sequence[ProductCost]:
    result = await session.execute(select(ProductCost).order_by(ProductCost.id))
    return result.scalars().all()


async def save_cost(
    session: AsyncSession,
    product_id: str,
    product_cost: float,
    shipping_cost: float,
    notes: str | None = None,
    supplier_ref: str | None = None,
) -> ProductCost:
    cost = await get_cost(session, product_id)
    if cost is None:
        cost = ProductCost(product_id=normalize(product_id))
        session.add(cost)
    cost.product_cost = product_cost
    cost.shipping_cost = shipping_cost
    cost.notes = notes or None
    if supplier_ref is not None:
        cost.supplier_ref = supplier_ref
    await session.flush()
    return cost
