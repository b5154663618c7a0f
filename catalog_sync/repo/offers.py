from __future__ import annotations

from typing import Any, Mapping, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import ProductOffer
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause

OFFER_FIELDS = frozenset(
    {
        "promo_text",
        "promo_subtext",
        "promo_active",
        "offer_text",
        "offer_active",
        "offer_end_date",
        "discount_percent",
        "original_price",
        "low_stock_threshold",
        "low_stock_active",
    }
)


async def get_offer(session: AsyncSession, product_id: str) -> ProductOffer | None:
    stmt = select(ProductOffer).where(product_key_clause(ProductOffer.product_id, product_id)).limit(1)
    result = await session.execute(stmt)
    return result.scalars().first()


async def upsert_offer(session: AsyncSession, product_id: str, fields: Mapping[str, Any]) -> ProductOffer:
    unknown = set(fields) - OFFER_FIELDS
    if unknown:
        raise ValueError(f"unknown offer fields: {', '.join(sorted(unknown))}")
    offer = await get_offer(session, product_id)
    if offer is None:
        offer = ProductOffer(
            product_id=normalize(product_id),
            promo_active=False,
            offer_active=False,
            low_stock_active=False,
        )
        session.add(offer)
    for name, value in fields.items():
        setattr(offer, name, value)
    await session.flush()
    return offer


async def list_offers(session: AsyncSession) -> Sequence[ProductOffer]:
    result = await session.execute(select(ProductOffer).order_by(ProductOffer.id))
    return result.scalars().all()
