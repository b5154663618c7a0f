from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from catalog_sync.db.models import ProductOptionAlias
from catalog_sync.identity import normalize
from catalog_sync.repo._keys import product_key_clause


async def aliases_for_product(session: AsyncSession, product_id: str) -> dict[str, str]:
    stmt = select(ProductOptionAlias.original_name, ProductOptionAlias.display_name).where(
        product_key_clause(ProductOptionAlias.product_id, product_id)
    )
    result = await session.execute(stmt)
    return {original: display for original, display in result.all()}


async def save_alias(session: AsyncSession, product_id: str, original_name: str, display_name: str) -> bool:
    """Store a display name; an alias equal to the original is removed instead.

    Returns ``True`` when an alias row exists afterwards.
    """

    key_clause = product_key_clause(ProductOptionAlias.product_id, product_id)
    if display_name == original_name:
        await session.execute(
            delete(ProductOptionAlias).where(key_clause, ProductOptionAlias.original_name == original_name)
        )
        return False

    stmt = select(ProductOptionAlias).where(key_clause, ProductOptionAlias.original_name == original_name)
    result = await session.execute(stmt)
    alias = result.scalars().first()
    if alias is None:
        alias = ProductOptionAlias(
            product_id=normalize(product_id),
            original_name=original_name,
            display_name=display_name,
        )
        session.add(alias)
    else:
        alias.display_name = display_name
    await session.flush()
    return True
