from __future__ import annotations

from sqlalchemy import ColumnElement
from sqlalchemy.orm import InstrumentedAttribute

from catalog_sync.identity import key_variants


def product_key_clause(column: InstrumentedAttribute[str], product_id: str) -> ColumnElement[bool]:
    """Match rows stored under either spelling of ``product_id``."""

    return column.in_(key_variants(product_id))
