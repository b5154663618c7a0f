"""Override store database package."""

from .models import (
    Base,
    Collection,
    CollectionProduct,
    ProductCost,
    ProductOffer,
    ProductOptionAlias,
    ProductOverride,
    ProductTag,
    ProductTagAssignment,
)

__all__ = [
    "Base",
    "Collection",
    "CollectionProduct",
    "ProductCost",
    "ProductOffer",
    "ProductOptionAlias",
    "ProductOverride",
    "ProductTag",
    "ProductTagAssignment",
]
