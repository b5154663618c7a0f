"""Catalog service access: records, client, cache and paginated fetcher."""

from .cache import CacheEntry, CatalogCache, apply_patches
from .client import CatalogClient, CatalogPage, CheckoutLine
from .fetcher import CatalogFetcher
from .models import CatalogImage, CatalogProduct, CatalogVariant, Money, ProductOption

__all__ = [
    "CacheEntry",
    "CatalogCache",
    "CatalogClient",
    "CatalogFetcher",
    "CatalogImage",
    "CatalogPage",
    "CatalogProduct",
    "CatalogVariant",
    "CheckoutLine",
    "Money",
    "ProductOption",
    "apply_patches",
]
