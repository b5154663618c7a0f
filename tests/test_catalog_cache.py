from dataclasses import replace
from decimal import Decimal

import pytest

from catalog_sync.catalog.cache import CacheEntry, CatalogCache, apply_patches
from catalog_sync.catalog.models import CatalogProduct

from conftest import product_node


def _products(count: int) -> list[CatalogProduct]:
    return [CatalogProduct.from_payload(product_node(number)) for number in range(1, count + 1)]


@pytest.mark.parametrize(
    ("cached", "complete", "requested", "age", "valid"),
    [
        (100, False, 300, 10, False),
        (100, True, 300, 10, True),
        (300, False, 300, 10, True),
        (40, False, 40, 10, True),
        (40, False, 40, 300, False),
        (40, True, 10, 299.9, True),
    ],
)
def test_entry_validity(cached, complete, requested, age, valid):
    entry = CacheEntry(products=tuple(_products(cached)), timestamp=0.0, complete=complete)
    assert entry.is_valid_for(requested, now=age, ttl=300.0) is valid


@pytest.mark.asyncio
async def test_get_respects_ttl_and_count(cache: CatalogCache, clock):
    assert await cache.get(10) is None

    await cache.set(_products(40), complete=False)
    entry = await cache.get(40)
    assert entry is not None
    assert len(entry.products) == 40
    assert entry.complete is False

    assert await cache.get(300) is None

    clock.advance(301)
    assert await cache.get(40) is None
    assert await cache.peek() is not None


@pytest.mark.asyncio
async def test_readers_get_whole_copies(cache: CatalogCache):
    await cache.set(_products(3), complete=True)
    first = await cache.peek()
    await cache.set(_products(5), complete=True)
    second = await cache.peek()
    assert len(first.products) == 3
    assert len(second.products) == 5


@pytest.mark.asyncio
async def test_patch_keeps_timestamp_and_completeness(cache: CatalogCache, clock):
    await cache.set(_products(3), complete=False)
    stored = await cache.peek()
    clock.advance(30)

    patched = await cache.patch({"2": lambda product: replace(product, title="Renamed")})

    assert patched == {"2"}
    entry = await cache.peek()
    assert entry.timestamp == stored.timestamp
    assert entry.complete is False
    assert [product.title for product in entry.products] == ["Product 1", "Renamed", "Product 3"]


@pytest.mark.asyncio
async def test_patch_ignores_unknown_products_and_empty_cache(cache: CatalogCache):
    assert await cache.patch({"1": lambda product: product}) == set()
    await cache.set(_products(2), complete=True)
    assert await cache.patch({"gid://shopify/Product/99": lambda product: product}) == set()


@pytest.mark.asyncio
async def test_invalidate_drops_entry(cache: CatalogCache):
    await cache.set(_products(2), complete=True)
    await cache.invalidate()
    assert await cache.peek() is None


@pytest.mark.asyncio
async def test_caches_do_not_share_entries(clock):
    first = CatalogCache(ttl=300, clock=clock)
    second = CatalogCache(ttl=300, clock=clock)
    await first.set(_products(2), complete=True)
    assert await second.peek() is None
    await first.clear()
    assert await first.peek() is None


def test_apply_patches_matches_any_id_spelling():
    products = _products(3)

    def bump(product: CatalogProduct) -> CatalogProduct:
        variant = product.variants[0]
        return product.with_variant(replace(variant, price=replace(variant.price, amount=Decimal("99"))))

    result, patched = apply_patches(products, {"gid://shopify/Product/3": bump, "1": bump})

    assert patched == {"1", "3"}
    assert [product.price.amount for product in result] == [Decimal("99"), Decimal("10.00"), Decimal("99")]
    assert products[0].price.amount == Decimal("10.00")
