from decimal import Decimal

import pytest

from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.generation import GeneratedContent
from catalog_sync.services.bulk_edit import (
    PriceUpdate,
    SaveSelection,
    build_description_html,
    bulk_toggle_tag,
    bulk_update_prices,
    clean_about,
    rename_option_values,
    renamed_variant_values,
    rewrite_catalog_tags,
    save_generated_batch,
    save_generated_content,
)

from conftest import FakeAdmin, product_node

CONTENT = GeneratedContent(
    title="Camiseta",
    subtitle="Algodón",
    gender="Unisex",
    highlight="100% algodón",
    about="Una camiseta **cómoda**.",
    description="<h3>Detalles</h3>",
)


def _product(number: int, **options) -> CatalogProduct:
    return CatalogProduct.from_payload(product_node(number, **options))


class RecordingStore:
    def __init__(self) -> None:
        self.overrides: list[tuple[str, dict]] = []

    async def upsert_override(self, product_id: str, **fields):
        self.overrides.append((product_id, fields))


@pytest.mark.asyncio
async def test_price_batch_patches_cache_only_for_successes(make_client, cache):
    products = [_product(1, variants=2), _product(2, variants=1)]
    await cache.set(products, complete=True)
    admin = FakeAdmin(failing={"101"})
    updates = [
        PriceUpdate("gid://shopify/Product/1", "gid://shopify/ProductVariant/100", Decimal("12.50")),
        PriceUpdate("gid://shopify/Product/1", "gid://shopify/ProductVariant/101", Decimal("13.00")),
        PriceUpdate("2", "gid://shopify/ProductVariant/200", Decimal("9.99")),
    ]

    result = await bulk_update_prices(make_client(admin=admin), cache, updates, concurrency_limit=5)

    assert result.failed_ids == ["gid://shopify/ProductVariant/101"]
    assert result.summary() == "2 updated, 1 failed"
    entry = await cache.peek()
    first, second = entry.products
    assert first.variant("100").price.amount == Decimal("12.50")
    assert first.variant("101").price.amount == Decimal("10.00")
    assert second.variant("200").price.amount == Decimal("9.99")
    assert second.variant("200").price.currency == "EUR"
    assert entry.complete is True


@pytest.mark.asyncio
async def test_price_batch_sends_formatted_amounts(make_client):
    admin = FakeAdmin()

    await bulk_update_prices(make_client(admin=admin), None, [PriceUpdate("1", "100", Decimal("7"))])

    assert admin.calls[0][2] == {"variant": {"id": "100", "price": "7.00"}}


@pytest.mark.asyncio
async def test_price_batch_collapses_repeated_variant(make_client, cache):
    await cache.set([_product(1, variants=2)], complete=True)
    admin = FakeAdmin(failing={"101"})
    updates = [
        PriceUpdate("1", "100", Decimal("12")),
        PriceUpdate("1", "gid://shopify/ProductVariant/101", Decimal("11")),
        PriceUpdate("gid://shopify/Product/1", "gid://shopify/ProductVariant/100", Decimal("14")),
        PriceUpdate("1", "101", Decimal("13")),
    ]

    result = await bulk_update_prices(make_client(admin=admin), cache, updates)

    assert len(admin.calls) == 2
    assert result.succeeded_ids == ["gid://shopify/ProductVariant/100"]
    assert result.failed_ids == ["101"]
    product = (await cache.peek()).products[0]
    assert product.variant("100").price.amount == Decimal("14")
    assert product.variant("101").price.amount == Decimal("10.00")


@pytest.mark.asyncio
async def test_bulk_toggle_tag(store_manager):
    async with store_manager() as store:
        tag = await store.create_tag("Rebajas")
        ids = ["gid://shopify/Product/1", "2", "3", "2"]

        added = await bulk_toggle_tag(store, ids, tag.id, assign=True, concurrency_limit=2)
        assert added.succeeded_ids == ["1", "2", "3"]
        assert sorted(await store.products_for_tag(tag.id)) == ["1", "2", "3"]

        removed = await bulk_toggle_tag(store, ["1", "3"], tag.id, assign=False)
        assert removed.ok
        assert await store.products_for_tag(tag.id) == ["2"]


def test_rewrite_catalog_tags_replaces_generated_prefixes():
    tags = ["Hombre", "Verano", "Gender:Mujer", "Highlight:Viejo", "Niños"]

    assert rewrite_catalog_tags(tags, "Unisex", "Ligera") == ["Verano", "Gender:Unisex", "Highlight:Ligera"]
    assert rewrite_catalog_tags(tags) == ["Verano"]


def test_description_keeps_original_images_once():
    original = '<p>old</p><img src="https://cdn.test/a.jpg"><IMG src="https://cdn.test/b.jpg" />'

    html = build_description_html("<p>new</p>", original)

    assert html.startswith('<div class="product-detailed-description">\n<p>new</p>\n</div>')
    assert 'class="product-original-images"' in html
    assert '<img src="https://cdn.test/a.jpg"><br/><IMG src="https://cdn.test/b.jpg" />' in html
    assert "product-original-images" not in build_description_html("<p>new</p>", "<p>no images</p>")


def test_clean_about_strips_markdown_bold():
    assert clean_about("  **Suave** y ligera \n") == "Suave y ligera"


@pytest.mark.asyncio
async def test_save_generated_content_runs_every_step(make_client):
    admin = FakeAdmin()
    store = RecordingStore()
    product = _product(
        1,
        title="Camiseta vieja",
        tags=("Hombre", "Verano"),
        description_html='<p>x</p><img src="https://cdn.test/1.jpg">',
    )

    outcome = await save_generated_content(make_client(admin=admin), store, product, CONTENT)

    assert outcome.saved == ["title", "tags", "about", "description"]
    bodies = [body["product"] for _, _, body in admin.calls]
    assert bodies[0]["title"] == "Camiseta - Algodón"
    assert bodies[1]["tags"] == "Verano,Gender:Unisex,Highlight:100% algodón"
    assert '<img src="https://cdn.test/1.jpg">' in bodies[2]["body_html"]
    assert store.overrides == [("gid://shopify/Product/1", {"description": "Una camiseta cómoda."})]
    assert outcome.product.title == "Camiseta - Algodón"


@pytest.mark.asyncio
async def test_unchanged_title_and_deselected_steps_are_skipped(make_client):
    admin = FakeAdmin()
    store = RecordingStore()
    product = _product(1, title="Camiseta - Algodón")
    selection = SaveSelection(tags=False, about=False)

    outcome = await save_generated_content(make_client(admin=admin), store, product, CONTENT, selection)

    assert outcome.saved == ["description"]
    assert len(admin.calls) == 1
    assert store.overrides == []


@pytest.mark.asyncio
async def test_generated_batch_patches_cache_for_saved_products(make_client, cache):
    products = [_product(1), _product(2)]
    await cache.set(products, complete=False)
    admin = FakeAdmin(failing={"2"})

    result = await save_generated_batch(
        make_client(admin=admin),
        RecordingStore(),
        cache,
        [(product, CONTENT) for product in products],
        selection=SaveSelection(about=False, description=False),
    )

    assert result.succeeded_ids == ["gid://shopify/Product/1"]
    assert result.failed_ids == ["gid://shopify/Product/2"]
    first, second = (await cache.peek()).products
    assert first.title == "Camiseta - Algodón"
    assert "Gender:Unisex" in first.tags
    assert second.title == "Product 2"


def test_renamed_variant_values_only_lists_changes():
    product = _product(1, variants=3)

    changes = renamed_variant_values(product, {"S": "Pequeña", "M": "Mediana", "L": ""})

    assert changes == {
        "gid://shopify/ProductVariant/100": {"option1": "Pequeña"},
        "gid://shopify/ProductVariant/101": {"option1": "Mediana"},
    }


@pytest.mark.asyncio
async def test_option_rename_updates_names_once_then_values(make_client, cache):
    product = _product(1, variants=3)
    await cache.set([product], complete=True)
    admin = FakeAdmin(failing={"101"})

    result = await rename_option_values(
        make_client(admin=admin),
        cache,
        product,
        {"Size": "Talla"},
        {"S": "Pequeña", "M": "Mediana"},
    )

    paths = admin.paths("PUT")
    assert paths[0] == "/admin/api/2025-01/products/1.json"
    assert sorted(paths[1:]) == ["/admin/api/2025-01/variants/100.json", "/admin/api/2025-01/variants/101.json"]
    assert admin.calls[0][2]["product"]["options"] == [{"id": "1", "name": "Talla"}]
    bodies = {path: body for _, path, body in admin.calls}
    assert bodies["/admin/api/2025-01/variants/100.json"] == {"variant": {"id": "100", "option1": "Pequeña"}}
    assert result.failed_ids == ["gid://shopify/ProductVariant/101"]

    [cached] = (await cache.peek()).products
    assert cached.options[0].name == "Talla"
    assert cached.variant("100").selected_options == (("Talla", "Pequeña"),)
    assert cached.variant("101").selected_options == (("Talla", "M"),)
    assert cached.variant("102").selected_options == (("Talla", "L"),)


@pytest.mark.asyncio
async def test_option_rename_without_name_change_skips_option_update(make_client):
    admin = FakeAdmin()
    product = _product(1, variants=2)

    result = await rename_option_values(make_client(admin=admin), None, product, {}, {"M": "Mediana"})

    assert admin.paths("PUT") == ["/admin/api/2025-01/variants/101.json"]
    assert result.succeeded_ids == ["gid://shopify/ProductVariant/101"]
