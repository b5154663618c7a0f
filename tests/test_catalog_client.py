import json

import httpx
import pytest

from catalog_sync.catalog.client import CatalogClient, CheckoutLine
from catalog_sync.errors import CatalogFetchFailed, MutationFailed, NotFound

from conftest import ADMIN_URL, STOREFRONT_URL, FakeAdmin, FakeStorefront


def _client_with(handler) -> CatalogClient:
    return CatalogClient(
        storefront_url=STOREFRONT_URL,
        storefront_token="storefront-token",
        admin_url=ADMIN_URL,
        admin_token="admin-token",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_price_update_uses_bare_variant_id(make_client):
    admin = FakeAdmin()
    client = make_client(admin=admin)

    await client.update_price("gid://shopify/Product/1", "gid://shopify/ProductVariant/100", "19.90")

    method, path, body = admin.calls[0]
    assert method == "PUT"
    assert path == "/admin/api/2025-01/variants/100.json"
    assert body == {"variant": {"id": "100", "price": "19.90"}}


@pytest.mark.asyncio
async def test_title_and_tags_updates_target_product(make_client):
    admin = FakeAdmin()
    client = make_client(admin=admin)

    await client.update_title("gid://shopify/Product/7", "Camiseta | Algodón")
    await client.update_tags("7", ["Gender:Mujer", "Highlight:Nuevo"])

    assert admin.paths("PUT") == ["/admin/api/2025-01/products/7.json"] * 2
    assert admin.calls[0][2] == {"product": {"id": "7", "title": "Camiseta | Algodón"}}
    assert admin.calls[1][2] == {"product": {"id": "7", "tags": "Gender:Mujer,Highlight:Nuevo"}}


@pytest.mark.asyncio
async def test_admin_requests_carry_access_token():
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={})

    await _client_with(handler).update_title("1", "New")

    assert seen[0].headers["X-Shopify-Access-Token"] == "admin-token"


@pytest.mark.asyncio
async def test_write_errors_are_classified():
    client = _client_with(lambda request: httpx.Response(404))
    with pytest.raises(NotFound):
        await client.update_title("gid://shopify/Product/9", "Missing")

    client = _client_with(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(MutationFailed) as excinfo:
        await client.update_price("1", "gid://shopify/ProductVariant/100", "1.00")
    assert excinfo.value.item_id == "gid://shopify/ProductVariant/100"
    assert not excinfo.value.timed_out


@pytest.mark.asyncio
async def test_write_timeout_is_reported_as_timed_out():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    with pytest.raises(MutationFailed) as excinfo:
        await _client_with(handler).update_description("5", "<p>x</p>")

    assert excinfo.value.timed_out
    assert excinfo.value.item_id == "5"


@pytest.mark.asyncio
async def test_product_by_handle(make_client):
    client = make_client(FakeStorefront(total=3))

    product = await client.get_product_by_handle("product-2")

    assert product.key == "2"
    assert product.variants[0].price.currency == "EUR"
    with pytest.raises(NotFound):
        await client.get_product_by_handle("nope")


@pytest.mark.asyncio
async def test_non_json_storefront_reply_is_fetch_failure():
    client = _client_with(lambda request: httpx.Response(200, text="<html>maintenance</html>"))

    with pytest.raises(CatalogFetchFailed):
        await client.list_products(10)


@pytest.mark.asyncio
async def test_checkout_url_gets_online_store_channel():
    captured: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(json.loads(request.content))
        return httpx.Response(
            200,
            json={
                "data": {
                    "cartCreate": {
                        "cart": {"id": "c1", "checkoutUrl": "https://shop.test/cart/c/abc?key=1"},
                        "userErrors": [],
                    }
                }
            },
        )

    url = await _client_with(handler).create_checkout([CheckoutLine("gid://shopify/ProductVariant/100", 2)])

    assert url == "https://shop.test/cart/c/abc?key=1&channel=online_store"
    assert captured[0]["variables"]["input"]["lines"] == [
        {"quantity": 2, "merchandiseId": "gid://shopify/ProductVariant/100"}
    ]


@pytest.mark.asyncio
async def test_checkout_user_errors_fail():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"data": {"cartCreate": {"cart": None, "userErrors": [{"field": "lines", "message": "Sold out"}]}}},
        )

    with pytest.raises(MutationFailed, match="Sold out"):
        await _client_with(handler).create_checkout([CheckoutLine("gid://shopify/ProductVariant/100")])


@pytest.mark.asyncio
async def test_image_and_product_removal_paths(make_client):
    admin = FakeAdmin()
    client = make_client(admin=admin)

    await client.add_image("gid://shopify/Product/3", "https://cdn.test/new.jpg", "front")
    await client.delete_image("3", "gid://shopify/ProductImage/77")
    await client.delete_product("gid://shopify/Product/3")

    assert admin.calls == [
        ("POST", "/admin/api/2025-01/products/3/images.json", {"image": {"src": "https://cdn.test/new.jpg", "alt": "front"}}),
        ("DELETE", "/admin/api/2025-01/products/3/images/77.json", None),
        ("DELETE", "/admin/api/2025-01/products/3.json", None),
    ]
