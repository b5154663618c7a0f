"""Client for the external catalog service.

Reads go through the storefront GraphQL endpoint; writes go through the admin
REST endpoint, which is keyed by bare numeric ids.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Sequence
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import httpx

from catalog_sync.catalog.models import CatalogProduct
from catalog_sync.config import settings
from catalog_sync.errors import CatalogFetchFailed, MutationFailed, NotFound, RequestTimeout
from catalog_sync.http_client import async_http_client
from catalog_sync.identity import namespaced, normalize

log = logging.getLogger("catalog")

_PRODUCT_FIELDS = """
  id
  title
  handle
  description
  descriptionHtml
  productType
  tags
  priceRange { minVariantPrice { amount currencyCode } }
  images(first: 20) { edges { node { id url altText } } }
  variants(first: 100) {
    edges {
      node {
        id
        title
        price { amount currencyCode }
        availableForSale
        selectedOptions { name value }
      }
    }
  }
  options { id name values }
"""

PRODUCTS_QUERY = (
    """
query GetProducts($first: Int!, $after: String, $query: String) {
  products(first: $first, after: $after, query: $query) {
    pageInfo { hasNextPage endCursor }
    edges { node {"""
    + _PRODUCT_FIELDS
    + """} }
  }
}
"""
)

PRODUCT_BY_ID_QUERY = "query GetProduct($id: ID!) { product(id: $id) {" + _PRODUCT_FIELDS + "} }"

PRODUCT_BY_HANDLE_QUERY = (
    "query GetProductByHandle($handle: String!) { product(handle: $handle) {" + _PRODUCT_FIELDS + "} }"
)

CART_CREATE_MUTATION = """
mutation cartCreate($input: CartInput!) {
  cartCreate(input: $input) {
    cart { id checkoutUrl }
    userErrors { field message }
  }
}
"""


@dataclass(frozen=True, slots=True)
class CatalogPage:
    products: list[CatalogProduct]
    next_cursor: str | None
    has_more: bool


@dataclass(frozen=True, slots=True)
class CheckoutLine:
    variant_id: str
    quantity: int = 1


class CatalogClient:
    """Request/response access to the catalog service."""

    def __init__(
        self,
        *,
        storefront_url: str | None = None,
        storefront_token: str | None = None,
        admin_url: str | None = None,
        admin_token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._storefront_url = storefront_url or settings.CATALOG_STOREFRONT_URL
        self._storefront_token = storefront_token if storefront_token is not None else settings.CATALOG_STOREFRONT_TOKEN
        self._admin_url = (admin_url or settings.CATALOG_ADMIN_URL).rstrip("/")
        self._admin_token = admin_token if admin_token is not None else settings.CATALOG_ADMIN_TOKEN
        self._transport = transport

    # ------------------------------------------------------------------ reads

    async def list_products(
        self,
        count: int,
        cursor: str | None = None,
        query: str | None = None,
        *,
        timeout: float | None = None,
    ) -> CatalogPage:
        variables: dict[str, Any] = {"first": count, "after": cursor, "query": query}
        data = await self._storefront(PRODUCTS_QUERY, variables, operation="listProducts", timeout=timeout)
        try:
            connection = data["products"]
            page_info = connection.get("pageInfo") or {}
            products = [CatalogProduct.from_payload(edge["node"]) for edge in connection.get("edges") or []]
        except (KeyError, TypeError, ValueError, AttributeError) as exc:
            raise CatalogFetchFailed(f"malformed products page: {exc}") from exc
        has_more = bool(page_info.get("hasNextPage"))
        next_cursor = page_info.get("endCursor") if has_more else None
        return CatalogPage(products=products, next_cursor=next_cursor, has_more=has_more and bool(next_cursor))

    async def get_product(self, product_id: str, *, timeout: float | None = None) -> CatalogProduct:
        data = await self._storefront(
            PRODUCT_BY_ID_QUERY, {"id": namespaced(product_id)}, operation="getProduct", timeout=timeout
        )
        return self._single_product(data, product_id)

    async def get_product_by_handle(self, handle: str, *, timeout: float | None = None) -> CatalogProduct:
        data = await self._storefront(
            PRODUCT_BY_HANDLE_QUERY, {"handle": handle}, operation="getProductByHandle", timeout=timeout
        )
        return self._single_product(data, handle)

    @staticmethod
    def _single_product(data: Mapping[str, Any], identity: str) -> CatalogProduct:
        node = data.get("product") if isinstance(data, Mapping) else None
        if node is None:
            raise NotFound(identity)
        try:
            return CatalogProduct.from_payload(node)
        except (KeyError, TypeError, ValueError) as exc:
            raise CatalogFetchFailed(f"malformed product {identity}: {exc}") from exc

    # ---------------------------------------------------------------- writes

    async def update_title(self, product_id: str, title: str) -> dict[str, Any]:
        bare = normalize(product_id)
        return await self._admin("PUT", f"/products/{bare}.json", product_id, {"product": {"id": bare, "title": title}})

    async def update_description(self, product_id: str, html: str) -> dict[str, Any]:
        bare = normalize(product_id)
        body = {"product": {"id": bare, "body_html": html}}
        return await self._admin("PUT", f"/products/{bare}.json", product_id, body)

    async def update_tags(self, product_id: str, tags: Iterable[str]) -> dict[str, Any]:
        bare = normalize(product_id)
        body = {"product": {"id": bare, "tags": ",".join(tags)}}
        return await self._admin("PUT", f"/products/{bare}.json", product_id, body)

    async def update_options(self, product_id: str, options: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        bare = normalize(product_id)
        payload = [
            {key: (normalize(value) if key == "id" and value else value) for key, value in option.items()}
            for option in options
        ]
        body = {"product": {"id": bare, "options": payload}}
        return await self._admin("PUT", f"/products/{bare}.json", product_id, body)

    async def update_price(self, product_id: str, variant_id: str, amount: Any) -> dict[str, Any]:
        bare_variant = normalize(variant_id)
        body = {"variant": {"id": bare_variant, "price": str(amount)}}
        return await self._admin("PUT", f"/variants/{bare_variant}.json", variant_id, body)

    async def update_variant(
        self, product_id: str, variant_id: str, option_values: Mapping[str, str]
    ) -> dict[str, Any]:
        """Write ``option1``/``option2``/``option3`` style values for one variant."""

        bare_variant = normalize(variant_id)
        body = {"variant": {"id": bare_variant, **dict(option_values)}}
        return await self._admin("PUT", f"/variants/{bare_variant}.json", variant_id, body)

    async def add_image(self, product_id: str, url: str, alt_text: str | None = None) -> dict[str, Any]:
        bare = normalize(product_id)
        body = {"image": {"src": url, "alt": alt_text}}
        return await self._admin("POST", f"/products/{bare}/images.json", product_id, body)

    async def delete_image(self, product_id: str, image_id: str) -> dict[str, Any]:
        bare = normalize(product_id)
        return await self._admin("DELETE", f"/products/{bare}/images/{normalize(image_id)}.json", image_id)

    async def delete_product(self, product_id: str) -> dict[str, Any]:
        return await self._admin("DELETE", f"/products/{normalize(product_id)}.json", product_id)

    async def create_checkout(self, lines: Sequence[CheckoutLine]) -> str:
        variables = {
            "input": {
                "lines": [
                    {"quantity": line.quantity, "merchandiseId": line.variant_id}
                    for line in lines
                ]
            }
        }
        try:
            data = await self._storefront(CART_CREATE_MUTATION, variables, operation="createCheckout")
        except CatalogFetchFailed as exc:
            raise MutationFailed("checkout", str(exc), cause=exc) from exc
        result = data.get("cartCreate") or {}
        errors = result.get("userErrors") or []
        if errors:
            message = ", ".join(str(error.get("message")) for error in errors)
            raise MutationFailed("checkout", f"cart creation failed: {message}")
        checkout_url = (result.get("cart") or {}).get("checkoutUrl")
        if not checkout_url:
            raise MutationFailed("checkout", "no checkout URL returned")
        return _with_query_param(checkout_url, "channel", "online_store")

    # ------------------------------------------------------------- transport

    async def _storefront(
        self,
        query: str,
        variables: Mapping[str, Any],
        *,
        operation: str,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        timeout = timeout or settings.CATALOG_SINGLE_PAGE_TIMEOUT
        headers = {
            "Content-Type": "application/json",
            "X-Shopify-Storefront-Access-Token": self._storefront_token,
        }
        try:
            response = await self._send(
                "POST",
                self._storefront_url,
                timeout=timeout,
                headers=headers,
                json={"query": query, "variables": dict(variables)},
            )
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            raise RequestTimeout(operation, timeout) from exc
        except httpx.HTTPError as exc:
            raise CatalogFetchFailed(f"{operation}: {exc}") from exc

        if response.status_code == 402:
            raise CatalogFetchFailed(f"{operation}: payment required by catalog service")
        if response.is_error:
            raise CatalogFetchFailed(f"{operation}: HTTP {response.status_code}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise CatalogFetchFailed(f"{operation}: invalid JSON response") from exc
        if not isinstance(payload, dict):
            raise CatalogFetchFailed(f"{operation}: unexpected response shape")
        if payload.get("errors"):
            messages = ", ".join(str(error.get("message")) for error in payload["errors"])
            raise CatalogFetchFailed(f"{operation}: {messages}")
        data = payload.get("data")
        if not isinstance(data, dict):
            raise CatalogFetchFailed(f"{operation}: response has no data")
        return data

    async def _admin(
        self,
        method: str,
        path: str,
        item_id: str,
        body: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        timeout = settings.CATALOG_MUTATION_TIMEOUT
        headers = {"Content-Type": "application/json", "X-Shopify-Access-Token": self._admin_token}
        kwargs: dict[str, Any] = {"headers": headers}
        if body is not None and method != "DELETE":
            kwargs["json"] = dict(body)
        try:
            response = await self._send(method, f"{self._admin_url}{path}", timeout=timeout, **kwargs)
        except (httpx.TimeoutException, asyncio.TimeoutError) as exc:
            timed_out = RequestTimeout(f"{method} {path}", timeout)
            raise MutationFailed(item_id, str(timed_out), cause=timed_out) from exc
        except httpx.HTTPError as exc:
            raise MutationFailed(item_id, str(exc), cause=exc) from exc

        if response.status_code == 404:
            raise NotFound(item_id)
        if response.is_error:
            log.warning("catalog write failed method=%s path=%s status=%s", method, path, response.status_code)
            raise MutationFailed(item_id, f"HTTP {response.status_code}: {response.text[:200]}")
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def _send(self, method: str, url: str, *, timeout: float, **kwargs: Any) -> httpx.Response:
        options = {"transport": self._transport} if self._transport is not None else None
        async with async_http_client(timeout=timeout, additional_options=options) as client:
            return await asyncio.wait_for(client.request(method, url, **kwargs), timeout=timeout)


def _with_query_param(url: str, key: str, value: str) -> str:
    parts = urlsplit(url)
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


__all__ = ["CatalogClient", "CatalogPage", "CheckoutLine"]
