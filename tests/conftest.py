"""Test configuration helpers."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Callable

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from catalog_sync.catalog.cache import CatalogCache  # noqa: E402
from catalog_sync.catalog.client import CatalogClient  # noqa: E402
from catalog_sync.db.models import Base  # noqa: E402
from catalog_sync.db.session import build_session_factory  # noqa: E402
from catalog_sync.overrides import OverrideStore  # noqa: E402

STOREFRONT_URL = "https://shop.test/api/2025-07/graphql.json"
ADMIN_URL = "https://shop.test/admin/api/2025-01"


def pytest_configure(config: pytest.Config) -> None:
    """Register the asyncio marker for the lightweight runner below."""

    config.addinivalue_line("markers", "asyncio: execute the test inside an event loop")


@pytest.hookimpl(tryfirst=True)
def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute ``@pytest.mark.asyncio`` tests without requiring pytest-asyncio."""

    marker = pyfuncitem.get_closest_marker("asyncio")
    if marker is None:
        return None

    func = pyfuncitem.obj
    if not asyncio.iscoroutinefunction(func):
        return None

    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        argnames = pyfuncitem._fixtureinfo.argnames
        loop.run_until_complete(func(**{name: pyfuncitem.funcargs[name] for name in argnames}))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True


def product_node(
    number: int,
    *,
    title: str | None = None,
    price: str = "10.00",
    variants: int = 1,
    tags: tuple[str, ...] = (),
    description_html: str = "",
) -> dict[str, Any]:
    """Storefront ``Product`` node as the GraphQL API returns it."""

    return {
        "id": f"gid://shopify/Product/{number}",
        "title": title or f"Product {number}",
        "handle": f"product-{number}",
        "description": "",
        "descriptionHtml": description_html,
        "productType": "",
        "tags": list(tags),
        "priceRange": {"minVariantPrice": {"amount": price, "currencyCode": "EUR"}},
        "images": {"edges": [{"node": {"id": f"gid://shopify/ProductImage/{number}", "url": f"https://cdn.test/{number}.jpg", "altText": None}}]},
        "variants": {
            "edges": [
                {
                    "node": {
                        "id": f"gid://shopify/ProductVariant/{number}{index:02d}",
                        "title": size,
                        "price": {"amount": price, "currencyCode": "EUR"},
                        "availableForSale": True,
                        "selectedOptions": [{"name": "Size", "value": size}],
                    }
                }
                for index, size in enumerate(["S", "M", "L", "XL", "XXL"][:variants])
            ]
        },
        "options": [
            {
                "id": f"gid://shopify/ProductOption/{number}",
                "name": "Size",
                "values": ["S", "M", "L", "XL", "XXL"][:variants],
            }
        ],
    }


class FakeStorefront:
    """Callable for ``httpx.MockTransport`` serving a cursor-paginated catalog."""

    def __init__(self, total: int, **node_options: Any) -> None:
        self.nodes = [product_node(number, **node_options) for number in range(1, total + 1)]
        self.requests: list[dict[str, Any]] = []
        self.fail_with: Callable[[httpx.Request], httpx.Response] | None = None

    @property
    def list_requests(self) -> list[dict[str, Any]]:
        return [body for body in self.requests if "products(" in body["query"]]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        self.requests.append(body)
        if self.fail_with is not None:
            return self.fail_with(request)
        variables = body.get("variables") or {}
        query = body["query"]
        if "products(" in query:
            start = int(variables.get("after") or 0)
            nodes = self.nodes
            if variables.get("query"):
                nodes = [node for node in nodes if variables["query"].lower() in node["title"].lower()]
            chunk = nodes[start : start + int(variables["first"])]
            end = start + len(chunk)
            return httpx.Response(
                200,
                json={
                    "data": {
                        "products": {
                            "pageInfo": {"hasNextPage": end < len(nodes), "endCursor": str(end) if chunk else None},
                            "edges": [{"node": node} for node in chunk],
                        }
                    }
                },
            )
        if "product(id" in query:
            found = next((node for node in self.nodes if node["id"] == variables["id"]), None)
            return httpx.Response(200, json={"data": {"product": found}})
        if "product(handle" in query:
            found = next((node for node in self.nodes if node["handle"] == variables["handle"]), None)
            return httpx.Response(200, json={"data": {"product": found}})
        return httpx.Response(400, json={"errors": [{"message": "unsupported"}]})


class FakeAdmin:
    """Records admin REST writes; ids listed in ``failing`` answer with HTTP 500."""

    def __init__(self, failing: set[str] | None = None) -> None:
        self.failing = failing or set()
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content) if request.content else None
        path = request.url.path
        self.calls.append((request.method, path, body))
        resource_id = path.rsplit("/", 1)[-1].removesuffix(".json")
        if resource_id in self.failing:
            return httpx.Response(500, text="upstream error")
        return httpx.Response(200, json=body or {})

    def paths(self, method: str | None = None) -> list[str]:
        return [path for call_method, path, _ in self.calls if method in (None, call_method)]


def make_transport(storefront: FakeStorefront | None = None, admin: FakeAdmin | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.startswith("/admin/"):
            assert admin is not None, "unexpected admin call"
            return admin(request)
        assert storefront is not None, "unexpected storefront call"
        return storefront(request)

    return httpx.MockTransport(handler)


@pytest.fixture
def make_client() -> Callable[..., CatalogClient]:
    def factory(storefront: FakeStorefront | None = None, admin: FakeAdmin | None = None) -> CatalogClient:
        return CatalogClient(
            storefront_url=STOREFRONT_URL,
            storefront_token="storefront-token",
            admin_url=ADMIN_URL,
            admin_token="admin-token",
            transport=make_transport(storefront, admin),
        )

    return factory


class FakeClock:
    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CatalogCache:
    return CatalogCache(ttl=300.0, clock=clock)


class StoreManager:
    """In-memory override store with the schema created on entry."""

    def __init__(self) -> None:
        self._engine = create_async_engine(
            "sqlite+aiosqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        self.session_factory = build_session_factory(self._engine)

    async def __aenter__(self) -> OverrideStore:
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        return OverrideStore(self.session_factory)

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self._engine.dispose()


@pytest.fixture
def store_manager() -> Callable[[], StoreManager]:
    return StoreManager
