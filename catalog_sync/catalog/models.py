"""Read-only catalog records as returned by the storefront API."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping

from catalog_sync.identity import matches, normalize


def _edges(connection: Any) -> list[dict[str, Any]]:
    """Unwrap ``{"edges": [{"node": ...}]}`` (or ``{"nodes": [...]}``)."""

    if connection is None:
        return []
    if isinstance(connection, list):
        return [item for item in connection if isinstance(item, dict)]
    if not isinstance(connection, Mapping):
        raise ValueError("connection must be an object")
    if "nodes" in connection:
        return [node for node in connection["nodes"] or [] if isinstance(node, dict)]
    edges = connection.get("edges") or []
    return [edge["node"] for edge in edges if isinstance(edge, dict) and isinstance(edge.get("node"), dict)]


def _decimal(value: Any) -> Decimal:
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"invalid amount: {value!r}") from exc


@dataclass(frozen=True, slots=True)
class Money:
    amount: Decimal
    currency: str = "USD"

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "Money":
        return cls(amount=_decimal(data["amount"]), currency=str(data.get("currencyCode") or "USD"))

    def to_payload(self) -> dict[str, str]:
        return {"amount": f"{self.amount:.2f}", "currencyCode": self.currency}


@dataclass(frozen=True, slots=True)
class CatalogImage:
    url: str
    alt_text: str | None = None
    id: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "CatalogImage":
        return cls(url=str(data["url"]), alt_text=data.get("altText"), id=data.get("id"))


@dataclass(frozen=True, slots=True)
class ProductOption:
    name: str
    values: tuple[str, ...] = ()
    id: str | None = None

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "ProductOption":
        return cls(
            name=str(data["name"]),
            values=tuple(str(value) for value in data.get("values") or ()),
            id=data.get("id"),
        )


@dataclass(frozen=True, slots=True)
class CatalogVariant:
    id: str
    title: str
    price: Money
    available: bool = True
    selected_options: tuple[tuple[str, str], ...] = ()

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "CatalogVariant":
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            price=Money.from_payload(data["price"]),
            available=bool(data.get("availableForSale", True)),
            selected_options=tuple(
                (str(opt["name"]), str(opt["value"])) for opt in data.get("selectedOptions") or ()
            ),
        )

    def option_value(self, name: str) -> str | None:
        for option_name, value in self.selected_options:
            if option_name == name:
                return value
        return None


@dataclass(frozen=True, slots=True)
class CatalogProduct:
    id: str
    title: str
    handle: str = ""
    description: str = ""
    description_html: str = ""
    product_type: str = ""
    tags: tuple[str, ...] = ()
    price_range: Money | None = None
    images: tuple[CatalogImage, ...] = ()
    variants: tuple[CatalogVariant, ...] = ()
    options: tuple[ProductOption, ...] = field(default=())

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "CatalogProduct":
        """Build a product from a storefront ``Product`` node.

        Raises ``ValueError``/``KeyError`` on malformed payloads.
        """

        if not isinstance(data, Mapping):
            raise ValueError("product node must be an object")
        price_range = data.get("priceRange") or {}
        min_price = price_range.get("minVariantPrice")
        return cls(
            id=str(data["id"]),
            title=str(data.get("title") or ""),
            handle=str(data.get("handle") or ""),
            description=str(data.get("description") or ""),
            description_html=str(data.get("descriptionHtml") or ""),
            product_type=str(data.get("productType") or ""),
            tags=tuple(str(tag) for tag in data.get("tags") or ()),
            price_range=Money.from_payload(min_price) if min_price else None,
            images=tuple(CatalogImage.from_payload(node) for node in _edges(data.get("images"))),
            variants=tuple(CatalogVariant.from_payload(node) for node in _edges(data.get("variants"))),
            options=tuple(ProductOption.from_payload(opt) for opt in data.get("options") or ()),
        )

    @property
    def key(self) -> str:
        return normalize(self.id)

    @property
    def price(self) -> Money | None:
        """Lowest variant price, falling back to the advertised price range."""

        if self.variants:
            return min((variant.price for variant in self.variants), key=lambda money: money.amount)
        return self.price_range

    def variant(self, variant_id: str) -> CatalogVariant | None:
        for variant in self.variants:
            if matches(variant.id, variant_id):
                return variant
        return None

    def with_variant(self, variant: CatalogVariant) -> "CatalogProduct":
        variants = tuple(variant if matches(item.id, variant.id) else item for item in self.variants)
        return replace(self, variants=variants)


__all__ = [
    "CatalogImage",
    "CatalogProduct",
    "CatalogVariant",
    "Money",
    "ProductOption",
]
