"""Display-ready products: catalog records combined with editorial overrides."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence

from catalog_sync.catalog.models import CatalogImage, CatalogProduct, CatalogVariant, Money
from catalog_sync.config import settings
from catalog_sync.identity import matches, normalize
from catalog_sync.overrides import CostRecord, OfferRecord, Overlay, OverrideRecord, TagRecord

_CENT = Decimal("0.01")
_HUNDRED = Decimal("100")


@dataclass(frozen=True, slots=True)
class DisplayOption:
    name: str
    display_name: str
    values: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class OfferBadge:
    discount_percent: Decimal | None = None
    original_price: Money | None = None
    text: str | None = None
    ends_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class ProfitSummary:
    selling_price: Decimal
    total_cost: Decimal
    profit: Decimal
    margin: Decimal


@dataclass(frozen=True, slots=True)
class DisplayProduct:
    id: str
    title: str
    subtitle: str | None
    description: str
    description_html: str
    price: Money | None
    price_overridden: bool
    tags: tuple[TagRecord, ...]
    catalog_tags: tuple[str, ...]
    images: tuple[CatalogImage, ...]
    variants: tuple[CatalogVariant, ...]
    options: tuple[DisplayOption, ...]
    offer: OfferBadge | None = None
    promo_text: str | None = None
    promo_subtext: str | None = None

    @property
    def key(self) -> str:
        return normalize(self.id)

    @property
    def has_offer(self) -> bool:
        return self.offer is not None


def split_title(title: str, separator: str | None = None) -> tuple[str, str | None]:
    """Split ``"Title - Subtitle"`` on the first separator.

    >>> split_title("Chaqueta - Impermeable")
    ('Chaqueta', 'Impermeable')
    >>> split_title("Chaqueta")
    ('Chaqueta', None)
    """

    separator = separator or settings.TITLE_SEPARATOR
    head, found, tail = title.partition(separator)
    if not found:
        return title.strip(), None
    head, tail = head.strip(), tail.strip()
    if not head:
        return title.strip(), None
    return head, tail or None


def resolve_title(product: CatalogProduct, override: OverrideRecord | None) -> tuple[str, str | None]:
    separator = (override.title_separator if override else None) or settings.TITLE_SEPARATOR
    if override is not None and override.title and override.title.strip():
        title, subtitle = split_title(override.title, separator)
        if subtitle is None and override.subtitle:
            subtitle = override.subtitle.strip() or None
        return title, subtitle
    return split_title(product.title, separator)


def resolve_price(product: CatalogProduct, override: OverrideRecord | None) -> tuple[Money | None, bool]:
    """Catalog price unless the override is enabled and carries a price."""

    catalog_price = product.price
    if override is None or not override.price_enabled or override.price is None:
        return catalog_price, False
    currency = catalog_price.currency if catalog_price else "USD"
    return Money(amount=Decimal(override.price), currency=currency), True


def offer_badge(offer: OfferRecord | None, currency: str = "USD") -> OfferBadge | None:
    if offer is None:
        return None
    if not offer.offer_active and not offer.discount_percent:
        return None
    original = Money(amount=offer.original_price, currency=currency) if offer.original_price is not None else None
    return OfferBadge(
        discount_percent=offer.discount_percent,
        original_price=original,
        text=offer.offer_text,
        ends_at=offer.offer_end_date,
    )


def display_options(product: CatalogProduct, aliases: Mapping[str, str] | None = None) -> tuple[DisplayOption, ...]:
    aliases = aliases or {}
    return tuple(
        DisplayOption(name=option.name, display_name=aliases.get(option.name) or option.name, values=option.values)
        for option in product.options
    )


def resolve(
    product: CatalogProduct,
    override: OverrideRecord | None = None,
    tags: Sequence[TagRecord] = (),
    offer: OfferRecord | None = None,
    aliases: Mapping[str, str] | None = None,
) -> DisplayProduct:
    """Combine one catalog record with its editorial data.

    Records that belong to a different product are ignored, so callers can
    pass lookups keyed by either id spelling without pre-filtering.
    """

    if override is not None and not matches(override.product_id, product.id):
        override = None
    if offer is not None and not matches(offer.product_id, product.id):
        offer = None

    title, subtitle = resolve_title(product, override)
    price, overridden = resolve_price(product, override)
    description = product.description
    description_html = product.description_html
    if override is not None and override.description:
        description = override.description
        description_html = override.description

    currency = price.currency if price else "USD"
    return DisplayProduct(
        id=product.id,
        title=title,
        subtitle=subtitle,
        description=description,
        description_html=description_html,
        price=price,
        price_overridden=overridden,
        tags=tuple(tags),
        catalog_tags=product.tags,
        images=product.images,
        variants=product.variants,
        options=display_options(product, aliases),
        offer=offer_badge(offer, currency),
        promo_text=offer.promo_text if offer and offer.promo_active else None,
        promo_subtext=offer.promo_subtext if offer and offer.promo_active else None,
    )


def resolve_all(products: Iterable[CatalogProduct], overlay: Overlay) -> list[DisplayProduct]:
    return [
        resolve(
            product,
            overlay.override_for(product.id),
            overlay.tags_for(product.id),
            overlay.offer_for(product.id),
            overlay.aliases_for(product.id),
        )
        for product in products
    ]


def _tag_matches(candidate: TagRecord, tag: TagRecord | int | str) -> bool:
    if isinstance(tag, TagRecord):
        return candidate.id == tag.id
    if isinstance(tag, int):
        return candidate.id == tag
    needle = tag.strip().lower()
    return candidate.slug == needle or candidate.name.lower() == needle


def matches_tag_filter(
    product: CatalogProduct | DisplayProduct,
    tag: TagRecord | int | str,
    assignments: Mapping[str, Sequence[TagRecord]] | None = None,
    *,
    catalog_native: bool = False,
) -> bool:
    """True when ``product`` carries ``tag``.

    Assigned tags are looked up through the identity normalizer; the
    catalog's own tag strings count only when ``catalog_native`` is set.
    """

    if catalog_native:
        needle = str(tag.name if isinstance(tag, TagRecord) else tag).strip().lower()
        native = product.catalog_tags if isinstance(product, DisplayProduct) else product.tags
        return any(value.strip().lower() == needle for value in native)

    if assignments is None:
        assigned: Iterable[TagRecord] = product.tags if isinstance(product, DisplayProduct) else ()
    else:
        assigned = [
            candidate
            for product_id, tags in assignments.items()
            if matches(product_id, product.id)
            for candidate in tags
        ]
    return any(_tag_matches(candidate, tag) for candidate in assigned)


def filter_by_tag(
    products: Iterable[DisplayProduct],
    tag: TagRecord | int | str,
    *,
    catalog_native: bool = False,
) -> list[DisplayProduct]:
    return [product for product in products if matches_tag_filter(product, tag, catalog_native=catalog_native)]


def compute_profit(selling_price: Money | Decimal | int | float | None, cost: CostRecord | None) -> ProfitSummary:
    """Profit and margin for one product; margin is 0 when the price is not positive."""

    if isinstance(selling_price, Money):
        price = selling_price.amount
    elif selling_price is None:
        price = Decimal("0")
    else:
        price = Decimal(str(selling_price))

    total_cost = cost.total if cost is not None else Decimal("0")
    profit = price - total_cost
    if price.is_finite() and price > 0:
        margin = (profit / price * _HUNDRED).quantize(_CENT, rounding=ROUND_HALF_UP)
    else:
        margin = Decimal("0")
    return ProfitSummary(selling_price=price, total_cost=total_cost, profit=profit, margin=margin)


__all__ = [
    "DisplayOption",
    "DisplayProduct",
    "OfferBadge",
    "ProfitSummary",
    "compute_profit",
    "display_options",
    "filter_by_tag",
    "matches_tag_filter",
    "offer_badge",
    "resolve",
    "resolve_all",
    "resolve_price",
    "resolve_title",
    "split_title",
]
