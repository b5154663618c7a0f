from datetime import datetime, timezone
from decimal import Decimal

import pytest

from catalog_sync.catalog.models import CatalogProduct, Money
from catalog_sync.merge import (
    compute_profit,
    filter_by_tag,
    matches_tag_filter,
    offer_badge,
    resolve,
    resolve_all,
    split_title,
)
from catalog_sync.overrides import CostRecord, OfferRecord, Overlay, OverrideRecord, TagRecord

from conftest import product_node


def _product(number: int = 1, **options) -> CatalogProduct:
    return CatalogProduct.from_payload(product_node(number, **options))


def test_price_override_applies_only_when_enabled():
    product = _product(price="10.00")
    override = OverrideRecord(product_id="1", price=Decimal("15"), price_enabled=True)

    shown = resolve(product, override)
    assert shown.price == Money(Decimal("15"), "EUR")
    assert shown.price_overridden is True

    disabled = resolve(product, OverrideRecord(product_id="1", price=Decimal("15"), price_enabled=False))
    assert disabled.price.amount == Decimal("10.00")
    assert disabled.price_overridden is False

    enabled_without_price = resolve(product, OverrideRecord(product_id="1", price_enabled=True))
    assert enabled_without_price.price.amount == Decimal("10.00")


def test_override_keyed_by_other_spelling_still_applies():
    product = _product(8123, title="Camiseta básica")
    overlay = Overlay(overrides={"8123": OverrideRecord(product_id="8123", title="Camiseta - Algodón orgánico")})

    [shown] = resolve_all([product], overlay)

    assert shown.id == "gid://shopify/Product/8123"
    assert (shown.title, shown.subtitle) == ("Camiseta", "Algodón orgánico")


def test_override_for_another_product_is_ignored():
    product = _product(1, title="Original")

    shown = resolve(product, OverrideRecord(product_id="2", title="Someone else"))

    assert shown.title == "Original"


@pytest.mark.parametrize(
    "title, separator, expected",
    [
        ("Chaqueta - Impermeable", None, ("Chaqueta", "Impermeable")),
        ("Chaqueta - Impermeable - Azul", None, ("Chaqueta", "Impermeable - Azul")),
        ("Chaqueta", None, ("Chaqueta", None)),
        (" - Solo subtitulo", None, ("- Solo subtitulo", None)),
        ("Chaqueta | Impermeable", " | ", ("Chaqueta", "Impermeable")),
        ("Chaqueta - ", None, ("Chaqueta", None)),
    ],
)
def test_split_title(title, separator, expected):
    assert split_title(title, separator) == expected


def test_catalog_title_is_split_without_override():
    shown = resolve(_product(title="Sudadera - Con capucha"))

    assert (shown.title, shown.subtitle) == ("Sudadera", "Con capucha")


def test_override_separator_and_subtitle_fallback():
    product = _product(title="Catalog title")

    custom = resolve(product, OverrideRecord(product_id="1", title="Gorra | Bordada", title_separator=" | "))
    assert (custom.title, custom.subtitle) == ("Gorra", "Bordada")

    fallback = resolve(product, OverrideRecord(product_id="1", title="Gorra", subtitle="Bordada a mano"))
    assert (fallback.title, fallback.subtitle) == ("Gorra", "Bordada a mano")


def test_override_description_takes_precedence():
    product = _product(description_html="<p>catalog</p>")

    assert resolve(product).description_html == "<p>catalog</p>"
    shown = resolve(product, OverrideRecord(product_id="1", description="Texto editorial"))
    assert shown.description == "Texto editorial"
    assert shown.description_html == "Texto editorial"


def test_offer_badge_requires_active_offer_or_discount():
    assert offer_badge(None) is None
    assert offer_badge(OfferRecord(product_id="1")) is None

    ends = datetime(2026, 12, 31, tzinfo=timezone.utc)
    badge = offer_badge(
        OfferRecord(product_id="1", offer_active=True, original_price=Decimal("25"), offer_text="Black Friday", offer_end_date=ends),
        "EUR",
    )
    assert badge.original_price == Money(Decimal("25"), "EUR")
    assert badge.text == "Black Friday"
    assert badge.ends_at == ends

    discount_only = offer_badge(OfferRecord(product_id="1", discount_percent=Decimal("30")))
    assert discount_only.discount_percent == Decimal("30")

    assert offer_badge(OfferRecord(product_id="1", offer_active=False, discount_percent=Decimal("0"))) is None


def test_promo_text_is_shown_only_when_active():
    product = _product()

    inactive = resolve(product, offer=OfferRecord(product_id="1", promo_text="Envío gratis"))
    active = resolve(product, offer=OfferRecord(product_id="1", promo_text="Envío gratis", promo_active=True))

    assert inactive.promo_text is None
    assert active.promo_text == "Envío gratis"
    assert active.has_offer is False


def test_option_aliases_rename_for_display_only():
    product = _product(variants=3)

    shown = resolve(product, aliases={"Size": "Talla"})

    assert [(option.name, option.display_name) for option in shown.options] == [("Size", "Talla")]
    assert shown.options[0].values == ("S", "M", "L")


def test_tag_filter_joins_through_either_id_spelling():
    summer = TagRecord(id=1, name="Verano", slug="verano")
    product = _product(42)

    namespaced = {"gid://shopify/Product/42": [summer]}
    bare = {"42": [summer]}

    for assignments in (namespaced, bare):
        assert matches_tag_filter(product, summer, assignments)
        assert matches_tag_filter(product, 1, assignments)
        assert matches_tag_filter(product, "verano", assignments)
        assert matches_tag_filter(product, "Verano", assignments)
    assert not matches_tag_filter(product, summer, {"43": [summer]})


def test_catalog_native_tags_only_when_requested():
    product = _product(tags=("Gender:Mujer", "Verano"))
    summer = TagRecord(id=1, name="Verano", slug="verano")

    assert not matches_tag_filter(product, summer, {})
    assert matches_tag_filter(product, summer, catalog_native=True)
    assert matches_tag_filter(product, "gender:mujer", catalog_native=True)


def test_filter_by_tag_uses_merged_tags():
    summer = TagRecord(id=1, name="Verano", slug="verano")
    overlay = Overlay(tags={"1": [summer]})
    shown = resolve_all([_product(1), _product(2)], overlay)

    assert [product.key for product in filter_by_tag(shown, "verano")] == ["1"]


def test_profit_and_margin():
    cost = CostRecord(product_id="1", product_cost=Decimal("5"), shipping_cost=Decimal("3"))

    summary = compute_profit(Money(Decimal("20"), "EUR"), cost)
    assert summary.total_cost == Decimal("8")
    assert summary.profit == Decimal("12")
    assert summary.margin == Decimal("60.00")

    assert compute_profit(Decimal("0"), cost).margin == Decimal("0")
    assert compute_profit(None, cost).profit == Decimal("-8")
    assert compute_profit(Decimal("20"), None).margin == Decimal("100.00")
    assert compute_profit(Decimal("3"), CostRecord("1", Decimal("1"), Decimal("0"))).margin == Decimal("66.67")


def test_margin_is_zero_for_non_finite_price():
    cost = CostRecord(product_id="1", product_cost=Decimal("5"), shipping_cost=Decimal("3"))

    assert compute_profit(Decimal("NaN"), cost).margin == Decimal("0")
    assert compute_profit(float("nan"), cost).margin == Decimal("0")
    assert compute_profit(Decimal("Infinity"), None).margin == Decimal("0")
