"""Bulk edit flows built on the batch executor.

Catalog writes are never retried automatically; failures are reported per
item and successful items are patched into the cached catalog in place.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from catalog_sync.batch import BatchResult, ProgressCallback, run_batch
from catalog_sync.catalog.cache import CatalogCache, ProductPatch
from catalog_sync.catalog.client import CatalogClient
from catalog_sync.catalog.models import CatalogProduct, Money, ProductOption
from catalog_sync.config import settings
from catalog_sync.generation import ContentGenerator, GeneratedContent
from catalog_sync.identity import normalize
from catalog_sync.overrides import OverrideStore

log = logging.getLogger("batch")

GENDER_TAG_PREFIX = "Gender:"
HIGHLIGHT_TAG_PREFIX = "Highlight:"
LEGACY_GENDER_TAGS = frozenset({"Hombre", "Mujer", "Unisex", "Niños"})

_IMG_TAG_RE = re.compile(r"<img[^>]+>", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    product_id: str
    variant_id: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class SaveSelection:
    title: bool = True
    subtitle: bool = True
    tags: bool = True
    about: bool = True
    description: bool = True


@dataclass(slots=True)
class SaveOutcome:
    product_id: str
    saved: list[str] = field(default_factory=list)
    product: CatalogProduct | None = None


# ---------------------------------------------------------------- prices


def _price_patch(updates: Sequence[PriceUpdate]) -> ProductPatch:
    def apply(product: CatalogProduct) -> CatalogProduct:
        for update in updates:
            variant = product.variant(update.variant_id)
            if variant is None:
                continue
            price = Money(amount=Decimal(update.amount), currency=variant.price.currency)
            product = product.with_variant(replace(variant, price=price))
        return product

    return apply


async def bulk_update_prices(
    client: CatalogClient,
    cache: CatalogCache | None,
    updates: Sequence[PriceUpdate],
    *,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[dict]:
    """Write variant prices; patch the cache only for the variants that succeeded.

    Several updates for one variant collapse into the last of them.
    """

    latest: dict[str, PriceUpdate] = {}
    for update in updates:
        latest[normalize(update.variant_id)] = update
    updates = list(latest.values())
    items = [
        (update.variant_id, _price_op(client, update))
        for update in updates
    ]
    result = await run_batch(
        items,
        concurrency_limit=concurrency_limit,
        on_progress=on_progress,
        label="prices",
    )

    succeeded = set(result.succeeded_ids)
    by_product: dict[str, list[PriceUpdate]] = defaultdict(list)
    for update in updates:
        if update.variant_id in succeeded:
            by_product[normalize(update.product_id)].append(update)
    if cache is not None and by_product:
        await cache.patch({product_id: _price_patch(group) for product_id, group in by_product.items()})
    return result


def _price_op(client: CatalogClient, update: PriceUpdate):
    async def op() -> dict:
        return await client.update_price(update.product_id, update.variant_id, f"{Decimal(update.amount):.2f}")

    return op


# ------------------------------------------------------------------ tags


async def bulk_toggle_tag(
    store: OverrideStore,
    product_ids: Iterable[str],
    tag_id: int,
    *,
    assign: bool,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[bool]:
    """Assign or remove one tag across many products in the override store."""

    def make_op(product_id: str):
        async def op() -> bool:
            if assign:
                return await store.assign_tag(product_id, tag_id)
            return await store.remove_tag(product_id, tag_id)

        return op

    items = [(normalize(product_id), make_op(product_id)) for product_id in dict.fromkeys(product_ids)]
    return await run_batch(
        items,
        concurrency_limit=concurrency_limit,
        on_progress=on_progress,
        label="tags",
    )


# ------------------------------------------------------- generated content


async def generate_batch(
    generator: ContentGenerator,
    products: Sequence[CatalogProduct],
    *,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[GeneratedContent]:
    def make_op(product: CatalogProduct):
        async def op() -> GeneratedContent:
            return await generator.generate(product)

        return op

    items = [(product.id, make_op(product)) for product in products]
    return await run_batch(
        items,
        concurrency_limit=concurrency_limit,
        on_progress=on_progress,
        label="generation",
    )


def rewrite_catalog_tags(tags: Iterable[str], gender: str = "", highlight: str = "") -> list[str]:
    """Replace ``Gender:``/``Highlight:`` tags, dropping bare legacy gender tags."""

    kept = [
        tag
        for tag in tags
        if not tag.startswith(GENDER_TAG_PREFIX)
        and not tag.startswith(HIGHLIGHT_TAG_PREFIX)
        and tag not in LEGACY_GENDER_TAGS
    ]
    if gender:
        kept.append(f"{GENDER_TAG_PREFIX}{gender}")
    if highlight:
        kept.append(f"{HIGHLIGHT_TAG_PREFIX}{highlight}")
    return kept


def build_description_html(description: str, original_html: str = "") -> str:
    """Wrap generated HTML and carry over images from the previous description."""

    html = f'<div class="product-detailed-description">\n{description}\n</div>'
    images = [tag for tag in _IMG_TAG_RE.findall(original_html or "") if tag not in html]
    if images:
        html += (
            '\n<div class="product-original-images" style="margin-top: 30px;">\n'
            + "<br/>".join(images)
            + "\n</div>"
        )
    return html


def clean_about(text: str) -> str:
    return text.replace("**", "").strip()


async def save_generated_content(
    client: CatalogClient,
    store: OverrideStore,
    product: CatalogProduct,
    content: GeneratedContent,
    selection: SaveSelection = SaveSelection(),
) -> SaveOutcome:
    """Write generated copy: catalog title, tags and description, override "about".

    Steps run in order and each is its own round-trip; a failure leaves the
    earlier steps applied.
    """

    outcome = SaveOutcome(product_id=product.id)
    updated = product

    if selection.title and content.title:
        title = content.title
        if selection.subtitle and content.subtitle:
            title = f"{content.title}{settings.TITLE_SEPARATOR}{content.subtitle}"
        if title != product.title:
            await client.update_title(product.id, title)
            updated = replace(updated, title=title)
            outcome.saved.append("title")

    if selection.tags:
        tags = rewrite_catalog_tags(product.tags, content.gender, content.highlight)
        await client.update_tags(product.id, tags)
        updated = replace(updated, tags=tuple(tags))
        outcome.saved.append("tags")

    about = clean_about(content.about)
    if selection.about and about:
        await store.upsert_override(product.id, description=about)
        outcome.saved.append("about")

    if selection.description and content.description:
        html = build_description_html(content.description, product.description_html or product.description)
        await client.update_description(product.id, html)
        updated = replace(updated, description_html=html)
        outcome.saved.append("description")

    outcome.product = updated
    return outcome


async def save_generated_batch(
    client: CatalogClient,
    store: OverrideStore,
    cache: CatalogCache | None,
    items: Sequence[tuple[CatalogProduct, GeneratedContent]],
    *,
    selection: SaveSelection = SaveSelection(),
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[SaveOutcome]:
    def make_op(product: CatalogProduct, content: GeneratedContent):
        async def op() -> SaveOutcome:
            return await save_generated_content(client, store, product, content, selection)

        return op

    result = await run_batch(
        [(product.id, make_op(product, content)) for product, content in items],
        concurrency_limit=concurrency_limit,
        on_progress=on_progress,
        label="generated-save",
    )
    if cache is not None:
        patches: dict[str, ProductPatch] = {}
        for product_id in result.succeeded_ids:
            saved = result.results[product_id].product
            if saved is not None:
                patches[product_id] = _replace_with(saved)
        await cache.patch(patches)
    return result


def _replace_with(saved: CatalogProduct) -> ProductPatch:
    def apply(product: CatalogProduct) -> CatalogProduct:
        return replace(product, title=saved.title, tags=saved.tags, description_html=saved.description_html)

    return apply


# --------------------------------------------------------- option renames


def renamed_variant_values(
    product: CatalogProduct, value_map: Mapping[str, str]
) -> dict[str, dict[str, str]]:
    """``{variant_id: {"option1": new, ...}}`` for variants whose values change.

    ``optionN`` follows the order of the product's option definitions.
    """

    changes: dict[str, dict[str, str]] = {}
    for variant in product.variants:
        updates: dict[str, str] = {}
        for index, option in enumerate(product.options, start=1):
            current = variant.option_value(option.name)
            if not current:
                continue
            new_value = value_map.get(current) or current
            if new_value != current:
                updates[f"option{index}"] = new_value
        if updates:
            changes[variant.id] = updates
    return changes


def _renamed_product(
    product: CatalogProduct,
    name_map: Mapping[str, str],
    value_map: Mapping[str, str],
    skip_variants: Iterable[str] = (),
) -> CatalogProduct:
    skipped = {normalize(variant_id) for variant_id in skip_variants}

    def value_for(variant_id: str, value: str) -> str:
        if normalize(variant_id) in skipped:
            return value
        return value_map.get(value) or value

    options = tuple(
        ProductOption(
            name=name_map.get(option.name) or option.name,
            values=tuple(value_map.get(value) or value for value in option.values),
            id=option.id,
        )
        for option in product.options
    )
    variants = tuple(
        replace(
            variant,
            selected_options=tuple(
                (name_map.get(name) or name, value_for(variant.id, value))
                for name, value in variant.selected_options
            ),
        )
        for variant in product.variants
    )
    return replace(product, options=options, variants=variants)


async def rename_option_values(
    client: CatalogClient,
    cache: CatalogCache | None,
    product: CatalogProduct,
    name_map: Mapping[str, str],
    value_map: Mapping[str, str],
    *,
    concurrency_limit: int | None = None,
    on_progress: ProgressCallback | None = None,
) -> BatchResult[dict]:
    """Rename option names (one call, only if any changed), then variant values in chunks."""

    new_options = [
        {"id": option.id, "name": name_map.get(option.name) or option.name}
        for option in product.options
    ]
    if any(new["name"] != option.name for new, option in zip(new_options, product.options)):
        await client.update_options(product.id, new_options)
        log.info("option names updated product=%s", product.id)

    changes = renamed_variant_values(product, value_map)

    def make_op(variant_id: str, values: dict[str, str]):
        async def op() -> dict:
            return await client.update_variant(product.id, variant_id, values)

        return op

    result = await run_batch(
        [(variant_id, make_op(variant_id, values)) for variant_id, values in changes.items()],
        concurrency_limit=concurrency_limit,
        on_progress=on_progress,
        label="option-values",
    )

    if cache is not None:
        renamed = _renamed_product(product, name_map, value_map, skip_variants=result.failed_ids)
        await cache.patch({product.id: lambda _current: renamed})
    return result


__all__ = [
    "PriceUpdate",
    "SaveOutcome",
    "SaveSelection",
    "build_description_html",
    "bulk_toggle_tag",
    "bulk_update_prices",
    "clean_about",
    "generate_batch",
    "rename_option_values",
    "renamed_variant_values",
    "rewrite_catalog_tags",
    "save_generated_batch",
    "save_generated_content",
]
