"""Canonical product identity shared by catalog responses and override rows.

The catalog keys everything by namespaced ids such as
``gid://shopify/Product/8123``; override rows were written with either that
form or the bare numeric tail. Every cross-source join goes through
:func:`matches` so both spellings resolve to the same product.
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from catalog_sync.config import settings

_NAMESPACED_RE = re.compile(r"^(?P<scheme>[a-z][a-z0-9+.-]*)://(?P<path>.+)/(?P<tail>[^/?#]+)(?:[?#].*)?$")


def normalize(identity: str | int | None) -> str:
    """Return the bare form of ``identity``.

    Unrecognized formats pass through unchanged, stripped of whitespace.
    """

    if identity is None:
        return ""
    value = str(identity).strip()
    match = _NAMESPACED_RE.match(value)
    if match is None:
        return value
    return match.group("tail")


def matches(a: str | int | None, b: str | int | None) -> bool:
    left = normalize(a)
    if not left:
        return False
    return left == normalize(b)


def namespaced(identity: str | int, kind: str = "Product") -> str:
    """Build the catalog's namespaced id for ``identity``."""

    bare = normalize(identity)
    return f"{settings.CATALOG_ID_PREFIX}{kind}/{bare}"


def key_variants(identity: str | int, kind: str = "Product") -> tuple[str, str]:
    """Both historical spellings of ``identity``, bare first."""

    return normalize(identity), namespaced(identity, kind)


def find_match(identity: str, candidates: Iterable[str]) -> str | None:
    for candidate in candidates:
        if matches(identity, candidate):
            return candidate
    return None


__all__ = ["find_match", "key_variants", "matches", "namespaced", "normalize"]
