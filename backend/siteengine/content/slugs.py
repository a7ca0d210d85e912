"""
Slug derivation and normalization.

Slugs are tenant-relative URL paths. Every stored slug starts with "/",
contains only lowercase alphanumerics and "-" within each path segment,
and has no trailing "/" (except the root slug "/" itself).
"""

from __future__ import annotations

import re
from typing import Mapping

from ..errors import ValidationError

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

URL_PREFIX_DEFAULTS: dict[str, str] = {
    "product": "/product",
    "category": "/category",
    "cart": "/cart",
    "checkout": "/checkout",
    "shop": "/shop",
}


def slugify(text: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to "-", trim "-".

    Example:
        >>> slugify("  My Test Page! ")
        'my-test-page'
    """
    return _NON_ALNUM.sub("-", text.lower()).strip("-")


def normalize_slug(raw: str) -> str:
    """Normalize a caller-supplied slug, keeping its "/" separators.

    Example:
        >>> normalize_slug("new-slug")
        '/new-slug'
        >>> normalize_slug("/Blog/Hello World/")
        '/blog/hello-world'

    Raises:
        ValidationError: If nothing usable is left and the input was not the
            root path "/"
    """
    stripped = raw.strip()
    segments = [s for s in (slugify(part) for part in stripped.split("/")) if s]
    if not segments and (not stripped or stripped.strip("/")):
        raise ValidationError(f"Cannot derive a slug from {raw!r}", field_name="slug")
    return "/" + "/".join(segments)


def slug_from_title(title: str) -> str:
    """Derive a single-segment slug from a page title.

    Raises:
        ValidationError: If the title has no alphanumeric characters
    """
    slug = slugify(title)
    if not slug:
        raise ValidationError(
            f"Cannot derive a slug from title {title!r}", field_name="title"
        )
    return "/" + slug


def resolve_requested_slug(requested: str | None, title: str) -> str:
    """Prefer a non-blank requested slug, otherwise derive one from the title."""
    if requested is not None and requested.strip():
        return normalize_slug(requested)
    return slug_from_title(title)


def check_commerce_conflict(slug: str, prefixes: Mapping[str, str] | None = None) -> None:
    """Reject content slugs that shadow the storefront's URL prefixes.

    Args:
        slug: Normalized content slug
        prefixes: Tenant's configured commerce prefixes (defaults if None)

    Raises:
        ValidationError: If the slug equals or lives under a commerce prefix
    """
    configured = dict(URL_PREFIX_DEFAULTS)
    if prefixes:
        configured.update({k: v for k, v in prefixes.items() if v})

    for prefix in configured.values():
        if slug == prefix or slug.startswith(prefix + "/"):
            raise ValidationError(
                f'Slug "{slug}" conflicts with commerce URL prefix "{prefix}". '
                "Choose a different slug.",
                field_name="slug",
            )
