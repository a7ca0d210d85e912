"""
Pages, slugs and routes.

ContentRouter is the only writer of content nodes and route records.
"""

from .blocks import BlockRegistry, get_block_registry, reset_block_registry
from .models import ContentNode, ContentStatus, ContentVersion, RouteRecord, RouteResolution
from .router import ContentPatch, ContentRouter, CreatedContent
from .slugs import normalize_slug, slug_from_title, slugify

__all__ = [
    "BlockRegistry",
    "ContentNode",
    "ContentPatch",
    "ContentRouter",
    "ContentStatus",
    "ContentVersion",
    "CreatedContent",
    "RouteRecord",
    "RouteResolution",
    "get_block_registry",
    "normalize_slug",
    "reset_block_registry",
    "slug_from_title",
    "slugify",
]
