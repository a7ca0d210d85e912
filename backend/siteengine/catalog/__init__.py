"""
Product catalog and category adjacency.

Category listings are served from denormalized edge records kept in step
with each product's category_ids by CatalogConsistencyManager.
"""

from .consistency import CatalogConsistencyManager
from .models import (
    CategoryProductEdge,
    ProductFields,
    ProductPatch,
    ProductSnapshot,
    RebuildResult,
    VolumeTier,
)
from .products import ProductService

__all__ = [
    "CatalogConsistencyManager",
    "CategoryProductEdge",
    "ProductFields",
    "ProductPatch",
    "ProductService",
    "ProductSnapshot",
    "RebuildResult",
    "VolumeTier",
]
