"""
Product write paths.

Products are stored under PRODUCT#<id> in the tenant partition. Every write
is followed by a category edge rebuild. The product write and the rebuild are
separate store operations: if the rebuild fails, the product write stands,
the failure is logged, and CatalogConsistencyManager.repair_edges re-runs it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from .. import keys
from ..content.slugs import slugify
from ..errors import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
    store_errors,
)
from ..store.base import Condition, ConditionFailedError, KeyValueStore
from ..timeutil import utc_now
from .consistency import CatalogConsistencyManager
from .models import ProductFields, ProductPatch, ProductSnapshot, RebuildResult

logger = logging.getLogger(__name__)

# Fields every product carries; a null in a patch leaves them as stored
_NON_NULLABLE = (
    "title",
    "slug",
    "description",
    "price",
    "currency",
    "availability",
    "inventoryQuantity",
    "status",
    "categoryIds",
    "tags",
    "sortOrder",
    "volumePricing",
)


def _product_slug(requested: Optional[str], title: str) -> str:
    slug = slugify(requested) if requested and requested.strip() else slugify(title)
    if not slug:
        raise ValidationError(
            f"Cannot derive a product slug from {requested or title!r}", field_name="slug"
        )
    return slug


class ProductService:
    """Create, read, update and delete products, keeping edges in sync."""

    def __init__(
        self,
        store: KeyValueStore,
        consistency: Optional[CatalogConsistencyManager] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.consistency = consistency or CatalogConsistencyManager(store)
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    async def create(self, tenant_id: str, fields: ProductFields) -> Dict[str, Any]:
        """Create a product and populate its category edges.

        Returns:
            The stored product (without key attributes)

        Raises:
            ValidationError: If no slug can be derived
            ConflictError: If the generated id is already taken
            StoreUnavailableError: If the product write fails
        """
        product_id = self._new_id()
        now = utc_now()
        attrs = fields.model_dump()
        attrs["slug"] = _product_slug(fields.slug, fields.title)

        item = keys.with_key(
            keys.product_key(tenant_id, product_id),
            {
                **attrs,
                "Type": "Product",
                "id": product_id,
                "tenantId": tenant_id,
                "createdAt": now,
                "updatedAt": now,
            },
        )

        with store_errors("create_product"):
            try:
                await self.store.put(item, condition=Condition.item_not_exists())
            except ConditionFailedError as e:
                raise ConflictError(
                    f"Product {product_id} already exists", "product", product_id
                ) from e

        logger.info(
            "Created product",
            extra={"tenant_id": tenant_id, "product_id": product_id, "slug": attrs["slug"]},
        )
        await self._rebuild(tenant_id, product_id, [], ProductSnapshot.from_product(item))
        return keys.strip_key(item)

    async def find(self, tenant_id: str, product_id: str) -> Optional[Dict[str, Any]]:
        """The stored product, or None if it does not exist."""
        pk, sk = keys.product_key(tenant_id, product_id)
        with store_errors("get_product"):
            item = await self.store.get(pk, sk)
        return keys.strip_key(item) if item is not None else None

    async def get(self, tenant_id: str, product_id: str) -> Dict[str, Any]:
        product = await self.find(tenant_id, product_id)
        if product is None:
            raise NotFoundError(f"Product not found: {product_id}", "product", product_id)
        return product

    async def list(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Products of a tenant ordered by sortOrder, optionally filtered.

        Filters apply to the product records themselves, so the result does
        not depend on category edges being up to date.
        """
        with store_errors("list_products"):
            items = await self.store.query(
                keys.tenant_partition(tenant_id), keys.PRODUCT_PREFIX
            )
        products = [keys.strip_key(item) for item in items]
        if status is not None:
            products = [p for p in products if p.get("status") == status]
        if category_id is not None:
            products = [p for p in products if category_id in (p.get("categoryIds") or [])]
        products.sort(key=lambda p: (p.get("sortOrder") or 0, p.get("title", "")))
        return products

    async def update(
        self, tenant_id: str, product_id: str, patch: ProductPatch
    ) -> Dict[str, Any]:
        """Merge-patch a product and rebuild its edges.

        Edges are rebuilt from the pre-update category list to the merged one,
        so unchanged categories get refreshed snapshot fields.
        """
        existing = await self.get(tenant_id, product_id)
        changes = {
            k: v
            for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k not in _NON_NULLABLE
        }
        if "slug" in changes:
            changes["slug"] = _product_slug(changes["slug"], changes.get("title") or existing["title"])

        merged = {**existing, **changes, "updatedAt": utc_now()}
        item = keys.with_key(keys.product_key(tenant_id, product_id), merged)

        with store_errors("update_product"):
            try:
                await self.store.put(item, condition=Condition.item_exists())
            except ConditionFailedError as e:
                # Deleted between read and write
                raise NotFoundError(
                    f"Product not found: {product_id}", "product", product_id
                ) from e

        logger.info(
            "Updated product",
            extra={"tenant_id": tenant_id, "product_id": product_id, "fields": sorted(changes)},
        )
        await self._rebuild(
            tenant_id,
            product_id,
            existing.get("categoryIds") or [],
            ProductSnapshot.from_product(merged),
        )
        return merged

    async def delete(self, tenant_id: str, product_id: str) -> Dict[str, Any]:
        """Delete a product and clean up its edges.

        Returns:
            The deleted product
        """
        existing = await self.get(tenant_id, product_id)
        pk, sk = keys.product_key(tenant_id, product_id)
        with store_errors("delete_product"):
            await self.store.delete(pk, sk)

        logger.info("Deleted product", extra={"tenant_id": tenant_id, "product_id": product_id})
        await self._rebuild(
            tenant_id, product_id, existing.get("categoryIds") or [], ProductSnapshot.empty()
        )
        return existing

    async def _rebuild(
        self,
        tenant_id: str,
        product_id: str,
        old_category_ids: list,
        snapshot: ProductSnapshot,
    ) -> Optional[RebuildResult]:
        try:
            return await self.consistency.rebuild_edges(
                tenant_id, product_id, old_category_ids, snapshot
            )
        except StoreUnavailableError as e:
            logger.warning(
                "Category edge rebuild failed, listings may be stale until repaired",
                extra={"tenant_id": tenant_id, "product_id": product_id, "error": e.message},
            )
            return None
