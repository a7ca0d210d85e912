"""
Category-product adjacency maintenance.

The store cannot answer "which products are in category C" without scanning
every product, so each membership is materialized as an edge record under
CATPROD#<category>#<product>. This module keeps those edges in step with the
product's category_ids.

A rebuild is a reconciliation, not a replay: it computes the delta between
the old and new category sets and touches only that delta (plus refreshing
categories present in both, so their snapshot fields stay current).

Invariants:
    - After a successful rebuild the product's edges equal its category_ids
    - Rebuilding twice with the same inputs yields the same end state
    - Deleting an edge that does not exist is not an error
    - An empty old set and an empty new set touch nothing

How to change safely:
    - Keep deletes ahead of puts when a rebuild must be split into chunks
      (a stale extra edge is worse than a briefly missing one)
    - Never put the same key twice in one transaction; the store rejects it
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .. import keys
from ..errors import store_errors
from ..store.base import KeyValueStore, TransactDelete, TransactItem, TransactPut
from .models import CategoryProductEdge, ProductSnapshot, RebuildResult

logger = logging.getLogger(__name__)


def _dedupe(category_ids: Iterable[str]) -> List[str]:
    """Drop blanks and duplicates, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for category_id in category_ids:
        if category_id:
            seen.setdefault(category_id, None)
    return list(seen)


class CatalogConsistencyManager:
    """Keeps category listings consistent with product membership.

    Called from product write paths only, never directly by end users.

    Example:
        >>> manager = CatalogConsistencyManager(store)
        >>> await manager.rebuild_edges(
        ...     "acme", "p1", ["x", "y"], ProductSnapshot(["y", "z"], {"title": "Mug"})
        ... )
        RebuildResult(deleted=['x'], written=['y', 'z'], transactions=1)
    """

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    async def rebuild_edges(
        self,
        tenant_id: str,
        product_id: str,
        old_category_ids: Sequence[str],
        new_snapshot: ProductSnapshot,
    ) -> RebuildResult:
        """Reconcile a product's edges from its old to its new category set.

        Args:
            tenant_id: Owning tenant
            product_id: Product whose edges are rebuilt
            old_category_ids: Categories before the write ([] on create)
            new_snapshot: Categories and display fields after the write
                (empty on delete)

        Returns:
            RebuildResult describing what was deleted and written

        Raises:
            StoreUnavailableError: If the store fails; the rebuild is safe to re-run
        """
        new_ids = _dedupe(new_snapshot.category_ids)
        new_set = set(new_ids)
        to_delete = [c for c in _dedupe(old_category_ids) if c not in new_set]

        if not to_delete and not new_ids:
            return RebuildResult(deleted=[], written=[])

        ops: List[TransactItem] = [
            TransactDelete(*keys.category_edge_key(tenant_id, category_id, product_id))
            for category_id in to_delete
        ]
        ops.extend(
            TransactPut(
                CategoryProductEdge(
                    tenant_id, category_id, product_id, dict(new_snapshot.fields)
                ).to_item()
            )
            for category_id in new_ids
        )

        transactions = await self._apply(ops)

        logger.info(
            "Rebuilt category edges",
            extra={
                "tenant_id": tenant_id,
                "product_id": product_id,
                "deleted": to_delete,
                "written": new_ids,
                "transactions": transactions,
            },
        )
        return RebuildResult(deleted=to_delete, written=new_ids, transactions=transactions)

    async def _apply(self, ops: List[TransactItem]) -> int:
        limit = self.store.max_transaction_items
        if len(ops) > limit:
            # Too large for one transaction; deletes come first in ops, so
            # chunks preserve delete-before-put ordering
            logger.warning(
                "Category rebuild exceeds transaction limit, applying in chunks",
                extra={"items": len(ops), "limit": limit},
            )

        count = 0
        with store_errors("rebuild_edges"):
            for start in range(0, len(ops), limit):
                await self.store.transact_write(ops[start:start + limit])
                count += 1
        return count

    async def edges_for_product(self, tenant_id: str, product_id: str) -> List[str]:
        """Categories that currently hold an edge for the product.

        Scans the tenant's edge records; used by repair, not by hot paths.
        """
        with store_errors("scan_edges"):
            items = await self.store.query(keys.tenant_partition(tenant_id), keys.CATPROD_PREFIX)
        return [item["categoryId"] for item in items if item.get("id") == product_id]

    async def repair_edges(
        self,
        tenant_id: str,
        product_id: str,
        product: Optional[Dict[str, Any]] = None,
    ) -> RebuildResult:
        """Re-derive a product's edges from its stored state.

        Re-runs a rebuild that failed half way: whatever edges exist now are
        treated as the old set, and the product (None if deleted) as the new.
        """
        existing = await self.edges_for_product(tenant_id, product_id)
        snapshot = ProductSnapshot.from_product(product) if product else ProductSnapshot.empty()
        return await self.rebuild_edges(tenant_id, product_id, existing, snapshot)

    async def list_category_products(
        self, tenant_id: str, category_id: str
    ) -> List[CategoryProductEdge]:
        """Product cards of one category, ordered by sortOrder."""
        with store_errors("list_category_products"):
            items = await self.store.query(
                keys.tenant_partition(tenant_id), keys.category_edge_prefix(category_id)
            )
        edges = [CategoryProductEdge.from_item(item) for item in items]
        edges.sort(key=lambda e: e.fields.get("sortOrder") or 0)
        return edges
