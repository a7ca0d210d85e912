"""
Product and category-product edge types.

Category membership is a field on the product (category_ids). Listing a
category's products is served by edge records, one per (category, product),
holding a snapshot of the fields a product card needs.

Invariants:
    - Edges are copied from the product at write time, never live-joined
    - Edges are refreshed only by an explicit rebuild
    - After a rebuild settles, a product's edges match its category_ids
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from .. import keys

Availability = Literal["in_stock", "out_of_stock", "preorder", "discontinued"]
ProductStatus = Literal["active", "draft", "archived"]


class VolumeTier(BaseModel):
    """Quantity break for volume pricing."""

    minQuantity: int = Field(ge=1)
    price: str


class ProductFields(BaseModel):
    """Writable product fields, as accepted from the admin API.

    Prices are kept as decimal strings so they survive storage unchanged.
    """

    model_config = ConfigDict(extra="ignore")

    title: str = Field(min_length=1)
    slug: Optional[str] = None
    description: str = ""
    sku: Optional[str] = None
    price: str = "0.00"
    currency: str = "USD"
    salePrice: Optional[str] = None
    availability: Availability = "in_stock"
    inventoryQuantity: int = 0
    status: ProductStatus = "active"
    categoryIds: List[str] = Field(default_factory=list)
    imageLink: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    sortOrder: int = 0
    volumePricing: List[VolumeTier] = Field(default_factory=list)
    availableFrom: Optional[str] = None
    availableUntil: Optional[str] = None


class ProductPatch(BaseModel):
    """Partial product update; only fields that were sent are applied."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1)
    slug: Optional[str] = None
    description: Optional[str] = None
    sku: Optional[str] = None
    price: Optional[str] = None
    currency: Optional[str] = None
    salePrice: Optional[str] = None
    availability: Optional[Availability] = None
    inventoryQuantity: Optional[int] = None
    status: Optional[ProductStatus] = None
    categoryIds: Optional[List[str]] = None
    imageLink: Optional[str] = None
    tags: Optional[List[str]] = None
    sortOrder: Optional[int] = None
    volumePricing: Optional[List[VolumeTier]] = None
    availableFrom: Optional[str] = None
    availableUntil: Optional[str] = None


# Product attributes copied onto every edge record
SNAPSHOT_FIELDS = (
    "title",
    "slug",
    "price",
    "salePrice",
    "currency",
    "imageLink",
    "availability",
    "status",
    "sortOrder",
    "tags",
    "volumePricing",
    "availableFrom",
    "availableUntil",
)


@dataclass
class ProductSnapshot:
    """Denormalized product fields used to (re)build edges.

    Attributes:
        category_ids: Categories the product belongs to after the write
        fields: Display fields copied onto each edge (see SNAPSHOT_FIELDS)
    """

    category_ids: List[str] = field(default_factory=list)
    fields: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_product(cls, product: Dict[str, Any]) -> ProductSnapshot:
        return cls(
            category_ids=list(product.get("categoryIds") or []),
            fields={name: product.get(name) for name in SNAPSHOT_FIELDS},
        )

    @classmethod
    def empty(cls) -> ProductSnapshot:
        """Snapshot of a deleted product: no categories."""
        return cls()


@dataclass
class CategoryProductEdge:
    """Adjacency record for a (category, product) pair."""

    tenant_id: str
    category_id: str
    product_id: str
    fields: Dict[str, Any] = field(default_factory=dict)

    def to_item(self) -> Dict[str, Any]:
        attrs = {name: self.fields.get(name) for name in SNAPSHOT_FIELDS}
        attrs["sortOrder"] = attrs.get("sortOrder") or 0
        attrs["tags"] = attrs.get("tags") or []
        attrs["volumePricing"] = attrs.get("volumePricing") or []
        return keys.with_key(
            keys.category_edge_key(self.tenant_id, self.category_id, self.product_id),
            {
                "Type": "CategoryProduct",
                "tenantId": self.tenant_id,
                "categoryId": self.category_id,
                "id": self.product_id,
                **attrs,
            },
        )

    @classmethod
    def from_item(cls, item: Dict[str, Any]) -> CategoryProductEdge:
        return cls(
            tenant_id=item["tenantId"],
            category_id=item["categoryId"],
            product_id=item["id"],
            fields={name: item.get(name) for name in SNAPSHOT_FIELDS},
        )

    def to_dict(self) -> Dict[str, Any]:
        return keys.strip_key(self.to_item())


@dataclass(frozen=True)
class RebuildResult:
    """What a rebuild changed.

    Attributes:
        deleted: Categories whose edge was removed
        written: Categories whose edge was (re)written
        transactions: Number of store writes issued
    """

    deleted: List[str]
    written: List[str]
    transactions: int = 0

    @property
    def noop(self) -> bool:
        return not self.deleted and not self.written
