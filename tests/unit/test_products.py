"""
Unit tests for ProductService.

Tests cover:
- Create with slug derivation and edge population
- Merge-patch update with edge rebuild
- Listing with status and category filters
- Delete with edge cleanup
- Rebuild failures not failing the product write
"""

import pytest

from backend.siteengine import keys
from backend.siteengine.catalog import ProductFields, ProductPatch, ProductService
from backend.siteengine.errors import NotFoundError, ValidationError
from backend.siteengine.store import StoreTimeoutError

TENANT = "acme"


async def edge_categories(store, product_id):
    items = await store.query(keys.tenant_partition(TENANT), keys.CATPROD_PREFIX)
    return sorted(i["categoryId"] for i in items if i["id"] == product_id)


class TestProductService:
    """Tests for product write paths."""

    @pytest.fixture
    def products(self, store):
        ids = iter(f"p{i}" for i in range(1, 100))
        return ProductService(store, id_factory=lambda: next(ids))

    @pytest.mark.asyncio
    async def test_create(self, products, store):
        """Create stores the product and its category edges."""
        product = await products.create(
            TENANT, ProductFields(title="Blue Mug", price="12.50", categoryIds=["kitchen", "gifts"])
        )

        assert product["id"] == "p1"
        assert product["slug"] == "blue-mug"
        assert product["tenantId"] == TENANT
        assert await edge_categories(store, "p1") == ["gifts", "kitchen"]

        edge = await store.get(*keys.category_edge_key(TENANT, "kitchen", "p1"))
        assert edge["title"] == "Blue Mug"
        assert edge["price"] == "12.50"

    @pytest.mark.asyncio
    async def test_create_with_explicit_slug(self, products):
        """A given slug is slugified, not replaced."""
        product = await products.create(TENANT, ProductFields(title="Mug", slug="Best Mug"))
        assert product["slug"] == "best-mug"

    @pytest.mark.asyncio
    async def test_create_without_slug_source(self, products):
        """A title with no usable characters needs an explicit slug."""
        with pytest.raises(ValidationError):
            await products.create(TENANT, ProductFields(title="***"))

    @pytest.mark.asyncio
    async def test_update_moves_edges(self, products, store):
        """Changing categories rebuilds edges from the old set."""
        await products.create(TENANT, ProductFields(title="Mug", categoryIds=["x", "y"]))

        updated = await products.update(TENANT, "p1", ProductPatch(categoryIds=["y", "z"]))

        assert updated["categoryIds"] == ["y", "z"]
        assert updated["title"] == "Mug"
        assert await edge_categories(store, "p1") == ["y", "z"]

    @pytest.mark.asyncio
    async def test_update_refreshes_snapshot(self, products, store):
        """Field changes reach edges of unchanged categories."""
        await products.create(TENANT, ProductFields(title="Mug", price="10.00", categoryIds=["x"]))
        await products.update(TENANT, "p1", ProductPatch(price="8.00"))

        edge = await store.get(*keys.category_edge_key(TENANT, "x", "p1"))
        assert edge["price"] == "8.00"

    @pytest.mark.asyncio
    async def test_update_only_sent_fields(self, products):
        """Fields absent from the patch keep their values."""
        await products.create(TENANT, ProductFields(title="Mug", tags=["ceramic"]))
        updated = await products.update(TENANT, "p1", ProductPatch(title="Cup"))

        assert updated["tags"] == ["ceramic"]
        assert updated["title"] == "Cup"

    @pytest.mark.asyncio
    async def test_explicit_nulls_keep_required_fields(self, products, store):
        """null for a field every product carries leaves the stored value alone."""
        await products.create(
            TENANT,
            ProductFields(title="Mug", price="9.00", salePrice="7.00", categoryIds=["kitchen"]),
        )
        patch = ProductPatch.model_validate(
            {
                "title": None,
                "price": None,
                "currency": None,
                "availability": None,
                "status": None,
                "salePrice": None,
                "sortOrder": 3,
            }
        )

        updated = await products.update(TENANT, "p1", patch)

        assert updated["title"] == "Mug"
        assert updated["price"] == "9.00"
        assert updated["currency"] == "USD"
        assert updated["availability"] == "in_stock"
        assert updated["status"] == "active"
        assert updated["salePrice"] is None
        assert updated["sortOrder"] == 3
        edge = await store.get(*keys.category_edge_key(TENANT, "kitchen", "p1"))
        assert edge["title"] == "Mug"
        assert edge["price"] == "9.00"

    @pytest.mark.asyncio
    async def test_update_missing(self, products):
        """Updating an unknown product is NotFound."""
        with pytest.raises(NotFoundError):
            await products.update(TENANT, "nope", ProductPatch(title="x"))

    @pytest.mark.asyncio
    async def test_delete_cleans_edges(self, products, store):
        """Delete removes the product and its edges."""
        await products.create(TENANT, ProductFields(title="Mug", categoryIds=["x"]))

        await products.delete(TENANT, "p1")

        with pytest.raises(NotFoundError):
            await products.get(TENANT, "p1")
        assert await edge_categories(store, "p1") == []

    @pytest.mark.asyncio
    async def test_delete_without_categories(self, products, store):
        """Deleting an uncategorized product touches no edges."""
        await products.create(TENANT, ProductFields(title="Mug"))
        writes = store.write_count

        await products.delete(TENANT, "p1")
        assert store.write_count == writes + 1

    @pytest.mark.asyncio
    async def test_rebuild_failure_does_not_fail_write(self, products, store):
        """The product write stands when the edge rebuild fails."""
        await products.create(TENANT, ProductFields(title="Mug", categoryIds=["x"]))

        original = products.consistency.rebuild_edges

        async def failing_rebuild(*args, **kwargs):
            store.inject_failure(StoreTimeoutError("throttled"))
            return await original(*args, **kwargs)

        products.consistency.rebuild_edges = failing_rebuild
        updated = await products.update(TENANT, "p1", ProductPatch(categoryIds=["y"]))
        products.consistency.rebuild_edges = original

        assert updated["categoryIds"] == ["y"]
        assert (await products.get(TENANT, "p1"))["categoryIds"] == ["y"]
        # Listing is stale until repaired
        assert await edge_categories(store, "p1") == ["x"]

        await products.consistency.repair_edges(TENANT, "p1", await products.get(TENANT, "p1"))
        assert await edge_categories(store, "p1") == ["y"]


class TestProductListing:
    """Tests for ProductService.list."""

    @pytest.fixture
    def products(self, store):
        ids = iter(f"p{i}" for i in range(1, 100))
        return ProductService(store, id_factory=lambda: next(ids))

    @pytest.mark.asyncio
    async def test_list_filters(self, products):
        """Status and category narrow the listing; order follows sortOrder."""
        await products.create(
            TENANT, ProductFields(title="Mug", sortOrder=2, categoryIds=["kitchen"])
        )
        await products.create(
            TENANT, ProductFields(title="Pan", sortOrder=1, categoryIds=["kitchen"], status="draft")
        )
        await products.create(TENANT, ProductFields(title="Hat", sortOrder=0))

        assert [p["title"] for p in await products.list(TENANT)] == ["Hat", "Pan", "Mug"]
        assert [p["title"] for p in await products.list(TENANT, status="active")] == [
            "Hat",
            "Mug",
        ]
        assert [p["title"] for p in await products.list(TENANT, category_id="kitchen")] == [
            "Pan",
            "Mug",
        ]
        assert [
            p["title"] for p in await products.list(TENANT, status="draft", category_id="kitchen")
        ] == ["Pan"]

    @pytest.mark.asyncio
    async def test_list_excludes_other_tenants(self, products):
        """Listing stays inside the tenant partition."""
        await products.create("other", ProductFields(title="Mug"))

        assert await products.list(TENANT) == []
        assert "PK" not in (await products.list("other"))[0]
