"""
Site service: request-level orchestration.

Each public method is one API operation and runs the same pipeline:

    require tenant id -> authorize -> parse body -> core operation
        -> publish audit (best-effort) -> JSON-ready result

Validation of the tenant id and authorization both happen before any store
access, so a rejected request leaves no trace.

Invariants:
    - Audit records are published only after the core operation succeeded
    - Audit failures never change the result of an operation
    - Results are plain dicts with camelCase keys, ready for JSON

How to change safely:
    - New operations must declare their role set explicitly
    - Keep request models permissive on unknown fields (extra="ignore") so
      older admin clients keep working
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from .access.policy import EDITORS, GLOBAL_ONLY, TENANT_ADMINS, AccessPolicy, Principal
from .audit.publisher import AuditPublisher, AuditRecord, NullAuditPublisher, publish_audit
from .catalog.consistency import CatalogConsistencyManager
from .catalog.models import ProductFields, ProductPatch
from .catalog.products import ProductService
from .config import TenantDefaultsConfig
from .content.blocks import BlockRegistry
from .content.models import ContentStatus
from .content.router import ContentPatch, ContentRouter
from .errors import ValidationError
from .store.base import KeyValueStore
from .tenants.provisioner import TenantProvisioner

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


# --- Request models ---


class ContentCreateRequest(BaseModel):
    """Body of POST /content."""

    model_config = ConfigDict(extra="ignore")

    title: str = Field(..., min_length=1)
    blocks: List[Dict[str, Any]] = Field(default_factory=list)
    status: ContentStatus = ContentStatus.DRAFT
    slug: Optional[str] = None


class ContentUpdateRequest(BaseModel):
    """Body of PUT /content/{nodeId}."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1)
    blocks: Optional[List[Dict[str, Any]]] = None
    status: Optional[ContentStatus] = None
    slug: Optional[str] = None
    expectedVersion: Optional[int] = Field(default=None, ge=1)


class ContentRestoreRequest(BaseModel):
    """Body of POST /content/{nodeId}/restore."""

    model_config = ConfigDict(extra="ignore")

    version: int = Field(..., ge=1)


class TenantCreateRequest(BaseModel):
    """Body of POST /tenants."""

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    domain: Optional[str] = None
    theme: Optional[Dict[str, Any]] = None


def parse_body(model: Type[ModelT], body: Any) -> ModelT:
    """Validate a request body against a model.

    Raises:
        ValidationError: If the body is missing or does not match
    """
    if body is None:
        raise ValidationError("Missing body", field_name="body")
    try:
        return model.model_validate(body)
    except PydanticValidationError as e:
        errors = [
            f"{'.'.join(str(p) for p in err['loc']) or 'body'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError("Invalid request body", field_name="body", errors=errors) from e


def require_tenant(tenant_id: Optional[str]) -> str:
    if not tenant_id or not tenant_id.strip():
        raise ValidationError("Missing tenant id", field_name="X-Tenant-ID")
    return tenant_id


class SiteService:
    """Entry point for every API operation.

    Example:
        >>> service = SiteService(store, audit=InMemoryAuditPublisher())
        >>> await service.create_content(principal, "acme", {"title": "About"})
        {'nodeId': '...', 'id': '...', 'slug': '/about'}
    """

    def __init__(
        self,
        store: KeyValueStore,
        audit: Optional[AuditPublisher] = None,
        policy: Optional[AccessPolicy] = None,
        block_registry: Optional[BlockRegistry] = None,
        tenant_defaults: Optional[TenantDefaultsConfig] = None,
    ) -> None:
        self.store = store
        self.audit = audit or NullAuditPublisher()
        self.policy = policy or AccessPolicy()
        self.router = ContentRouter(store, block_registry)
        self.consistency = CatalogConsistencyManager(store)
        self.products = ProductService(store, self.consistency)
        self.provisioner = TenantProvisioner(store, tenant_defaults)

    async def _audit(
        self,
        principal: Principal,
        tenant_id: str,
        action: str,
        details: Dict[str, Any],
        ip: Optional[str],
    ) -> None:
        await publish_audit(
            self.audit,
            AuditRecord(
                tenant_id=tenant_id,
                actor_id=principal.subject_id,
                actor_email=principal.email,
                action=action,
                details=details,
                ip=ip,
            ),
        )

    # --- Content ---

    async def create_content(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        request = parse_body(ContentCreateRequest, body)

        created = await self.router.create(
            tenant_id,
            title=request.title,
            blocks=request.blocks,
            status=request.status,
            requested_slug=request.slug,
            author=principal.subject_id,
            author_email=principal.email,
        )
        await self._audit(
            principal,
            tenant_id,
            "CREATE_PAGE",
            {"title": request.title, "nodeId": created.node_id, "slug": created.slug},
            ip,
        )
        return created.to_dict()

    async def get_content(
        self, principal: Principal, tenant_id: Optional[str], node_id: str
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        node = await self.router.get(tenant_id, node_id)
        return node.to_dict()

    async def list_content(
        self, principal: Principal, tenant_id: Optional[str]
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        nodes = await self.router.list_content(tenant_id)
        return {"items": [n.to_dict() for n in nodes]}

    async def update_content(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        node_id: str,
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        request = parse_body(ContentUpdateRequest, body)

        updated = await self.router.update(
            tenant_id,
            node_id,
            ContentPatch(
                title=request.title,
                blocks=request.blocks,
                status=request.status,
                slug=request.slug,
            ),
            updated_by=principal.subject_id,
            expected_version=request.expectedVersion,
        )

        details: Dict[str, Any] = {"title": updated.title, "nodeId": node_id}
        if updated.previous_slug and updated.slug != updated.previous_slug:
            details.update({"oldSlug": updated.previous_slug, "newSlug": updated.slug})
        await self._audit(principal, tenant_id, "UPDATE_PAGE", details, ip)
        return updated.to_dict()

    async def list_content_versions(
        self, principal: Principal, tenant_id: Optional[str], node_id: str
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        versions = await self.router.list_versions(tenant_id, node_id)
        return {"items": [v.to_dict() for v in versions]}

    async def restore_content(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        node_id: str,
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Bring back the title, blocks and status of an earlier version."""
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        request = parse_body(ContentRestoreRequest, body)

        restored = await self.router.restore(
            tenant_id, node_id, request.version, restored_by=principal.subject_id
        )
        await self._audit(
            principal,
            tenant_id,
            "RESTORE_PAGE",
            {
                "nodeId": node_id,
                "restoredFrom": request.version,
                "newVersion": restored.version,
            },
            ip,
        )
        return restored.to_dict()

    # --- Routes ---

    async def resolve_route(self, tenant_id: Optional[str], slug: str) -> Dict[str, Any]:
        """Public renderer accessor; no principal required."""
        tenant_id = require_tenant(tenant_id)
        if not slug:
            raise ValidationError("slug is required", field_name="slug")
        resolution = await self.router.resolve(tenant_id, slug)
        return resolution.to_dict()

    async def list_redirects(
        self, principal: Principal, tenant_id: Optional[str]
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        redirects = await self.router.list_redirects(tenant_id)
        return {"items": [r.to_dict() for r in redirects]}

    # --- Products ---

    async def create_product(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        fields = parse_body(ProductFields, body)

        product = await self.products.create(tenant_id, fields)
        await self._audit(
            principal,
            tenant_id,
            "CREATE_PRODUCT",
            {
                "title": product["title"],
                "productId": product["id"],
                "price": product["price"],
                "status": product["status"],
                "slug": product["slug"],
            },
            ip,
        )
        return product

    async def get_product(
        self, principal: Principal, tenant_id: Optional[str], product_id: str
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        return await self.products.get(tenant_id, product_id)

    async def list_products(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        status: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        products = await self.products.list(tenant_id, status=status, category_id=category_id)
        return {"items": products}

    async def update_product(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        product_id: str,
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        patch = parse_body(ProductPatch, body)

        product = await self.products.update(tenant_id, product_id, patch)
        await self._audit(
            principal,
            tenant_id,
            "UPDATE_PRODUCT",
            {"title": product["title"], "productId": product_id},
            ip,
        )
        return product

    async def delete_product(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        product_id: str,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)

        product = await self.products.delete(tenant_id, product_id)
        await self._audit(
            principal,
            tenant_id,
            "DELETE_PRODUCT",
            {"title": product.get("title"), "productId": product_id},
            ip,
        )
        return {"message": "Deleted", "id": product_id}

    async def repair_product_edges(
        self, principal: Principal, tenant_id: Optional[str], product_id: str
    ) -> Dict[str, Any]:
        """Re-run the category edge rebuild for one product."""
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)

        product = await self.products.find(tenant_id, product_id)
        result = await self.consistency.repair_edges(tenant_id, product_id, product)
        return {"deleted": result.deleted, "written": result.written}

    async def list_category_products(
        self, principal: Principal, tenant_id: Optional[str], category_id: str
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        edges = await self.consistency.list_category_products(tenant_id, category_id)
        return {"items": [e.to_dict() for e in edges]}

    # --- Tenants ---

    async def provision_tenant(
        self, principal: Principal, body: Any, ip: Optional[str] = None
    ) -> Dict[str, Any]:
        self.policy.require_role(principal, GLOBAL_ONLY)
        request = parse_body(TenantCreateRequest, body)

        tenant = await self.provisioner.provision(
            name=request.name,
            actor_id=principal.subject_id,
            tenant_id=request.id,
            domain=request.domain,
            theme=request.theme,
        )
        await self._audit(
            principal,
            tenant.id,
            "CREATE_TENANT",
            {"name": tenant.name, "domain": tenant.domain},
            ip,
        )
        return tenant.to_dict()

    async def list_tenants(self, principal: Principal) -> Dict[str, Any]:
        self.policy.require_role(principal, GLOBAL_ONLY)
        tenants = await self.provisioner.list()
        return {"items": [t.to_dict() for t in tenants]}

    async def get_tenant(self, principal: Principal, tenant_id: Optional[str]) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, EDITORS, tenant_id)
        tenant = await self.provisioner.get(tenant_id)
        return tenant.to_dict()

    async def update_tenant(
        self,
        principal: Principal,
        tenant_id: Optional[str],
        body: Any,
        ip: Optional[str] = None,
    ) -> Dict[str, Any]:
        tenant_id = require_tenant(tenant_id)
        self.policy.require_role(principal, TENANT_ADMINS, tenant_id)
        if not isinstance(body, dict):
            raise ValidationError("Settings patch must be an object", field_name="body")

        tenant = await self.provisioner.update(tenant_id, body, principal.subject_id)
        await self._audit(
            principal, tenant_id, "UPDATE_SETTINGS", {"fields": sorted(body)}, ip
        )
        return tenant.to_dict()
