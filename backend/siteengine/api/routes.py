"""
API routes for the site engine.

Handlers are thin: they pull credentials and the tenant id from headers,
hand the raw JSON body to SiteService and return its result. All
validation, authorization and error mapping happen below this layer.

Headers:
    X-Tenant-ID: Target tenant (required for tenant-scoped routes)
    X-Api-Key: Master API key (system robot)
    Authorization: Bearer <token> (verified by the configured TokenVerifier)
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Header, Query, Request

from ..access.policy import Principal
from ..service import SiteService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Site Engine"])


# --- Dependencies ---


def get_service(request: Request) -> SiteService:
    """Get the site service from app state."""
    return request.app.state.service


async def get_principal(
    request: Request,
    x_api_key: Optional[str] = Header(None),
    authorization: Optional[str] = Header(None),
) -> Principal:
    """Authenticate the caller from request headers."""
    return await request.app.state.authorizer.authenticate(
        api_key=x_api_key, bearer=authorization
    )


def client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


# --- Content ---


@router.post("/content", status_code=201)
async def create_content(
    request: Request,
    body: Any = Body(None),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Create a page and claim its slug."""
    return await service.create_content(principal, x_tenant_id, body, client_ip(request))


@router.get("/content")
async def list_content(
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.list_content(principal, x_tenant_id)


@router.get("/content/{node_id}")
async def get_content(
    node_id: str,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.get_content(principal, x_tenant_id, node_id)


@router.put("/content/{node_id}")
async def update_content(
    node_id: str,
    request: Request,
    body: Any = Body(None),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Update a page; a new slug turns the old one into a redirect."""
    return await service.update_content(
        principal, x_tenant_id, node_id, body, client_ip(request)
    )


@router.get("/content/{node_id}/versions")
async def list_content_versions(
    node_id: str,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Stored versions of a page, newest first."""
    return await service.list_content_versions(principal, x_tenant_id, node_id)


@router.post("/content/{node_id}/restore")
async def restore_content(
    node_id: str,
    request: Request,
    body: Any = Body(None),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Write a new version from an earlier one; the slug is kept."""
    return await service.restore_content(
        principal, x_tenant_id, node_id, body, client_ip(request)
    )


# --- Routes ---


@router.get("/routes/resolve")
async def resolve_route(
    slug: str = Query(..., description="Tenant-relative path"),
    x_tenant_id: Optional[str] = Header(None),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Resolve a slug for the renderer (public)."""
    return await service.resolve_route(x_tenant_id, slug)


@router.get("/routes/redirects")
async def list_redirects(
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.list_redirects(principal, x_tenant_id)


# --- Products ---


@router.post("/products", status_code=201)
async def create_product(
    request: Request,
    body: Any = Body(None),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.create_product(principal, x_tenant_id, body, client_ip(request))


@router.get("/products")
async def list_products(
    status: Optional[str] = Query(None),
    category: Optional[str] = Query(None, description="Category id"),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.list_products(
        principal, x_tenant_id, status=status, category_id=category
    )


@router.get("/products/{product_id}")
async def get_product(
    product_id: str,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.get_product(principal, x_tenant_id, product_id)


@router.put("/products/{product_id}")
async def update_product(
    product_id: str,
    request: Request,
    body: Any = Body(None),
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.update_product(
        principal, x_tenant_id, product_id, body, client_ip(request)
    )


@router.delete("/products/{product_id}")
async def delete_product(
    product_id: str,
    request: Request,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.delete_product(principal, x_tenant_id, product_id, client_ip(request))


@router.post("/products/{product_id}/edges/repair")
async def repair_product_edges(
    product_id: str,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Re-run the category edge rebuild for a product."""
    return await service.repair_product_edges(principal, x_tenant_id, product_id)


@router.get("/categories/{category_id}/products")
async def list_category_products(
    category_id: str,
    x_tenant_id: Optional[str] = Header(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.list_category_products(principal, x_tenant_id, category_id)


# --- Tenants ---


@router.post("/tenants", status_code=201)
async def provision_tenant(
    request: Request,
    body: Any = Body(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Provision a tenant with its starter pages (global admins only)."""
    return await service.provision_tenant(principal, body, client_ip(request))


@router.get("/tenants")
async def list_tenants(
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """All tenants (global admins only)."""
    return await service.list_tenants(principal)


@router.get("/tenants/{tenant_id}")
async def get_tenant(
    tenant_id: str,
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    return await service.get_tenant(principal, tenant_id)


@router.put("/tenants/{tenant_id}")
async def update_tenant(
    tenant_id: str,
    request: Request,
    body: Any = Body(None),
    principal: Principal = Depends(get_principal),
    service: SiteService = Depends(get_service),
) -> dict[str, Any]:
    """Merge-patch tenant settings."""
    return await service.update_tenant(principal, tenant_id, body, client_ip(request))
