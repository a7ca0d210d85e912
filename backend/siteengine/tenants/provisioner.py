"""
Tenant provisioning and settings.

A new tenant is written together with its starter pages in one store
transaction: the tenant config, a Home page and a Contact page, each page
with its live route. The tenant config put is conditioned on the id being
free, so a clash writes nothing at all.

Invariants:
    - A tenant exists only together with its starter pages and routes
    - Provisioning an existing id leaves that tenant untouched
    - Tenant id is immutable; settings updates never move the record

How to change safely:
    - Keep the tenant config as the first item so its cancellation reason
      identifies an id clash
    - Adding starter pages adds two items each; stay under the store's
      transaction limit
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Dict, List, Optional

from .. import keys
from ..config import TenantDefaultsConfig
from ..content.models import ContentNode, ContentStatus, RouteRecord
from ..content.slugs import slugify
from ..errors import ConflictError, NotFoundError, ValidationError, store_errors
from ..store.base import Condition, KeyValueStore, TransactPut, TransactionCanceledError
from ..timeutil import utc_now
from .models import Tenant, TenantPlan, TenantStatus, default_theme

logger = logging.getLogger(__name__)

_TENANT_ITEM = 0

# Attributes a settings patch may never change
_IMMUTABLE = ("id", "createdAt", "createdBy", "Type", keys.PK, keys.SK)


def _starter_pages() -> List[Dict[str, Any]]:
    return [
        {
            "slug": "/",
            "title": "Home",
            "blocks": [
                {
                    "type": "hero",
                    "attrs": {
                        "headline": "Welcome",
                        "subheadline": "Your new site is live.",
                        "ctaText": "Contact us",
                        "ctaLink": "/contact",
                        "style": "center",
                    },
                }
            ],
        },
        {
            "slug": "/contact",
            "title": "Contact",
            "blocks": [
                {
                    "type": "markdown",
                    "attrs": {"content": "## Get in touch\n\nWe'd love to hear from you."},
                }
            ],
        },
    ]


class TenantProvisioner:
    """Creates tenants atomically and applies settings patches.

    Example:
        >>> provisioner = TenantProvisioner(store)
        >>> tenant = await provisioner.provision(name="Acme Corp", actor_id="admin")
        >>> tenant.id, tenant.domain
        ('acme-corp', 'acme-corp.localhost')
    """

    def __init__(
        self,
        store: KeyValueStore,
        defaults: Optional[TenantDefaultsConfig] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self.store = store
        self.defaults = defaults or TenantDefaultsConfig()
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    async def provision(
        self,
        name: str,
        actor_id: str,
        tenant_id: Optional[str] = None,
        domain: Optional[str] = None,
        theme: Optional[Dict[str, Any]] = None,
    ) -> Tenant:
        """Create a tenant with its starter pages in one transaction.

        Args:
            name: Display name (id source when tenant_id is not given)
            actor_id: Subject id of the provisioning admin
            tenant_id: Explicit id; slugified either way
            domain: Primary domain; defaults to <id>.<domain_suffix>
            theme: Theme overrides; defaults to the stock theme

        Returns:
            The created Tenant

        Raises:
            ValidationError: If name is blank or no id can be derived
            ConflictError: If the id is already in use (nothing is written)
            StoreUnavailableError: If the store fails
        """
        if not name or not name.strip():
            raise ValidationError("name is required", field_name="name")

        resolved_id = slugify(tenant_id if tenant_id and tenant_id.strip() else name)
        if not resolved_id:
            raise ValidationError(
                f"Cannot derive a tenant id from {tenant_id or name!r}", field_name="id"
            )

        now = utc_now()
        tenant = Tenant(
            id=resolved_id,
            domain=domain or f"{resolved_id}.{self.defaults.domain_suffix}",
            name=name.strip(),
            status=TenantStatus.LIVE,
            plan=TenantPlan(self.defaults.plan),
            theme=theme or default_theme(),
            created_at=now,
            created_by=actor_id,
        )

        # Tenant config first, at _TENANT_ITEM
        items = [TransactPut(tenant.to_item(), Condition.item_not_exists())]
        for page in _starter_pages():
            node = ContentNode(
                tenant_id=resolved_id,
                node_id=self._new_id(),
                content_id=self._new_id(),
                slug=page["slug"],
                title=page["title"],
                blocks=page["blocks"],
                status=ContentStatus.PUBLISHED,
                created_at=now,
                author=actor_id,
            )
            items.append(TransactPut(node.to_item()))
            items.append(
                TransactPut(
                    RouteRecord.live(resolved_id, node.slug, node.node_id, now).to_item(),
                    Condition.item_not_exists(),
                )
            )

        with store_errors("provision_tenant"):
            try:
                await self.store.transact_write(items)
            except TransactionCanceledError as e:
                if not e.condition_failed:
                    raise
                if _TENANT_ITEM not in e.failed_indexes():
                    logger.warning(
                        "Provisioning hit leftover routes for an unregistered tenant",
                        extra={"tenant_id": resolved_id, "failed": e.failed_indexes()},
                    )
                raise ConflictError(
                    f"Tenant '{resolved_id}' already exists", "tenant", resolved_id
                ) from e

        logger.info(
            "Provisioned tenant",
            extra={"tenant_id": resolved_id, "domain": tenant.domain, "actor_id": actor_id},
        )
        return tenant

    async def get(self, tenant_id: str) -> Tenant:
        pk, sk = keys.tenant_config_key(tenant_id)
        with store_errors("get_tenant"):
            item = await self.store.get(pk, sk)
        if item is None:
            raise NotFoundError(f"Tenant not found: {tenant_id}", "tenant", tenant_id)
        return Tenant.from_item(item)

    async def list(self) -> List[Tenant]:
        """Every registered tenant, ordered by id."""
        with store_errors("list_tenants"):
            items = await self.store.query(keys.SYSTEM_PARTITION, keys.TENANT_PREFIX)
        return [Tenant.from_item(item) for item in items]

    async def update(self, tenant_id: str, patch: Dict[str, Any], actor_id: str) -> Tenant:
        """Merge-patch tenant settings.

        Top-level fields in the patch overwrite the stored ones. This is a
        plain read-modify-write, not a transaction.

        Raises:
            NotFoundError: If the tenant does not exist
            ValidationError: If the patch tries to change the id or carries
                an unknown status or plan
        """
        if "id" in patch and patch["id"] != tenant_id:
            raise ValidationError("Tenant id cannot be changed", field_name="id")

        pk, sk = keys.tenant_config_key(tenant_id)
        with store_errors("get_tenant"):
            current = await self.store.get(pk, sk)
        if current is None:
            raise NotFoundError(f"Tenant not found: {tenant_id}", "tenant", tenant_id)

        changes = {k: v for k, v in patch.items() if k not in _IMMUTABLE}
        merged = {**current, **changes, "updatedAt": utc_now(), "updatedBy": actor_id}

        try:
            tenant = Tenant.from_item(merged)
        except ValueError as e:
            raise ValidationError(f"Invalid tenant settings: {e}", field_name="settings") from e

        with store_errors("update_tenant"):
            await self.store.put(tenant.to_item())

        logger.info(
            "Updated tenant settings",
            extra={"tenant_id": tenant_id, "fields": sorted(changes), "actor_id": actor_id},
        )
        return tenant
