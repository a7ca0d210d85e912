"""
Content node and route record types.

A page is identified by a stable node_id for its whole lifetime. The node's
latest record carries the current slug; the route table maps slugs back to
nodes (live routes) or to newer slugs (redirects).

Invariants:
    - content_id is assigned once at creation and never changes
    - slug always starts with "/"
    - version starts at 1 and increases by one on every update
    - A route record is either live (target_node_id) or a redirect
      (is_redirect and redirect_to), never both
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .. import keys


class ContentStatus(str, Enum):
    """Publication state of a page."""

    DRAFT = "Draft"
    PUBLISHED = "Published"
    ARCHIVED = "Archived"


@dataclass
class ContentNode:
    """Latest record of a page.

    Attributes:
        tenant_id: Owning tenant
        node_id: Stable page identifier
        content_id: Instance identifier assigned at creation
        slug: Current canonical path
        title: Page title
        blocks: Ordered block descriptors (opaque to the router)
        status: Publication state
        version: Monotonic update counter
        created_at: ISO-8601 creation timestamp
        updated_at: ISO-8601 timestamp of the last update
        author: Subject id of the creator
        updated_by: Subject id of the last editor
        restored_from_version: Snapshot this version was restored from, if any
        previous_slug: Slug before the update that returned this node; not stored
    """

    tenant_id: str
    node_id: str
    content_id: str
    slug: str
    title: str
    blocks: list[dict[str, Any]] = field(default_factory=list)
    status: ContentStatus = ContentStatus.DRAFT
    version: int = 1
    created_at: str = ""
    updated_at: str | None = None
    author: str = ""
    author_email: str | None = None
    updated_by: str | None = None
    restored_from_version: int | None = None
    previous_slug: str | None = field(default=None, compare=False)

    def to_item(self) -> dict[str, Any]:
        """Convert to a storable item."""
        return keys.with_key(
            keys.content_key(self.tenant_id, self.node_id),
            {
                "Type": "Page",
                "tenantId": self.tenant_id,
                "nodeId": self.node_id,
                "id": self.content_id,
                "slug": self.slug,
                "title": self.title,
                "blocks": self.blocks,
                "status": self.status.value,
                "version": self.version,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
                "author": self.author,
                "authorEmail": self.author_email,
                "updatedBy": self.updated_by,
                "restoredFromVersion": self.restored_from_version,
            },
        )

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> ContentNode:
        """Create from a stored item."""
        return cls(
            tenant_id=item["tenantId"],
            node_id=item["nodeId"],
            content_id=item["id"],
            slug=item["slug"],
            title=item["title"],
            blocks=item.get("blocks") or [],
            status=ContentStatus(item.get("status", ContentStatus.DRAFT.value)),
            version=int(item.get("version", 1)),
            created_at=item.get("createdAt", ""),
            updated_at=item.get("updatedAt"),
            author=item.get("author", ""),
            author_email=item.get("authorEmail"),
            updated_by=item.get("updatedBy"),
            restored_from_version=item.get("restoredFromVersion"),
        )

    def to_snapshot_item(self) -> dict[str, Any]:
        """Immutable copy of this version under CONTENT#<node_id>#v<version>."""
        item = keys.strip_key(self.to_item())
        item["Type"] = "PageVersion"
        item["snapshotCreatedAt"] = self.updated_at or self.created_at
        return keys.with_key(
            keys.content_version_key(self.tenant_id, self.node_id, self.version), item
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-ready representation for API responses."""
        return keys.strip_key(self.to_item())


@dataclass(frozen=True)
class ContentVersion:
    """Summary of one stored page snapshot."""

    version: int
    title: str
    status: str
    updated_at: str | None = None
    updated_by: str | None = None

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> ContentVersion:
        return cls(
            version=int(item["version"]),
            title=item.get("title", ""),
            status=item.get("status", ContentStatus.DRAFT.value),
            updated_at=(
                item.get("updatedAt") or item.get("snapshotCreatedAt") or item.get("createdAt")
            ),
            updated_by=item.get("updatedBy") or item.get("author"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "title": self.title,
            "status": self.status,
            "updatedAt": self.updated_at,
            "updatedBy": self.updated_by,
        }


@dataclass
class RouteRecord:
    """Mapping from a slug to a node (live) or to another slug (redirect)."""

    tenant_id: str
    slug: str
    target_node_id: str | None = None
    is_redirect: bool = False
    redirect_to: str | None = None
    created_at: str = ""
    updated_at: str | None = None

    @classmethod
    def live(cls, tenant_id: str, slug: str, node_id: str, now: str) -> RouteRecord:
        return cls(tenant_id=tenant_id, slug=slug, target_node_id=node_id, created_at=now)

    @classmethod
    def redirect(cls, tenant_id: str, slug: str, redirect_to: str, now: str) -> RouteRecord:
        return cls(
            tenant_id=tenant_id,
            slug=slug,
            is_redirect=True,
            redirect_to=redirect_to,
            created_at=now,
            updated_at=now,
        )

    def to_item(self) -> dict[str, Any]:
        """Convert to a storable item."""
        return keys.with_key(
            keys.route_key(self.tenant_id, self.slug),
            {
                "Type": "Route",
                "tenantId": self.tenant_id,
                "slug": self.slug,
                "targetNodeId": self.target_node_id,
                "isRedirect": self.is_redirect,
                "redirectTo": self.redirect_to,
                "createdAt": self.created_at,
                "updatedAt": self.updated_at,
            },
        )

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> RouteRecord:
        """Create from a stored item."""
        return cls(
            tenant_id=item["tenantId"],
            slug=item["slug"],
            target_node_id=item.get("targetNodeId"),
            is_redirect=bool(item.get("isRedirect", False)),
            redirect_to=item.get("redirectTo"),
            created_at=item.get("createdAt", ""),
            updated_at=item.get("updatedAt"),
        )

    def to_dict(self) -> dict[str, Any]:
        return keys.strip_key(self.to_item())


@dataclass(frozen=True)
class RouteResolution:
    """Outcome of resolving a slug.

    Exactly one of node_id and redirect_to is set.
    """

    slug: str
    node_id: str | None = None
    redirect_to: str | None = None

    @property
    def is_redirect(self) -> bool:
        return self.redirect_to is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "nodeId": self.node_id,
            "isRedirect": self.is_redirect,
            "redirectTo": self.redirect_to,
        }
