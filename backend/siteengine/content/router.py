"""
Content router: pages, slugs and redirect history.

The router owns three record kinds in the tenant partition:
- CONTENT#<node_id>#LATEST: the page itself
- CONTENT#<node_id>#v<version>: immutable snapshot of every version
- ROUTE#<slug>: live route (slug -> node) or redirect (slug -> slug)

Uniqueness of slugs is emulated with a conditional create on the route
record. A slug change retires the old route into a redirect and claims the
new one in the same transaction as the page write, so a page is never left
without a live route and a taken slug never loses its owner.

Invariants:
    - At most one route record per (tenant, slug)
    - A redirect is never turned back into a live route
    - The node's slug always has a live route pointing at the node
    - Every page write is conditioned on the version that was read
      (optimistic concurrency; a stale writer gets ConflictError)
    - Every version of a page has a snapshot, written with the page itself
    - Patched fields are validated before the store is touched

How to change safely:
    - Keep all items of a slug change in one transaction
    - Never add an unconditional write to a route record that might be live
      for another node
    - Resolution is single-hop; chasing chains needs cycle detection
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from .. import keys
from ..errors import ConflictError, NotFoundError, ValidationError, store_errors
from ..store.base import (
    Condition,
    KeyValueStore,
    TransactPut,
    TransactionCanceledError,
)
from ..timeutil import utc_now
from .blocks import BlockRegistry, get_block_registry
from .models import ContentNode, ContentStatus, ContentVersion, RouteRecord, RouteResolution
from .slugs import check_commerce_conflict, normalize_slug, resolve_requested_slug

logger = logging.getLogger(__name__)

# Item positions inside the slug-change transaction
_REDIRECT_ITEM = 0
_NEW_ROUTE_ITEM = 1
_NODE_ITEM = 2
_SNAPSHOT_ITEM = 3


@dataclass(frozen=True)
class CreatedContent:
    """Identifiers of a newly created page."""

    node_id: str
    content_id: str
    slug: str

    def to_dict(self) -> dict[str, str]:
        return {"nodeId": self.node_id, "id": self.content_id, "slug": self.slug}


@dataclass(frozen=True)
class ContentPatch:
    """Fields an update may change. None means "leave as is"."""

    title: str | None = None
    blocks: list[dict[str, Any]] | None = None
    status: ContentStatus | None = None
    slug: str | None = None


def _coerce_status(status: ContentStatus | str) -> ContentStatus:
    try:
        return ContentStatus(status)
    except ValueError:
        valid = [s.value for s in ContentStatus]
        raise ValidationError(
            f"Invalid status {status!r}, must be one of {valid}", field_name="status"
        )


class ContentRouter:
    """Creates pages, resolves slugs and performs slug changes.

    Thread safety:
        Stateless apart from the injected store; safe to share.

    Example:
        >>> router = ContentRouter(store)
        >>> created = await router.create("acme", "About Us", blocks=[], author="user-1")
        >>> created.slug
        '/about-us'
        >>> await router.update("acme", created.node_id, ContentPatch(slug="team"), "user-1")
        >>> (await router.resolve("acme", "/about-us")).redirect_to
        '/team'
    """

    def __init__(
        self,
        store: KeyValueStore,
        block_registry: BlockRegistry | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self.store = store
        self.block_registry = block_registry or get_block_registry()
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))

    async def _commerce_prefixes(self, tenant_id: str) -> Mapping[str, str] | None:
        pk, sk = keys.tenant_config_key(tenant_id)
        with store_errors("read_tenant_prefixes"):
            tenant = await self.store.get(pk, sk)
        if tenant is None:
            return None
        return tenant.get("urlPrefixes")

    async def _claimable_slug(self, tenant_id: str, slug: str) -> str:
        check_commerce_conflict(slug, await self._commerce_prefixes(tenant_id))
        return slug

    async def create(
        self,
        tenant_id: str,
        title: str,
        blocks: list[dict[str, Any]] | None = None,
        status: ContentStatus | str = ContentStatus.DRAFT,
        requested_slug: str | None = None,
        author: str = "",
        author_email: str | None = None,
    ) -> CreatedContent:
        """Create a page and claim its slug atomically.

        Args:
            tenant_id: Owning tenant
            title: Page title (slug source when no slug is requested)
            blocks: Block descriptors
            status: Initial publication state
            requested_slug: Explicit slug; blank means derive from title
            author: Subject id of the creator
            author_email: Creator's email, stored for display

        Returns:
            CreatedContent with node id, content id and resolved slug

        Raises:
            ValidationError: If the title, slug or blocks are invalid
            ConflictError: If the slug is already taken (nothing is written)
            StoreUnavailableError: If the store fails
        """
        if not title or not title.strip():
            raise ValidationError("title is required", field_name="title")

        validated_blocks = self.block_registry.validate_blocks(blocks)
        status = _coerce_status(status)
        slug = await self._claimable_slug(
            tenant_id, resolve_requested_slug(requested_slug, title)
        )

        now = utc_now()
        node = ContentNode(
            tenant_id=tenant_id,
            node_id=self._new_id(),
            content_id=self._new_id(),
            slug=slug,
            title=title,
            blocks=validated_blocks,
            status=status,
            version=1,
            created_at=now,
            author=author,
            author_email=author_email,
        )
        route = RouteRecord.live(tenant_id, slug, node.node_id, now)

        with store_errors("create_content"):
            try:
                await self.store.transact_write(
                    [
                        TransactPut(node.to_item()),
                        TransactPut(route.to_item(), Condition.item_not_exists()),
                        TransactPut(node.to_snapshot_item()),
                    ]
                )
            except TransactionCanceledError as e:
                if not e.condition_failed:
                    raise
                logger.info(
                    "Slug already taken",
                    extra={"tenant_id": tenant_id, "slug": slug},
                )
                raise ConflictError(
                    f"Page with slug '{slug}' already exists", "route", slug
                ) from e

        logger.info(
            "Created content",
            extra={"tenant_id": tenant_id, "node_id": node.node_id, "slug": slug},
        )
        return CreatedContent(node_id=node.node_id, content_id=node.content_id, slug=slug)

    async def get(self, tenant_id: str, node_id: str) -> ContentNode:
        """Fetch a page's latest record.

        Raises:
            NotFoundError: If the node does not exist
        """
        pk, sk = keys.content_key(tenant_id, node_id)
        with store_errors("get_content"):
            item = await self.store.get(pk, sk)
        if item is None:
            raise NotFoundError(f"Content not found: {node_id}", "content", node_id)
        return ContentNode.from_item(item)

    async def update(
        self,
        tenant_id: str,
        node_id: str,
        patch: ContentPatch,
        updated_by: str,
        expected_version: int | None = None,
    ) -> ContentNode:
        """Update a page, retiring its old slug into a redirect if it changes.

        Args:
            tenant_id: Owning tenant
            node_id: Page to update
            patch: Fields to change
            updated_by: Subject id of the editor
            expected_version: Version the caller last read; a mismatch is a conflict

        Returns:
            The updated ContentNode

        Raises:
            NotFoundError: If the node does not exist
            ValidationError: If a patched field is invalid
            ConflictError: If the new slug is taken or the version moved on
            StoreUnavailableError: If the store fails
        """
        if patch.title is not None and not patch.title.strip():
            raise ValidationError("title cannot be empty", field_name="title")
        blocks = (
            self.block_registry.validate_blocks(patch.blocks) if patch.blocks is not None else None
        )
        status = _coerce_status(patch.status) if patch.status is not None else None
        # Blank slug keeps the current one
        requested_slug = (
            normalize_slug(patch.slug) if patch.slug is not None and patch.slug.strip() else None
        )

        current = await self.get(tenant_id, node_id)
        self._check_expected_version(current, expected_version)

        target_slug = requested_slug or current.slug
        updated = ContentNode(
            tenant_id=tenant_id,
            node_id=node_id,
            content_id=current.content_id,
            slug=target_slug,
            title=patch.title if patch.title is not None else current.title,
            blocks=blocks if blocks is not None else current.blocks,
            status=status or current.status,
            version=current.version + 1,
            created_at=current.created_at,
            updated_at=utc_now(),
            author=current.author,
            author_email=current.author_email,
            updated_by=updated_by,
            previous_slug=current.slug,
        )
        version_guard = Condition.attribute_equals("version", current.version)

        if target_slug == current.slug:
            await self._write_in_place(updated, version_guard)
        else:
            await self._claimable_slug(tenant_id, target_slug)
            await self._change_slug(current, updated, version_guard)

        return updated

    @staticmethod
    def _check_expected_version(current: ContentNode, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != current.version:
            raise ConflictError(
                f"Content {current.node_id} is at version {current.version}, "
                f"expected {expected_version}",
                "content",
                current.node_id,
            )

    async def _write_in_place(self, updated: ContentNode, version_guard: Condition) -> None:
        with store_errors("update_content"):
            try:
                await self.store.transact_write(
                    [
                        TransactPut(updated.to_item(), version_guard),
                        TransactPut(updated.to_snapshot_item()),
                    ]
                )
            except TransactionCanceledError as e:
                if not e.condition_failed:
                    raise
                raise ConflictError(
                    f"Content {updated.node_id} was modified concurrently",
                    "content",
                    updated.node_id,
                ) from e

        logger.info(
            "Updated content",
            extra={
                "tenant_id": updated.tenant_id,
                "node_id": updated.node_id,
                "version": updated.version,
            },
        )

    async def _change_slug(
        self, current: ContentNode, updated: ContentNode, version_guard: Condition
    ) -> None:
        tenant_id = current.tenant_id
        old_slug, new_slug = current.slug, updated.slug
        now = updated.updated_at or utc_now()

        # Order must match _REDIRECT_ITEM, _NEW_ROUTE_ITEM, _NODE_ITEM, _SNAPSHOT_ITEM
        items = [
            TransactPut(RouteRecord.redirect(tenant_id, old_slug, new_slug, now).to_item()),
            TransactPut(
                RouteRecord.live(tenant_id, new_slug, current.node_id, now).to_item(),
                Condition.item_not_exists(),
            ),
            TransactPut(updated.to_item(), version_guard),
            TransactPut(updated.to_snapshot_item()),
        ]

        with store_errors("change_slug"):
            try:
                await self.store.transact_write(items)
            except TransactionCanceledError as e:
                failed = e.failed_indexes()
                if _NEW_ROUTE_ITEM in failed:
                    logger.info(
                        "Slug change rejected, target slug taken",
                        extra={"tenant_id": tenant_id, "from": old_slug, "to": new_slug},
                    )
                    raise ConflictError(
                        f"Page with slug '{new_slug}' already exists", "route", new_slug
                    ) from e
                if _NODE_ITEM in failed:
                    raise ConflictError(
                        f"Content {current.node_id} was modified concurrently",
                        "content",
                        current.node_id,
                    ) from e
                raise

        logger.info(
            "Changed content slug",
            extra={
                "tenant_id": tenant_id,
                "node_id": current.node_id,
                "from": old_slug,
                "to": new_slug,
            },
        )

    async def resolve(self, tenant_id: str, slug: str) -> RouteResolution:
        """Resolve a slug to a node or to the slug it redirects to.

        Resolution is single-hop: if the redirect target has itself been
        retired, the caller sees the first redirect only.

        Raises:
            NotFoundError: If no route exists for the slug
        """
        normalized = normalize_slug(slug)
        pk, sk = keys.route_key(tenant_id, normalized)
        with store_errors("resolve_route"):
            item = await self.store.get(pk, sk)
        if item is None:
            raise NotFoundError(f"No route for {normalized}", "route", normalized)

        route = RouteRecord.from_item(item)
        if route.is_redirect:
            return RouteResolution(slug=normalized, redirect_to=route.redirect_to)
        return RouteResolution(slug=normalized, node_id=route.target_node_id)

    async def list_content(self, tenant_id: str) -> list[ContentNode]:
        """All pages of a tenant (latest records only)."""
        with store_errors("list_content"):
            items = await self.store.query(keys.tenant_partition(tenant_id), keys.CONTENT_PREFIX)
        return [ContentNode.from_item(i) for i in items if keys.is_latest_content(i[keys.SK])]

    async def list_redirects(self, tenant_id: str) -> list[RouteRecord]:
        """All retired slugs of a tenant."""
        with store_errors("list_redirects"):
            items = await self.store.query(keys.tenant_partition(tenant_id), keys.ROUTE_PREFIX)
        return [RouteRecord.from_item(i) for i in items if i.get("isRedirect")]

    async def list_versions(self, tenant_id: str, node_id: str) -> list[ContentVersion]:
        """Snapshots of a page, newest first.

        Raises:
            NotFoundError: If the page does not exist
        """
        await self.get(tenant_id, node_id)
        with store_errors("list_content_versions"):
            items = await self.store.query(
                keys.tenant_partition(tenant_id), keys.content_version_prefix(node_id)
            )
        # Sort keys order v10 before v2, so order on the number
        versions = [ContentVersion.from_item(i) for i in items]
        return sorted(versions, key=lambda v: v.version, reverse=True)

    async def restore(
        self, tenant_id: str, node_id: str, version: int, restored_by: str
    ) -> ContentNode:
        """Write a new version carrying the title, blocks and status of an old one.

        The page keeps its current slug, so routes are left untouched.

        Raises:
            NotFoundError: If the page or the requested snapshot does not exist
            ConflictError: If the page was modified concurrently
        """
        pk, sk = keys.content_version_key(tenant_id, node_id, version)
        with store_errors("get_content_version"):
            snapshot = await self.store.get(pk, sk)
        if snapshot is None:
            raise NotFoundError(
                f"Version {version} of content {node_id} not found",
                "content_version",
                f"{node_id}#v{version}",
            )

        current = await self.get(tenant_id, node_id)
        historical = ContentNode.from_item(snapshot)
        restored = ContentNode(
            tenant_id=tenant_id,
            node_id=node_id,
            content_id=current.content_id,
            slug=current.slug,
            title=historical.title,
            blocks=historical.blocks,
            status=historical.status,
            version=current.version + 1,
            created_at=current.created_at,
            updated_at=utc_now(),
            author=current.author,
            author_email=current.author_email,
            updated_by=restored_by,
            restored_from_version=version,
        )
        await self._write_in_place(
            restored, Condition.attribute_equals("version", current.version)
        )

        logger.info(
            "Restored content version",
            extra={
                "tenant_id": tenant_id,
                "node_id": node_id,
                "restored_from": version,
                "version": restored.version,
            },
        )
        return restored
