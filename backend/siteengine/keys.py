"""
Composite key layout for the single-table store.

Every record kind is addressed by a (PK, SK) pair. Tenant data is
partitioned by tenant so no operation ever contends with another
tenant's keys; tenant configuration itself lives in a system partition.

Layout:
    PK                  SK                                  Record
    SYSTEM              TENANT#<tenant_id>                  Tenant
    TENANT#<tenant_id>  CONTENT#<node_id>#LATEST            ContentNode
    TENANT#<tenant_id>  CONTENT#<node_id>#v<version>        ContentNode snapshot
    TENANT#<tenant_id>  ROUTE#<slug>                        RouteRecord
    TENANT#<tenant_id>  PRODUCT#<product_id>                Product
    TENANT#<tenant_id>  CATPROD#<category_id>#<product_id>  CategoryProductEdge

Invariants:
    - Key prefixes never change once records exist
    - Slugs are stored verbatim in the route sort key (leading "/" included)

How to change safely:
    - Add new record kinds with a new prefix
    - Never reuse a prefix for a different record kind
"""

from __future__ import annotations

PK = "PK"
SK = "SK"

SYSTEM_PARTITION = "SYSTEM"

TENANT_PREFIX = "TENANT#"
CONTENT_PREFIX = "CONTENT#"
LATEST_SUFFIX = "#LATEST"
VERSION_MARKER = "#v"
ROUTE_PREFIX = "ROUTE#"
PRODUCT_PREFIX = "PRODUCT#"
CATPROD_PREFIX = "CATPROD#"


def tenant_partition(tenant_id: str) -> str:
    """Partition key for all records owned by a tenant."""
    return f"{TENANT_PREFIX}{tenant_id}"


def tenant_config_key(tenant_id: str) -> tuple[str, str]:
    return SYSTEM_PARTITION, f"{TENANT_PREFIX}{tenant_id}"


def content_key(tenant_id: str, node_id: str) -> tuple[str, str]:
    return tenant_partition(tenant_id), f"{CONTENT_PREFIX}{node_id}{LATEST_SUFFIX}"


def content_version_prefix(node_id: str) -> str:
    """Sort key prefix selecting every snapshot of one page."""
    return f"{CONTENT_PREFIX}{node_id}{VERSION_MARKER}"


def content_version_key(tenant_id: str, node_id: str, version: int) -> tuple[str, str]:
    return tenant_partition(tenant_id), f"{content_version_prefix(node_id)}{version}"


def route_key(tenant_id: str, slug: str) -> tuple[str, str]:
    return tenant_partition(tenant_id), f"{ROUTE_PREFIX}{slug}"


def product_key(tenant_id: str, product_id: str) -> tuple[str, str]:
    return tenant_partition(tenant_id), f"{PRODUCT_PREFIX}{product_id}"


def category_edge_prefix(category_id: str) -> str:
    """Sort key prefix selecting every edge of one category."""
    return f"{CATPROD_PREFIX}{category_id}#"


def category_edge_key(tenant_id: str, category_id: str, product_id: str) -> tuple[str, str]:
    return tenant_partition(tenant_id), f"{category_edge_prefix(category_id)}{product_id}"


def is_latest_content(sort_key: str) -> bool:
    return sort_key.startswith(CONTENT_PREFIX) and sort_key.endswith(LATEST_SUFFIX)


def with_key(key: tuple[str, str], attributes: dict) -> dict:
    """Build a storable item from a key pair and its attributes."""
    pk, sk = key
    return {PK: pk, SK: sk, **attributes}


def strip_key(item: dict) -> dict:
    """Drop the key attributes from a stored item."""
    return {k: v for k, v in item.items() if k not in (PK, SK)}
