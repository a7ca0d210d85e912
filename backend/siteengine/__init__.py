"""
Site Engine - tenant-scoped content routing and catalog consistency.

This package implements the write paths of a multi-tenant site builder
on top of a partitioned key-value store:
- Content nodes with unique, tenant-relative slugs and redirect history
- Category/product adjacency records kept in sync with product membership
- Atomic tenant provisioning with a default page set
- Role and tenant-scope access checks before any store access
- Best-effort audit publishing

Architecture:
    ┌─────────────┐     ┌──────────────┐     ┌───────────────┐
    │  HTTP API   │────▶│ AccessPolicy │────▶│  SiteService  │
    │  (FastAPI)  │     │  (authorize) │     │ (orchestrate) │
    └─────────────┘     └──────────────┘     └───────┬───────┘
                                                     │
                 ┌───────────────────┬───────────────┼──────────────────┐
                 ▼                   ▼               ▼                  ▼
          ┌─────────────┐   ┌────────────────┐ ┌────────────┐   ┌──────────────┐
          │ContentRouter│   │CatalogConsist. │ │Provisioner │   │AuditPublisher│
          └──────┬──────┘   └───────┬────────┘ └─────┬──────┘   └──────────────┘
                 └──────────────────┼────────────────┘
                                    ▼
                        ┌──────────────────────────┐
                        │ KeyValueStore (PK, SK)   │
                        │ memory / DynamoDB        │
                        └──────────────────────────┘

Invariants:
    - Every tenant record lives under PK = TENANT#<tenant_id>
    - At most one route record exists per (tenant, slug)
    - Multi-item writes that must agree go through one store transaction
    - Audit failures never fail the primary operation

Version: see _version.py.
"""

from ._version import __version__

__all__ = ["__version__"]
