"""
Site Engine Test Suite.

This package contains:
- unit/: Unit tests (in-memory store, fake AWS clients)
- integration/: Service pipeline and HTTP API tests (in-memory store)
"""
