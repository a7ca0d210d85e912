"""
Shared fixtures for the site engine test suite.
"""

import pytest
import pytest_asyncio

from backend.siteengine.access import Principal
from backend.siteengine.audit import InMemoryAuditPublisher
from backend.siteengine.content.blocks import reset_block_registry
from backend.siteengine.store import InMemoryKeyValueStore


@pytest.fixture(autouse=True)
def fresh_block_registry():
    """Give every test its own global block registry."""
    reset_block_registry()
    yield
    reset_block_registry()


@pytest_asyncio.fixture
async def store():
    """Connected in-memory store."""
    kv = InMemoryKeyValueStore()
    await kv.connect()
    yield kv
    await kv.close()


@pytest.fixture
def audit():
    """Audit publisher that records into a list."""
    return InMemoryAuditPublisher()


@pytest.fixture
def editor():
    """Editor scoped to tenant acme."""
    return Principal(subject_id="user-1", role="EDITOR", tenant_id="acme", email="ed@acme.test")


@pytest.fixture
def tenant_admin():
    """Tenant admin scoped to tenant acme."""
    return Principal(subject_id="admin-1", role="TENANT_ADMIN", tenant_id="acme")


@pytest.fixture
def global_admin():
    """System robot."""
    return Principal(subject_id="system-robot", role="GLOBAL_ADMIN", tenant_id="ALL")
