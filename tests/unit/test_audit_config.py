"""
Unit tests for audit publishing and configuration loading.

Tests cover:
- EventBridge entry shape and rejected entries
- publish_audit never raising
- Publisher selection
- ServerConfig.from_env and validation
"""

import json

import pytest

from backend.siteengine.audit import (
    AUDIT_DETAIL_TYPE,
    AuditPublishError,
    AuditRecord,
    EventBridgeAuditPublisher,
    InMemoryAuditPublisher,
    NullAuditPublisher,
    create_audit_publisher,
    publish_audit,
)
from backend.siteengine.config import EventBusConfig, ServerConfig, StoreBackend


class FakeEventsClient:
    def __init__(self, response=None):
        self.entries = []
        self.response = response or {"FailedEntryCount": 0, "Entries": [{"EventId": "e1"}]}

    async def put_events(self, Entries):
        self.entries.extend(Entries)
        return self.response


class TestAuditPublishing:
    """Tests for audit publishers."""

    @pytest.mark.asyncio
    async def test_eventbridge_entry(self):
        """Records go to the bus as AUDIT_LOG events."""
        publisher = EventBridgeAuditPublisher(EventBusConfig(bus_name="site-events"))
        publisher._client = FakeEventsClient()

        record = AuditRecord("acme", "user-1", "CREATE_PAGE", {"slug": "/a"}, ip="10.0.0.1")
        await publisher.publish(record)

        entry = publisher._client.entries[0]
        assert entry["EventBusName"] == "site-events"
        assert entry["Source"] == "siteengine.system"
        assert entry["DetailType"] == AUDIT_DETAIL_TYPE
        detail = json.loads(entry["Detail"])
        assert detail["tenantId"] == "acme"
        assert detail["actorId"] == "user-1"
        assert detail["details"] == {"slug": "/a"}

    @pytest.mark.asyncio
    async def test_rejected_entry_raises(self):
        """A failed entry is reported by publish()."""
        publisher = EventBridgeAuditPublisher(EventBusConfig(bus_name="site-events"))
        publisher._client = FakeEventsClient(
            {"FailedEntryCount": 1, "Entries": [{"ErrorCode": "InternalFailure"}]}
        )

        with pytest.raises(AuditPublishError):
            await publisher.publish(AuditRecord("acme", "u", "X"))

    @pytest.mark.asyncio
    async def test_no_bus_skips(self):
        """Without a bus name nothing is sent."""
        publisher = EventBridgeAuditPublisher(EventBusConfig())
        await publisher.publish(AuditRecord("acme", "u", "X"))
        assert publisher._client is None

    @pytest.mark.asyncio
    async def test_publish_audit_swallows_failures(self):
        """Delivery failures are logged, never raised."""
        publisher = InMemoryAuditPublisher()
        publisher.inject_failure(ConnectionError("bus down"))

        assert await publish_audit(publisher, AuditRecord("acme", "u", "X")) is False
        assert await publish_audit(publisher, AuditRecord("acme", "u", "Y")) is True
        assert publisher.actions() == ["Y"]

    def test_publisher_selection(self):
        """A configured bus selects EventBridge."""
        assert isinstance(create_audit_publisher(EventBusConfig()), NullAuditPublisher)
        assert isinstance(
            create_audit_publisher(EventBusConfig(bus_name="b")), EventBridgeAuditPublisher
        )


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self, monkeypatch):
        """Local development defaults need no environment."""
        for name in ("STORE_BACKEND", "EVENT_BUS_NAME", "CORS_ORIGINS", "HTTP_PORT"):
            monkeypatch.delenv(name, raising=False)

        config = ServerConfig.from_env()

        assert config.store_backend == StoreBackend.MEMORY
        assert config.http.port == 8080
        assert config.event_bus.bus_name is None

    def test_from_env(self, monkeypatch):
        """Sections read their variables."""
        monkeypatch.setenv("STORE_BACKEND", "dynamodb")
        monkeypatch.setenv("TABLE_NAME", "sites-prod")
        monkeypatch.setenv("EVENT_BUS_NAME", "audit-bus")
        monkeypatch.setenv("CORS_ORIGINS", "https://a.test, https://b.test")
        monkeypatch.setenv("TENANT_DOMAIN_SUFFIX", "sites.test")

        config = ServerConfig.from_env()

        assert config.store_backend == StoreBackend.DYNAMODB
        assert config.dynamodb.table_name == "sites-prod"
        assert config.event_bus.bus_name == "audit-bus"
        assert config.http.cors_origins == ("https://a.test", "https://b.test")
        assert config.tenant_defaults.domain_suffix == "sites.test"

    def test_invalid_backend(self, monkeypatch):
        """Unknown backends are rejected."""
        monkeypatch.setenv("STORE_BACKEND", "postgres")
        with pytest.raises(ValueError):
            ServerConfig.from_env()

    def test_transaction_limit_bounds(self, monkeypatch):
        """The transaction limit cannot exceed DynamoDB's."""
        monkeypatch.setenv("DYNAMODB_MAX_TRANSACTION_ITEMS", "500")
        with pytest.raises(ValueError):
            ServerConfig.from_env()
