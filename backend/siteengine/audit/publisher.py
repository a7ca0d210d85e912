"""
Audit publishing.

Every mutating operation emits one AuditRecord after it succeeds. Delivery
is fire-and-forget: publish_audit() logs and swallows every failure so an
unreachable event bus never fails the operation that already happened.

Invariants:
    - Audit records are published only after the primary write succeeded
    - No publisher failure escapes publish_audit()

How to change safely:
    - Keep the EventBridge source and detail type stable; downstream rules
      match on them
    - New publishers must implement the AuditPublisher protocol
"""

from __future__ import annotations

import json
import logging
from abc import abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from aiobotocore.session import get_session

from ..config import EventBusConfig
from ..timeutil import utc_now

logger = logging.getLogger(__name__)

AUDIT_DETAIL_TYPE = "AUDIT_LOG"


class AuditPublishError(Exception):
    """The event bus rejected an audit record."""
    pass


@dataclass
class AuditRecord:
    """What happened, to which tenant, and who did it.

    Attributes:
        tenant_id: Tenant the operation touched
        actor_id: Subject id of the caller
        action: Operation name, e.g. CREATE_PAGE
        details: Operation-specific context
        ip: Caller address, if known
        actor_email: Caller email, if known
        timestamp: ISO-8601 time of publishing
    """

    tenant_id: str
    actor_id: str
    action: str
    details: Dict[str, Any] = field(default_factory=dict)
    ip: Optional[str] = None
    actor_email: Optional[str] = None
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        return {
            "tenantId": data["tenant_id"],
            "actorId": data["actor_id"],
            "actorEmail": data["actor_email"],
            "action": data["action"],
            "details": data["details"],
            "ip": data["ip"],
            "timestamp": data["timestamp"],
        }


@runtime_checkable
class AuditPublisher(Protocol):
    """Protocol for audit sinks."""

    @abstractmethod
    async def publish(self, record: AuditRecord) -> None:
        """Deliver one record.

        Raises:
            Exception: Any delivery failure; callers go through publish_audit()
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...


class EventBridgeAuditPublisher:
    """Publishes audit records to an EventBridge bus.

    Example:
        >>> publisher = EventBridgeAuditPublisher(EventBusConfig(bus_name="site-events"))
        >>> await publisher.publish(AuditRecord("acme", "user-1", "CREATE_PAGE"))
    """

    def __init__(self, config: EventBusConfig) -> None:
        self.config = config
        self._session = None
        self._client_ctx = None
        self._client = None

    async def _ensure_client(self) -> Any:
        if self._client is None:
            self._session = get_session()
            client_config = {"region_name": self.config.region}
            if self.config.endpoint_url:
                client_config["endpoint_url"] = self.config.endpoint_url
            self._client_ctx = self._session.create_client("events", **client_config)
            self._client = await self._client_ctx.__aenter__()
        return self._client

    async def publish(self, record: AuditRecord) -> None:
        if not self.config.bus_name:
            logger.warning("Event bus not configured, skipping audit log")
            return

        client = await self._ensure_client()
        response = await client.put_events(
            Entries=[
                {
                    "EventBusName": self.config.bus_name,
                    "Source": self.config.source,
                    "DetailType": AUDIT_DETAIL_TYPE,
                    "Detail": json.dumps(record.to_dict(), default=str),
                }
            ]
        )
        if response.get("FailedEntryCount"):
            entry = (response.get("Entries") or [{}])[0]
            raise AuditPublishError(
                f"EventBridge rejected audit record: {entry.get('ErrorCode')} "
                f"{entry.get('ErrorMessage')}"
            )

    async def close(self) -> None:
        if self._client_ctx is not None:
            try:
                await self._client_ctx.__aexit__(None, None, None)
            except Exception as e:
                logger.warning(f"Error closing EventBridge client: {e}")
        self._client = None
        self._client_ctx = None
        self._session = None


class InMemoryAuditPublisher:
    """Collects records in a list (testing helper)."""

    def __init__(self) -> None:
        self.records: List[AuditRecord] = []
        self._pending_failure: Optional[Exception] = None

    async def publish(self, record: AuditRecord) -> None:
        if self._pending_failure is not None:
            failure, self._pending_failure = self._pending_failure, None
            raise failure
        self.records.append(record)

    async def close(self) -> None:
        pass

    # Testing helpers

    def inject_failure(self, exception: Exception) -> None:
        """Make the next publish raise this exception."""
        self._pending_failure = exception

    def actions(self) -> List[str]:
        return [r.action for r in self.records]


class NullAuditPublisher:
    """Discards every record."""

    async def publish(self, record: AuditRecord) -> None:
        pass

    async def close(self) -> None:
        pass


def create_audit_publisher(config: EventBusConfig) -> AuditPublisher:
    """EventBridge when a bus is configured, otherwise a no-op publisher."""
    if config.bus_name:
        return EventBridgeAuditPublisher(config)
    logger.warning("EVENT_BUS_NAME not set, audit records will be discarded")
    return NullAuditPublisher()


async def publish_audit(publisher: AuditPublisher, record: AuditRecord) -> bool:
    """Publish best-effort.

    Returns:
        True if the record was handed to the publisher without error
    """
    try:
        await publisher.publish(record)
        return True
    except Exception as e:
        logger.error(
            "Failed to publish audit event",
            extra={
                "tenant_id": record.tenant_id,
                "action": record.action,
                "error": str(e),
            },
        )
        return False
