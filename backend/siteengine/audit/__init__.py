"""Best-effort audit publishing."""

from .publisher import (
    AUDIT_DETAIL_TYPE,
    AuditPublishError,
    AuditPublisher,
    AuditRecord,
    EventBridgeAuditPublisher,
    InMemoryAuditPublisher,
    NullAuditPublisher,
    create_audit_publisher,
    publish_audit,
)

__all__ = [
    "AUDIT_DETAIL_TYPE",
    "AuditPublishError",
    "AuditPublisher",
    "AuditRecord",
    "EventBridgeAuditPublisher",
    "InMemoryAuditPublisher",
    "NullAuditPublisher",
    "create_audit_publisher",
    "publish_audit",
]
