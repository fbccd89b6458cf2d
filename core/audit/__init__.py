"""Audit trail for work-order actions."""

from core.audit.events import (
    AuditBackend,
    AuditLogger,
    AuditEventType,
    AuditQuery,
    InMemoryAuditBackend,
    JSONFileAuditBackend,
    build_audit_logger,
    create_audit_event,
)

__all__ = [
    "AuditBackend",
    "AuditLogger",
    "AuditEventType",
    "AuditQuery",
    "InMemoryAuditBackend",
    "JSONFileAuditBackend",
    "build_audit_logger",
    "create_audit_event",
]
