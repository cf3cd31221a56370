"""Audit collaborator: records of state-changing execution operations."""

from .audit_log import (
    AuditDeliveryReport,
    AuditEntry,
    AuditRecord,
    AuditSink,
    InMemoryAuditLog,
    StructlogAuditSink,
    compute_diff,
    compute_integrity_hash,
    deliver_audit_record,
)

__all__ = [
    "AuditDeliveryReport",
    "AuditEntry",
    "AuditRecord",
    "AuditSink",
    "InMemoryAuditLog",
    "StructlogAuditSink",
    "compute_diff",
    "compute_integrity_hash",
    "deliver_audit_record",
]
