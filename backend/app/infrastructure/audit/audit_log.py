"""
Audit logging for execution operations.

Every state-changing facade call produces one :class:`AuditRecord`, including
failed attempts (``success=False``). Delivery is best effort: a sink failure
is logged and reported back in an :class:`AuditDeliveryReport`, it never
undoes or fails the business operation.
"""

import hashlib
import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from app.core.observability import get_correlation_id, get_logger, record_audit_failure
from app.domain.shared.base import utcnow

logger = get_logger(__name__)


class AuditRecord(BaseModel):
    """One audited attempt at a state-changing operation."""

    model_config = ConfigDict(frozen=True)

    action: str
    entity_type: str
    entity_id: str | None = None
    old_value: dict[str, Any] | None = None
    new_value: dict[str, Any] | None = None
    actor_user_id: str
    tenant_id: str
    timestamp: datetime = Field(default_factory=utcnow)
    success: bool = True
    error_code: str | None = None
    correlation_id: str | None = Field(default_factory=lambda: get_correlation_id() or None)


class AuditDeliveryReport(BaseModel):
    """Outcome of handing a record to the audit sink."""

    model_config = ConfigDict(frozen=True)

    delivered: bool
    action: str
    error: str | None = None


class AuditSink(ABC):
    """Audit collaborator receiving records for every state-changing operation."""

    @abstractmethod
    async def record(self, record: AuditRecord) -> None:
        """Persist or forward an audit record."""


class AuditEntry(BaseModel):
    """Stored audit record with its position and integrity hash."""

    model_config = ConfigDict(frozen=True)

    sequence: int
    record: AuditRecord
    previous_hash: str | None = None
    integrity_hash: str | None = None


def compute_integrity_hash(
    record: AuditRecord, secret: str, previous_hash: str | None = None
) -> str:
    """
    SHA256 over the canonical JSON of a record, chained to the previous entry.

    None values are dropped and keys sorted so the hash is stable.
    """
    canonical_data = {
        k: v for k, v in record.model_dump(mode="json").items() if v is not None
    }
    if previous_hash:
        canonical_data["previous_hash"] = previous_hash
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)
    hash_input = f"{canonical_json}:{secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def compute_diff(before: dict[str, Any], after: dict[str, Any]) -> dict[str, Any]:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    for key in sorted(set(before) | set(after)):
        if before.get(key) != after.get(key):
            diff[key] = {"before": before.get(key), "after": after.get(key)}
    return diff


class InMemoryAuditLog(AuditSink):
    """
    Append-only in-process audit log with integrity hashing.

    With a secret configured every entry carries a hash chained to its
    predecessor, so :meth:`verify_integrity` detects edited or dropped entries.
    """

    def __init__(self, integrity_secret: str | None = None) -> None:
        self._integrity_secret = integrity_secret
        self._entries: list[AuditEntry] = []

    async def record(self, record: AuditRecord) -> None:
        previous_hash = self._entries[-1].integrity_hash if self._entries else None
        integrity_hash = None
        if self._integrity_secret:
            integrity_hash = compute_integrity_hash(
                record, self._integrity_secret, previous_hash
            )
        self._entries.append(
            AuditEntry(
                sequence=len(self._entries) + 1,
                record=record,
                previous_hash=previous_hash,
                integrity_hash=integrity_hash,
            )
        )

    @property
    def entries(self) -> list[AuditEntry]:
        return self._entries.copy()

    @property
    def records(self) -> list[AuditRecord]:
        return [entry.record for entry in self._entries]

    def find(
        self,
        tenant_id: str | None = None,
        entity_type: str | None = None,
        entity_id: str | None = None,
        action: str | None = None,
        success: bool | None = None,
    ) -> list[AuditRecord]:
        """Get audit records with optional filtering, oldest first."""
        return [
            record
            for record in self.records
            if (tenant_id is None or record.tenant_id == tenant_id)
            and (entity_type is None or record.entity_type == entity_type)
            and (entity_id is None or record.entity_id == entity_id)
            and (action is None or record.action == action)
            and (success is None or record.success == success)
        ]

    def failures(self, tenant_id: str | None = None) -> list[AuditRecord]:
        return self.find(tenant_id=tenant_id, success=False)

    def verify_integrity(self) -> bool:
        """Recompute the hash chain; False if any entry was tampered with."""
        if not self._integrity_secret:
            return True
        previous_hash = None
        for entry in self._entries:
            expected = compute_integrity_hash(
                entry.record, self._integrity_secret, previous_hash
            )
            if entry.integrity_hash != expected or entry.previous_hash != previous_hash:
                return False
            previous_hash = entry.integrity_hash
        return True


class StructlogAuditSink(AuditSink):
    """Audit sink writing records to the structured log stream."""

    def __init__(self, logger_name: str = "audit") -> None:
        self._logger = get_logger(logger_name)

    async def record(self, record: AuditRecord) -> None:
        self._logger.info("audit", **record.model_dump(mode="json"))


async def deliver_audit_record(sink: AuditSink, record: AuditRecord) -> AuditDeliveryReport:
    """
    Hand a record to the sink without letting a failure escape.

    Returns:
        Delivery report; ``delivered`` is False when the sink raised
    """
    try:
        await sink.record(record)
    except Exception as e:
        record_audit_failure(record.action)
        logger.error(
            "Audit delivery failed",
            action=record.action,
            entity_type=record.entity_type,
            entity_id=record.entity_id,
            tenant_id=record.tenant_id,
            error=str(e),
            error_type=type(e).__name__,
        )
        return AuditDeliveryReport(delivered=False, action=record.action, error=str(e))
    return AuditDeliveryReport(delivered=True, action=record.action)
