# LeaveCore - Audit Log Model

import enum
import json
from datetime import datetime
from typing import Optional, Any

from sqlalchemy import String, Integer, DateTime, ForeignKey, Text, event
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, utcnow


class AuditAction(str, enum.Enum):
    # Leave request lifecycle
    SUBMITTED = "SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"
    OVERRIDE = "OVERRIDE"
    # Configuration
    CREATED = "CREATED"
    UPDATED = "UPDATED"
    DEACTIVATED = "DEACTIVATED"
    # Training allocation lifecycle
    ALLOCATED = "ALLOCATED"
    UNALLOCATED = "UNALLOCATED"
    ATTENDANCE = "ATTENDANCE"
    COMPLETED = "COMPLETED"
    INCOMPLETE = "INCOMPLETE"
    RL_CREDITED = "RL_CREDITED"
    # Replacement leave claims and balances
    CLAIMED = "CLAIMED"
    ADJUSTED = "ADJUSTED"


class ImmutableAuditLogError(RuntimeError):
    """Raised when something tries to change or remove an audit row."""


class AuditLog(Base):
    """
    Append-only audit trail for every state change in the leave engine.

    Rows are written in the same transaction as the change they describe,
    so a transition never commits without its audit entry. Rows are never
    updated or deleted; the ORM refuses to flush either.

    The old_values and new_values fields store JSON snapshots for
    configuration changes, enabling full reconstruction of history.
    """

    __tablename__ = "audit_log"

    audit_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    action: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True
    )

    # Which table was affected, and the affected row
    entity_type: Mapped[str] = mapped_column(
        String(50),
        nullable=False
    )

    record_id: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        index=True
    )

    # Who did it
    performed_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=False,
        index=True
    )

    # Whose leave/training this concerns
    target_employee_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True,
        index=True
    )

    leave_request_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    allocation_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    leave_type_code: Mapped[Optional[str]] = mapped_column(
        String(20),
        nullable=True
    )

    rule_code: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    # Which fields were changed (for UPDATED), comma-separated
    changed_fields: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True
    )

    old_values: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    new_values: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    ip_address: Mapped[Optional[str]] = mapped_column(
        String(45),  # Supports IPv6
        nullable=True
    )

    performed_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.entity_type}:{self.record_id} by {self.performed_by}>"

    def get_old_values(self) -> Optional[dict]:
        """Parse old_values JSON."""
        if self.old_values:
            return json.loads(self.old_values)
        return None

    def get_new_values(self) -> Optional[dict]:
        """Parse new_values JSON."""
        if self.new_values:
            return json.loads(self.new_values)
        return None

    def get_changes(self) -> dict[str, tuple[Any, Any]]:
        """
        Return a dict of {field_name: (old_value, new_value)} for changed fields.
        Only meaningful for UPDATED and DEACTIVATED actions.
        """
        if not self.changed_fields:
            return {}

        old = self.get_old_values() or {}
        new = self.get_new_values() or {}

        changes = {}
        for field in (self.changed_fields or "").split(","):
            field = field.strip()
            if field:
                changes[field] = (old.get(field), new.get(field))

        return changes


@event.listens_for(AuditLog, "before_update")
def _refuse_audit_update(mapper, connection, target):
    raise ImmutableAuditLogError(f"Audit entry {target.audit_id} cannot be modified")


@event.listens_for(AuditLog, "before_delete")
def _refuse_audit_delete(mapper, connection, target):
    raise ImmutableAuditLogError(f"Audit entry {target.audit_id} cannot be deleted")


def create_audit_entry(
    action: str,
    entity_type: str,
    record_id: int,
    performed_by: int,
    target_employee_id: Optional[int] = None,
    leave_request_id: Optional[int] = None,
    allocation_id: Optional[int] = None,
    leave_type_code: Optional[str] = None,
    rule_code: Optional[str] = None,
    notes: Optional[str] = None,
    old_values: Optional[dict] = None,
    new_values: Optional[dict] = None,
    changed_fields: Optional[list[str]] = None,
    ip_address: Optional[str] = None,
) -> AuditLog:
    """
    Factory function to create an AuditLog entry.

    Returns:
        AuditLog instance (not yet added to session)
    """
    return AuditLog(
        action=action,
        entity_type=entity_type,
        record_id=record_id,
        performed_by=performed_by,
        target_employee_id=target_employee_id,
        leave_request_id=leave_request_id,
        allocation_id=allocation_id,
        leave_type_code=leave_type_code,
        rule_code=rule_code,
        notes=notes,
        old_values=json.dumps(old_values) if old_values else None,
        new_values=json.dumps(new_values) if new_values else None,
        changed_fields=",".join(changed_fields) if changed_fields else None,
        ip_address=ip_address,
    )
