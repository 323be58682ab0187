# LeaveCore - Audit Schemas

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel


class AuditLogRead(BaseModel):
    audit_id: int
    action: str
    entity_type: str
    record_id: int
    performed_by: int
    target_employee_id: Optional[int] = None
    leave_request_id: Optional[int] = None
    allocation_id: Optional[int] = None
    leave_type_code: Optional[str] = None
    rule_code: Optional[str] = None
    notes: Optional[str] = None
    changed_fields: Optional[str] = None
    old_values: Optional[dict[str, Any]] = None
    new_values: Optional[dict[str, Any]] = None
    ip_address: Optional[str] = None
    performed_at: datetime

    @classmethod
    def from_entry(cls, entry) -> "AuditLogRead":
        return cls(
            audit_id=entry.audit_id,
            action=entry.action,
            entity_type=entry.entity_type,
            record_id=entry.record_id,
            performed_by=entry.performed_by,
            target_employee_id=entry.target_employee_id,
            leave_request_id=entry.leave_request_id,
            allocation_id=entry.allocation_id,
            leave_type_code=entry.leave_type_code,
            rule_code=entry.rule_code,
            notes=entry.notes,
            changed_fields=entry.changed_fields,
            old_values=entry.get_old_values(),
            new_values=entry.get_new_values(),
            ip_address=entry.ip_address,
            performed_at=entry.performed_at,
        )
