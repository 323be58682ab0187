# LeaveCore - Audit Service
# Centralized service for writing and querying the audit trail

from datetime import datetime, date, time
from decimal import Decimal
from typing import Optional, Any

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.inspection import inspect

from leavecore.models.audit_log import AuditLog, AuditAction, create_audit_entry
from leavecore.models.base import Base


class AuditService:
    """
    Service for creating audit log entries.

    Entries are added to the caller's session and flushed with the change
    they describe, so the state transition and its audit row commit or
    roll back together.

    Usage:
        audit = AuditService(db, actor.employee_id, client_ip)

        # Lifecycle transitions
        audit.log(AuditAction.APPROVED, request, target_employee_id=request.employee_id,
                  leave_request_id=request.request_id, notes="ok")

        # Configuration changes - capture old values before modifying
        old_state = audit.capture_state(rule)
        rule.credit_days = Decimal("2")
        audit.log_update(rule, old_state, rule_code=rule.rule_code)
    """

    # Fields to exclude from audit snapshots (bookkeeping only)
    EXCLUDED_FIELDS = {
        "version",
    }

    def __init__(
        self,
        db: Session,
        performed_by: int,
        ip_address: Optional[str] = None,
    ):
        self.db = db
        self.performed_by = performed_by
        self.ip_address = ip_address

    def _serialize_value(self, value: Any) -> Any:
        """
        Convert a value to a JSON-serializable format.

        Handles dates, decimals, and other special types.
        """
        if value is None:
            return None
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return str(value)
        if isinstance(value, (int, float, str, bool)):
            return value
        if isinstance(value, list):
            return [self._serialize_value(v) for v in value]
        return str(value)

    def _get_primary_key(self, instance: Base) -> int:
        """Get the primary key value from a model instance."""
        mapper = inspect(type(instance))
        return getattr(instance, mapper.primary_key[0].name)

    def capture_state(self, instance: Base) -> dict[str, Any]:
        """
        Capture the current state of a model instance as a dict.

        Call this BEFORE making changes to capture the "old" state.
        """
        mapper = inspect(type(instance))
        state = {}

        for column in mapper.columns:
            if column.name in self.EXCLUDED_FIELDS:
                continue
            state[column.key] = self._serialize_value(getattr(instance, column.key))

        return state

    def _diff_states(
        self,
        old_state: dict[str, Any],
        new_state: dict[str, Any]
    ) -> list[str]:
        """Compare two states and return the sorted list of changed field names."""
        all_keys = set(old_state.keys()) | set(new_state.keys())
        return sorted(k for k in all_keys if old_state.get(k) != new_state.get(k))

    def log(
        self,
        action: AuditAction,
        instance: Base,
        notes: Optional[str] = None,
        **refs: Any,
    ) -> AuditLog:
        """
        Append one audit entry about instance.

        refs are the cross-reference columns: target_employee_id,
        leave_request_id, allocation_id, leave_type_code, rule_code.
        The instance must already be flushed so it has a primary key.
        """
        entry = create_audit_entry(
            action=action.value,
            entity_type=instance.__tablename__,
            record_id=self._get_primary_key(instance),
            performed_by=self.performed_by,
            notes=notes,
            ip_address=self.ip_address,
            **refs,
        )
        self.db.add(entry)
        return entry

    def log_insert(self, instance: Base, **refs: Any) -> AuditLog:
        """Log creation of a configuration record with a full snapshot."""
        entry = create_audit_entry(
            action=AuditAction.CREATED.value,
            entity_type=instance.__tablename__,
            record_id=self._get_primary_key(instance),
            performed_by=self.performed_by,
            new_values=self.capture_state(instance),
            ip_address=self.ip_address,
            **refs,
        )
        self.db.add(entry)
        return entry

    def log_update(
        self,
        instance: Base,
        old_state: dict[str, Any],
        action: AuditAction = AuditAction.UPDATED,
        **refs: Any,
    ) -> Optional[AuditLog]:
        """
        Log an update of a configuration record.

        Returns None (and writes nothing) when no field actually changed.
        """
        new_state = self.capture_state(instance)
        changed_fields = self._diff_states(old_state, new_state)

        if not changed_fields:
            return None

        entry = create_audit_entry(
            action=action.value,
            entity_type=instance.__tablename__,
            record_id=self._get_primary_key(instance),
            performed_by=self.performed_by,
            old_values=old_state,
            new_values=new_state,
            changed_fields=changed_fields,
            ip_address=self.ip_address,
            **refs,
        )
        self.db.add(entry)
        return entry


class AuditQuery:
    """
    Read-only queries over the audit trail, for compliance reporting.

    Usage:
        query = AuditQuery(db)
        history = query.get_record_history("leave_requests", 42)
        entries = query.list_by_employee(employee_id=5)
    """

    def __init__(self, db: Session):
        self.db = db

    def get_record_history(self, entity_type: str, record_id: int) -> list[AuditLog]:
        """Full history of one record, oldest first."""
        return list(
            self.db.execute(
                select(AuditLog)
                .where(
                    AuditLog.entity_type == entity_type,
                    AuditLog.record_id == record_id,
                )
                .order_by(AuditLog.performed_at.asc(), AuditLog.audit_id.asc())
            ).scalars()
        )

    def list_by_employee(
        self,
        employee_id: int,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLog]:
        """
        Entries about an employee's leave/training, newest first.
        """
        return list(
            self.db.execute(
                select(AuditLog)
                .where(AuditLog.target_employee_id == employee_id)
                .order_by(AuditLog.performed_at.desc(), AuditLog.audit_id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def list_by_action(
        self,
        action: AuditAction,
        limit: int = 100,
        offset: int = 0,
    ) -> list[AuditLog]:
        return list(
            self.db.execute(
                select(AuditLog)
                .where(AuditLog.action == action.value)
                .order_by(AuditLog.performed_at.desc(), AuditLog.audit_id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def list_by_date_range(
        self,
        start_date: date,
        end_date: date,
        action: Optional[AuditAction] = None,
        employee_id: Optional[int] = None,
    ) -> list[AuditLog]:
        """
        All entries within a date range, oldest first.

        Useful for compliance reports ("show every override this quarter").
        """
        query = select(AuditLog).where(
            AuditLog.performed_at >= datetime.combine(start_date, time.min),
            AuditLog.performed_at <= datetime.combine(end_date, time.max),
        )

        if action is not None:
            query = query.where(AuditLog.action == action.value)

        if employee_id is not None:
            query = query.where(AuditLog.target_employee_id == employee_id)

        return list(
            self.db.execute(
                query.order_by(AuditLog.performed_at.asc(), AuditLog.audit_id.asc())
            ).scalars()
        )
