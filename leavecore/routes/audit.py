# LeaveCore - Audit Routes
# Read-only compliance queries over the audit trail

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from leavecore.database import get_db
from leavecore.dependencies import require_admin
from leavecore.models.audit_log import AuditAction
from leavecore.models.employee import Employee
from leavecore.schemas.audit import AuditLogRead
from leavecore.services.audit import AuditQuery


router = APIRouter(prefix="/audit", tags=["audit"])


def _parse_action(action: Optional[str]) -> Optional[AuditAction]:
    if action is None:
        return None
    try:
        return AuditAction(action.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Unknown audit action '{action}'",
        )


@router.get("", response_model=list[AuditLogRead])
def list_audit_logs(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
    employee_id: Optional[int] = Query(None),
    action: Optional[str] = Query(None),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """
    Audit entries, filtered by employee, action or date range.

    A date range returns everything inside it (oldest first); otherwise
    results are newest first and paginated.
    """
    query = AuditQuery(db)
    parsed_action = _parse_action(action)

    if start_date is not None or end_date is not None:
        if start_date is None or end_date is None:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="start_date and end_date must be given together",
            )
        entries = query.list_by_date_range(start_date, end_date, action=parsed_action, employee_id=employee_id)
    elif employee_id is not None:
        entries = query.list_by_employee(employee_id, limit=limit, offset=offset)
        if parsed_action is not None:
            entries = [e for e in entries if e.action == parsed_action.value]
    elif parsed_action is not None:
        entries = query.list_by_action(parsed_action, limit=limit, offset=offset)
    else:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Filter by employee_id, action, or start_date/end_date",
        )

    return [AuditLogRead.from_entry(e) for e in entries]


@router.get("/history/{entity_type}/{record_id}", response_model=list[AuditLogRead])
def record_history(
    entity_type: str,
    record_id: int,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Every audit entry for one record, oldest first."""
    return [AuditLogRead.from_entry(e) for e in AuditQuery(db).get_record_history(entity_type, record_id)]
