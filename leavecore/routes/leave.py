# LeaveCore - Leave Request Routes
# Apply, decide, cancel, override, escalations, balances and RL claims

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from leavecore.database import get_db
from leavecore.dependencies import get_current_user, get_client_ip, require_admin, require_manager
from leavecore.models.base import utcnow
from leavecore.models.employee import Employee
from leavecore.schemas.leave import (
    LeaveApply,
    LeaveDecision,
    LeaveOverride,
    LeaveRequestRead,
    EscalationRead,
    BalanceRead,
    BalanceAdjust,
    LeaveBalanceRead,
    BulkAllocate,
    BulkAllocateResponse,
    RLSummaryRead,
    RLClaimCreate,
    RLClaimReject,
    RLCreditRead,
)
from leavecore.services.audit import AuditService
from leavecore.services.balance import BalanceLedger
from leavecore.services.credit_claims import CreditClaimService
from leavecore.services.escalation import EscalationMonitor
from leavecore.services.leave_request import LeaveRequestService
from leavecore.services.rule_registry import RuleRegistryService


router = APIRouter(prefix="/leave", tags=["leave"])


def _target_employee(user: Employee, employee_id: Optional[int]) -> int:
    """Employees see their own data; admins may look at anyone's."""
    if employee_id is None or employee_id == user.employee_id:
        return user.employee_id
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return employee_id


@router.post("", response_model=LeaveRequestRead, status_code=status.HTTP_201_CREATED)
def apply_leave(
    body: LeaveApply,
    request: Request,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Submit a leave application."""
    service = LeaveRequestService(db, user, get_client_ip(request))
    leave_request = service.apply(**body.model_dump())
    db.commit()
    return leave_request


@router.get("", response_model=list[LeaveRequestRead])
def list_leave(
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
    employee_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    target = _target_employee(user, employee_id)
    return LeaveRequestService(db, user).list_requests(employee_id=target, status=status_filter)


@router.get("/pending-approval", response_model=list[LeaveRequestRead])
def list_pending_approval(
    user: Employee = Depends(require_manager),
    db: Session = Depends(get_db),
):
    """Requests waiting on the current user's decision."""
    return LeaveRequestService(db, user).list_requests(
        status="PENDING",
        approver_id=user.employee_id,
    )


@router.get("/escalations", response_model=list[EscalationRead])
def list_escalations(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
    threshold_days: Optional[int] = Query(None, ge=0),
):
    """PENDING requests older than the escalation threshold."""
    return [
        EscalationRead(
            request=LeaveRequestRead.model_validate(escalation.request),
            pending_days=escalation.pending_days,
        )
        for escalation in EscalationMonitor(db).find_escalations(threshold_days)
    ]


@router.get("/balances", response_model=list[BalanceRead])
def list_balances(
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
    employee_id: Optional[int] = Query(None),
    year: Optional[int] = Query(None),
):
    target = _target_employee(user, employee_id)
    year = year or utcnow().year
    ledger = BalanceLedger(db)

    balances = [
        BalanceRead(
            leave_type_id=leave_type.leave_type_id,
            code=leave_type.code,
            name=leave_type.name,
            year=year,
            available_days=ledger.available_days(target, leave_type, year),
        )
        for leave_type in RuleRegistryService(db, user.employee_id).list_leave_types()
    ]
    # Seeding a missing balance row is a write
    db.commit()
    return balances


@router.get("/rl-summary", response_model=RLSummaryRead)
def rl_summary(
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
    employee_id: Optional[int] = Query(None),
):
    target = _target_employee(user, employee_id)
    ledger = BalanceLedger(db)
    rl_type = RuleRegistryService(db, user.employee_id).get_leave_type_by_code(
        ledger.settings.rl_leave_type_code
    )
    return RLSummaryRead.model_validate(ledger.rl_summary(target, rl_leave_type=rl_type))


@router.post("/balances/adjust", response_model=LeaveBalanceRead)
def adjust_balance(
    body: BalanceAdjust,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Set one employee's entitlement or carried-forward days for a year."""
    leave_type = RuleRegistryService(db, user.employee_id).get_leave_type(body.leave_type_id)
    balance = BalanceLedger(db).adjust_balance(
        body.employee_id,
        leave_type,
        body.year,
        AuditService(db, user.employee_id, get_client_ip(request)),
        allocated_days=body.allocated_days,
        carry_forward_days=body.carry_forward_days,
    )
    db.commit()
    return balance


@router.post("/balances/bulk-allocate", response_model=BulkAllocateResponse)
def bulk_allocate(
    body: BulkAllocate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Add days to every active employee's entitlement for a year."""
    leave_type = RuleRegistryService(db, user.employee_id).get_leave_type(body.leave_type_id)
    created, updated = BalanceLedger(db).bulk_allocate(
        leave_type,
        body.year,
        body.days,
        AuditService(db, user.employee_id, get_client_ip(request)),
        department=body.department,
    )
    db.commit()
    return BulkAllocateResponse(created=created, updated=updated)


# Replacement leave claims

@router.post("/rl-claims", response_model=RLCreditRead, status_code=status.HTTP_201_CREATED)
def submit_rl_claim(
    body: RLClaimCreate,
    request: Request,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Claim replacement leave for public holiday, rest-day or other qualifying work."""
    service = CreditClaimService(db, user, get_client_ip(request))
    credit = service.submit(**body.model_dump())
    db.commit()
    return credit


@router.get("/rl-claims", response_model=list[RLCreditRead])
def list_rl_claims(
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
    employee_id: Optional[int] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
):
    """Own claims; admins may list anyone's."""
    target = _target_employee(user, employee_id)
    return CreditClaimService(db, user).list_claims(employee_id=target, status=status_filter)


@router.get("/rl-claims/pending", response_model=list[RLCreditRead])
def list_pending_rl_claims(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Claims from all employees waiting on an admin decision."""
    return CreditClaimService(db, user).list_claims(status="PENDING")


@router.post("/rl-claims/{credit_id}/approve", response_model=RLCreditRead)
def approve_rl_claim(
    credit_id: int,
    body: LeaveDecision,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = CreditClaimService(db, user, get_client_ip(request))
    credit = service.approve(credit_id, notes=body.notes)
    db.commit()
    return credit


@router.post("/rl-claims/{credit_id}/reject", response_model=RLCreditRead)
def reject_rl_claim(
    credit_id: int,
    body: RLClaimReject,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = CreditClaimService(db, user, get_client_ip(request))
    credit = service.reject(credit_id, reason=body.reason)
    db.commit()
    return credit


@router.get("/{request_id}", response_model=LeaveRequestRead)
def get_leave(
    request_id: int,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    leave_request = LeaveRequestService(db, user).get_request(request_id)
    if user.employee_id not in (leave_request.employee_id, leave_request.current_approver_id) and not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    return leave_request


@router.post("/{request_id}/approve", response_model=LeaveRequestRead)
def approve_leave(
    request_id: int,
    body: LeaveDecision,
    request: Request,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = LeaveRequestService(db, user, get_client_ip(request))
    leave_request = service.approve(request_id, notes=body.notes)
    db.commit()
    return leave_request


@router.post("/{request_id}/reject", response_model=LeaveRequestRead)
def reject_leave(
    request_id: int,
    body: LeaveDecision,
    request: Request,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = LeaveRequestService(db, user, get_client_ip(request))
    leave_request = service.reject(request_id, reason=body.notes)
    db.commit()
    return leave_request


@router.post("/{request_id}/cancel", response_model=LeaveRequestRead)
def cancel_leave(
    request_id: int,
    body: LeaveDecision,
    request: Request,
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    service = LeaveRequestService(db, user, get_client_ip(request))
    leave_request = service.cancel(request_id, reason=body.notes)
    db.commit()
    return leave_request


@router.post("/{request_id}/override", response_model=LeaveRequestRead)
def override_leave(
    request_id: int,
    body: LeaveOverride,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Force approve/reject outside the approval chain. Justification required."""
    service = LeaveRequestService(db, user, get_client_ip(request))
    leave_request = service.override(request_id, body.action, body.justification)
    db.commit()
    return leave_request
