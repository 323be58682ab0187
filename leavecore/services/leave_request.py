# LeaveCore - Leave Request Service
# Leave application lifecycle with approval, override and audit logging

import logging
from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leavecore.config import Settings, get_settings
from leavecore.models.audit_log import AuditAction
from leavecore.models.base import utcnow
from leavecore.models.employee import Employee
from leavecore.models.leave_request import LeaveRequest, LeaveStatus
from leavecore.models.leave_type import LeaveType
from leavecore.services.audit import AuditService
from leavecore.services.balance import BalanceLedger
from leavecore.services.calendar import WorkingCalendar
from leavecore.services.employee_directory import EmployeeDirectory
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    NotFoundError,
    AuthorizationError,
    flush_or_invalid_state,
)

logger = logging.getLogger(__name__)

OVERRIDE_PREFIX = "[OVERRIDE] "
OVERRIDE_ACTIONS = ("approve", "reject")


class LeaveRequestService:
    """
    Service for the leave request lifecycle.

        PENDING -> APPROVED | REJECTED | CANCELLED

    Every transition is only legal from PENDING and writes exactly one
    audit entry. Days leave the balance only on approval, in the same
    transaction as the status change.

    The service acts on behalf of one principal (the actor), who is
    resolved by the caller:
        - apply: the employee themself (admins may apply on behalf of others)
        - approve / reject: the request's current approver, never the applicant
        - cancel: the applicant or an admin
        - override: admins only, bypasses the approver chain, and needs a
          written justification

    Usage:
        service = LeaveRequestService(db, actor, client_ip)
        request = service.apply(leave_type_id=1, start_date=date(2030, 1, 7),
                                end_date=date(2030, 1, 8), reason="Family trip")

        LeaveRequestService(db, manager).approve(request.request_id, notes="Enjoy")
        LeaveRequestService(db, hr_admin).override(request.request_id, "reject",
                                                  "Blackout period")

    Two concurrent decisions on the same request can't both commit: the
    loser's flush fails the version check and is reported as
    InvalidStateError.
    """

    def __init__(
        self,
        db: Session,
        actor: Employee,
        ip_address: Optional[str] = None,
        settings: Optional[Settings] = None,
        calendar: Optional[WorkingCalendar] = None,
    ):
        self.db = db
        self.actor = actor
        self.settings = settings or get_settings()
        self.audit = AuditService(db, actor.employee_id, ip_address)
        self.ledger = BalanceLedger(db, self.settings)
        self.directory = EmployeeDirectory(db)
        self.calendar = calendar or WorkingCalendar(self.settings.weekend_days)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_request(self, request_id: int) -> LeaveRequest:
        request = self.db.get(LeaveRequest, request_id)
        if request is None:
            raise NotFoundError(f"Leave request {request_id} not found", field="request_id")
        return request

    def list_requests(
        self,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
        approver_id: Optional[int] = None,
    ) -> list[LeaveRequest]:
        query = select(LeaveRequest)
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if approver_id is not None:
            query = query.where(LeaveRequest.current_approver_id == approver_id)
        return list(
            self.db.execute(
                query.order_by(LeaveRequest.submitted_at.desc(), LeaveRequest.request_id.desc())
            ).scalars()
        )

    # =========================================================================
    # Apply
    # =========================================================================

    def apply(
        self,
        leave_type_id: int,
        start_date: date,
        end_date: date,
        reason: Optional[str] = None,
        half_day_start: bool = False,
        half_day_end: bool = False,
        document_reference: Optional[str] = None,
        employee_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> LeaveRequest:
        """
        Submit a leave application as a PENDING request.

        Args:
            leave_type_id: Which leave type
            start_date: First day of leave (inclusive)
            end_date: Last day of leave (inclusive)
            reason: Free text for the approver
            half_day_start: First day is a half day
            half_day_end: Last day is a half day
            document_reference: Supporting document id (required by some types)
            employee_id: Apply for someone else (admins only); defaults to the actor
            today: Reference date for the notice check (defaults to today, UTC)

        Returns:
            The created LeaveRequest

        Raises:
            ValidationError: Bad dates, missing document, not enough notice,
                too many consecutive days, overlap, insufficient balance,
                or no approver available
            NotFoundError: Unknown leave type or employee
            AuthorizationError: Non-admin applying for someone else
        """
        employee = self._resolve_applicant(employee_id)
        leave_type = self._get_leave_type(leave_type_id)

        if start_date > end_date:
            raise ValidationError("start_date cannot be after end_date", field="end_date")

        if leave_type.requires_document and not (document_reference and document_reference.strip()):
            raise ValidationError(
                f"{leave_type.name} requires a supporting document",
                field="document_reference",
            )

        days = self.calendar.count_days(start_date, end_date, half_day_start, half_day_end)
        if days <= 0:
            raise ValidationError("The selected dates contain no working days", field="start_date")

        today = today or utcnow().date()
        if leave_type.min_notice_days and (start_date - today).days < leave_type.min_notice_days:
            raise ValidationError(
                f"{leave_type.name} needs {leave_type.min_notice_days} day(s) notice",
                field="start_date",
                details={"min_notice_days": leave_type.min_notice_days},
            )

        if leave_type.max_consecutive_days is not None and days > leave_type.max_consecutive_days:
            raise ValidationError(
                f"{leave_type.name} allows at most {leave_type.max_consecutive_days} consecutive day(s)",
                field="end_date",
                details={"max_consecutive_days": leave_type.max_consecutive_days, "requested": str(days)},
            )

        overlap = self._find_overlap(employee.employee_id, start_date, end_date)
        if overlap is not None:
            raise ValidationError(
                f"Dates overlap leave request {overlap.request_id} ({overlap.status})",
                field="start_date",
                details={"request_id": overlap.request_id},
            )

        self._check_balance(employee.employee_id, leave_type, start_date.year, days)

        approver_id = self._resolve_approver(employee)

        request = LeaveRequest(
            employee_id=employee.employee_id,
            leave_type_id=leave_type.leave_type_id,
            start_date=start_date,
            end_date=end_date,
            half_day_start=half_day_start,
            half_day_end=half_day_end,
            days_requested=days,
            reason=reason,
            document_reference=document_reference,
            status=LeaveStatus.PENDING.value,
            current_approver_id=approver_id,
            submitted_at=utcnow(),
        )
        self.db.add(request)
        self.db.flush()

        self.audit.log(
            AuditAction.SUBMITTED,
            request,
            notes=reason,
            target_employee_id=employee.employee_id,
            leave_request_id=request.request_id,
            leave_type_code=leave_type.code,
        )
        logger.info(
            "Leave request %s submitted: employee %s, %s %s day(s), approver %s",
            request.request_id, employee.employee_id, leave_type.code, days, approver_id,
        )
        return request

    # =========================================================================
    # Decisions
    # =========================================================================

    def approve(self, request_id: int, notes: Optional[str] = None, now: Optional[datetime] = None) -> LeaveRequest:
        """Approve a PENDING request as its current approver and deduct the days."""
        request = self.get_request(request_id)
        self._require_pending(request)
        self._require_approver(request)
        return self._decide(request, LeaveStatus.APPROVED, AuditAction.APPROVED, notes, now=now)

    def reject(self, request_id: int, reason: Optional[str] = None, now: Optional[datetime] = None) -> LeaveRequest:
        """Reject a PENDING request as its current approver. Balance is untouched."""
        request = self.get_request(request_id)
        self._require_pending(request)
        self._require_approver(request)
        return self._decide(request, LeaveStatus.REJECTED, AuditAction.REJECTED, reason, now=now)

    def cancel(self, request_id: int, reason: Optional[str] = None, now: Optional[datetime] = None) -> LeaveRequest:
        """Withdraw a PENDING request (applicant or admin)."""
        request = self.get_request(request_id)
        self._require_pending(request)
        if request.employee_id != self.actor.employee_id and not self.actor.is_admin:
            raise AuthorizationError(
                "Only the applicant or an admin can cancel a leave request",
                details={"request_id": request_id},
            )
        return self._decide(request, LeaveStatus.CANCELLED, AuditAction.CANCELLED, reason, now=now)

    def override(
        self,
        request_id: int,
        action: str,
        justification: Optional[str],
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        """
        Force the outcome of a PENDING request outside the approval chain.

        Args:
            request_id: The request
            action: "approve" or "reject"
            justification: Why; recorded in the decision and the audit trail

        Raises:
            AuthorizationError: Actor is not an admin, or is the applicant
            ValidationError: Unknown action or empty justification
            InvalidStateError: Request is not PENDING
        """
        if not self.actor.is_admin:
            raise AuthorizationError("Override requires an admin", details={"request_id": request_id})

        if action not in OVERRIDE_ACTIONS:
            raise ValidationError(f"Override action must be one of {OVERRIDE_ACTIONS}", field="action")

        if justification is None or not justification.strip():
            raise ValidationError("Override requires a justification", field="justification")

        request = self.get_request(request_id)
        self._require_pending(request)

        if request.employee_id == self.actor.employee_id:
            raise AuthorizationError(
                "Admins cannot override their own leave request",
                details={"request_id": request_id},
            )

        status = LeaveStatus.APPROVED if action == "approve" else LeaveStatus.REJECTED
        return self._decide(
            request,
            status,
            AuditAction.OVERRIDE,
            OVERRIDE_PREFIX + justification.strip(),
            is_override=True,
            now=now,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    def _decide(
        self,
        request: LeaveRequest,
        status: LeaveStatus,
        action: AuditAction,
        notes: Optional[str],
        is_override: bool = False,
        now: Optional[datetime] = None,
    ) -> LeaveRequest:
        now = now or utcnow()
        leave_type = request.leave_type

        if status == LeaveStatus.APPROVED:
            try:
                self._check_balance(
                    request.employee_id, leave_type, request.start_date.year,
                    request.days_requested, now=now, exclude_request_id=request.request_id,
                )
            except ValidationError:
                # The days may be gone because another decision on this
                # request already committed
                self.db.refresh(request)
                self._require_pending(request)
                raise

        request.status = status.value
        request.decided_by = self.actor.employee_id
        request.decided_at = now
        request.decision_notes = notes
        request.is_override = is_override

        # Claim the request; a concurrent decision fails the version check here
        flush_or_invalid_state(
            self.db,
            f"Leave request {request.request_id} was decided by another transaction",
            details={"request_id": request.request_id},
        )

        if status == LeaveStatus.APPROVED:
            self.ledger.deduct(request, now=now)
            flush_or_invalid_state(
                self.db,
                f"Balance for leave request {request.request_id} changed concurrently",
                details={"request_id": request.request_id},
            )

        self.audit.log(
            action,
            request,
            notes=notes,
            target_employee_id=request.employee_id,
            leave_request_id=request.request_id,
            leave_type_code=leave_type.code,
        )
        logger.info(
            "Leave request %s %s by %s%s",
            request.request_id, status.value, self.actor.employee_id,
            " (override)" if is_override else "",
        )
        return request

    def _require_pending(self, request: LeaveRequest) -> None:
        if not request.is_pending:
            logger.warning(
                "Rejected transition on leave request %s: already %s",
                request.request_id, request.status,
            )
            raise InvalidStateError(
                f"Leave request {request.request_id} is already {request.status}",
                details={"request_id": request.request_id, "status": request.status},
            )

    def _require_approver(self, request: LeaveRequest) -> None:
        if request.employee_id == self.actor.employee_id:
            raise AuthorizationError(
                "You cannot decide on your own leave request",
                details={"request_id": request.request_id},
            )
        if request.current_approver_id != self.actor.employee_id:
            raise AuthorizationError(
                f"Leave request {request.request_id} is assigned to another approver",
                details={"request_id": request.request_id, "current_approver_id": request.current_approver_id},
            )

    def _resolve_applicant(self, employee_id: Optional[int]) -> Employee:
        if employee_id is None or employee_id == self.actor.employee_id:
            return self.actor
        if not self.actor.is_admin:
            raise AuthorizationError("Only admins can apply on behalf of another employee", field="employee_id")
        return self.directory.get_employee(employee_id)

    def _get_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError(f"Leave type {leave_type_id} not found", field="leave_type_id")
        if not leave_type.is_active:
            raise ValidationError(f"Leave type {leave_type.code} is no longer available", field="leave_type_id")
        return leave_type

    def _resolve_approver(self, employee: Employee) -> int:
        """Employee's manager, else the configured fallback approver."""
        for candidate in (employee.manager_id, self.settings.fallback_approver_id):
            if candidate is not None and candidate != employee.employee_id:
                if self.directory.find_employee(candidate) is not None:
                    return candidate
        raise ValidationError(
            "No approver is configured for this employee",
            field="current_approver_id",
            details={"employee_id": employee.employee_id},
        )

    def _find_overlap(self, employee_id: int, start_date: date, end_date: date) -> Optional[LeaveRequest]:
        return self.db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.employee_id == employee_id,
                LeaveRequest.status.in_([LeaveStatus.PENDING.value, LeaveStatus.APPROVED.value]),
                LeaveRequest.start_date <= end_date,
                LeaveRequest.end_date >= start_date,
            )
            .limit(1)
        ).scalar_one_or_none()

    def _check_balance(
        self,
        employee_id: int,
        leave_type: LeaveType,
        year: int,
        days: Decimal,
        now: Optional[datetime] = None,
        exclude_request_id: Optional[int] = None,
    ) -> None:
        available = self.ledger.available_days(
            employee_id, leave_type, year, now=now, exclude_request_id=exclude_request_id,
        )
        if available is not None and days > available:
            raise ValidationError(
                f"Insufficient {leave_type.code} balance: {available} day(s) available, {days} requested",
                field="days_requested",
                details={"available": str(available), "requested": str(days)},
            )
