# LeaveCore - Credit Issuer
# Turns a completed, eligible allocation into replacement leave

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal, ROUND_DOWN
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from leavecore.models.audit_log import AuditAction
from leavecore.models.base import utcnow
from leavecore.models.employee import Employee
from leavecore.models.rl_credit import RLCredit, CreditStatus
from leavecore.models.toil_rule import TOILRule
from leavecore.models.training import Allocation, TrainingEvent, AttendanceStatus
from leavecore.services.audit import AuditService
from leavecore.services.employee_directory import EmployeeProfile
from leavecore.services.errors import InvalidStateError, flush_or_invalid_state
from leavecore.services.rule_registry import resolve_eligibility

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")

# Reasons reported with credited=False
ALLOCATION_NOT_ELIGIBLE = "ALLOCATION_NOT_ELIGIBLE"
EVENT_NOT_ELIGIBLE = "EVENT_NOT_ELIGIBLE"
NO_RULE = "NO_RULE"
RULE_NOT_APPLICABLE = "RULE_NOT_APPLICABLE"
NO_CREDIT_EARNED = "NO_CREDIT_EARNED"
CAP_REACHED = "CAP_REACHED"


@dataclass
class CreditResult:
    credited: bool
    days: Decimal = ZERO
    credit_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


def compute_ratio_days(
    credit_days: Decimal,
    min_hours_required: Decimal,
    hours_attended: Optional[Decimal],
    attendance_status: str,
) -> Decimal:
    """
    Proportional credit for RATIO rules.

    credit_days * min(1, hours_attended / min_hours_required), rounded
    down to two decimals. Without recorded hours, full attendance earns
    the full credit and partial attendance earns nothing.
    """
    if hours_attended is None:
        if attendance_status == AttendanceStatus.ATTENDED.value:
            return credit_days
        return ZERO

    fraction = min(Decimal("1"), Decimal(hours_attended) / Decimal(min_hours_required))
    return (credit_days * fraction).quantize(CENT, rounding=ROUND_DOWN)


def _month_bounds(on_date: date) -> tuple[date, date]:
    start = on_date.replace(day=1)
    if start.month == 12:
        following = start.replace(year=start.year + 1, month=1)
    else:
        following = start.replace(month=start.month + 1)
    return start, following - timedelta(days=1)


class CreditIssuer:
    """
    Issues RLCredit rows for completed allocations.

    An allocation is credited at most once. The service refuses an
    allocation that already carries rl_credit_id, and the UNIQUE
    constraint on rl_credits.source_allocation_id stops a concurrent
    second issuance at commit time.

    Not earning credit is a normal outcome and comes back as
    CreditResult(credited=False, reason=...), never as an exception.

    Caps (per event, calendar month and calendar year of the event date)
    count credits already issued or claimed by the same employee under
    the same rule; rejected claims don't count. An award over a cap is
    truncated to the remaining headroom. The headroom read holds a row
    lock on the employee, so concurrent issuances for one employee queue
    behind each other instead of both spending the same headroom.
    """

    def __init__(
        self,
        db: Session,
        current_user_id: int,
        ip_address: Optional[str] = None,
        audit: Optional[AuditService] = None,
    ):
        self.db = db
        self.current_user_id = current_user_id
        self.audit = audit or AuditService(db, current_user_id, ip_address)

    def calculate_days(self, allocation: Allocation, rule: TOILRule) -> Decimal:
        if rule.is_ratio:
            return compute_ratio_days(
                rule.credit_days,
                rule.min_hours_required,
                allocation.hours_attended,
                allocation.attendance_status,
            )
        return rule.credit_days

    def _lock_employee(self, employee_id: int) -> None:
        """
        Row-lock the employee until the transaction ends.

        Serializes cap checks for one employee, so two issuances can't
        both read the same headroom. No-op on SQLite, which has no row
        locks.
        """
        self.db.execute(
            select(Employee.employee_id)
            .where(Employee.employee_id == employee_id)
            .with_for_update()
            .with_hint(Employee, "WITH (UPDLOCK, ROWLOCK)", dialect_name="mssql")
        )

    def issued_days(
        self,
        employee_id: int,
        rule_id: int,
        start: date,
        end: date,
    ) -> Decimal:
        """Days credited or claimed by employee under rule for events in start..end."""
        total = self.db.execute(
            select(func.coalesce(func.sum(RLCredit.days_credited), 0)).where(
                RLCredit.employee_id == employee_id,
                RLCredit.rule_id == rule_id,
                RLCredit.trigger_date >= start,
                RLCredit.trigger_date <= end,
                RLCredit.status != CreditStatus.REJECTED.value,
            )
        ).scalar_one()
        return Decimal(str(total))

    def apply_caps(
        self,
        days: Decimal,
        employee_id: int,
        rule: TOILRule,
        event_date: date,
    ) -> tuple[Decimal, list[str]]:
        """
        Clamp days to the rule's caps.

        Returns the awarded days (never negative) and a note per cap that bit.
        """
        notes = []

        if rule.max_days_per_month is not None or rule.max_days_per_year is not None:
            self._lock_employee(employee_id)

        if rule.max_days_per_event is not None and days > rule.max_days_per_event:
            days = rule.max_days_per_event
            notes.append(f"event cap {rule.max_days_per_event}")

        if rule.max_days_per_month is not None:
            start, end = _month_bounds(event_date)
            headroom = max(ZERO, rule.max_days_per_month - self.issued_days(employee_id, rule.rule_id, start, end))
            if days > headroom:
                days = headroom
                notes.append(f"monthly cap {rule.max_days_per_month}")

        if rule.max_days_per_year is not None:
            start, end = date(event_date.year, 1, 1), date(event_date.year, 12, 31)
            headroom = max(ZERO, rule.max_days_per_year - self.issued_days(employee_id, rule.rule_id, start, end))
            if days > headroom:
                days = headroom
                notes.append(f"yearly cap {rule.max_days_per_year}")

        return days, notes

    def issue_credit(
        self,
        allocation: Allocation,
        event: TrainingEvent,
        rule: Optional[TOILRule],
        now: Optional[datetime] = None,
    ) -> CreditResult:
        """
        Credit replacement leave for a completed allocation.

        The RLCredit insert and the allocation's rl_credit_id update share
        the caller's transaction; the caller commits both or neither.

        Raises:
            InvalidStateError: If the allocation has already been credited
        """
        if allocation.has_credit:
            raise InvalidStateError(
                f"Allocation {allocation.allocation_id} already credited",
                details={"allocation_id": allocation.allocation_id, "credit_id": allocation.rl_credit_id},
            )

        if not allocation.rl_eligible:
            return CreditResult(credited=False, reason=ALLOCATION_NOT_ELIGIBLE)
        if not event.rl_eligible:
            return CreditResult(credited=False, reason=EVENT_NOT_ELIGIBLE)
        if rule is None:
            return CreditResult(credited=False, reason=NO_RULE)

        profile = EmployeeProfile.from_employee(allocation.employee)
        if not resolve_eligibility(rule, profile, event.event_date):
            return CreditResult(credited=False, reason=RULE_NOT_APPLICABLE)

        earned = self.calculate_days(allocation, rule)
        if earned <= 0:
            return CreditResult(credited=False, reason=NO_CREDIT_EARNED)

        days, cap_notes = self.apply_caps(earned, allocation.employee_id, rule, event.event_date)
        if days <= 0:
            logger.info(
                "No credit for allocation %s: %s cap reached for employee %s",
                allocation.allocation_id, rule.rule_code, allocation.employee_id,
            )
            return CreditResult(credited=False, reason=CAP_REACHED)

        now = now or utcnow()
        expires_at = now + timedelta(days=rule.expiry_days) if rule.expiry_days is not None else None

        calculation = f"{rule.credit_type} {rule.rule_code}: earned {earned}"
        if cap_notes:
            calculation += f", limited to {days} by " + " and ".join(cap_notes)

        credit = RLCredit(
            employee_id=allocation.employee_id,
            source_allocation_id=allocation.allocation_id,
            rule_id=rule.rule_id,
            trigger_type=rule.trigger_type,
            trigger_date=event.event_date,
            hours_worked=allocation.hours_attended,
            days_credited=days,
            days_used=ZERO,
            calculation_notes=calculation,
            issued_at=now,
            expires_at=expires_at,
            issued_by=self.current_user_id,
        )
        self.db.add(credit)
        flush_or_invalid_state(
            self.db,
            f"Allocation {allocation.allocation_id} was credited by another transaction",
            details={"allocation_id": allocation.allocation_id},
        )

        allocation.rl_credit_id = credit.credit_id
        allocation.rl_credited_at = now

        self.audit.log(
            AuditAction.RL_CREDITED,
            credit,
            notes=calculation,
            target_employee_id=allocation.employee_id,
            allocation_id=allocation.allocation_id,
            rule_code=rule.rule_code,
        )

        logger.info(
            "Credited %s RL day(s) to employee %s for allocation %s (credit %s)",
            days, allocation.employee_id, allocation.allocation_id, credit.credit_id,
        )
        return CreditResult(
            credited=True,
            days=days,
            credit_id=credit.credit_id,
            expires_at=expires_at,
        )
