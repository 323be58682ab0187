# LeaveCore - Balance Ledger
# Entitlement balances and replacement-leave credit consumption

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from leavecore.config import Settings, get_settings
from leavecore.models.audit_log import AuditAction
from leavecore.models.base import utcnow
from leavecore.models.leave_balance import LeaveBalance
from leavecore.models.leave_request import LeaveRequest, LeaveStatus
from leavecore.models.leave_type import LeaveType
from leavecore.models.rl_credit import RLCredit, CreditStatus
from leavecore.services.audit import AuditService
from leavecore.services.employee_directory import EmployeeDirectory
from leavecore.services.errors import ValidationError, flush_or_invalid_state

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


@dataclass
class CreditExpiry:
    credit_id: int
    days_remaining: Decimal
    expires_at: datetime


@dataclass
class RLSummary:
    """Replacement-leave position for one employee at a point in time."""
    employee_id: int
    earned: Decimal = ZERO
    used: Decimal = ZERO
    expired: Decimal = ZERO
    pending: Decimal = ZERO
    available: Decimal = ZERO
    # Claimed days still waiting on an HR decision
    claimed: Decimal = ZERO
    upcoming_expiries: list[CreditExpiry] = field(default_factory=list)


class BalanceLedger:
    """
    Reads and moves leave-day balances.

    Two pools exist:
        - entitlement types (AL, MC, ...): one LeaveBalance row per
          employee, type and year, seeded from max_days_per_year
        - replacement leave: the sum of unexpired, approved RLCredit remainders

    Days are only taken from a pool when a request is approved. Pending
    requests reserve days by being counted in available_days(), so two
    pending requests can't both spend the same entitlement.

    Credits are consumed earliest-expiry first; credits that never expire
    go last, ties broken by issue time.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def is_replacement_leave(self, leave_type: LeaveType) -> bool:
        return leave_type.code == self.settings.rl_leave_type_code

    # =========================================================================
    # Entitlement balances
    # =========================================================================

    def find_balance(self, employee_id: int, leave_type: LeaveType, year: int) -> Optional[LeaveBalance]:
        return self.db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type.leave_type_id,
                LeaveBalance.year == year,
            )
        ).scalar_one_or_none()

    def get_or_create_balance(self, employee_id: int, leave_type: LeaveType, year: int) -> LeaveBalance:
        balance = self.find_balance(employee_id, leave_type, year)

        if balance is None:
            balance = LeaveBalance(
                employee_id=employee_id,
                leave_type_id=leave_type.leave_type_id,
                year=year,
                allocated_days=leave_type.max_days_per_year or ZERO,
                carry_forward_days=ZERO,
                taken_days=ZERO,
            )
            self.db.add(balance)
            flush_or_invalid_state(
                self.db,
                f"{leave_type.code} balance for employee {employee_id} ({year}) was created concurrently",
                details={"employee_id": employee_id, "leave_type_id": leave_type.leave_type_id, "year": year},
            )
            logger.debug("Balance seeded for employee %s type %s %s", employee_id, leave_type.code, year)

        return balance

    def pending_days(
        self,
        employee_id: int,
        leave_type_id: int,
        year: Optional[int] = None,
        exclude_request_id: Optional[int] = None,
    ) -> Decimal:
        """Days held by PENDING requests of this type (optionally one year only)."""
        query = select(func.coalesce(func.sum(LeaveRequest.days_requested), 0)).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.leave_type_id == leave_type_id,
            LeaveRequest.status == LeaveStatus.PENDING.value,
        )
        if year is not None:
            query = query.where(
                LeaveRequest.start_date >= date(year, 1, 1),
                LeaveRequest.start_date <= date(year, 12, 31),
            )
        if exclude_request_id is not None:
            query = query.where(LeaveRequest.request_id != exclude_request_id)
        return Decimal(str(self.db.execute(query).scalar_one()))

    def available_days(
        self,
        employee_id: int,
        leave_type: LeaveType,
        year: int,
        now: Optional[datetime] = None,
        exclude_request_id: Optional[int] = None,
    ) -> Optional[Decimal]:
        """
        Days the employee can still request.

        Returns None when the type has no entitlement cap (nothing to check).
        """
        if self.is_replacement_leave(leave_type):
            credits = self.rl_credit_days(employee_id, now)
            pending = self.pending_days(
                employee_id, leave_type.leave_type_id,
                exclude_request_id=exclude_request_id,
            )
            return credits - pending

        if not leave_type.has_entitlement_cap:
            return None

        balance = self.get_or_create_balance(employee_id, leave_type, year)
        pending = self.pending_days(
            employee_id, leave_type.leave_type_id,
            year=year, exclude_request_id=exclude_request_id,
        )
        return balance.remaining_days - pending

    def adjust_balance(
        self,
        employee_id: int,
        leave_type: LeaveType,
        year: int,
        audit: AuditService,
        allocated_days: Optional[Decimal] = None,
        carry_forward_days: Optional[Decimal] = None,
    ) -> LeaveBalance:
        """
        Set an employee's entitlement or carried-forward days for one year.

        Only the given values change. Days already taken are never
        rewritten, so the new totals must still cover them.

        Raises:
            ValidationError: Nothing to change, a negative value, a type
                without an entitlement pool, carry-forward the type does
                not allow, or totals below the days already taken
            InvalidStateError: The balance changed in another transaction
        """
        if allocated_days is None and carry_forward_days is None:
            raise ValidationError("Nothing to adjust", field="allocated_days")
        for name, value in (("allocated_days", allocated_days), ("carry_forward_days", carry_forward_days)):
            if value is not None and value < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)

        if self.is_replacement_leave(leave_type) or not leave_type.has_entitlement_cap:
            raise ValidationError(
                f"{leave_type.code} has no entitlement balance to adjust",
                field="leave_type_id",
            )

        if carry_forward_days is not None and carry_forward_days > 0:
            if not leave_type.carry_forward_allowed:
                raise ValidationError(
                    f"{leave_type.code} does not allow carry forward",
                    field="carry_forward_days",
                )
            limit = leave_type.max_carry_forward_days
            if limit is not None and carry_forward_days > limit:
                raise ValidationError(
                    f"{leave_type.code} carries forward at most {limit} day(s)",
                    field="carry_forward_days",
                    details={"max_carry_forward_days": str(limit)},
                )

        balance = self.get_or_create_balance(employee_id, leave_type, year)
        new_allocated = balance.allocated_days if allocated_days is None else allocated_days
        new_carry = balance.carry_forward_days if carry_forward_days is None else carry_forward_days
        if new_allocated + new_carry < balance.taken_days:
            raise ValidationError(
                f"Employee {employee_id} has already taken {balance.taken_days} {leave_type.code} day(s) in {year}",
                field="allocated_days",
                details={"taken_days": str(balance.taken_days)},
            )

        old_state = audit.capture_state(balance)
        balance.allocated_days = new_allocated
        balance.carry_forward_days = new_carry
        flush_or_invalid_state(
            self.db,
            f"{leave_type.code} balance for employee {employee_id} ({year}) changed concurrently",
            details={"balance_id": balance.balance_id},
        )

        audit.log_update(
            balance, old_state,
            action=AuditAction.ADJUSTED,
            target_employee_id=employee_id,
            leave_type_code=leave_type.code,
        )
        logger.info(
            "Balance %s %s for employee %s adjusted: allocated %s, carried forward %s",
            leave_type.code, year, employee_id, new_allocated, new_carry,
        )
        return balance

    def bulk_allocate(
        self,
        leave_type: LeaveType,
        year: int,
        days: Decimal,
        audit: AuditService,
        department: Optional[str] = None,
    ) -> tuple[int, int]:
        """
        Add days to the year's entitlement of every active employee.

        Missing balance rows are seeded from the type's max_days_per_year
        first. Returns (created, updated) row counts.
        """
        if days <= 0:
            raise ValidationError("days must be positive", field="days")
        if self.is_replacement_leave(leave_type) or not leave_type.has_entitlement_cap:
            raise ValidationError(
                f"{leave_type.code} has no entitlement balance to allocate",
                field="leave_type_id",
            )

        created = updated = 0
        for employee in EmployeeDirectory(self.db).list_active(department):
            if self.find_balance(employee.employee_id, leave_type, year) is None:
                created += 1
            else:
                updated += 1
            balance = self.get_or_create_balance(employee.employee_id, leave_type, year)
            self.adjust_balance(
                employee.employee_id, leave_type, year, audit,
                allocated_days=balance.allocated_days + days,
            )

        logger.info(
            "Bulk allocated %s %s day(s) for %s: %d created, %d updated",
            days, leave_type.code, year, created, updated,
        )
        return created, updated

    def deduct(self, request: LeaveRequest, now: Optional[datetime] = None) -> Decimal:
        """
        Take an approved request's days out of its pool.

        Runs in the caller's transaction alongside the status change.
        """
        leave_type = request.leave_type
        days = request.days_requested

        if self.is_replacement_leave(leave_type):
            self.consume_rl_credits(request.employee_id, days, now)
            return days

        if not leave_type.has_entitlement_cap:
            return days

        balance = self.get_or_create_balance(request.employee_id, leave_type, request.start_date.year)
        balance.taken_days = balance.taken_days + days
        logger.debug(
            "Deducted %s %s day(s) from employee %s (%s)",
            days, leave_type.code, request.employee_id, request.start_date.year,
        )
        return days

    # =========================================================================
    # Replacement leave credits
    # =========================================================================

    def _live_credits(self, employee_id: int, now: datetime) -> list[RLCredit]:
        credits = self.db.execute(
            select(RLCredit).where(
                RLCredit.employee_id == employee_id,
                RLCredit.status == CreditStatus.APPROVED.value,
            )
        ).scalars()
        live = [c for c in credits if c.is_available(now)]
        # Earliest expiry first, never-expiring last
        live.sort(key=lambda c: (c.expires_at is None, c.expires_at or now, c.issued_at, c.credit_id))
        return live

    def rl_credit_days(self, employee_id: int, now: Optional[datetime] = None) -> Decimal:
        now = now or utcnow()
        return sum((c.days_remaining for c in self._live_credits(employee_id, now)), ZERO)

    def consume_rl_credits(
        self,
        employee_id: int,
        days: Decimal,
        now: Optional[datetime] = None,
    ) -> list[tuple[RLCredit, Decimal]]:
        """
        Mark days as used against live credits.

        Returns (credit, days_taken) pairs in consumption order.

        Raises:
            ValidationError: If live credits don't cover days
        """
        now = now or utcnow()
        live = self._live_credits(employee_id, now)
        total = sum((c.days_remaining for c in live), ZERO)
        if total < days:
            raise ValidationError(
                f"Insufficient replacement leave: {total} day(s) available, {days} requested",
                field="days_requested",
                details={"available": str(total), "requested": str(days)},
            )

        taken = []
        outstanding = days
        for credit in live:
            if outstanding <= 0:
                break
            portion = min(credit.days_remaining, outstanding)
            credit.days_used = (credit.days_used or ZERO) + portion
            outstanding -= portion
            taken.append((credit, portion))

        logger.debug("Consumed %s RL day(s) for employee %s from %d credit(s)", days, employee_id, len(taken))
        return taken

    def rl_summary(
        self,
        employee_id: int,
        rl_leave_type: Optional[LeaveType] = None,
        now: Optional[datetime] = None,
        expiring_within_days: int = 30,
    ) -> RLSummary:
        now = now or utcnow()
        summary = RLSummary(employee_id=employee_id)
        horizon = now + timedelta(days=expiring_within_days)

        credits = self.db.execute(
            select(RLCredit)
            .where(RLCredit.employee_id == employee_id)
            .order_by(RLCredit.issued_at)
        ).scalars()

        for credit in credits:
            if credit.is_pending:
                summary.claimed += credit.days_credited
                continue
            if not credit.is_approved:
                continue
            used = credit.days_used or ZERO
            summary.earned += credit.days_credited
            summary.used += used
            if credit.is_expired(now):
                summary.expired += credit.days_remaining
                continue
            summary.available += credit.days_remaining
            if credit.expires_at is not None and credit.expires_at <= horizon and credit.days_remaining > 0:
                summary.upcoming_expiries.append(
                    CreditExpiry(credit.credit_id, credit.days_remaining, credit.expires_at)
                )

        if rl_leave_type is not None:
            summary.pending = self.pending_days(employee_id, rl_leave_type.leave_type_id)
            summary.available -= summary.pending

        summary.upcoming_expiries.sort(key=lambda e: e.expires_at)
        return summary
