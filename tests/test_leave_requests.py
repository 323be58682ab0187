# LeaveCore - Leave Request Lifecycle Tests

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select

from leavecore.config import get_settings
from leavecore.models import AuditLog, AuditAction, LeaveBalance
from leavecore.models.base import utcnow
from leavecore.services.audit import AuditService
from leavecore.services.balance import BalanceLedger
from leavecore.services.calendar import WorkingCalendar
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    AuthorizationError,
    NotFoundError,
)
from leavecore.services.leave_request import LeaveRequestService

from conftest import SATURDAY, SUNDAY, MONDAY


def _actions_for(db, request_id: int) -> list[str]:
    db.flush()
    return list(
        db.execute(
            select(AuditLog.action)
            .where(AuditLog.leave_request_id == request_id)
            .order_by(AuditLog.audit_id)
        ).scalars()
    )


class TestWorkingCalendar:

    def test_weekends_excluded(self):
        calendar = WorkingCalendar()
        assert calendar.count_days(MONDAY, MONDAY + timedelta(days=6)) == Decimal("5")
        assert calendar.count_days(SATURDAY, SUNDAY) == Decimal("0")

    def test_half_days(self):
        calendar = WorkingCalendar()
        friday = MONDAY + timedelta(days=4)
        assert calendar.count_days(MONDAY, friday, half_day_start=True) == Decimal("4.5")
        assert calendar.count_days(MONDAY, friday, half_day_start=True, half_day_end=True) == Decimal("4")
        assert calendar.count_days(MONDAY, MONDAY, half_day_start=True, half_day_end=True) == Decimal("0.5")

    def test_holidays(self):
        calendar = WorkingCalendar(holidays=[MONDAY])
        assert calendar.count_days(MONDAY, MONDAY + timedelta(days=1)) == Decimal("1")


class TestApply:

    def test_apply_creates_pending_request(self, db, employee, manager, annual_leave):
        request = LeaveRequestService(db, employee).apply(
            annual_leave.leave_type_id, MONDAY, MONDAY + timedelta(days=6), reason="Trip",
        )

        assert request.status == "PENDING"
        assert request.days_requested == Decimal("5")
        assert request.current_approver_id == manager.employee_id
        assert _actions_for(db, request.request_id) == [AuditAction.SUBMITTED.value]

    def test_start_after_end(self, db, employee, annual_leave):
        with pytest.raises(ValidationError) as exc:
            LeaveRequestService(db, employee).apply(annual_leave.leave_type_id, MONDAY, SUNDAY)
        assert exc.value.field == "end_date"

    def test_weekend_only_request(self, db, employee, annual_leave):
        with pytest.raises(ValidationError):
            LeaveRequestService(db, employee).apply(annual_leave.leave_type_id, SATURDAY, SUNDAY)

    def test_unknown_leave_type(self, db, employee):
        with pytest.raises(NotFoundError):
            LeaveRequestService(db, employee).apply(999, MONDAY, MONDAY)

    def test_inactive_leave_type(self, db, employee, registry, annual_leave):
        registry.deactivate_leave_type(annual_leave.leave_type_id)

        with pytest.raises(ValidationError):
            LeaveRequestService(db, employee).apply(annual_leave.leave_type_id, MONDAY, MONDAY)

    def test_document_required(self, db, employee, registry):
        medical = registry.create_leave_type(
            "MC", "Medical Leave", max_days_per_year=Decimal("14"), requires_document=True,
        )
        service = LeaveRequestService(db, employee)

        with pytest.raises(ValidationError) as exc:
            service.apply(medical.leave_type_id, MONDAY, MONDAY)
        assert exc.value.field == "document_reference"

        request = service.apply(medical.leave_type_id, MONDAY, MONDAY, document_reference="MC-123")
        assert request.document_reference == "MC-123"

    def test_min_notice(self, db, employee, registry):
        leave_type = registry.create_leave_type("NL", "Notice Leave", min_notice_days=3)

        with pytest.raises(ValidationError):
            LeaveRequestService(db, employee).apply(
                leave_type.leave_type_id, MONDAY, MONDAY, today=MONDAY - timedelta(days=1),
            )

    def test_max_consecutive_days(self, db, employee, registry):
        leave_type = registry.create_leave_type("SL", "Short Leave", max_consecutive_days=2)

        with pytest.raises(ValidationError):
            LeaveRequestService(db, employee).apply(
                leave_type.leave_type_id, MONDAY, MONDAY + timedelta(days=2),
            )

    def test_overlap_rejected(self, db, employee, unpaid_leave):
        service = LeaveRequestService(db, employee)
        service.apply(unpaid_leave.leave_type_id, MONDAY, MONDAY + timedelta(days=2))

        with pytest.raises(ValidationError) as exc:
            service.apply(unpaid_leave.leave_type_id, MONDAY + timedelta(days=2), MONDAY + timedelta(days=3))
        assert "overlap" in exc.value.message

    def test_pending_requests_reserve_balance(self, db, employee, annual_leave):
        service = LeaveRequestService(db, employee)
        # Two working weeks = 10 days of the 14 day entitlement
        service.apply(annual_leave.leave_type_id, MONDAY, MONDAY + timedelta(days=11))

        with pytest.raises(ValidationError) as exc:
            service.apply(annual_leave.leave_type_id, MONDAY + timedelta(days=14), MONDAY + timedelta(days=18))
        assert exc.value.field == "days_requested"

    def test_no_approver_configured(self, db, manager, unpaid_leave):
        # The manager has no manager of their own and no fallback is set
        with pytest.raises(ValidationError) as exc:
            LeaveRequestService(db, manager).apply(unpaid_leave.leave_type_id, MONDAY, MONDAY)
        assert exc.value.field == "current_approver_id"

    def test_fallback_approver(self, db, manager, admin, unpaid_leave):
        settings = get_settings().model_copy(update={"fallback_approver_id": admin.employee_id})

        request = LeaveRequestService(db, manager, settings=settings).apply(
            unpaid_leave.leave_type_id, MONDAY, MONDAY,
        )
        assert request.current_approver_id == admin.employee_id

    def test_only_admin_applies_for_others(self, db, employee, make_employee, unpaid_leave):
        colleague = make_employee()

        with pytest.raises(AuthorizationError):
            LeaveRequestService(db, colleague).apply(
                unpaid_leave.leave_type_id, MONDAY, MONDAY, employee_id=employee.employee_id,
            )


class TestDecisions:

    @pytest.fixture
    def pending(self, db, employee, annual_leave):
        return LeaveRequestService(db, employee).apply(
            annual_leave.leave_type_id, MONDAY, MONDAY + timedelta(days=4),
        )

    def test_manager_approves_and_balance_drops(self, db, manager, employee, annual_leave, pending):
        approved = LeaveRequestService(db, manager).approve(pending.request_id, notes="Enjoy")

        assert approved.status == "APPROVED"
        assert approved.decided_by == manager.employee_id
        balance = db.execute(
            select(LeaveBalance).where(LeaveBalance.employee_id == employee.employee_id)
        ).scalar_one()
        assert balance.taken_days == Decimal("5")
        assert BalanceLedger(db).available_days(employee.employee_id, annual_leave, 2030) == Decimal("9")
        assert _actions_for(db, pending.request_id) == [
            AuditAction.SUBMITTED.value,
            AuditAction.APPROVED.value,
        ]

    def test_reject_leaves_balance_alone(self, db, manager, employee, annual_leave, pending):
        LeaveRequestService(db, manager).reject(pending.request_id, reason="Busy period")

        assert pending.status == "REJECTED"
        assert BalanceLedger(db).available_days(employee.employee_id, annual_leave, 2030) == Decimal("14")

    def test_other_manager_cannot_decide(self, db, make_employee, pending):
        stranger = make_employee(role="manager")

        with pytest.raises(AuthorizationError):
            LeaveRequestService(db, stranger).approve(pending.request_id)

    def test_applicant_cannot_approve(self, db, employee, pending):
        with pytest.raises(AuthorizationError):
            LeaveRequestService(db, employee).approve(pending.request_id)

    def test_terminal_states_are_final(self, db, manager, employee, admin, pending):
        LeaveRequestService(db, manager).approve(pending.request_id)
        assert pending.is_terminal

        with pytest.raises(InvalidStateError):
            LeaveRequestService(db, manager).reject(pending.request_id)
        with pytest.raises(InvalidStateError):
            LeaveRequestService(db, employee).cancel(pending.request_id)
        with pytest.raises(InvalidStateError):
            LeaveRequestService(db, admin).override(pending.request_id, "reject", "Changed my mind")
        assert pending.status == "APPROVED"

    def test_applicant_cancels(self, db, employee, pending):
        LeaveRequestService(db, employee).cancel(pending.request_id, reason="Plans changed")

        assert pending.status == "CANCELLED"
        assert _actions_for(db, pending.request_id)[-1] == AuditAction.CANCELLED.value

    def test_colleague_cannot_cancel(self, db, make_employee, pending):
        with pytest.raises(AuthorizationError):
            LeaveRequestService(db, make_employee()).cancel(pending.request_id)


class TestOverride:

    @pytest.fixture
    def pending(self, db, make_employee, manager, unpaid_leave):
        applicant = make_employee(manager=manager)
        return LeaveRequestService(db, applicant).apply(unpaid_leave.leave_type_id, MONDAY, MONDAY)

    def test_empty_justification_then_valid_override(self, db, admin, pending):
        service = LeaveRequestService(db, admin)

        with pytest.raises(ValidationError) as exc:
            service.override(pending.request_id, "approve", "")
        assert exc.value.field == "justification"
        assert pending.status == "PENDING"

        approved = service.override(pending.request_id, "approve", "Manager on leave")

        assert approved.status == "APPROVED"
        assert approved.is_override is True
        assert approved.decision_notes == "[OVERRIDE] Manager on leave"
        assert _actions_for(db, pending.request_id) == [
            AuditAction.SUBMITTED.value,
            AuditAction.OVERRIDE.value,
        ]

    def test_whitespace_justification(self, db, admin, pending):
        with pytest.raises(ValidationError):
            LeaveRequestService(db, admin).override(pending.request_id, "reject", "   ")

    def test_override_reject(self, db, admin, pending):
        rejected = LeaveRequestService(db, admin).override(pending.request_id, "reject", "Blackout period")
        assert rejected.status == "REJECTED"

    def test_override_needs_admin(self, db, manager, pending):
        with pytest.raises(AuthorizationError):
            LeaveRequestService(db, manager).override(pending.request_id, "approve", "Because")

    def test_unknown_action(self, db, admin, pending):
        with pytest.raises(ValidationError) as exc:
            LeaveRequestService(db, admin).override(pending.request_id, "cancel", "Because")
        assert exc.value.field == "action"


class TestReplacementLeaveRoundTrip:

    def test_credit_then_leave_consumes_exactly(
        self, db, employee, manager, rl_leave, offday_event, complete_training,
    ):
        ledger = BalanceLedger(db)
        assert ledger.rl_credit_days(employee.employee_id) == Decimal("0")

        outcome = complete_training(offday_event, employee)
        assert ledger.rl_credit_days(employee.employee_id) == outcome.credit.days == Decimal("1")

        request = LeaveRequestService(db, employee).apply(rl_leave.leave_type_id, MONDAY, MONDAY)
        # Pending RL requests hold their days
        assert ledger.available_days(employee.employee_id, rl_leave, 2030) == Decimal("0")

        LeaveRequestService(db, manager).approve(request.request_id)

        assert ledger.rl_credit_days(employee.employee_id) == Decimal("0")
        summary = ledger.rl_summary(employee.employee_id, rl_leave_type=rl_leave)
        assert summary.earned == Decimal("1")
        assert summary.used == Decimal("1")
        assert summary.available == Decimal("0")

    def test_rl_request_beyond_credit(self, db, employee, rl_leave):
        with pytest.raises(ValidationError) as exc:
            LeaveRequestService(db, employee).apply(rl_leave.leave_type_id, MONDAY, MONDAY)
        assert exc.value.field == "days_requested"

    def test_earliest_expiry_consumed_first(
        self, db, registry, training, employee, rl_leave, complete_training,
    ):
        short = registry.create_toil_rule("SHORT", "Short expiry", "TRAINING", date(2025, 1, 1), expiry_days=30)
        long = registry.create_toil_rule("LONG", "Long expiry", "TRAINING", date(2025, 1, 1), expiry_days=120)
        long_course = training.create_course("LONG-1", "Long", rl_rule_id=long.rule_id)
        short_course = training.create_course("SHORT-1", "Short", rl_rule_id=short.rule_id)
        long_credit = complete_training(
            training.create_event(long_course.course_id, SATURDAY, "OFF_DAY"), employee,
        ).credit
        short_credit = complete_training(
            training.create_event(short_course.course_id, SUNDAY, "OFF_DAY"), employee,
        ).credit

        taken = BalanceLedger(db).consume_rl_credits(employee.employee_id, Decimal("1"), now=utcnow())

        assert [(c.credit_id, days) for c, days in taken] == [(short_credit.credit_id, Decimal("1"))]
        assert long_credit.credit_id != short_credit.credit_id


class TestBalanceAdministration:

    @pytest.fixture
    def audit(self, db, admin):
        return AuditService(db, admin.employee_id)

    @pytest.fixture
    def carried_leave(self, registry):
        return registry.create_leave_type(
            "AL2", "Annual Leave (carry)",
            max_days_per_year=Decimal("14"),
            carry_forward_allowed=True,
            max_carry_forward_days=Decimal("5"),
        )

    def test_adjust_sets_only_given_values(self, db, audit, employee, carried_leave):
        ledger = BalanceLedger(db)

        balance = ledger.adjust_balance(
            employee.employee_id, carried_leave, 2030, audit, carry_forward_days=Decimal("3"),
        )

        assert balance.allocated_days == Decimal("14")
        assert balance.carry_forward_days == Decimal("3")
        assert ledger.available_days(employee.employee_id, carried_leave, 2030) == Decimal("17")
        db.flush()
        history = audit.get_record_history("leave_balances", balance.balance_id)
        assert [entry.action for entry in history] == [AuditAction.ADJUSTED.value]
        assert set(history[0].get_changes()) == {"carry_forward_days"}

    def test_adjust_without_values(self, db, audit, employee, annual_leave):
        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).adjust_balance(employee.employee_id, annual_leave, 2030, audit)
        assert exc.value.field == "allocated_days"

    def test_negative_allocation(self, db, audit, employee, annual_leave):
        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).adjust_balance(
                employee.employee_id, annual_leave, 2030, audit, allocated_days=Decimal("-1"),
            )
        assert exc.value.field == "allocated_days"

    def test_carry_forward_needs_type_support(self, db, audit, employee, annual_leave):
        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).adjust_balance(
                employee.employee_id, annual_leave, 2030, audit, carry_forward_days=Decimal("2"),
            )
        assert exc.value.field == "carry_forward_days"

    def test_carry_forward_limit(self, db, audit, employee, carried_leave):
        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).adjust_balance(
                employee.employee_id, carried_leave, 2030, audit, carry_forward_days=Decimal("6"),
            )
        assert Decimal(exc.value.details["max_carry_forward_days"]) == Decimal("5")

    def test_cannot_drop_below_taken(self, db, audit, manager, employee, annual_leave):
        request = LeaveRequestService(db, employee).apply(
            annual_leave.leave_type_id, MONDAY, MONDAY + timedelta(days=4),
        )
        LeaveRequestService(db, manager).approve(request.request_id)

        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).adjust_balance(
                employee.employee_id, annual_leave, 2030, audit, allocated_days=Decimal("4"),
            )
        assert Decimal(exc.value.details["taken_days"]) == Decimal("5")

        balance = BalanceLedger(db).adjust_balance(
            employee.employee_id, annual_leave, 2030, audit, allocated_days=Decimal("5"),
        )
        assert balance.remaining_days == Decimal("0")

    def test_pools_without_entitlement(self, db, audit, employee, rl_leave, unpaid_leave):
        ledger = BalanceLedger(db)
        for leave_type in (rl_leave, unpaid_leave):
            with pytest.raises(ValidationError) as exc:
                ledger.adjust_balance(
                    employee.employee_id, leave_type, 2030, audit, allocated_days=Decimal("3"),
                )
            assert exc.value.field == "leave_type_id"

    def test_bulk_allocate_counts_rows(self, db, audit, admin, manager, employee, make_employee, annual_leave):
        make_employee(is_active=False)
        ledger = BalanceLedger(db)
        ledger.get_or_create_balance(employee.employee_id, annual_leave, 2030)

        created, updated = ledger.bulk_allocate(annual_leave, 2030, Decimal("2"), audit)

        assert (created, updated) == (2, 1)
        for person in (admin, manager, employee):
            balance = ledger.find_balance(person.employee_id, annual_leave, 2030)
            assert balance.allocated_days == Decimal("16")

    def test_bulk_allocate_by_department(self, db, audit, admin, employee, annual_leave):
        ledger = BalanceLedger(db)

        assert ledger.bulk_allocate(annual_leave, 2030, Decimal("1"), audit, department="HR") == (1, 0)
        assert ledger.find_balance(employee.employee_id, annual_leave, 2030) is None

    def test_bulk_allocate_needs_positive_days(self, db, audit, annual_leave):
        with pytest.raises(ValidationError) as exc:
            BalanceLedger(db).bulk_allocate(annual_leave, 2030, Decimal("0"), audit)
        assert exc.value.field == "days"

    def test_duplicate_balance_row_is_invalid_state(self, db, employee, annual_leave):
        # Same key as the row get_or_create_balance is about to insert
        db.add(LeaveBalance(
            employee_id=employee.employee_id,
            leave_type_id=annual_leave.leave_type_id,
            year=2030,
            allocated_days=Decimal("14"),
            carry_forward_days=Decimal("0"),
            taken_days=Decimal("0"),
        ))

        with pytest.raises(InvalidStateError) as exc:
            BalanceLedger(db).get_or_create_balance(employee.employee_id, annual_leave, 2030)
        assert exc.value.details["year"] == 2030

    def test_insufficient_balance_at_approval_keeps_request_pending(
        self, db, audit, manager, employee, annual_leave,
    ):
        request = LeaveRequestService(db, employee).apply(annual_leave.leave_type_id, MONDAY, MONDAY)
        BalanceLedger(db).adjust_balance(
            employee.employee_id, annual_leave, 2030, audit, allocated_days=Decimal("0"),
        )

        with pytest.raises(ValidationError):
            LeaveRequestService(db, manager).approve(request.request_id)
        assert request.status == "PENDING"
