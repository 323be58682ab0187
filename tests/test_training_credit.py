# LeaveCore - Training Allocation and Credit Issuer Tests

from datetime import date, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError

from leavecore.models import AuditLog, AuditAction, RLCredit, TrainingEvent
from leavecore.services.credit_issuer import (
    compute_ratio_days,
    CAP_REACHED,
    NO_CREDIT_EARNED,
    RULE_NOT_APPLICABLE,
    NO_RULE,
)
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    AuthorizationError,
    NotFoundError,
)
from leavecore.services.training import TrainingService

from conftest import RULES_EFFECTIVE_FROM, SATURDAY, SUNDAY, MONDAY


def _credit_count(db) -> int:
    return db.execute(select(func.count()).select_from(RLCredit)).scalar_one()


class TestEvents:

    def test_working_day_event_cannot_be_rl_eligible(self, training, course):
        with pytest.raises(ValidationError) as exc:
            training.create_event(course.course_id, MONDAY, "WORKING_DAY", rl_eligible=True)
        assert exc.value.field == "rl_eligible"

    def test_rl_eligible_defaults_from_course_and_day_type(self, training, course):
        offday = training.create_event(course.course_id, SATURDAY, "OFF_DAY")
        workday = training.create_event(course.course_id, MONDAY, "WORKING_DAY")

        assert offday.rl_eligible is True
        assert workday.rl_eligible is False

    def test_unknown_day_type(self, training, course):
        with pytest.raises(ValidationError):
            training.create_event(course.course_id, SATURDAY, "HOLIDAY")

    def test_end_before_start(self, training, course):
        with pytest.raises(ValidationError) as exc:
            training.create_event(course.course_id, SUNDAY, "OFF_DAY", event_end_date=SATURDAY)
        assert exc.value.field == "event_end_date"

    def test_unknown_course(self, training):
        with pytest.raises(NotFoundError):
            training.create_event(999, SATURDAY, "OFF_DAY")

    def test_working_day_eligibility_enforced_by_schema(self, db, course, admin):
        db.add(TrainingEvent(
            course_id=course.course_id,
            event_date=MONDAY,
            day_type="WORKING_DAY",
            rl_eligible=True,
            status="SCHEDULED",
            created_by=admin.employee_id,
        ))

        with pytest.raises(IntegrityError):
            db.flush()
        db.rollback()

    def test_complete_event(self, db, training, offday_event, employee):
        completed = training.complete_event(offday_event.event_id)
        db.flush()

        assert completed.status == "COMPLETED"
        assert training.complete_event(offday_event.event_id).status == "COMPLETED"
        actions = db.execute(
            select(AuditLog.action).where(
                AuditLog.entity_type == "training_events",
                AuditLog.record_id == offday_event.event_id,
            ).order_by(AuditLog.audit_id)
        ).scalars().all()
        assert actions == [AuditAction.CREATED.value, AuditAction.COMPLETED.value]

        with pytest.raises(InvalidStateError):
            training.allocate_workers(offday_event.event_id, [employee.employee_id])
        with pytest.raises(InvalidStateError):
            training.cancel_event(offday_event.event_id)

    def test_cancelled_event_cannot_complete(self, db, training, offday_event):
        training.cancel_event(offday_event.event_id)
        training.cancel_event(offday_event.event_id)
        db.flush()
        actions = db.execute(
            select(AuditLog.action).where(
                AuditLog.entity_type == "training_events",
                AuditLog.record_id == offday_event.event_id,
            ).order_by(AuditLog.audit_id)
        ).scalars().all()
        assert actions == [AuditAction.CREATED.value, AuditAction.CANCELLED.value]

        with pytest.raises(InvalidStateError) as exc:
            training.complete_event(offday_event.event_id)
        assert exc.value.details["status"] == "CANCELLED"


class TestCourses:

    def test_update_changes_only_given_fields(self, db, training, course):
        updated = training.update_course(course.course_id, title=" Fire safety refresher ", is_mandatory=True)
        db.flush()

        assert updated.title == "Fire safety refresher"
        assert updated.is_mandatory is True
        assert updated.rl_rule_id is not None
        entry = db.execute(
            select(AuditLog).where(
                AuditLog.entity_type == "training_courses",
                AuditLog.action == AuditAction.UPDATED.value,
            )
        ).scalar_one()
        changes = entry.get_changes()
        assert changes["title"] == ("Fire safety", "Fire safety refresher")
        assert {"title", "is_mandatory"} <= set(changes)
        assert "rl_rule_id" not in changes

    def test_code_cannot_change(self, training, course):
        with pytest.raises(ValidationError) as exc:
            training.update_course(course.course_id, code="FIRE-102")
        assert exc.value.field == "code"

    def test_unknown_rule(self, training, course):
        with pytest.raises(NotFoundError):
            training.update_course(course.course_id, rl_rule_id=999)

    def test_deactivated_course_is_retired(self, db, training, course):
        training.deactivate_course(course.course_id)
        db.flush()

        assert training.list_courses() == []
        assert training.list_courses(include_inactive=True) == [course]
        with pytest.raises(ValidationError) as exc:
            training.create_event(course.course_id, SATURDAY, "OFF_DAY")
        assert exc.value.field == "course_id"
        assert db.execute(
            select(AuditLog.action).where(
                AuditLog.entity_type == "training_courses",
                AuditLog.action == AuditAction.DEACTIVATED.value,
            )
        ).scalar_one() == AuditAction.DEACTIVATED.value


class TestAllocation:

    def test_allocation_copies_event_eligibility(self, training, offday_event, employee):
        result = training.allocate_workers(offday_event.event_id, [employee.employee_id])

        allocation = result.allocated[0]
        assert allocation.rl_eligible is True
        assert allocation.attendance_status == "PENDING"
        assert allocation.completion_status == "PENDING"

    def test_repeat_allocation_is_skipped(self, training, offday_event, employee, make_employee):
        other = make_employee()
        training.allocate_workers(offday_event.event_id, [employee.employee_id])

        result = training.allocate_workers(offday_event.event_id, [employee.employee_id, other.employee_id, 999])

        assert result.allocated_count == 1
        assert result.skipped_ids == [employee.employee_id]
        assert result.unknown_ids == [999]
        assert len(training.list_allocations(offday_event.event_id)) == 2

    def test_cancelled_event_takes_no_allocations(self, training, offday_event, employee):
        training.cancel_event(offday_event.event_id)

        with pytest.raises(InvalidStateError):
            training.allocate_workers(offday_event.event_id, [employee.employee_id])

    def test_capacity(self, training, course, make_employee):
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY", max_participants=1)
        first, second = make_employee(), make_employee()

        with pytest.raises(ValidationError):
            training.allocate_workers(event.event_id, [first.employee_id, second.employee_id])

    def test_remove_before_attendance(self, db, training, offday_event, employee):
        allocation = training.allocate_workers(offday_event.event_id, [employee.employee_id]).allocated[0]
        allocation_id = allocation.allocation_id

        training.remove_allocation(allocation_id)

        assert training.list_allocations(offday_event.event_id) == []
        actions = db.execute(
            select(AuditLog.action).where(AuditLog.allocation_id == allocation_id).order_by(AuditLog.audit_id)
        ).scalars().all()
        assert actions == [AuditAction.ALLOCATED.value, AuditAction.UNALLOCATED.value]

    def test_remove_after_attendance_refused(self, training, offday_event, employee):
        allocation = training.allocate_workers(offday_event.event_id, [employee.employee_id]).allocated[0]
        training.mark_attendance(allocation.allocation_id, "ATTENDED")

        with pytest.raises(InvalidStateError):
            training.remove_allocation(allocation.allocation_id)


class TestAttendanceAndCompletion:

    @pytest.fixture
    def allocation(self, training, offday_event, employee):
        return training.allocate_workers(offday_event.event_id, [employee.employee_id]).allocated[0]

    def test_attendance_marked_once(self, training, allocation):
        training.mark_attendance(allocation.allocation_id, "ATTENDED")

        with pytest.raises(InvalidStateError):
            training.mark_attendance(allocation.allocation_id, "NO_SHOW")

    def test_unknown_attendance_status(self, training, allocation):
        with pytest.raises(ValidationError):
            training.mark_attendance(allocation.allocation_id, "LATE")

    def test_completion_needs_attendance(self, training, allocation):
        with pytest.raises(InvalidStateError):
            training.confirm_completion(allocation.allocation_id, "COMPLETED")

    def test_no_show_cannot_complete(self, training, allocation):
        training.mark_attendance(allocation.allocation_id, "NO_SHOW")

        with pytest.raises(InvalidStateError):
            training.confirm_completion(allocation.allocation_id, "COMPLETED")

    def test_employee_cannot_confirm_own_training(self, db, training, allocation, employee):
        training.mark_attendance(allocation.allocation_id, "ATTENDED")

        with pytest.raises(AuthorizationError):
            TrainingService(db, employee.employee_id).confirm_completion(allocation.allocation_id, "COMPLETED")

    def test_second_completion_is_invalid_state(self, db, training, allocation):
        training.mark_attendance(allocation.allocation_id, "ATTENDED")
        training.confirm_completion(allocation.allocation_id, "COMPLETED")

        with pytest.raises(InvalidStateError):
            training.confirm_completion(allocation.allocation_id, "COMPLETED")
        assert _credit_count(db) == 1

    def test_incomplete_issues_nothing(self, db, training, allocation):
        training.mark_attendance(allocation.allocation_id, "ATTENDED")

        outcome = training.confirm_completion(allocation.allocation_id, "INCOMPLETE", notes="Left early")

        assert outcome.credit is None
        assert not outcome.credited
        assert allocation.completion_status == "INCOMPLETE"
        assert _credit_count(db) == 0


class TestCreditIssuance:

    def test_offday_training_credits_one_day(self, db, offday_event, employee, complete_training):
        outcome = complete_training(offday_event, employee)
        db.commit()

        assert outcome.credited
        assert outcome.credit.days == Decimal("1")

        credits = db.execute(select(RLCredit)).scalars().all()
        assert len(credits) == 1
        credit = credits[0]
        assert credit.employee_id == employee.employee_id
        assert credit.source_allocation_id == outcome.allocation.allocation_id
        assert credit.trigger_date == SATURDAY
        assert credit.expires_at - credit.issued_at == timedelta(days=90)
        assert outcome.allocation.rl_credit_id == credit.credit_id

    def test_credit_is_audited(self, db, offday_event, employee, complete_training):
        outcome = complete_training(offday_event, employee)
        db.flush()

        actions = db.execute(
            select(AuditLog.action)
            .where(AuditLog.allocation_id == outcome.allocation.allocation_id)
            .order_by(AuditLog.audit_id)
        ).scalars().all()
        assert actions == [
            AuditAction.ALLOCATED.value,
            AuditAction.ATTENDANCE.value,
            AuditAction.RL_CREDITED.value,
            AuditAction.COMPLETED.value,
        ]

    def test_working_day_training_earns_nothing(self, db, training, course, employee, complete_training):
        event = training.create_event(course.course_id, MONDAY, "WORKING_DAY", rl_eligible=False)

        outcome = complete_training(event, employee)

        assert outcome.credit is not None
        assert outcome.credit.credited is False
        assert outcome.allocation.completion_status == "COMPLETED"
        assert outcome.allocation.rl_credit_id is None
        assert _credit_count(db) == 0

    def test_course_without_rule(self, db, training, employee, complete_training):
        course = training.create_course("NORULE", "No rule attached")
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY", rl_eligible=True)

        outcome = complete_training(event, employee)

        assert outcome.credit.reason == NO_RULE
        assert _credit_count(db) == 0

    def test_ineligible_department(self, db, registry, training, make_employee, complete_training):
        rule = registry.create_toil_rule(
            "FIN_TRAIN", "Finance training", "TRAINING", RULES_EFFECTIVE_FROM,
            eligible_departments=["FIN"],
        )
        course = training.create_course("FIN-1", "Finance", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY")
        worker = make_employee(department="OPS")

        outcome = complete_training(event, worker)

        assert outcome.credit.reason == RULE_NOT_APPLICABLE
        assert _credit_count(db) == 0

    def test_rule_deactivated_after_binding(
        self, db, registry, train_rule, offday_event, employee, complete_training
    ):
        registry.deactivate_toil_rule(train_rule.rule_id)

        outcome = complete_training(offday_event, employee)

        assert outcome.credited is False
        assert outcome.credit.reason == RULE_NOT_APPLICABLE
        assert outcome.allocation.completion_status == "COMPLETED"
        assert _credit_count(db) == 0

    def test_never_expiring_credit(self, registry, training, employee, complete_training):
        rule = registry.create_toil_rule("FOREVER", "No expiry", "TRAINING", RULES_EFFECTIVE_FROM)
        course = training.create_course("FOREVER-1", "Evergreen", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY")

        outcome = complete_training(event, employee)

        assert outcome.credited
        assert outcome.credit.expires_at is None


class TestRatioCredit:

    def test_formula(self):
        assert compute_ratio_days(Decimal("1"), Decimal("8"), Decimal("4"), "PARTIAL") == Decimal("0.5")
        assert compute_ratio_days(Decimal("1"), Decimal("8"), Decimal("3"), "PARTIAL") == Decimal("0.37")
        assert compute_ratio_days(Decimal("1"), Decimal("8"), Decimal("10"), "ATTENDED") == Decimal("1")

    def test_missing_hours(self):
        assert compute_ratio_days(Decimal("1"), Decimal("8"), None, "ATTENDED") == Decimal("1")
        assert compute_ratio_days(Decimal("1"), Decimal("8"), None, "PARTIAL") == Decimal("0")

    def test_partial_attendance_credit(self, registry, training, employee, complete_training):
        rule = registry.create_toil_rule(
            "RATIO8", "Per hour", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_type="RATIO", credit_days=Decimal("1"), min_hours_required=Decimal("8"),
        )
        course = training.create_course("RATIO-1", "Half day", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY")

        outcome = complete_training(event, employee, status="PARTIAL", hours=Decimal("4"))

        assert outcome.credited
        assert outcome.credit.days == Decimal("0.5")

    def test_partial_without_hours_earns_nothing(self, db, registry, training, employee, complete_training):
        rule = registry.create_toil_rule(
            "RATIO8", "Per hour", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_type="RATIO", min_hours_required=Decimal("8"),
        )
        course = training.create_course("RATIO-1", "Half day", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY")

        outcome = complete_training(event, employee, status="PARTIAL")

        assert outcome.credit.reason == NO_CREDIT_EARNED
        assert _credit_count(db) == 0


class TestCaps:

    @pytest.fixture
    def capped_course(self, registry, training):
        rule = registry.create_toil_rule(
            "CAPPED", "Capped", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("1"),
            max_days_per_month=Decimal("1.5"),
        )
        return training.create_course("CAP-1", "Capped course", rl_rule_id=rule.rule_id)

    def test_monthly_cap_truncates_then_stops(self, training, capped_course, employee, complete_training):
        first = training.create_event(capped_course.course_id, date(2030, 1, 5), "OFF_DAY")
        second = training.create_event(capped_course.course_id, date(2030, 1, 12), "OFF_DAY")
        third = training.create_event(capped_course.course_id, date(2030, 1, 19), "OFF_DAY")

        assert complete_training(first, employee).credit.days == Decimal("1")
        assert complete_training(second, employee).credit.days == Decimal("0.5")

        outcome = complete_training(third, employee)
        assert outcome.credited is False
        assert outcome.credit.reason == CAP_REACHED

    def test_cap_resets_next_month(self, training, capped_course, employee, complete_training):
        january = training.create_event(capped_course.course_id, date(2030, 1, 26), "OFF_DAY")
        february = training.create_event(capped_course.course_id, date(2030, 2, 2), "OFF_DAY")

        assert complete_training(january, employee).credit.days == Decimal("1")
        assert complete_training(february, employee).credit.days == Decimal("1")

    def test_per_event_cap(self, registry, training, employee, complete_training):
        rule = registry.create_toil_rule(
            "BIG", "Big credit", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("2"), max_days_per_event=Decimal("1"),
        )
        course = training.create_course("BIG-1", "Two day course", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY", event_end_date=SUNDAY)

        assert complete_training(event, employee).credit.days == Decimal("1")

    def test_yearly_cap_spans_months(self, registry, training, employee, complete_training):
        rule = registry.create_toil_rule(
            "YEARLY", "Yearly capped", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("1"), max_days_per_year=Decimal("2"),
        )
        course = training.create_course("YR-1", "Quarterly drill", rl_rule_id=rule.rule_id)
        january = training.create_event(course.course_id, date(2030, 1, 5), "OFF_DAY")
        april = training.create_event(course.course_id, date(2030, 4, 6), "OFF_DAY")
        july = training.create_event(course.course_id, date(2030, 7, 6), "OFF_DAY")
        next_year = training.create_event(course.course_id, date(2031, 1, 4), "OFF_DAY")

        assert complete_training(january, employee).credit.days == Decimal("1")
        assert complete_training(april, employee).credit.days == Decimal("1")

        capped = complete_training(july, employee)
        assert capped.credited is False
        assert capped.credit.reason == CAP_REACHED

        assert complete_training(next_year, employee).credit.days == Decimal("1")
