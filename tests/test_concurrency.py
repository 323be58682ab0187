# LeaveCore - Concurrent Transition Tests
#
# Each scenario uses two sessions on a file-backed SQLite database. Session B
# loads the record, session A changes and commits it, then B acts on what it
# loaded. B's flush must fail the version check.

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select, func
from sqlalchemy.orm import sessionmaker

from leavecore.models import (
    Base,
    Employee,
    Allocation,
    LeaveBalance,
    LeaveRequest,
    RLCredit,
    AuditLog,
    AuditAction,
)
from leavecore.services.errors import InvalidStateError, flush_or_invalid_state
from leavecore.services.leave_request import LeaveRequestService
from leavecore.services.rule_registry import RuleRegistryService
from leavecore.services.training import TrainingService

from conftest import RULES_EFFECTIVE_FROM, SATURDAY, MONDAY


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    engine.dispose()


def _employee(db, code, role="employee", manager_id=None):
    employee = Employee(
        employee_code=code,
        first_name="Race",
        last_name=code,
        department="OPS",
        role=role,
        manager_id=manager_id,
    )
    db.add(employee)
    db.flush()
    return employee


@pytest.fixture
def attended_allocation(session_factory):
    """Ids of two admins and an ATTENDED allocation on an RL-eligible event."""
    with session_factory() as db:
        first_admin = _employee(db, "ADM1", role="admin")
        second_admin = _employee(db, "ADM2", role="admin")
        worker = _employee(db, "WRK1")

        rule = RuleRegistryService(db, first_admin.employee_id).create_toil_rule(
            "TRAIN1", "Training on off-day", "TRAINING", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("1"), expiry_days=90,
        )
        training = TrainingService(db, first_admin.employee_id)
        course = training.create_course("FIRE-101", "Fire safety", rl_rule_id=rule.rule_id)
        event = training.create_event(course.course_id, SATURDAY, "OFF_DAY", rl_eligible=True)
        allocation = training.allocate_workers(event.event_id, [worker.employee_id]).allocated[0]
        training.mark_attendance(allocation.allocation_id, "ATTENDED")
        db.commit()

        return first_admin.employee_id, second_admin.employee_id, allocation.allocation_id


def test_concurrent_completion_credits_once(session_factory, attended_allocation):
    first_admin_id, second_admin_id, allocation_id = attended_allocation

    session_a = session_factory()
    session_b = session_factory()
    try:
        # B holds completion=PENDING from before A commits
        stale = session_b.get(Allocation, allocation_id)
        assert stale.completion_status == "PENDING"

        outcome = TrainingService(session_a, first_admin_id).confirm_completion(allocation_id, "COMPLETED")
        session_a.commit()
        assert outcome.credited

        with pytest.raises(InvalidStateError):
            TrainingService(session_b, second_admin_id).confirm_completion(allocation_id, "COMPLETED")
    finally:
        session_a.close()
        session_b.close()

    with session_factory() as db:
        credits = db.execute(
            select(func.count()).select_from(RLCredit).where(RLCredit.source_allocation_id == allocation_id)
        ).scalar_one()
        completions = db.execute(
            select(func.count()).select_from(AuditLog).where(
                AuditLog.allocation_id == allocation_id,
                AuditLog.action == AuditAction.COMPLETED.value,
            )
        ).scalar_one()
        allocation = db.get(Allocation, allocation_id)

        assert credits == 1
        assert completions == 1
        assert allocation.completion_confirmed_by == first_admin_id


def test_credit_uniqueness_backstop(session_factory, attended_allocation):
    first_admin_id, _, allocation_id = attended_allocation

    with session_factory() as db:
        allocation = db.get(Allocation, allocation_id)
        for _ in range(2):
            db.add(RLCredit(
                employee_id=allocation.employee_id,
                source_allocation_id=allocation_id,
                rule_id=1,
                trigger_type="TRAINING",
                trigger_date=SATURDAY,
                days_credited=Decimal("1"),
                days_used=Decimal("0"),
                issued_by=first_admin_id,
            ))

        with pytest.raises(InvalidStateError):
            flush_or_invalid_state(db, "duplicate credit")

        assert db.execute(select(func.count()).select_from(RLCredit)).scalar_one() == 0


def test_concurrent_decisions_only_one_commits(session_factory):
    with session_factory() as db:
        admin = _employee(db, "ADM1", role="admin")
        manager = _employee(db, "MGR1", role="manager")
        worker = _employee(db, "WRK1", manager_id=manager.employee_id)
        unpaid = RuleRegistryService(db, admin.employee_id).create_leave_type("UL", "Unpaid Leave")
        request = LeaveRequestService(db, worker).apply(unpaid.leave_type_id, MONDAY, MONDAY)
        db.commit()
        admin_id, manager_id, request_id = admin.employee_id, manager.employee_id, request.request_id

    session_a = session_factory()
    session_b = session_factory()
    try:
        stale = session_b.get(LeaveRequest, request_id)
        assert stale.status == "PENDING"
        admin_b = session_b.get(Employee, admin_id)

        LeaveRequestService(session_a, session_a.get(Employee, manager_id)).approve(request_id)
        session_a.commit()

        with pytest.raises(InvalidStateError):
            LeaveRequestService(session_b, admin_b).override(request_id, "reject", "Blackout period")
    finally:
        session_a.close()
        session_b.close()

    with session_factory() as db:
        stored = db.get(LeaveRequest, request_id)
        assert stored.status == "APPROVED"
        assert stored.is_override is False
        decisions = db.execute(
            select(AuditLog.action)
            .where(AuditLog.leave_request_id == request_id)
            .order_by(AuditLog.audit_id)
        ).scalars().all()
        assert decisions == [AuditAction.SUBMITTED.value, AuditAction.APPROVED.value]


def _approve_while_holding_stale(session_factory, admin_id, manager_id, request_id, action="approve"):
    """Manager approves in session A while session B overrides its stale copy."""
    session_a = session_factory()
    session_b = session_factory()
    try:
        stale = session_b.get(LeaveRequest, request_id)
        assert stale.status == "PENDING"
        admin_b = session_b.get(Employee, admin_id)

        LeaveRequestService(session_a, session_a.get(Employee, manager_id)).approve(request_id)
        session_a.commit()

        with pytest.raises(InvalidStateError):
            LeaveRequestService(session_b, admin_b).override(request_id, action, "Manager unavailable")
    finally:
        session_a.close()
        session_b.close()


def _decisions(db, request_id):
    return db.execute(
        select(AuditLog.action)
        .where(AuditLog.leave_request_id == request_id)
        .order_by(AuditLog.audit_id)
    ).scalars().all()


def test_lost_decision_on_capped_type_is_invalid_state(session_factory):
    with session_factory() as db:
        admin = _employee(db, "ADM1", role="admin")
        manager = _employee(db, "MGR1", role="manager")
        worker = _employee(db, "WRK1", manager_id=manager.employee_id)
        annual = RuleRegistryService(db, admin.employee_id).create_leave_type(
            "AL", "Annual Leave", max_days_per_year=Decimal("14"),
        )
        # Two working weeks: 10 of the 14 days
        request = LeaveRequestService(db, worker).apply(
            annual.leave_type_id, MONDAY, MONDAY + timedelta(days=11),
        )
        db.commit()
        assert request.days_requested == Decimal("10")
        ids = (admin.employee_id, manager.employee_id, request.request_id)
        worker_id, annual_id = worker.employee_id, annual.leave_type_id

    _approve_while_holding_stale(session_factory, *ids)

    with session_factory() as db:
        balance = db.execute(
            select(LeaveBalance).where(
                LeaveBalance.employee_id == worker_id,
                LeaveBalance.leave_type_id == annual_id,
            )
        ).scalar_one()
        assert balance.taken_days == Decimal("10")
        assert db.get(LeaveRequest, ids[2]).is_override is False
        assert _decisions(db, ids[2]) == [AuditAction.SUBMITTED.value, AuditAction.APPROVED.value]


def test_lost_decision_on_replacement_leave_is_invalid_state(session_factory, attended_allocation):
    first_admin_id, _, allocation_id = attended_allocation

    with session_factory() as db:
        TrainingService(db, first_admin_id).confirm_completion(allocation_id, "COMPLETED")
        worker = db.get(Allocation, allocation_id).employee
        manager = _employee(db, "MGR1", role="manager")
        worker.manager_id = manager.employee_id
        replacement = RuleRegistryService(db, first_admin_id).create_leave_type(
            "RL", "Replacement Leave", max_days_per_year=Decimal("0"),
        )
        request = LeaveRequestService(db, worker).apply(replacement.leave_type_id, MONDAY, MONDAY)
        db.commit()
        ids = (first_admin_id, manager.employee_id, request.request_id)

    _approve_while_holding_stale(session_factory, *ids)

    with session_factory() as db:
        credit = db.execute(
            select(RLCredit).where(RLCredit.source_allocation_id == allocation_id)
        ).scalar_one()
        assert credit.days_used == Decimal("1")
        assert _decisions(db, ids[2]) == [AuditAction.SUBMITTED.value, AuditAction.APPROVED.value]
