# LeaveCore - Test Fixtures

import os

# Point the app at SQLite before anything imports leavecore.config
os.environ["LEAVECORE_DB_URL"] = "sqlite://"

from datetime import date
from decimal import Decimal
from itertools import count

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from leavecore.models import Base, Employee
from leavecore.services.rule_registry import RuleRegistryService
from leavecore.services.training import TrainingService


RULES_EFFECTIVE_FROM = date(2025, 1, 1)

# 2030-01-05 is a Saturday, 2030-01-07 a Monday
SATURDAY = date(2030, 1, 5)
SUNDAY = date(2030, 1, 6)
MONDAY = date(2030, 1, 7)

_codes = count(1)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()
    yield session
    session.close()


@pytest.fixture
def make_employee(db):
    """Factory for directory records."""

    def _make(
        role: str = "employee",
        manager: Employee = None,
        department: str = "OPS",
        grade: str = "G5",
        employment_type: str = "PERMANENT",
        is_active: bool = True,
    ) -> Employee:
        n = next(_codes)
        employee = Employee(
            employee_code=f"E{n:04d}",
            first_name="Test",
            last_name=f"Employee{n}",
            department=department,
            grade=grade,
            employment_type=employment_type,
            role=role,
            manager_id=manager.employee_id if manager else None,
            is_active=is_active,
        )
        db.add(employee)
        db.flush()
        return employee

    return _make


@pytest.fixture
def admin(make_employee):
    return make_employee(role="admin", department="HR")


@pytest.fixture
def manager(make_employee):
    return make_employee(role="manager")


@pytest.fixture
def employee(make_employee, manager):
    return make_employee(manager=manager)


@pytest.fixture
def registry(db, admin):
    return RuleRegistryService(db, admin.employee_id)


@pytest.fixture
def annual_leave(registry):
    return registry.create_leave_type("al", "Annual Leave", max_days_per_year=Decimal("14"))


@pytest.fixture
def unpaid_leave(registry):
    return registry.create_leave_type("UL", "Unpaid Leave", is_paid=False)


@pytest.fixture
def rl_leave(registry):
    return registry.create_leave_type("RL", "Replacement Leave", max_days_per_year=Decimal("0"))


@pytest.fixture
def train_rule(registry):
    return registry.create_toil_rule(
        "TRAIN1",
        "Training on off-day",
        "TRAINING",
        RULES_EFFECTIVE_FROM,
        credit_type="FIXED",
        credit_days=Decimal("1"),
        expiry_days=90,
    )


@pytest.fixture
def training(db, admin):
    return TrainingService(db, admin.employee_id)


@pytest.fixture
def course(training, train_rule):
    return training.create_course("FIRE-101", "Fire safety", rl_rule_id=train_rule.rule_id)


@pytest.fixture
def offday_event(training, course):
    return training.create_event(course.course_id, SATURDAY, "OFF_DAY", rl_eligible=True)


@pytest.fixture
def complete_training(training):
    """Allocate, mark ATTENDED and confirm COMPLETED in one go."""

    def _complete(event, employee, status="ATTENDED", hours=None):
        result = training.allocate_workers(event.event_id, [employee.employee_id])
        allocation = result.allocated[0]
        training.mark_attendance(allocation.allocation_id, status, hours)
        return training.confirm_completion(allocation.allocation_id, "COMPLETED")

    return _complete
