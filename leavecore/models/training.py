# LeaveCore - Training Models
# Course catalogue, scheduled events, and worker allocations

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List, TYPE_CHECKING

from sqlalchemy import (
    String, Boolean, Integer, DateTime, Date,
    Numeric, Text, ForeignKey, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, AuditMixin, utcnow

if TYPE_CHECKING:
    from .employee import Employee
    from .toil_rule import TOILRule


class DayType(str, enum.Enum):
    WORKING_DAY = "WORKING_DAY"
    OFF_DAY = "OFF_DAY"
    REST_DAY = "REST_DAY"
    PUBLIC_HOLIDAY = "PUBLIC_HOLIDAY"


class EventStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class AttendanceStatus(str, enum.Enum):
    PENDING = "PENDING"
    ATTENDED = "ATTENDED"
    NO_SHOW = "NO_SHOW"
    PARTIAL = "PARTIAL"


class CompletionStatus(str, enum.Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    INCOMPLETE = "INCOMPLETE"


class TrainingCourse(AuditMixin, Base):
    """
    Training catalogue entry.

    rl_eligible is the default for new events of this course; rl_rule_id
    is the TOIL rule applied when an allocation to one of its events
    is confirmed COMPLETED.
    """

    __tablename__ = "training_courses"

    course_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True
    )

    title: Mapped[str] = mapped_column(
        String(200),
        nullable=False
    )

    category: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True
    )

    duration_hours: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    is_mandatory: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    rl_eligible: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    rl_rule_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("toil_rules.rule_id"),
        nullable=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    # Relationships
    rl_rule: Mapped[Optional["TOILRule"]] = relationship("TOILRule")

    events: Mapped[List["TrainingEvent"]] = relationship(
        "TrainingEvent",
        back_populates="course"
    )

    def __repr__(self) -> str:
        return f"<TrainingCourse {self.code}>"


class TrainingEvent(AuditMixin, Base):
    """
    A scheduled occurrence of a course.

    day_type gates RL: an event held on a WORKING_DAY never earns
    replacement leave, so rl_eligible may only be true for the other
    day types.
    """

    __tablename__ = "training_events"

    __table_args__ = (
        Index("ix_training_events_date", "event_date"),
        CheckConstraint(
            "rl_eligible = 0 OR day_type <> 'WORKING_DAY'",
            name="ck_training_events_rl_day_type",
        ),
    )

    event_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    course_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("training_courses.course_id"),
        nullable=False,
        index=True
    )

    event_date: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    # For multi-day events
    event_end_date: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True
    )

    location: Mapped[Optional[str]] = mapped_column(
        String(200),
        nullable=True
    )

    day_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False
    )

    rl_eligible: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EventStatus.SCHEDULED.value
    )

    max_participants: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    # Relationships
    course: Mapped["TrainingCourse"] = relationship(
        "TrainingCourse",
        back_populates="events"
    )

    allocations: Mapped[List["Allocation"]] = relationship(
        "Allocation",
        back_populates="event"
    )

    def __repr__(self) -> str:
        return f"<TrainingEvent {self.event_id} {self.event_date} {self.day_type}>"

    @property
    def rule(self) -> Optional["TOILRule"]:
        """The TOIL rule bound to this event through its course."""
        return self.course.rl_rule if self.course else None


class Allocation(Base):
    """
    One employee assigned to one training event.

    Two independent axes are tracked together:
        attendance: PENDING -> ATTENDED | NO_SHOW | PARTIAL
        completion: PENDING -> COMPLETED | INCOMPLETE

    Completion can only be confirmed after ATTENDED or PARTIAL attendance.
    rl_eligible is copied from the event when the row is created and never
    changes; rl_credit_id is set at most once, when the credit issuer
    grants replacement leave for this allocation.

    The version column backs optimistic locking: two sessions updating
    the same allocation cannot both commit.
    """

    __tablename__ = "training_allocations"

    __table_args__ = (
        UniqueConstraint("event_id", "employee_id", name="uq_allocation_event_employee"),
        Index("ix_training_allocations_employee", "employee_id"),
    )

    allocation_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    event_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("training_events.event_id"),
        nullable=False,
        index=True
    )

    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=False
    )

    allocated_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=False
    )

    allocated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False
    )

    rl_eligible: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False
    )

    # Stage 1: attendance
    attendance_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AttendanceStatus.PENDING.value
    )

    hours_attended: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    attendance_marked_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True
    )

    attendance_marked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    # Stage 2: completion
    completion_status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=CompletionStatus.PENDING.value
    )

    completion_confirmed_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True
    )

    completion_confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    completion_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    # Set once by the credit issuer. No FK: rl_credits already points back
    # here through its unique source_allocation_id.
    rl_credit_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    rl_credited_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    event: Mapped["TrainingEvent"] = relationship(
        "TrainingEvent",
        back_populates="allocations"
    )

    employee: Mapped["Employee"] = relationship(
        "Employee",
        foreign_keys=[employee_id]
    )

    def __repr__(self) -> str:
        return (
            f"<Allocation {self.allocation_id} event={self.event_id} "
            f"employee={self.employee_id} {self.attendance_status}/{self.completion_status}>"
        )

    @property
    def has_credit(self) -> bool:
        return self.rl_credit_id is not None

    @property
    def can_confirm_completion(self) -> bool:
        return (
            self.attendance_status in (AttendanceStatus.ATTENDED.value, AttendanceStatus.PARTIAL.value)
            and self.completion_status == CompletionStatus.PENDING.value
        )
