# LeaveCore - Leave Request Model

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Boolean, Integer, DateTime, Date,
    Numeric, Text, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .employee import Employee
    from .leave_type import LeaveType


class LeaveStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


TERMINAL_STATUSES = frozenset({
    LeaveStatus.APPROVED.value,
    LeaveStatus.REJECTED.value,
    LeaveStatus.CANCELLED.value,
})


class LeaveRequest(Base):
    """
    An employee's leave application.

    Lifecycle:
        PENDING -> APPROVED | REJECTED | CANCELLED

    PENDING is the only non-terminal state. Days are deducted from the
    balance ledger only when the request is approved (normally or by
    override), inside the same transaction as the status change.

    The version column backs optimistic locking so two concurrent
    decisions on the same request cannot both commit.
    """

    __tablename__ = "leave_requests"

    __table_args__ = (
        Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        Index("ix_leave_requests_status_submitted", "status", "submitted_at"),
        CheckConstraint("start_date <= end_date", name="ck_leave_requests_dates"),
    )

    request_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    employee_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=False,
        index=True
    )

    leave_type_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("leave_types.leave_type_id"),
        nullable=False
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    end_date: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    half_day_start: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    half_day_end: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    # Working days in the range, computed at submission
    days_requested: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False
    )

    reason: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    # Reference to a supporting document held by the document service
    document_reference: Mapped[Optional[str]] = mapped_column(
        String(500),
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LeaveStatus.PENDING.value
    )

    current_approver_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False
    )

    # Decision
    decided_by: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True
    )

    decided_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    decision_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    is_override: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    # Relationships
    employee: Mapped["Employee"] = relationship(
        "Employee",
        foreign_keys=[employee_id]
    )

    leave_type: Mapped["LeaveType"] = relationship("LeaveType")

    approver: Mapped[Optional["Employee"]] = relationship(
        "Employee",
        foreign_keys=[current_approver_id]
    )

    def __repr__(self) -> str:
        return f"<LeaveRequest {self.request_id} {self.start_date}..{self.end_date} {self.status}>"

    @property
    def is_pending(self) -> bool:
        return self.status == LeaveStatus.PENDING.value

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def pending_for_days(self, now: datetime) -> int:
        """Whole days since submission."""
        return (now - self.submitted_at).days
