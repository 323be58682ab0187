# LeaveCore - Leave Balance Model

from datetime import datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Integer, DateTime, Numeric, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .leave_type import LeaveType


class LeaveBalance(Base):
    """
    Per-employee, per-leave-type, per-year entitlement ledger.

    allocated_days is seeded from the leave type's max_days_per_year the
    first time the balance is needed. taken_days only grows when a
    request is approved. Replacement leave does not use this table;
    its balance is the sum of unexpired RL credits.
    """

    __tablename__ = "leave_balances"

    __table_args__ = (
        UniqueConstraint("employee_id", "leave_type_id", "year", name="uq_leave_balance_employee_type_year"),
    )

    balance_id: Mapped[int] = mapped_column(
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

    year: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )

    allocated_days: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0")
    )

    carry_forward_days: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0")
    )

    taken_days: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False
    )

    modified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True,
        onupdate=utcnow
    )

    version: Mapped[int] = mapped_column(
        Integer,
        nullable=False
    )

    __mapper_args__ = {"version_id_col": version}

    leave_type: Mapped["LeaveType"] = relationship("LeaveType")

    def __repr__(self) -> str:
        return f"<LeaveBalance employee={self.employee_id} type={self.leave_type_id} {self.year}>"

    @property
    def remaining_days(self) -> Decimal:
        """Entitlement left before pending requests are considered."""
        return self.allocated_days + self.carry_forward_days - self.taken_days
