# LeaveCore - Employee Model

from datetime import datetime
from typing import Optional, List

from sqlalchemy import String, Boolean, Integer, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow


EMPLOYEE_ROLES = ("employee", "manager", "admin")
EMPLOYMENT_TYPES = ("PERMANENT", "CONTRACT", "PROBATION")


class Employee(Base):
    """
    Employee directory record.

    The leave engine only reads from this table: identity and the
    department/grade/employment-type attributes used for rule
    eligibility are maintained by the HR master-data system.

    Roles:
        - 'employee': Can apply for and cancel their own leave
        - 'manager': Can also approve/reject requests routed to them
        - 'admin': HR admin; configures rules, runs training, overrides
    """

    __tablename__ = "employees"

    employee_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    # Business identifier from the HR master (e.g., "EMP-0042")
    employee_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True
    )

    first_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False
    )

    last_name: Mapped[str] = mapped_column(
        String(100),
        nullable=False
    )

    email: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True
    )

    # Eligibility attributes
    department: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True
    )

    grade: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True
    )

    employment_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PERMANENT"
    )

    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="employee"
    )

    # Default approver for leave requests
    manager_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=True
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False
    )

    # Relationships
    manager: Mapped[Optional["Employee"]] = relationship(
        "Employee",
        remote_side=[employee_id],
        back_populates="direct_reports"
    )

    direct_reports: Mapped[List["Employee"]] = relationship(
        "Employee",
        back_populates="manager"
    )

    def __repr__(self) -> str:
        return f"<Employee {self.employee_code} ({self.role})>"

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_manager(self) -> bool:
        """Managers and admins can act as approvers."""
        return self.role in ("manager", "admin")
