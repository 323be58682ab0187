# LeaveCore - Replacement Leave Credit Model

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, TYPE_CHECKING

from sqlalchemy import (
    String, Integer, DateTime, Date, Numeric, Text,
    ForeignKey, Index, CheckConstraint, text
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, utcnow

if TYPE_CHECKING:
    from .employee import Employee
    from .toil_rule import TOILRule


class CreditStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class RLCredit(Base):
    """
    Replacement leave earned by one employee.

    A credit comes from one of two sources:
        - a completed training allocation (source_allocation_id), issued
          APPROVED by the credit issuer
        - a claim for other qualifying work such as a public holiday shift
          (claim_reference), PENDING until HR decides when the rule
          requires approval

    source_allocation_id is UNIQUE: it is the storage-level guarantee
    that an allocation is credited at most once, even when two
    completion confirmations race each other. (employee_id,
    claim_reference) is unique for the same reason on the claim side.

    Only APPROVED credits count toward the available balance. days_used
    grows as approved RL leave is consumed against the credit; it never
    exceeds days_credited. Credits with expires_at in the past no longer
    count either.
    """

    __tablename__ = "rl_credits"

    __table_args__ = (
        Index("ix_rl_credits_employee_expiry", "employee_id", "expires_at"),
        Index("ix_rl_credits_rule_trigger_date", "rule_id", "trigger_date"),
        # Filtered so SQL Server accepts many claim rows without an allocation
        Index(
            "uq_rl_credits_source_allocation", "source_allocation_id",
            unique=True,
            mssql_where=text("source_allocation_id IS NOT NULL"),
        ),
        Index(
            "uq_rl_credits_employee_claim", "employee_id", "claim_reference",
            unique=True,
            mssql_where=text("claim_reference IS NOT NULL"),
        ),
        CheckConstraint("days_used <= days_credited", name="ck_rl_credits_days_used"),
        CheckConstraint(
            "source_allocation_id IS NOT NULL OR claim_reference IS NOT NULL",
            name="ck_rl_credits_source",
        ),
    )

    credit_id: Mapped[int] = mapped_column(
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

    source_allocation_id: Mapped[Optional[int]] = mapped_column(
        Integer,
        ForeignKey("training_allocations.allocation_id"),
        nullable=True
    )

    claim_reference: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True
    )

    rule_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("toil_rules.rule_id"),
        nullable=False
    )

    trigger_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False
    )

    # Date of the qualifying event; caps are counted by this date
    trigger_date: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    trigger_description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    hours_worked: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    days_credited: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False
    )

    days_used: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("0")
    )

    calculation_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=CreditStatus.APPROVED.value,
        nullable=False
    )

    issued_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=utcnow,
        nullable=False
    )

    expires_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        nullable=True
    )

    issued_by: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("employees.employee_id"),
        nullable=False
    )

    # Claim decision
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

    rule: Mapped["TOILRule"] = relationship("TOILRule")

    def __repr__(self) -> str:
        return f"<RLCredit {self.credit_id} employee={self.employee_id} {self.days_credited}d {self.status}>"

    @property
    def is_approved(self) -> bool:
        return self.status == CreditStatus.APPROVED.value

    @property
    def is_pending(self) -> bool:
        return self.status == CreditStatus.PENDING.value

    @property
    def days_remaining(self) -> Decimal:
        return self.days_credited - (self.days_used or Decimal("0"))

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now

    def is_available(self, now: datetime) -> bool:
        return self.is_approved and not self.is_expired(now) and self.days_remaining > 0
