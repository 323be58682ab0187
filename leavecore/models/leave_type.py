# LeaveCore - Leave Type Model

from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, Integer, Numeric, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, AuditMixin


class LeaveType(AuditMixin, Base):
    """
    Leave type master (Annual, Medical, Replacement, ...).

    The code is the stable business key: it is unique across active and
    inactive rows and cannot be changed after creation. Types are never
    hard-deleted; deactivating one hides it from new applications while
    historical requests keep resolving it.

    max_days_per_year:
        - a number: yearly entitlement seeded into the employee's balance
        - NULL: no fixed entitlement, balance is not checked
        - 0 for the replacement-leave type, whose balance comes from
          RL credits instead
    """

    __tablename__ = "leave_types"

    leave_type_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    # Short code (e.g., "AL", "MC", "RL")
    code: Mapped[str] = mapped_column(
        String(20),
        unique=True,
        nullable=False,
        index=True
    )

    name: Mapped[str] = mapped_column(
        String(100),
        nullable=False
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    is_paid: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    requires_approval: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    requires_document: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    max_days_per_year: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    max_consecutive_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    min_notice_days: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False
    )

    # Carry forward
    carry_forward_allowed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    max_carry_forward_days: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    carry_forward_expiry_months: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    # Display order in dropdowns/lists
    sort_order: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False
    )

    # Soft delete - inactive types can't be applied for
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    def __repr__(self) -> str:
        status = "" if self.is_active else " [INACTIVE]"
        return f"<LeaveType {self.code}{status}>"

    @property
    def has_entitlement_cap(self) -> bool:
        return self.max_days_per_year is not None


# Default leave types to seed on initial setup
DEFAULT_LEAVE_TYPES = [
    {"code": "AL", "name": "Annual Leave", "max_days_per_year": Decimal("14"), "carry_forward_allowed": True, "max_carry_forward_days": Decimal("5"), "min_notice_days": 3, "sort_order": 1},
    {"code": "MC", "name": "Medical Leave", "max_days_per_year": Decimal("14"), "requires_document": True, "sort_order": 2},
    {"code": "EL", "name": "Emergency Leave", "max_days_per_year": Decimal("3"), "sort_order": 3},
    {"code": "UL", "name": "Unpaid Leave", "max_days_per_year": None, "is_paid": False, "sort_order": 20},
    {"code": "RL", "name": "Replacement Leave", "description": "Time-Off-in-Lieu earned for work or training on off days, rest days and public holidays", "max_days_per_year": Decimal("0"), "carry_forward_allowed": True, "sort_order": 50},
]
