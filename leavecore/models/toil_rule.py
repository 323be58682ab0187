# LeaveCore - Replacement Leave (TOIL) Rule Model

import enum
from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy import String, Boolean, Integer, Date, Numeric, Text, JSON, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, AuditMixin


class TriggerType(str, enum.Enum):
    TRAINING = "TRAINING"
    PUBLIC_HOLIDAY_WORK = "PUBLIC_HOLIDAY_WORK"
    REST_DAY_WORK = "REST_DAY_WORK"
    OVERTIME = "OVERTIME"
    OFFICIAL_DUTY = "OFFICIAL_DUTY"
    CUSTOM = "CUSTOM"


class CreditType(str, enum.Enum):
    FIXED = "FIXED"
    RATIO = "RATIO"


class TOILRule(AuditMixin, Base):
    """
    Configurable rule for granting Replacement Leave (Time-Off-In-Lieu).

    Credit calculation:
        - FIXED: credit_days per qualifying event
        - RATIO: credit_days scaled by hours_attended / min_hours_required,
          never more than credit_days

    Caps (NULL = no limit) bound what a single employee can earn under
    this rule per event, per calendar month and per calendar year.

    Eligibility filters are JSON lists; NULL or [] means everyone
    qualifies on that attribute. A rule applies to an event only when it
    is active and the event date falls inside effective_from..effective_to.
    """

    __tablename__ = "toil_rules"

    __table_args__ = (
        Index("ix_toil_rules_trigger_active", "trigger_type", "is_active"),
    )

    rule_id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        autoincrement=True
    )

    rule_code: Mapped[str] = mapped_column(
        String(50),
        unique=True,
        nullable=False,
        index=True
    )

    rule_name: Mapped[str] = mapped_column(
        String(200),
        nullable=False
    )

    description: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True
    )

    # What event grants replacement leave
    trigger_type: Mapped[str] = mapped_column(
        String(30),
        nullable=False
    )

    # Credit calculation
    credit_type: Mapped[str] = mapped_column(
        String(10),
        nullable=False,
        default=CreditType.FIXED.value
    )

    credit_days: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("1")
    )

    min_hours_required: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    # Caps
    max_days_per_event: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    max_days_per_month: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    max_days_per_year: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    # Expiry (NULL = credits never expire)
    expiry_days: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True
    )

    carry_forward_allowed: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False
    )

    max_carry_forward_days: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        nullable=True
    )

    # Eligibility filters
    eligible_departments: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True
    )

    eligible_grades: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True
    )

    eligible_employment_types: Mapped[Optional[list]] = mapped_column(
        JSON,
        nullable=True
    )

    requires_approval: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False
    )

    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False
    )

    effective_to: Mapped[Optional[date]] = mapped_column(
        Date,
        nullable=True
    )

    def __repr__(self) -> str:
        return f"<TOILRule {self.rule_code} {self.credit_type} {self.credit_days}d>"

    @property
    def is_ratio(self) -> bool:
        return self.credit_type == CreditType.RATIO.value

    def covers_date(self, on_date: date) -> bool:
        """Is on_date inside the effective window?"""
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to


# Default rules to seed on initial setup
DEFAULT_TOIL_RULES = [
    {
        "rule_code": "TRAINING_OFFDAY",
        "rule_name": "Training on Off-Day",
        "description": "Replacement leave for attending mandatory training on a rest day or public holiday",
        "trigger_type": TriggerType.TRAINING.value,
        "credit_type": CreditType.FIXED.value,
        "credit_days": Decimal("1"),
        "expiry_days": 90,
    },
    {
        "rule_code": "PH_WORK",
        "rule_name": "Public Holiday Work",
        "description": "Replacement leave for working on a gazetted public holiday",
        "trigger_type": TriggerType.PUBLIC_HOLIDAY_WORK.value,
        "credit_type": CreditType.FIXED.value,
        "credit_days": Decimal("1"),
        "expiry_days": 90,
    },
    {
        "rule_code": "REST_DAY_WORK",
        "rule_name": "Rest Day Work",
        "description": "Replacement leave for working on a regular rest day",
        "trigger_type": TriggerType.REST_DAY_WORK.value,
        "credit_type": CreditType.FIXED.value,
        "credit_days": Decimal("1"),
        "expiry_days": 60,
    },
]
