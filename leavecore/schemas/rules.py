# LeaveCore - Rule Registry Schemas
# Pydantic request/response models for leave types and TOIL rules

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class LeaveTypeCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., max_length=20)
    name: str = Field(..., max_length=100)
    description: Optional[str] = None
    is_paid: bool = True
    requires_approval: bool = True
    requires_document: bool = False
    max_days_per_year: Optional[Decimal] = None
    max_consecutive_days: Optional[int] = None
    min_notice_days: int = 0
    carry_forward_allowed: bool = False
    max_carry_forward_days: Optional[Decimal] = None
    carry_forward_expiry_months: Optional[int] = None
    sort_order: int = 0


class LeaveTypeUpdate(BaseModel):
    """Partial update. Unset fields are left alone; code is not accepted."""
    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = Field(None, max_length=100)
    description: Optional[str] = None
    is_paid: Optional[bool] = None
    requires_approval: Optional[bool] = None
    requires_document: Optional[bool] = None
    max_days_per_year: Optional[Decimal] = None
    max_consecutive_days: Optional[int] = None
    min_notice_days: Optional[int] = None
    carry_forward_allowed: Optional[bool] = None
    max_carry_forward_days: Optional[Decimal] = None
    carry_forward_expiry_months: Optional[int] = None
    sort_order: Optional[int] = None


class LeaveTypeRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    leave_type_id: int
    code: str
    name: str
    description: Optional[str] = None
    is_paid: bool
    requires_approval: bool
    requires_document: bool
    max_days_per_year: Optional[Decimal] = None
    max_consecutive_days: Optional[int] = None
    min_notice_days: int
    carry_forward_allowed: bool
    max_carry_forward_days: Optional[Decimal] = None
    carry_forward_expiry_months: Optional[int] = None
    sort_order: int
    is_active: bool


class TOILRuleCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rule_code: str = Field(..., max_length=50)
    rule_name: str = Field(..., max_length=200)
    description: Optional[str] = None
    trigger_type: str
    credit_type: str = "FIXED"
    credit_days: Decimal = Decimal("1")
    min_hours_required: Optional[Decimal] = None
    max_days_per_event: Optional[Decimal] = None
    max_days_per_month: Optional[Decimal] = None
    max_days_per_year: Optional[Decimal] = None
    expiry_days: Optional[int] = None
    carry_forward_allowed: bool = False
    max_carry_forward_days: Optional[Decimal] = None
    eligible_departments: Optional[list[str]] = None
    eligible_grades: Optional[list[str]] = None
    eligible_employment_types: Optional[list[str]] = None
    requires_approval: bool = True
    effective_from: date
    effective_to: Optional[date] = None


class TOILRuleUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rule_name: Optional[str] = Field(None, max_length=200)
    description: Optional[str] = None
    trigger_type: Optional[str] = None
    credit_type: Optional[str] = None
    credit_days: Optional[Decimal] = None
    min_hours_required: Optional[Decimal] = None
    max_days_per_event: Optional[Decimal] = None
    max_days_per_month: Optional[Decimal] = None
    max_days_per_year: Optional[Decimal] = None
    expiry_days: Optional[int] = None
    carry_forward_allowed: Optional[bool] = None
    max_carry_forward_days: Optional[Decimal] = None
    eligible_departments: Optional[list[str]] = None
    eligible_grades: Optional[list[str]] = None
    eligible_employment_types: Optional[list[str]] = None
    requires_approval: Optional[bool] = None
    effective_from: Optional[date] = None
    effective_to: Optional[date] = None


class TOILRuleRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: int
    rule_code: str
    rule_name: str
    description: Optional[str] = None
    trigger_type: str
    credit_type: str
    credit_days: Decimal
    min_hours_required: Optional[Decimal] = None
    max_days_per_event: Optional[Decimal] = None
    max_days_per_month: Optional[Decimal] = None
    max_days_per_year: Optional[Decimal] = None
    expiry_days: Optional[int] = None
    carry_forward_allowed: bool
    max_carry_forward_days: Optional[Decimal] = None
    eligible_departments: Optional[list[str]] = None
    eligible_grades: Optional[list[str]] = None
    eligible_employment_types: Optional[list[str]] = None
    requires_approval: bool
    is_active: bool
    effective_from: date
    effective_to: Optional[date] = None
    created_at: datetime
