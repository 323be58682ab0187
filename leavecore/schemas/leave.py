# LeaveCore - Leave Schemas
# Pydantic request/response models for leave requests and balances

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class LeaveApply(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leave_type_id: int
    start_date: date
    end_date: date
    reason: Optional[str] = Field(None, max_length=2000)
    half_day_start: bool = False
    half_day_end: bool = False
    document_reference: Optional[str] = Field(None, max_length=500)
    # Admins may apply on behalf of another employee
    employee_id: Optional[int] = None


class LeaveDecision(BaseModel):
    notes: Optional[str] = Field(None, max_length=2000)


class LeaveOverride(BaseModel):
    action: Literal["approve", "reject"]
    justification: str = ""


class LeaveRequestRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    request_id: int
    employee_id: int
    leave_type_id: int
    start_date: date
    end_date: date
    half_day_start: bool
    half_day_end: bool
    days_requested: Decimal
    reason: Optional[str] = None
    document_reference: Optional[str] = None
    status: str
    current_approver_id: Optional[int] = None
    submitted_at: datetime
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = None
    is_override: bool


class EscalationRead(BaseModel):
    request: LeaveRequestRead
    pending_days: int


class BalanceRead(BaseModel):
    leave_type_id: int
    code: str
    name: str
    year: int
    # None when the leave type has no entitlement cap
    available_days: Optional[Decimal] = None


class CreditExpiryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    credit_id: int
    days_remaining: Decimal
    expires_at: datetime


class RLSummaryRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    employee_id: int
    earned: Decimal
    used: Decimal
    expired: Decimal
    pending: Decimal
    available: Decimal
    claimed: Decimal
    upcoming_expiries: list[CreditExpiryRead] = []


class BalanceAdjust(BaseModel):
    model_config = ConfigDict(extra="forbid")

    employee_id: int
    leave_type_id: int
    year: int
    allocated_days: Optional[Decimal] = None
    carry_forward_days: Optional[Decimal] = None


class LeaveBalanceRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    balance_id: int
    employee_id: int
    leave_type_id: int
    year: int
    allocated_days: Decimal
    carry_forward_days: Decimal
    taken_days: Decimal
    remaining_days: Decimal


class BulkAllocate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    leave_type_id: int
    year: int
    days: Decimal
    # Only employees of this department; everyone when omitted
    department: Optional[str] = None


class BulkAllocateResponse(BaseModel):
    created: int
    updated: int


class RLClaimCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    trigger_type: str
    trigger_date: date
    trigger_description: str = Field(..., max_length=2000)
    hours_worked: Optional[Decimal] = Field(None, ge=0)
    rule_id: Optional[int] = None
    claim_reference: Optional[str] = Field(None, max_length=100)
    # Admins may claim on behalf of another employee
    employee_id: Optional[int] = None


class RLClaimReject(BaseModel):
    reason: str = ""


class RLCreditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    credit_id: int
    employee_id: int
    source_allocation_id: Optional[int] = None
    claim_reference: Optional[str] = None
    rule_id: int
    trigger_type: str
    trigger_date: date
    trigger_description: Optional[str] = None
    hours_worked: Optional[Decimal] = None
    days_credited: Decimal
    days_used: Decimal
    calculation_notes: Optional[str] = None
    status: str
    issued_at: datetime
    expires_at: Optional[datetime] = None
    issued_by: int
    decided_by: Optional[int] = None
    decided_at: Optional[datetime] = None
    decision_notes: Optional[str] = None
