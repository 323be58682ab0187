# LeaveCore - Training Schemas
# Pydantic request/response models for courses, events and allocations

from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class CourseCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: str = Field(..., max_length=50)
    title: str = Field(..., max_length=200)
    category: Optional[str] = None
    duration_hours: Optional[Decimal] = None
    is_mandatory: bool = False
    rl_eligible: bool = True
    rl_rule_id: Optional[int] = None


class CourseUpdate(BaseModel):
    """Partial update. Unset fields are left alone; code is not accepted."""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, max_length=200)
    category: Optional[str] = None
    duration_hours: Optional[Decimal] = None
    is_mandatory: Optional[bool] = None
    rl_eligible: Optional[bool] = None
    rl_rule_id: Optional[int] = None


class CourseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    course_id: int
    code: str
    title: str
    category: Optional[str] = None
    duration_hours: Optional[Decimal] = None
    is_mandatory: bool
    rl_eligible: bool
    rl_rule_id: Optional[int] = None
    is_active: bool


class EventCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    course_id: int
    event_date: date
    event_end_date: Optional[date] = None
    day_type: Literal["WORKING_DAY", "OFF_DAY", "REST_DAY", "PUBLIC_HOLIDAY"]
    # Defaults to the course setting when omitted
    rl_eligible: Optional[bool] = None
    location: Optional[str] = Field(None, max_length=200)
    max_participants: Optional[int] = None
    notes: Optional[str] = None


class EventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: int
    course_id: int
    event_date: date
    event_end_date: Optional[date] = None
    location: Optional[str] = None
    day_type: str
    rl_eligible: bool
    status: str
    max_participants: Optional[int] = None
    notes: Optional[str] = None


class AllocateRequest(BaseModel):
    employee_ids: list[int] = Field(..., min_length=1)


class AllocationRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    allocation_id: int
    event_id: int
    employee_id: int
    allocated_by: int
    allocated_at: datetime
    rl_eligible: bool
    attendance_status: str
    hours_attended: Optional[Decimal] = None
    attendance_marked_by: Optional[int] = None
    attendance_marked_at: Optional[datetime] = None
    completion_status: str
    completion_confirmed_by: Optional[int] = None
    completion_confirmed_at: Optional[datetime] = None
    completion_notes: Optional[str] = None
    rl_credit_id: Optional[int] = None
    rl_credited_at: Optional[datetime] = None


class AllocateResponse(BaseModel):
    allocated: int
    skipped: int
    skipped_ids: list[int]
    unknown_ids: list[int]
    allocations: list[AllocationRead]


class AttendanceMark(BaseModel):
    status: Literal["ATTENDED", "NO_SHOW", "PARTIAL"]
    hours_attended: Optional[Decimal] = Field(None, ge=0)


class CompletionConfirm(BaseModel):
    status: Literal["COMPLETED", "INCOMPLETE"]
    notes: Optional[str] = None


class CreditResultRead(BaseModel):
    credited: bool
    days: Decimal
    credit_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    reason: Optional[str] = None


class CompletionResponse(BaseModel):
    allocation: AllocationRead
    credit: Optional[CreditResultRead] = None
