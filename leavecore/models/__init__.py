# LeaveCore - SQLAlchemy Models

from .base import Base, TimestampMixin, AuditMixin, utcnow
from .employee import Employee
from .leave_type import LeaveType
from .toil_rule import TOILRule, TriggerType, CreditType
from .training import (
    TrainingCourse,
    TrainingEvent,
    Allocation,
    DayType,
    EventStatus,
    AttendanceStatus,
    CompletionStatus,
)
from .leave_request import LeaveRequest, LeaveStatus
from .leave_balance import LeaveBalance
from .rl_credit import RLCredit, CreditStatus
from .audit_log import AuditLog, AuditAction, ImmutableAuditLogError

__all__ = [
    "Base",
    "TimestampMixin",
    "AuditMixin",
    "utcnow",
    "Employee",
    "LeaveType",
    "TOILRule",
    "TriggerType",
    "CreditType",
    "TrainingCourse",
    "TrainingEvent",
    "Allocation",
    "DayType",
    "EventStatus",
    "AttendanceStatus",
    "CompletionStatus",
    "LeaveRequest",
    "LeaveStatus",
    "LeaveBalance",
    "RLCredit",
    "CreditStatus",
    "AuditLog",
    "AuditAction",
    "ImmutableAuditLogError",
]
