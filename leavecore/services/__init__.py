# LeaveCore - Services
# Business logic layer

from .errors import (
    LeaveCoreError,
    ValidationError,
    InvalidStateError,
    ConflictError,
    NotFoundError,
    AuthorizationError,
)
from .audit import AuditService, AuditQuery
from .employee_directory import EmployeeDirectory, EmployeeProfile
from .rule_registry import RuleRegistryService, resolve_eligibility
from .calendar import WorkingCalendar
from .balance import BalanceLedger, RLSummary
from .credit_issuer import CreditIssuer, CreditResult, compute_ratio_days
from .credit_claims import CreditClaimService
from .training import TrainingService, AllocationResult, CompletionResult
from .leave_request import LeaveRequestService
from .escalation import EscalationMonitor, Escalation

__all__ = [
    "LeaveCoreError",
    "ValidationError",
    "InvalidStateError",
    "ConflictError",
    "NotFoundError",
    "AuthorizationError",
    "AuditService",
    "AuditQuery",
    "EmployeeDirectory",
    "EmployeeProfile",
    "RuleRegistryService",
    "resolve_eligibility",
    "WorkingCalendar",
    "BalanceLedger",
    "RLSummary",
    "CreditIssuer",
    "CreditResult",
    "compute_ratio_days",
    "CreditClaimService",
    "TrainingService",
    "AllocationResult",
    "CompletionResult",
    "LeaveRequestService",
    "EscalationMonitor",
    "Escalation",
]
