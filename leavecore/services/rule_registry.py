# LeaveCore - Rule Registry
# Leave type and TOIL rule configuration with validation and audit

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional, Any

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from leavecore.models.audit_log import AuditAction
from leavecore.models.employee import EMPLOYMENT_TYPES
from leavecore.models.leave_type import LeaveType
from leavecore.models.toil_rule import TOILRule, TriggerType, CreditType
from leavecore.services.audit import AuditService
from leavecore.services.employee_directory import EmployeeProfile
from leavecore.services.errors import ValidationError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _matches_filter(value: Optional[str], allowed: Optional[list]) -> bool:
    if not allowed:
        return True
    return value is not None and value in allowed


def resolve_eligibility(rule: TOILRule, profile: EmployeeProfile, event_date: date) -> bool:
    """
    Decide whether rule applies to an employee for an event on event_date.

    True only when the rule is active, event_date falls inside the rule's
    effective window, and the employee's department, grade and employment
    type each satisfy the corresponding filter (empty filter = anyone).

    This is the single eligibility check shared by allocation and credit
    issuance. It reads its arguments and nothing else.
    """
    if not rule.is_active:
        return False
    if not rule.covers_date(event_date):
        return False
    return (
        _matches_filter(profile.department, rule.eligible_departments)
        and _matches_filter(profile.grade, rule.eligible_grades)
        and _matches_filter(profile.employment_type, rule.eligible_employment_types)
    )


# Fields an update may touch. Codes are deliberately absent: they are
# immutable business keys.
LEAVE_TYPE_FIELDS = {
    "name", "description", "is_paid", "requires_approval", "requires_document",
    "max_days_per_year", "max_consecutive_days", "min_notice_days",
    "carry_forward_allowed", "max_carry_forward_days", "carry_forward_expiry_months",
    "sort_order",
}

TOIL_RULE_FIELDS = {
    "rule_name", "description", "trigger_type", "credit_type", "credit_days",
    "min_hours_required", "max_days_per_event", "max_days_per_month",
    "max_days_per_year", "expiry_days", "carry_forward_allowed",
    "max_carry_forward_days", "eligible_departments", "eligible_grades",
    "eligible_employment_types", "requires_approval", "effective_from",
    "effective_to",
}

_LEAVE_TYPE_NUMERIC = (
    "max_days_per_year", "max_consecutive_days", "min_notice_days",
    "max_carry_forward_days", "carry_forward_expiry_months",
)

_TOIL_RULE_NUMERIC = (
    "credit_days", "min_hours_required", "max_days_per_event",
    "max_days_per_month", "max_days_per_year", "expiry_days",
    "max_carry_forward_days",
)


class RuleRegistryService:
    """
    Configuration store for leave types and replacement-leave rules.

    Every write is validated and audited. Nothing is ever hard-deleted:
    deactivate_* flips is_active so historical requests, allocations and
    credits keep resolving the rows they reference.

    Usage:
        registry = RuleRegistryService(db, admin.employee_id, client_ip)
        rule = registry.create_toil_rule(
            rule_code="train1",              # stored as "TRAIN1"
            rule_name="Off-day training",
            trigger_type="TRAINING",
            credit_days=Decimal("1"),
            expiry_days=90,
            effective_from=date(2025, 1, 1),
        )
        registry.deactivate_toil_rule(rule.rule_id)

    Raises ValidationError naming the offending field, ConflictError on a
    duplicate code and NotFoundError on an unknown id.
    """

    def __init__(
        self,
        db: Session,
        current_user_id: int,
        ip_address: Optional[str] = None,
    ):
        self.db = db
        self.current_user_id = current_user_id
        self.audit = AuditService(db, current_user_id, ip_address)

    # =========================================================================
    # Leave types
    # =========================================================================

    def get_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError(
                f"Leave type {leave_type_id} not found",
                field="leave_type_id",
            )
        return leave_type

    def get_leave_type_by_code(self, code: str) -> Optional[LeaveType]:
        return self.db.execute(
            select(LeaveType).where(LeaveType.code == code.strip().upper())
        ).scalar_one_or_none()

    def list_leave_types(self, include_inactive: bool = False) -> list[LeaveType]:
        query = select(LeaveType)
        if not include_inactive:
            query = query.where(LeaveType.is_active == True)
        return list(
            self.db.execute(query.order_by(LeaveType.sort_order, LeaveType.code)).scalars()
        )

    def create_leave_type(self, code: str, name: str, **fields: Any) -> LeaveType:
        code = self._normalize_code(code, "code")
        self._require_text(name, "name")
        self._reject_unknown(fields, LEAVE_TYPE_FIELDS - {"name"})
        self._validate_non_negative(fields, _LEAVE_TYPE_NUMERIC)

        exists = self.db.execute(
            select(func.count()).select_from(LeaveType).where(LeaveType.code == code)
        ).scalar_one()
        if exists:
            raise ConflictError(
                f"Leave type code '{code}' already exists",
                field="code",
                details={"code": code},
            )

        leave_type = LeaveType(
            code=code,
            name=name.strip(),
            created_by=self.current_user_id,
            **fields,
        )
        self.db.add(leave_type)
        self.db.flush()

        self.audit.log_insert(leave_type, leave_type_code=code)
        logger.info("Leave type %s created by %s", code, self.current_user_id)
        return leave_type

    def update_leave_type(self, leave_type_id: int, **fields: Any) -> LeaveType:
        """
        Update a leave type. Only the provided fields change.

        Raises:
            ValidationError: If 'code' is passed (codes are immutable) or a
                numeric field is negative
        """
        leave_type = self.get_leave_type(leave_type_id)

        if "code" in fields:
            raise ValidationError("Leave type code cannot be changed", field="code")
        self._reject_unknown(fields, LEAVE_TYPE_FIELDS)
        if "name" in fields:
            self._require_text(fields["name"], "name")
        self._validate_non_negative(fields, _LEAVE_TYPE_NUMERIC)

        old_state = self.audit.capture_state(leave_type)
        for key, value in fields.items():
            setattr(leave_type, key, value)
        leave_type.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(leave_type, old_state, leave_type_code=leave_type.code)
        logger.info("Leave type %s updated by %s: %s", leave_type.code, self.current_user_id, sorted(fields))
        return leave_type

    def deactivate_leave_type(self, leave_type_id: int) -> LeaveType:
        leave_type = self.get_leave_type(leave_type_id)
        if not leave_type.is_active:
            return leave_type

        old_state = self.audit.capture_state(leave_type)
        leave_type.is_active = False
        leave_type.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(
            leave_type, old_state,
            action=AuditAction.DEACTIVATED,
            leave_type_code=leave_type.code,
        )
        logger.info("Leave type %s deactivated by %s", leave_type.code, self.current_user_id)
        return leave_type

    # =========================================================================
    # TOIL rules
    # =========================================================================

    def get_toil_rule(self, rule_id: int) -> TOILRule:
        rule = self.db.get(TOILRule, rule_id)
        if rule is None:
            raise NotFoundError(f"TOIL rule {rule_id} not found", field="rule_id")
        return rule

    def get_toil_rule_by_code(self, rule_code: str) -> Optional[TOILRule]:
        return self.db.execute(
            select(TOILRule).where(TOILRule.rule_code == rule_code.strip().upper())
        ).scalar_one_or_none()

    def list_toil_rules(
        self,
        trigger_type: Optional[str] = None,
        include_inactive: bool = False,
    ) -> list[TOILRule]:
        query = select(TOILRule)
        if trigger_type is not None:
            query = query.where(TOILRule.trigger_type == trigger_type)
        if not include_inactive:
            query = query.where(TOILRule.is_active == True)
        return list(self.db.execute(query.order_by(TOILRule.rule_code)).scalars())

    def list_applicable_rules(
        self,
        trigger_type: str,
        profile: EmployeeProfile,
        on_date: date,
    ) -> list[TOILRule]:
        """Active rules of trigger_type that the employee qualifies for on on_date."""
        return [
            rule for rule in self.list_toil_rules(trigger_type=trigger_type)
            if resolve_eligibility(rule, profile, on_date)
        ]

    def create_toil_rule(
        self,
        rule_code: str,
        rule_name: str,
        trigger_type: str,
        effective_from: date,
        **fields: Any,
    ) -> TOILRule:
        rule_code = self._normalize_code(rule_code, "rule_code")
        self._require_text(rule_name, "rule_name")
        self._reject_unknown(fields, TOIL_RULE_FIELDS - {"rule_name", "trigger_type", "effective_from"})

        values = {
            "credit_type": CreditType.FIXED.value,
            "credit_days": Decimal("1"),
            **fields,
            "trigger_type": trigger_type,
            "effective_from": effective_from,
        }
        self._validate_toil_rule(values)

        exists = self.db.execute(
            select(func.count()).select_from(TOILRule).where(TOILRule.rule_code == rule_code)
        ).scalar_one()
        if exists:
            raise ConflictError(
                f"TOIL rule code '{rule_code}' already exists",
                field="rule_code",
                details={"rule_code": rule_code},
            )

        rule = TOILRule(
            rule_code=rule_code,
            rule_name=rule_name.strip(),
            created_by=self.current_user_id,
            **values,
        )
        self.db.add(rule)
        self.db.flush()

        self.audit.log_insert(rule, rule_code=rule_code)
        logger.info("TOIL rule %s created by %s", rule_code, self.current_user_id)
        return rule

    def update_toil_rule(self, rule_id: int, **fields: Any) -> TOILRule:
        rule = self.get_toil_rule(rule_id)

        if "rule_code" in fields:
            raise ValidationError("Rule code cannot be changed", field="rule_code")
        self._reject_unknown(fields, TOIL_RULE_FIELDS)
        if "rule_name" in fields:
            self._require_text(fields["rule_name"], "rule_name")

        # Validate the merged result so cross-field checks see both sides
        merged = {key: getattr(rule, key) for key in TOIL_RULE_FIELDS}
        merged.update(fields)
        self._validate_toil_rule(merged)

        old_state = self.audit.capture_state(rule)
        for key, value in fields.items():
            setattr(rule, key, value)
        rule.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(rule, old_state, rule_code=rule.rule_code)
        logger.info("TOIL rule %s updated by %s: %s", rule.rule_code, self.current_user_id, sorted(fields))
        return rule

    def deactivate_toil_rule(self, rule_id: int) -> TOILRule:
        rule = self.get_toil_rule(rule_id)
        if not rule.is_active:
            return rule

        old_state = self.audit.capture_state(rule)
        rule.is_active = False
        rule.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(rule, old_state, action=AuditAction.DEACTIVATED, rule_code=rule.rule_code)
        logger.info("TOIL rule %s deactivated by %s", rule.rule_code, self.current_user_id)
        return rule

    # =========================================================================
    # Validation helpers
    # =========================================================================

    def _normalize_code(self, code: Optional[str], field: str) -> str:
        if code is None or not code.strip():
            raise ValidationError(f"{field} is required", field=field)
        return code.strip().upper()

    def _require_text(self, value: Optional[str], field: str) -> None:
        if value is None or not str(value).strip():
            raise ValidationError(f"{field} is required", field=field)

    def _reject_unknown(self, fields: dict[str, Any], allowed: set[str]) -> None:
        for key in fields:
            if key not in allowed:
                raise ValidationError(f"Unknown or read-only field '{key}'", field=key)

    def _validate_non_negative(self, fields: dict[str, Any], names: tuple[str, ...]) -> None:
        for name in names:
            value = fields.get(name)
            if value is None:
                continue
            try:
                number = Decimal(str(value))
            except InvalidOperation:
                raise ValidationError(f"{name} must be a number", field=name)
            if number < 0:
                raise ValidationError(f"{name} cannot be negative", field=name)

    def _validate_toil_rule(self, values: dict[str, Any]) -> None:
        trigger_type = values.get("trigger_type")
        if trigger_type not in {t.value for t in TriggerType}:
            raise ValidationError(f"Unknown trigger type '{trigger_type}'", field="trigger_type")

        credit_type = values.get("credit_type")
        if credit_type not in {c.value for c in CreditType}:
            raise ValidationError(f"Unknown credit type '{credit_type}'", field="credit_type")

        if values.get("credit_days") is None:
            raise ValidationError("credit_days is required", field="credit_days")

        self._validate_non_negative(values, _TOIL_RULE_NUMERIC)

        if credit_type == CreditType.RATIO.value:
            min_hours = values.get("min_hours_required")
            if min_hours is None or Decimal(str(min_hours)) <= 0:
                raise ValidationError(
                    "RATIO rules need min_hours_required greater than zero",
                    field="min_hours_required",
                )

        effective_from = values.get("effective_from")
        if effective_from is None:
            raise ValidationError("effective_from is required", field="effective_from")
        effective_to = values.get("effective_to")
        if effective_to is not None and effective_to < effective_from:
            raise ValidationError(
                "effective_to cannot be before effective_from",
                field="effective_to",
            )

        for name in ("eligible_departments", "eligible_grades", "eligible_employment_types"):
            value = values.get(name)
            if value is not None and not isinstance(value, list):
                raise ValidationError(f"{name} must be a list", field=name)

        for value in values.get("eligible_employment_types") or []:
            if value not in EMPLOYMENT_TYPES:
                raise ValidationError(
                    f"Unknown employment type '{value}'",
                    field="eligible_employment_types",
                )
