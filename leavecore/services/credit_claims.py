# LeaveCore - Replacement Leave Claims
# Employee and HR claims for RL earned outside training, with HR approval

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leavecore.models.audit_log import AuditAction
from leavecore.models.base import utcnow
from leavecore.models.employee import Employee
from leavecore.models.rl_credit import RLCredit, CreditStatus
from leavecore.models.toil_rule import TOILRule, TriggerType
from leavecore.models.training import AttendanceStatus
from leavecore.services.audit import AuditService
from leavecore.services.credit_issuer import CreditIssuer, compute_ratio_days, CAP_REACHED
from leavecore.services.employee_directory import EmployeeDirectory, EmployeeProfile
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    ConflictError,
    NotFoundError,
    AuthorizationError,
    flush_or_invalid_state,
)
from leavecore.services.rule_registry import RuleRegistryService, resolve_eligibility

logger = logging.getLogger(__name__)

# Training credit is issued from completed allocations, never claimed
CLAIMABLE_TRIGGERS = {t.value for t in TriggerType} - {TriggerType.TRAINING.value}


class CreditClaimService:
    """
    Claims for replacement leave earned by work outside training.

        PENDING -> APPROVED | REJECTED

    A claim names the trigger (public holiday work, a rest-day shift,
    overtime, ...) and its date. The applicable TOIL rule is resolved the
    same way the credit issuer resolves it for training, and the rule's
    caps apply to claims exactly as they do to issued credit.

    A claim starts APPROVED when its rule doesn't require approval, or
    when an admin files it for someone else. Everything else waits for
    an admin decision. Only approved credit is spendable, and its expiry
    clock starts at approval.

    Usage:
        claims = CreditClaimService(db, employee, client_ip)
        credit = claims.submit("PUBLIC_HOLIDAY_WORK", date(2030, 2, 1),
                               "Covered the CNY front desk")
        CreditClaimService(db, hr_admin).approve(credit.credit_id)
    """

    def __init__(
        self,
        db: Session,
        actor: Employee,
        ip_address: Optional[str] = None,
    ):
        self.db = db
        self.actor = actor
        self.audit = AuditService(db, actor.employee_id, ip_address)
        self.directory = EmployeeDirectory(db)
        self.registry = RuleRegistryService(db, actor.employee_id, ip_address)
        self.issuer = CreditIssuer(db, actor.employee_id, audit=self.audit)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_claim(self, credit_id: int) -> RLCredit:
        credit = self.db.get(RLCredit, credit_id)
        if credit is None or credit.claim_reference is None:
            raise NotFoundError(f"RL claim {credit_id} not found", field="credit_id")
        return credit

    def list_claims(
        self,
        employee_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> list[RLCredit]:
        query = select(RLCredit).where(RLCredit.claim_reference.is_not(None))
        if employee_id is not None:
            query = query.where(RLCredit.employee_id == employee_id)
        if status is not None:
            query = query.where(RLCredit.status == status)
        return list(
            self.db.execute(query.order_by(RLCredit.trigger_date.desc(), RLCredit.credit_id.desc())).scalars()
        )

    # =========================================================================
    # Submit
    # =========================================================================

    def submit(
        self,
        trigger_type: str,
        trigger_date: date,
        trigger_description: str,
        hours_worked: Optional[Decimal] = None,
        rule_id: Optional[int] = None,
        claim_reference: Optional[str] = None,
        employee_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> RLCredit:
        """
        File a claim.

        Args:
            trigger_type: What the work was; any trigger except TRAINING
            trigger_date: Day the work happened (not in the future)
            trigger_description: What was worked, for the approver
            hours_worked: Hours on the day; required by RATIO rules
            rule_id: Pin a specific rule; otherwise the newest applicable
                rule of trigger_type is used
            claim_reference: Caller's reference, unique per employee;
                defaults to "<trigger_type>:<trigger_date>"
            employee_id: Claim for someone else (admins only)

        Raises:
            ValidationError: Unknown trigger, missing description, a
                future date, no applicable rule, nothing earned, or the
                rule's cap already reached
            ConflictError: The employee already has a claim with this reference
            AuthorizationError: A non-admin claims for another employee
        """
        now = now or utcnow()

        if trigger_type not in CLAIMABLE_TRIGGERS:
            raise ValidationError(
                f"Trigger type must be one of {sorted(CLAIMABLE_TRIGGERS)}",
                field="trigger_type",
            )
        if not trigger_description or not trigger_description.strip():
            raise ValidationError("trigger_description is required", field="trigger_description")
        if trigger_date > now.date():
            raise ValidationError("Replacement leave can't be claimed for future work", field="trigger_date")
        if hours_worked is not None and hours_worked < 0:
            raise ValidationError("hours_worked cannot be negative", field="hours_worked")

        employee = self._resolve_claimant(employee_id)
        reference = (claim_reference or f"{trigger_type}:{trigger_date.isoformat()}").strip()
        duplicate = self.db.execute(
            select(RLCredit.credit_id).where(
                RLCredit.employee_id == employee.employee_id,
                RLCredit.claim_reference == reference,
            )
        ).scalar_one_or_none()
        if duplicate is not None:
            raise ConflictError(
                f"Employee {employee.employee_id} already claimed '{reference}'",
                field="claim_reference",
                details={"credit_id": duplicate},
            )

        profile = EmployeeProfile.from_employee(employee)
        rule = self._resolve_rule(trigger_type, trigger_date, profile, rule_id)

        earned = self._earned_days(rule, hours_worked)
        days, cap_notes = self.issuer.apply_caps(earned, employee.employee_id, rule, trigger_date)
        if days <= 0:
            raise ValidationError(
                f"{rule.rule_code} cap already reached for {trigger_date}",
                field="trigger_date",
                details={"reason": CAP_REACHED, "rule_code": rule.rule_code},
            )

        calculation = f"{rule.credit_type} {rule.rule_code}: earned {earned}"
        if cap_notes:
            calculation += f", limited to {days} by " + " and ".join(cap_notes)

        credit = RLCredit(
            employee_id=employee.employee_id,
            claim_reference=reference,
            rule_id=rule.rule_id,
            trigger_type=trigger_type,
            trigger_date=trigger_date,
            trigger_description=trigger_description.strip(),
            hours_worked=hours_worked,
            days_credited=days,
            days_used=Decimal("0"),
            calculation_notes=calculation,
            status=CreditStatus.PENDING.value,
            issued_at=now,
            issued_by=self.actor.employee_id,
        )
        approve_now = not rule.requires_approval or (
            self.actor.is_admin and employee.employee_id != self.actor.employee_id
        )
        if approve_now:
            self._mark_approved(credit, rule, notes="Approved on submission", now=now)

        self.db.add(credit)
        flush_or_invalid_state(
            self.db,
            f"Claim '{reference}' for employee {employee.employee_id} was filed by another transaction",
            details={"employee_id": employee.employee_id, "claim_reference": reference},
        )

        self.audit.log(
            AuditAction.CLAIMED,
            credit,
            notes=calculation,
            target_employee_id=employee.employee_id,
            rule_code=rule.rule_code,
        )
        if approve_now:
            self.audit.log(
                AuditAction.RL_CREDITED,
                credit,
                notes=credit.decision_notes,
                target_employee_id=employee.employee_id,
                rule_code=rule.rule_code,
            )

        logger.info(
            "RL claim %s (%s day(s), %s) filed for employee %s by %s",
            credit.credit_id, days, credit.status, employee.employee_id, self.actor.employee_id,
        )
        return credit

    # =========================================================================
    # Decide
    # =========================================================================

    def approve(
        self,
        credit_id: int,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> RLCredit:
        credit = self._require_decidable(credit_id)
        self._mark_approved(credit, credit.rule, notes=notes, now=now or utcnow())
        return self._record_decision(credit, AuditAction.APPROVED)

    def reject(
        self,
        credit_id: int,
        reason: str,
        now: Optional[datetime] = None,
    ) -> RLCredit:
        if not reason or not reason.strip():
            raise ValidationError("A rejection reason is required", field="reason")

        credit = self._require_decidable(credit_id)
        credit.status = CreditStatus.REJECTED.value
        credit.decided_by = self.actor.employee_id
        credit.decided_at = now or utcnow()
        credit.decision_notes = reason.strip()
        return self._record_decision(credit, AuditAction.REJECTED)

    # =========================================================================
    # Internals
    # =========================================================================

    def _resolve_claimant(self, employee_id: Optional[int]) -> Employee:
        if employee_id is None or employee_id == self.actor.employee_id:
            return self.actor
        if not self.actor.is_admin:
            raise AuthorizationError("Only admins can claim on behalf of another employee", field="employee_id")
        return self.directory.get_employee(employee_id)

    def _resolve_rule(
        self,
        trigger_type: str,
        trigger_date: date,
        profile: EmployeeProfile,
        rule_id: Optional[int],
    ) -> TOILRule:
        if rule_id is not None:
            rule = self.registry.get_toil_rule(rule_id)
            if rule.trigger_type != trigger_type or not resolve_eligibility(rule, profile, trigger_date):
                raise ValidationError(
                    f"Rule {rule.rule_code} does not apply to this claim",
                    field="rule_id",
                    details={"rule_code": rule.rule_code},
                )
            return rule

        rules = self.registry.list_applicable_rules(trigger_type, profile, trigger_date)
        if not rules:
            raise ValidationError(
                f"No active {trigger_type} rule applies on {trigger_date}",
                field="trigger_type",
            )
        return max(rules, key=lambda r: (r.effective_from, r.rule_id))

    def _earned_days(self, rule: TOILRule, hours_worked: Optional[Decimal]) -> Decimal:
        if rule.is_ratio:
            if hours_worked is None:
                raise ValidationError(
                    f"{rule.rule_code} credits by hours; hours_worked is required",
                    field="hours_worked",
                )
            earned = compute_ratio_days(
                rule.credit_days, rule.min_hours_required, hours_worked, AttendanceStatus.ATTENDED.value,
            )
        else:
            earned = rule.credit_days

        if earned <= 0:
            raise ValidationError("No replacement leave earned", field="hours_worked")
        return earned

    def _mark_approved(
        self,
        credit: RLCredit,
        rule: TOILRule,
        notes: Optional[str],
        now: datetime,
    ) -> None:
        credit.status = CreditStatus.APPROVED.value
        credit.decided_by = self.actor.employee_id
        credit.decided_at = now
        credit.decision_notes = notes
        credit.expires_at = now + timedelta(days=rule.expiry_days) if rule.expiry_days is not None else None

    def _require_decidable(self, credit_id: int) -> RLCredit:
        if not self.actor.is_admin:
            raise AuthorizationError("Only admins can decide RL claims", details={"credit_id": credit_id})

        credit = self.get_claim(credit_id)
        if credit.employee_id == self.actor.employee_id:
            raise AuthorizationError(
                "You cannot decide on your own RL claim",
                details={"credit_id": credit_id},
            )
        if not credit.is_pending:
            logger.warning("Rejected decision on RL claim %s: already %s", credit_id, credit.status)
            raise InvalidStateError(
                f"RL claim {credit_id} is already {credit.status}",
                details={"credit_id": credit_id, "status": credit.status},
            )
        return credit

    def _record_decision(self, credit: RLCredit, action: AuditAction) -> RLCredit:
        flush_or_invalid_state(
            self.db,
            f"RL claim {credit.credit_id} was decided by another transaction",
            details={"credit_id": credit.credit_id},
        )
        self.audit.log(
            action,
            credit,
            notes=credit.decision_notes,
            target_employee_id=credit.employee_id,
            rule_code=credit.rule.rule_code,
        )
        logger.info("RL claim %s %s by %s", credit.credit_id, credit.status, self.actor.employee_id)
        return credit
