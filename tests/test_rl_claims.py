# LeaveCore - Replacement Leave Claim Tests

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select

from leavecore.models import AuditLog, AuditAction
from leavecore.services.balance import BalanceLedger
from leavecore.services.credit_claims import CreditClaimService
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    ConflictError,
    AuthorizationError,
    NotFoundError,
)

from conftest import RULES_EFFECTIVE_FROM

# A Monday well in the past so claims are never for future work
WORKED_ON = date(2025, 6, 2)


def _claim_actions(db, credit_id: int) -> list[str]:
    db.flush()
    return list(
        db.execute(
            select(AuditLog.action)
            .where(AuditLog.entity_type == "rl_credits", AuditLog.record_id == credit_id)
            .order_by(AuditLog.audit_id)
        ).scalars()
    )


@pytest.fixture
def holiday_rule(registry):
    return registry.create_toil_rule(
        "PH1", "Public holiday work", "PUBLIC_HOLIDAY_WORK", RULES_EFFECTIVE_FROM,
        credit_days=Decimal("1"),
        expiry_days=90,
        requires_approval=True,
    )


@pytest.fixture
def claims(db, employee):
    return CreditClaimService(db, employee)


@pytest.fixture
def hr(db, admin):
    return CreditClaimService(db, admin)


class TestSubmit:

    def test_claim_waits_for_approval(self, db, claims, employee, holiday_rule):
        credit = claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Covered the front desk")

        assert credit.status == "PENDING"
        assert credit.claim_reference == "PUBLIC_HOLIDAY_WORK:2025-06-02"
        assert credit.rule_id == holiday_rule.rule_id
        assert credit.expires_at is None
        ledger = BalanceLedger(db)
        assert ledger.rl_credit_days(employee.employee_id) == Decimal("0")
        summary = ledger.rl_summary(employee.employee_id)
        assert summary.claimed == Decimal("1")
        assert summary.earned == Decimal("0")
        assert _claim_actions(db, credit.credit_id) == [AuditAction.CLAIMED.value]

    def test_rule_without_approval_is_spendable(self, db, registry, claims, employee):
        registry.create_toil_rule(
            "RD1", "Rest day work", "REST_DAY_WORK", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("0.5"),
            requires_approval=False,
        )

        credit = claims.submit("REST_DAY_WORK", WORKED_ON, "Stock take")

        assert credit.status == "APPROVED"
        assert credit.decided_by == employee.employee_id
        assert credit.expires_at is None
        assert BalanceLedger(db).rl_credit_days(employee.employee_id) == Decimal("0.5")
        assert _claim_actions(db, credit.credit_id) == [
            AuditAction.CLAIMED.value,
            AuditAction.RL_CREDITED.value,
        ]

    def test_admin_files_for_employee(self, db, hr, admin, employee, holiday_rule):
        credit = hr.submit(
            "PUBLIC_HOLIDAY_WORK", WORKED_ON, "Covered the front desk",
            employee_id=employee.employee_id,
        )

        assert credit.employee_id == employee.employee_id
        assert credit.issued_by == admin.employee_id
        assert credit.status == "APPROVED"
        assert credit.expires_at is not None
        assert BalanceLedger(db).rl_credit_days(employee.employee_id) == Decimal("1")

    def test_employee_cannot_file_for_others(self, claims, manager, holiday_rule):
        with pytest.raises(AuthorizationError):
            claims.submit(
                "PUBLIC_HOLIDAY_WORK", WORKED_ON, "Covered the front desk",
                employee_id=manager.employee_id,
            )

    def test_duplicate_reference(self, claims, holiday_rule):
        first = claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Morning shift")

        with pytest.raises(ConflictError) as exc:
            claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Evening shift")
        assert exc.value.field == "claim_reference"
        assert exc.value.details["credit_id"] == first.credit_id

        other = claims.submit(
            "PUBLIC_HOLIDAY_WORK", WORKED_ON, "Evening shift", claim_reference="ROSTER-4471",
        )
        assert other.credit_id != first.credit_id

    def test_training_is_not_claimable(self, claims, train_rule):
        with pytest.raises(ValidationError) as exc:
            claims.submit("TRAINING", WORKED_ON, "Fire drill")
        assert exc.value.field == "trigger_type"

    def test_future_work(self, claims, holiday_rule):
        with pytest.raises(ValidationError) as exc:
            claims.submit("PUBLIC_HOLIDAY_WORK", date(2099, 1, 1), "Not yet")
        assert exc.value.field == "trigger_date"

    def test_description_required(self, claims, holiday_rule):
        with pytest.raises(ValidationError) as exc:
            claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "   ")
        assert exc.value.field == "trigger_description"

    def test_no_applicable_rule(self, claims, holiday_rule):
        with pytest.raises(ValidationError) as exc:
            claims.submit("OVERTIME", WORKED_ON, "Late close")
        assert exc.value.field == "trigger_type"

    def test_rule_before_effective_date(self, claims, holiday_rule):
        with pytest.raises(ValidationError):
            claims.submit("PUBLIC_HOLIDAY_WORK", date(2024, 12, 25), "Christmas shift")

    def test_pinned_rule_must_match_trigger(self, claims, holiday_rule):
        with pytest.raises(ValidationError) as exc:
            claims.submit("OVERTIME", WORKED_ON, "Late close", rule_id=holiday_rule.rule_id)
        assert exc.value.field == "rule_id"

    def test_ratio_rule_needs_hours(self, registry, claims):
        registry.create_toil_rule(
            "OT1", "Overtime", "OVERTIME", RULES_EFFECTIVE_FROM,
            credit_type="RATIO",
            credit_days=Decimal("1"),
            min_hours_required=Decimal("8"),
        )

        with pytest.raises(ValidationError) as exc:
            claims.submit("OVERTIME", WORKED_ON, "Late close")
        assert exc.value.field == "hours_worked"

        credit = claims.submit("OVERTIME", WORKED_ON, "Late close", hours_worked=Decimal("4"))
        assert credit.days_credited == Decimal("0.50")

    def test_monthly_cap_counts_pending_claims(self, registry, claims):
        registry.create_toil_rule(
            "PH2", "Public holiday work (capped)", "PUBLIC_HOLIDAY_WORK", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("1"),
            max_days_per_month=Decimal("1.5"),
        )

        first = claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Day one")
        second = claims.submit("PUBLIC_HOLIDAY_WORK", date(2025, 6, 3), "Day two")
        assert first.status == second.status == "PENDING"
        assert second.days_credited == Decimal("0.5")

        with pytest.raises(ValidationError) as exc:
            claims.submit("PUBLIC_HOLIDAY_WORK", date(2025, 6, 4), "Day three")
        assert exc.value.details["reason"] == "CAP_REACHED"


class TestDecide:

    @pytest.fixture
    def pending(self, claims, holiday_rule):
        return claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Covered the front desk")

    def test_approve_makes_credit_spendable(self, db, hr, admin, employee, pending):
        approved = hr.approve(pending.credit_id, notes="Confirmed with roster")

        assert approved.status == "APPROVED"
        assert approved.decided_by == admin.employee_id
        assert approved.expires_at is not None
        assert BalanceLedger(db).rl_credit_days(employee.employee_id) == Decimal("1")
        assert BalanceLedger(db).rl_summary(employee.employee_id).claimed == Decimal("0")
        assert _claim_actions(db, pending.credit_id) == [
            AuditAction.CLAIMED.value,
            AuditAction.APPROVED.value,
        ]

    def test_reject_needs_reason(self, hr, pending):
        with pytest.raises(ValidationError) as exc:
            hr.reject(pending.credit_id, reason="")
        assert exc.value.field == "reason"

    def test_rejected_claim_frees_cap(self, db, registry, hr, claims):
        registry.create_toil_rule(
            "PH2", "Public holiday work (capped)", "PUBLIC_HOLIDAY_WORK", RULES_EFFECTIVE_FROM,
            credit_days=Decimal("1"),
            max_days_per_month=Decimal("1"),
        )
        first = claims.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Day one")

        hr.reject(first.credit_id, reason="Not on the roster")

        assert first.status == "REJECTED"
        second = claims.submit("PUBLIC_HOLIDAY_WORK", date(2025, 6, 3), "Day two")
        assert second.days_credited == Decimal("1")

    def test_only_admins_decide(self, db, manager, pending):
        with pytest.raises(AuthorizationError):
            CreditClaimService(db, manager).approve(pending.credit_id)

    def test_admin_cannot_decide_own_claim(self, hr, holiday_rule):
        own = hr.submit("PUBLIC_HOLIDAY_WORK", WORKED_ON, "Covered payroll")
        assert own.status == "PENDING"

        with pytest.raises(AuthorizationError):
            hr.approve(own.credit_id)

    def test_second_decision(self, hr, pending):
        hr.approve(pending.credit_id)

        with pytest.raises(InvalidStateError) as exc:
            hr.reject(pending.credit_id, reason="Changed my mind")
        assert exc.value.details["status"] == "APPROVED"

    def test_unknown_claim(self, hr):
        with pytest.raises(NotFoundError):
            hr.approve(999)

    def test_issued_training_credit_is_not_a_claim(self, hr, employee, offday_event, complete_training):
        credit = complete_training(offday_event, employee).credit

        with pytest.raises(NotFoundError):
            hr.approve(credit.credit_id)

    def test_list_claims(self, hr, employee, pending):
        assert [c.credit_id for c in hr.list_claims(status="PENDING")] == [pending.credit_id]
        assert hr.list_claims(employee_id=employee.employee_id, status="APPROVED") == []
