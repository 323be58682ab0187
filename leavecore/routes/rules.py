# LeaveCore - Rule Registry Routes
# Admin CRUD for leave types and replacement-leave (TOIL) rules

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from leavecore.database import get_db
from leavecore.dependencies import get_current_user, get_client_ip, require_admin
from leavecore.models.employee import Employee
from leavecore.schemas.rules import (
    LeaveTypeCreate,
    LeaveTypeUpdate,
    LeaveTypeRead,
    TOILRuleCreate,
    TOILRuleUpdate,
    TOILRuleRead,
)
from leavecore.services.rule_registry import RuleRegistryService


router = APIRouter(prefix="/rules", tags=["rules"])


# Leave types

@router.get("/leave-types", response_model=list[LeaveTypeRead])
def list_leave_types(
    user: Employee = Depends(get_current_user),
    db: Session = Depends(get_db),
    include_inactive: bool = Query(False),
):
    return RuleRegistryService(db, user.employee_id).list_leave_types(
        include_inactive=include_inactive and user.is_admin
    )


@router.post("/leave-types", response_model=LeaveTypeRead, status_code=status.HTTP_201_CREATED)
def create_leave_type(
    body: LeaveTypeCreate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    fields = body.model_dump()
    leave_type = registry.create_leave_type(fields.pop("code"), fields.pop("name"), **fields)
    db.commit()
    return leave_type


@router.patch("/leave-types/{leave_type_id}", response_model=LeaveTypeRead)
def update_leave_type(
    leave_type_id: int,
    body: LeaveTypeUpdate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    leave_type = registry.update_leave_type(leave_type_id, **body.model_dump(exclude_unset=True))
    db.commit()
    return leave_type


@router.post("/leave-types/{leave_type_id}/deactivate", response_model=LeaveTypeRead)
def deactivate_leave_type(
    leave_type_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    leave_type = registry.deactivate_leave_type(leave_type_id)
    db.commit()
    return leave_type


# TOIL rules

@router.get("/toil", response_model=list[TOILRuleRead])
def list_toil_rules(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
    trigger_type: Optional[str] = Query(None),
    include_inactive: bool = Query(False),
):
    return RuleRegistryService(db, user.employee_id).list_toil_rules(
        trigger_type=trigger_type,
        include_inactive=include_inactive,
    )


@router.get("/toil/{rule_id}", response_model=TOILRuleRead)
def get_toil_rule(
    rule_id: int,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return RuleRegistryService(db, user.employee_id).get_toil_rule(rule_id)


@router.post("/toil", response_model=TOILRuleRead, status_code=status.HTTP_201_CREATED)
def create_toil_rule(
    body: TOILRuleCreate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    fields = body.model_dump()
    rule = registry.create_toil_rule(
        fields.pop("rule_code"),
        fields.pop("rule_name"),
        fields.pop("trigger_type"),
        fields.pop("effective_from"),
        **fields,
    )
    db.commit()
    return rule


@router.patch("/toil/{rule_id}", response_model=TOILRuleRead)
def update_toil_rule(
    rule_id: int,
    body: TOILRuleUpdate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    rule = registry.update_toil_rule(rule_id, **body.model_dump(exclude_unset=True))
    db.commit()
    return rule


@router.post("/toil/{rule_id}/deactivate", response_model=TOILRuleRead)
def deactivate_toil_rule(
    rule_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    registry = RuleRegistryService(db, user.employee_id, get_client_ip(request))
    rule = registry.deactivate_toil_rule(rule_id)
    db.commit()
    return rule
