# LeaveCore - Request Dependencies
# Resolve the acting principal and guard privileged routes

from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.orm import Session

from leavecore.database import get_db
from leavecore.models.employee import Employee
from leavecore.services.employee_directory import EmployeeDirectory


# Header set by the upstream identity gateway after authentication
PRINCIPAL_HEADER = "X-Employee-Id"


def get_client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def get_current_user(
    employee_id: Optional[int] = Header(None, alias=PRINCIPAL_HEADER),
    db: Session = Depends(get_db),
) -> Employee:
    """
    The acting employee, or 401.

    Authentication happens upstream; this only loads the principal the
    gateway vouched for.

    Usage:
        @router.get("/leave")
        def list_requests(user: Employee = Depends(get_current_user)):
            ...
    """
    if employee_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )

    employee = EmployeeDirectory(db).find_employee(employee_id)
    if employee is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown or inactive employee",
        )
    return employee


def require_admin(
    user: Employee = Depends(get_current_user),
) -> Employee:
    """
    Require the current user to be an HR admin.

    Usage:
        @router.post("/rules/toil")
        def create_rule(user: Employee = Depends(require_admin)):
            # user is guaranteed to be an admin
            ...
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def require_manager(
    user: Employee = Depends(get_current_user),
) -> Employee:
    """Require the current user to be a manager or admin."""
    if not user.is_manager:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Manager access required",
        )
    return user
