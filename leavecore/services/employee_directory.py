# LeaveCore - Employee Directory
# Read-only lookup of employee identity and eligibility attributes

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leavecore.models.employee import Employee
from leavecore.services.errors import NotFoundError


@dataclass(frozen=True)
class EmployeeProfile:
    """The attributes rule eligibility is evaluated against."""
    employee_id: int
    department: Optional[str]
    grade: Optional[str]
    employment_type: Optional[str]

    @classmethod
    def from_employee(cls, employee: Employee) -> "EmployeeProfile":
        return cls(
            employee_id=employee.employee_id,
            department=employee.department,
            grade=employee.grade,
            employment_type=employee.employment_type,
        )


class EmployeeDirectory:
    """
    Lookup over the employees table.

    The leave engine never writes employee master data; it only needs
    identity, role, reporting line and eligibility attributes.
    """

    def __init__(self, db: Session):
        self.db = db

    def find_employee(self, employee_id: int) -> Optional[Employee]:
        """Active employee or None."""
        return self.db.execute(
            select(Employee).where(
                Employee.employee_id == employee_id,
                Employee.is_active == True,
            )
        ).scalar_one_or_none()

    def get_employee(self, employee_id: int) -> Employee:
        employee = self.find_employee(employee_id)
        if employee is None:
            raise NotFoundError(
                f"Employee {employee_id} not found",
                field="employee_id",
                details={"employee_id": employee_id},
            )
        return employee

    def get_profile(self, employee_id: int) -> EmployeeProfile:
        return EmployeeProfile.from_employee(self.get_employee(employee_id))

    def find_many(self, employee_ids: list[int]) -> dict[int, Employee]:
        """Active employees among employee_ids, keyed by id."""
        if not employee_ids:
            return {}
        rows = self.db.execute(
            select(Employee).where(
                Employee.employee_id.in_(employee_ids),
                Employee.is_active == True,
            )
        ).scalars()
        return {e.employee_id: e for e in rows}

    def list_active(self, department: Optional[str] = None) -> list[Employee]:
        query = select(Employee).where(Employee.is_active == True)
        if department is not None:
            query = query.where(Employee.department == department)
        return list(self.db.execute(query.order_by(Employee.employee_id)).scalars())
