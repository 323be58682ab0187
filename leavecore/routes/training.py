# LeaveCore - Training Routes
# Courses, events, allocations, attendance and completion (admin only)

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from leavecore.database import get_db
from leavecore.dependencies import get_client_ip, require_admin
from leavecore.models.employee import Employee
from leavecore.schemas.training import (
    CourseCreate,
    CourseUpdate,
    CourseRead,
    EventCreate,
    EventRead,
    AllocateRequest,
    AllocateResponse,
    AllocationRead,
    AttendanceMark,
    CompletionConfirm,
    CompletionResponse,
    CreditResultRead,
)
from leavecore.services.training import TrainingService


router = APIRouter(prefix="/training", tags=["training"])


# Courses

@router.get("/courses", response_model=list[CourseRead])
def list_courses(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
    include_inactive: bool = Query(False),
):
    return TrainingService(db, user.employee_id).list_courses(include_inactive)


@router.post("/courses", response_model=CourseRead, status_code=status.HTTP_201_CREATED)
def create_course(
    body: CourseCreate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    course = service.create_course(**body.model_dump())
    db.commit()
    return course


@router.patch("/courses/{course_id}", response_model=CourseRead)
def update_course(
    course_id: int,
    body: CourseUpdate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    course = service.update_course(course_id, **body.model_dump(exclude_unset=True))
    db.commit()
    return course


@router.post("/courses/{course_id}/deactivate", response_model=CourseRead)
def deactivate_course(
    course_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    course = service.deactivate_course(course_id)
    db.commit()
    return course


# Events

@router.get("/events", response_model=list[EventRead])
def list_events(
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
):
    return TrainingService(db, user.employee_id).list_events(start_date, end_date)


@router.post("/events", response_model=EventRead, status_code=status.HTTP_201_CREATED)
def create_event(
    body: EventCreate,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    event = service.create_event(**body.model_dump())
    db.commit()
    return event


@router.post("/events/{event_id}/cancel", response_model=EventRead)
def cancel_event(
    event_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    event = service.cancel_event(event_id)
    db.commit()
    return event


@router.post("/events/{event_id}/complete", response_model=EventRead)
def complete_event(
    event_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    event = service.complete_event(event_id)
    db.commit()
    return event


# Allocations

@router.get("/events/{event_id}/allocations", response_model=list[AllocationRead])
def list_allocations(
    event_id: int,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id)
    service.get_event(event_id)
    return service.list_allocations(event_id)


@router.post("/events/{event_id}/allocations", response_model=AllocateResponse)
def allocate_workers(
    event_id: int,
    body: AllocateRequest,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Allocate employees; already-allocated ones are skipped."""
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    result = service.allocate_workers(event_id, body.employee_ids)
    db.commit()
    return AllocateResponse(
        allocated=result.allocated_count,
        skipped=result.skipped_count,
        skipped_ids=result.skipped_ids,
        unknown_ids=result.unknown_ids,
        allocations=[AllocationRead.model_validate(a) for a in result.allocated],
    )


@router.post("/allocations/{allocation_id}/attendance", response_model=AllocationRead)
def mark_attendance(
    allocation_id: int,
    body: AttendanceMark,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    allocation = service.mark_attendance(allocation_id, body.status, body.hours_attended)
    db.commit()
    return allocation


@router.post("/allocations/{allocation_id}/completion", response_model=CompletionResponse)
def confirm_completion(
    allocation_id: int,
    body: CompletionConfirm,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Confirm completion; COMPLETED may credit replacement leave."""
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    result = service.confirm_completion(allocation_id, body.status, body.notes)
    db.commit()
    credit = None
    if result.credit is not None:
        credit = CreditResultRead(
            credited=result.credit.credited,
            days=result.credit.days,
            credit_id=result.credit.credit_id,
            expires_at=result.credit.expires_at,
            reason=result.credit.reason,
        )
    return CompletionResponse(
        allocation=AllocationRead.model_validate(result.allocation),
        credit=credit,
    )


@router.delete("/allocations/{allocation_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_allocation(
    allocation_id: int,
    request: Request,
    user: Employee = Depends(require_admin),
    db: Session = Depends(get_db),
):
    service = TrainingService(db, user.employee_id, get_client_ip(request))
    service.remove_allocation(allocation_id)
    db.commit()
