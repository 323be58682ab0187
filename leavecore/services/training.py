# LeaveCore - Training Service
# Course catalogue, events, and the allocation lifecycle that drives RL credit

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional, Any

from sqlalchemy import select, func
from sqlalchemy.orm import Session

from leavecore.models.audit_log import AuditAction
from leavecore.models.base import utcnow
from leavecore.models.toil_rule import TOILRule
from leavecore.models.training import (
    TrainingCourse,
    TrainingEvent,
    Allocation,
    DayType,
    EventStatus,
    AttendanceStatus,
    CompletionStatus,
)
from leavecore.services.audit import AuditService
from leavecore.services.credit_issuer import CreditIssuer, CreditResult
from leavecore.services.employee_directory import EmployeeDirectory
from leavecore.services.errors import (
    ValidationError,
    InvalidStateError,
    ConflictError,
    NotFoundError,
    AuthorizationError,
    flush_or_invalid_state,
)

logger = logging.getLogger(__name__)


@dataclass
class AllocationResult:
    """Outcome of allocate_workers(): who was added, who was already there."""
    allocated: list[Allocation] = field(default_factory=list)
    skipped_ids: list[int] = field(default_factory=list)
    unknown_ids: list[int] = field(default_factory=list)

    @property
    def allocated_count(self) -> int:
        return len(self.allocated)

    @property
    def skipped_count(self) -> int:
        return len(self.skipped_ids)


@dataclass
class CompletionResult:
    allocation: Allocation
    credit: Optional[CreditResult] = None

    @property
    def credited(self) -> bool:
        return self.credit is not None and self.credit.credited


MARKABLE_ATTENDANCE = {
    AttendanceStatus.ATTENDED.value,
    AttendanceStatus.NO_SHOW.value,
    AttendanceStatus.PARTIAL.value,
}

CONFIRMABLE_COMPLETION = {
    CompletionStatus.COMPLETED.value,
    CompletionStatus.INCOMPLETE.value,
}

COURSE_FIELDS = {
    "title", "category", "duration_hours", "is_mandatory", "rl_eligible", "rl_rule_id",
}


class TrainingService:
    """
    Service for training courses, events and worker allocations.

    An allocation moves along two axes:
        attendance: PENDING -> ATTENDED | NO_SHOW | PARTIAL
        completion: PENDING -> COMPLETED | INCOMPLETE

    Completion can only be confirmed after ATTENDED or PARTIAL attendance,
    exactly once. Confirming COMPLETED hands the allocation to the
    CreditIssuer in the same transaction. Every transition is audited.

    Usage:
        service = TrainingService(db, admin.employee_id, client_ip)
        event = service.create_event(course_id=1, event_date=date(2030, 1, 5),
                                     day_type="OFF_DAY", rl_eligible=True)
        result = service.allocate_workers(event.event_id, [5, 6, 7])
        service.mark_attendance(result.allocated[0].allocation_id, "ATTENDED")
        outcome = service.confirm_completion(result.allocated[0].allocation_id, "COMPLETED")
        outcome.credited  # True when replacement leave was issued

    Lost races (another admin changed the same allocation first) raise
    InvalidStateError after rolling the session back.
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
        self.directory = EmployeeDirectory(db)
        self.issuer = CreditIssuer(db, current_user_id, audit=self.audit)

    # =========================================================================
    # Courses
    # =========================================================================

    def get_course(self, course_id: int) -> TrainingCourse:
        course = self.db.get(TrainingCourse, course_id)
        if course is None:
            raise NotFoundError(f"Training course {course_id} not found", field="course_id")
        return course

    def list_courses(self, include_inactive: bool = False) -> list[TrainingCourse]:
        query = select(TrainingCourse)
        if not include_inactive:
            query = query.where(TrainingCourse.is_active == True)
        return list(self.db.execute(query.order_by(TrainingCourse.code)).scalars())

    def create_course(
        self,
        code: str,
        title: str,
        category: Optional[str] = None,
        duration_hours: Optional[Decimal] = None,
        is_mandatory: bool = False,
        rl_eligible: bool = True,
        rl_rule_id: Optional[int] = None,
    ) -> TrainingCourse:
        if not code or not code.strip():
            raise ValidationError("code is required", field="code")
        if not title or not title.strip():
            raise ValidationError("title is required", field="title")
        if duration_hours is not None and duration_hours < 0:
            raise ValidationError("duration_hours cannot be negative", field="duration_hours")
        code = code.strip().upper()

        if rl_rule_id is not None and self.db.get(TOILRule, rl_rule_id) is None:
            raise NotFoundError(f"TOIL rule {rl_rule_id} not found", field="rl_rule_id")

        exists = self.db.execute(
            select(func.count()).select_from(TrainingCourse).where(TrainingCourse.code == code)
        ).scalar_one()
        if exists:
            raise ConflictError(f"Course code '{code}' already exists", field="code")

        course = TrainingCourse(
            code=code,
            title=title.strip(),
            category=category,
            duration_hours=duration_hours,
            is_mandatory=is_mandatory,
            rl_eligible=rl_eligible,
            rl_rule_id=rl_rule_id,
            created_by=self.current_user_id,
        )
        self.db.add(course)
        self.db.flush()

        self.audit.log_insert(course)
        logger.info("Training course %s created by %s", code, self.current_user_id)
        return course

    def update_course(self, course_id: int, **fields: Any) -> TrainingCourse:
        """
        Update a course. Only the provided fields change; the code is fixed.

        Events already scheduled keep their own rl_eligible flag.
        """
        course = self.get_course(course_id)

        if "code" in fields:
            raise ValidationError("Course code cannot be changed", field="code")
        unknown = set(fields) - COURSE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}", field=sorted(unknown)[0])
        if "title" in fields and (not fields["title"] or not fields["title"].strip()):
            raise ValidationError("title is required", field="title")
        if fields.get("duration_hours") is not None and fields["duration_hours"] < 0:
            raise ValidationError("duration_hours cannot be negative", field="duration_hours")
        if fields.get("rl_rule_id") is not None and self.db.get(TOILRule, fields["rl_rule_id"]) is None:
            raise NotFoundError(f"TOIL rule {fields['rl_rule_id']} not found", field="rl_rule_id")

        old_state = self.audit.capture_state(course)
        for key, value in fields.items():
            setattr(course, key, value.strip() if key == "title" else value)
        course.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(course, old_state)
        logger.info("Training course %s updated by %s: %s", course.code, self.current_user_id, sorted(fields))
        return course

    def deactivate_course(self, course_id: int) -> TrainingCourse:
        """Retire a course from the catalogue. Its events and allocations stay."""
        course = self.get_course(course_id)
        if not course.is_active:
            return course

        old_state = self.audit.capture_state(course)
        course.is_active = False
        course.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(course, old_state, action=AuditAction.DEACTIVATED)
        logger.info("Training course %s deactivated by %s", course.code, self.current_user_id)
        return course

    # =========================================================================
    # Events
    # =========================================================================

    def get_event(self, event_id: int) -> TrainingEvent:
        event = self.db.get(TrainingEvent, event_id)
        if event is None:
            raise NotFoundError(f"Training event {event_id} not found", field="event_id")
        return event

    def list_events(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> list[TrainingEvent]:
        query = select(TrainingEvent)
        if start_date is not None:
            query = query.where(TrainingEvent.event_date >= start_date)
        if end_date is not None:
            query = query.where(TrainingEvent.event_date <= end_date)
        return list(self.db.execute(query.order_by(TrainingEvent.event_date)).scalars())

    def create_event(
        self,
        course_id: int,
        event_date: date,
        day_type: str,
        rl_eligible: Optional[bool] = None,
        event_end_date: Optional[date] = None,
        location: Optional[str] = None,
        max_participants: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> TrainingEvent:
        """
        Schedule an occurrence of a course.

        rl_eligible defaults to the course's setting, except that an event
        on a WORKING_DAY never earns replacement leave.

        Raises:
            ValidationError: Unknown day type, end before start, a retired
                course, or an explicit rl_eligible=True on a WORKING_DAY
            NotFoundError: Unknown course
        """
        course = self.get_course(course_id)
        if not course.is_active:
            raise ValidationError(f"Course {course.code} is no longer offered", field="course_id")

        if day_type not in {d.value for d in DayType}:
            raise ValidationError(f"Unknown day type '{day_type}'", field="day_type")
        if event_end_date is not None and event_end_date < event_date:
            raise ValidationError("event_end_date cannot be before event_date", field="event_end_date")
        if max_participants is not None and max_participants < 1:
            raise ValidationError("max_participants must be at least 1", field="max_participants")

        working_day = day_type == DayType.WORKING_DAY.value
        if rl_eligible is None:
            rl_eligible = course.rl_eligible and not working_day
        elif rl_eligible and working_day:
            raise ValidationError(
                "Events on a working day cannot be RL-eligible",
                field="rl_eligible",
            )

        event = TrainingEvent(
            course_id=course.course_id,
            event_date=event_date,
            event_end_date=event_end_date,
            location=location,
            day_type=day_type,
            rl_eligible=rl_eligible,
            status=EventStatus.SCHEDULED.value,
            max_participants=max_participants,
            notes=notes,
            created_by=self.current_user_id,
        )
        self.db.add(event)
        self.db.flush()

        self.audit.log_insert(event)
        logger.info(
            "Training event %s scheduled for %s (%s, rl_eligible=%s)",
            event.event_id, event_date, day_type, rl_eligible,
        )
        return event

    def cancel_event(self, event_id: int) -> TrainingEvent:
        event = self.get_event(event_id)
        if event.status == EventStatus.CANCELLED.value:
            return event
        self._require_scheduled(event)

        old_state = self.audit.capture_state(event)
        event.status = EventStatus.CANCELLED.value
        event.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(event, old_state, action=AuditAction.CANCELLED)
        logger.info("Training event %s cancelled by %s", event_id, self.current_user_id)
        return event

    def complete_event(self, event_id: int) -> TrainingEvent:
        """
        Close a held event. SCHEDULED -> COMPLETED.

        Attendance and completion can still be recorded afterwards; only
        new allocations are refused.
        """
        event = self.get_event(event_id)
        if event.status == EventStatus.COMPLETED.value:
            return event
        self._require_scheduled(event)

        old_state = self.audit.capture_state(event)
        event.status = EventStatus.COMPLETED.value
        event.modified_by = self.current_user_id
        self.db.flush()

        self.audit.log_update(event, old_state, action=AuditAction.COMPLETED)
        logger.info("Training event %s completed by %s", event_id, self.current_user_id)
        return event

    def _require_scheduled(self, event: TrainingEvent) -> None:
        if event.status != EventStatus.SCHEDULED.value:
            raise InvalidStateError(
                f"Training event {event.event_id} is {event.status}",
                details={"event_id": event.event_id, "status": event.status},
            )

    # =========================================================================
    # Allocations
    # =========================================================================

    def get_allocation(self, allocation_id: int) -> Allocation:
        allocation = self.db.get(Allocation, allocation_id)
        if allocation is None:
            raise NotFoundError(f"Allocation {allocation_id} not found", field="allocation_id")
        return allocation

    def list_allocations(self, event_id: int) -> list[Allocation]:
        return list(
            self.db.execute(
                select(Allocation)
                .where(Allocation.event_id == event_id)
                .order_by(Allocation.allocation_id)
            ).scalars()
        )

    def allocate_workers(self, event_id: int, employee_ids: list[int]) -> AllocationResult:
        """
        Assign employees to an event.

        Employees already on the event are skipped, so repeating a call is
        harmless. Unknown or inactive employee ids are reported back rather
        than failing the whole batch.
        """
        event = self.get_event(event_id)
        self._require_scheduled(event)

        result = AllocationResult()

        existing = set(
            self.db.execute(
                select(Allocation.employee_id).where(Allocation.event_id == event_id)
            ).scalars()
        )
        known = self.directory.find_many(list(employee_ids))

        to_add = []
        for employee_id in dict.fromkeys(employee_ids):
            if employee_id in existing:
                result.skipped_ids.append(employee_id)
            elif employee_id not in known:
                result.unknown_ids.append(employee_id)
            else:
                to_add.append(employee_id)

        if event.max_participants is not None and len(existing) + len(to_add) > event.max_participants:
            raise ValidationError(
                f"Event {event_id} has room for {event.max_participants - len(existing)} more participant(s)",
                field="employee_ids",
                details={"max_participants": event.max_participants, "allocated": len(existing)},
            )

        now = utcnow()
        for employee_id in to_add:
            allocation = Allocation(
                event_id=event_id,
                employee_id=employee_id,
                allocated_by=self.current_user_id,
                allocated_at=now,
                rl_eligible=event.rl_eligible,
                attendance_status=AttendanceStatus.PENDING.value,
                completion_status=CompletionStatus.PENDING.value,
            )
            self.db.add(allocation)
            result.allocated.append(allocation)

        flush_or_invalid_state(
            self.db,
            f"Allocations for event {event_id} changed concurrently",
            details={"event_id": event_id},
        )

        for allocation in result.allocated:
            self.audit.log(
                AuditAction.ALLOCATED,
                allocation,
                target_employee_id=allocation.employee_id,
                allocation_id=allocation.allocation_id,
                rule_code=event.rule.rule_code if event.rule else None,
            )

        logger.info(
            "Event %s: allocated %d, skipped %d, unknown %d",
            event_id, result.allocated_count, result.skipped_count, len(result.unknown_ids),
        )
        return result

    def mark_attendance(
        self,
        allocation_id: int,
        status: str,
        hours_attended: Optional[Decimal] = None,
    ) -> Allocation:
        """
        Record attendance. Legal only while attendance is still PENDING.
        """
        if status not in MARKABLE_ATTENDANCE:
            raise ValidationError(
                f"Attendance must be one of {sorted(MARKABLE_ATTENDANCE)}",
                field="status",
            )
        if hours_attended is not None and hours_attended < 0:
            raise ValidationError("hours_attended cannot be negative", field="hours_attended")

        allocation = self.get_allocation(allocation_id)
        if allocation.attendance_status != AttendanceStatus.PENDING.value:
            raise InvalidStateError(
                f"Attendance for allocation {allocation_id} is already {allocation.attendance_status}",
                details={"allocation_id": allocation_id, "attendance_status": allocation.attendance_status},
            )

        allocation.attendance_status = status
        allocation.hours_attended = hours_attended
        allocation.attendance_marked_by = self.current_user_id
        allocation.attendance_marked_at = utcnow()
        flush_or_invalid_state(
            self.db,
            f"Allocation {allocation_id} was updated by another transaction",
            details={"allocation_id": allocation_id},
        )

        self.audit.log(
            AuditAction.ATTENDANCE,
            allocation,
            notes=status if hours_attended is None else f"{status} ({hours_attended}h)",
            target_employee_id=allocation.employee_id,
            allocation_id=allocation_id,
        )
        logger.info("Allocation %s attendance %s by %s", allocation_id, status, self.current_user_id)
        return allocation

    def confirm_completion(
        self,
        allocation_id: int,
        status: str,
        notes: Optional[str] = None,
    ) -> CompletionResult:
        """
        Confirm the outcome of an attended allocation.

        COMPLETED runs the credit issuer in the same transaction; the
        returned CompletionResult says whether replacement leave was
        credited. A second confirmation of the same allocation, whether
        sequential or a concurrent race, raises InvalidStateError.

        Raises:
            ValidationError: status is not COMPLETED or INCOMPLETE
            AuthorizationError: the employee tries to confirm their own allocation
            InvalidStateError: attendance not ATTENDED/PARTIAL, completion
                already confirmed, or a lost race
        """
        if status not in CONFIRMABLE_COMPLETION:
            raise ValidationError(
                f"Completion must be one of {sorted(CONFIRMABLE_COMPLETION)}",
                field="status",
            )

        allocation = self.get_allocation(allocation_id)

        if allocation.employee_id == self.current_user_id:
            raise AuthorizationError(
                "Employees cannot confirm completion of their own training",
                details={"allocation_id": allocation_id},
            )

        if allocation.completion_status != CompletionStatus.PENDING.value:
            logger.warning(
                "Repeat completion on allocation %s (already %s)",
                allocation_id, allocation.completion_status,
            )
            raise InvalidStateError(
                f"Completion for allocation {allocation_id} is already {allocation.completion_status}",
                details={"allocation_id": allocation_id, "completion_status": allocation.completion_status},
            )

        if not allocation.can_confirm_completion:
            raise InvalidStateError(
                f"Cannot confirm completion while attendance is {allocation.attendance_status}",
                details={"allocation_id": allocation_id, "attendance_status": allocation.attendance_status},
            )

        now = utcnow()
        allocation.completion_status = status
        allocation.completion_confirmed_by = self.current_user_id
        allocation.completion_confirmed_at = now
        allocation.completion_notes = notes

        # Claim the allocation first; a concurrent confirmation fails here
        flush_or_invalid_state(
            self.db,
            f"Allocation {allocation_id} was confirmed by another transaction",
            details={"allocation_id": allocation_id},
        )

        result = CompletionResult(allocation=allocation)
        event = allocation.event
        rule = event.rule

        if status == CompletionStatus.COMPLETED.value:
            result.credit = self.issuer.issue_credit(allocation, event, rule, now=now)
            flush_or_invalid_state(
                self.db,
                f"Allocation {allocation_id} was confirmed by another transaction",
                details={"allocation_id": allocation_id},
            )

        audit_notes = notes
        if result.credit is not None and not result.credit.credited:
            audit_notes = f"{notes} (no RL credit: {result.credit.reason})" if notes else f"No RL credit: {result.credit.reason}"

        self.audit.log(
            AuditAction.COMPLETED if status == CompletionStatus.COMPLETED.value else AuditAction.INCOMPLETE,
            allocation,
            notes=audit_notes,
            target_employee_id=allocation.employee_id,
            allocation_id=allocation_id,
            rule_code=rule.rule_code if rule else None,
        )

        logger.info(
            "Allocation %s completion %s by %s (credited=%s)",
            allocation_id, status, self.current_user_id, result.credited,
        )
        return result

    def remove_allocation(self, allocation_id: int) -> None:
        """
        Take an employee off an event.

        Only allowed before attendance is marked and while no credit exists.
        """
        allocation = self.get_allocation(allocation_id)

        if allocation.attendance_status != AttendanceStatus.PENDING.value or allocation.has_credit:
            raise InvalidStateError(
                f"Allocation {allocation_id} can no longer be removed",
                details={
                    "allocation_id": allocation_id,
                    "attendance_status": allocation.attendance_status,
                    "rl_credit_id": allocation.rl_credit_id,
                },
            )

        # Log BEFORE the row disappears
        self.audit.log(
            AuditAction.UNALLOCATED,
            allocation,
            target_employee_id=allocation.employee_id,
            allocation_id=allocation_id,
        )
        self.db.delete(allocation)
        flush_or_invalid_state(
            self.db,
            f"Allocation {allocation_id} was updated by another transaction",
            details={"allocation_id": allocation_id},
        )
        logger.info("Allocation %s removed by %s", allocation_id, self.current_user_id)
