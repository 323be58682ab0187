# LeaveCore - Escalation Monitor
# Read-only view of leave requests stuck in PENDING

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from leavecore.config import Settings, get_settings
from leavecore.models.base import utcnow
from leavecore.models.leave_request import LeaveRequest, LeaveStatus


@dataclass
class Escalation:
    request: LeaveRequest
    pending_days: int


class EscalationMonitor:
    """
    Surfaces PENDING requests older than a threshold.

    Nothing here mutates state or gates an override. Override stays
    available on any PENDING request; this only finds the candidates.
    """

    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()

    def find_escalations(
        self,
        threshold_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[Escalation]:
        """
        PENDING requests submitted more than threshold_days ago, oldest first.

        threshold_days defaults to settings.escalation_threshold_days.
        """
        if threshold_days is None:
            threshold_days = self.settings.escalation_threshold_days
        now = now or utcnow()
        cutoff = now - timedelta(days=threshold_days)

        requests = self.db.execute(
            select(LeaveRequest)
            .where(
                LeaveRequest.status == LeaveStatus.PENDING.value,
                LeaveRequest.submitted_at < cutoff,
            )
            .order_by(LeaveRequest.submitted_at.asc(), LeaveRequest.request_id.asc())
        ).scalars()

        return [Escalation(request=r, pending_days=r.pending_for_days(now)) for r in requests]
