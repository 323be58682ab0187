# LeaveCore - Service Errors
# Typed failures surfaced to callers of the leave engine

import logging
from typing import Any, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

logger = logging.getLogger(__name__)


class LeaveCoreError(Exception):
    """
    Base class for every recoverable failure raised by the services.

    Attributes:
        message: Human-readable description
        field: The offending input field, when there is one
        details: Extra context for the caller (ids, current state, ...)
    """

    kind = "error"

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.field = field
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.kind,
            "message": self.message,
            "field": self.field,
            "details": self.details,
        }


class ValidationError(LeaveCoreError):
    """Malformed or out-of-range input. Correct it and resubmit."""
    kind = "validation_error"


class InvalidStateError(LeaveCoreError):
    """The record's current state does not permit the operation (includes lost races)."""
    kind = "invalid_state"


class ConflictError(LeaveCoreError):
    """Uniqueness violation, e.g. a duplicate rule code."""
    kind = "conflict"


class NotFoundError(LeaveCoreError):
    """Unknown id reference."""
    kind = "not_found"


class AuthorizationError(LeaveCoreError):
    """The acting principal lacks the role or relationship the operation needs."""
    kind = "forbidden"


def flush_or_invalid_state(
    db: Session,
    message: str,
    details: Optional[dict[str, Any]] = None,
) -> None:
    """
    Flush pending changes; a lost optimistic-lock race becomes InvalidStateError.

    A stale version counter or a unique-key collision means another
    transaction changed the same record first. The whole session is rolled
    back so nothing of the losing transition survives.
    """
    try:
        db.flush()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        logger.warning("Concurrent update lost: %s (%s)", message, exc.__class__.__name__)
        raise InvalidStateError(message, details=details) from exc
