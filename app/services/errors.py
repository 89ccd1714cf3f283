"""
Errors raised when the workflow refuses an action.

A refusal is the system working correctly, not a crash: every error carries a
human-readable message naming the rule that was violated.
"""
from typing import Iterable, Optional

from app.models.enums import RequestStatus


class WorkflowError(Exception):
    """Base class for every refusal raised by the workflow."""
    kind = "INTERNAL"

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class ValidationError(WorkflowError):
    """Malformed, missing or out-of-range input, or a duplicate club name/code."""
    kind = "VALIDATION"


class ScheduleLockedError(ValidationError):
    """The defense schedule is confirmed and its time and location cannot change."""


class InvalidStateError(WorkflowError):
    """The action is not legal from the request's current status."""
    kind = "INVALID_STATE"

    def __init__(
        self,
        action: str,
        current_status: RequestStatus,
        allowed_statuses: Iterable[RequestStatus],
        message: Optional[str] = None,
    ):
        self.action = action
        self.current_status = current_status
        self.allowed_statuses = sorted(allowed_statuses, key=lambda s: s.value)
        allowed = ", ".join(s.value for s in self.allowed_statuses) or "none"
        super().__init__(
            message
            or f"Cannot {action} while the request is {current_status.value}. "
               f"Required status: {allowed}"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status.value
        data["allowed_statuses"] = [s.value for s in self.allowed_statuses]
        return data


class ForbiddenError(WorkflowError):
    """The actor is not the owner, not the assigned reviewer, or not staff."""
    kind = "FORBIDDEN"


class NotFoundError(WorkflowError):
    kind = "NOT_FOUND"


class ConfigurationError(WorkflowError):
    """A precondition the system itself must guarantee is missing. Not the caller's fault."""
    kind = "CONFIGURATION"
