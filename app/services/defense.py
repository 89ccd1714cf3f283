"""Defense schedule record - the single mutable meeting slot attached to a request."""
from datetime import datetime, timezone
from typing import Callable, Optional, Tuple

from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.domain import DefenseSchedule
from app.models.enums import DefenseResult
from app.services.errors import NotFoundError, ScheduleLockedError, ValidationError

OUTCOME_RESULTS = (DefenseResult.PASSED, DefenseResult.FAILED)


class DefenseScheduleRecord:
    """
    Mutations of the defense slot.

    Invariants:
    - End time must be strictly after start time
    - A CONFIRMED schedule cannot be moved until it is rejected
    - An outcome can only be recorded once the start time has passed
    """

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self.clock = clock

    def get(self, request_id: int) -> DefenseSchedule:
        schedule = self.db.query(DefenseSchedule).filter(
            DefenseSchedule.request_id == request_id
        ).first()
        if schedule is None:
            raise NotFoundError(f"No defense schedule exists for request {request_id}")
        return schedule

    def find(self, request_id: int) -> Optional[DefenseSchedule]:
        return self.db.query(DefenseSchedule).filter(
            DefenseSchedule.request_id == request_id
        ).first()

    def propose(
        self,
        request_id: int,
        starts_at: datetime,
        ends_at: datetime,
        location: Optional[str] = None,
        meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DefenseSchedule:
        """Create the schedule, or overwrite the existing one and reset it to PROPOSED."""
        starts_at, ends_at = _validate_window(starts_at, ends_at)

        schedule = self.find(request_id)
        if schedule is None:
            schedule = DefenseSchedule(request_id=request_id)
            self.db.add(schedule)
        elif schedule.is_locked:
            raise ScheduleLockedError(
                "The defense schedule has been confirmed and can no longer be changed"
            )

        self._apply(schedule, starts_at, ends_at, location, meeting_link, notes)
        self.db.flush()
        return schedule

    def revise(
        self,
        request_id: int,
        starts_at: datetime,
        ends_at: datetime,
        location: Optional[str] = None,
        meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> DefenseSchedule:
        """Edit an existing, unlocked schedule."""
        schedule = self.get(request_id)
        if schedule.is_locked:
            raise ScheduleLockedError(
                "The defense schedule has been confirmed and can no longer be changed"
            )
        starts_at, ends_at = _validate_window(starts_at, ends_at)

        self._apply(schedule, starts_at, ends_at, location, meeting_link, notes)
        self.db.flush()
        return schedule

    def confirm(self, request_id: int) -> DefenseSchedule:
        schedule = self.get(request_id)
        schedule.result = DefenseResult.CONFIRMED
        schedule.updated_at = self.clock()
        self.db.flush()
        return schedule

    def reject(self, request_id: int, feedback: Optional[str] = None) -> DefenseSchedule:
        """Clear the result so the student can revise the slot."""
        schedule = self.get(request_id)
        schedule.result = None
        if feedback:
            schedule.feedback = feedback
        schedule.updated_at = self.clock()
        self.db.flush()
        return schedule

    def record_outcome(self, request_id: int, result: DefenseResult, feedback: Optional[str] = None) -> DefenseSchedule:
        result = _outcome(result)

        schedule = self.get(request_id)
        now = self.clock()
        if schedule.starts_at > now:
            raise ValidationError(
                "The defense has not started yet. Its result can only be recorded after "
                f"{schedule.starts_at.isoformat()}"
            )

        schedule.result = result
        schedule.feedback = feedback
        schedule.updated_at = now
        self.db.flush()
        return schedule

    def _apply(self, schedule, starts_at, ends_at, location, meeting_link, notes) -> None:
        schedule.starts_at = starts_at
        schedule.ends_at = ends_at
        schedule.location = _clean(location)
        schedule.meeting_link = _clean(meeting_link)
        schedule.notes = _clean(notes)
        schedule.result = DefenseResult.PROPOSED
        schedule.feedback = None
        schedule.updated_at = self.clock()


def _validate_window(starts_at: Optional[datetime], ends_at: Optional[datetime]) -> Tuple[datetime, datetime]:
    """Return the window as naive UTC, the form the clock and the columns use."""
    if starts_at is None or ends_at is None:
        raise ValidationError("Defense start and end times are required")
    starts_at, ends_at = _naive_utc(starts_at), _naive_utc(ends_at)
    if ends_at <= starts_at:
        raise ValidationError("Defense end time must be after its start time")
    return starts_at, ends_at


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _outcome(result) -> DefenseResult:
    try:
        result = DefenseResult(result)
    except ValueError:
        result = None
    if result not in OUTCOME_RESULTS:
        raise ValidationError("Defense result must be PASSED or FAILED")
    return result


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None
