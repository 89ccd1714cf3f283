"""
State machine for club establishment requests.

This is the core enforcement mechanism - every lifecycle move MUST go through here.
Each public transition runs as one unit: load the request (locked), check the
actor, check the status against the transition table, apply the side effect,
advance the status and commit. Anything that fails before the commit rolls the
whole unit back. The audit entry and the notification events come after the
commit and can never undo it.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterable, List, NamedTuple, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.config import Settings, settings as default_settings
from app.database import utcnow
from app.models.audit import AuditAction, WorkflowAuditEntry
from app.models.domain import (
    Club,
    ClubRequest,
    DefenseSchedule,
    FinalFormDocument,
    ProposalDocument,
)
from app.models.enums import DefenseResult, RequestStatus
from app.services.audit import AuditTrail
from app.services.defense import DefenseScheduleRecord
from app.services.documents import final_form_store, proposal_store, validate_document
from app.services.errors import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from app.services.events import EventDispatcher, WorkflowEvent, publish
from app.services.identity import StaffDirectory, StaticStaffDirectory
from app.services.provisioning import (
    ClubProvisioner,
    TermResolver,
    club_code_taken,
    club_name_taken,
    current_academic_term,
)
from app.services.transitions import TRANSITIONS, Action, Actor, Audience, Transition

logger = logging.getLogger(__name__)

DESCRIPTIVE_FIELDS = (
    "club_name",
    "club_category",
    "club_code",
    "expected_member_count",
    "activity_objectives",
    "expected_activities",
    "description",
    "email",
    "phone",
    "facebook_link",
    "instagram_link",
    "tiktok_link",
)

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9+_.-]+@([A-Za-z0-9.-]+\.[A-Za-z]{2,})$")
PHONE_PATTERN = re.compile(r"^(0[0-9]{9}|84[0-9]{9}|\+84[0-9]{9})$")


@dataclass
class TransitionResult:
    """The updated request plus the events the caller may deliver independently."""
    request: ClubRequest
    events: List[WorkflowEvent] = field(default_factory=list)
    club: Optional[Club] = None


class _Outcome(NamedTuple):
    target: Optional[RequestStatus] = None
    comment: Optional[str] = None
    club: Optional[Club] = None


class StateMachine:
    """Enforces the club request lifecycle and its business rules."""

    def __init__(
        self,
        db: Session,
        staff: Optional[StaffDirectory] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        term_resolver: TermResolver = current_academic_term,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        self.db = db
        self.settings = settings or default_settings
        self.staff = staff or StaticStaffDirectory(self.settings.staff_user_ids)
        self.clock = clock
        self.dispatcher = dispatcher

        self.proposals = proposal_store(db, clock)
        self.final_forms = final_form_store(db, clock)
        self.defense = DefenseScheduleRecord(db, clock)
        self.provisioner = ClubProvisioner(db, term_resolver, clock)
        self.audit = AuditTrail(db, clock)

    # ------------------------------------------------------------------
    # Request aggregate
    # ------------------------------------------------------------------

    def create(self, owner_id: str, fields: dict, as_draft: bool = True) -> TransitionResult:
        """
        Create a request owned by owner_id.

        Drafts may be partially filled. A request created as SUBMITTED must
        carry a name, a category and a positive expected member count.
        """
        try:
            values = _clean_fields(fields)
            _validate_fields(values, require_complete=not as_draft)
            self._check_name_and_code_available(values.get("club_name"), values.get("club_code"))

            now = self.clock()
            status = RequestStatus.DRAFT if as_draft else RequestStatus.SUBMITTED
            request = ClubRequest(
                created_by=owner_id,
                status=status,
                submitted_at=None if as_draft else now,
                created_at=now,
                updated_at=now,
                **values,
            )
            self.db.add(request)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        request_id = request.id
        logger.info("Request %s created by %s as %s", request_id, owner_id, status.value)

        events = []
        if not as_draft:
            transition = TRANSITIONS[Action.SUBMIT]
            self.audit.append(request_id, owner_id, transition.audit_code, "Request submitted")
            events = self._events(transition, request_id, None, status, owner_id)
            publish(self.dispatcher, events)

        return TransitionResult(request=request, events=events)

    def update(self, request_id: int, actor_id: str, fields: dict) -> ClubRequest:
        """Change only the supplied fields of a DRAFT request."""
        try:
            request = self._load(request_id)
            self._require_owner(request, actor_id, "update")
            _require_status(request, "update the request", [RequestStatus.DRAFT])

            values = _clean_fields(fields)
            for required in ("club_name", "club_category"):
                if required in values and values[required] is None:
                    raise ValidationError(f"{_label(required)} cannot be blank")
            _validate_fields(values, require_complete=False)

            if _changed(request.club_name, values.get("club_name")):
                self._check_name_and_code_available(values["club_name"], None)
            if _changed(request.club_code, values.get("club_code")):
                self._check_name_and_code_available(None, values["club_code"])

            for key, value in values.items():
                setattr(request, key, value)
            request.updated_at = self.clock()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise self._stale("update the request", request_id, [RequestStatus.DRAFT])
        except Exception:
            self.db.rollback()
            raise

        logger.info("Request %s updated by %s: %s", request_id, actor_id, ", ".join(sorted(values)))
        return request

    def delete(self, request_id: int, actor_id: str) -> None:
        try:
            request = self._load(request_id)
            self._require_owner(request, actor_id, "delete")
            _require_status(request, "delete the request", [RequestStatus.DRAFT])
            self.db.delete(request)
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise self._stale("delete the request", request_id, [RequestStatus.DRAFT])
        except Exception:
            self.db.rollback()
            raise

        logger.info("Request %s deleted by %s", request_id, actor_id)

    def submit(self, request_id: int, actor_id: str) -> TransitionResult:
        """DRAFT -> SUBMITTED, re-validating the fields a draft was allowed to leave empty."""
        def effect(request: ClubRequest) -> _Outcome:
            values = {key: getattr(request, key) for key in DESCRIPTIVE_FIELDS}
            _validate_fields(values, require_complete=True)
            self._check_name_and_code_available(request.club_name, request.club_code)
            if request.submitted_at is None:
                request.submitted_at = self.clock()
            return _Outcome(comment="Request submitted")

        return self._transition(Action.SUBMIT, request_id, actor_id, effect)

    # ------------------------------------------------------------------
    # Contact confirmation
    # ------------------------------------------------------------------

    def receive(self, request_id: int, actor_id: str) -> TransitionResult:
        """A staff member picks up a submitted request and becomes its reviewer."""
        def effect(request: ClubRequest) -> _Outcome:
            now = self.clock()
            if request.assigned_reviewer_id is None:
                request.assigned_reviewer_id = actor_id
            request.received_at = now
            request.confirmation_deadline = now + timedelta(days=self.settings.confirmation_window_days)
            return _Outcome(
                comment=f"Request received; contact must be confirmed by "
                        f"{request.confirmation_deadline.isoformat()}"
            )

        return self._transition(Action.RECEIVE, request_id, actor_id, effect)

    def confirm_contact(self, request_id: int, actor_id: str) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            now = self.clock()
            deadline = request.confirmation_deadline
            if deadline is not None and now > deadline:
                raise ValidationError(
                    f"The contact confirmation deadline passed at {deadline.isoformat()}"
                )
            request.confirmed_at = now
            return _Outcome(comment="Contact with the student confirmed")

        return self._transition(Action.CONFIRM_CONTACT, request_id, actor_id, effect)

    def reject_contact(self, request_id: int, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
        return self._transition(Action.REJECT_CONTACT, request_id, actor_id, comment=reason)

    def request_name_revision(self, request_id: int, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
        return self._transition(Action.REQUEST_NAME_REVISION, request_id, actor_id, comment=reason)

    def submit_name_revision(
        self,
        request_id: int,
        actor_id: str,
        club_name: str,
        club_code: Optional[str] = None,
    ) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            new_name = _clean(club_name)
            new_code = _clean(club_code)
            if new_name is None:
                raise ValidationError("Club name cannot be blank")
            self._check_name_and_code_available(new_name, new_code)

            old_name = request.club_name
            request.club_name = new_name
            if new_code is not None:
                request.club_code = new_code
            return _Outcome(comment=f"Club name revised from '{old_name}' to '{new_name}'")

        return self._transition(Action.SUBMIT_NAME_REVISION, request_id, actor_id, effect)

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    def request_proposal(self, request_id: int, actor_id: str, comment: Optional[str] = None) -> TransitionResult:
        return self._transition(Action.REQUEST_PROPOSAL, request_id, actor_id, comment=comment)

    def submit_proposal(
        self,
        request_id: int,
        actor_id: str,
        title: str,
        document_url: str,
        file_name: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> TransitionResult:
        """Append a new proposal version; earlier versions are kept untouched."""
        def effect(request: ClubRequest) -> _Outcome:
            validate_document(title, document_url, self.settings.max_document_bytes, file_name, size_bytes)
            version = self.proposals.add_version(request.id, title, document_url, actor_id)
            return _Outcome(comment=f"Proposal version {version.sequence} submitted: {version.title}")

        return self._transition(Action.SUBMIT_PROPOSAL, request_id, actor_id, effect)

    def approve_proposal(self, request_id: int, actor_id: str, comment: Optional[str] = None) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            latest = self.proposals.latest(request.id)
            return _Outcome(comment=_join(
                f"Approved proposal version {latest.sequence}: {latest.title}", comment
            ))

        return self._transition(Action.APPROVE_PROPOSAL, request_id, actor_id, effect)

    def reject_proposal(self, request_id: int, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            latest = self.proposals.latest(request.id)
            return _Outcome(comment=_join(
                f"Rejected proposal version {latest.sequence}: {latest.title}", reason
            ))

        return self._transition(Action.REJECT_PROPOSAL, request_id, actor_id, effect)

    # ------------------------------------------------------------------
    # Defense
    # ------------------------------------------------------------------

    def propose_defense_schedule(
        self,
        request_id: int,
        actor_id: str,
        starts_at: datetime,
        ends_at: datetime,
        location: Optional[str] = None,
        meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            schedule = self.defense.propose(request.id, starts_at, ends_at, location, meeting_link, notes)
            return _Outcome(comment=_describe_slot(schedule))

        return self._transition(Action.PROPOSE_DEFENSE_SCHEDULE, request_id, actor_id, effect)

    def update_defense_schedule(
        self,
        request_id: int,
        actor_id: str,
        starts_at: datetime,
        ends_at: datetime,
        location: Optional[str] = None,
        meeting_link: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            schedule = self.defense.revise(request.id, starts_at, ends_at, location, meeting_link, notes)
            return _Outcome(comment=_describe_slot(schedule))

        return self._transition(Action.UPDATE_DEFENSE_SCHEDULE, request_id, actor_id, effect)

    def approve_defense_schedule(self, request_id: int, actor_id: str) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            schedule = self.defense.confirm(request.id)
            return _Outcome(comment=f"Confirmed {_describe_slot(schedule)}")

        return self._transition(Action.APPROVE_DEFENSE_SCHEDULE, request_id, actor_id, effect)

    def reject_defense_schedule(self, request_id: int, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            self.defense.reject(request.id, feedback=reason)
            return _Outcome(comment=reason)

        return self._transition(Action.REJECT_DEFENSE_SCHEDULE, request_id, actor_id, effect)

    def complete_defense(
        self,
        request_id: int,
        actor_id: str,
        result: DefenseResult,
        feedback: Optional[str] = None,
    ) -> TransitionResult:
        """Record PASSED (-> DEFENSE_COMPLETED) or FAILED (-> REJECTED, terminal)."""
        def effect(request: ClubRequest) -> _Outcome:
            schedule = self.defense.record_outcome(request.id, result, feedback)
            target = (
                RequestStatus.DEFENSE_COMPLETED
                if schedule.result == DefenseResult.PASSED
                else RequestStatus.REJECTED
            )
            return _Outcome(target=target, comment=_join(f"Defense result: {schedule.result.value}", feedback))

        return self._transition(Action.COMPLETE_DEFENSE, request_id, actor_id, effect)

    # ------------------------------------------------------------------
    # Final form and provisioning
    # ------------------------------------------------------------------

    def submit_final_form(
        self,
        request_id: int,
        actor_id: str,
        title: str,
        document_url: str,
        file_name: Optional[str] = None,
        size_bytes: Optional[int] = None,
    ) -> TransitionResult:
        def effect(request: ClubRequest) -> _Outcome:
            validate_document(title, document_url, self.settings.max_document_bytes, file_name, size_bytes)
            version = self.final_forms.add_version(request.id, title, document_url, actor_id)
            return _Outcome(comment=f"Final form version {version.sequence} submitted: {version.title}")

        return self._transition(Action.SUBMIT_FINAL_FORM, request_id, actor_id, effect)

    def approve_final_form(self, request_id: int, actor_id: str, comment: Optional[str] = None) -> TransitionResult:
        """
        FINAL_FORM_SUBMITTED -> APPROVED, provisioning the club in the same unit.

        A second call fails on the status check, so a club is provisioned at most once.
        """
        def effect(request: ClubRequest) -> _Outcome:
            latest = self.final_forms.latest(request.id)
            provisioned = self.provisioner.provision(request)
            return _Outcome(
                comment=_join(f"Approved final form version {latest.sequence}: {latest.title}", comment),
                club=provisioned.club,
            )

        return self._transition(Action.APPROVE_FINAL_FORM, request_id, actor_id, effect)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, request_id: int, actor_id: str) -> ClubRequest:
        request = self._find(request_id)
        self._require_reader(request, actor_id)
        return request

    def list_proposals(self, request_id: int, actor_id: str) -> List[ProposalDocument]:
        self.get(request_id, actor_id)
        return self.proposals.list_all(request_id)

    def latest_proposal(self, request_id: int, actor_id: str) -> ProposalDocument:
        self.get(request_id, actor_id)
        return self.proposals.latest(request_id)

    def list_final_forms(self, request_id: int, actor_id: str) -> List[FinalFormDocument]:
        self.get(request_id, actor_id)
        return self.final_forms.list_all(request_id)

    def latest_final_form(self, request_id: int, actor_id: str) -> FinalFormDocument:
        self.get(request_id, actor_id)
        return self.final_forms.latest(request_id)

    def get_defense_schedule(self, request_id: int, actor_id: str) -> DefenseSchedule:
        self.get(request_id, actor_id)
        return self.defense.get(request_id)

    def history(self, request_id: int, actor_id: str) -> List[WorkflowAuditEntry]:
        self.get(request_id, actor_id)
        return self.audit.history(request_id)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        action: Action,
        request_id: int,
        actor_id: str,
        effect: Optional[Callable[[ClubRequest], _Outcome]] = None,
        comment: Optional[str] = None,
    ) -> TransitionResult:
        transition = TRANSITIONS[action]
        label = action.value.replace("_", " ")

        try:
            request = self._load(request_id)
            self._authorize(request, transition, actor_id)
            _require_status(request, label, transition.sources)

            from_status = request.status
            outcome = effect(request) if effect else _Outcome()
            target = outcome.target or transition.target
            if target not in transition.targets:
                raise InvalidStateError(label, from_status, transition.sources)

            club_id = outcome.club.id if outcome.club is not None else None
            request.status = target
            request.updated_at = self.clock()
            self.db.commit()
        except StaleDataError:
            self.db.rollback()
            raise self._stale(label, request_id, transition.sources)
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            "Request %s: %s -> %s (%s by %s)",
            request_id, from_status.value, target.value, action.value, actor_id,
        )

        self.audit.append(request_id, actor_id, transition.audit_code, outcome.comment or comment)
        if club_id is not None:
            self.audit.append(request_id, actor_id, AuditAction.CLUB_CREATED, f"Club {club_id} established")

        events = self._events(transition, request_id, from_status, target, actor_id, club_id)
        publish(self.dispatcher, events)
        return TransitionResult(request=request, events=events, club=outcome.club)

    def _events(
        self,
        transition: Transition,
        request_id: int,
        from_status: Optional[RequestStatus],
        to_status: RequestStatus,
        actor_id: str,
        club_id: Optional[int] = None,
    ) -> List[WorkflowEvent]:
        return [
            WorkflowEvent(
                request_id=request_id,
                from_status=from_status,
                to_status=to_status,
                actor_id=actor_id,
                audience=audience,
                club_id=club_id,
            )
            for audience in transition.audiences
            if audience != Audience.CLUB_OFFICERS or club_id is not None
        ]

    def _find(self, request_id: int) -> ClubRequest:
        request = self.db.query(ClubRequest).filter(ClubRequest.id == request_id).first()
        if request is None:
            raise NotFoundError(f"Club request {request_id} not found")
        return request

    def _load(self, request_id: int) -> ClubRequest:
        """Fetch the request for mutation: row-locked where supported, never from a stale identity map."""
        request = self.db.query(ClubRequest).filter(
            ClubRequest.id == request_id
        ).with_for_update().populate_existing().first()
        if request is None:
            raise NotFoundError(f"Club request {request_id} not found")
        return request

    def _stale(self, label: str, request_id: int, allowed: Iterable[RequestStatus]) -> InvalidStateError:
        current = self._find(request_id).status
        logger.info("Request %s changed concurrently; refusing %s (now %s)", request_id, label, current.value)
        return InvalidStateError(
            label,
            current,
            allowed,
            message=f"The request was changed by another action and is now {current.value}; cannot {label}",
        )

    def _authorize(self, request: ClubRequest, transition: Transition, actor_id: str) -> None:
        label = transition.action.value.replace("_", " ")

        if transition.actor == Actor.OWNER:
            self._require_owner(request, actor_id, label)

        elif transition.actor == Actor.STAFF:
            if not self.staff.is_staff(actor_id):
                raise ForbiddenError(f"Only staff members can {label}")
            if request.assigned_reviewer_id is not None and request.assigned_reviewer_id != actor_id:
                raise ForbiddenError("This request is already assigned to another reviewer")

        elif transition.actor == Actor.REVIEWER:
            if request.assigned_reviewer_id is None or request.assigned_reviewer_id != actor_id \
                    or not self.staff.is_staff(actor_id):
                raise ForbiddenError(f"Only the reviewer assigned to this request can {label}")

    def _require_owner(self, request: ClubRequest, actor_id: str, label: str) -> None:
        if request.created_by != actor_id:
            raise ForbiddenError(f"Only the student who created this request can {label}")

    def _require_reader(self, request: ClubRequest, actor_id: str) -> None:
        if request.created_by == actor_id or self.staff.is_staff(actor_id):
            return
        raise ForbiddenError("You are not allowed to view this request")

    def _check_name_and_code_available(self, club_name: Optional[str], club_code: Optional[str]) -> None:
        """Names and codes only have to be unique among established clubs, not pending requests."""
        if club_name_taken(self.db, club_name):
            raise ValidationError(f"A club named '{club_name}' already exists")
        if club_code_taken(self.db, club_code):
            raise ValidationError(f"Club code '{club_code}' is already in use")


def _require_status(request: ClubRequest, label: str, allowed: Iterable[RequestStatus]) -> None:
    allowed = frozenset(allowed)
    if request.status not in allowed:
        raise InvalidStateError(label, request.status, allowed)


def _clean_fields(fields: dict) -> dict:
    unknown = set(fields) - set(DESCRIPTIVE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown field(s): {', '.join(sorted(unknown))}")

    values = {}
    for key, value in fields.items():
        if isinstance(value, str):
            value = _clean(value)
        values[key] = value
    return values


def _validate_fields(values: dict, require_complete: bool) -> None:
    if require_complete:
        for required in ("club_name", "club_category"):
            if values.get(required) is None:
                raise ValidationError(f"{_label(required)} is required")
        if values.get("expected_member_count") is None:
            raise ValidationError("Expected member count is required")

    count = values.get("expected_member_count")
    if count is not None and (isinstance(count, bool) or not isinstance(count, int) or count <= 0):
        raise ValidationError("Expected member count must be greater than 0")

    email = values.get("email")
    if email is not None and not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid email address: {email}")

    phone = values.get("phone")
    if phone is not None:
        normalized = re.sub(r"[\s-]", "", phone)
        if not PHONE_PATTERN.match(normalized):
            raise ValidationError(
                "Invalid phone number: expected 10 digits starting with 0, or a number starting with 84 or +84"
            )
        values["phone"] = normalized


def _changed(current: Optional[str], new: Optional[str]) -> bool:
    if new is None:
        return False
    return (current or "").casefold() != new.casefold()


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def _label(key: str) -> str:
    return key.replace("_", " ").capitalize()


def _join(head: str, tail: Optional[str]) -> str:
    tail = _clean(tail)
    return f"{head}. {tail}" if tail else head


def _describe_slot(schedule: DefenseSchedule) -> str:
    where = schedule.location or schedule.meeting_link or "location to be announced"
    return (
        f"Defense {schedule.starts_at.isoformat()} - {schedule.ends_at.isoformat()} at {where}"
    )
