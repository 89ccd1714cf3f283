"""
The club request transition table.

Every legal lifecycle move is one row here. The state machine looks moves up
in this table instead of branching on status, so the complete set of legal
transitions can be enumerated (and tested) in one place.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Tuple

from app.models.audit import AuditAction
from app.models.enums import RequestStatus as S


class Actor(str, Enum):
    """Who may fire a transition."""
    OWNER = "owner"                  # the student who created the request
    STAFF = "staff"                  # any staff member (only used to receive)
    REVIEWER = "assigned_reviewer"   # the staff member bound on receive


class Audience(str, Enum):
    """Who should be told that a transition happened."""
    OWNER = "owner"
    ASSIGNED_REVIEWER = "assigned_reviewer"
    ALL_STAFF = "all_staff"
    CLUB_OFFICERS = "club_officers"


class Action(str, Enum):
    SUBMIT = "submit"
    RECEIVE = "receive"
    CONFIRM_CONTACT = "confirm_contact"
    REJECT_CONTACT = "reject_contact"
    REQUEST_NAME_REVISION = "request_name_revision"
    SUBMIT_NAME_REVISION = "submit_name_revision"
    REQUEST_PROPOSAL = "request_proposal"
    SUBMIT_PROPOSAL = "submit_proposal"
    APPROVE_PROPOSAL = "approve_proposal"
    REJECT_PROPOSAL = "reject_proposal"
    PROPOSE_DEFENSE_SCHEDULE = "propose_defense_schedule"
    UPDATE_DEFENSE_SCHEDULE = "update_defense_schedule"
    APPROVE_DEFENSE_SCHEDULE = "approve_defense_schedule"
    REJECT_DEFENSE_SCHEDULE = "reject_defense_schedule"
    COMPLETE_DEFENSE = "complete_defense"
    SUBMIT_FINAL_FORM = "submit_final_form"
    APPROVE_FINAL_FORM = "approve_final_form"


@dataclass(frozen=True)
class Transition:
    action: Action
    sources: FrozenSet[S]
    targets: Tuple[S, ...]  # first entry is the default outcome
    actor: Actor
    audit_code: str
    audiences: Tuple[Audience, ...]

    @property
    def target(self) -> S:
        return self.targets[0]


def _t(action, sources, targets, actor, audit_code, *audiences) -> Transition:
    return Transition(
        action=action,
        sources=frozenset(sources),
        targets=tuple(targets),
        actor=actor,
        audit_code=audit_code,
        audiences=audiences,
    )


TRANSITIONS: Dict[Action, Transition] = {t.action: t for t in (
    _t(Action.SUBMIT, [S.DRAFT], [S.SUBMITTED],
       Actor.OWNER, AuditAction.REQUEST_SUBMITTED, Audience.ALL_STAFF),
    _t(Action.RECEIVE, [S.SUBMITTED], [S.CONTACT_CONFIRMATION_PENDING],
       Actor.STAFF, AuditAction.REQUEST_RECEIVED, Audience.OWNER),
    _t(Action.CONFIRM_CONTACT, [S.CONTACT_CONFIRMATION_PENDING], [S.CONTACT_CONFIRMED],
       Actor.REVIEWER, AuditAction.CONTACT_CONFIRMED, Audience.OWNER),
    _t(Action.REJECT_CONTACT, [S.CONTACT_CONFIRMATION_PENDING], [S.CONTACT_REJECTED],
       Actor.REVIEWER, AuditAction.CONTACT_REJECTED, Audience.OWNER),
    _t(Action.REQUEST_NAME_REVISION, [S.CONTACT_CONFIRMED], [S.NAME_REVISION_REQUIRED],
       Actor.REVIEWER, AuditAction.NAME_REVISION_REQUESTED, Audience.OWNER),
    _t(Action.SUBMIT_NAME_REVISION, [S.NAME_REVISION_REQUIRED], [S.CONTACT_CONFIRMED],
       Actor.OWNER, AuditAction.NAME_REVISION_SUBMITTED, Audience.ASSIGNED_REVIEWER),
    _t(Action.REQUEST_PROPOSAL, [S.CONTACT_CONFIRMED], [S.PROPOSAL_REQUIRED],
       Actor.REVIEWER, AuditAction.PROPOSAL_REQUIRED, Audience.OWNER),
    _t(Action.SUBMIT_PROPOSAL, [S.PROPOSAL_REQUIRED, S.PROPOSAL_REJECTED, S.PROPOSAL_SUBMITTED],
       [S.PROPOSAL_SUBMITTED],
       Actor.OWNER, AuditAction.PROPOSAL_SUBMITTED, Audience.ASSIGNED_REVIEWER),
    _t(Action.APPROVE_PROPOSAL, [S.PROPOSAL_SUBMITTED], [S.PROPOSAL_APPROVED],
       Actor.REVIEWER, AuditAction.PROPOSAL_APPROVED, Audience.OWNER),
    _t(Action.REJECT_PROPOSAL, [S.PROPOSAL_SUBMITTED], [S.PROPOSAL_REJECTED],
       Actor.REVIEWER, AuditAction.PROPOSAL_REJECTED, Audience.OWNER),
    _t(Action.PROPOSE_DEFENSE_SCHEDULE, [S.PROPOSAL_APPROVED, S.DEFENSE_SCHEDULE_REJECTED],
       [S.DEFENSE_SCHEDULE_PROPOSED],
       Actor.OWNER, AuditAction.DEFENSE_SCHEDULE_PROPOSED, Audience.ASSIGNED_REVIEWER),
    _t(Action.UPDATE_DEFENSE_SCHEDULE, [S.DEFENSE_SCHEDULE_PROPOSED, S.DEFENSE_SCHEDULE_REJECTED],
       [S.DEFENSE_SCHEDULE_PROPOSED],
       Actor.OWNER, AuditAction.DEFENSE_SCHEDULE_UPDATED, Audience.ASSIGNED_REVIEWER),
    _t(Action.APPROVE_DEFENSE_SCHEDULE, [S.DEFENSE_SCHEDULE_PROPOSED], [S.DEFENSE_SCHEDULE_APPROVED],
       Actor.REVIEWER, AuditAction.DEFENSE_SCHEDULE_APPROVED, Audience.OWNER),
    _t(Action.REJECT_DEFENSE_SCHEDULE, [S.DEFENSE_SCHEDULE_PROPOSED], [S.DEFENSE_SCHEDULE_REJECTED],
       Actor.REVIEWER, AuditAction.DEFENSE_SCHEDULE_REJECTED, Audience.OWNER),
    _t(Action.COMPLETE_DEFENSE, [S.DEFENSE_SCHEDULE_APPROVED], [S.DEFENSE_COMPLETED, S.REJECTED],
       Actor.REVIEWER, AuditAction.DEFENSE_COMPLETED, Audience.OWNER),
    _t(Action.SUBMIT_FINAL_FORM, [S.DEFENSE_COMPLETED, S.FINAL_FORM_SUBMITTED], [S.FINAL_FORM_SUBMITTED],
       Actor.OWNER, AuditAction.FINAL_FORM_SUBMITTED, Audience.ASSIGNED_REVIEWER),
    _t(Action.APPROVE_FINAL_FORM, [S.FINAL_FORM_SUBMITTED], [S.APPROVED],
       Actor.REVIEWER, AuditAction.FINAL_FORM_APPROVED, Audience.OWNER, Audience.CLUB_OFFICERS),
)}


def edges() -> FrozenSet[Tuple[S, S]]:
    """Every (from, to) pair the table allows."""
    return frozenset(
        (source, target)
        for transition in TRANSITIONS.values()
        for source in transition.sources
        for target in transition.targets
    )


def actions_from(status: S) -> Tuple[Action, ...]:
    return tuple(a for a, t in TRANSITIONS.items() if status in t.sources)
