"""Enums for the club establishment workflow - the closed sets of states, results and roles."""
from enum import Enum


class RequestStatus(str, Enum):
    """Every lifecycle state a club establishment request can be in. No other states are allowed."""
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    CONTACT_CONFIRMATION_PENDING = "CONTACT_CONFIRMATION_PENDING"
    CONTACT_CONFIRMED = "CONTACT_CONFIRMED"
    CONTACT_REJECTED = "CONTACT_REJECTED"
    NAME_REVISION_REQUIRED = "NAME_REVISION_REQUIRED"
    PROPOSAL_REQUIRED = "PROPOSAL_REQUIRED"
    PROPOSAL_SUBMITTED = "PROPOSAL_SUBMITTED"
    PROPOSAL_REJECTED = "PROPOSAL_REJECTED"
    PROPOSAL_APPROVED = "PROPOSAL_APPROVED"
    DEFENSE_SCHEDULE_PROPOSED = "DEFENSE_SCHEDULE_PROPOSED"
    DEFENSE_SCHEDULE_APPROVED = "DEFENSE_SCHEDULE_APPROVED"
    DEFENSE_SCHEDULE_REJECTED = "DEFENSE_SCHEDULE_REJECTED"
    DEFENSE_COMPLETED = "DEFENSE_COMPLETED"
    FINAL_FORM_SUBMITTED = "FINAL_FORM_SUBMITTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({
    RequestStatus.CONTACT_REJECTED,
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
})


class DefenseResult(str, Enum):
    """Result slot of the defense schedule."""
    PROPOSED = "PROPOSED"
    CONFIRMED = "CONFIRMED"
    PASSED = "PASSED"
    FAILED = "FAILED"


class MembershipStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class ClubStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
