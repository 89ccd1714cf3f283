"""
Workflow audit trail model.

One row per successful transition of a club request. Used for history display
and dispute resolution; never edited or deleted.
"""
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from app.database import Base, utcnow


class WorkflowAuditEntry(Base):
    """
    Immutable audit entry.

    Invariants:
    - Once written, never edited or deleted
    - Append-only
    """
    __tablename__ = "workflow_audit_entries"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    request_id = Column(Integer, ForeignKey("club_requests.id"), nullable=False, index=True)
    actor_id = Column(String, nullable=False)
    action_code = Column(String(64), nullable=False, index=True)  # e.g. "PROPOSAL_APPROVED"
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    request = relationship("ClubRequest", back_populates="audit_entries")


class AuditAction:
    """Action codes written to the audit trail."""
    # Submission
    REQUEST_SUBMITTED = "REQUEST_SUBMITTED"
    REQUEST_RECEIVED = "REQUEST_RECEIVED"

    # Contact confirmation
    CONTACT_CONFIRMED = "CONTACT_CONFIRMED"
    CONTACT_REJECTED = "CONTACT_REJECTED"
    NAME_REVISION_REQUESTED = "NAME_REVISION_REQUESTED"
    NAME_REVISION_SUBMITTED = "NAME_REVISION_SUBMITTED"

    # Proposal
    PROPOSAL_REQUIRED = "PROPOSAL_REQUIRED"
    PROPOSAL_SUBMITTED = "PROPOSAL_SUBMITTED"
    PROPOSAL_APPROVED = "PROPOSAL_APPROVED"
    PROPOSAL_REJECTED = "PROPOSAL_REJECTED"

    # Defense
    DEFENSE_SCHEDULE_PROPOSED = "DEFENSE_SCHEDULE_PROPOSED"
    DEFENSE_SCHEDULE_UPDATED = "DEFENSE_SCHEDULE_UPDATED"
    DEFENSE_SCHEDULE_APPROVED = "DEFENSE_SCHEDULE_APPROVED"
    DEFENSE_SCHEDULE_REJECTED = "DEFENSE_SCHEDULE_REJECTED"
    DEFENSE_COMPLETED = "DEFENSE_COMPLETED"

    # Final form and provisioning
    FINAL_FORM_SUBMITTED = "FINAL_FORM_SUBMITTED"
    FINAL_FORM_APPROVED = "FINAL_FORM_APPROVED"
    CLUB_CREATED = "CLUB_CREATED"
