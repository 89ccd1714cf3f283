"""
Tests for the audit trail and notification events.

Both are written after the transition commits; neither can undo it.
"""
import logging

import pytest
from sqlalchemy.exc import OperationalError

from conftest import OWNER, REVIEWER, advance_to
from app.models.audit import AuditAction, WorkflowAuditEntry
from app.models.enums import RequestStatus
from app.services.audit import AuditTrail
from app.services.errors import ForbiddenError, InvalidStateError
from app.services.events import LoggingDispatcher, WorkflowEvent, publish
from app.services.state_machine import StateMachine
from app.services.transitions import Audience


class TestAuditTrail:

    def test_happy_path_history(self, sm, clock, submitted_request):
        """One entry per transition, in order, plus CLUB_CREATED on final approval."""
        advance_to(sm, clock, submitted_request.id, RequestStatus.APPROVED)

        codes = [e.action_code for e in sm.history(submitted_request.id, OWNER)]
        assert codes == [
            AuditAction.REQUEST_SUBMITTED,
            AuditAction.REQUEST_RECEIVED,
            AuditAction.CONTACT_CONFIRMED,
            AuditAction.PROPOSAL_REQUIRED,
            AuditAction.PROPOSAL_SUBMITTED,
            AuditAction.PROPOSAL_APPROVED,
            AuditAction.DEFENSE_SCHEDULE_PROPOSED,
            AuditAction.DEFENSE_SCHEDULE_APPROVED,
            AuditAction.DEFENSE_COMPLETED,
            AuditAction.FINAL_FORM_SUBMITTED,
            AuditAction.FINAL_FORM_APPROVED,
            AuditAction.CLUB_CREATED,
        ]

    def test_entries_name_the_actor(self, sm, clock, submitted_request):
        advance_to(sm, clock, submitted_request.id, RequestStatus.CONTACT_CONFIRMED)

        entries = sm.history(submitted_request.id, REVIEWER)
        assert [e.actor_id for e in entries] == [OWNER, REVIEWER, REVIEWER]

    def test_reviewer_comment_is_kept(self, sm, submitted_request):
        sm.receive(submitted_request.id, REVIEWER)
        sm.reject_contact(submitted_request.id, REVIEWER, "Phone number unreachable")

        entry = sm.history(submitted_request.id, OWNER)[-1]
        assert entry.action_code == AuditAction.CONTACT_REJECTED
        assert entry.comment == "Phone number unreachable"

    def test_refused_action_writes_no_entry(self, sm, submitted_request):
        before = len(sm.history(submitted_request.id, OWNER))

        with pytest.raises(InvalidStateError):
            sm.submit(submitted_request.id, OWNER)

        assert len(sm.history(submitted_request.id, OWNER)) == before

    def test_drafts_have_no_history(self, sm, chess_fields):
        draft = sm.create(OWNER, chess_fields).request
        assert sm.history(draft.id, OWNER) == []

    def test_audit_failure_does_not_undo_the_transition(
        self, sm, db_session, monkeypatch, caplog, submitted_request
    ):
        """
        A failing audit write is logged as a warning; the transition stays committed.
        """
        def broken_write(self, entry):
            raise OperationalError("INSERT INTO workflow_audit_entries", {}, Exception("disk full"))

        monkeypatch.setattr(AuditTrail, "_write", broken_write)

        with caplog.at_level(logging.WARNING, logger="app.services.audit"):
            result = sm.receive(submitted_request.id, REVIEWER)

        assert result.request.status == RequestStatus.CONTACT_CONFIRMATION_PENDING
        assert "Failed to record REQUEST_RECEIVED" in caplog.text

        db_session.expire_all()
        assert sm.get(submitted_request.id, OWNER).status == RequestStatus.CONTACT_CONFIRMATION_PENDING
        assert db_session.query(WorkflowAuditEntry).filter(
            WorkflowAuditEntry.action_code == AuditAction.REQUEST_RECEIVED
        ).count() == 0


class TestEvents:

    def test_submission_notifies_all_staff(self, sm, dispatcher, chess_fields):
        request = sm.create(OWNER, chess_fields, as_draft=False).request

        assert dispatcher.events == [WorkflowEvent(
            request_id=request.id,
            from_status=None,
            to_status=RequestStatus.SUBMITTED,
            actor_id=OWNER,
            audience=Audience.ALL_STAFF,
        )]

    def test_reviewer_actions_notify_owner_and_owner_actions_notify_reviewer(
        self, sm, clock, dispatcher, submitted_request
    ):
        advance_to(sm, clock, submitted_request.id, RequestStatus.PROPOSAL_SUBMITTED)

        last_two = dispatcher.events[-2:]
        assert last_two[0].to_status == RequestStatus.PROPOSAL_REQUIRED
        assert last_two[0].audience == Audience.OWNER
        assert last_two[1].to_status == RequestStatus.PROPOSAL_SUBMITTED
        assert last_two[1].audience == Audience.ASSIGNED_REVIEWER
        assert last_two[1].from_status == RequestStatus.PROPOSAL_REQUIRED

    def test_final_approval_notifies_owner_and_club_officers(self, sm, clock, dispatcher, submitted_request):
        advance_to(sm, clock, submitted_request.id, RequestStatus.FINAL_FORM_SUBMITTED)
        dispatcher.events.clear()

        result = sm.approve_final_form(submitted_request.id, REVIEWER)

        assert [e.audience for e in dispatcher.events] == [Audience.OWNER, Audience.CLUB_OFFICERS]
        assert result.events == dispatcher.events

    def test_refused_action_emits_nothing(self, sm, dispatcher, submitted_request):
        dispatcher.events.clear()

        with pytest.raises(ForbiddenError):
            sm.approve_final_form(submitted_request.id, REVIEWER)

        assert dispatcher.events == []

    def test_dispatcher_failure_is_swallowed(
        self, db_session, staff, clock, active_term, submitted_request, caplog
    ):
        class Unreachable:
            def dispatch(self, events):
                raise ConnectionError("notification service down")

        sm = StateMachine(db_session, staff=staff, clock=clock, dispatcher=Unreachable())

        with caplog.at_level(logging.WARNING, logger="app.services.events"):
            result = sm.receive(submitted_request.id, REVIEWER)

        assert result.request.status == RequestStatus.CONTACT_CONFIRMATION_PENDING
        assert len(result.events) == 1
        assert "Failed to dispatch" in caplog.text

    def test_logging_dispatcher_writes_one_line_per_event(self, caplog):
        event = WorkflowEvent(
            request_id=7,
            from_status=RequestStatus.SUBMITTED,
            to_status=RequestStatus.CONTACT_CONFIRMATION_PENDING,
            actor_id=REVIEWER,
            audience=Audience.OWNER,
        )

        with caplog.at_level(logging.INFO, logger="app.services.events"):
            publish(LoggingDispatcher(), [event, event])

        lines = [r for r in caplog.records if r.name == "app.services.events"]
        assert len(lines) == 2
        assert "Notify owner: request 7 SUBMITTED -> CONTACT_CONFIRMATION_PENDING" in lines[0].getMessage()
