"""
Tests for versioned proposal and final form documents.
"""
from datetime import timedelta

import pytest

from conftest import DOC_URL, OWNER, REVIEWER, advance_to
from app.models.domain import ProposalDocument
from app.models.enums import RequestStatus
from app.services.documents import final_form_store, proposal_store, validate_document
from app.services.errors import NotFoundError, ValidationError

MAX_BYTES = 20 * 1024 * 1024


class TestVersioning:

    def test_three_submissions_keep_three_versions(self, sm, db_session, clock, submitted_request):
        """
        Each submission appends a version; earlier versions are never modified.
        """
        request_id = submitted_request.id
        advance_to(sm, clock, request_id, RequestStatus.PROPOSAL_REQUIRED)

        for n in (1, 2, 3):
            clock.advance(minutes=1)
            sm.submit_proposal(request_id, OWNER, f"Proposal v{n}", f"https://files.example.edu/p{n}.pdf")

        versions = sm.list_proposals(request_id, REVIEWER)
        assert [v.sequence for v in versions] == [3, 2, 1]
        assert [v.title for v in versions] == ["Proposal v3", "Proposal v2", "Proposal v1"]
        assert versions[2].document_url == "https://files.example.edu/p1.pdf"
        assert sm.latest_proposal(request_id, REVIEWER).sequence == 3

        assert db_session.query(ProposalDocument).filter(
            ProposalDocument.request_id == request_id
        ).count() == 3

    def test_approval_targets_latest_version(self, sm, clock, submitted_request):
        request_id = submitted_request.id
        advance_to(sm, clock, request_id, RequestStatus.PROPOSAL_SUBMITTED)
        clock.advance(minutes=1)
        sm.submit_proposal(request_id, OWNER, "Proposal v2", DOC_URL)

        sm.approve_proposal(request_id, REVIEWER, "Looks good")

        entry = sm.history(request_id, REVIEWER)[-1]
        assert entry.action_code == "PROPOSAL_APPROVED"
        assert "version 2" in entry.comment
        assert "Looks good" in entry.comment

    def test_approve_without_any_proposal_is_not_found(self, sm, db_session, clock, submitted_request):
        request_id = submitted_request.id
        advance_to(sm, clock, request_id, RequestStatus.PROPOSAL_REQUIRED)

        # Force a submitted status with no version behind it
        request = sm.get(request_id, OWNER)
        request.status = RequestStatus.PROPOSAL_SUBMITTED
        db_session.commit()

        with pytest.raises(NotFoundError):
            sm.approve_proposal(request_id, REVIEWER)
        assert sm.get(request_id, OWNER).status == RequestStatus.PROPOSAL_SUBMITTED


class TestLatest:

    def test_latest_is_by_creation_time_not_insertion_order(self, db_session, clock, submitted_request):
        store = proposal_store(db_session, clock)

        clock.advance(hours=2)
        store.add_version(submitted_request.id, "Written later", DOC_URL, OWNER)
        clock.advance(hours=-1)
        store.add_version(submitted_request.id, "Back-dated", DOC_URL, OWNER)
        db_session.commit()

        latest = store.latest(submitted_request.id)
        assert latest.title == "Written later"
        assert latest.sequence == 1

    def test_sequence_breaks_timestamp_ties(self, db_session, clock, submitted_request):
        store = final_form_store(db_session, clock)

        store.add_version(submitted_request.id, "First", DOC_URL, OWNER)
        store.add_version(submitted_request.id, "Second", DOC_URL, OWNER)
        db_session.commit()

        assert store.latest(submitted_request.id).title == "Second"

    def test_latest_with_no_versions_is_not_found(self, db_session, clock, submitted_request):
        with pytest.raises(NotFoundError) as exc_info:
            final_form_store(db_session, clock).latest(submitted_request.id)
        assert "final form" in str(exc_info.value)

    def test_versions_are_kept_per_request(self, db_session, clock, sm, chess_fields):
        first = sm.create(OWNER, chess_fields).request
        second = sm.create(OWNER, chess_fields).request
        store = proposal_store(db_session, clock)

        store.add_version(first.id, "A", DOC_URL, OWNER)
        store.add_version(second.id, "B", DOC_URL, OWNER)
        db_session.commit()

        assert store.latest(first.id).sequence == 1
        assert store.latest(second.id).sequence == 1
        assert store.list_all(second.id)[0].title == "B"


class TestValidateDocument:

    @pytest.mark.parametrize("url", [
        "https://files.example.edu/proposal.pdf",
        "https://files.example.edu/proposal.DOCX",
        "https://files.example.edu/bundle.zip",
        "https://storage.example.edu/objects/8f3a91",
    ])
    def test_accepted_references(self, url):
        validate_document("Proposal", url, MAX_BYTES)

    def test_disallowed_extension_is_refused(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_document("Proposal", "https://files.example.edu/run.exe", MAX_BYTES)
        assert ".exe" in str(exc_info.value)

    def test_file_name_takes_precedence_over_url(self):
        with pytest.raises(ValidationError):
            validate_document(
                "Proposal", "https://storage.example.edu/objects/8f3a91", MAX_BYTES, file_name="photo.png"
            )

    def test_blank_title_is_refused(self):
        with pytest.raises(ValidationError):
            validate_document("   ", DOC_URL, MAX_BYTES)

    def test_blank_url_is_refused(self):
        with pytest.raises(ValidationError):
            validate_document("Proposal", "", MAX_BYTES)

    def test_size_limits(self):
        validate_document("Proposal", DOC_URL, MAX_BYTES, size_bytes=MAX_BYTES)
        with pytest.raises(ValidationError):
            validate_document("Proposal", DOC_URL, MAX_BYTES, size_bytes=MAX_BYTES + 1)
        with pytest.raises(ValidationError):
            validate_document("Proposal", DOC_URL, MAX_BYTES, size_bytes=0)

    def test_rejected_document_leaves_no_version(self, sm, clock, submitted_request):
        request_id = submitted_request.id
        advance_to(sm, clock, request_id, RequestStatus.PROPOSAL_REQUIRED)

        with pytest.raises(ValidationError):
            sm.submit_proposal(request_id, OWNER, "Proposal", "https://files.example.edu/p.exe")

        assert sm.list_proposals(request_id, OWNER) == []
        assert sm.get(request_id, OWNER).status == RequestStatus.PROPOSAL_REQUIRED
