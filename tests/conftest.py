"""Pytest configuration and shared fixtures."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.config import Settings
from app.database import Base
from app.models.domain import AcademicTerm, ClubRequest
from app.models.enums import DefenseResult, RequestStatus
from app.services.identity import StaticStaffDirectory
from app.services.state_machine import StateMachine

OWNER = "U1"
REVIEWER = "S1"
OTHER_REVIEWER = "S2"
DOC_URL = "https://files.example.edu/club/proposals/chess.pdf"


class RecordingDispatcher:
    """Keeps every dispatched event in memory."""

    def __init__(self):
        self.events = []

    def dispatch(self, events):
        self.events.extend(events)


class FrozenClock:
    """A clock tests can move forward by hand."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def engine():
    # In-memory SQLite shared across sessions for fast tests
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    """Create a fresh in-memory database for each test."""
    TestingSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestingSessionLocal()

    yield session

    session.close()


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 2, 9, 0, 0))


@pytest.fixture
def staff():
    return StaticStaffDirectory({REVIEWER, OTHER_REVIEWER})


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def active_term(db_session):
    term = AcademicTerm(
        name="Spring 2026",
        code="SP26",
        start_date=date(2026, 1, 5),
        end_date=date(2026, 4, 30),
        is_current=True,
    )
    db_session.add(term)
    db_session.commit()
    return term


@pytest.fixture
def sm(db_session, staff, clock, dispatcher, active_term):
    return StateMachine(
        db_session,
        staff=staff,
        settings=Settings(max_document_bytes=20 * 1024 * 1024),
        clock=clock,
        dispatcher=dispatcher,
    )


@pytest.fixture
def chess_fields():
    return {
        "club_name": "Chess Club",
        "club_category": "Sports",
        "club_code": "CHESS",
        "expected_member_count": 20,
        "activity_objectives": "Weekly training and an annual tournament",
        "email": "chess@example.edu",
        "phone": "0987654321",
    }


@pytest.fixture
def submitted_request(sm, chess_fields) -> ClubRequest:
    """A request created directly as SUBMITTED by the owner."""
    return sm.create(OWNER, chess_fields, as_draft=False).request


def advance_to(sm: StateMachine, clock: FrozenClock, request_id: int, status: RequestStatus) -> ClubRequest:
    """
    Drive a SUBMITTED request along the happy path until it reaches `status`.

    The defense is scheduled one day ahead and the clock is moved past its start
    before the outcome is recorded.
    """
    steps = [
        (RequestStatus.CONTACT_CONFIRMATION_PENDING, lambda: sm.receive(request_id, REVIEWER)),
        (RequestStatus.CONTACT_CONFIRMED, lambda: sm.confirm_contact(request_id, REVIEWER)),
        (RequestStatus.PROPOSAL_REQUIRED, lambda: sm.request_proposal(request_id, REVIEWER)),
        (RequestStatus.PROPOSAL_SUBMITTED, lambda: sm.submit_proposal(request_id, OWNER, "Proposal v1", DOC_URL)),
        (RequestStatus.PROPOSAL_APPROVED, lambda: sm.approve_proposal(request_id, REVIEWER)),
        (RequestStatus.DEFENSE_SCHEDULE_PROPOSED, lambda: sm.propose_defense_schedule(
            request_id, OWNER,
            starts_at=clock.now + timedelta(days=1),
            ends_at=clock.now + timedelta(days=1, hours=1),
            location="Room 1",
        )),
        (RequestStatus.DEFENSE_SCHEDULE_APPROVED, lambda: sm.approve_defense_schedule(request_id, REVIEWER)),
        (RequestStatus.DEFENSE_COMPLETED, lambda: (
            clock.advance(days=1, minutes=5),
            sm.complete_defense(request_id, REVIEWER, DefenseResult.PASSED, "Well prepared"),
        )[-1]),
        (RequestStatus.FINAL_FORM_SUBMITTED, lambda: sm.submit_final_form(
            request_id, OWNER, "Final v1", "https://files.example.edu/club/final/chess.zip"
        )),
        (RequestStatus.APPROVED, lambda: sm.approve_final_form(request_id, REVIEWER)),
    ]

    result = None
    for reached, step in steps:
        result = step()
        if reached == status:
            return result.request
    raise AssertionError(f"{status} is not on the happy path")
