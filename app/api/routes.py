"""API routes for the club establishment workflow."""
from typing import List

from fastapi import APIRouter, Depends, Header, Response, status
from sqlalchemy.orm import Session

from app.api.schemas import (
    AuditEntryResponse,
    ClubRequestCreate,
    ClubRequestResponse,
    ClubRequestUpdate,
    DefenseOutcome,
    DefenseScheduleResponse,
    DefenseSlot,
    DocumentResponse,
    DocumentSubmit,
    NameRevision,
    ReviewComment,
    TransitionResponse,
    WorkflowErrorResponse,
)
from app.database import get_db
from app.services.events import LoggingDispatcher
from app.services.state_machine import StateMachine, TransitionResult

router = APIRouter(responses={
    400: {"model": WorkflowErrorResponse, "description": "Validation failed"},
    403: {"model": WorkflowErrorResponse, "description": "Actor not allowed"},
    404: {"model": WorkflowErrorResponse, "description": "Not found"},
    409: {"model": WorkflowErrorResponse, "description": "Action not allowed in the current status"},
})


def get_state_machine(db: Session = Depends(get_db)) -> StateMachine:
    return StateMachine(db, dispatcher=LoggingDispatcher())


def current_user(x_user_id: str = Header(...)) -> str:
    """Authentication is external; the gateway forwards the caller's id."""
    return x_user_id


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        request=ClubRequestResponse.model_validate(result.request),
        club_id=result.club.id if result.club is not None else None,
    )


# Request aggregate
@router.post("/requests", response_model=TransitionResponse, status_code=status.HTTP_201_CREATED)
def create_request(
    body: ClubRequestCreate,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    """Create a request as a DRAFT, or directly as SUBMITTED when is_draft is false."""
    fields = body.model_dump(exclude={"is_draft"}, exclude_unset=True)
    return _transition_response(sm.create(user_id, fields, as_draft=body.is_draft))


@router.get("/requests/{request_id}", response_model=ClubRequestResponse)
def get_request(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return sm.get(request_id, user_id)


@router.patch("/requests/{request_id}", response_model=ClubRequestResponse)
def update_request(
    request_id: int,
    body: ClubRequestUpdate,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return sm.update(request_id, user_id, body.model_dump(exclude_unset=True))


@router.delete("/requests/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_request(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    sm.delete(request_id, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/requests/{request_id}/submit", response_model=TransitionResponse)
def submit_request(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return _transition_response(sm.submit(request_id, user_id))


# Contact confirmation
@router.post("/requests/{request_id}/receive", response_model=TransitionResponse)
def receive_request(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return _transition_response(sm.receive(request_id, user_id))


@router.post("/requests/{request_id}/confirm-contact", response_model=TransitionResponse)
def confirm_contact(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return _transition_response(sm.confirm_contact(request_id, user_id))


@router.post("/requests/{request_id}/reject-contact", response_model=TransitionResponse)
def reject_contact(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.reject_contact(request_id, user_id, body.comment))


@router.post("/requests/{request_id}/name-revision/request", response_model=TransitionResponse)
def request_name_revision(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.request_name_revision(request_id, user_id, body.comment))


@router.post("/requests/{request_id}/name-revision", response_model=TransitionResponse)
def submit_name_revision(
    request_id: int,
    body: NameRevision,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.submit_name_revision(request_id, user_id, body.club_name, body.club_code))


# Proposal
@router.post("/requests/{request_id}/proposal/request", response_model=TransitionResponse)
def request_proposal(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.request_proposal(request_id, user_id, body.comment))


@router.get("/requests/{request_id}/proposals", response_model=List[DocumentResponse])
def list_proposals(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    """All proposal versions, newest first."""
    return sm.list_proposals(request_id, user_id)


@router.post("/requests/{request_id}/proposals", response_model=TransitionResponse)
def submit_proposal(
    request_id: int,
    body: DocumentSubmit,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.submit_proposal(
        request_id, user_id, body.title, body.document_url, body.file_name, body.size_bytes
    ))


@router.post("/requests/{request_id}/proposals/approve", response_model=TransitionResponse)
def approve_proposal(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.approve_proposal(request_id, user_id, body.comment))


@router.post("/requests/{request_id}/proposals/reject", response_model=TransitionResponse)
def reject_proposal(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.reject_proposal(request_id, user_id, body.comment))


# Defense
@router.get("/requests/{request_id}/defense-schedule", response_model=DefenseScheduleResponse)
def get_defense_schedule(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return sm.get_defense_schedule(request_id, user_id)


@router.post("/requests/{request_id}/defense-schedule", response_model=TransitionResponse)
def propose_defense_schedule(
    request_id: int,
    body: DefenseSlot,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.propose_defense_schedule(
        request_id, user_id, body.starts_at, body.ends_at, body.location, body.meeting_link, body.notes
    ))


@router.put("/requests/{request_id}/defense-schedule", response_model=TransitionResponse)
def update_defense_schedule(
    request_id: int,
    body: DefenseSlot,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.update_defense_schedule(
        request_id, user_id, body.starts_at, body.ends_at, body.location, body.meeting_link, body.notes
    ))


@router.post("/requests/{request_id}/defense-schedule/approve", response_model=TransitionResponse)
def approve_defense_schedule(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return _transition_response(sm.approve_defense_schedule(request_id, user_id))


@router.post("/requests/{request_id}/defense-schedule/reject", response_model=TransitionResponse)
def reject_defense_schedule(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.reject_defense_schedule(request_id, user_id, body.comment))


@router.post("/requests/{request_id}/defense/complete", response_model=TransitionResponse)
def complete_defense(
    request_id: int,
    body: DefenseOutcome,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    """PASSED moves on to the final form; FAILED rejects the request."""
    return _transition_response(sm.complete_defense(request_id, user_id, body.result, body.feedback))


# Final form
@router.get("/requests/{request_id}/final-forms", response_model=List[DocumentResponse])
def list_final_forms(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return sm.list_final_forms(request_id, user_id)


@router.post("/requests/{request_id}/final-forms", response_model=TransitionResponse)
def submit_final_form(
    request_id: int,
    body: DocumentSubmit,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    return _transition_response(sm.submit_final_form(
        request_id, user_id, body.title, body.document_url, body.file_name, body.size_bytes
    ))


@router.post("/requests/{request_id}/final-forms/approve", response_model=TransitionResponse)
def approve_final_form(
    request_id: int,
    body: ReviewComment,
    user_id: str = Depends(current_user),
    sm: StateMachine = Depends(get_state_machine),
):
    """Approve the latest final form and establish the club."""
    return _transition_response(sm.approve_final_form(request_id, user_id, body.comment))


# History
@router.get("/requests/{request_id}/history", response_model=List[AuditEntryResponse])
def get_history(request_id: int, user_id: str = Depends(current_user), sm: StateMachine = Depends(get_state_machine)):
    return sm.history(request_id, user_id)
