"""Pydantic schemas for request/response validation."""
from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.enums import DefenseResult, RequestStatus


# Club request schemas
class ClubRequestFields(BaseModel):
    club_name: Optional[str] = Field(None, max_length=100)
    club_category: Optional[str] = Field(None, max_length=100)
    club_code: Optional[str] = Field(None, max_length=50)
    expected_member_count: Optional[int] = None
    activity_objectives: Optional[str] = None
    expected_activities: Optional[str] = None
    description: Optional[str] = None
    email: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    facebook_link: Optional[str] = Field(None, max_length=255)
    instagram_link: Optional[str] = Field(None, max_length=255)
    tiktok_link: Optional[str] = Field(None, max_length=255)


class ClubRequestCreate(ClubRequestFields):
    is_draft: bool = True


class ClubRequestUpdate(ClubRequestFields):
    """Partial update - only the fields present in the body change."""


class ClubRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    club_name: Optional[str]
    club_category: Optional[str]
    club_code: Optional[str]
    expected_member_count: Optional[int]
    activity_objectives: Optional[str]
    expected_activities: Optional[str]
    description: Optional[str]
    email: Optional[str]
    phone: Optional[str]
    facebook_link: Optional[str]
    instagram_link: Optional[str]
    tiktok_link: Optional[str]
    status: RequestStatus
    created_by: str
    assigned_reviewer_id: Optional[str]
    submitted_at: Optional[datetime]
    received_at: Optional[datetime]
    confirmation_deadline: Optional[datetime]
    confirmed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime


class TransitionResponse(BaseModel):
    request: ClubRequestResponse
    club_id: Optional[int] = None


# Reviewer input
class ReviewComment(BaseModel):
    comment: Optional[str] = Field(None, max_length=2000)


class NameRevision(BaseModel):
    club_name: str = Field(..., min_length=1, max_length=100)
    club_code: Optional[str] = Field(None, max_length=50)


# Document schemas
class DocumentSubmit(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    document_url: str = Field(..., min_length=1, max_length=500)
    file_name: Optional[str] = None
    size_bytes: Optional[int] = None


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    sequence: int
    title: str
    document_url: str
    submitted_by: str
    created_at: datetime


# Defense schemas
class DefenseSlot(BaseModel):
    starts_at: datetime
    ends_at: datetime
    location: Optional[str] = Field(None, max_length=500)
    meeting_link: Optional[str] = Field(None, max_length=500)
    notes: Optional[str] = None


class DefenseOutcome(BaseModel):
    result: DefenseResult
    feedback: Optional[str] = None


class DefenseScheduleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    starts_at: datetime
    ends_at: datetime
    location: Optional[str]
    meeting_link: Optional[str]
    notes: Optional[str]
    result: Optional[DefenseResult]
    feedback: Optional[str]
    updated_at: datetime


# History
class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    request_id: int
    actor_id: str
    action_code: str
    comment: Optional[str]
    created_at: datetime


# Error response
class WorkflowErrorResponse(BaseModel):
    """Body returned when the workflow refuses an action."""
    kind: str
    message: str
    current_status: Optional[RequestStatus] = None
    allowed_statuses: List[RequestStatus] = []
