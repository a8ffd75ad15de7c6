"""Pydantic schemas for request/response validation."""
from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field
from worksign.models.enums import TicketStatus, SignatureType


# Ticket schemas
class TicketCreate(BaseModel):
    name_of_work: str = Field(..., min_length=1, max_length=200)
    department: str = Field(..., min_length=1)
    field_officer_name: str = Field(..., min_length=1)
    contact_no: str = Field(..., min_length=1)
    assignment_name: str = Field(..., min_length=1)
    description: str = Field(..., min_length=1)
    date_of_commencement: datetime
    number_of_working_days: int = Field(..., ge=1, le=1000)
    completion_date: Optional[datetime] = None
    assigned_team_id: Optional[str] = None


class TicketUpdate(BaseModel):
    name_of_work: Optional[str] = Field(None, min_length=1, max_length=200)
    department: Optional[str] = None
    field_officer_name: Optional[str] = None
    contact_no: Optional[str] = None
    assignment_name: Optional[str] = None
    description: Optional[str] = None
    date_of_commencement: Optional[datetime] = None
    number_of_working_days: Optional[int] = Field(None, ge=1, le=1000)
    completion_date: Optional[datetime] = None


class ProgressResponse(BaseModel):
    id: int
    day: int
    summary: str
    photos: List[str]
    team_id: str
    team_name: Optional[str]
    team_email: Optional[str]
    author_id: Optional[str]
    author_name: Optional[str]
    author_email: Optional[str]
    added_at: datetime
    field_officer_signed: bool
    field_officer_signature: Optional[str]
    field_officer_signature_type: Optional[SignatureType]
    field_officer_signed_at: Optional[datetime]
    shareable_link: Optional[str]
    link_expires_at: Optional[datetime]

    class Config:
        from_attributes = True


class TicketResponse(BaseModel):
    id: int
    ticket_no: str
    status: TicketStatus
    name_of_work: str
    department: str
    field_officer_name: str
    contact_no: str
    assignment_name: str
    description: str
    date_of_commencement: datetime
    number_of_working_days: int
    completion_date: Optional[datetime]
    assigned_team_id: Optional[str]
    assigned_team_name: Optional[str]
    created_by: str
    created_by_name: Optional[str]
    admin_signed: bool
    admin_signature: Optional[str]
    admin_signature_type: Optional[SignatureType]
    admin_signed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    daily_progress: List[ProgressResponse] = []

    class Config:
        from_attributes = True


class HistoryResponse(BaseModel):
    id: int
    action: str
    changed_by: str
    changed_by_name: Optional[str]
    old_value: Optional[str]
    new_value: Optional[str]
    description: Optional[str]
    timestamp: datetime

    class Config:
        from_attributes = True


class AssignTeam(BaseModel):
    team_id: str = Field(..., min_length=1)


class StatusChange(BaseModel):
    status: str


# Progress schemas
class ProgressWrite(BaseModel):
    day: int
    summary: str
    # Omitted keeps stored photos; an explicit list (even empty) replaces them
    photos: Optional[List[str]] = None
    progress_id: Optional[int] = None


class ProgressWritten(BaseModel):
    progress_id: int
    message: str


class NextDayResponse(BaseModel):
    """Next day the caller's team should write; null when every day is written."""
    day: Optional[int]
    number_of_working_days: int


class PhotoAttach(BaseModel):
    url: str = Field(..., min_length=1)


class PhotosResponse(BaseModel):
    progress_id: int
    photos: List[str]


# Share link schemas
class LinkResponse(BaseModel):
    token: str
    expires_at: datetime
    url: str


class PublicTicketSummary(BaseModel):
    ticket_no: str
    assignment_name: str
    description: str
    field_officer_name: str


class PublicProgress(BaseModel):
    day: int
    summary: str
    photos: List[str]
    added_by_name: str
    added_by_email: Optional[str]
    added_at: datetime
    field_officer_signed: bool


class PublicProgressResponse(BaseModel):
    """What an unauthenticated field officer sees when opening a link."""
    ticket: PublicTicketSummary
    progress: PublicProgress


# Signature schemas
class SignatureSubmit(BaseModel):
    signature: str
    signature_type: str = "text"


class AdminReadiness(BaseModel):
    ready: bool
    missing_days: List[int] = []
    unsigned_progress_ids: List[int] = []


class MessageResponse(BaseModel):
    message: str
