"""API routes for tickets, daily progress, share links and signatures."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from worksign.api.deps import get_current_actor, require_admin
from worksign.api.schemas import (
    AdminReadiness,
    AssignTeam,
    HistoryResponse,
    LinkResponse,
    MessageResponse,
    NextDayResponse,
    PhotoAttach,
    PhotosResponse,
    ProgressWrite,
    ProgressWritten,
    PublicProgress,
    PublicProgressResponse,
    PublicTicketSummary,
    SignatureSubmit,
    StatusChange,
    TicketCreate,
    TicketResponse,
    TicketUpdate,
)
from worksign.database import get_db
from worksign.models.domain import Ticket
from worksign.models.enums import TicketStatus
from worksign.services.directory import Actor, Directory, TeamRef
from worksign.services.errors import ConflictError, PermissionDeniedError, ValidationError
from worksign.services.progress_ledger import ProgressLedger, next_writable_day
from worksign.services.share_links import LinkIssuer, build_link_url
from worksign.services.signatures import SignatureAcceptor
from worksign.services.state_machine import TicketStateMachine
from worksign.services.ticket_filters import TicketFilter, can_view, list_tickets as query_tickets, scope_for

router = APIRouter()


def _visible_ticket(db: Session, actor: Actor, ticket_id: int) -> Ticket:
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    if not can_view(scope_for(actor, Directory(db)), ticket):
        raise PermissionDeniedError("You don't have access to this ticket")
    return ticket


def _acting_team(db: Session, actor: Actor, ticket: Ticket) -> TeamRef:
    """
    The team a progress action is recorded for: the ticket's assigned team.

    Field-team actors must belong to it. Admins act on its behalf.
    """
    directory = Directory(db)
    if not actor.is_admin and not directory.is_member(actor, ticket.assigned_team_id):
        raise PermissionDeniedError("You don't have permission to add progress to this ticket")
    if ticket.admin_signed:
        raise ConflictError("Ticket is closed: it has already been signed by an admin")
    if not ticket.assigned_team_id:
        raise ValidationError("Ticket has no assigned team")

    team = directory.get_team(ticket.assigned_team_id)
    if team:
        return TeamRef(id=team.id, name=team.name, email=team.email)
    return TeamRef(id=ticket.assigned_team_id, name=ticket.assigned_team_name)


# Ticket endpoints
@router.post("/tickets", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
def create_ticket(
    data: TicketCreate,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Create a ticket. Starts in_progress when created with a team, pending otherwise."""
    directory = Directory(db)
    team = None
    if data.assigned_team_id:
        if not actor.is_admin and not directory.is_member(actor, data.assigned_team_id):
            raise PermissionDeniedError("You can only assign tickets to teams you belong to")
        team = directory.require_team(data.assigned_team_id)

    return TicketStateMachine(db).create_ticket(
        name_of_work=data.name_of_work,
        department=data.department,
        field_officer_name=data.field_officer_name,
        contact_no=data.contact_no,
        assignment_name=data.assignment_name,
        description=data.description,
        date_of_commencement=data.date_of_commencement,
        number_of_working_days=data.number_of_working_days,
        completion_date=data.completion_date,
        created_by=actor.subject_id,
        created_by_name=directory.display_name(actor),
        team=team,
    )


@router.get("/tickets", response_model=List[TicketResponse])
def list_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status"),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """List the tickets the caller may see, newest first."""
    scope = scope_for(actor, Directory(db))
    return query_tickets(db, TicketFilter(scope=scope, status=status_filter))


@router.get("/tickets/{ticket_id}", response_model=TicketResponse)
def get_ticket(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return _visible_ticket(db, actor, ticket_id)


@router.patch("/tickets/{ticket_id}", response_model=TicketResponse)
def update_ticket(
    ticket_id: int,
    data: TicketUpdate,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Edit work metadata (admin only).
    The completion date follows schedule changes unless given.
    """
    sm = TicketStateMachine(db)
    ticket = sm.get_ticket(ticket_id)
    updates = data.model_dump(exclude_unset=True, exclude_none=True)
    return sm.update_ticket(
        ticket, updates, actor.subject_id, Directory(db).display_name(actor)
    )


@router.get("/tickets/{ticket_id}/history", response_model=List[HistoryResponse])
def get_history(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    return _visible_ticket(db, actor, ticket_id).history


@router.patch("/tickets/{ticket_id}/assign", response_model=TicketResponse)
def assign_team(
    ticket_id: int,
    data: AssignTeam,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Assign a team.
    Side effect: a pending ticket moves to in_progress.
    """
    sm = TicketStateMachine(db)
    ticket = sm.get_ticket(ticket_id)
    directory = Directory(db)
    team = directory.require_team(data.team_id)
    return sm.assign_team(ticket, team, actor.subject_id, directory.display_name(actor))


@router.patch("/tickets/{ticket_id}/status", response_model=TicketResponse)
def change_status(
    ticket_id: int,
    data: StatusChange,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Manual status override. Does NOT check the progress gate;
    the gated way to close a ticket is the admin signature.
    """
    sm = TicketStateMachine(db)
    ticket = sm.get_ticket(ticket_id)
    return sm.change_status(ticket, data.status, actor.subject_id, Directory(db).display_name(actor))


# Progress endpoints
@router.post("/tickets/{ticket_id}/progress", response_model=ProgressWritten)
def write_progress(
    ticket_id: int,
    data: ProgressWrite,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    Write the caller's team's progress for a day.
    A second write for the same day edits the existing entry.
    """
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    team = _acting_team(db, actor, ticket)
    progress_id = ProgressLedger(db).write_progress(
        ticket_id,
        data.day,
        data.summary,
        team,
        author=Directory(db).author_for(actor),
        photos=data.photos,
        progress_id=data.progress_id,
    )
    message = "Progress updated successfully" if data.progress_id else "Progress saved successfully"
    return ProgressWritten(progress_id=progress_id, message=message)


@router.get("/tickets/{ticket_id}/progress/next-day", response_model=NextDayResponse)
def get_next_day(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Which day the caller's team should write progress for next."""
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    team = _acting_team(db, actor, ticket)
    entries = ProgressLedger(db).entries_for_team(ticket.id, team.id)
    return NextDayResponse(
        day=next_writable_day(entries, ticket.number_of_working_days, datetime.utcnow().date()),
        number_of_working_days=ticket.number_of_working_days,
    )


@router.post("/tickets/{ticket_id}/progress/{progress_id}/photos", response_model=PhotosResponse)
def attach_photo(
    ticket_id: int,
    progress_id: int,
    data: PhotoAttach,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """Link an uploaded photo (already stored by the asset service) to an entry."""
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    _acting_team(db, actor, ticket)
    photos = ProgressLedger(db).attach_photo(ticket_id, progress_id, data.url)
    return PhotosResponse(progress_id=progress_id, photos=photos)


@router.delete("/tickets/{ticket_id}/progress/{progress_id}/photos", response_model=PhotosResponse)
def remove_photo(
    ticket_id: int,
    progress_id: int,
    url: str = Query(..., min_length=1),
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    _acting_team(db, actor, ticket)
    photos = ProgressLedger(db).remove_photo(ticket_id, progress_id, url)
    return PhotosResponse(progress_id=progress_id, photos=photos)


@router.post("/tickets/{ticket_id}/progress/{progress_id}/link", response_model=LinkResponse)
def issue_link(
    ticket_id: int,
    progress_id: int,
    actor: Actor = Depends(get_current_actor),
    db: Session = Depends(get_db)
):
    """
    Get the shareable review link for a progress entry.
    Returns the same link while it is still valid.
    """
    ticket = TicketStateMachine(db).get_ticket(ticket_id)
    if not actor.is_admin and not Directory(db).is_member(actor, ticket.assigned_team_id):
        raise PermissionDeniedError("You don't have permission to generate link for this ticket")

    link = LinkIssuer(db).issue_link(ticket_id, progress_id)
    return LinkResponse(token=link.token, expires_at=link.expires_at, url=build_link_url(link.token))


# Unauthenticated link endpoints - the token is the capability
@router.get("/progress/{token}", response_model=PublicProgressResponse)
def get_progress_by_link(token: str, db: Session = Depends(get_db)):
    ticket, entry = SignatureAcceptor(db).fetch_by_link(token)
    return PublicProgressResponse(
        ticket=PublicTicketSummary(
            ticket_no=ticket.ticket_no,
            assignment_name=ticket.assignment_name,
            description=ticket.description,
            field_officer_name=ticket.field_officer_name,
        ),
        progress=PublicProgress(
            day=entry.day,
            summary=entry.summary,
            photos=entry.photos or [],
            added_by_name=entry.author_name or entry.team_name or "Team Member",
            added_by_email=entry.author_email or entry.team_email,
            added_at=entry.added_at,
            field_officer_signed=entry.field_officer_signed,
        ),
    )


@router.post("/progress/{token}/signature", response_model=MessageResponse)
def submit_field_officer_signature(token: str, data: SignatureSubmit, db: Session = Depends(get_db)):
    """Sign the progress entry behind a link. Works once; the link is spent afterwards."""
    SignatureAcceptor(db).submit_signature(token, data.signature, data.signature_type)
    return MessageResponse(message="Signature submitted successfully")


# Admin gate endpoints
@router.get("/tickets/{ticket_id}/admin-readiness", response_model=AdminReadiness)
def get_admin_readiness(ticket_id: int, actor: Actor = Depends(get_current_actor), db: Session = Depends(get_db)):
    """Whether every working day is signed. For display; the signature re-checks."""
    ticket = _visible_ticket(db, actor, ticket_id)
    report = TicketStateMachine(db).admin_gate_report(ticket)
    return AdminReadiness(
        ready=report.ready,
        missing_days=report.missing_days,
        unsigned_progress_ids=report.unsigned_progress_ids,
    )


@router.post("/tickets/{ticket_id}/admin-signature", response_model=TicketResponse)
def submit_admin_signature(
    ticket_id: int,
    data: SignatureSubmit,
    actor: Actor = Depends(require_admin),
    db: Session = Depends(get_db)
):
    """
    Apply the final admin signature and close the ticket.

    WILL REFUSE (412) unless every working day has signed progress.
    """
    return TicketStateMachine(db).submit_admin_signature(
        ticket_id,
        actor.subject_id,
        Directory(db).display_name(actor),
        data.signature,
        data.signature_type,
    )
