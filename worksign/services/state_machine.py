"""
State machine that enforces the ticket lifecycle invariants.

Every status change, team assignment and the final admin signature MUST go
through here, so that each one leaves exactly one history record behind.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import and_, exists
from sqlalchemy.orm import Session

from worksign.models.audit import HistoryAction, TicketHistory
from worksign.models.domain import ProgressEntry, Ticket
from worksign.models.enums import TicketStatus
from worksign.services.directory import TeamRef
from worksign.services.errors import (
    ConflictError,
    NotFoundError,
    PreconditionFailedError,
    ValidationError,
)
from worksign.services.sanitize import clean_signature, sanitize_input

MAX_WORKING_DAYS = 1000

# Fields an edit may touch; everything else goes through a dedicated transition
EDITABLE_FIELDS = (
    "name_of_work",
    "department",
    "field_officer_name",
    "contact_no",
    "assignment_name",
    "description",
    "date_of_commencement",
    "number_of_working_days",
    "completion_date",
)
_TEXT_FIELDS = EDITABLE_FIELDS[:6]


def calculate_completion_date(date_of_commencement: datetime, number_of_working_days: int) -> datetime:
    """Add working days to the commencement date, skipping Saturdays and Sundays."""
    current = date_of_commencement
    added = 0
    while added < number_of_working_days:
        current = current + timedelta(days=1)
        if current.weekday() < 5:
            added += 1
    return current


@dataclass
class AdminGateReport:
    """Why a ticket is or is not ready for the admin signature."""
    ready: bool
    missing_days: List[int] = field(default_factory=list)
    unsigned_progress_ids: List[int] = field(default_factory=list)


class TicketStateMachine:
    """Enforces ticket transition invariants and the admin signature gate."""

    def __init__(self, db: Session):
        self.db = db

    def get_ticket(self, ticket_id: int) -> Ticket:
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            raise NotFoundError("Ticket not found")
        return ticket

    def create_ticket(
        self,
        *,
        name_of_work: str,
        department: str,
        field_officer_name: str,
        contact_no: str,
        assignment_name: str,
        description: str,
        date_of_commencement: datetime,
        number_of_working_days: int,
        created_by: str,
        created_by_name: Optional[str] = None,
        completion_date: Optional[datetime] = None,
        team: Optional[TeamRef] = None
    ) -> Ticket:
        """
        Create a ticket with the next sequential ticket number.

        Starts as in_progress when created with a team, pending otherwise.
        """
        values = self._clean_fields({
            "name_of_work": name_of_work,
            "department": department,
            "field_officer_name": field_officer_name,
            "contact_no": contact_no,
            "assignment_name": assignment_name,
            "description": description,
        })
        self._check_working_days(number_of_working_days)

        if completion_date is None:
            completion_date = calculate_completion_date(date_of_commencement, number_of_working_days)

        ticket = Ticket(
            status=TicketStatus.IN_PROGRESS if team else TicketStatus.PENDING,
            date_of_commencement=date_of_commencement,
            number_of_working_days=number_of_working_days,
            completion_date=completion_date,
            assigned_team_id=team.id if team else None,
            assigned_team_name=team.name if team else None,
            created_by=created_by,
            created_by_name=created_by_name,
            admin_signed=False,
            **values
        )
        self.db.add(ticket)
        self.db.flush()
        ticket.ticket_no = f"TKT{ticket.id:03d}"

        self._append_history(
            ticket,
            HistoryAction.CREATED,
            changed_by=created_by,
            changed_by_name=created_by_name,
            description=f"Ticket created by {created_by_name or 'User'}",
        )
        self.db.commit()
        self.db.refresh(ticket)

        logger.info("Created ticket {} ({})", ticket.ticket_no, ticket.status.value)
        return ticket

    def update_ticket(
        self,
        ticket: Ticket,
        updates: Dict[str, Any],
        updated_by: str,
        updated_by_name: Optional[str] = None
    ) -> Ticket:
        """
        Edit work metadata.

        The completion date is recomputed when the schedule changes and no
        explicit date is supplied. Working days can't shrink below a day that
        already has progress.
        """
        self._ensure_not_closed(ticket)

        unknown = set(updates) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        values = dict(updates)
        values.update(self._clean_fields({k: v for k, v in updates.items() if k in _TEXT_FIELDS}))

        if "number_of_working_days" in values:
            days = values["number_of_working_days"]
            self._check_working_days(days)
            highest = max((p.day for p in ticket.daily_progress), default=0)
            if days < highest:
                raise ValidationError(
                    f"Number of working days cannot be less than {highest}: progress exists for day {highest}"
                )

        schedule_changed = "number_of_working_days" in values or "date_of_commencement" in values
        if schedule_changed and values.get("completion_date") is None:
            values["completion_date"] = calculate_completion_date(
                values.get("date_of_commencement", ticket.date_of_commencement),
                values.get("number_of_working_days", ticket.number_of_working_days),
            )

        for name, value in values.items():
            setattr(ticket, name, value)
        ticket.updated_at = datetime.utcnow()

        self._append_history(
            ticket,
            HistoryAction.UPDATED,
            changed_by=updated_by,
            changed_by_name=updated_by_name,
            description=f"Ticket updated by {updated_by_name or 'User'}",
        )
        self.db.commit()
        self.db.refresh(ticket)
        return ticket

    def assign_team(
        self,
        ticket: Ticket,
        team: TeamRef,
        assigned_by: str,
        assigned_by_name: Optional[str] = None
    ) -> Ticket:
        """
        Assign (or reassign) a team.

        Side effect: the first assignment promotes pending → in_progress.
        Reassignment of an in_progress ticket only changes the team fields.
        """
        self._ensure_not_closed(ticket)
        if ticket.status == TicketStatus.DONE:
            raise ConflictError("Cannot assign a team to a ticket that is done")

        old_team = ticket.assigned_team_name or ticket.assigned_team_id or "Unassigned"
        new_team = team.name or team.id
        description = f"Ticket assigned to {new_team} by {assigned_by_name or 'User'}"

        ticket.assigned_team_id = team.id
        ticket.assigned_team_name = team.name
        if ticket.status == TicketStatus.PENDING:
            ticket.status = TicketStatus.IN_PROGRESS
            description = (
                f"Ticket assigned to {new_team} and status changed to in_progress "
                f"by {assigned_by_name or 'User'}"
            )
        ticket.updated_at = datetime.utcnow()

        self._append_history(
            ticket,
            HistoryAction.ASSIGNED,
            changed_by=assigned_by,
            changed_by_name=assigned_by_name,
            old_value=old_team,
            new_value=new_team,
            description=description,
        )
        self.db.commit()
        self.db.refresh(ticket)

        logger.info("Ticket {} assigned {} -> {}", ticket.ticket_no, old_team, new_team)
        return ticket

    def change_status(
        self,
        ticket: Ticket,
        new_status: TicketStatus,
        changed_by: str,
        changed_by_name: Optional[str] = None
    ) -> Ticket:
        """
        Manual status override for admins.

        Any of the three statuses may be set and the progress gate is NOT
        checked; this is deliberately looser than submit_admin_signature.
        Admin-signed tickets are terminal and refuse the override.
        """
        self._ensure_not_closed(ticket)
        try:
            new_status = TicketStatus(new_status)
        except ValueError:
            raise ValidationError("Invalid status. Must be pending, in_progress, or done")

        old_status = ticket.status
        ticket.status = new_status
        ticket.updated_at = datetime.utcnow()

        self._append_history(
            ticket,
            HistoryAction.STATUS_CHANGED,
            changed_by=changed_by,
            changed_by_name=changed_by_name,
            old_value=old_status.value,
            new_value=new_status.value,
            description=(
                f"Status changed from {old_status.value} to {new_status.value} "
                f"by {changed_by_name or 'User'}"
            ),
        )
        self.db.commit()
        self.db.refresh(ticket)

        logger.info("Ticket {} status {} -> {}", ticket.ticket_no, old_status.value, new_status.value)
        return ticket

    def admin_gate_report(self, ticket: Ticket) -> AdminGateReport:
        """
        Calculate whether a ticket may receive the admin signature.

        Readiness invariants:
        - At least one progress entry exists
        - Every working day has at least one entry (any team)
        - Every entry, regardless of team, is signed by the field officer
        """
        entries = ticket.daily_progress
        days_present = {p.day for p in entries}
        missing_days = [
            day for day in range(1, ticket.number_of_working_days + 1)
            if day not in days_present
        ]
        unsigned = [p.id for p in entries if not p.field_officer_signed]

        ready = (
            bool(entries)
            and len(days_present) == ticket.number_of_working_days
            and not unsigned
        )
        return AdminGateReport(ready=ready, missing_days=missing_days, unsigned_progress_ids=unsigned)

    def is_ready_for_admin_signature(self, ticket_id: int) -> bool:
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            return False
        return self.admin_gate_report(ticket).ready

    def submit_admin_signature(
        self,
        ticket_id: int,
        admin_id: str,
        admin_name: str,
        signature: str,
        signature_type: str = "text"
    ) -> Ticket:
        """
        Apply the final admin signature and close the ticket.

        Terminal transition: status → done, admin_signed set, team released,
        one admin_signed history record. Readiness is re-checked here and
        again inside the UPDATE, so a stale client check can't close a ticket
        with unsigned days.
        """
        ticket = self.get_ticket(ticket_id)
        if ticket.admin_signed:
            raise ConflictError("Ticket has already been signed by an admin")

        working_days = ticket.number_of_working_days
        report = self.admin_gate_report(ticket)
        if not report.ready:
            logger.warning(
                "Refused admin signature on {}: missing days {}, unsigned entries {}",
                ticket.ticket_no, report.missing_days, report.unsigned_progress_ids,
            )
            raise PreconditionFailedError(
                "All daily progress must be signed by field officer before admin can sign",
                missing_days=report.missing_days,
                unsigned_progress_ids=report.unsigned_progress_ids,
            )

        signature, kind = clean_signature(signature, signature_type)

        now = datetime.utcnow()
        unsigned_entry = exists().where(and_(
            ProgressEntry.ticket_id == ticket.id,
            ProgressEntry.field_officer_signed.is_(False),
        ))
        rows = (
            self.db.query(Ticket)
            .filter(
                Ticket.id == ticket.id,
                Ticket.admin_signed.is_(False),
                # Schedule unchanged since the report was taken
                Ticket.number_of_working_days == working_days,
                ~unsigned_entry,
            )
            .update(
                {
                    Ticket.admin_signed: True,
                    Ticket.admin_signature: signature,
                    Ticket.admin_signature_type: kind,
                    Ticket.admin_signed_at: now,
                    Ticket.status: TicketStatus.DONE,
                    Ticket.assigned_team_id: None,
                    Ticket.assigned_team_name: None,
                    Ticket.updated_at: now,
                },
                synchronize_session=False,
            )
        )
        if rows == 0:
            # Lost a race: the ticket or its progress changed after the report
            self.db.rollback()
            ticket = self.get_ticket(ticket_id)
            if ticket.admin_signed:
                raise ConflictError("Ticket has already been signed by an admin")
            report = self.admin_gate_report(ticket)
            raise PreconditionFailedError(
                "All daily progress must be signed by field officer before admin can sign",
                missing_days=report.missing_days,
                unsigned_progress_ids=report.unsigned_progress_ids,
            )

        self.db.add(TicketHistory(
            ticket_id=ticket.id,
            action=HistoryAction.ADMIN_SIGNED,
            changed_by=admin_id,
            changed_by_name=admin_name,
            timestamp=now,
            description=f"Ticket completed and signed by admin {admin_name}",
        ))
        self.db.commit()
        self.db.refresh(ticket)

        logger.info("Ticket {} closed with admin signature by {}", ticket.ticket_no, admin_name)
        return ticket

    def _append_history(
        self,
        ticket: Ticket,
        action: str,
        changed_by: str,
        changed_by_name: Optional[str] = None,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
        description: Optional[str] = None
    ) -> TicketHistory:
        entry = TicketHistory(
            action=action,
            changed_by=changed_by,
            changed_by_name=changed_by_name,
            old_value=old_value,
            new_value=new_value,
            description=description,
        )
        ticket.history.append(entry)
        return entry

    def _ensure_not_closed(self, ticket: Ticket) -> None:
        """Admin-signed tickets are terminal."""
        if ticket.admin_signed:
            raise ConflictError("Ticket is closed: it has already been signed by an admin")

    def _clean_fields(self, fields: Dict[str, Optional[str]]) -> Dict[str, str]:
        cleaned = {}
        for name, value in fields.items():
            value = sanitize_input(value)
            if not value:
                raise ValidationError(f"{name.replace('_', ' ').capitalize()} is required")
            cleaned[name] = value
        name_of_work = cleaned.get("name_of_work")
        if name_of_work is not None and not 2 <= len(name_of_work) <= 200:
            raise ValidationError("Name of work must be between 2 and 200 characters")
        return cleaned

    def _check_working_days(self, days: int) -> None:
        if not isinstance(days, int) or isinstance(days, bool) or not 1 <= days <= MAX_WORKING_DAYS:
            raise ValidationError(f"Number of working days must be between 1 and {MAX_WORKING_DAYS}")
