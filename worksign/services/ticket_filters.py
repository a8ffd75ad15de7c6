"""
Role-scoped ticket listing.

Who may see which tickets is described by a small closed set of scope
values instead of ad hoc query fragments, so the whole rule fits on a screen:

- admins see every ticket
- field-team actors see tickets they created or tickets assigned to one of
  their teams
"""
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from sqlalchemy import or_
from sqlalchemy.orm import Query, Session

from worksign.models.domain import Ticket
from worksign.models.enums import TicketStatus
from worksign.services.directory import Actor, Directory


@dataclass(frozen=True)
class AllTickets:
    pass


@dataclass(frozen=True)
class MemberTickets:
    user_id: str
    team_ids: Tuple[str, ...] = ()


TicketScope = Union[AllTickets, MemberTickets]


@dataclass(frozen=True)
class TicketFilter:
    scope: TicketScope
    status: Optional[TicketStatus] = None


def scope_for(actor: Actor, directory: Directory) -> TicketScope:
    if actor.is_admin:
        return AllTickets()
    return MemberTickets(user_id=actor.subject_id, team_ids=tuple(directory.team_ids_for(actor)))


def apply_ticket_filter(query: Query, ticket_filter: TicketFilter) -> Query:
    scope = ticket_filter.scope
    if isinstance(scope, MemberTickets):
        conditions = [Ticket.created_by == scope.user_id]
        if scope.team_ids:
            conditions.append(Ticket.assigned_team_id.in_(scope.team_ids))
        query = query.filter(or_(*conditions))
    elif not isinstance(scope, AllTickets):
        raise TypeError(f"Unknown ticket scope: {scope!r}")

    if ticket_filter.status is not None:
        query = query.filter(Ticket.status == ticket_filter.status)
    return query


def list_tickets(db: Session, ticket_filter: TicketFilter) -> List[Ticket]:
    query = apply_ticket_filter(db.query(Ticket), ticket_filter)
    return query.order_by(Ticket.created_at.desc(), Ticket.id.desc()).all()


def can_view(scope: TicketScope, ticket: Ticket) -> bool:
    if isinstance(scope, AllTickets):
        return True
    return ticket.created_by == scope.user_id or ticket.assigned_team_id in scope.team_ids
