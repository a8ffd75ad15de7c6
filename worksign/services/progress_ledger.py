"""
Progress ledger - one progress entry per (ticket, day, team).

A second write for the same day and team edits the existing entry instead of
adding a duplicate. Edits are conditional on the entry still being unsigned,
so a signature applied concurrently is never overwritten.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from worksign.models.domain import ProgressEntry, Ticket
from worksign.services.directory import AuthorRef, TeamRef
from worksign.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from worksign.services.sanitize import clean_photo_url, clean_photo_urls, clean_summary

ALREADY_SIGNED_MESSAGE = "This progress has already been signed and can no longer be edited"


def next_writable_day(entries: Iterable, number_of_working_days: int, today: date) -> Optional[int]:
    """
    The day one team should write progress for next, or None when it is done.

    `entries` are that team's progress entries. The latest day stays
    writable while it is unsigned and was written today; an unsigned entry
    from an earlier date no longer blocks the next day.
    """
    entries = list(entries)
    if not entries:
        return 1

    latest = max(entries, key=lambda p: p.day)
    if not latest.field_officer_signed and latest.added_at.date() == today:
        return latest.day

    if latest.day < number_of_working_days:
        return latest.day + 1
    return None


class ProgressLedger:
    def __init__(self, db: Session):
        self.db = db

    def write_progress(
        self,
        ticket_id: int,
        day: int,
        summary: str,
        team: TeamRef,
        author: Optional[AuthorRef] = None,
        photos: Optional[List[str]] = None,
        progress_id: Optional[int] = None
    ) -> int:
        """
        Create or update the progress entry for (day, team) and return its id.

        photos=None keeps whatever photos are stored; an explicit list,
        including an empty one, replaces them.
        """
        ticket = self.db.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            raise NotFoundError("Ticket not found")
        if ticket.admin_signed:
            raise ConflictError("Ticket is closed: it has already been signed by an admin")

        if not isinstance(day, int) or isinstance(day, bool) or day < 1:
            raise ValidationError("Invalid day number")
        if day > ticket.number_of_working_days:
            raise ValidationError(
                f"Day number cannot exceed {ticket.number_of_working_days} working days"
            )
        summary = clean_summary(summary)
        if photos is not None:
            photos = clean_photo_urls(photos)

        entry = None
        if progress_id is not None:
            entry = self.db.query(ProgressEntry).filter(
                ProgressEntry.id == progress_id,
                ProgressEntry.ticket_id == ticket.id
            ).first()
            if entry is not None:
                if entry.day != day:
                    raise ValidationError(f"Progress entry {progress_id} is for day {entry.day}")
                if entry.team_id != team.id:
                    raise PermissionDeniedError("Progress entry belongs to another team")
        if entry is None:
            # A stale progress_id falls back to the entry for this day and team
            entry = self._find_for_day(ticket.id, day, team.id)

        if entry is None:
            entry = ProgressEntry(
                ticket_id=ticket.id,
                day=day,
                summary=summary,
                photos=photos or [],
                team_id=team.id,
                team_name=team.name,
                team_email=team.email,
                author_id=author.id if author else None,
                author_name=author.name if author else None,
                author_email=author.email if author else None,
                added_at=datetime.utcnow(),
                field_officer_signed=False,
            )
            self.db.add(entry)
            ticket.updated_at = datetime.utcnow()
            try:
                self.db.commit()
            except IntegrityError:
                # Another request inserted this (day, team) first; edit theirs instead
                self.db.rollback()
                entry = self._find_for_day(ticket_id, day, team.id)
                if entry is None:
                    raise
            else:
                logger.info("Added day {} progress {} on ticket {} for team {}",
                            day, entry.id, ticket_id, team.id)
                return entry.id

        return self._update_entry(entry, summary, team, author, photos)

    def get_entry(self, ticket_id: int, progress_id: int) -> ProgressEntry:
        entry = self.db.query(ProgressEntry).filter(
            ProgressEntry.id == progress_id,
            ProgressEntry.ticket_id == ticket_id
        ).first()
        if not entry:
            raise NotFoundError("Progress not found")
        return entry

    def entries_for_team(self, ticket_id: int, team_id: str) -> List[ProgressEntry]:
        return self.db.query(ProgressEntry).filter(
            ProgressEntry.ticket_id == ticket_id,
            ProgressEntry.team_id == team_id
        ).order_by(ProgressEntry.day).all()

    def attach_photo(self, ticket_id: int, progress_id: int, url: str) -> List[str]:
        """Append one uploaded photo URL to an unsigned entry."""
        url = clean_photo_url(url)
        entry = self.get_entry(ticket_id, progress_id)
        photos = list(entry.photos or [])
        if url not in photos:
            photos.append(url)
        self._set_photos(entry, photos)
        return photos

    def remove_photo(self, ticket_id: int, progress_id: int, url: str) -> List[str]:
        entry = self.get_entry(ticket_id, progress_id)
        photos = list(entry.photos or [])
        if url not in photos:
            raise NotFoundError("Photo not found on this progress entry")
        photos.remove(url)
        self._set_photos(entry, photos)
        return photos

    def _find_for_day(self, ticket_id: int, day: int, team_id: str) -> Optional[ProgressEntry]:
        return self.db.query(ProgressEntry).filter(
            ProgressEntry.ticket_id == ticket_id,
            ProgressEntry.day == day,
            ProgressEntry.team_id == team_id
        ).first()

    def _update_entry(
        self,
        entry: ProgressEntry,
        summary: str,
        team: TeamRef,
        author: Optional[AuthorRef],
        photos: Optional[List[str]]
    ) -> int:
        values = {
            ProgressEntry.summary: summary,
            ProgressEntry.team_name: team.name,
            ProgressEntry.team_email: team.email,
            ProgressEntry.author_id: author.id if author else None,
            ProgressEntry.author_name: author.name if author else None,
            ProgressEntry.author_email: author.email if author else None,
            ProgressEntry.added_at: datetime.utcnow(),
        }
        if photos is not None:
            values[ProgressEntry.photos] = photos
        self._guarded_update(entry, values)
        logger.info("Updated day {} progress {} on ticket {}", entry.day, entry.id, entry.ticket_id)
        return entry.id

    def _set_photos(self, entry: ProgressEntry, photos: List[str]) -> None:
        self._guarded_update(entry, {ProgressEntry.photos: photos})

    def _guarded_update(self, entry: ProgressEntry, values: dict) -> None:
        """Apply values only while the entry is unsigned, then bump the ticket."""
        if entry.field_officer_signed:
            raise ConflictError(ALREADY_SIGNED_MESSAGE)

        entry_id, ticket_id = entry.id, entry.ticket_id
        rows = self.db.query(ProgressEntry).filter(
            ProgressEntry.id == entry_id,
            ProgressEntry.field_officer_signed.is_(False)
        ).update(values, synchronize_session=False)
        if rows == 0:
            self.db.rollback()
            raise ConflictError(ALREADY_SIGNED_MESSAGE)

        self.db.query(Ticket).filter(Ticket.id == ticket_id).update(
            {Ticket.updated_at: datetime.utcnow()}, synchronize_session=False
        )
        self.db.commit()
