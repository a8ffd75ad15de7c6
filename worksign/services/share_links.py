"""
Link issuer - short opaque tokens that let a field officer review and sign
one progress entry without logging in.

The ShareLink row is the authority on validity. The copy on the progress
entry (shareable_link / link_expires_at) is for display only.
"""
from datetime import datetime, timedelta
from typing import Optional

from loguru import logger
from nanoid import generate
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from worksign.core.config import get_settings
from worksign.models.domain import EPOCH, ProgressEntry, ShareLink
from worksign.services.errors import ConflictError, NotFoundError

# Upper-case letters and digits without the look-alikes 0/O and 1/I
TOKEN_ALPHABET = "23456789ABCDEFGHJKLMNPQRSTUVWXYZ"
TOKEN_LENGTH = 10
MAX_TOKEN_ATTEMPTS = 5


def default_link_ttl() -> timedelta:
    return timedelta(minutes=get_settings().link_ttl_minutes)


def build_link_url(token: str, base_url: Optional[str] = None) -> str:
    base_url = (base_url or get_settings().public_base_url).rstrip("/")
    return f"{base_url}/progress/{token}"


class LinkIssuer:
    def __init__(self, db: Session, ttl: Optional[timedelta] = None):
        self.db = db
        self.ttl = ttl or default_link_ttl()

    def issue_link(self, ticket_id: int, progress_id: int) -> ShareLink:
        """
        Return the live link for a progress entry, minting one if needed.

        Idempotent while a link is live: the same token and the same
        expires_at come back, the lifetime is never extended. Only one link
        per entry can be current (partial unique index), so two concurrent
        calls can't both mint a live token.
        """
        entry = self.db.query(ProgressEntry).filter(
            ProgressEntry.id == progress_id,
            ProgressEntry.ticket_id == ticket_id
        ).first()
        if not entry:
            raise NotFoundError("Progress not found. Please add progress first.")
        if entry.ticket.admin_signed:
            raise ConflictError("Ticket is closed: it has already been signed by an admin")
        if entry.field_officer_signed:
            raise ConflictError("This progress has already been signed")

        now = datetime.utcnow()
        current = self._current_link(progress_id)
        if current and current.is_live(now):
            return current
        if current:
            current.is_current = False
            self.db.flush()

        link = ShareLink(
            token=self._new_token(),
            ticket_id=ticket_id,
            progress_id=progress_id,
            is_current=True,
            expires_at=now + self.ttl,
            created_at=now,
        )
        self.db.add(link)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            winner = self._current_link(progress_id)
            if winner and winner.is_live(datetime.utcnow()):
                return winner
            raise

        logger.info("Issued link {} for progress {} on ticket {} (expires {})",
                    link.token, progress_id, ticket_id, link.expires_at)
        self._mirror_on_entry(link)
        return link

    def _current_link(self, progress_id: int) -> Optional[ShareLink]:
        return self.db.query(ShareLink).filter(
            ShareLink.progress_id == progress_id,
            ShareLink.is_current.is_(True)
        ).first()

    def _new_token(self) -> str:
        for _ in range(MAX_TOKEN_ATTEMPTS):
            token = generate(alphabet=TOKEN_ALPHABET, size=TOKEN_LENGTH)
            taken = self.db.query(ShareLink.id).filter(ShareLink.token == token).first()
            if not taken:
                return token
        raise RuntimeError("Could not generate a unique link token")

    def _mirror_on_entry(self, link: ShareLink) -> None:
        """Best effort: a failed mirror leaves the link itself fully valid."""
        try:
            self.db.query(ProgressEntry).filter(ProgressEntry.id == link.progress_id).update(
                {
                    ProgressEntry.shareable_link: link.token,
                    ProgressEntry.link_expires_at: link.expires_at,
                },
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not mirror link {} onto progress {}", link.token, link.progress_id)


def migrate_legacy_links(db: Session) -> int:
    """
    Rewrite day-keyed links to carry progress_id. Runs once at startup.

    A legacy link resolves to the first entry written for its day. Links
    whose day has no entry are burned. Returns how many rows changed.
    """
    legacy = db.query(ShareLink).filter(ShareLink.progress_id.is_(None)).order_by(ShareLink.id).all()
    if not legacy:
        return 0

    claimed = set()
    for link in legacy:
        entry = None
        if link.day is not None:
            entry = db.query(ProgressEntry).filter(
                ProgressEntry.ticket_id == link.ticket_id,
                ProgressEntry.day == link.day
            ).order_by(ProgressEntry.id).first()

        if entry is None:
            link.expires_at = EPOCH
            link.is_current = False
            continue

        has_current = entry.id in claimed or db.query(ShareLink.id).filter(
            ShareLink.progress_id == entry.id,
            ShareLink.is_current.is_(True)
        ).first() is not None
        link.is_current = not has_current
        link.progress_id = entry.id
        claimed.add(entry.id)

    db.commit()
    logger.info("Migrated {} legacy day-keyed share links", len(legacy))
    return len(legacy)
