"""
External signature acceptor - the unauthenticated side of a share link.

The token is the only credential. It is single-use: a successful signature
forces the link's expiry to the epoch in the same transaction that signs the
entry, and the link is burned first so a partial outcome can never leave a
usable token behind.
"""
from datetime import datetime
from typing import Tuple

from loguru import logger
from sqlalchemy.orm import Session

from worksign.models.domain import EPOCH, ProgressEntry, ShareLink, Ticket
from worksign.services.errors import ConflictError, invalid_link
from worksign.services.sanitize import clean_signature

ALREADY_SIGNED_MESSAGE = "This progress has already been signed"


class SignatureAcceptor:
    def __init__(self, db: Session):
        self.db = db

    def resolve(self, token: str) -> Tuple[ShareLink, ProgressEntry]:
        """
        Resolve a live token to its link and progress entry.

        Unknown, expired and dangling tokens all fail the same way.
        """
        link = self.db.query(ShareLink).filter(ShareLink.token == token).first()
        if not link or not link.is_live(datetime.utcnow()):
            raise invalid_link()
        if link.progress_id is None:
            # Day-keyed rows are rewritten at startup; anything left is unusable
            raise invalid_link()

        entry = self.db.query(ProgressEntry).filter(
            ProgressEntry.id == link.progress_id,
            ProgressEntry.ticket_id == link.ticket_id
        ).first()
        if not entry:
            raise invalid_link()
        return link, entry

    def fetch_by_link(self, token: str) -> Tuple[Ticket, ProgressEntry]:
        _, entry = self.resolve(token)
        return entry.ticket, entry

    def submit_signature(self, token: str, signature: str, signature_type: str = "text") -> ProgressEntry:
        """
        Sign the progress entry bound to a token, exactly once.

        Order of checks: the token resolves and is live, the entry is still
        unsigned, then the signature itself is valid.
        """
        link, entry = self.resolve(token)
        if entry.field_officer_signed:
            raise ConflictError(ALREADY_SIGNED_MESSAGE)

        signature, kind = clean_signature(signature, signature_type)

        now = datetime.utcnow()
        link_id, entry_id, ticket_id = link.id, entry.id, entry.ticket_id

        burned = self.db.query(ShareLink).filter(
            ShareLink.id == link_id,
            ShareLink.expires_at > now
        ).update({ShareLink.expires_at: EPOCH}, synchronize_session=False)
        if burned == 0:
            # Consumed or expired between resolve and now
            self.db.rollback()
            raise invalid_link()

        signed = self.db.query(ProgressEntry).filter(
            ProgressEntry.id == entry_id,
            ProgressEntry.field_officer_signed.is_(False)
        ).update(
            {
                ProgressEntry.field_officer_signed: True,
                ProgressEntry.field_officer_signature: signature,
                ProgressEntry.field_officer_signature_type: kind,
                ProgressEntry.field_officer_signed_at: now,
            },
            synchronize_session=False,
        )
        if signed == 0:
            self.db.rollback()
            raise ConflictError(ALREADY_SIGNED_MESSAGE)

        self.db.query(Ticket).filter(Ticket.id == ticket_id).update(
            {Ticket.updated_at: now}, synchronize_session=False
        )
        self.db.commit()

        logger.info("Field officer signed progress {} (day {}) on ticket {} via link {}",
                    entry_id, entry.day, ticket_id, token)
        self.db.refresh(entry)
        return entry
