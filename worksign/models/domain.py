"""Domain models - tickets, their daily progress entries, and share links."""
from datetime import datetime
from sqlalchemy import (
    Column,
    String,
    Integer,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    UniqueConstraint,
    Enum as SQLEnum,
    JSON,
    text,
)
from sqlalchemy.orm import relationship
from worksign.database import Base
from worksign.models.enums import TicketStatus, SignatureType

# Consumed links get their expiry forced here so they can never validate again
EPOCH = datetime(1970, 1, 1)


class Ticket(Base):
    """
    A ticket progresses through states: pending → in_progress → done.

    Invariants enforced here and in the state machine:
    - assigned_team_id and assigned_team_name are set and cleared together
    - admin_signed implies status is done and no team is assigned
    - ticket_no is derived from the id, so it is never reused
    """
    __tablename__ = "tickets"
    # AUTOINCREMENT keeps SQLite from handing out an id twice
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    ticket_no = Column(String, unique=True, nullable=True, index=True)  # Set right after insert
    status = Column(SQLEnum(TicketStatus), nullable=False, default=TicketStatus.PENDING)

    # Work metadata
    name_of_work = Column(String, nullable=False)
    department = Column(String, nullable=False)
    field_officer_name = Column(String, nullable=False)
    contact_no = Column(String, nullable=False)
    assignment_name = Column(String, nullable=False)
    description = Column(String, nullable=False)
    date_of_commencement = Column(DateTime, nullable=False)
    number_of_working_days = Column(Integer, nullable=False)
    completion_date = Column(DateTime, nullable=True)  # Derived unless set explicitly

    assigned_team_id = Column(String, nullable=True, index=True)
    assigned_team_name = Column(String, nullable=True)

    created_by = Column(String, nullable=False, index=True)
    created_by_name = Column(String, nullable=True)

    # Final approval
    admin_signed = Column(Boolean, nullable=False, default=False)
    admin_signature = Column(String, nullable=True)
    admin_signature_type = Column(SQLEnum(SignatureType), nullable=True)
    admin_signed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    daily_progress = relationship(
        "ProgressEntry",
        back_populates="ticket",
        order_by="ProgressEntry.id",
        cascade="all, delete-orphan",
    )
    history = relationship(
        "TicketHistory",
        back_populates="ticket",
        order_by="TicketHistory.id",
        cascade="all, delete-orphan",
    )


class ProgressEntry(Base):
    """
    One team's summary of one working day of a ticket.

    Invariants:
    - At most one entry per (ticket, day, team)
    - Once field_officer_signed is true, content and signature fields are frozen
    - shareable_link/link_expires_at only mirror the ShareLink for display
    """
    __tablename__ = "progress_entries"
    __table_args__ = (
        UniqueConstraint("ticket_id", "day", "team_id", name="uq_progress_ticket_day_team"),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    day = Column(Integer, nullable=False)
    summary = Column(String, nullable=False)
    photos = Column(JSON, nullable=False, default=list)

    # Owning team
    team_id = Column(String, nullable=False)
    team_name = Column(String, nullable=True)
    team_email = Column(String, nullable=True)

    # Optional human author
    author_id = Column(String, nullable=True)
    author_name = Column(String, nullable=True)
    author_email = Column(String, nullable=True)

    added_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    field_officer_signed = Column(Boolean, nullable=False, default=False)
    field_officer_signature = Column(String, nullable=True)
    field_officer_signature_type = Column(SQLEnum(SignatureType), nullable=True)
    field_officer_signed_at = Column(DateTime, nullable=True)

    shareable_link = Column(String, nullable=True)
    link_expires_at = Column(DateTime, nullable=True)

    ticket = relationship("Ticket", back_populates="daily_progress")


class ShareLink(Base):
    """
    A time-limited, single-use token bound to one progress entry.

    Invariants:
    - Valid iff expires_at > now
    - Consumed links keep their row with expires_at forced to EPOCH
    - At most one is_current link per progress entry (partial unique index)
    - day is only set on legacy rows written before links carried progress_id
    """
    __tablename__ = "share_links"
    __table_args__ = (
        Index(
            "uq_share_links_current_progress",
            "progress_id",
            unique=True,
            sqlite_where=text("is_current = 1"),
            postgresql_where=text("is_current = true"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    token = Column(String, unique=True, nullable=False, index=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    progress_id = Column(Integer, ForeignKey("progress_entries.id"), nullable=True)
    day = Column(Integer, nullable=True)  # Legacy addressing only
    is_current = Column(Boolean, nullable=False, default=True)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    ticket = relationship("Ticket")
    progress = relationship("ProgressEntry")

    def is_live(self, now: datetime) -> bool:
        return self.expires_at > now
