"""
Ticket history model - the append-only change log of a ticket.

Rows are written by the state machine on every ticket transition and are
never edited, reordered or deleted.
"""
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from worksign.database import Base


class TicketHistory(Base):
    """
    One change record on a ticket.

    Invariants:
    - Once written, never edited or deleted
    - Append-only; insertion order (id) is display order
    """
    __tablename__ = "ticket_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    ticket_id = Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True)
    action = Column(String, nullable=False, index=True)  # e.g., "assigned"
    changed_by = Column(String, nullable=False)
    changed_by_name = Column(String, nullable=True)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    description = Column(String, nullable=True)
    timestamp = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)

    ticket = relationship("Ticket", back_populates="history")


# Action tag constants for consistency
class HistoryAction:
    """Enumeration of history action tags."""
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    ADMIN_SIGNED = "admin_signed"
