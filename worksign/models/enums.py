"""Enums for worksign - these define the valid values for states and tags."""
from enum import Enum


class TicketStatus(str, Enum):
    """The three states a Ticket can be in. The only order is pending -> in_progress -> done."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class SignatureType(str, Enum):
    """How a signature was captured: a typed name or an embedded image payload."""
    TEXT = "text"
    IMAGE = "image"


class Role(str, Enum):
    """Roles carried by the identity credential."""
    ADMIN = "admin"
    FIELD_TEAM = "field_team"
