"""Workflow errors - the typed failures every service raises."""
from typing import Any, Dict, Optional


class WorkflowError(Exception):
    """
    Base for every expected failure of a workflow operation.

    These are user-displayable: the message is safe to show to the caller.
    """
    error_code: str = "WORKFLOW_ERROR"
    http_status: int = 400

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict."""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ValidationError(WorkflowError):
    """Malformed input: bad day number, short summary, unsupported signature type."""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class AuthenticationError(WorkflowError):
    """Credential missing or invalid."""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


class PermissionDeniedError(WorkflowError):
    """Actor's role or team does not authorize the action."""
    error_code = "PERMISSION_DENIED"
    http_status = 403


class NotFoundError(WorkflowError):
    """Ticket, progress entry or link does not resolve."""
    error_code = "NOT_FOUND"
    http_status = 404


class ConflictError(WorkflowError):
    """Single-use or already-signed invariant would be violated."""
    error_code = "CONFLICT"
    http_status = 409


class PreconditionFailedError(WorkflowError):
    """
    Raised when the admin signature is attempted before every day is signed.
    Carries what is still missing so the caller can show it.
    """
    error_code = "PRECONDITION_FAILED"
    http_status = 412

    def __init__(self, message: str, missing_days=None, unsigned_progress_ids=None):
        super().__init__(
            message,
            details={
                "missing_days": list(missing_days or []),
                "unsigned_progress_ids": list(unsigned_progress_ids or []),
            },
        )


# Link consumers must not learn whether a token ever existed
INVALID_LINK_MESSAGE = "Invalid or expired link"


def invalid_link() -> NotFoundError:
    return NotFoundError(INVALID_LINK_MESSAGE)
