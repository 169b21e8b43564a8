"""
Service-layer errors.

Services raise these instead of HTTP errors; server.py turns them into
JSON responses using the status code carried by each class.
"""

from typing import Any, Dict, Optional


class PortalError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(PortalError):
    """Raised when a referenced document doesn't exist."""
    status_code = 404


class ConflictError(PortalError):
    """Raised when a write would duplicate an existing record."""
    status_code = 409


class InvalidRequestError(PortalError):
    """Raised when a request is well-formed but violates a business rule."""
    status_code = 400


class PermissionDeniedError(PortalError):
    status_code = 403


class AccountNotActiveError(PermissionDeniedError):
    """Raised when a pending, rejected or suspended account is used."""
    pass


class ScheduleConflictError(ConflictError):
    """Raised when a student or teacher would be double-booked."""
    def __init__(self, message: str, conflicting_batch: Dict[str, Any]):
        super().__init__(message)
        self.conflicting_batch = conflicting_batch


class AlreadyEnrolledError(ConflictError):
    pass


class DepartmentMismatchError(InvalidRequestError):
    """Raised when a student's department is not served by a batch."""
    pass


class BatchClosedError(InvalidRequestError):
    """Raised when enrolling into a completed batch."""
    pass


class InvalidResetCodeError(InvalidRequestError):
    pass


def error_payload(error: PortalError) -> Dict[str, Any]:
    """Build the JSON body returned for a service error."""
    payload: Dict[str, Any] = {"detail": error.message}
    conflicting: Optional[Dict[str, Any]] = getattr(error, "conflicting_batch", None)
    if conflicting:
        payload["conflictingBatch"] = {
            "id": conflicting.get("id"),
            "name": conflicting.get("name"),
        }
    return payload
