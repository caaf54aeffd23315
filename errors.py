"""
Error taxonomy for submission, review and identity operations.

Every error carries a machine readable code and an HTTP status so the API
layer can report it without knowing the concrete class.
"""

from typing import Any, Dict, Optional


class TrackademicError(Exception):
    """Base exception for all Trackademic errors"""

    status_code = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class ValidationError(TrackademicError):
    """Missing required field or malformed value; details hold a per-field map"""

    status_code = 422

    def __init__(self, message: str = "Invalid submission", fields: Optional[Dict[str, str]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details={"fields": fields or {}})

    @property
    def fields(self) -> Dict[str, str]:
        return self.details["fields"]


class DuplicateEntry(TrackademicError):
    """Candidate submission is identical to an existing one"""

    status_code = 409

    def __init__(self, submission_id: str, event_name: str):
        super().__init__(
            f"An identical submission for '{event_name}' already exists; no change was made",
            code="DUPLICATE_ENTRY",
            details={"submission_id": submission_id}
        )


class NotFound(TrackademicError):
    status_code = 404

    def __init__(self, submission_id: str):
        super().__init__(
            f"Submission not found: {submission_id}",
            code="NOT_FOUND",
            details={"submission_id": submission_id}
        )


class AuthenticationError(TrackademicError):
    """No valid session"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(message, code="AUTH_FAILED")


class Unauthorized(TrackademicError):
    """Principal is not allowed to perform the action"""

    status_code = 403

    def __init__(self, message: str = "Not authorized for this action", **details):
        super().__init__(message, code="UNAUTHORIZED", details=details)


class InvalidTransition(TrackademicError):
    status_code = 409

    def __init__(self, submission_id: str, current: str, requested: str):
        super().__init__(
            f"Cannot move submission {submission_id} from {current} to {requested}",
            code="INVALID_TRANSITION",
            details={"submission_id": submission_id, "current": current, "requested": requested}
        )


class StoreUnavailable(TrackademicError):
    """Transport or persistence failure; never retried"""

    status_code = 503

    def __init__(self, message: str = "Submission store unavailable"):
        super().__init__(message, code="STORE_UNAVAILABLE")
