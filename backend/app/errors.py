"""
Verification Errors — typed failures surfaced synchronously to callers.
Each carries the HTTP status the routes translate it into.
"""
from fastapi import HTTPException


class VerificationError(Exception):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_http(self) -> HTTPException:
        return HTTPException(status_code=self.status_code, detail=self.message)


class ValidationFailed(VerificationError):
    """Bad input shape or missing required field."""
    status_code = 400


class NotAuthorized(VerificationError):
    """Caller lacks the role or ownership for the operation."""
    status_code = 403


class RecordNotFound(VerificationError):
    status_code = 404


class IllegalTransition(VerificationError):
    """The record's current status does not allow the requested transition."""
    status_code = 409


class StaleRecord(VerificationError):
    """Another writer changed the record first; reload and retry or discard."""
    status_code = 409
