"""
LexLedger - Error Taxonomy

Services raise these; the web layer maps each one to an HTTP status in
``lexledger.main``.
"""

from typing import Optional


class LexLedgerError(Exception):
    """Base class for expected, user-presentable failures."""

    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFound(LexLedgerError):
    status_code = 404
    default_message = "Not found"

    def __init__(self, entity_type: str, entity_id: Optional[str] = None, message: Optional[str] = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(message or f"{entity_type} not found")


class ConstraintViolation(LexLedgerError):
    """A uniqueness or referential rule of the store was violated."""

    status_code = 409
    default_message = "The change conflicts with existing data"

    def __init__(self, message: Optional[str] = None, field: Optional[str] = None):
        self.field = field
        super().__init__(message)

    @property
    def errors(self) -> dict:
        return {self.field: self.message} if self.field else {}


class ValidationFailed(LexLedgerError):
    """Input rejected before persistence. Carries field -> message."""

    status_code = 422
    default_message = "Validation failed"

    def __init__(self, errors: dict, message: Optional[str] = None):
        self.errors = dict(errors)
        super().__init__(message)

    @classmethod
    def field(cls, name: str, message: str) -> "ValidationFailed":
        return cls({name: message}, message)


class InvalidOrExpiredToken(LexLedgerError):
    status_code = 400
    default_message = "This reset link is invalid or has expired"


class Unauthorized(LexLedgerError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(LexLedgerError):
    status_code = 403
    default_message = "You do not have permission to perform this action"


class ExternalServiceError(LexLedgerError):
    """A third-party service (SMTP, ...) did not succeed."""

    status_code = 502
    default_message = "An external service is unavailable. Please try again later."

    def __init__(self, service: str, message: Optional[str] = None):
        self.service = service
        super().__init__(message)
