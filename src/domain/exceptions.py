"""
Domain exceptions - Tagged error types for registration and ticket issuance.

Every business rule violation is raised as a DomainError carrying an
ErrorKind. The HTTP status for each kind is resolved here, in one place,
so the API boundary can translate errors without knowing individual rules.
"""

from enum import Enum


class ErrorKind(str, Enum):
    """Category of a domain failure."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    CONFLICT = "conflict"
    TRANSIENT_STORE = "transient_store"


_HTTP_STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.CONFLICT: 409,
    ErrorKind.TRANSIENT_STORE: 503,
}


class DomainError(Exception):
    """Base class for registration and issuance domain errors."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def http_status(self) -> int:
        return _HTTP_STATUS_BY_KIND[self.kind]


class ValidationError(DomainError):
    """Client-caused precondition failure. Never retried automatically."""

    kind = ErrorKind.VALIDATION


class NotFoundError(DomainError):
    """Missing event, user, registration or ticket."""

    kind = ErrorKind.NOT_FOUND


class PermissionDenied(DomainError):
    """Caller lacks the role required for the operation."""

    kind = ErrorKind.FORBIDDEN


class ConcurrentUpdateError(DomainError):
    """A conditional write lost against a concurrent writer."""

    kind = ErrorKind.CONFLICT


class TransientStoreError(DomainError):
    """Underlying persistence failure; the operation may be retried."""

    kind = ErrorKind.TRANSIENT_STORE
