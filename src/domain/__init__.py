"""
Domain layer - Pure business logic with zero framework imports.

This package contains the registration state machine, the business rules
that gate every transition, and the ticket issuance engine. It defines its
own port interfaces for persistence, ensuring true hexagonal architecture
decoupling.
"""

from .exceptions import (
    ConcurrentUpdateError,
    DomainError,
    ErrorKind,
    NotFoundError,
    PermissionDenied,
    TransientStoreError,
    ValidationError,
)
from .issuance import TicketIssuer
from .models import (
    Event,
    FaceVerificationStatus,
    IssuanceResult,
    PurchaseOutcome,
    PurchaseStatus,
    Registration,
    RegistrationStatus,
    Ticket,
    TicketAvailabilityStatus,
    User,
    WaitingStatus,
)
from .ports import EventRepository, RegistrationRepository, TicketRepository, UserDirectory
from .registration import RegistrationService
from .rules import BusinessRules

__all__ = [
    "BusinessRules",
    "ConcurrentUpdateError",
    "DomainError",
    "ErrorKind",
    "Event",
    "EventRepository",
    "FaceVerificationStatus",
    "IssuanceResult",
    "NotFoundError",
    "PermissionDenied",
    "PurchaseOutcome",
    "PurchaseStatus",
    "Registration",
    "RegistrationRepository",
    "RegistrationService",
    "RegistrationStatus",
    "Ticket",
    "TicketAvailabilityStatus",
    "TicketIssuer",
    "TicketRepository",
    "TransientStoreError",
    "User",
    "UserDirectory",
    "ValidationError",
    "WaitingStatus",
]
