"""
Domain entities - Registration, Event, Ticket and User records.

Lifecycle states are str-mixin enums so they serialize directly to JSON
and to TEXT columns.

Registration State Machine
==========================

Dimensions: status, waiting_status, face_verification_status,
ticket_availability_status.

    create               -> pending / queued / pending / pending
    start verification   -> face processing, waiting processing, attempts + 1
    verification failed  -> face failed, waiting queued
    verified, no tickets -> face success, availability unavailable, waiting queued
    ticket issued        -> verified / complete / success / available
    admin override       -> verified / complete (may resurrect rejected)
    check-in             -> verified / complete, check_in_time stamped
    event missing        -> rejected / cancelled / availability event_unavailable

Updates go through RegistrationPatch and EventPatch, which enumerate the
fields a write may touch. Identity fields are never patchable.
"""

from dataclasses import dataclass, field, fields, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RegistrationStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class WaitingStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    CANCELLED = "cancelled"


class FaceVerificationStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class TicketAvailabilityStatus(str, Enum):
    PENDING = "pending"
    AVAILABLE = "available"
    UNAVAILABLE = "unavailable"
    EVENT_UNAVAILABLE = "event_unavailable"
    ERROR = "error"


class TicketStatus(str, Enum):
    ACTIVE = "active"
    CHECKED_IN = "checked-in"


class UserRole(str, Enum):
    USER = "user"
    ADMIN = "admin"


@dataclass(frozen=True)
class Registration:
    """A user's claim on an event slot, pending verification and issuance."""

    registration_id: str
    user_id: str
    event_id: str
    registration_date: datetime
    status: RegistrationStatus = RegistrationStatus.PENDING
    waiting_status: WaitingStatus = WaitingStatus.QUEUED
    face_verification_status: FaceVerificationStatus = FaceVerificationStatus.PENDING
    ticket_availability_status: TicketAvailabilityStatus = TicketAvailabilityStatus.PENDING
    verification_attempts: int = 0
    last_verification_attempt: datetime | None = None
    check_in_time: datetime | None = None
    ticket_issued: bool = False
    ticket_issued_date: datetime | None = None
    ticket_id: str | None = None
    admin_booked: bool = False
    admin_override_reason: str | None = None
    requested_quantity: int | None = None
    unit_price: float | None = None
    total_price: float | None = None
    notes: str | None = None
    ticket_request_source: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    version: int = 0

    def apply(self, patch: "RegistrationPatch", updated_at: datetime) -> "Registration":
        """Return a copy with the patch applied and the version bumped."""
        return replace(
            self,
            **patch.changes(),
            updated_at=updated_at,
            version=self.version + 1,
        )


@dataclass(frozen=True)
class RegistrationPatch:
    """
    Partial update for a Registration.

    A field left as None is not written. Lifecycle transitions never need
    to clear a field back to null, so None is unambiguous here.
    """

    status: RegistrationStatus | None = None
    waiting_status: WaitingStatus | None = None
    face_verification_status: FaceVerificationStatus | None = None
    ticket_availability_status: TicketAvailabilityStatus | None = None
    verification_attempts: int | None = None
    last_verification_attempt: datetime | None = None
    check_in_time: datetime | None = None
    ticket_issued: bool | None = None
    ticket_issued_date: datetime | None = None
    ticket_id: str | None = None
    admin_booked: bool | None = None
    admin_override_reason: str | None = None
    requested_quantity: int | None = None
    unit_price: float | None = None
    total_price: float | None = None
    notes: str | None = None
    ticket_request_source: str | None = None

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class Event:
    event_id: str
    name: str = ""
    ticket_price: float = 0.0
    total_tickets: int = 0  # 0 means unlimited
    tickets_sold: int = 0

    @property
    def has_capacity_limit(self) -> bool:
        return self.total_tickets > 0

    def can_accommodate(self, quantity: int) -> bool:
        if not self.has_capacity_limit:
            return True
        return self.tickets_sold + quantity <= self.total_tickets


@dataclass(frozen=True)
class EventPatch:
    name: str | None = None
    ticket_price: float | None = None
    total_tickets: int | None = None

    def changes(self) -> dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}


@dataclass(frozen=True)
class Ticket:
    ticket_id: str
    event_id: str
    user_id: str
    quantity: int
    price: float
    total_price: float
    registration_id: str | None = None
    status: TicketStatus = TicketStatus.ACTIVE
    face_verified: bool = False
    check_in_time: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class User:
    """Read-only view of a platform user as seen by the registration core."""

    user_id: str
    role: UserRole = UserRole.USER
    has_face_data: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class IssuanceResult:
    """Outcome of a successful issuance: the ticket plus updated snapshots."""

    ticket: Ticket
    event: Event
    registration: Registration


@dataclass(frozen=True)
class RegistrationStats:
    by_status: dict[str, int] = field(default_factory=dict)
    by_face_verification_status: dict[str, int] = field(default_factory=dict)
    tickets_issued: int = 0
    tickets_not_issued: int = 0
    admin_booked: int = 0
    total_registrations: int = 0


class PurchaseStatus(str, Enum):
    """How a ticket purchase request was resolved."""

    ISSUED = "issued"
    PENDING_VERIFICATION = "pending_verification"
    QUEUED = "queued"


@dataclass(frozen=True)
class PurchaseOutcome:
    status: PurchaseStatus
    registration: Registration
    issuance: IssuanceResult | None = None
