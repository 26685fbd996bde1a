"""
API request and response models.

Pydantic models for FastAPI endpoint validation and OpenAPI schema generation.
Response models are populated straight from domain dataclasses via
from_attributes.
"""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from src.domain.models import (
    FaceVerificationStatus,
    PurchaseStatus,
    RegistrationStatus,
    TicketAvailabilityStatus,
    TicketStatus,
    WaitingStatus,
)


class RegisterRequest(BaseModel):
    """Request model for creating a registration."""

    user_id: str = Field(..., min_length=1)
    event_id: str = Field(..., min_length=1)
    admin_booked: bool = False
    admin_override_reason: str | None = None
    admin_user_id: str | None = Field(None, description="Admin booking on the user's behalf")


class CompleteVerificationRequest(BaseModel):
    """Request model for recording a face verification outcome."""

    success: bool
    ticket_available: bool = False


class AdminOverrideRequest(BaseModel):
    """Request model for an admin override."""

    admin_user_id: str = Field(..., min_length=1)
    override_reason: str | None = Field(None, description="Justification (minimum 10 characters)")
    issue_ticket: bool = False


class PurchaseRequest(BaseModel):
    """Request model for a ticket purchase."""

    user_id: str = Field(..., min_length=1)
    event_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1)
    unit_price: float | None = Field(None, ge=0)
    total_price: float | None = Field(None, ge=0)
    notes: str | None = None


class RegistrationResponse(BaseModel):
    """A registration as exposed over the API."""

    model_config = ConfigDict(from_attributes=True)

    registration_id: str
    user_id: str
    event_id: str
    registration_date: datetime
    status: RegistrationStatus
    waiting_status: WaitingStatus
    face_verification_status: FaceVerificationStatus
    ticket_availability_status: TicketAvailabilityStatus
    verification_attempts: int
    last_verification_attempt: datetime | None
    check_in_time: datetime | None
    ticket_issued: bool
    ticket_issued_date: datetime | None
    ticket_id: str | None
    admin_booked: bool
    admin_override_reason: str | None
    requested_quantity: int | None
    unit_price: float | None
    total_price: float | None
    notes: str | None
    ticket_request_source: str | None


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    ticket_id: str
    event_id: str
    user_id: str
    registration_id: str | None
    quantity: int
    price: float
    total_price: float
    status: TicketStatus
    face_verified: bool
    check_in_time: datetime | None


class TicketListResponse(BaseModel):
    results: int
    tickets: list[TicketResponse]


class EventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event_id: str
    name: str
    ticket_price: float
    total_tickets: int
    tickets_sold: int


class RegistrationMessageResponse(BaseModel):
    """A registration together with a human-readable outcome."""

    message: str
    registration: RegistrationResponse


class RegistrationListResponse(BaseModel):
    results: int
    registrations: list[RegistrationResponse]


class IssuanceResponse(BaseModel):
    """Outcome of a ticket issuance; ticket and event are absent when deferred."""

    message: str
    registration: RegistrationResponse
    ticket: TicketResponse | None = None
    event: EventResponse | None = None


class PurchaseResponse(IssuanceResponse):
    status: PurchaseStatus


class SweepResponse(BaseModel):
    results: int
    issued: list[IssuanceResponse]


class RegistrationStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    by_status: dict[str, int]
    by_face_verification_status: dict[str, int]
    tickets_issued: int
    tickets_not_issued: int
    admin_booked: int
    total_registrations: int


class ErrorResponse(BaseModel):
    """Standard error response model."""

    detail: str
