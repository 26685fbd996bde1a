"""
API v1 routes.

Defines REST endpoints for registrations, face verification, admin
overrides, check-in, ticket purchase and ticket lookup. Domain errors are
translated to HTTP responses by the DomainError handler registered in
src.api.main.
"""

from fastapi import APIRouter, Depends, Response, status

from src.api.dependencies import get_registration_service
from src.api.models import (
    AdminOverrideRequest,
    CompleteVerificationRequest,
    ErrorResponse,
    EventResponse,
    IssuanceResponse,
    PurchaseRequest,
    PurchaseResponse,
    RegisterRequest,
    RegistrationListResponse,
    RegistrationMessageResponse,
    RegistrationResponse,
    RegistrationStatsResponse,
    SweepResponse,
    TicketListResponse,
    TicketResponse,
)
from src.domain.models import IssuanceResult, PurchaseStatus, Registration
from src.domain.registration import RegistrationService

router = APIRouter(tags=["v1"])

_ERRORS = {
    400: {"model": ErrorResponse, "description": "Business rule violated"},
    404: {"model": ErrorResponse, "description": "Registration, event or user not found"},
    409: {"model": ErrorResponse, "description": "Concurrent modification"},
}

_PURCHASE_MESSAGES = {
    PurchaseStatus.ISSUED: "Ticket issued successfully",
    PurchaseStatus.PENDING_VERIFICATION: "Face verification pending. Your ticket will be issued once verification completes.",
    PurchaseStatus.QUEUED: "Tickets are currently unavailable. Your request has been queued.",
}


def _registration(registration: Registration) -> RegistrationResponse:
    return RegistrationResponse.model_validate(registration)


def _registration_list(registrations: list[Registration]) -> RegistrationListResponse:
    return RegistrationListResponse(
        results=len(registrations),
        registrations=[_registration(r) for r in registrations],
    )


def _issued(message: str, result: IssuanceResult) -> IssuanceResponse:
    return IssuanceResponse(
        message=message,
        registration=_registration(result.registration),
        ticket=TicketResponse.model_validate(result.ticket),
        event=EventResponse.model_validate(result.event),
    )


@router.post(
    "/registrations",
    response_model=RegistrationMessageResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**_ERRORS, 403: {"model": ErrorResponse, "description": "Not an admin"}},
    summary="Register a user for an event",
)
async def create_registration(
    request_data: RegisterRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationMessageResponse:
    """
    Create a pending registration.

    Fails with 400 if the user is already registered or the event is full.
    """
    registration = service.register(
        request_data.user_id,
        request_data.event_id,
        admin_booked=request_data.admin_booked,
        admin_override_reason=request_data.admin_override_reason,
        admin_user_id=request_data.admin_user_id,
    )
    return RegistrationMessageResponse(
        message="Registration created successfully",
        registration=_registration(registration),
    )


@router.get(
    "/registrations/stats",
    response_model=RegistrationStatsResponse,
    summary="Registration statistics",
)
async def registration_stats(
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationStatsResponse:
    return RegistrationStatsResponse.model_validate(service.registration_stats())


@router.get(
    "/registrations/status/{registration_status}",
    response_model=RegistrationListResponse,
    responses={400: _ERRORS[400]},
    summary="List registrations by status",
)
async def registrations_by_status(
    registration_status: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationListResponse:
    return _registration_list(service.list_by_status(registration_status))


@router.get(
    "/registrations/{registration_id}",
    response_model=RegistrationResponse,
    responses={404: _ERRORS[404]},
    summary="Get a registration",
)
async def get_registration(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationResponse:
    return _registration(service.get_registration(registration_id))


@router.get(
    "/events/{event_id}/registrations",
    response_model=RegistrationListResponse,
    summary="List registrations for an event",
)
async def event_registrations(
    event_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationListResponse:
    return _registration_list(service.list_for_event(event_id))


@router.get(
    "/users/{user_id}/registrations",
    response_model=RegistrationListResponse,
    summary="List registrations for a user",
)
async def user_registrations(
    user_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationListResponse:
    return _registration_list(service.list_for_user(user_id))


@router.post(
    "/registrations/{registration_id}/verification/start",
    response_model=RegistrationMessageResponse,
    responses=_ERRORS,
    summary="Start a face verification attempt",
)
async def start_verification(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationMessageResponse:
    registration = service.start_verification(registration_id)
    return RegistrationMessageResponse(
        message="Face verification started", registration=_registration(registration)
    )


@router.post(
    "/registrations/{registration_id}/verification/complete",
    response_model=RegistrationMessageResponse,
    responses=_ERRORS,
    summary="Record a face verification outcome",
)
async def complete_verification(
    registration_id: str,
    request_data: CompleteVerificationRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationMessageResponse:
    registration = service.complete_verification(
        registration_id, request_data.success, request_data.ticket_available
    )
    outcome = "completed successfully" if request_data.success else "failed"
    return RegistrationMessageResponse(
        message=f"Face verification {outcome}", registration=_registration(registration)
    )


@router.post(
    "/registrations/{registration_id}/ticket",
    response_model=IssuanceResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**_ERRORS, 202: {"model": IssuanceResponse, "description": "Issuance deferred"}},
    summary="Issue a ticket for a registration",
)
async def issue_ticket(
    registration_id: str,
    response: Response,
    service: RegistrationService = Depends(get_registration_service),
) -> IssuanceResponse:
    """
    Issue a ticket for a verified or admin-booked registration.

    Returns 202 when the event has no room; the registration stays queued.
    """
    result = service.issue_ticket(registration_id)
    if result is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return IssuanceResponse(
            message="Ticket issuance deferred",
            registration=_registration(service.get_registration(registration_id)),
        )
    return _issued("Ticket issued successfully", result)


@router.post(
    "/registrations/{registration_id}/admin-override",
    response_model=RegistrationMessageResponse,
    responses={**_ERRORS, 403: {"model": ErrorResponse, "description": "Not an admin"}},
    summary="Verify a registration on an admin's authority",
)
async def admin_override(
    registration_id: str,
    request_data: AdminOverrideRequest,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationMessageResponse:
    registration = service.admin_override(
        registration_id,
        request_data.admin_user_id,
        request_data.override_reason,
        issue_ticket=request_data.issue_ticket,
    )
    return RegistrationMessageResponse(
        message="Admin override applied successfully", registration=_registration(registration)
    )


@router.post(
    "/registrations/{registration_id}/check-in",
    response_model=RegistrationMessageResponse,
    responses=_ERRORS,
    summary="Check a registration in",
)
async def check_in(
    registration_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> RegistrationMessageResponse:
    registration = service.check_in(registration_id)
    return RegistrationMessageResponse(
        message="User checked in successfully", registration=_registration(registration)
    )


@router.post(
    "/tickets/purchase",
    response_model=PurchaseResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        **_ERRORS,
        202: {"model": PurchaseResponse, "description": "Queued pending verification or capacity"},
    },
    summary="Purchase tickets for an event",
)
async def purchase_ticket(
    request_data: PurchaseRequest,
    response: Response,
    service: RegistrationService = Depends(get_registration_service),
) -> PurchaseResponse:
    """
    Purchase tickets.

    - **201**: ticket issued immediately
    - **202**: request recorded on a queued registration, pending face
      verification or free capacity
    """
    outcome = service.purchase_ticket(
        request_data.user_id,
        request_data.event_id,
        quantity=request_data.quantity,
        unit_price=request_data.unit_price,
        total_price=request_data.total_price,
        notes=request_data.notes,
    )
    message = _PURCHASE_MESSAGES[outcome.status]

    if outcome.issuance is None:
        response.status_code = status.HTTP_202_ACCEPTED
        return PurchaseResponse(
            status=outcome.status,
            message=message,
            registration=_registration(outcome.registration),
        )

    issued = _issued(message, outcome.issuance)
    return PurchaseResponse(status=outcome.status, **issued.model_dump())


@router.post(
    "/users/{user_id}/tickets/sweep",
    response_model=SweepResponse,
    summary="Issue tickets for a user's queued registrations",
)
async def sweep_pending_tickets(
    user_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> SweepResponse:
    """Best-effort: registrations that fail are marked for retry and skipped."""
    results = service.issue_pending_tickets_for_user(user_id)
    issued = [_issued("Ticket issued successfully", result) for result in results]
    return SweepResponse(results=len(issued), issued=issued)


@router.get(
    "/tickets/{ticket_id}",
    response_model=TicketResponse,
    responses={404: _ERRORS[404]},
    summary="Get a ticket",
)
async def get_ticket(
    ticket_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> TicketResponse:
    return TicketResponse.model_validate(service.get_ticket(ticket_id))


@router.get(
    "/events/{event_id}/tickets",
    response_model=TicketListResponse,
    responses={404: _ERRORS[404]},
    summary="List tickets for an event",
)
async def event_tickets(
    event_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> TicketListResponse:
    tickets = service.list_tickets_for_event(event_id)
    return TicketListResponse(
        results=len(tickets),
        tickets=[TicketResponse.model_validate(t) for t in tickets],
    )


@router.post(
    "/tickets/{ticket_id}/verify",
    response_model=TicketResponse,
    responses={400: _ERRORS[400], 404: _ERRORS[404], 409: _ERRORS[409]},
    summary="Check a ticket holder in by ticket id",
)
async def verify_ticket(
    ticket_id: str,
    service: RegistrationService = Depends(get_registration_service),
) -> TicketResponse:
    return TicketResponse.model_validate(service.verify_ticket(ticket_id))
