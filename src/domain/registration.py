"""
Registration domain service - Registration lifecycle implementation.

This module owns the registration state machine: creation, face
verification, admin override, check-in and ticket purchase requests.
Ticket creation itself is delegated to TicketIssuer so that every path
which marks a registration as issued also produces a Ticket and moves the
event's tickets_sold counter.

Transitions driven here:

    register              -> pending / queued / face pending / availability pending
    start_verification    -> face processing, waiting processing, attempts + 1
    complete_verification -> failed: face failed, waiting queued
                             success, no tickets: face success, availability unavailable
                             success, tickets: face success, then TicketIssuer
    admin_override        -> admin_booked, status verified, waiting complete
    check_in              -> status verified, check_in_time, waiting complete
    verify_ticket         -> ticket checked-in, then check_in on its registration

Writes carry the version that was read, so two requests racing on the same
registration cannot both apply (the loser gets ConcurrentUpdateError).
"""

import logging
import secrets
from collections import Counter
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from .exceptions import NotFoundError, ValidationError
from .issuance import TICKET_REQUEST_SOURCE, TicketIssuer
from .models import (
    FaceVerificationStatus,
    IssuanceResult,
    PurchaseOutcome,
    PurchaseStatus,
    Registration,
    RegistrationPatch,
    RegistrationStats,
    RegistrationStatus,
    Ticket,
    TicketAvailabilityStatus,
    TicketStatus,
    WaitingStatus,
    utcnow,
)
from .ports import EventRepository, RegistrationRepository, TicketRepository, UserDirectory
from .rules import BusinessRules

logger = logging.getLogger(__name__)


@dataclass
class RegistrationService:
    """
    Domain service for event registrations.

    Validates every transition with BusinessRules before writing it, and
    routes all ticket issuance through TicketIssuer.
    """

    registrations: RegistrationRepository
    events: EventRepository
    tickets: TicketRepository
    users: UserDirectory
    rules: BusinessRules
    issuer: TicketIssuer
    clock: Callable[[], datetime] = utcnow

    def register(
        self,
        user_id: str,
        event_id: str,
        admin_booked: bool = False,
        admin_override_reason: str | None = None,
        admin_user_id: str | None = None,
    ) -> Registration:
        """
        Create a registration for a user on an event.

        Args:
            user_id: Registering user
            event_id: Target event
            admin_booked: Whether an admin is booking on the user's behalf
            admin_override_reason: Justification, required when admin_booked
            admin_user_id: Admin performing the booking, required when admin_booked

        Returns:
            The persisted registration

        Raises:
            ValidationError: Duplicate registration, full event, or bad override reason
            NotFoundError: Event (or admin user) does not exist
            PermissionDenied: admin_user_id is not an admin
        """
        self.rules.validate_registration_integrity(user_id, event_id)
        self.rules.validate_event_capacity(event_id)
        if admin_booked:
            self.rules.validate_admin_override(admin_user_id, admin_override_reason)

        now = self.clock()
        registration = Registration(
            registration_id=self._generate_registration_id(),
            user_id=user_id,
            event_id=event_id,
            registration_date=now,
            admin_booked=admin_booked,
            admin_override_reason=admin_override_reason if admin_booked else None,
            created_at=now,
            updated_at=now,
        )
        created = self.registrations.create(registration)
        logger.info(
            "Registered user %s for event %s as %s", user_id, event_id, created.registration_id
        )
        return created

    def get_registration(self, registration_id: str) -> Registration:
        return self._require(registration_id)

    def list_for_event(self, event_id: str) -> list[Registration]:
        return self.registrations.list_by_event(event_id)

    def list_for_user(self, user_id: str) -> list[Registration]:
        return self.registrations.list_by_user(user_id)

    def list_by_status(self, status: str) -> list[Registration]:
        try:
            wanted = RegistrationStatus(status)
        except ValueError:
            raise ValidationError(
                "Invalid status. Must be: pending, verified, or rejected"
            ) from None
        return self.registrations.list_by_status(wanted)

    def start_verification(self, registration_id: str) -> Registration:
        """
        Begin a face verification attempt.

        Raises:
            NotFoundError: Unknown registration
            ValidationError: Attempts exhausted or verification already succeeded
        """
        registration = self._require(registration_id)
        self.rules.validate_face_verification_attempt(registration)

        return self._write(
            registration,
            RegistrationPatch(
                face_verification_status=FaceVerificationStatus.PROCESSING,
                waiting_status=WaitingStatus.PROCESSING,
                verification_attempts=registration.verification_attempts + 1,
                last_verification_attempt=self.clock(),
            ),
        )

    def complete_verification(
        self, registration_id: str, success: bool, ticket_available: bool = False
    ) -> Registration:
        """
        Record the outcome of a face verification attempt.

        A successful verification with tickets available issues the ticket
        through TicketIssuer, after the issuance rules pass for the verified
        registration. If the event turns out to be full the registration
        stays queued for the sweeper.

        Raises:
            NotFoundError: Unknown registration
            ValidationError: Issuance requested for a rejected registration
        """
        registration = self._require(registration_id)

        if not success:
            return self._write(
                registration,
                RegistrationPatch(
                    face_verification_status=FaceVerificationStatus.FAILED,
                    waiting_status=WaitingStatus.QUEUED,
                ),
            )

        if not ticket_available:
            return self._write(
                registration,
                RegistrationPatch(
                    face_verification_status=FaceVerificationStatus.SUCCESS,
                    ticket_availability_status=TicketAvailabilityStatus.UNAVAILABLE,
                    waiting_status=WaitingStatus.QUEUED,
                ),
            )

        if not (registration.ticket_issued and registration.ticket_id):
            self.rules.validate_ticket_issuance_rules(
                replace(registration, face_verification_status=FaceVerificationStatus.SUCCESS)
            )

        verified = self._write(
            registration,
            RegistrationPatch(face_verification_status=FaceVerificationStatus.SUCCESS),
        )
        if verified.ticket_issued and verified.ticket_id:
            return verified

        result = self.issuer.issue_ticket_from_registration(verified)
        if result is None:
            return self._require(registration_id)
        return result.registration

    def issue_ticket(self, registration_id: str) -> IssuanceResult | None:
        """
        Issue a ticket for a registration on request.

        Returns:
            IssuanceResult, or None when the event is full or gone

        Raises:
            NotFoundError: Unknown registration
            ValidationError: Already issued, rejected, or not verified
        """
        registration = self._require(registration_id)
        if registration.ticket_issued and registration.ticket_id:
            raise ValidationError("Ticket has already been issued for this registration")
        self.rules.validate_ticket_issuance_rules(registration)
        return self.issuer.issue_ticket_from_registration(registration)

    def admin_override(
        self,
        registration_id: str,
        admin_user_id: str,
        reason: str,
        issue_ticket: bool = False,
    ) -> Registration:
        """
        Verify a registration on an admin's authority.

        Allowed from any state, including rejected. With issue_ticket the
        ticket is issued immediately through TicketIssuer.

        Raises:
            ValidationError: Reason shorter than the configured minimum
            NotFoundError: Unknown registration or admin user
            PermissionDenied: admin_user_id is not an admin
        """
        registration = self._require(registration_id)
        self.rules.validate_admin_override(admin_user_id, reason)

        overridden = self._write(
            registration,
            RegistrationPatch(
                admin_booked=True,
                admin_override_reason=reason.strip(),
                status=RegistrationStatus.VERIFIED,
                waiting_status=WaitingStatus.COMPLETE,
            ),
        )
        logger.info(
            "Admin %s overrode registration %s: %s", admin_user_id, registration_id, reason.strip()
        )

        if not issue_ticket or (overridden.ticket_issued and overridden.ticket_id):
            return overridden

        result = self.issuer.issue_ticket_from_registration(overridden)
        if result is None:
            return self._require(registration_id)
        return result.registration

    def check_in(self, registration_id: str) -> Registration:
        """
        Check a verified (or admin-booked) registration in at the venue.

        The linked ticket, if any, is marked checked-in as well.
        """
        registration = self._require(registration_id)
        self.rules.validate_check_in_eligibility(registration)

        checked_in = self._write(
            registration,
            RegistrationPatch(
                status=RegistrationStatus.VERIFIED,
                check_in_time=self.clock(),
                waiting_status=WaitingStatus.COMPLETE,
            ),
        )
        if checked_in.ticket_id:
            face_verified = checked_in.face_verification_status == FaceVerificationStatus.SUCCESS
            self.tickets.check_in(checked_in.ticket_id, face_verified)
        return checked_in

    def get_ticket(self, ticket_id: str) -> Ticket:
        ticket = self.tickets.get_by_id(ticket_id)
        if ticket is None:
            raise NotFoundError("No ticket found with that ID")
        return ticket

    def list_tickets_for_event(self, event_id: str) -> list[Ticket]:
        if self.events.get_by_id(event_id) is None:
            raise NotFoundError("No event found with that ID")
        return self.tickets.list_by_event(event_id)

    def verify_ticket(self, ticket_id: str) -> Ticket:
        """
        Admit a ticket holder at the venue by ticket id.

        The ticket is marked checked-in with face_verified set. Its linked
        registration, if not yet checked in, records the check-in too.

        Raises:
            NotFoundError: Unknown ticket
            ValidationError: The ticket was already used
        """
        ticket = self.get_ticket(ticket_id)
        if ticket.status == TicketStatus.CHECKED_IN:
            raise ValidationError("Ticket has already been checked in")

        verified = self.tickets.check_in(ticket_id, True)
        if verified is None:
            raise NotFoundError("No ticket found with that ID")

        if ticket.registration_id:
            registration = self.registrations.get_by_id(ticket.registration_id)
            if registration is not None and registration.check_in_time is None:
                self._write(
                    registration,
                    RegistrationPatch(
                        status=RegistrationStatus.VERIFIED,
                        check_in_time=verified.check_in_time or self.clock(),
                        waiting_status=WaitingStatus.COMPLETE,
                    ),
                )
        logger.info("Ticket %s verified at the venue", ticket_id)
        return verified

    def purchase_ticket(
        self,
        user_id: str,
        event_id: str,
        quantity: int = 1,
        unit_price: float | None = None,
        total_price: float | None = None,
        notes: str | None = None,
    ) -> PurchaseOutcome:
        """
        Record a ticket purchase and issue it if the user can be verified.

        The request is stored on the user's pending registration for the
        event, or on a new one. Users without face data on file get a
        queued registration and status PENDING_VERIFICATION; the sweeper
        issues it once verification resolves.

        Raises:
            NotFoundError: Unknown user or event
            ValidationError: Already registered with a settled registration,
                or the event is full
        """
        user = self.users.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if self.events.get_by_id(event_id) is None:
            raise NotFoundError("Event not found")

        if not isinstance(quantity, int) or quantity < 1:
            quantity = 1
        if total_price is None and unit_price is not None:
            total_price = unit_price * quantity

        request = RegistrationPatch(
            requested_quantity=quantity,
            unit_price=unit_price,
            total_price=total_price,
            notes=notes,
            ticket_request_source=TICKET_REQUEST_SOURCE,
            status=RegistrationStatus.PENDING,
            waiting_status=WaitingStatus.QUEUED,
            ticket_availability_status=TicketAvailabilityStatus.PENDING,
        )

        existing = self.registrations.find_by_event_and_user(event_id, user_id)
        if (
            existing is not None
            and existing.status == RegistrationStatus.PENDING
            and not existing.ticket_issued
        ):
            registration = self._write(existing, request)
        else:
            registration = self.register(user_id, event_id)
            registration = self._write(registration, request)

        if not user.has_face_data:
            logger.info(
                "Queued purchase for user %s on event %s pending face verification",
                user_id,
                event_id,
            )
            return PurchaseOutcome(status=PurchaseStatus.PENDING_VERIFICATION, registration=registration)

        result = self.issuer.issue_ticket_from_registration(registration, user_id)
        if result is None:
            return PurchaseOutcome(
                status=PurchaseStatus.QUEUED, registration=self._require(registration.registration_id)
            )
        return PurchaseOutcome(
            status=PurchaseStatus.ISSUED, registration=result.registration, issuance=result
        )

    def issue_pending_tickets_for_user(self, user_id: str) -> list[IssuanceResult]:
        return self.issuer.issue_pending_tickets_for_user(user_id)

    def registration_stats(self) -> RegistrationStats:
        registrations = self.registrations.list_all()
        by_status = Counter(r.status.value for r in registrations)
        by_face = Counter(r.face_verification_status.value for r in registrations)
        issued = sum(1 for r in registrations if r.ticket_issued)

        return RegistrationStats(
            by_status=dict(by_status),
            by_face_verification_status=dict(by_face),
            tickets_issued=issued,
            tickets_not_issued=len(registrations) - issued,
            admin_booked=sum(1 for r in registrations if r.admin_booked),
            total_registrations=len(registrations),
        )

    def _require(self, registration_id: str) -> Registration:
        registration = self.registrations.get_by_id(registration_id)
        if registration is None:
            raise NotFoundError("No registration found with that ID")
        return registration

    def _write(self, registration: Registration, patch: RegistrationPatch) -> Registration:
        updated = self.registrations.update_by_id(
            registration.registration_id, patch, expected_version=registration.version
        )
        if updated is None:
            raise NotFoundError("No registration found with that ID")
        return updated

    def _generate_registration_id(self) -> str:
        """
        Generate an opaque registration id.

        Uses secrets module for unguessable ids.
        """
        return f"reg_{secrets.token_hex(8)}"
