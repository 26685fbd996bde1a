"""
Ticket issuance engine and queued-issuance sweeper.

Issuance converts an eligible registration into a Ticket and keeps the
event's tickets_sold counter in step with it. The store has no transaction
spanning the three records, so issuance proceeds in ordered steps:

1. Claim the registration with a versioned write (waiting -> processing).
   A concurrent claim on the same registration loses with a conflict.
2. Reserve capacity with compare-and-swap on tickets_sold, re-reading the
   event on conflict, for at most max_cas_retries rounds.
3. Create the ticket. The store allows one ticket per registration, so a
   second worker that got this far loses here. On any failure the
   reservation is released.
4. Settle the registration (verified / complete / success / available),
   conditioned on the claimed version.

If step 4 fails, the ticket and its reservation stay in place. The next
issuance of that registration finds the stored ticket after the claim and
resumes at step 4 instead of reserving again.

A deferred issuance (event missing or full) returns None. None means
"try again later", not an error.
"""

import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime

from .exceptions import ConcurrentUpdateError, NotFoundError, ValidationError
from .models import (
    Event,
    FaceVerificationStatus,
    IssuanceResult,
    Registration,
    RegistrationPatch,
    RegistrationStatus,
    Ticket,
    TicketAvailabilityStatus,
    TicketStatus,
    User,
    WaitingStatus,
    utcnow,
)
from .ports import EventRepository, RegistrationRepository, TicketRepository, UserDirectory

logger = logging.getLogger(__name__)

DEFAULT_MAX_CAS_RETRIES = 5
TICKET_REQUEST_SOURCE = "ticket_purchase"


def _generate_ticket_id() -> str:
    return f"tkt_{secrets.token_hex(8)}"


def requested_quantity(registration: Registration) -> int:
    """Quantity to issue; anything other than a positive int means 1."""
    quantity = registration.requested_quantity
    if isinstance(quantity, int) and not isinstance(quantity, bool) and quantity > 0:
        return quantity
    return 1


def _verification_resolved(registration: Registration, holder: User | None) -> bool:
    if registration.admin_booked:
        return True
    if registration.face_verification_status == FaceVerificationStatus.SUCCESS:
        return True
    if registration.face_verification_status == FaceVerificationStatus.FAILED:
        return False
    return holder is not None and holder.has_face_data


@dataclass
class TicketIssuer:
    """Issues tickets from registrations and sweeps a user's queued requests."""

    registrations: RegistrationRepository
    events: EventRepository
    tickets: TicketRepository
    users: UserDirectory
    max_cas_retries: int = DEFAULT_MAX_CAS_RETRIES
    clock: Callable[[], datetime] = utcnow

    def issue_ticket_from_registration(
        self, registration: Registration, user_id: str | None = None
    ) -> IssuanceResult | None:
        """
        Issue a ticket for a registration if its event has room.

        Args:
            registration: Current snapshot of the registration
            user_id: Ticket holder; defaults to the registration's user

        Returns:
            IssuanceResult on success, None when issuance was deferred
            (event full) or rejected (event missing)

        Raises:
            ValidationError: If the registration already holds a ticket
            ConcurrentUpdateError: If the registration changed since it was
                read, or capacity could not be reserved within the retry budget
            NotFoundError: If the registration or event vanished mid-issuance
        """
        if registration.ticket_issued and registration.ticket_id:
            raise ValidationError("Ticket has already been issued for this registration")

        holder = user_id or registration.user_id
        registration = self._claim(registration)

        event = self.events.get_by_id(registration.event_id)
        if event is None:
            logger.warning(
                "Event %s not found, rejecting registration %s",
                registration.event_id,
                registration.registration_id,
            )
            self._settle(
                registration,
                RegistrationPatch(
                    ticket_availability_status=TicketAvailabilityStatus.EVENT_UNAVAILABLE,
                    waiting_status=WaitingStatus.CANCELLED,
                    status=RegistrationStatus.REJECTED,
                ),
            )
            return None

        existing = self.tickets.get_by_registration(registration.registration_id)
        if existing is not None:
            logger.warning(
                "Registration %s already holds ticket %s, completing its issuance",
                registration.registration_id,
                existing.ticket_id,
            )
            settled = self._settle_issued(registration, existing)
            return IssuanceResult(ticket=existing, event=event, registration=settled)

        quantity = requested_quantity(registration)
        unit_price = registration.unit_price if registration.unit_price is not None else event.ticket_price
        total_price = registration.total_price if registration.total_price is not None else unit_price * quantity

        reserved = self._reserve_capacity(event, quantity)
        if reserved is None:
            logger.info(
                "Event %s cannot fit %d more ticket(s), queueing registration %s",
                event.event_id,
                quantity,
                registration.registration_id,
            )
            self._settle(
                registration,
                RegistrationPatch(
                    ticket_availability_status=TicketAvailabilityStatus.UNAVAILABLE,
                    waiting_status=WaitingStatus.QUEUED,
                    status=RegistrationStatus.PENDING,
                ),
            )
            return None

        ticket = Ticket(
            ticket_id=_generate_ticket_id(),
            event_id=reserved.event_id,
            user_id=holder,
            registration_id=registration.registration_id,
            quantity=quantity,
            price=unit_price,
            total_price=total_price,
            notes=registration.notes,
            status=TicketStatus.ACTIVE,
            face_verified=True,
            created_at=self.clock(),
        )
        try:
            ticket = self.tickets.create(ticket)
        except Exception:
            self._release_capacity(reserved.event_id, quantity)
            raise

        settled = self._settle_issued(registration, ticket)
        logger.info(
            "Issued ticket %s (quantity %d) for registration %s",
            ticket.ticket_id,
            quantity,
            registration.registration_id,
        )
        return IssuanceResult(ticket=ticket, event=reserved, registration=settled)

    def issue_pending_tickets_for_user(self, user_id: str | None) -> list[IssuanceResult]:
        """
        Retry issuance for every pending, unissued registration of a user.

        Only registrations whose verification has resolved are issued: the
        registration is admin-booked, its face verification succeeded, or
        the user has face data on file and has not failed verification.
        Others stay queued until verification completes.

        Registrations are processed one at a time. A failure on one
        registration marks it with availability "error" and the sweep moves
        on. This never raises: a failed lookup yields an empty list.
        """
        if not user_id:
            return []

        try:
            registrations = self.registrations.list_by_user(user_id)
            holder = self.users.get_by_id(user_id)
        except Exception:
            logger.exception("Failed to load registrations for user %s", user_id)
            return []

        pending = []
        for registration in registrations:
            if registration.status != RegistrationStatus.PENDING or registration.ticket_issued:
                continue
            if not _verification_resolved(registration, holder):
                logger.debug(
                    "Registration %s is awaiting face verification, leaving it queued",
                    registration.registration_id,
                )
                continue
            pending.append(registration)

        issued: list[IssuanceResult] = []
        for registration in pending:
            try:
                result = self.issue_ticket_from_registration(registration, user_id)
            except Exception:
                logger.exception(
                    "Failed to issue ticket for registration %s", registration.registration_id
                )
                self._mark_error(registration)
                continue
            if result is not None:
                issued.append(result)

        return issued

    def _claim(self, registration: Registration) -> Registration:
        claimed = self.registrations.update_by_id(
            registration.registration_id,
            RegistrationPatch(waiting_status=WaitingStatus.PROCESSING),
            expected_version=registration.version,
        )
        if claimed is None:
            raise NotFoundError("Registration not found")
        return claimed

    def _settle(self, registration: Registration, patch: RegistrationPatch) -> Registration:
        updated = self.registrations.update_by_id(
            registration.registration_id, patch, expected_version=registration.version
        )
        if updated is None:
            raise NotFoundError("Registration not found")
        return updated

    def _settle_issued(self, registration: Registration, ticket: Ticket) -> Registration:
        # The ticket is already stored, so a conflicting write is re-read and
        # the issuance fields are applied on top of the version just read.
        patch = RegistrationPatch(
            ticket_issued=True,
            ticket_issued_date=self.clock(),
            ticket_availability_status=TicketAvailabilityStatus.AVAILABLE,
            waiting_status=WaitingStatus.COMPLETE,
            face_verification_status=FaceVerificationStatus.SUCCESS,
            status=RegistrationStatus.VERIFIED,
            ticket_id=ticket.ticket_id,
        )
        current = registration
        for _ in range(self.max_cas_retries):
            try:
                return self._settle(current, patch)
            except ConcurrentUpdateError:
                current = self.registrations.get_by_id(registration.registration_id)
                if current is None:
                    raise NotFoundError("Registration not found") from None
                if current.ticket_issued and current.ticket_id == ticket.ticket_id:
                    return current
                logger.debug(
                    "Registration %s changed before ticket %s was recorded, re-reading",
                    registration.registration_id,
                    ticket.ticket_id,
                )

        raise ConcurrentUpdateError(
            f"Could not record ticket {ticket.ticket_id} on registration "
            f"{registration.registration_id} after {self.max_cas_retries} attempts"
        )

    def _reserve_capacity(self, event: Event, quantity: int) -> Event | None:
        current: Event | None = event
        for _ in range(self.max_cas_retries):
            if current is None:
                raise NotFoundError("Event not found")
            if not current.can_accommodate(quantity):
                return None

            new_sold = current.tickets_sold + quantity
            if self.events.compare_and_swap_tickets_sold(current.event_id, current.tickets_sold, new_sold):
                return replace(current, tickets_sold=new_sold)

            logger.debug("tickets_sold changed under us for event %s, re-reading", event.event_id)
            current = self.events.get_by_id(event.event_id)

        raise ConcurrentUpdateError(
            f"Could not reserve capacity for event {event.event_id} after {self.max_cas_retries} attempts"
        )

    def _release_capacity(self, event_id: str, quantity: int) -> None:
        for _ in range(self.max_cas_retries):
            current = self.events.get_by_id(event_id)
            if current is None:
                return
            new_sold = max(current.tickets_sold - quantity, 0)
            if self.events.compare_and_swap_tickets_sold(event_id, current.tickets_sold, new_sold):
                logger.info("Released %d ticket(s) on event %s", quantity, event_id)
                return
        logger.error("Could not release %d ticket(s) on event %s", quantity, event_id)

    def _mark_error(self, registration: Registration) -> None:
        # Conditioned on a fresh read so a registration another worker has
        # already issued is never overwritten.
        try:
            current = self.registrations.get_by_id(registration.registration_id)
            if current is None or current.ticket_issued:
                return
            self.registrations.update_by_id(
                registration.registration_id,
                RegistrationPatch(
                    ticket_availability_status=TicketAvailabilityStatus.ERROR,
                    waiting_status=WaitingStatus.QUEUED,
                ),
                expected_version=current.version,
            )
        except Exception:
            logger.exception(
                "Failed to mark registration %s for retry", registration.registration_id
            )
