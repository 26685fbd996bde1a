"""
Business rules - Invariant checks run before every state transition.

Each validate_* method returns None when the rule holds and raises a
DomainError otherwise. None of them write to the store; callers apply
the resulting transition.
"""

from dataclasses import dataclass

from .exceptions import NotFoundError, PermissionDenied, ValidationError
from .models import FaceVerificationStatus, Registration, RegistrationStatus
from .ports import EventRepository, RegistrationRepository, UserDirectory

MAX_VERIFICATION_ATTEMPTS = 3
MIN_OVERRIDE_REASON_LENGTH = 10


@dataclass
class BusinessRules:
    """Stateless validators over registrations, events and admin overrides."""

    registrations: RegistrationRepository
    events: EventRepository
    users: UserDirectory
    max_verification_attempts: int = MAX_VERIFICATION_ATTEMPTS
    min_override_reason_length: int = MIN_OVERRIDE_REASON_LENGTH

    def validate_registration_integrity(self, user_id: str | None, event_id: str | None) -> None:
        """
        Reject missing ids and duplicate (event_id, user_id) registrations.

        Raises:
            ValidationError: If an id is missing or the pair is already registered
        """
        if not user_id or not event_id:
            raise ValidationError("User ID and Event ID are required")

        existing = self.registrations.find_by_event_and_user(event_id, user_id)
        if existing is not None:
            raise ValidationError("User is already registered for this event")

    def validate_event_capacity(self, event_id: str | None) -> None:
        """
        Reject registrations once an event's registration count reaches
        total_tickets. Zero total_tickets means the event is uncapped.

        Raises:
            ValidationError: If the id is missing or the event is full
            NotFoundError: If the event does not exist
        """
        if not event_id:
            raise ValidationError("Event ID is required")

        event = self.events.get_by_id(event_id)
        if event is None:
            raise NotFoundError("Event not found")

        if event.has_capacity_limit:
            registration_count = self.registrations.count_by_event(event_id)
            if registration_count >= event.total_tickets:
                raise ValidationError("Event has reached maximum capacity")

    def validate_ticket_issuance_rules(self, registration: Registration) -> None:
        """
        Check a registration may receive a ticket.

        Re-issuance is tolerated when face verification succeeded, the
        registration was admin-booked, or it is already verified. Those
        escape hatches let retries and overrides through; callers that must
        not re-issue check ticket_issued themselves.
        """
        if registration.status == RegistrationStatus.REJECTED:
            raise ValidationError("Cannot issue ticket for rejected registration")

        face_ok = registration.face_verification_status == FaceVerificationStatus.SUCCESS
        verified = registration.status == RegistrationStatus.VERIFIED

        if registration.ticket_issued and not face_ok and not registration.admin_booked and not verified:
            raise ValidationError("Ticket has already been issued for this registration")

        if not face_ok and not registration.admin_booked and not verified:
            raise ValidationError(
                "Face verification must be successful before issuing ticket (unless admin override)"
            )

    def validate_admin_override(self, admin_user_id: str | None, reason: str | None) -> None:
        """
        Require a written justification and an admin caller.

        Raises:
            ValidationError: If the reason is missing or too short
            NotFoundError: If the admin user does not exist
            PermissionDenied: If the user is not an admin
        """
        if not reason or len(reason.strip()) < self.min_override_reason_length:
            raise ValidationError(
                f"Admin override reason must be at least {self.min_override_reason_length} characters"
            )

        admin = self.users.get_by_id(admin_user_id) if admin_user_id else None
        if admin is None:
            raise NotFoundError("Admin user not found")
        if not admin.is_admin:
            raise PermissionDenied("User is not permitted to perform admin overrides")

    def validate_face_verification_attempt(self, registration: Registration) -> None:
        if registration.verification_attempts >= self.max_verification_attempts:
            raise ValidationError("Maximum face verification attempts exceeded")

        if registration.face_verification_status == FaceVerificationStatus.SUCCESS:
            raise ValidationError("Face verification already completed successfully")

    def validate_check_in_eligibility(self, registration: Registration) -> None:
        if registration.status != RegistrationStatus.VERIFIED and not registration.admin_booked:
            raise ValidationError("Registration must be verified before check-in")

        if registration.check_in_time is not None:
            raise ValidationError("User has already checked in")
