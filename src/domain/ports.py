"""
Port interfaces - Protocol definitions for infrastructure abstraction.

This module defines the interfaces (ports) that the domain requires
from infrastructure. Adapters implement these protocols.

The store offers no transaction spanning Registration, Event and Ticket
records. The domain compensates with two conditional primitives:
- update_by_id(..., expected_version=N) on registrations
- compare_and_swap_tickets_sold() on events
"""

from typing import Protocol

from .models import Event, EventPatch, Registration, RegistrationPatch, RegistrationStatus, Ticket, User


class RegistrationRepository(Protocol):
    """Port interface for registration persistence."""

    def create(self, registration: Registration) -> Registration:
        """Persist a new registration and return the stored record."""
        ...

    def get_by_id(self, registration_id: str) -> Registration | None: ...

    def update_by_id(
        self,
        registration_id: str,
        patch: RegistrationPatch,
        expected_version: int | None = None,
    ) -> Registration | None:
        """
        Apply a partial update and return the updated record.

        Args:
            registration_id: Registration to update
            patch: Fields to write
            expected_version: When given, the write only happens if the
                stored version still equals it

        Returns:
            Updated registration, or None if it does not exist

        Raises:
            ConcurrentUpdateError: If expected_version no longer matches
        """
        ...

    def find_by_event_and_user(self, event_id: str, user_id: str) -> Registration | None:
        """Exact-match lookup on the (event_id, user_id) pair."""
        ...

    def list_by_user(self, user_id: str) -> list[Registration]:
        """Registrations for a user, newest registration_date first."""
        ...

    def list_by_event(self, event_id: str) -> list[Registration]:
        """Registrations for an event, newest registration_date first."""
        ...

    def count_by_event(self, event_id: str) -> int: ...

    def list_by_status(self, status: RegistrationStatus) -> list[Registration]: ...

    def list_all(self) -> list[Registration]: ...


class EventRepository(Protocol):
    """Port interface for event persistence."""

    def get_by_id(self, event_id: str) -> Event | None: ...

    def update_by_id(self, event_id: str, patch: EventPatch) -> Event | None: ...

    def compare_and_swap_tickets_sold(self, event_id: str, expected: int, new: int) -> bool:
        """
        Set tickets_sold to new only if it still equals expected.

        Returns:
            True if the write happened, False on conflict or missing event
        """
        ...


class TicketRepository(Protocol):
    """Port interface for ticket persistence."""

    def create(self, ticket: Ticket) -> Ticket: ...

    def get_by_id(self, ticket_id: str) -> Ticket | None: ...

    def get_by_registration(self, registration_id: str) -> Ticket | None:
        """Return the ticket issued for a registration, if any."""
        ...

    def list_by_event(self, event_id: str) -> list[Ticket]: ...

    def check_in(self, ticket_id: str, face_verified: bool) -> Ticket | None:
        """Mark a ticket checked-in and stamp check_in_time."""
        ...


class UserDirectory(Protocol):
    """Port interface for read-only user lookups."""

    def get_by_id(self, user_id: str) -> User | None: ...
