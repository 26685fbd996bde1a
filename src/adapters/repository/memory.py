"""
In-memory repository adapter - Implements the domain's store protocols.

Backs development runs (STORAGE_BACKEND=memory) and the test suite. One
InMemoryStore holds every table behind a single lock, and each repository
class is a view over it. Conditional writes (expected_version,
compare_and_swap_tickets_sold) are checked under that lock, so the adapter
has the same atomicity guarantees as the PostgreSQL one.
"""

import threading
from dataclasses import replace

from src.domain.exceptions import ConcurrentUpdateError, ValidationError
from src.domain.models import (
    Event,
    EventPatch,
    Registration,
    RegistrationPatch,
    RegistrationStatus,
    Ticket,
    TicketStatus,
    User,
    utcnow,
)


class InMemoryStore:
    """Process-local tables shared by the in-memory repositories."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.registrations: dict[str, Registration] = {}
        self.events: dict[str, Event] = {}
        self.tickets: dict[str, Ticket] = {}
        self.users: dict[str, User] = {}

    def add_event(self, event: Event) -> Event:
        with self.lock:
            self.events[event.event_id] = event
        return event

    def add_user(self, user: User) -> User:
        with self.lock:
            self.users[user.user_id] = user
        return user


def _newest_first(registrations: list[Registration]) -> list[Registration]:
    return sorted(registrations, key=lambda r: r.registration_date, reverse=True)


class InMemoryRegistrationRepository:
    """
    Implements RegistrationRepository protocol over an InMemoryStore.

    Uses structural subtyping - no explicit inheritance from Protocol.
    """

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, registration: Registration) -> Registration:
        """
        Insert a registration.

        Raises:
            ValidationError: If the (event_id, user_id) pair is already taken
        """
        with self._store.lock:
            for existing in self._store.registrations.values():
                if existing.event_id == registration.event_id and existing.user_id == registration.user_id:
                    raise ValidationError("User is already registered for this event")
            self._store.registrations[registration.registration_id] = registration
        return registration

    def get_by_id(self, registration_id: str) -> Registration | None:
        with self._store.lock:
            return self._store.registrations.get(registration_id)

    def update_by_id(
        self,
        registration_id: str,
        patch: RegistrationPatch,
        expected_version: int | None = None,
    ) -> Registration | None:
        with self._store.lock:
            current = self._store.registrations.get(registration_id)
            if current is None:
                return None
            if expected_version is not None and current.version != expected_version:
                raise ConcurrentUpdateError(
                    f"Registration {registration_id} was modified concurrently"
                )
            updated = current.apply(patch, utcnow())
            self._store.registrations[registration_id] = updated
            return updated

    def find_by_event_and_user(self, event_id: str, user_id: str) -> Registration | None:
        with self._store.lock:
            for registration in self._store.registrations.values():
                if registration.event_id == event_id and registration.user_id == user_id:
                    return registration
        return None

    def list_by_user(self, user_id: str) -> list[Registration]:
        with self._store.lock:
            found = [r for r in self._store.registrations.values() if r.user_id == user_id]
        return _newest_first(found)

    def list_by_event(self, event_id: str) -> list[Registration]:
        with self._store.lock:
            found = [r for r in self._store.registrations.values() if r.event_id == event_id]
        return _newest_first(found)

    def count_by_event(self, event_id: str) -> int:
        with self._store.lock:
            return sum(1 for r in self._store.registrations.values() if r.event_id == event_id)

    def list_by_status(self, status: RegistrationStatus) -> list[Registration]:
        with self._store.lock:
            found = [r for r in self._store.registrations.values() if r.status == status]
        return _newest_first(found)

    def list_all(self) -> list[Registration]:
        with self._store.lock:
            return list(self._store.registrations.values())


class InMemoryEventRepository:
    """Implements EventRepository protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_by_id(self, event_id: str) -> Event | None:
        with self._store.lock:
            return self._store.events.get(event_id)

    def update_by_id(self, event_id: str, patch: EventPatch) -> Event | None:
        with self._store.lock:
            current = self._store.events.get(event_id)
            if current is None:
                return None
            updated = replace(current, **patch.changes())
            self._store.events[event_id] = updated
            return updated

    def compare_and_swap_tickets_sold(self, event_id: str, expected: int, new: int) -> bool:
        with self._store.lock:
            current = self._store.events.get(event_id)
            if current is None or current.tickets_sold != expected:
                return False
            self._store.events[event_id] = replace(current, tickets_sold=new)
            return True


class InMemoryTicketRepository:
    """Implements TicketRepository protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def create(self, ticket: Ticket) -> Ticket:
        with self._store.lock:
            if ticket.registration_id is not None and any(
                t.registration_id == ticket.registration_id for t in self._store.tickets.values()
            ):
                raise ConcurrentUpdateError(
                    f"A ticket already exists for registration {ticket.registration_id}"
                )
            self._store.tickets[ticket.ticket_id] = ticket
        return ticket

    def get_by_id(self, ticket_id: str) -> Ticket | None:
        with self._store.lock:
            return self._store.tickets.get(ticket_id)

    def get_by_registration(self, registration_id: str) -> Ticket | None:
        with self._store.lock:
            for ticket in self._store.tickets.values():
                if ticket.registration_id == registration_id:
                    return ticket
        return None

    def list_by_event(self, event_id: str) -> list[Ticket]:
        with self._store.lock:
            return [t for t in self._store.tickets.values() if t.event_id == event_id]

    def check_in(self, ticket_id: str, face_verified: bool) -> Ticket | None:
        with self._store.lock:
            current = self._store.tickets.get(ticket_id)
            if current is None:
                return None
            updated = replace(
                current,
                status=TicketStatus.CHECKED_IN,
                check_in_time=utcnow(),
                face_verified=face_verified,
            )
            self._store.tickets[ticket_id] = updated
            return updated


class InMemoryUserDirectory:
    """Implements UserDirectory protocol over an InMemoryStore."""

    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    def get_by_id(self, user_id: str) -> User | None:
        with self._store.lock:
            return self._store.users.get(user_id)
