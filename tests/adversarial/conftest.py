"""
Shared fixtures for adversarial tests.

Provides an in-memory store and a service wired over it for the race
condition and attempt-cap tests. The in-memory adapter applies conditional
writes under one lock, matching the PostgreSQL adapter's guarantees.
"""

import pytest

from src.adapters.repository.memory import InMemoryStore
from src.api.dependencies import memory_repositories
from src.domain.issuance import TicketIssuer
from src.domain.models import Event, User, UserRole
from src.domain.registration import RegistrationService
from src.domain.rules import BusinessRules

# Module-level marker for all adversarial tests
pytestmark = pytest.mark.adversarial

ADMIN_USER = "usr_admin"


@pytest.fixture
def store() -> InMemoryStore:
    store = InMemoryStore()
    store.add_user(User(user_id=ADMIN_USER, role=UserRole.ADMIN, has_face_data=True))
    for i in range(50):
        store.add_user(User(user_id=f"usr_{i}", has_face_data=True))
    store.add_event(Event(event_id="evt_open", ticket_price=10.0))
    return store


@pytest.fixture
def service(store: InMemoryStore) -> RegistrationService:
    """
    Service with a retry budget large enough that capacity, not contention,
    decides who gets a ticket.
    """
    repositories = memory_repositories(store)
    rules = BusinessRules(
        registrations=repositories.registrations,
        events=repositories.events,
        users=repositories.users,
    )
    issuer = TicketIssuer(
        registrations=repositories.registrations,
        events=repositories.events,
        tickets=repositories.tickets,
        users=repositories.users,
        max_cas_retries=100,
    )
    return RegistrationService(
        registrations=repositories.registrations,
        events=repositories.events,
        tickets=repositories.tickets,
        users=repositories.users,
        rules=rules,
        issuer=issuer,
    )
