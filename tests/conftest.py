"""
Shared test fixtures and configuration.

This module provides pytest fixtures for:
- An in-memory store and the repositories viewing it
- Business rules, ticket issuer and registration service wired over it
- Seed users (verified, unverified, admin) and events
"""

import pytest

from src.adapters.repository.memory import (
    InMemoryEventRepository,
    InMemoryRegistrationRepository,
    InMemoryStore,
    InMemoryTicketRepository,
    InMemoryUserDirectory,
)
from src.domain.issuance import TicketIssuer
from src.domain.models import Event, User, UserRole
from src.domain.registration import RegistrationService
from src.domain.rules import BusinessRules

VERIFIED_USER = "usr_verified"
UNVERIFIED_USER = "usr_unverified"
ADMIN_USER = "usr_admin"
OPEN_EVENT = "evt_open"


@pytest.fixture
def store() -> InMemoryStore:
    """Fresh store seeded with users and an uncapped event."""
    store = InMemoryStore()
    store.add_user(User(user_id=VERIFIED_USER, has_face_data=True))
    store.add_user(User(user_id=UNVERIFIED_USER, has_face_data=False))
    store.add_user(User(user_id=ADMIN_USER, role=UserRole.ADMIN, has_face_data=True))
    store.add_event(Event(event_id=OPEN_EVENT, name="Open Air", ticket_price=25.0))
    return store


@pytest.fixture
def registrations(store: InMemoryStore) -> InMemoryRegistrationRepository:
    return InMemoryRegistrationRepository(store)


@pytest.fixture
def events(store: InMemoryStore) -> InMemoryEventRepository:
    return InMemoryEventRepository(store)


@pytest.fixture
def tickets(store: InMemoryStore) -> InMemoryTicketRepository:
    return InMemoryTicketRepository(store)


@pytest.fixture
def users(store: InMemoryStore) -> InMemoryUserDirectory:
    return InMemoryUserDirectory(store)


@pytest.fixture
def rules(
    registrations: InMemoryRegistrationRepository,
    events: InMemoryEventRepository,
    users: InMemoryUserDirectory,
) -> BusinessRules:
    return BusinessRules(registrations=registrations, events=events, users=users)


@pytest.fixture
def issuer(
    registrations: InMemoryRegistrationRepository,
    events: InMemoryEventRepository,
    tickets: InMemoryTicketRepository,
    users: InMemoryUserDirectory,
) -> TicketIssuer:
    return TicketIssuer(registrations=registrations, events=events, tickets=tickets, users=users)


@pytest.fixture
def service(
    registrations: InMemoryRegistrationRepository,
    events: InMemoryEventRepository,
    tickets: InMemoryTicketRepository,
    users: InMemoryUserDirectory,
    rules: BusinessRules,
    issuer: TicketIssuer,
) -> RegistrationService:
    return RegistrationService(
        registrations=registrations,
        events=events,
        tickets=tickets,
        users=users,
        rules=rules,
        issuer=issuer,
    )
