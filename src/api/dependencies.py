"""
FastAPI dependencies - Dependency injection factories.

This module provides Depends() factories for injecting
domain services and infrastructure adapters into routes.
"""

from dataclasses import dataclass

from fastapi import Request
from psycopg_pool import ConnectionPool

from src.adapters.repository.memory import (
    InMemoryEventRepository,
    InMemoryRegistrationRepository,
    InMemoryStore,
    InMemoryTicketRepository,
    InMemoryUserDirectory,
)
from src.adapters.repository.postgres import (
    PostgresEventRepository,
    PostgresRegistrationRepository,
    PostgresTicketRepository,
    PostgresUserDirectory,
)
from src.config.settings import get_settings
from src.domain.issuance import TicketIssuer
from src.domain.ports import EventRepository, RegistrationRepository, TicketRepository, UserDirectory
from src.domain.registration import RegistrationService
from src.domain.rules import BusinessRules


@dataclass
class Repositories:
    """The set of store adapters the domain service is wired with."""

    registrations: RegistrationRepository
    events: EventRepository
    tickets: TicketRepository
    users: UserDirectory


def postgres_repositories(pool: ConnectionPool) -> Repositories:
    return Repositories(
        registrations=PostgresRegistrationRepository(pool),
        events=PostgresEventRepository(pool),
        tickets=PostgresTicketRepository(pool),
        users=PostgresUserDirectory(pool),
    )


def memory_repositories(store: InMemoryStore) -> Repositories:
    return Repositories(
        registrations=InMemoryRegistrationRepository(store),
        events=InMemoryEventRepository(store),
        tickets=InMemoryTicketRepository(store),
        users=InMemoryUserDirectory(store),
    )


def get_repositories(request: Request) -> Repositories:
    """
    Get store adapters from app state.

    The repositories are created during app lifespan startup and stored in app.state.
    """
    return request.app.state.repositories


def build_registration_service(repositories: Repositories) -> RegistrationService:
    """Wire rules, issuer and service together over one set of repositories."""
    settings = get_settings()
    rules = BusinessRules(
        registrations=repositories.registrations,
        events=repositories.events,
        users=repositories.users,
        max_verification_attempts=settings.max_verification_attempts,
        min_override_reason_length=settings.min_override_reason_length,
    )
    issuer = TicketIssuer(
        registrations=repositories.registrations,
        events=repositories.events,
        tickets=repositories.tickets,
        users=repositories.users,
        max_cas_retries=settings.max_cas_retries,
    )
    return RegistrationService(
        registrations=repositories.registrations,
        events=repositories.events,
        tickets=repositories.tickets,
        users=repositories.users,
        rules=rules,
        issuer=issuer,
    )


def get_registration_service(request: Request) -> RegistrationService:
    """Create registration service with injected dependencies."""
    return build_registration_service(get_repositories(request))
