"""Repository adapters - Database and in-memory implementations."""

from .memory import (
    InMemoryEventRepository,
    InMemoryRegistrationRepository,
    InMemoryStore,
    InMemoryTicketRepository,
    InMemoryUserDirectory,
)
from .postgres import (
    PostgresEventRepository,
    PostgresRegistrationRepository,
    PostgresTicketRepository,
    PostgresUserDirectory,
    run_migrations,
)

__all__ = [
    "InMemoryEventRepository",
    "InMemoryRegistrationRepository",
    "InMemoryStore",
    "InMemoryTicketRepository",
    "InMemoryUserDirectory",
    "PostgresEventRepository",
    "PostgresRegistrationRepository",
    "PostgresTicketRepository",
    "PostgresUserDirectory",
    "run_migrations",
]
