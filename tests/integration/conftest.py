"""
Shared fixtures for integration tests.

Integration tests run against the PostgreSQL database named by
DATABASE_URL. They are skipped when it is unreachable.
"""

from collections.abc import Generator

import pytest
from psycopg_pool import ConnectionPool, PoolTimeout

from src.adapters.repository.postgres import run_migrations
from src.config.settings import get_settings


@pytest.fixture(scope="module")
def pool() -> Generator[ConnectionPool, None, None]:
    """Create connection pool for integration tests, with migrations applied."""
    settings = get_settings()
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=1,
        max_size=10,
        open=True,
    )
    try:
        pool.wait(timeout=2.0)
    except PoolTimeout:
        pool.close()
        pytest.skip("PostgreSQL is not reachable")
    run_migrations(pool)
    yield pool
    pool.close()


@pytest.fixture(autouse=True)
def clean_database(pool: ConnectionPool) -> Generator[None, None, None]:
    """Empty every table before each test."""
    with pool.connection() as conn:
        conn.execute("DELETE FROM tickets")
        conn.execute("DELETE FROM registrations")
        conn.execute("DELETE FROM events")
        conn.execute("DELETE FROM users")
        conn.commit()
    yield


class Seeder:
    """Inserts users and events directly, bypassing the repositories."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def user(self, user_id: str, role: str = "user", has_face_data: bool = True) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                "INSERT INTO users (user_id, role, has_face_data) VALUES (%s, %s, %s)",
                (user_id, role, has_face_data),
            )
            conn.commit()

    def event(
        self,
        event_id: str,
        ticket_price: float = 10.0,
        total_tickets: int = 0,
        tickets_sold: int = 0,
    ) -> None:
        with self._pool.connection() as conn:
            conn.execute(
                """INSERT INTO events (event_id, name, ticket_price, total_tickets, tickets_sold)
                   VALUES (%s, %s, %s, %s, %s)""",
                (event_id, event_id, ticket_price, total_tickets, tickets_sold),
            )
            conn.commit()


@pytest.fixture
def seed(pool: ConnectionPool) -> Seeder:
    return Seeder(pool)
