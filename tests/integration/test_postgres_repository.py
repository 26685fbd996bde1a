"""
Integration tests for the PostgreSQL repository adapter.

Tests repository operations against a real PostgreSQL database.
Requires PostgreSQL reachable at DATABASE_URL; skipped otherwise.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone

import pytest
from psycopg_pool import ConnectionPool

from src.adapters.repository.postgres import (
    PostgresEventRepository,
    PostgresRegistrationRepository,
    PostgresTicketRepository,
    PostgresUserDirectory,
)
from src.domain.exceptions import ConcurrentUpdateError, ValidationError
from src.domain.models import (
    EventPatch,
    Registration,
    RegistrationPatch,
    RegistrationStatus,
    Ticket,
    TicketStatus,
    UserRole,
    WaitingStatus,
)

pytestmark = pytest.mark.integration

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def repository(pool: ConnectionPool) -> PostgresRegistrationRepository:
    """Create repository instance for each test."""
    return PostgresRegistrationRepository(pool)


def _registration(registration_id: str = "reg_1", user_id: str = "usr_1", **overrides) -> Registration:
    fields = {
        "registration_id": registration_id,
        "user_id": user_id,
        "event_id": "evt_1",
        "registration_date": NOW,
        "created_at": NOW,
        "updated_at": NOW,
    }
    fields.update(overrides)
    return Registration(**fields)


class TestRegistrationCreate:
    """Tests for PostgresRegistrationRepository.create."""

    def test_create_round_trips_enums(self, repository: PostgresRegistrationRepository) -> None:
        created = repository.create(_registration())

        assert created.status == RegistrationStatus.PENDING
        assert created.waiting_status == WaitingStatus.QUEUED
        assert created.version == 0
        assert repository.get_by_id("reg_1") == created

    def test_duplicate_pair_rejected(self, repository: PostgresRegistrationRepository) -> None:
        repository.create(_registration())

        with pytest.raises(ValidationError, match="already registered"):
            repository.create(_registration("reg_2"))

    def test_concurrent_duplicates_one_row(self, pool: ConnectionPool) -> None:
        """Unique (event_id, user_id) lets exactly one concurrent insert through."""

        def attempt(i: int) -> bool:
            try:
                PostgresRegistrationRepository(pool).create(_registration(f"reg_{i}"))
            except ValidationError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(attempt, range(5)))

        assert results.count(True) == 1
        with pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM registrations")
            assert cursor.fetchone()[0] == 1


class TestRegistrationUpdate:
    """Tests for PostgresRegistrationRepository.update_by_id."""

    def test_update_bumps_version(self, repository: PostgresRegistrationRepository) -> None:
        repository.create(_registration())

        updated = repository.update_by_id(
            "reg_1", RegistrationPatch(status=RegistrationStatus.VERIFIED, verification_attempts=2)
        )

        assert updated.status == RegistrationStatus.VERIFIED
        assert updated.verification_attempts == 2
        assert updated.version == 1
        assert updated.updated_at > NOW

    def test_stale_version_conflicts(self, repository: PostgresRegistrationRepository) -> None:
        repository.create(_registration())
        repository.update_by_id("reg_1", RegistrationPatch(notes="first"), expected_version=0)

        with pytest.raises(ConcurrentUpdateError):
            repository.update_by_id("reg_1", RegistrationPatch(notes="second"), expected_version=0)

        assert repository.get_by_id("reg_1").notes == "first"

    def test_missing_registration_returns_none(self, repository: PostgresRegistrationRepository) -> None:
        assert repository.update_by_id("reg_missing", RegistrationPatch(notes="x"), expected_version=0) is None

    def test_concurrent_versioned_writes_one_wins(
        self, pool: ConnectionPool, repository: PostgresRegistrationRepository
    ) -> None:
        repository.create(_registration())

        def attempt(i: int) -> bool:
            try:
                PostgresRegistrationRepository(pool).update_by_id(
                    "reg_1", RegistrationPatch(notes=f"writer {i}"), expected_version=0
                )
            except ConcurrentUpdateError:
                return False
            return True

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(attempt, range(5)))

        assert results.count(True) == 1
        assert repository.get_by_id("reg_1").version == 1


class TestRegistrationQueries:
    """Tests for the list and count queries."""

    def test_lists_and_counts(self, repository: PostgresRegistrationRepository) -> None:
        repository.create(_registration("reg_old", "usr_a", registration_date=NOW.replace(hour=9)))
        repository.create(_registration("reg_new", "usr_b"))
        repository.create(_registration("reg_other", "usr_a", event_id="evt_2"))

        assert [r.registration_id for r in repository.list_by_event("evt_1")] == ["reg_new", "reg_old"]
        assert {r.registration_id for r in repository.list_by_user("usr_a")} == {"reg_old", "reg_other"}
        assert repository.count_by_event("evt_1") == 2
        assert len(repository.list_by_status(RegistrationStatus.PENDING)) == 3
        assert repository.list_by_status(RegistrationStatus.VERIFIED) == []
        assert len(repository.list_all()) == 3
        assert repository.find_by_event_and_user("evt_2", "usr_a").registration_id == "reg_other"


class TestEvents:
    """Tests for PostgresEventRepository."""

    def test_compare_and_swap(self, pool: ConnectionPool, seed) -> None:
        seed.event("evt_1", total_tickets=10, tickets_sold=3)
        events = PostgresEventRepository(pool)

        assert events.compare_and_swap_tickets_sold("evt_1", 3, 5) is True
        assert events.compare_and_swap_tickets_sold("evt_1", 3, 4) is False
        assert events.get_by_id("evt_1").tickets_sold == 5

    def test_concurrent_compare_and_swap_one_wins(self, pool: ConnectionPool, seed) -> None:
        seed.event("evt_1", total_tickets=10)

        def attempt(_: int) -> bool:
            return PostgresEventRepository(pool).compare_and_swap_tickets_sold("evt_1", 0, 1)

        with ThreadPoolExecutor(max_workers=5) as executor:
            results = list(executor.map(attempt, range(5)))

        assert results.count(True) == 1
        assert PostgresEventRepository(pool).get_by_id("evt_1").tickets_sold == 1

    def test_update(self, pool: ConnectionPool, seed) -> None:
        seed.event("evt_1", ticket_price=10.0)
        events = PostgresEventRepository(pool)

        updated = events.update_by_id("evt_1", EventPatch(ticket_price=12.5))

        assert updated.ticket_price == 12.5
        assert events.update_by_id("evt_missing", EventPatch(name="x")) is None


class TestTicketsAndUsers:
    """Tests for PostgresTicketRepository and PostgresUserDirectory."""

    def test_ticket_create_and_check_in(self, pool: ConnectionPool, repository) -> None:
        repository.create(_registration())
        tickets = PostgresTicketRepository(pool)
        tickets.create(
            Ticket(
                ticket_id="tkt_1",
                event_id="evt_1",
                user_id="usr_1",
                registration_id="reg_1",
                quantity=2,
                price=10.0,
                total_price=20.0,
                created_at=NOW,
            )
        )

        checked_in = tickets.check_in("tkt_1", face_verified=True)

        assert checked_in.status == TicketStatus.CHECKED_IN
        assert checked_in.check_in_time is not None
        assert tickets.check_in("tkt_missing", face_verified=False) is None

    def test_one_ticket_per_registration(self, pool: ConnectionPool, repository) -> None:
        repository.create(_registration())
        tickets = PostgresTicketRepository(pool)
        ticket = Ticket(
            ticket_id="tkt_1", event_id="evt_1", user_id="usr_1", registration_id="reg_1",
            quantity=1, price=10.0, total_price=10.0, created_at=NOW,
        )
        tickets.create(ticket)

        with pytest.raises(ConcurrentUpdateError):
            tickets.create(replace(ticket, ticket_id="tkt_2"))

    def test_ticket_lookups(self, pool: ConnectionPool, repository) -> None:
        repository.create(_registration())
        tickets = PostgresTicketRepository(pool)
        ticket = Ticket(
            ticket_id="tkt_1", event_id="evt_1", user_id="usr_1", registration_id="reg_1",
            quantity=1, price=10.0, total_price=10.0, created_at=NOW,
        )
        tickets.create(ticket)
        tickets.create(replace(ticket, ticket_id="tkt_2", registration_id=None, created_at=NOW.replace(hour=13)))
        tickets.create(replace(ticket, ticket_id="tkt_3", event_id="evt_2", registration_id=None))

        assert tickets.get_by_id("tkt_1") == ticket
        assert tickets.get_by_registration("reg_1").ticket_id == "tkt_1"
        assert tickets.get_by_registration("reg_missing") is None
        assert [t.ticket_id for t in tickets.list_by_event("evt_1")] == ["tkt_1", "tkt_2"]
        assert tickets.list_by_event("evt_missing") == []

    def test_user_directory(self, pool: ConnectionPool, seed) -> None:
        seed.user("usr_admin", role="admin")
        users = PostgresUserDirectory(pool)

        admin = users.get_by_id("usr_admin")

        assert admin.role == UserRole.ADMIN
        assert admin.has_face_data is True
        assert users.get_by_id("usr_missing") is None
