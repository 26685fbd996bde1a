"""
PostgreSQL repository adapter - Implements the domain's store protocols.

This module provides the PostgreSQL implementation of the domain's
repository ports using psycopg3 with raw SQL.

Concurrency Design - Conditional Writes:
----------------------------------------
The domain does not rely on a transaction spanning registrations, events
and tickets. Instead every contended write is conditional and atomic on
its own row:

1. **Registration versioning**: update_by_id(..., expected_version=N) adds
   ``AND version = %s`` to the UPDATE and bumps the version. A zero-row
   result on an existing registration is a lost race.

2. **tickets_sold compare-and-swap**: ``UPDATE events SET tickets_sold = new
   WHERE event_id = %s AND tickets_sold = expected``. Overselling would need
   two writers to both observe the same stored value, which the row lock
   taken by UPDATE prevents.

3. **Duplicate registrations**: the UNIQUE (event_id, user_id) constraint
   backs the domain's integrity check, so two concurrent registrations for
   the same pair cannot both be inserted.

Connection failures surface as TransientStoreError so callers (notably the
issuance sweeper) can treat them as retryable.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from src.domain.exceptions import ConcurrentUpdateError, TransientStoreError, ValidationError
from src.domain.models import (
    Event,
    EventPatch,
    FaceVerificationStatus,
    Registration,
    RegistrationPatch,
    RegistrationStatus,
    Ticket,
    TicketAvailabilityStatus,
    TicketStatus,
    User,
    UserRole,
    WaitingStatus,
)

logger = logging.getLogger(__name__)

_REGISTRATION_COLUMNS = (
    "registration_id",
    "user_id",
    "event_id",
    "registration_date",
    "status",
    "waiting_status",
    "face_verification_status",
    "ticket_availability_status",
    "verification_attempts",
    "last_verification_attempt",
    "check_in_time",
    "ticket_issued",
    "ticket_issued_date",
    "ticket_id",
    "admin_booked",
    "admin_override_reason",
    "requested_quantity",
    "unit_price",
    "total_price",
    "notes",
    "ticket_request_source",
    "created_at",
    "updated_at",
    "version",
)

_TICKET_COLUMNS = (
    "ticket_id",
    "event_id",
    "user_id",
    "registration_id",
    "quantity",
    "price",
    "total_price",
    "status",
    "face_verified",
    "check_in_time",
    "notes",
    "created_at",
)


@contextmanager
def _store_errors() -> Iterator[None]:
    """Translate connection-level failures into TransientStoreError."""
    try:
        yield
    except psycopg.OperationalError as e:
        logger.error(f"Database unavailable: {e}")
        raise TransientStoreError("Registration store is temporarily unavailable") from e


def _to_db(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


def _row_to_registration(row: dict[str, Any]) -> Registration:
    return Registration(
        registration_id=row["registration_id"],
        user_id=row["user_id"],
        event_id=row["event_id"],
        registration_date=row["registration_date"],
        status=RegistrationStatus(row["status"]),
        waiting_status=WaitingStatus(row["waiting_status"]),
        face_verification_status=FaceVerificationStatus(row["face_verification_status"]),
        ticket_availability_status=TicketAvailabilityStatus(row["ticket_availability_status"]),
        verification_attempts=row["verification_attempts"],
        last_verification_attempt=row["last_verification_attempt"],
        check_in_time=row["check_in_time"],
        ticket_issued=row["ticket_issued"],
        ticket_issued_date=row["ticket_issued_date"],
        ticket_id=row["ticket_id"],
        admin_booked=row["admin_booked"],
        admin_override_reason=row["admin_override_reason"],
        requested_quantity=row["requested_quantity"],
        unit_price=row["unit_price"],
        total_price=row["total_price"],
        notes=row["notes"],
        ticket_request_source=row["ticket_request_source"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        version=row["version"],
    )


def _row_to_event(row: dict[str, Any]) -> Event:
    return Event(
        event_id=row["event_id"],
        name=row["name"],
        ticket_price=row["ticket_price"],
        total_tickets=row["total_tickets"],
        tickets_sold=row["tickets_sold"],
    )


def _row_to_ticket(row: dict[str, Any]) -> Ticket:
    return Ticket(
        ticket_id=row["ticket_id"],
        event_id=row["event_id"],
        user_id=row["user_id"],
        registration_id=row["registration_id"],
        quantity=row["quantity"],
        price=row["price"],
        total_price=row["total_price"],
        status=TicketStatus(row["status"]),
        face_verified=row["face_verified"],
        check_in_time=row["check_in_time"],
        notes=row["notes"],
        created_at=row["created_at"],
    )


def _insert_sql(table: str, columns: tuple[str, ...]) -> sql.Composed:
    return sql.SQL("INSERT INTO {} ({}) VALUES ({}) RETURNING *").format(
        sql.Identifier(table),
        sql.SQL(", ").join(sql.Identifier(c) for c in columns),
        sql.SQL(", ").join(sql.Placeholder() * len(columns)),
    )


class PostgresRegistrationRepository:
    """
    Implements RegistrationRepository protocol via psycopg3.

    Uses structural subtyping - no explicit inheritance from Protocol.
    All SQL uses parameterized queries; patch column names are taken from
    the RegistrationPatch fields and quoted as identifiers.
    """

    def __init__(self, pool: ConnectionPool) -> None:
        """
        Initialize repository with connection pool.

        Args:
            pool: psycopg3 ConnectionPool for database connections
        """
        self._pool = pool

    def create(self, registration: Registration) -> Registration:
        """
        Insert a new registration.

        Raises:
            ValidationError: If the (event_id, user_id) pair already exists
        """
        params = [_to_db(getattr(registration, c)) for c in _REGISTRATION_COLUMNS]
        query = _insert_sql("registrations", _REGISTRATION_COLUMNS)

        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            try:
                cursor.execute(query, params)
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ValidationError("User is already registered for this event") from None
            row = cursor.fetchone()
            conn.commit()
        return _row_to_registration(row)

    def get_by_id(self, registration_id: str) -> Registration | None:
        return self._fetch_one(
            "SELECT * FROM registrations WHERE registration_id = %s", (registration_id,)
        )

    def update_by_id(
        self,
        registration_id: str,
        patch: RegistrationPatch,
        expected_version: int | None = None,
    ) -> Registration | None:
        """
        Apply a partial update in a single UPDATE ... RETURNING statement.

        When expected_version is given the UPDATE matches only that version.
        A miss is then disambiguated: missing row returns None, a changed
        version raises ConcurrentUpdateError.
        """
        changes = patch.changes()
        assignments = [sql.SQL("{} = %s").format(sql.Identifier(name)) for name in changes]
        assignments.append(sql.SQL("updated_at = NOW()"))
        assignments.append(sql.SQL("version = version + 1"))

        query = sql.SQL("UPDATE registrations SET {} WHERE registration_id = %s").format(
            sql.SQL(", ").join(assignments)
        )
        params: list[Any] = [_to_db(value) for value in changes.values()]
        params.append(registration_id)
        if expected_version is not None:
            query += sql.SQL(" AND version = %s")
            params.append(expected_version)
        query += sql.SQL(" RETURNING *")

        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
            conn.commit()

        if row is not None:
            return _row_to_registration(row)
        if expected_version is not None and self.get_by_id(registration_id) is not None:
            raise ConcurrentUpdateError(f"Registration {registration_id} was modified concurrently")
        return None

    def find_by_event_and_user(self, event_id: str, user_id: str) -> Registration | None:
        return self._fetch_one(
            "SELECT * FROM registrations WHERE event_id = %s AND user_id = %s",
            (event_id, user_id),
        )

    def list_by_user(self, user_id: str) -> list[Registration]:
        return self._fetch_all(
            "SELECT * FROM registrations WHERE user_id = %s ORDER BY registration_date DESC",
            (user_id,),
        )

    def list_by_event(self, event_id: str) -> list[Registration]:
        return self._fetch_all(
            "SELECT * FROM registrations WHERE event_id = %s ORDER BY registration_date DESC",
            (event_id,),
        )

    def count_by_event(self, event_id: str) -> int:
        with _store_errors(), self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute("SELECT COUNT(*) FROM registrations WHERE event_id = %s", (event_id,))
            return cursor.fetchone()[0]

    def list_by_status(self, status: RegistrationStatus) -> list[Registration]:
        return self._fetch_all(
            "SELECT * FROM registrations WHERE status = %s ORDER BY registration_date DESC",
            (status.value,),
        )

    def list_all(self) -> list[Registration]:
        return self._fetch_all("SELECT * FROM registrations", ())

    def _fetch_one(self, query: str, params: tuple) -> Registration | None:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            row = cursor.fetchone()
        return _row_to_registration(row) if row is not None else None

    def _fetch_all(self, query: str, params: tuple) -> list[Registration]:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, params)
            rows = cursor.fetchall()
        return [_row_to_registration(row) for row in rows]


class PostgresEventRepository:
    """Implements EventRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_by_id(self, event_id: str) -> Event | None:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute("SELECT * FROM events WHERE event_id = %s", (event_id,))
            row = cursor.fetchone()
        return _row_to_event(row) if row is not None else None

    def update_by_id(self, event_id: str, patch: EventPatch) -> Event | None:
        changes = patch.changes()
        if not changes:
            return self.get_by_id(event_id)

        query = sql.SQL("UPDATE events SET {} WHERE event_id = %s RETURNING *").format(
            sql.SQL(", ").join(sql.SQL("{} = %s").format(sql.Identifier(name)) for name in changes)
        )
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(query, [*changes.values(), event_id])
            row = cursor.fetchone()
            conn.commit()
        return _row_to_event(row) if row is not None else None

    def compare_and_swap_tickets_sold(self, event_id: str, expected: int, new: int) -> bool:
        """
        Atomically move tickets_sold from expected to new.

        Returns:
            True if exactly one row matched the expected value
        """
        cas_sql = """
            UPDATE events
            SET tickets_sold = %s
            WHERE event_id = %s AND tickets_sold = %s
        """

        with _store_errors(), self._pool.connection() as conn, conn.cursor() as cursor:
            cursor.execute(cas_sql, (new, event_id, expected))
            conn.commit()
            return cursor.rowcount == 1


class PostgresTicketRepository:
    """Implements TicketRepository protocol via psycopg3."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def create(self, ticket: Ticket) -> Ticket:
        """
        Insert a ticket. At most one ticket may reference a registration.

        Raises:
            ConcurrentUpdateError: If the registration already has a ticket
        """
        params = [_to_db(getattr(ticket, c)) for c in _TICKET_COLUMNS]
        query = _insert_sql("tickets", _TICKET_COLUMNS)

        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            try:
                cursor.execute(query, params)
            except psycopg.errors.UniqueViolation:
                conn.rollback()
                raise ConcurrentUpdateError(
                    f"A ticket already exists for registration {ticket.registration_id}"
                ) from None
            row = cursor.fetchone()
            conn.commit()
        return _row_to_ticket(row)

    def get_by_id(self, ticket_id: str) -> Ticket | None:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute("SELECT * FROM tickets WHERE ticket_id = %s", (ticket_id,))
            row = cursor.fetchone()
        return _row_to_ticket(row) if row is not None else None

    def get_by_registration(self, registration_id: str) -> Ticket | None:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute("SELECT * FROM tickets WHERE registration_id = %s", (registration_id,))
            row = cursor.fetchone()
        return _row_to_ticket(row) if row is not None else None

    def list_by_event(self, event_id: str) -> list[Ticket]:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                "SELECT * FROM tickets WHERE event_id = %s ORDER BY created_at, ticket_id", (event_id,)
            )
            rows = cursor.fetchall()
        return [_row_to_ticket(row) for row in rows]

    def check_in(self, ticket_id: str, face_verified: bool) -> Ticket | None:
        check_in_sql = """
            UPDATE tickets
            SET status = %s, check_in_time = NOW(), face_verified = %s
            WHERE ticket_id = %s
            RETURNING *
        """

        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(check_in_sql, (TicketStatus.CHECKED_IN.value, face_verified, ticket_id))
            row = cursor.fetchone()
            conn.commit()
        return _row_to_ticket(row) if row is not None else None


class PostgresUserDirectory:
    """Implements UserDirectory protocol over the users table."""

    def __init__(self, pool: ConnectionPool) -> None:
        self._pool = pool

    def get_by_id(self, user_id: str) -> User | None:
        with _store_errors(), self._pool.connection() as conn, conn.cursor(row_factory=dict_row) as cursor:
            cursor.execute(
                "SELECT user_id, role, has_face_data FROM users WHERE user_id = %s", (user_id,)
            )
            row = cursor.fetchone()
        if row is None:
            return None
        return User(user_id=row["user_id"], role=UserRole(row["role"]), has_face_data=row["has_face_data"])


def run_migrations(pool: ConnectionPool) -> None:
    """
    Execute all SQL migration files from the migrations directory.

    Migrations are executed in sorted order (alphabetically by filename).
    Each migration should be idempotent (use IF NOT EXISTS, etc.).

    Args:
        pool: psycopg3 ConnectionPool instance
    """
    # Structure: src/adapters/repository/postgres.py -> migrations/
    migrations_dir = Path(__file__).parent.parent.parent.parent / "migrations"

    if not migrations_dir.exists():
        logger.warning(f"Migrations directory not found: {migrations_dir}")
        return

    sql_files = sorted(migrations_dir.glob("*.sql"))

    if not sql_files:
        logger.info("No migration files found")
        return

    logger.info(f"Running {len(sql_files)} migration(s)")

    for sql_file in sql_files:
        logger.info(f"Executing migration: {sql_file.name}")
        try:
            sql_content = sql_file.read_text()

            with pool.connection() as conn:
                conn.execute(sql_content)

            logger.info(f"Migration complete: {sql_file.name}")
        except Exception as e:
            logger.error(f"Migration failed: {sql_file.name} - {e}")
            raise RuntimeError(f"Database migration failed: {sql_file.name}") from e
