"""PostgreSQL repository implementation using psycopg2 with connection pooling.

The schema is owned by Alembic (``alembic/versions``); this adapter assumes the
``candidates``, ``registration_history`` and ``notifications`` tables exist.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from time import sleep
from typing import TYPE_CHECKING, Any, Final
from uuid import UUID

import pytz
from psycopg2 import Error as PsycopgError
from psycopg2 import extensions
from psycopg2 import pool as psycopg2_pool
from psycopg2.extras import RealDictCursor, register_uuid

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.exceptions import (
    CandidateNotFoundError,
    RepositoryError,
    StaleCandidateError,
)
from lease_engine.domain.models import (
    Candidate,
    HistoryEntry,
    HistoryStatus,
    Notification,
    NotificationKind,
    NotificationStatus,
    PipelineStage,
)

if TYPE_CHECKING:
    from lease_engine.config.settings import Settings


DEFAULT_POOL_MIN_CONNECTIONS: Final[int] = 1
DEFAULT_POOL_MAX_CONNECTIONS: Final[int] = 10
POOL_ACQUIRE_ATTEMPTS: Final[int] = 5
POOL_ACQUIRE_BASE_DELAY_SECONDS: Final[float] = 0.1
POOL_ACQUIRE_MAX_DELAY_SECONDS: Final[float] = 2.0

logger = get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


class PostgresRepository:
    """PostgreSQL candidate repository backed by a threaded connection pool.

    Every public method borrows one connection for one transaction. Reads run
    at REPEATABLE READ so a candidate and its history come from one snapshot;
    writes rely on the version column for compare-and-swap.
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str,
        settings: "Settings | None" = None,
    ):
        self._database = database
        min_connections = (
            settings.postgres_min_connections if settings else DEFAULT_POOL_MIN_CONNECTIONS
        )
        max_connections = (
            settings.postgres_max_connections if settings else DEFAULT_POOL_MAX_CONNECTIONS
        )
        if min_connections <= 0:
            raise RepositoryError("postgres_min_connections must be positive")
        if max_connections < min_connections:
            raise RepositoryError(
                "postgres_max_connections must be >= postgres_min_connections"
            )

        statement_timeout_ms = (
            settings.postgres_statement_timeout_ms if settings else 10_000
        )
        application_name = (
            settings.postgres_application_name if settings else "candidate_lease_engine"
        )
        options = (
            f"-c statement_timeout={statement_timeout_ms} "
            f"-c application_name={application_name} "
            "-c timezone=UTC"
        )
        conn_kwargs: dict[str, Any] = {
            "host": host,
            "port": port,
            "database": database,
            "user": user,
            "password": password,
            "connect_timeout": (
                settings.postgres_connect_timeout_seconds if settings else 10
            ),
            "options": options,
        }
        if settings and settings.postgres_ssl_mode:
            conn_kwargs["sslmode"] = settings.postgres_ssl_mode

        # Notification ids are passed to queries as uuid.UUID
        register_uuid()
        try:
            self._pool = psycopg2_pool.ThreadedConnectionPool(
                min_connections, max_connections, **conn_kwargs
            )
        except PsycopgError as exc:
            raise RepositoryError(f"Failed to initialize PostgreSQL pool: {exc}") from exc

        logger.info(
            "postgres_pool_initialized",
            host=host,
            port=port,
            database=database,
            min_connections=min_connections,
            max_connections=max_connections,
        )

    def _checkout(self) -> extensions.connection:
        """Take a connection from the pool, backing off while it is exhausted."""
        attempt = 0
        delay = POOL_ACQUIRE_BASE_DELAY_SECONDS
        while True:
            attempt += 1
            try:
                return self._pool.getconn()
            except psycopg2_pool.PoolError as exc:
                if attempt >= POOL_ACQUIRE_ATTEMPTS:
                    logger.error("postgres_pool_acquire_failed", attempts=attempt)
                    raise RepositoryError(
                        "Failed to acquire PostgreSQL connection from pool"
                    ) from exc
                logger.warning(
                    "postgres_pool_exhausted_retry", attempt=attempt, wait_seconds=delay
                )
                sleep(delay)
                delay = min(delay * 2, POOL_ACQUIRE_MAX_DELAY_SECONDS)

    @contextmanager
    def _get_connection(self) -> Iterator[extensions.connection]:
        """Borrow a connection; broken connections are closed, not returned."""
        conn = self._checkout()
        conn.autocommit = False
        broken = False
        try:
            yield conn
        except PsycopgError as exc:
            broken = True
            raise RepositoryError(f"PostgreSQL error: {exc}") from exc
        finally:
            try:
                if conn.get_transaction_status() != extensions.TRANSACTION_STATUS_IDLE:
                    conn.rollback()
            except PsycopgError:
                logger.warning(
                    "postgres_connection_cleanup_failed",
                    database=self._database,
                    exc_info=True,
                )
                broken = True
            self._pool.putconn(conn, close=broken)

    def close(self) -> None:
        """Close all connections in the pool."""
        self._pool.closeall()
        logger.info("postgres_pool_closed", database=self._database)

    # ------------------------------------------------------------------
    # ------------------------------------------------------------------

    def create_candidate(self, candidate: Candidate) -> Candidate | None:
        """Insert a candidate; returns None when the contact id already exists."""
        stored = candidate.model_copy(update={"version": 0})
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO candidates (
                        contact_id, owner_id, created_by, name, call_status,
                        is_locked, lock_expiry, lock_stage,
                        created_at, updated_at, version
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 0)
                    ON CONFLICT (contact_id) DO NOTHING
                    """,
                    (
                        stored.contact_id,
                        stored.owner_id,
                        stored.created_by,
                        stored.name,
                        stored.call_status,
                        stored.is_locked,
                        stored.lock_expiry,
                        stored.lock_stage.value if stored.lock_stage else None,
                        stored.created_at,
                        stored.updated_at,
                    ),
                )
                if cur.rowcount == 0:
                    conn.rollback()
                    logger.info("candidate_insert_conflict", contact_id=stored.contact_id)
                    return None
                self._write_history(cur, stored)
            conn.commit()
        return stored

    def get_candidate(self, contact_id: str) -> Candidate | None:
        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
                candidate = self._read_candidate(cur, contact_id)
            conn.commit()
        return candidate

    def save_candidate(self, candidate: Candidate, *, expected_version: int) -> Candidate:
        """Compare-and-swap write of candidate fields and history."""
        stored = candidate.model_copy(update={"version": expected_version + 1})
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE candidates
                    SET owner_id = %s, name = %s, call_status = %s,
                        is_locked = %s, lock_expiry = %s, lock_stage = %s,
                        updated_at = %s, version = version + 1
                    WHERE contact_id = %s AND version = %s
                    """,
                    (
                        stored.owner_id,
                        stored.name,
                        stored.call_status,
                        stored.is_locked,
                        stored.lock_expiry,
                        stored.lock_stage.value if stored.lock_stage else None,
                        stored.updated_at,
                        stored.contact_id,
                        expected_version,
                    ),
                )
                if cur.rowcount == 0:
                    cur.execute(
                        "SELECT 1 FROM candidates WHERE contact_id = %s",
                        (stored.contact_id,),
                    )
                    if cur.fetchone() is None:
                        raise CandidateNotFoundError(stored.contact_id)
                    raise StaleCandidateError(stored.contact_id, expected_version)
                self._write_history(cur, stored)
            conn.commit()
        return stored

    def has_claim(self, contact_id: str, employee_id: str) -> bool:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT 1 FROM registration_history
                    WHERE contact_id = %s AND owner_id = %s
                    LIMIT 1
                    """,
                    (contact_id, employee_id),
                )
                found = cur.fetchone() is not None
            conn.commit()
        return found

    def release_expired_locks(self, now: datetime) -> int:
        """Clear stale lock flags. Does not bump versions."""
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE candidates
                    SET is_locked = FALSE, lock_expiry = NULL, lock_stage = NULL
                    WHERE is_locked = TRUE
                      AND lock_expiry IS NOT NULL
                      AND lock_expiry < %s
                    """,
                    (now,),
                )
                released = cur.rowcount
            conn.commit()
        return released

    def list_candidates_for_employee(
        self, employee_id: str, limit: int | None = None
    ) -> list[Candidate]:
        query = """
            SELECT c.contact_id FROM candidates c
            WHERE c.owner_id = %s
               OR c.created_by = %s
               OR EXISTS (
                    SELECT 1 FROM registration_history h
                    WHERE h.contact_id = c.contact_id AND h.owner_id = %s
               )
            ORDER BY c.updated_at DESC, c.contact_id
        """
        params: list[Any] = [employee_id, employee_id, employee_id]
        if limit is not None:
            query += " LIMIT %s"
            params.append(limit)

        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute("SET TRANSACTION ISOLATION LEVEL REPEATABLE READ")
                cur.execute(query, params)
                contact_ids = [row["contact_id"] for row in cur.fetchall()]
                candidates = [
                    self._read_candidate(cur, contact_id) for contact_id in contact_ids
                ]
            conn.commit()
        return [candidate for candidate in candidates if candidate is not None]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def save_notification(self, notification: Notification) -> None:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO notifications (
                        notification_id, recipient_id, message, kind, status,
                        contact_id, acting_employee_id, created_at, expires_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        notification.notification_id,
                        notification.recipient_id,
                        notification.message,
                        notification.kind.value,
                        notification.status.value,
                        notification.contact_id,
                        notification.acting_employee_id,
                        notification.created_at,
                        notification.expires_at,
                    ),
                )
            conn.commit()

    def list_notifications(
        self,
        recipient_id: str,
        *,
        now: datetime,
        include_read: bool = False,
    ) -> list[Notification]:
        query = """
            SELECT * FROM notifications
            WHERE recipient_id = %s AND expires_at > %s
        """
        params: list[Any] = [recipient_id, now]
        if not include_read:
            query += " AND status = %s"
            params.append(NotificationStatus.UNREAD.value)
        query += " ORDER BY created_at DESC"

        with self._get_connection() as conn:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(query, params)
                rows = cur.fetchall()
            conn.commit()
        return [self._row_to_notification(row) for row in rows]

    def mark_notification_read(self, notification_id: UUID) -> bool:
        with self._get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "UPDATE notifications SET status = %s WHERE notification_id = %s",
                    (NotificationStatus.READ.value, notification_id),
                )
                updated = cur.rowcount > 0
            conn.commit()
        return updated

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _write_history(cur: Any, candidate: Candidate) -> None:
        for seq, entry in enumerate(candidate.registration_history):
            cur.execute(
                """
                INSERT INTO registration_history (
                    contact_id, seq, owner_id, claimed_at, status
                ) VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (contact_id, seq) DO UPDATE SET status = EXCLUDED.status
                """,
                (
                    candidate.contact_id,
                    seq,
                    entry.owner_id,
                    entry.claimed_at,
                    entry.status.value,
                ),
            )

    @staticmethod
    def _read_candidate(cur: Any, contact_id: str) -> Candidate | None:
        cur.execute("SELECT * FROM candidates WHERE contact_id = %s", (contact_id,))
        row = cur.fetchone()
        if row is None:
            return None

        cur.execute(
            """
            SELECT owner_id, claimed_at, status FROM registration_history
            WHERE contact_id = %s
            ORDER BY seq
            """,
            (contact_id,),
        )
        history = [
            HistoryEntry(
                owner_id=entry["owner_id"],
                claimed_at=_as_utc(entry["claimed_at"]),
                status=HistoryStatus(entry["status"]),
            )
            for entry in cur.fetchall()
        ]

        return Candidate(
            contact_id=row["contact_id"],
            owner_id=row["owner_id"],
            created_by=row["created_by"],
            name=row["name"],
            call_status=row["call_status"],
            is_locked=bool(row["is_locked"]),
            lock_expiry=_as_utc(row["lock_expiry"]),
            lock_stage=PipelineStage(row["lock_stage"]) if row["lock_stage"] else None,
            registration_history=history,
            created_at=_as_utc(row["created_at"]),
            updated_at=_as_utc(row["updated_at"]),
            version=row["version"],
        )

    @staticmethod
    def _row_to_notification(row: dict[str, Any]) -> Notification:
        return Notification(
            notification_id=row["notification_id"],
            recipient_id=row["recipient_id"],
            message=row["message"],
            kind=NotificationKind(row["kind"]),
            status=NotificationStatus(row["status"]),
            contact_id=row["contact_id"],
            acting_employee_id=row["acting_employee_id"],
            created_at=_as_utc(row["created_at"]),
            expires_at=_as_utc(row["expires_at"]),
        )
