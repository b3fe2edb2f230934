"""SQLite repository adapter for local storage.

Implements CandidateRepositoryProtocol with a SQLite backend. Every write runs
inside ``BEGIN IMMEDIATE`` so concurrent writers serialize on the database
lock instead of failing late on commit.
"""

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Final
from uuid import UUID

import pytz

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

logger = get_logger(__name__)

DEFAULT_BUSY_TIMEOUT_SECONDS: Final[float] = 30.0


def _to_db_ts(value: datetime | None) -> str | None:
    """Serialize timestamps as fixed-width UTC ISO strings (sortable as text)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC).isoformat(timespec="microseconds")


def _from_db_ts(value: str | None) -> datetime | None:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = pytz.UTC.localize(parsed)
    return parsed.astimezone(pytz.UTC)


class SQLiteRepository:
    """SQLite-based candidate registry, history ledger and notification store."""

    def __init__(
        self,
        db_path: str,
        *,
        busy_timeout_seconds: float = DEFAULT_BUSY_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize repository and ensure schema.

        Args:
            db_path: Path to SQLite database file
            busy_timeout_seconds: How long a writer waits for the database lock
        """
        if busy_timeout_seconds <= 0:
            raise RepositoryError("busy_timeout_seconds must be positive")
        self.db_path = db_path
        self._busy_timeout = busy_timeout_seconds

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path,
            timeout=self._busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def _transaction(self, *, immediate: bool = False) -> Iterator[sqlite3.Cursor]:
        """Run statements in one transaction; commit on success, roll back on error."""
        conn = self._get_connection()
        cursor = conn.cursor()
        try:
            cursor.execute("BEGIN IMMEDIATE" if immediate else "BEGIN")
            yield cursor
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            conn.execute("PRAGMA journal_mode = WAL")
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS candidates (
                    contact_id TEXT PRIMARY KEY,
                    owner_id TEXT NOT NULL,
                    created_by TEXT NOT NULL,
                    name TEXT,
                    call_status TEXT,
                    is_locked INTEGER NOT NULL DEFAULT 0,
                    lock_expiry TEXT,
                    lock_stage TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    version INTEGER NOT NULL DEFAULT 0
                );

                CREATE INDEX IF NOT EXISTS idx_candidates_owner
                    ON candidates(owner_id);
                CREATE INDEX IF NOT EXISTS idx_candidates_lock
                    ON candidates(is_locked, lock_expiry);

                CREATE TABLE IF NOT EXISTS registration_history (
                    contact_id TEXT NOT NULL
                        REFERENCES candidates(contact_id) ON DELETE CASCADE,
                    seq INTEGER NOT NULL,
                    owner_id TEXT NOT NULL,
                    claimed_at TEXT NOT NULL,
                    status TEXT NOT NULL,
                    PRIMARY KEY (contact_id, seq)
                );

                CREATE INDEX IF NOT EXISTS idx_registration_history_owner
                    ON registration_history(owner_id);

                -- At most one Active claim per candidate
                CREATE UNIQUE INDEX IF NOT EXISTS uq_registration_history_active
                    ON registration_history(contact_id) WHERE status = 'Active';

                CREATE TABLE IF NOT EXISTS notifications (
                    notification_id TEXT PRIMARY KEY,
                    recipient_id TEXT NOT NULL,
                    message TEXT NOT NULL,
                    kind TEXT NOT NULL,
                    status TEXT NOT NULL,
                    contact_id TEXT,
                    acting_employee_id TEXT,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_notifications_recipient
                    ON notifications(recipient_id, expires_at);
                """
            )
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create schema: {e}") from e
        finally:
            conn.close()
        logger.info("sqlite_schema_ready", db_path=str(self.db_path))

    # ------------------------------------------------------------------
    # Candidates
    # ------------------------------------------------------------------

    def create_candidate(self, candidate: Candidate) -> Candidate | None:
        """Insert a candidate; returns None when the contact id already exists."""
        stored = candidate.model_copy(update={"version": 0})
        try:
            with self._transaction(immediate=True) as cursor:
                cursor.execute(
                    """
                    INSERT INTO candidates (
                        contact_id, owner_id, created_by, name, call_status,
                        is_locked, lock_expiry, lock_stage,
                        created_at, updated_at, version
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0)
                    ON CONFLICT(contact_id) DO NOTHING
                    """,
                    self._candidate_params(stored),
                )
                if cursor.rowcount == 0:
                    logger.info(
                        "candidate_insert_conflict", contact_id=candidate.contact_id
                    )
                    return None
                self._write_history(cursor, stored)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to create candidate: {e}") from e

        return stored

    def get_candidate(self, contact_id: str) -> Candidate | None:
        try:
            with self._transaction() as cursor:
                return self._read_candidate(cursor, contact_id)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to get candidate: {e}") from e

    def save_candidate(self, candidate: Candidate, *, expected_version: int) -> Candidate:
        """Compare-and-swap write of candidate fields and history."""
        stored = candidate.model_copy(update={"version": expected_version + 1})
        try:
            with self._transaction(immediate=True) as cursor:
                cursor.execute(
                    """
                    UPDATE candidates
                    SET owner_id = ?, name = ?, call_status = ?,
                        is_locked = ?, lock_expiry = ?, lock_stage = ?,
                        updated_at = ?, version = version + 1
                    WHERE contact_id = ? AND version = ?
                    """,
                    (
                        stored.owner_id,
                        stored.name,
                        stored.call_status,
                        1 if stored.is_locked else 0,
                        _to_db_ts(stored.lock_expiry),
                        stored.lock_stage.value if stored.lock_stage else None,
                        _to_db_ts(stored.updated_at),
                        stored.contact_id,
                        expected_version,
                    ),
                )
                if cursor.rowcount == 0:
                    cursor.execute(
                        "SELECT 1 FROM candidates WHERE contact_id = ?",
                        (candidate.contact_id,),
                    )
                    if cursor.fetchone() is None:
                        raise CandidateNotFoundError(candidate.contact_id)
                    raise StaleCandidateError(candidate.contact_id, expected_version)
                self._write_history(cursor, stored)
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save candidate: {e}") from e

        return stored

    def has_claim(self, contact_id: str, employee_id: str) -> bool:
        try:
            with self._transaction() as cursor:
                cursor.execute(
                    """
                    SELECT 1 FROM registration_history
                    WHERE contact_id = ? AND owner_id = ?
                    LIMIT 1
                    """,
                    (contact_id, employee_id),
                )
                return cursor.fetchone() is not None
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to check claim: {e}") from e

    def release_expired_locks(self, now: datetime) -> int:
        """Clear stale lock flags. Does not bump versions."""
        try:
            with self._transaction(immediate=True) as cursor:
                cursor.execute(
                    """
                    UPDATE candidates
                    SET is_locked = 0, lock_expiry = NULL, lock_stage = NULL
                    WHERE is_locked = 1
                      AND lock_expiry IS NOT NULL
                      AND lock_expiry < ?
                    """,
                    (_to_db_ts(now),),
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to release expired locks: {e}") from e

    def list_candidates_for_employee(
        self, employee_id: str, limit: int | None = None
    ) -> list[Candidate]:
        query = """
            SELECT contact_id FROM candidates c
            WHERE c.owner_id = ?
               OR c.created_by = ?
               OR EXISTS (
                    SELECT 1 FROM registration_history h
                    WHERE h.contact_id = c.contact_id AND h.owner_id = ?
               )
            ORDER BY c.updated_at DESC, c.contact_id
        """
        params: list[Any] = [employee_id, employee_id, employee_id]
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        try:
            with self._transaction() as cursor:
                cursor.execute(query, params)
                contact_ids = [row["contact_id"] for row in cursor.fetchall()]
                candidates = [
                    self._read_candidate(cursor, contact_id) for contact_id in contact_ids
                ]
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to list candidates: {e}") from e

        return [candidate for candidate in candidates if candidate is not None]

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def save_notification(self, notification: Notification) -> None:
        try:
            with self._transaction(immediate=True) as cursor:
                cursor.execute(
                    """
                    INSERT INTO notifications (
                        notification_id, recipient_id, message, kind, status,
                        contact_id, acting_employee_id, created_at, expires_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        str(notification.notification_id),
                        notification.recipient_id,
                        notification.message,
                        notification.kind.value,
                        notification.status.value,
                        notification.contact_id,
                        notification.acting_employee_id,
                        _to_db_ts(notification.created_at),
                        _to_db_ts(notification.expires_at),
                    ),
                )
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to save notification: {e}") from e

    def list_notifications(
        self,
        recipient_id: str,
        *,
        now: datetime,
        include_read: bool = False,
    ) -> list[Notification]:
        query = """
            SELECT * FROM notifications
            WHERE recipient_id = ? AND expires_at > ?
        """
        params: list[Any] = [recipient_id, _to_db_ts(now)]
        if not include_read:
            query += " AND status = ?"
            params.append(NotificationStatus.UNREAD.value)
        query += " ORDER BY created_at DESC"

        try:
            with self._transaction() as cursor:
                cursor.execute(query, params)
                rows = cursor.fetchall()
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to list notifications: {e}") from e

        return [self._row_to_notification(row) for row in rows]

    def mark_notification_read(self, notification_id: UUID) -> bool:
        try:
            with self._transaction(immediate=True) as cursor:
                cursor.execute(
                    "UPDATE notifications SET status = ? WHERE notification_id = ?",
                    (NotificationStatus.READ.value, str(notification_id)),
                )
                return cursor.rowcount > 0
        except sqlite3.Error as e:
            raise RepositoryError(f"Failed to mark notification read: {e}") from e

    def close(self) -> None:
        """Connections are per call; nothing to release."""
        return None

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _candidate_params(candidate: Candidate) -> tuple[Any, ...]:
        return (
            candidate.contact_id,
            candidate.owner_id,
            candidate.created_by,
            candidate.name,
            candidate.call_status,
            1 if candidate.is_locked else 0,
            _to_db_ts(candidate.lock_expiry),
            candidate.lock_stage.value if candidate.lock_stage else None,
            _to_db_ts(candidate.created_at),
            _to_db_ts(candidate.updated_at),
        )

    @staticmethod
    def _write_history(cursor: sqlite3.Cursor, candidate: Candidate) -> None:
        cursor.executemany(
            """
            INSERT INTO registration_history (
                contact_id, seq, owner_id, claimed_at, status
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(contact_id, seq) DO UPDATE SET status = excluded.status
            """,
            [
                (
                    candidate.contact_id,
                    seq,
                    entry.owner_id,
                    _to_db_ts(entry.claimed_at),
                    entry.status.value,
                )
                for seq, entry in enumerate(candidate.registration_history)
            ],
        )

    def _read_candidate(self, cursor: sqlite3.Cursor, contact_id: str) -> Candidate | None:
        cursor.execute("SELECT * FROM candidates WHERE contact_id = ?", (contact_id,))
        row = cursor.fetchone()
        if row is None:
            return None

        cursor.execute(
            """
            SELECT owner_id, claimed_at, status FROM registration_history
            WHERE contact_id = ?
            ORDER BY seq
            """,
            (contact_id,),
        )
        history = [
            HistoryEntry(
                owner_id=entry["owner_id"],
                claimed_at=_from_db_ts(entry["claimed_at"]),
                status=HistoryStatus(entry["status"]),
            )
            for entry in cursor.fetchall()
        ]

        return Candidate(
            contact_id=row["contact_id"],
            owner_id=row["owner_id"],
            created_by=row["created_by"],
            name=row["name"],
            call_status=row["call_status"],
            is_locked=bool(row["is_locked"]),
            lock_expiry=_from_db_ts(row["lock_expiry"]),
            lock_stage=PipelineStage(row["lock_stage"]) if row["lock_stage"] else None,
            registration_history=history,
            created_at=_from_db_ts(row["created_at"]),
            updated_at=_from_db_ts(row["updated_at"]),
            version=row["version"],
        )

    @staticmethod
    def _row_to_notification(row: sqlite3.Row) -> Notification:
        return Notification(
            notification_id=UUID(row["notification_id"]),
            recipient_id=row["recipient_id"],
            message=row["message"],
            kind=NotificationKind(row["kind"]),
            status=NotificationStatus(row["status"]),
            contact_id=row["contact_id"],
            acting_employee_id=row["acting_employee_id"],
            created_at=_from_db_ts(row["created_at"]),
            expires_at=_from_db_ts(row["expires_at"]),
        )
