"""Protocol definitions for dependency inversion.

These abstract interfaces define contracts that adapters must implement.
"""

from datetime import datetime
from typing import Protocol
from uuid import UUID

from lease_engine.domain.models import Candidate, Notification


class CandidateRepositoryProtocol(Protocol):
    """Protocol for the candidate registry and its registration history."""

    def create_candidate(self, candidate: Candidate) -> Candidate | None:
        """Insert a new candidate together with its history.

        Args:
            candidate: Candidate to store (version 0)

        Returns:
            The stored candidate, or None when the contact id already exists

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def get_candidate(self, contact_id: str) -> Candidate | None:
        """Read one candidate and its full history as a consistent snapshot.

        Args:
            contact_id: Normalized contact number

        Returns:
            Candidate or None if not found

        Raises:
            RepositoryError: On storage errors
        """
        ...

    def save_candidate(self, candidate: Candidate, *, expected_version: int) -> Candidate:
        """Conditionally write candidate fields and history in one transaction.

        The write only applies when the stored version equals
        ``expected_version``; the stored version is then incremented.

        Args:
            candidate: Candidate with the desired state
            expected_version: Version the caller read

        Returns:
            Candidate as stored (with the new version)

        Raises:
            StaleCandidateError: If the stored version moved
            RepositoryError: On storage errors
        """
        ...

    def has_claim(self, contact_id: str, employee_id: str) -> bool:
        """Check whether the employee appears anywhere in the history."""
        ...

    def release_expired_locks(self, now: datetime) -> int:
        """Clear lock flags whose expiry is before ``now``.

        Returns:
            Number of candidates released
        """
        ...

    def list_candidates_for_employee(
        self, employee_id: str, limit: int | None = None
    ) -> list[Candidate]:
        """Candidates owned by, created by, or ever claimed by the employee."""
        ...

    def save_notification(self, notification: Notification) -> None:
        """Persist a notification."""
        ...

    def list_notifications(
        self,
        recipient_id: str,
        *,
        now: datetime,
        include_read: bool = False,
    ) -> list[Notification]:
        """Non-expired notifications for a recipient, newest first."""
        ...

    def mark_notification_read(self, notification_id: UUID) -> bool:
        """Mark a notification as read.

        Returns:
            True if a notification was updated
        """
        ...

    def close(self) -> None:
        """Release storage resources."""
        ...
