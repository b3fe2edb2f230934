"""Custom exception hierarchy for the candidate lease engine.

Following error taxonomy: retryable, non-retryable, validation, domain conflicts.
Domain conflicts carry the HTTP status the boundary layer should answer with.
"""

from datetime import datetime


class LeaseEngineError(Exception):
    """Base exception for all application errors."""

    pass


class RetryableError(LeaseEngineError):
    """Errors that can be retried (storage hiccups, lost races)."""

    pass


class NonRetryableError(LeaseEngineError):
    """Errors that should not be retried (validation, ownership rules)."""

    pass


class ValidationError(NonRetryableError):
    """Data validation errors."""

    http_status: int = 400


class RepositoryError(RetryableError):
    """Database/storage errors."""

    pass


class StaleCandidateError(RetryableError):
    """Conditional write lost against a concurrent update of the same candidate."""

    def __init__(self, contact_id: str, expected_version: int) -> None:
        self.contact_id = contact_id
        self.expected_version = expected_version
        super().__init__(
            f"Candidate {contact_id} changed concurrently "
            f"(expected version {expected_version}); re-read and retry"
        )


class NotificationError(RetryableError):
    """Notification delivery failed."""

    pass


class CandidateDomainError(NonRetryableError):
    """Base class for ownership rule violations returned to callers."""

    http_status: int = 400


class DuplicateCandidateError(CandidateDomainError):
    """A candidate with this contact id already exists."""

    http_status = 409

    def __init__(self, contact_id: str, owner_id: str | None = None) -> None:
        self.contact_id = contact_id
        self.owner_id = owner_id
        super().__init__(f"Candidate {contact_id} is already registered")


class CandidateNotFoundError(CandidateDomainError):
    """No candidate exists for the contact id."""

    http_status = 404

    def __init__(self, contact_id: str) -> None:
        self.contact_id = contact_id
        super().__init__(f"Candidate {contact_id} not found")


class LockedByOtherError(CandidateDomainError):
    """Another employee holds a non-expired lock on the candidate."""

    http_status = 403

    def __init__(
        self,
        contact_id: str,
        locked_by: str,
        lock_expiry: datetime | None,
        *,
        remaining_days: int | None = None,
        remaining_time: str | None = None,
    ) -> None:
        self.contact_id = contact_id
        self.locked_by = locked_by
        self.lock_expiry = lock_expiry
        self.remaining_days = remaining_days
        self.remaining_time = remaining_time
        super().__init__(f"Candidate {contact_id} is locked by {locked_by}")


class AlreadyOwnedError(CandidateDomainError):
    """The claimant owns, or previously owned, the candidate."""

    http_status = 400

    def __init__(self, contact_id: str, employee_id: str) -> None:
        self.contact_id = contact_id
        self.employee_id = employee_id
        super().__init__(
            f"Employee {employee_id} has already registered candidate {contact_id}"
        )
