"""Domain models for the candidate lease engine.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import UTC, datetime
from enum import Enum
from uuid import UUID, uuid4

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class PipelineStage(str, Enum):
    """Pipeline events that may trigger a lease."""

    LINEUP = "lineup"
    WALK_IN = "walk-in"
    JOINING_RECEIVED = "joiningReceived"
    SELECTED = "selected"


class HistoryStatus(str, Enum):
    """Status of a registration history entry."""

    ACTIVE = "Active"
    EXPIRED = "Expired"


class NotificationKind(str, Enum):
    """Notification categories surfaced to recruiters."""

    CANDIDATE_MARKED = "candidate_marked"
    DUPLICITY_CHECK = "candidate_duplicity_check"
    SYSTEM = "system"


class NotificationStatus(str, Enum):
    """Read state of a stored notification."""

    UNREAD = "unread"
    READ = "read"


class HistoryEntry(BaseModel):
    """One ownership claim in a candidate's registration history."""

    owner_id: str = Field(..., description="Employee who claimed the candidate")
    claimed_at: datetime = Field(..., description="When the claim was made (UTC)")
    status: HistoryStatus = Field(default=HistoryStatus.ACTIVE)

    @field_validator("claimed_at")
    @classmethod
    def _ensure_tz(cls, value: datetime) -> datetime:
        return _as_utc(value)  # type: ignore[return-value]


class Candidate(BaseModel):
    """Candidate record keyed by its normalized contact number."""

    contact_id: str = Field(..., description="Normalized phone number (unique)")
    owner_id: str = Field(..., description="Owner of the most recent Active entry")
    created_by: str = Field(..., description="Employee who first registered")
    name: str | None = Field(default=None, description="Candidate display name")
    call_status: str | None = Field(
        default=None, description="Current pipeline call status"
    )
    is_locked: bool = Field(
        default=False, description="Cached lock flag, only valid with lock_expiry"
    )
    lock_expiry: datetime | None = Field(default=None, description="Lock end (UTC)")
    lock_stage: PipelineStage | None = Field(
        default=None, description="Stage that set the running lock"
    )
    registration_history: list[HistoryEntry] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
    version: int = Field(default=0, ge=0, description="Optimistic concurrency token")

    @field_validator("lock_expiry", "created_at", "updated_at")
    @classmethod
    def _ensure_tz(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    def lock_active(self, now: datetime) -> bool:
        """Authoritative lock state: the cached flag alone is never trusted."""
        return (
            self.is_locked
            and self.lock_expiry is not None
            and self.lock_expiry > now
        )


class LockStatus(BaseModel):
    """Read model answering "who holds this candidate, and for how long"."""

    contact_id: str
    is_locked: bool
    owner_id: str
    lock_expiry: datetime | None = None
    lock_stage: PipelineStage | None = None
    remaining_days: int | None = Field(
        default=None, description="Ceiling of days left (>= 24h remaining)"
    )
    remaining_time: str | None = Field(
        default=None, description="'<h>h <m>m' when less than 24h remain"
    )


class CreateOutcome(BaseModel):
    """Typed result of a registry insert: created, or the existing record."""

    candidate: Candidate
    created: bool


class LeaseResult(BaseModel):
    """Outcome of acquire_lease."""

    candidate: Candidate
    stage: PipelineStage
    lock_expiry: datetime | None = None
    previous_owner_id: str | None = Field(
        default=None, description="Set when the lease moved ownership"
    )
    refreshed: bool = Field(
        default=False, description="Same owner re-acquired a running lock"
    )


class TransferResult(BaseModel):
    """Outcome of transfer_ownership."""

    candidate: Candidate
    previous_owner_id: str


class RegistrationResult(BaseModel):
    """Outcome of the registration flow (create, or claim an existing record)."""

    candidate: Candidate
    created: bool
    previous_owner_id: str | None = None
    lease: LeaseResult | None = None


class DuplicityCheckResult(BaseModel):
    """Outcome of a recruiter checking whether a number is already registered."""

    contact_id: str
    is_duplicate: bool
    lock_status: LockStatus | None = None


class CandidateView(BaseModel):
    """Candidate as seen by one employee in their portfolio."""

    candidate: Candidate
    is_locked: bool
    is_locked_by_me: bool
    is_last_registered_by_me: bool
    remaining_days: int | None = None
    remaining_time: str | None = None


class SweepResult(BaseModel):
    """Outcome of one expiry sweep."""

    released: int = Field(..., ge=0)
    swept_at: datetime
    duration_seconds: float = Field(default=0.0, ge=0.0)


class Notification(BaseModel):
    """Message addressed to an employee about one of their candidates."""

    notification_id: UUID = Field(default_factory=uuid4)
    recipient_id: str
    message: str
    kind: NotificationKind = NotificationKind.SYSTEM
    status: NotificationStatus = NotificationStatus.UNREAD
    contact_id: str | None = None
    acting_employee_id: str | None = None
    created_at: datetime
    expires_at: datetime

    @field_validator("created_at", "expires_at")
    @classmethod
    def _ensure_tz(cls, value: datetime) -> datetime:
        return _as_utc(value)  # type: ignore[return-value]
