"""Candidate ownership and lease engine.

Single entry point for every ownership and lock mutation. Each write reads the
candidate, computes the complete next state (owner, ledger, lock fields) and
persists it with one version-checked write, so for a given contact id only one
concurrent writer can win a transition. Losers get a typed error and re-read.

Lock validity is always evaluated lazily from ``lock_expiry``; the stored
``is_locked`` flag is a display hint that the expiry sweeper reconciles.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from datetime import datetime, timedelta
from time import perf_counter
from typing import Final

from lease_engine.config.logging_config import get_logger
from lease_engine.config.settings import Settings
from lease_engine.domain.exceptions import (
    AlreadyOwnedError,
    CandidateNotFoundError,
    DuplicateCandidateError,
    LockedByOtherError,
    StaleCandidateError,
    ValidationError,
)
from lease_engine.domain.lease_constants import (
    DEFAULT_COUNTRY_CODE,
    DEFAULT_STAGE_DURATIONS,
    LOCK_OVERRIDING_STAGES,
    Clock,
    utc_now,
)
from lease_engine.domain.models import (
    Candidate,
    CreateOutcome,
    HistoryEntry,
    HistoryStatus,
    LeaseResult,
    LockStatus,
    PipelineStage,
    TransferResult,
)
from lease_engine.domain.protocols import CandidateRepositoryProtocol
from lease_engine.observability.metrics import (
    LEASE_OPERATION_DURATION_SECONDS,
    LEASE_OPERATIONS_TOTAL,
)
from lease_engine.observability.tracing import correlation_scope
from lease_engine.services.contact_normalizer import normalize_contact_id
from lease_engine.services.lock_calculator import (
    compute_lock_status,
    remaining_lock_window,
)
from lease_engine.services.registration_ledger import (
    contains_claim_in,
    validate_history,
    with_claim,
)

logger = get_logger(__name__)

_OUTCOME_BY_ERROR: Final[dict[type[Exception], str]] = {
    DuplicateCandidateError: "duplicate",
    CandidateNotFoundError: "not_found",
    LockedByOtherError: "locked_by_other",
    AlreadyOwnedError: "already_owned",
    StaleCandidateError: "stale",
    ValidationError: "invalid",
}


def _outcome_for(exc: Exception) -> str:
    for error_type, outcome in _OUTCOME_BY_ERROR.items():
        if isinstance(exc, error_type):
            return outcome
    return "error"


def _parse_stage(stage: PipelineStage | str) -> PipelineStage:
    try:
        return PipelineStage(stage)
    except ValueError as exc:
        raise ValidationError(f"Unknown pipeline stage: {stage!r}") from exc


class LeaseEngine:
    """Decides who owns a candidate and for how long that ownership is protected."""

    def __init__(
        self,
        repository: CandidateRepositoryProtocol,
        *,
        clock: Clock = utc_now,
        stage_durations: Mapping[PipelineStage, timedelta | None] | None = None,
        country_code: str = DEFAULT_COUNTRY_CODE,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._durations = dict(stage_durations or DEFAULT_STAGE_DURATIONS)
        self._country_code = country_code

        missing = set(PipelineStage) - set(self._durations)
        if missing:
            raise ValueError(
                f"Missing lease durations for stages: {sorted(s.value for s in missing)}"
            )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        repository: CandidateRepositoryProtocol,
        *,
        clock: Clock = utc_now,
    ) -> "LeaseEngine":
        return cls(
            repository,
            clock=clock,
            stage_durations=settings.stage_durations(),
            country_code=settings.phone_country_code,
        )

    @property
    def repository(self) -> CandidateRepositoryProtocol:
        return self._repository

    def now(self) -> datetime:
        return self._clock()

    def normalize(self, contact_id: str) -> str:
        return normalize_contact_id(contact_id, self._country_code)

    def lease_duration(self, stage: PipelineStage) -> timedelta | None:
        return self._durations[stage]

    @contextmanager
    def _operation(self, name: str, **context: object) -> Iterator[None]:
        """Time an operation, count its outcome and bind a correlation id."""
        started = perf_counter()
        with correlation_scope():
            try:
                yield
            except Exception as exc:
                outcome = _outcome_for(exc)
                LEASE_OPERATIONS_TOTAL.labels(operation=name, outcome=outcome).inc()
                if outcome == "error":
                    logger.exception(f"{name}_failed", **context)
                else:
                    logger.info(f"{name}_rejected", outcome=outcome, **context)
                raise
            else:
                LEASE_OPERATIONS_TOTAL.labels(operation=name, outcome="success").inc()
            finally:
                LEASE_OPERATION_DURATION_SECONDS.labels(operation=name).observe(
                    perf_counter() - started
                )

    def _load(self, contact_id: str) -> Candidate:
        candidate = self._repository.get_candidate(contact_id)
        if candidate is None:
            raise CandidateNotFoundError(contact_id)
        return candidate

    @staticmethod
    def _locked_by_other(candidate: Candidate, now: datetime) -> LockedByOtherError:
        assert candidate.lock_expiry is not None
        remaining_days, remaining_time = remaining_lock_window(candidate.lock_expiry, now)
        return LockedByOtherError(
            candidate.contact_id,
            candidate.owner_id,
            candidate.lock_expiry,
            remaining_days=remaining_days,
            remaining_time=remaining_time,
        )

    def _save(self, current: Candidate, updated: Candidate) -> Candidate:
        validate_history(updated)
        return self._repository.save_candidate(updated, expected_version=current.version)

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    def try_create_candidate(
        self,
        contact_id: str,
        employee_id: str,
        *,
        name: str | None = None,
        call_status: str | None = None,
    ) -> CreateOutcome:
        """Create a candidate, or return the existing record when the id is taken.

        Exactly one of several concurrent callers for the same contact id gets
        ``created=True``; the others get the stored record to decide their
        fallback (claim, lock check) from.
        """
        contact_id = self.normalize(contact_id)
        with self._operation("create", contact_id=contact_id, employee_id=employee_id):
            now = self._clock()
            candidate = Candidate(
                contact_id=contact_id,
                owner_id=employee_id,
                created_by=employee_id,
                name=name,
                call_status=call_status,
                registration_history=[
                    HistoryEntry(
                        owner_id=employee_id,
                        claimed_at=now,
                        status=HistoryStatus.ACTIVE,
                    )
                ],
                created_at=now,
                updated_at=now,
            )
            stored = self._repository.create_candidate(candidate)
            if stored is not None:
                logger.info(
                    "candidate_created", contact_id=contact_id, owner_id=employee_id
                )
                return CreateOutcome(candidate=stored, created=True)

            existing = self._load(contact_id)
            logger.info(
                "candidate_already_registered",
                contact_id=contact_id,
                owner_id=existing.owner_id,
                employee_id=employee_id,
            )
            return CreateOutcome(candidate=existing, created=False)

    def create_candidate(
        self,
        contact_id: str,
        employee_id: str,
        *,
        name: str | None = None,
        call_status: str | None = None,
    ) -> Candidate:
        """Register a new candidate owned by ``employee_id``.

        Raises:
            DuplicateCandidateError: If the contact id is already registered
            ValidationError: If the contact id is malformed
        """
        outcome = self.try_create_candidate(
            contact_id, employee_id, name=name, call_status=call_status
        )
        if not outcome.created:
            raise DuplicateCandidateError(
                outcome.candidate.contact_id, outcome.candidate.owner_id
            )
        return outcome.candidate

    def find_candidate(self, contact_id: str) -> Candidate:
        """Raises CandidateNotFoundError for unknown contact ids."""
        return self._load(self.normalize(contact_id))

    # ------------------------------------------------------------------
    # Leases
    # ------------------------------------------------------------------

    def check_lock(self, contact_id: str) -> LockStatus:
        """Report lock state for a contact id without modifying anything."""
        contact_id = self.normalize(contact_id)
        with self._operation("check_lock", contact_id=contact_id):
            candidate = self._load(contact_id)
            return compute_lock_status(candidate, self._clock())

    def acquire_lease(
        self,
        contact_id: str,
        employee_id: str,
        stage: PipelineStage | str,
        *,
        lineup_creator_id: str | None = None,
        call_status: str | None = None,
        name: str | None = None,
    ) -> LeaseResult:
        """Lock a candidate for the duration configured for ``stage``.

        The lock is attributed to the rightful locker: the lineup creator for
        ``joiningReceived`` when one is given, otherwise the caller. When that
        is not the current owner, ownership moves in the same write and the
        previous owner is returned for notification. Re-acquisition by the
        current owner refreshes the expiry. ``walk-in`` never locks.

        ``call_status`` and ``name``, when given, are stored in the same
        version-checked write as the lock, so a rejected or stale lease
        leaves them untouched.

        Raises:
            ValidationError: Unknown stage or malformed contact id
            CandidateNotFoundError: Unknown contact id
            LockedByOtherError: Another employee holds an active lock and the
                stage does not override running locks
            StaleCandidateError: A concurrent write won; re-read and retry
        """
        contact_id = self.normalize(contact_id)
        with self._operation(
            "acquire_lease",
            contact_id=contact_id,
            employee_id=employee_id,
            stage=getattr(stage, "value", stage),
        ):
            stage = _parse_stage(stage)
            rightful_owner = (
                lineup_creator_id
                if stage == PipelineStage.JOINING_RECEIVED and lineup_creator_id
                else employee_id
            )
            current = self._load(contact_id)
            now = self._clock()
            locked = current.lock_active(now)

            if (
                locked
                and current.owner_id != rightful_owner
                and stage not in LOCK_OVERRIDING_STAGES
            ):
                raise self._locked_by_other(current, now)

            details: dict[str, object] = {}
            if call_status:
                details["call_status"] = call_status
            if name is not None:
                details["name"] = name

            duration = self._durations[stage]
            if duration is None:
                logger.info(
                    "lease_not_required",
                    contact_id=contact_id,
                    stage=stage.value,
                    owner_id=current.owner_id,
                )
                candidate = current
                if details:
                    candidate = self._save(
                        current,
                        current.model_copy(update={**details, "updated_at": now}),
                    )
                return LeaseResult(
                    candidate=candidate,
                    stage=stage,
                    lock_expiry=current.lock_expiry if locked else None,
                )

            updated = current
            previous_owner_id: str | None = None
            if rightful_owner != current.owner_id:
                updated = with_claim(current, rightful_owner, now)
                previous_owner_id = current.owner_id

            lock_expiry = now + duration
            updated = updated.model_copy(
                update={
                    **details,
                    "is_locked": True,
                    "lock_expiry": lock_expiry,
                    "lock_stage": stage,
                    "updated_at": now,
                }
            )
            saved = self._save(current, updated)

            refreshed = locked and previous_owner_id is None
            logger.info(
                "lease_acquired",
                contact_id=contact_id,
                owner_id=rightful_owner,
                stage=stage.value,
                lock_expiry=lock_expiry.isoformat(),
                previous_owner_id=previous_owner_id,
                refreshed=refreshed,
            )
            return LeaseResult(
                candidate=saved,
                stage=stage,
                lock_expiry=lock_expiry,
                previous_owner_id=previous_owner_id,
                refreshed=refreshed,
            )

    def transfer_ownership(self, contact_id: str, employee_id: str) -> TransferResult:
        """Move ownership to ``employee_id`` and clear any stage lock.

        Raises:
            CandidateNotFoundError: Unknown contact id
            LockedByOtherError: Another employee holds an active lock
            AlreadyOwnedError: The employee owns or previously claimed the candidate
            StaleCandidateError: A concurrent write won; re-read and retry
        """
        contact_id = self.normalize(contact_id)
        with self._operation(
            "transfer_ownership", contact_id=contact_id, employee_id=employee_id
        ):
            current = self._load(contact_id)
            now = self._clock()

            if current.lock_active(now) and current.owner_id != employee_id:
                raise self._locked_by_other(current, now)

            if current.owner_id == employee_id or contains_claim_in(
                current.registration_history, employee_id
            ):
                raise AlreadyOwnedError(contact_id, employee_id)

            updated = with_claim(current, employee_id, now).model_copy(
                update={"is_locked": False, "lock_expiry": None, "lock_stage": None}
            )
            saved = self._save(current, updated)

            logger.info(
                "ownership_transferred",
                contact_id=contact_id,
                owner_id=employee_id,
                previous_owner_id=current.owner_id,
                history_entries=len(saved.registration_history),
            )
            return TransferResult(candidate=saved, previous_owner_id=current.owner_id)

    def record_call_status(
        self,
        contact_id: str,
        call_status: str,
        *,
        name: str | None = None,
    ) -> Candidate:
        """Store the pipeline call status without touching ownership or locks."""
        contact_id = self.normalize(contact_id)
        with self._operation("record_call_status", contact_id=contact_id):
            current = self._load(contact_id)
            update: dict[str, object] = {
                "call_status": call_status,
                "updated_at": self._clock(),
            }
            if name is not None:
                update["name"] = name
            return self._save(current, current.model_copy(update=update))
