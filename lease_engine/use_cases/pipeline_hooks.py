"""Pipeline event hooks.

The lineup, walk-in and joining workflows call into these hooks at the points
where a candidate is registered, marked or reaches a lock-triggering stage.
All ownership and lock changes go through the LeaseEngine; the hooks add the
workflow rules (which status maps to which stage, who gets the credit) and
notify previous owners once the engine reports an ownership change.
"""

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.exceptions import CandidateNotFoundError, LockedByOtherError
from lease_engine.domain.lease_constants import (
    CALL_STATUS_STAGES,
    JOINING_STATUS_DETAILS_RECEIVED,
    LINEUP_STATUS_JOINED,
    LINEUP_STATUS_SELECTED,
)
from lease_engine.domain.models import (
    DuplicityCheckResult,
    LeaseResult,
    LockStatus,
    NotificationKind,
    PipelineStage,
    RegistrationResult,
    TransferResult,
)
from lease_engine.services.notification_dispatcher import NotificationDispatcher
from lease_engine.use_cases.lease_engine import LeaseEngine

logger = get_logger(__name__)

CALL_STATUS_LINEUP = "Lineup"
CALL_STATUS_WALK_IN = "Walkin at Infidea"
CALL_STATUS_JOINED = "Joined"


def stage_for_call_status(call_status: str | None) -> PipelineStage | None:
    if not call_status:
        return None
    return CALL_STATUS_STAGES.get(call_status.strip().lower())


class PipelineHooks:
    """Entry points used by the recruiting workflows."""

    def __init__(self, engine: LeaseEngine, dispatcher: NotificationDispatcher) -> None:
        self._engine = engine
        self._dispatcher = dispatcher

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def check_lock(self, contact_id: str) -> LockStatus:
        return self._engine.check_lock(contact_id)

    def check_duplicity(self, contact_id: str, employee_id: str) -> DuplicityCheckResult:
        """Tell a recruiter whether a number is registered; alert the owner if so."""
        contact_id = self._engine.normalize(contact_id)
        try:
            status = self._engine.check_lock(contact_id)
        except CandidateNotFoundError:
            return DuplicityCheckResult(contact_id=contact_id, is_duplicate=False)

        if status.owner_id != employee_id:
            self._dispatcher.notify(
                status.owner_id,
                f"{employee_id} checked whether your candidate {contact_id} is registered",
                employee_id,
                kind=NotificationKind.DUPLICITY_CHECK,
                contact_id=contact_id,
            )
        return DuplicityCheckResult(
            contact_id=contact_id, is_duplicate=True, lock_status=status
        )

    # ------------------------------------------------------------------
    # Registration and marking
    # ------------------------------------------------------------------

    def register_candidate(
        self,
        contact_id: str,
        employee_id: str,
        *,
        name: str | None = None,
        call_status: str | None = None,
    ) -> RegistrationResult:
        """Register a candidate, or claim it when the number is already known.

        A duplicate is never re-inserted: the stored record is re-read and one
        ownership transfer is attempted, which raises LockedByOtherError or
        AlreadyOwnedError when the claim is not allowed.
        """
        outcome = self._engine.try_create_candidate(
            contact_id, employee_id, name=name, call_status=call_status
        )
        candidate = outcome.candidate
        previous_owner_id: str | None = None
        takes_lease = stage_for_call_status(call_status) == PipelineStage.LINEUP

        if not outcome.created:
            transfer = self.mark_candidate(candidate.contact_id, employee_id)
            candidate = transfer.candidate
            previous_owner_id = transfer.previous_owner_id
            if call_status and not takes_lease:
                candidate = self._engine.record_call_status(
                    candidate.contact_id, call_status, name=name
                )

        lease: LeaseResult | None = None
        if takes_lease:
            lease = self._acquire(
                candidate.contact_id,
                employee_id,
                PipelineStage.LINEUP,
                call_status=call_status,
                name=name,
            )
            candidate = lease.candidate

        return RegistrationResult(
            candidate=candidate,
            created=outcome.created,
            previous_owner_id=previous_owner_id,
            lease=lease,
        )

    def mark_candidate(self, contact_id: str, employee_id: str) -> TransferResult:
        """Claim an existing candidate for ``employee_id`` and tell the previous owner."""
        result = self._engine.transfer_ownership(contact_id, employee_id)
        self._dispatcher.notify(
            result.previous_owner_id,
            f"Candidate {result.candidate.contact_id} has been marked by {employee_id}",
            employee_id,
            kind=NotificationKind.CANDIDATE_MARKED,
            contact_id=result.candidate.contact_id,
        )
        return result

    # ------------------------------------------------------------------
    # Stage events
    # ------------------------------------------------------------------

    def on_lineup_created(
        self, contact_id: str, employee_id: str, *, name: str | None = None
    ) -> RegistrationResult:
        """A lineup was created: register if needed and take the 30-day lease."""
        self._ensure_not_locked_by_other(contact_id, employee_id)
        outcome = self._engine.try_create_candidate(
            contact_id, employee_id, name=name, call_status=CALL_STATUS_LINEUP
        )
        lease = self._acquire(
            outcome.candidate.contact_id,
            employee_id,
            PipelineStage.LINEUP,
            call_status=CALL_STATUS_LINEUP,
            name=name,
        )
        return RegistrationResult(
            candidate=lease.candidate,
            created=outcome.created,
            previous_owner_id=lease.previous_owner_id,
            lease=lease,
        )

    def on_walkin_created(
        self, contact_id: str, employee_id: str, *, name: str | None = None
    ) -> RegistrationResult:
        """A walk-in was recorded. Walk-ins never lock and never move ownership."""
        self._ensure_not_locked_by_other(contact_id, employee_id)
        outcome = self._engine.try_create_candidate(
            contact_id, employee_id, name=name, call_status=CALL_STATUS_WALK_IN
        )
        lease = self._engine.acquire_lease(
            outcome.candidate.contact_id,
            employee_id,
            PipelineStage.WALK_IN,
            call_status=None if outcome.created else CALL_STATUS_WALK_IN,
            name=None if outcome.created else name,
        )
        return RegistrationResult(
            candidate=lease.candidate, created=outcome.created, lease=lease
        )

    def on_lineup_status_changed(
        self,
        contact_id: str,
        employee_id: str,
        new_status: str,
        *,
        lineup_creator_id: str | None = None,
    ) -> LeaseResult | None:
        """``Selected`` locks for the caller; ``Joined`` locks for the lineup creator."""
        if new_status == LINEUP_STATUS_SELECTED:
            return self._acquire(contact_id, employee_id, PipelineStage.SELECTED)
        if new_status == LINEUP_STATUS_JOINED:
            return self._acquire(
                contact_id,
                employee_id,
                PipelineStage.JOINING_RECEIVED,
                lineup_creator_id=lineup_creator_id,
                call_status=CALL_STATUS_JOINED,
            )
        logger.debug(
            "lineup_status_without_lease", contact_id=contact_id, status=new_status
        )
        return None

    def on_joining_status_changed(
        self,
        contact_id: str,
        employee_id: str,
        new_status: str,
        *,
        lineup_creator_id: str | None = None,
    ) -> LeaseResult | None:
        """``Joining Details Received`` locks for 90 days, credited to the lineup creator."""
        if new_status != JOINING_STATUS_DETAILS_RECEIVED:
            logger.debug(
                "joining_status_without_lease", contact_id=contact_id, status=new_status
            )
            return None
        return self._acquire(
            contact_id,
            employee_id,
            PipelineStage.JOINING_RECEIVED,
            lineup_creator_id=lineup_creator_id,
        )

    def on_call_status_changed(
        self, contact_id: str, employee_id: str, call_status: str
    ) -> LeaseResult | None:
        """Store the new call status; a move to lineup stores it with the lease write."""
        if stage_for_call_status(call_status) != PipelineStage.LINEUP:
            self._engine.record_call_status(contact_id, call_status)
            return None
        return self._acquire(
            contact_id, employee_id, PipelineStage.LINEUP, call_status=call_status
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _ensure_not_locked_by_other(self, contact_id: str, employee_id: str) -> None:
        try:
            status = self._engine.check_lock(contact_id)
        except CandidateNotFoundError:
            return
        if status.is_locked and status.owner_id != employee_id:
            raise LockedByOtherError(
                status.contact_id,
                status.owner_id,
                status.lock_expiry,
                remaining_days=status.remaining_days,
                remaining_time=status.remaining_time,
            )

    def _acquire(
        self,
        contact_id: str,
        employee_id: str,
        stage: PipelineStage,
        *,
        lineup_creator_id: str | None = None,
        call_status: str | None = None,
        name: str | None = None,
    ) -> LeaseResult:
        lease = self._engine.acquire_lease(
            contact_id,
            employee_id,
            stage,
            lineup_creator_id=lineup_creator_id,
            call_status=call_status,
            name=name,
        )
        if lease.previous_owner_id:
            new_owner = lease.candidate.owner_id
            self._dispatcher.notify(
                lease.previous_owner_id,
                f"Candidate {lease.candidate.contact_id} is now with {new_owner} "
                f"({stage.value})",
                employee_id,
                kind=NotificationKind.CANDIDATE_MARKED,
                contact_id=lease.candidate.contact_id,
            )
        return lease
