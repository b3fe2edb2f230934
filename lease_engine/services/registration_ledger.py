"""Registration history ledger.

Append-only list of ownership claims per candidate. A new claim and the
demotion of the previous ``Active`` entry are computed together with the owner
field change, so the repository persists all three in one conditional write.
"""

from collections.abc import Iterable
from datetime import datetime

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.exceptions import CandidateNotFoundError, ValidationError
from lease_engine.domain.lease_constants import Clock, utc_now
from lease_engine.domain.models import Candidate, HistoryEntry, HistoryStatus
from lease_engine.domain.protocols import CandidateRepositoryProtocol

logger = get_logger(__name__)


def active_entries(history: Iterable[HistoryEntry]) -> list[HistoryEntry]:
    return [entry for entry in history if entry.status == HistoryStatus.ACTIVE]


def contains_claim_in(history: Iterable[HistoryEntry], employee_id: str) -> bool:
    """True when the employee appears anywhere in the history, Active or Expired."""
    return any(entry.owner_id == employee_id for entry in history)


def with_claim(candidate: Candidate, employee_id: str, now: datetime) -> Candidate:
    """Return a copy of ``candidate`` with a new Active claim for ``employee_id``.

    Every previously Active entry is demoted to Expired and the owner field
    is moved to the claimant. The input candidate is not modified.
    """
    history = [
        entry.model_copy(update={"status": HistoryStatus.EXPIRED})
        if entry.status == HistoryStatus.ACTIVE
        else entry
        for entry in candidate.registration_history
    ]
    history.append(
        HistoryEntry(owner_id=employee_id, claimed_at=now, status=HistoryStatus.ACTIVE)
    )
    return candidate.model_copy(
        update={
            "owner_id": employee_id,
            "registration_history": history,
            "updated_at": now,
        }
    )


def validate_history(candidate: Candidate) -> None:
    """Check the ledger invariants before a write.

    Raises:
        ValidationError: If more than one entry is Active, or the owner field
            disagrees with the Active entry
    """
    active = active_entries(candidate.registration_history)
    if len(active) > 1:
        raise ValidationError(
            f"Candidate {candidate.contact_id} has {len(active)} active history entries"
        )
    if active and active[0].owner_id != candidate.owner_id:
        raise ValidationError(
            f"Candidate {candidate.contact_id} owner {candidate.owner_id} "
            f"does not match active claim {active[0].owner_id}"
        )
    if active and candidate.registration_history[-1] is not active[0]:
        raise ValidationError(
            f"Candidate {candidate.contact_id} active claim is not the latest entry"
        )


class RegistrationHistoryLedger:
    """Ledger operations backed by the candidate repository."""

    def __init__(
        self, repository: CandidateRepositoryProtocol, clock: Clock = utc_now
    ) -> None:
        self._repository = repository
        self._clock = clock

    def append(self, contact_id: str, employee_id: str) -> Candidate:
        """Append an Active claim and expire the prior one in one atomic write.

        Raises:
            CandidateNotFoundError: If the candidate does not exist
            StaleCandidateError: If the candidate changed since it was read
        """
        current = self._repository.get_candidate(contact_id)
        if current is None:
            raise CandidateNotFoundError(contact_id)

        updated = with_claim(current, employee_id, self._clock())
        validate_history(updated)
        saved = self._repository.save_candidate(updated, expected_version=current.version)
        logger.info(
            "history_claim_appended",
            contact_id=contact_id,
            owner_id=employee_id,
            previous_owner_id=current.owner_id,
            entries=len(saved.registration_history),
        )
        return saved

    def contains_claim(self, contact_id: str, employee_id: str) -> bool:
        return self._repository.has_claim(contact_id, employee_id)
