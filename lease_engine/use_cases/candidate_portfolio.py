"""Employee portfolio queries: my candidates and my notifications."""

from uuid import UUID

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.lease_constants import Clock, utc_now
from lease_engine.domain.models import CandidateView, Notification
from lease_engine.domain.protocols import CandidateRepositoryProtocol
from lease_engine.services.lock_calculator import compute_lock_status

logger = get_logger(__name__)


def list_candidates_for_employee(
    repository: CandidateRepositoryProtocol,
    employee_id: str,
    *,
    limit: int | None = None,
    clock: Clock = utc_now,
) -> list[CandidateView]:
    """Candidates the employee owns, created, or claimed at some point.

    Args:
        repository: Candidate repository
        employee_id: Employee whose portfolio is listed
        limit: Optional maximum number of candidates
        clock: Time source for lazy lock evaluation

    Returns:
        Views ordered by most recently updated first

    Example:
        >>> views = list_candidates_for_employee(repo, "emp-a")
        >>> [(v.candidate.contact_id, v.is_locked_by_me) for v in views]
        [('+919000000001', True)]
    """
    now = clock()
    candidates = repository.list_candidates_for_employee(employee_id, limit=limit)

    views: list[CandidateView] = []
    for candidate in candidates:
        status = compute_lock_status(candidate, now)
        views.append(
            CandidateView(
                candidate=candidate,
                is_locked=status.is_locked,
                is_locked_by_me=status.is_locked and candidate.owner_id == employee_id,
                is_last_registered_by_me=candidate.owner_id == employee_id,
                remaining_days=status.remaining_days,
                remaining_time=status.remaining_time,
            )
        )

    logger.info(
        "employee_portfolio_listed",
        employee_id=employee_id,
        candidate_count=len(views),
        locked_count=sum(1 for view in views if view.is_locked_by_me),
    )
    return views


def list_notifications_for_employee(
    repository: CandidateRepositoryProtocol,
    employee_id: str,
    *,
    include_read: bool = False,
    clock: Clock = utc_now,
) -> list[Notification]:
    """Non-expired notifications for the employee, newest first."""
    return repository.list_notifications(
        employee_id, now=clock(), include_read=include_read
    )


def mark_notification_read(
    repository: CandidateRepositoryProtocol, notification_id: UUID
) -> bool:
    updated = repository.mark_notification_read(notification_id)
    if not updated:
        logger.warning(
            "notification_not_found", notification_id=str(notification_id)
        )
    return updated
