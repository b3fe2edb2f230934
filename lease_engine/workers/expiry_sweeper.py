"""Expiry sweeper worker.

Reconciles the cached ``is_locked`` flag with lazy-expiry truth. Every read
path already ignores expired locks, so a delayed or missed sweep only leaves a
stale display flag behind; it never changes a lock decision.
"""

from __future__ import annotations

from time import perf_counter

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.lease_constants import Clock, utc_now
from lease_engine.domain.models import SweepResult
from lease_engine.domain.protocols import CandidateRepositoryProtocol
from lease_engine.observability.metrics import LOCKS_RELEASED_TOTAL, SWEEP_DURATION_SECONDS
from lease_engine.observability.tracing import correlation_scope

logger = get_logger(__name__)


class ExpirySweeper:
    """Clears lock flags whose expiry has passed."""

    def __init__(
        self, repository: CandidateRepositoryProtocol, *, clock: Clock = utc_now
    ) -> None:
        self._repository = repository
        self._clock = clock

    def run_once(self, *, correlation_id: str | None = None) -> SweepResult:
        """Run one conditional bulk update. Safe to run alongside writers."""
        with correlation_scope(correlation_id):
            started = perf_counter()
            now = self._clock()
            logger.info("lock_sweep_started", swept_at=now.isoformat())

            released = self._repository.release_expired_locks(now)

            duration = perf_counter() - started
            LOCKS_RELEASED_TOTAL.inc(released)
            SWEEP_DURATION_SECONDS.observe(duration)
            logger.info(
                "lock_sweep_finished",
                released=released,
                duration_seconds=round(duration, 4),
            )
            return SweepResult(released=released, swept_at=now, duration_seconds=duration)
