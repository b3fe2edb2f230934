"""Lock state calculations.

Pure functions: the authoritative lock state is always derived from
``lock_expiry`` versus the current time, never from the cached flag alone.
"""

import math
from datetime import datetime, timedelta

from lease_engine.domain.lease_constants import REMAINING_TIME_THRESHOLD
from lease_engine.domain.models import Candidate, LockStatus

_SECONDS_PER_DAY = 24 * 60 * 60


def format_remaining_time(remaining: timedelta) -> str:
    """Render a sub-day duration as "<h>h <m>m".

    Example:
        >>> format_remaining_time(timedelta(hours=5, minutes=7, seconds=30))
        '5h 7m'
    """
    total_minutes = max(int(remaining.total_seconds() // 60), 0)
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours}h {minutes}m"


def remaining_lock_window(
    lock_expiry: datetime, now: datetime
) -> tuple[int | None, str | None]:
    """Split the time left on a running lock into (remaining_days, remaining_time).

    Exactly one of the pair is populated: ``remaining_time`` when less than
    24 hours remain, otherwise ``remaining_days`` as the ceiling of days.
    """
    remaining = lock_expiry - now
    if remaining < REMAINING_TIME_THRESHOLD:
        return None, format_remaining_time(remaining)
    return math.ceil(remaining.total_seconds() / _SECONDS_PER_DAY), None


def compute_lock_status(candidate: Candidate, now: datetime) -> LockStatus:
    """Build the lock read model for a candidate at ``now``."""
    if not candidate.lock_active(now):
        return LockStatus(
            contact_id=candidate.contact_id,
            is_locked=False,
            owner_id=candidate.owner_id,
            remaining_days=0,
        )

    assert candidate.lock_expiry is not None
    remaining_days, remaining_time = remaining_lock_window(candidate.lock_expiry, now)
    return LockStatus(
        contact_id=candidate.contact_id,
        is_locked=True,
        owner_id=candidate.owner_id,
        lock_expiry=candidate.lock_expiry,
        lock_stage=candidate.lock_stage,
        remaining_days=remaining_days,
        remaining_time=remaining_time,
    )
