"""Domain constants for candidate leases."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Final

from lease_engine.domain.models import PipelineStage

LINEUP_LEASE_DURATION: Final[timedelta] = timedelta(days=30)
JOINING_RECEIVED_LEASE_DURATION: Final[timedelta] = timedelta(days=90)
SELECTED_LEASE_DURATION: Final[timedelta] = timedelta(days=90)

# None means the stage never locks the candidate.
DEFAULT_STAGE_DURATIONS: Final[dict[PipelineStage, timedelta | None]] = {
    PipelineStage.LINEUP: LINEUP_LEASE_DURATION,
    PipelineStage.WALK_IN: None,
    PipelineStage.JOINING_RECEIVED: JOINING_RECEIVED_LEASE_DURATION,
    PipelineStage.SELECTED: SELECTED_LEASE_DURATION,
}

# Confirmation stages replace a running lock held by someone else (later write wins).
LOCK_OVERRIDING_STAGES: Final[frozenset[PipelineStage]] = frozenset(
    {PipelineStage.JOINING_RECEIVED, PipelineStage.SELECTED}
)

REMAINING_TIME_THRESHOLD: Final[timedelta] = timedelta(hours=24)
NOTIFICATION_TTL: Final[timedelta] = timedelta(days=30)

DEFAULT_COUNTRY_CODE: Final[str] = "+91"
CONTACT_NUMBER_DIGITS: Final[int] = 10

# Status labels emitted by the pipeline screens.
CALL_STATUS_STAGES: Final[dict[str, PipelineStage]] = {
    "lineup": PipelineStage.LINEUP,
    "walkin at infidea": PipelineStage.WALK_IN,
}
LINEUP_STATUS_SELECTED: Final[str] = "Selected"
LINEUP_STATUS_JOINED: Final[str] = "Joined"
JOINING_STATUS_DETAILS_RECEIVED: Final[str] = "Joining Details Received"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock used by the engine and the sweeper."""
    return datetime.now(tz=UTC)


__all__ = [
    "CALL_STATUS_STAGES",
    "CONTACT_NUMBER_DIGITS",
    "Clock",
    "DEFAULT_COUNTRY_CODE",
    "DEFAULT_STAGE_DURATIONS",
    "JOINING_RECEIVED_LEASE_DURATION",
    "JOINING_STATUS_DETAILS_RECEIVED",
    "LINEUP_LEASE_DURATION",
    "LINEUP_STATUS_JOINED",
    "LINEUP_STATUS_SELECTED",
    "LOCK_OVERRIDING_STAGES",
    "NOTIFICATION_TTL",
    "REMAINING_TIME_THRESHOLD",
    "SELECTED_LEASE_DURATION",
    "utc_now",
]
