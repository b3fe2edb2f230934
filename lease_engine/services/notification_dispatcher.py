"""Previous-owner notification dispatcher.

Ownership operations must never fail or wait because a notification could not
be delivered. ``notify`` hands the publish off to the background runner (or
runs it inline when none is configured) and logs delivery failures.
"""

from datetime import timedelta
from typing import Final

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.lease_constants import NOTIFICATION_TTL, Clock, utc_now
from lease_engine.domain.models import Notification, NotificationKind
from lease_engine.observability.metrics import NOTIFICATIONS_TOTAL
from lease_engine.ports.background_runner import BackgroundRunnerPort
from lease_engine.ports.notifications import NotificationPublisherPort

logger = get_logger(__name__)

DELIVER_NOTIFICATION_JOB: Final[str] = "deliver_notification"


class NotificationDispatcher:
    """Fire-and-forget facade over a notification publisher."""

    def __init__(
        self,
        publisher: NotificationPublisherPort,
        *,
        runner: BackgroundRunnerPort | None = None,
        clock: Clock = utc_now,
        ttl: timedelta = NOTIFICATION_TTL,
    ) -> None:
        self._publisher = publisher
        self._runner = runner
        self._clock = clock
        self._ttl = ttl
        if runner is not None:
            runner.register(DELIVER_NOTIFICATION_JOB, self._run_delivery_job)

    def notify(
        self,
        recipient_id: str | None,
        summary: str,
        acting_employee_id: str | None = None,
        *,
        kind: NotificationKind = NotificationKind.SYSTEM,
        contact_id: str | None = None,
    ) -> Notification | None:
        """Queue a notification for ``recipient_id``. Never raises.

        Returns:
            The notification handed to the publisher, or None when skipped
        """
        if not recipient_id or recipient_id == acting_employee_id:
            return None

        now = self._clock()
        notification = Notification(
            recipient_id=recipient_id,
            message=summary,
            kind=kind,
            contact_id=contact_id,
            acting_employee_id=acting_employee_id,
            created_at=now,
            expires_at=now + self._ttl,
        )

        if self._runner is None:
            self._deliver(notification)
            return notification

        try:
            self._runner.submit(
                DELIVER_NOTIFICATION_JOB,
                {"notification": notification.model_dump(mode="json")},
            )
        except Exception:  # noqa: BLE001
            NOTIFICATIONS_TOTAL.labels(kind=kind.value, outcome="failed").inc()
            logger.exception(
                "notification_submit_failed",
                recipient_id=recipient_id,
                kind=kind.value,
            )
        return notification

    def drain(self, timeout: float | None = None) -> bool:
        """Wait for queued deliveries (used by scripts on shutdown and by tests)."""
        if self._runner is None:
            return True
        return self._runner.drain(timeout)

    def _run_delivery_job(self, params: dict[str, object]) -> dict[str, object]:
        notification = Notification.model_validate(params["notification"])
        delivered = self._deliver(notification)
        return {"delivered": delivered}

    def _deliver(self, notification: Notification) -> bool:
        try:
            self._publisher.publish(notification)
        except Exception as exc:  # noqa: BLE001
            NOTIFICATIONS_TOTAL.labels(kind=notification.kind.value, outcome="failed").inc()
            logger.warning(
                "notification_delivery_failed",
                notification_id=str(notification.notification_id),
                recipient_id=notification.recipient_id,
                kind=notification.kind.value,
                error=str(exc),
                exc_info=True,
            )
            return False

        NOTIFICATIONS_TOTAL.labels(kind=notification.kind.value, outcome="delivered").inc()
        logger.info(
            "notification_delivered",
            notification_id=str(notification.notification_id),
            recipient_id=notification.recipient_id,
            kind=notification.kind.value,
        )
        return True
