"""Factory wiring the configured notification publisher into a dispatcher."""

from lease_engine.adapters.background_runner_inprocess import InProcessBackgroundRunner
from lease_engine.adapters.notification_publishers import (
    RepositoryNotificationPublisher,
    SlackNotificationPublisher,
)
from lease_engine.config.logging_config import get_logger
from lease_engine.config.settings import Settings
from lease_engine.domain.lease_constants import Clock, utc_now
from lease_engine.domain.protocols import CandidateRepositoryProtocol
from lease_engine.ports.notifications import NotificationPublisherPort
from lease_engine.services.notification_dispatcher import NotificationDispatcher

logger = get_logger(__name__)


def create_notification_publisher(
    settings: Settings, repository: CandidateRepositoryProtocol
) -> NotificationPublisherPort:
    """Create the publisher selected by ``notifier_type``.

    Raises:
        ValueError: If the notifier type is unknown or Slack is not configured
    """
    if settings.notifier_type == "repository":
        logger.info("notifier_repository_selected")
        return RepositoryNotificationPublisher(repository)

    if settings.notifier_type == "slack":
        token = settings.slack_bot_token.get_secret_value() if settings.slack_bot_token else None
        logger.info(
            "notifier_slack_selected",
            mapped_users=len(settings.slack_user_map),
            fallback_channel=settings.slack_notification_channel_id,
        )
        return SlackNotificationPublisher(
            token,
            user_map=settings.slack_user_map,
            fallback_channel_id=settings.slack_notification_channel_id,
        )

    raise ValueError(
        f"Unsupported notifier type: {settings.notifier_type}. "
        f"Must be 'repository' or 'slack'"
    )


def create_notification_dispatcher(
    settings: Settings,
    repository: CandidateRepositoryProtocol,
    *,
    clock: Clock = utc_now,
) -> NotificationDispatcher:
    publisher = create_notification_publisher(settings, repository)
    runner = InProcessBackgroundRunner() if settings.notifications_async else None
    return NotificationDispatcher(
        publisher,
        runner=runner,
        clock=clock,
        ttl=settings.notification_ttl,
    )
