"""Notification publisher adapters.

Two delivery targets for previous-owner notifications: the repository's
notifications table (read by the recruiter inbox) and Slack direct messages.
"""

from typing import Any

from slack_sdk import WebClient
from slack_sdk.errors import SlackApiError

from lease_engine.config.logging_config import get_logger
from lease_engine.domain.exceptions import NotificationError, RepositoryError
from lease_engine.domain.models import Notification
from lease_engine.domain.protocols import CandidateRepositoryProtocol

logger = get_logger(__name__)


class RepositoryNotificationPublisher:
    """Stores notifications so recruiters can read them later."""

    def __init__(self, repository: CandidateRepositoryProtocol) -> None:
        self._repository = repository

    def publish(self, notification: Notification) -> None:
        try:
            self._repository.save_notification(notification)
        except RepositoryError as e:
            raise NotificationError(f"Failed to store notification: {e}") from e

        logger.info(
            "notification_stored",
            notification_id=str(notification.notification_id),
            recipient_id=notification.recipient_id,
            kind=notification.kind.value,
        )


class SlackNotificationPublisher:
    """Posts notifications to the recipient's Slack user (DM) or a fallback channel."""

    def __init__(
        self,
        bot_token: str | None = None,
        *,
        user_map: dict[str, str] | None = None,
        fallback_channel_id: str | None = None,
        client: WebClient | None = None,
    ) -> None:
        """Initialize Slack publisher.

        Args:
            bot_token: Slack bot user OAuth token (ignored when ``client`` is given)
            user_map: Employee id -> Slack user id
            fallback_channel_id: Channel used when the recipient has no Slack user
            client: Preconfigured WebClient
        """
        if client is None and not bot_token:
            raise ValueError("SLACK_BOT_TOKEN must be set to use the Slack notifier")
        self.client = client or WebClient(token=bot_token)
        self._user_map = dict(user_map or {})
        self._fallback_channel_id = fallback_channel_id

    def _resolve_channel(self, recipient_id: str) -> str:
        channel = self._user_map.get(recipient_id) or self._fallback_channel_id
        if not channel:
            raise NotificationError(
                f"No Slack destination configured for employee {recipient_id}"
            )
        return channel

    @staticmethod
    def _build_blocks(notification: Notification) -> list[dict[str, Any]]:
        context = [f"*Type:* {notification.kind.value}"]
        if notification.contact_id:
            context.append(f"*Candidate:* {notification.contact_id}")
        if notification.acting_employee_id:
            context.append(f"*By:* {notification.acting_employee_id}")

        return [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": notification.message},
            },
            {
                "type": "context",
                "elements": [{"type": "mrkdwn", "text": item} for item in context],
            },
        ]

    def publish(self, notification: Notification) -> None:
        """Post the notification.

        Raises:
            NotificationError: On missing destination or Slack API errors
        """
        channel = self._resolve_channel(notification.recipient_id)
        try:
            response = self.client.chat_postMessage(
                channel=channel,
                blocks=self._build_blocks(notification),
                text=notification.message,
            )
        except SlackApiError as e:
            if e.response.get("error") == "ratelimited":
                retry_after = int(e.response.headers.get("Retry-After", 60))
                raise NotificationError(
                    f"Slack rate limited notification delivery (retry after {retry_after}s)"
                ) from e
            raise NotificationError(f"Failed to post notification: {e}") from e

        if not response["ok"]:
            raise NotificationError(
                f"Failed to post notification: {response.get('error')}"
            )

        logger.info(
            "notification_posted_to_slack",
            notification_id=str(notification.notification_id),
            recipient_id=notification.recipient_id,
            channel=channel,
            ts=response.get("ts"),
        )
