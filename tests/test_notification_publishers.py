"""Tests for the repository and Slack notification publishers."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import pytest
from slack_sdk.errors import SlackApiError
from slack_sdk.web.client import WebClient
from slack_sdk.web.slack_response import SlackResponse

from lease_engine.adapters.notification_publishers import (
    RepositoryNotificationPublisher,
    SlackNotificationPublisher,
)
from lease_engine.domain.exceptions import NotificationError, RepositoryError
from lease_engine.domain.models import Notification, NotificationKind

NOW = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


def _notification(recipient_id: str = "emp-a") -> Notification:
    return Notification(
        recipient_id=recipient_id,
        message="Candidate +919000000001 has been marked by emp-b",
        kind=NotificationKind.CANDIDATE_MARKED,
        contact_id="+919000000001",
        acting_employee_id="emp-b",
        created_at=NOW,
        expires_at=NOW + timedelta(days=30),
    )


def _slack_response(data: dict[str, Any], headers: dict[str, str] | None = None) -> SlackResponse:
    return SlackResponse(
        client=WebClient(token="xoxb-test"),
        http_verb="POST",
        api_url="https://slack.com/api/chat.postMessage",
        req_args={},
        data=data,
        headers=headers or {},
        status_code=200 if data.get("ok") else 429,
    )


class StubWebClient:
    def __init__(self, response: dict[str, Any] | None = None, error: Exception | None = None) -> None:
        self.response = response or {"ok": True, "ts": "1700000000.000100"}
        self.error = error
        self.calls: list[dict[str, Any]] = []

    def chat_postMessage(self, **params: Any) -> dict[str, Any]:  # noqa: N802
        self.calls.append(params)
        if self.error is not None:
            raise self.error
        return self.response


def test_repository_publisher_saves_notification(mocker) -> None:
    repository = mocker.Mock()
    publisher = RepositoryNotificationPublisher(repository)
    notification = _notification()

    publisher.publish(notification)

    repository.save_notification.assert_called_once_with(notification)


def test_repository_publisher_wraps_storage_errors(mocker) -> None:
    repository = mocker.Mock()
    repository.save_notification.side_effect = RepositoryError("disk full")

    with pytest.raises(NotificationError):
        RepositoryNotificationPublisher(repository).publish(_notification())


def test_slack_publisher_posts_to_mapped_user() -> None:
    client = StubWebClient()
    publisher = SlackNotificationPublisher(
        client=client, user_map={"emp-a": "U123"}  # type: ignore[arg-type]
    )

    publisher.publish(_notification())

    assert len(client.calls) == 1
    call = client.calls[0]
    assert call["channel"] == "U123"
    assert call["text"].startswith("Candidate +919000000001")
    context_texts = [element["text"] for element in call["blocks"][1]["elements"]]
    assert "*Candidate:* +919000000001" in context_texts
    assert "*By:* emp-b" in context_texts


def test_slack_publisher_falls_back_to_channel() -> None:
    client = StubWebClient()
    publisher = SlackNotificationPublisher(
        client=client, fallback_channel_id="C999"  # type: ignore[arg-type]
    )

    publisher.publish(_notification("emp-unmapped"))

    assert client.calls[0]["channel"] == "C999"


def test_slack_publisher_without_destination_raises() -> None:
    client = StubWebClient()
    publisher = SlackNotificationPublisher(client=client)  # type: ignore[arg-type]

    with pytest.raises(NotificationError):
        publisher.publish(_notification())
    assert client.calls == []


def test_slack_publisher_requires_token_or_client() -> None:
    with pytest.raises(ValueError):
        SlackNotificationPublisher()


def test_slack_publisher_reports_rate_limit() -> None:
    response = _slack_response({"ok": False, "error": "ratelimited"}, {"Retry-After": "7"})
    client = StubWebClient(error=SlackApiError("ratelimited", response))
    publisher = SlackNotificationPublisher(
        client=client, user_map={"emp-a": "U123"}  # type: ignore[arg-type]
    )

    with pytest.raises(NotificationError, match="retry after 7s"):
        publisher.publish(_notification())


def test_slack_publisher_reports_api_errors() -> None:
    client = StubWebClient(response={"ok": False, "error": "channel_not_found"})
    publisher = SlackNotificationPublisher(
        client=client, user_map={"emp-a": "U123"}  # type: ignore[arg-type]
    )

    with pytest.raises(NotificationError, match="channel_not_found"):
        publisher.publish(_notification())
