"""Tests for the fire-and-forget notification dispatcher."""

from __future__ import annotations

from datetime import timedelta

from structlog.testing import capture_logs

from lease_engine.adapters.background_runner_inprocess import InProcessBackgroundRunner
from lease_engine.domain.exceptions import NotificationError
from lease_engine.domain.models import Notification, NotificationKind
from lease_engine.services.notification_dispatcher import NotificationDispatcher


class RecordingPublisher:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.published: list[Notification] = []

    def publish(self, notification: Notification) -> None:
        if self.fail:
            raise NotificationError("delivery refused")
        self.published.append(notification)


def test_notify_delivers_inline_without_runner(clock) -> None:
    publisher = RecordingPublisher()
    dispatcher = NotificationDispatcher(
        publisher, clock=clock, ttl=timedelta(days=30)
    )

    notification = dispatcher.notify(
        "emp-a",
        "Candidate +919000000001 has been marked by emp-b",
        "emp-b",
        kind=NotificationKind.CANDIDATE_MARKED,
        contact_id="+919000000001",
    )

    assert notification is not None
    assert publisher.published == [notification]
    assert notification.created_at == clock()
    assert notification.expires_at == clock() + timedelta(days=30)
    assert notification.acting_employee_id == "emp-b"


def test_notify_skips_empty_recipient_and_self(clock) -> None:
    publisher = RecordingPublisher()
    dispatcher = NotificationDispatcher(publisher, clock=clock)

    assert dispatcher.notify(None, "nobody") is None
    assert dispatcher.notify("", "nobody") is None
    assert dispatcher.notify("emp-a", "own action", "emp-a") is None
    assert publisher.published == []


def test_notify_swallows_delivery_failures(clock) -> None:
    dispatcher = NotificationDispatcher(RecordingPublisher(fail=True), clock=clock)

    with capture_logs() as logs:
        notification = dispatcher.notify("emp-a", "hello", "emp-b")

    assert notification is not None
    events = [entry["event"] for entry in logs]
    assert "notification_delivery_failed" in events


def test_notify_through_background_runner(clock) -> None:
    publisher = RecordingPublisher()
    runner = InProcessBackgroundRunner()
    dispatcher = NotificationDispatcher(publisher, runner=runner, clock=clock)

    notification = dispatcher.notify(
        "emp-a", "queued", "emp-b", kind=NotificationKind.DUPLICITY_CHECK
    )

    assert dispatcher.drain(timeout=5.0) is True
    assert len(publisher.published) == 1
    delivered = publisher.published[0]
    assert notification is not None
    assert delivered.notification_id == notification.notification_id
    assert delivered.kind == NotificationKind.DUPLICITY_CHECK


def test_background_failure_does_not_reach_caller(clock) -> None:
    runner = InProcessBackgroundRunner()
    dispatcher = NotificationDispatcher(
        RecordingPublisher(fail=True), runner=runner, clock=clock
    )

    assert dispatcher.notify("emp-a", "queued", "emp-b") is not None
    assert dispatcher.drain(timeout=5.0) is True


def test_submit_failure_is_logged_not_raised(clock, mocker) -> None:
    runner = InProcessBackgroundRunner()
    mocker.patch.object(runner, "submit", side_effect=RuntimeError("no threads"))
    dispatcher = NotificationDispatcher(RecordingPublisher(), runner=runner, clock=clock)

    with capture_logs() as logs:
        assert dispatcher.notify("emp-a", "queued", "emp-b") is not None

    assert any(entry["event"] == "notification_submit_failed" for entry in logs)
