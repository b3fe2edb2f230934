"""Tests for employee portfolio and inbox queries."""

from __future__ import annotations

from lease_engine.domain.models import PipelineStage
from lease_engine.use_cases.candidate_portfolio import (
    list_candidates_for_employee,
    list_notifications_for_employee,
    mark_notification_read,
)


def test_portfolio_flags_locks_held_by_employee(engine, repo, clock) -> None:
    engine.create_candidate("9000000001", "emp-a")
    engine.acquire_lease("9000000001", "emp-a", PipelineStage.LINEUP)
    clock.advance(minutes=5)
    engine.create_candidate("9000000002", "emp-a")
    engine.transfer_ownership("9000000002", "emp-b")

    views = list_candidates_for_employee(repo, "emp-a", clock=clock)

    by_contact = {view.candidate.contact_id: view for view in views}
    assert set(by_contact) == {"+919000000001", "+919000000002"}

    locked = by_contact["+919000000001"]
    assert locked.is_locked is True
    assert locked.is_locked_by_me is True
    assert locked.is_last_registered_by_me is True
    assert locked.remaining_days == 30

    moved = by_contact["+919000000002"]
    assert moved.is_locked is False
    assert moved.is_locked_by_me is False
    assert moved.is_last_registered_by_me is False


def test_portfolio_evaluates_expiry_lazily(engine, repo, clock) -> None:
    engine.create_candidate("9000000001", "emp-a")
    engine.acquire_lease("9000000001", "emp-a", PipelineStage.LINEUP)
    clock.advance(days=30, seconds=1)

    [view] = list_candidates_for_employee(repo, "emp-a", clock=clock)

    assert view.candidate.is_locked is True
    assert view.is_locked is False
    assert view.is_locked_by_me is False


def test_portfolio_for_unknown_employee_is_empty(repo, clock) -> None:
    assert list_candidates_for_employee(repo, "emp-nobody", clock=clock) == []


def test_inbox_lists_and_marks_notifications(hooks, repo, clock) -> None:
    hooks.register_candidate("9000000001", "emp-a")
    hooks.mark_candidate("9000000001", "emp-b")

    [notification] = list_notifications_for_employee(repo, "emp-a", clock=clock)
    assert notification.contact_id == "+919000000001"

    assert mark_notification_read(repo, notification.notification_id) is True
    assert list_notifications_for_employee(repo, "emp-a", clock=clock) == []
    assert len(
        list_notifications_for_employee(repo, "emp-a", include_read=True, clock=clock)
    ) == 1


def test_inbox_drops_notifications_after_ttl(hooks, repo, clock) -> None:
    hooks.register_candidate("9000000001", "emp-a")
    hooks.mark_candidate("9000000001", "emp-b")

    clock.advance(days=30)

    assert list_notifications_for_employee(repo, "emp-a", clock=clock) == []
