"""Tests for the pipeline hooks used by the lineup, walk-in and joining workflows."""

from __future__ import annotations

from datetime import timedelta

import pytest

from lease_engine.domain.exceptions import (
    AlreadyOwnedError,
    LockedByOtherError,
    StaleCandidateError,
)
from lease_engine.domain.models import HistoryStatus, NotificationKind, PipelineStage

EMPLOYEE_A = "emp-a"
EMPLOYEE_B = "emp-b"
EMPLOYEE_C = "emp-c"
CONTACT = "9000000001"
CONTACT_ID = "+919000000001"


def _inbox(repo, clock, employee_id: str):
    return repo.list_notifications(employee_id, now=clock())


def test_register_new_candidate_with_lineup_status_takes_lease(hooks, clock) -> None:
    result = hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Lineup")

    assert result.created is True
    assert result.previous_owner_id is None
    assert result.lease is not None
    assert result.lease.stage == PipelineStage.LINEUP
    assert result.candidate.lock_expiry == clock() + timedelta(days=30)


def test_register_new_candidate_without_lineup_status_stays_unlocked(hooks) -> None:
    result = hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Not Interested")

    assert result.created is True
    assert result.lease is None
    assert result.candidate.is_locked is False
    assert result.candidate.call_status == "Not Interested"


def test_register_duplicate_claims_unlocked_candidate_and_notifies(
    hooks, repo, clock
) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)

    result = hooks.register_candidate(CONTACT, EMPLOYEE_B, call_status="Interested")

    assert result.created is False
    assert result.previous_owner_id == EMPLOYEE_A
    assert result.candidate.owner_id == EMPLOYEE_B
    assert result.candidate.call_status == "Interested"

    inbox = _inbox(repo, clock, EMPLOYEE_A)
    assert len(inbox) == 1
    assert inbox[0].kind == NotificationKind.CANDIDATE_MARKED
    assert inbox[0].contact_id == CONTACT_ID
    assert inbox[0].acting_employee_id == EMPLOYEE_B
    assert inbox[0].expires_at == clock() + timedelta(days=30)


def test_register_duplicate_of_locked_candidate_is_rejected(hooks, repo, clock) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Lineup")

    with pytest.raises(LockedByOtherError):
        hooks.register_candidate(CONTACT, EMPLOYEE_B)

    assert _inbox(repo, clock, EMPLOYEE_A) == []


def test_mark_candidate_twice_is_already_owned(hooks) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)
    hooks.mark_candidate(CONTACT, EMPLOYEE_B)

    with pytest.raises(AlreadyOwnedError):
        hooks.mark_candidate(CONTACT, EMPLOYEE_B)


def test_check_duplicity_reports_owner_and_alerts_them(hooks, repo, clock) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Lineup")

    result = hooks.check_duplicity(CONTACT, EMPLOYEE_B)

    assert result.is_duplicate is True
    assert result.lock_status is not None
    assert result.lock_status.owner_id == EMPLOYEE_A
    assert result.lock_status.is_locked is True

    inbox = _inbox(repo, clock, EMPLOYEE_A)
    assert [n.kind for n in inbox] == [NotificationKind.DUPLICITY_CHECK]


def test_check_duplicity_by_owner_or_unknown_number_sends_nothing(
    hooks, repo, clock
) -> None:
    assert hooks.check_duplicity(CONTACT, EMPLOYEE_A).is_duplicate is False

    hooks.register_candidate(CONTACT, EMPLOYEE_A)
    assert hooks.check_duplicity(CONTACT, EMPLOYEE_A).is_duplicate is True

    assert _inbox(repo, clock, EMPLOYEE_A) == []


def test_lineup_created_for_unknown_contact_registers_and_locks(hooks, clock) -> None:
    result = hooks.on_lineup_created(CONTACT, EMPLOYEE_A, name="Asha")

    assert result.created is True
    assert result.candidate.call_status == "Lineup"
    assert result.candidate.lock_stage == PipelineStage.LINEUP
    assert result.candidate.lock_expiry == clock() + timedelta(days=30)


def test_lineup_created_by_other_while_locked_is_rejected(hooks) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)

    with pytest.raises(LockedByOtherError) as exc_info:
        hooks.on_lineup_created(CONTACT, EMPLOYEE_B)

    assert exc_info.value.locked_by == EMPLOYEE_A


def test_lineup_created_after_expiry_moves_ownership(hooks, repo, clock) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)
    clock.advance(days=31)

    result = hooks.on_lineup_created(CONTACT, EMPLOYEE_B)

    assert result.created is False
    assert result.previous_owner_id == EMPLOYEE_A
    assert result.candidate.owner_id == EMPLOYEE_B
    assert len(_inbox(repo, clock, EMPLOYEE_A)) == 1


def test_walkin_keeps_owner_and_does_not_lock(hooks) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)

    result = hooks.on_walkin_created(CONTACT, EMPLOYEE_B)

    assert result.created is False
    assert result.candidate.owner_id == EMPLOYEE_A
    assert result.candidate.is_locked is False
    assert result.candidate.call_status == "Walkin at Infidea"


def test_walkin_for_candidate_locked_by_other_is_rejected(hooks) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)

    with pytest.raises(LockedByOtherError):
        hooks.on_walkin_created(CONTACT, EMPLOYEE_B)


def test_lineup_selected_locks_for_ninety_days(hooks, clock) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)

    lease = hooks.on_lineup_status_changed(CONTACT, EMPLOYEE_A, "Selected")

    assert lease is not None
    assert lease.stage == PipelineStage.SELECTED
    assert lease.lock_expiry == clock() + timedelta(days=90)


def test_lineup_joined_credits_lineup_creator(hooks, repo, clock) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_B)

    lease = hooks.on_lineup_status_changed(
        CONTACT, EMPLOYEE_C, "Joined", lineup_creator_id=EMPLOYEE_A
    )

    assert lease is not None
    assert lease.candidate.owner_id == EMPLOYEE_A
    assert lease.candidate.call_status == "Joined"
    assert lease.stage == PipelineStage.JOINING_RECEIVED
    assert [(e.owner_id, e.status) for e in lease.candidate.registration_history] == [
        (EMPLOYEE_B, HistoryStatus.EXPIRED),
        (EMPLOYEE_A, HistoryStatus.ACTIVE),
    ]
    assert len(_inbox(repo, clock, EMPLOYEE_B)) == 1


def test_other_lineup_statuses_do_not_lease(hooks) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)

    assert hooks.on_lineup_status_changed(CONTACT, EMPLOYEE_A, "Rejected") is None


def test_joining_details_received_locks_for_lineup_creator(hooks, clock) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)

    lease = hooks.on_joining_status_changed(
        CONTACT,
        EMPLOYEE_B,
        "Joining Details Received",
        lineup_creator_id=EMPLOYEE_A,
    )

    assert lease is not None
    assert lease.candidate.owner_id == EMPLOYEE_A
    assert lease.refreshed is True
    assert lease.lock_expiry == clock() + timedelta(days=90)

    assert (
        hooks.on_joining_status_changed(CONTACT, EMPLOYEE_B, "Joining Pending") is None
    )


def test_call_status_change_to_lineup_acquires_lease(hooks, clock) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)

    lease = hooks.on_call_status_changed(CONTACT, EMPLOYEE_A, "lineup")

    assert lease is not None
    assert lease.candidate.call_status == "lineup"
    assert lease.lock_expiry == clock() + timedelta(days=30)


def test_call_status_change_to_lineup_locked_by_other_is_rejected(hooks, engine) -> None:
    hooks.on_lineup_created(CONTACT, EMPLOYEE_A)

    with pytest.raises(LockedByOtherError):
        hooks.on_call_status_changed(CONTACT, EMPLOYEE_B, "Lineup")

    assert engine.find_candidate(CONTACT).call_status == "Lineup"


def test_call_status_change_without_stage_only_records_status(hooks, engine) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)

    assert hooks.on_call_status_changed(CONTACT, EMPLOYEE_B, "Call Back") is None

    candidate = engine.find_candidate(CONTACT)
    assert candidate.call_status == "Call Back"
    assert candidate.owner_id == EMPLOYEE_A


def test_call_status_change_to_lineup_is_stored_with_the_lease(hooks, engine) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Interested")
    before = engine.find_candidate(CONTACT)

    hooks.on_call_status_changed(CONTACT, EMPLOYEE_A, "Lineup")

    after = engine.find_candidate(CONTACT)
    assert after.version == before.version + 1
    assert after.call_status == "Lineup"
    assert after.lock_stage == PipelineStage.LINEUP


def test_lost_lineup_lease_leaves_call_status_untouched(
    hooks, engine, repo, mocker
) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A, call_status="Interested")
    real_save = repo.save_candidate

    def _lose_lease_write(candidate, *, expected_version):
        if candidate.is_locked:
            raise StaleCandidateError(candidate.contact_id, expected_version)
        return real_save(candidate, expected_version=expected_version)

    mocker.patch.object(repo, "save_candidate", side_effect=_lose_lease_write)

    with pytest.raises(StaleCandidateError):
        hooks.on_call_status_changed(CONTACT, EMPLOYEE_B, "Lineup")
    with pytest.raises(StaleCandidateError):
        hooks.on_lineup_status_changed(
            CONTACT, EMPLOYEE_B, "Joined", lineup_creator_id=EMPLOYEE_C
        )

    stored = engine.find_candidate(CONTACT)
    assert stored.call_status == "Interested"
    assert stored.owner_id == EMPLOYEE_A
    assert stored.is_locked is False


def test_walkin_for_existing_candidate_is_one_write(hooks, engine) -> None:
    hooks.register_candidate(CONTACT, EMPLOYEE_A)
    before = engine.find_candidate(CONTACT)

    hooks.on_walkin_created(CONTACT, EMPLOYEE_B, name="Asha")

    after = engine.find_candidate(CONTACT)
    assert after.version == before.version + 1
    assert after.name == "Asha"
    assert after.call_status == "Walkin at Infidea"
