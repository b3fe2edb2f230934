from __future__ import annotations

import threading
import time

import pytest

from lease_engine.adapters.background_runner_inprocess import InProcessBackgroundRunner


def test_inprocess_runner_executes_and_tracks_status() -> None:
    runner = InProcessBackgroundRunner({"double": _double_handler})
    job_id = runner.submit("double", {"value": 21})

    assert runner.drain(timeout=5.0) is True

    status = runner.status(job_id)
    assert status["status"] == "succeeded"
    assert status["result"] == {"value": 42}
    assert status["finished_at"] is not None


def test_submit_returns_before_handler_finishes() -> None:
    release = threading.Event()

    def _blocking(params: dict[str, object]) -> dict[str, object]:
        release.wait(timeout=5.0)
        return {}

    runner = InProcessBackgroundRunner()
    runner.register("block", _blocking)

    job_id = runner.submit("block", {})
    assert runner.status(job_id)["status"] in {"queued", "running"}

    release.set()
    assert runner.drain(timeout=5.0) is True
    assert runner.status(job_id)["status"] == "succeeded"


def test_failed_job_is_recorded_not_raised() -> None:
    def _boom(params: dict[str, object]) -> dict[str, object]:
        raise RuntimeError("slack unavailable")

    runner = InProcessBackgroundRunner({"boom": _boom})
    job_id = runner.submit("boom", {})
    runner.drain(timeout=5.0)

    status = runner.status(job_id)
    assert status["status"] == "failed"
    assert status["error"] == "slack unavailable"


def test_unknown_job_name_and_id_raise_key_error() -> None:
    runner = InProcessBackgroundRunner()

    with pytest.raises(KeyError):
        runner.submit("missing", {})
    with pytest.raises(KeyError):
        runner.status("no-such-job")


def test_finished_job_records_are_bounded() -> None:
    runner = InProcessBackgroundRunner({"double": _double_handler}, max_finished_jobs=5)
    job_ids = [runner.submit("double", {"value": i}) for i in range(50)]

    assert runner.drain(timeout=10.0) is True

    retained = [job_id for job_id in job_ids if job_id in runner._jobs]
    assert len(retained) == 5
    assert len(runner._jobs) == 5
    for job_id in retained:
        assert runner.status(job_id)["status"] == "succeeded"


def test_running_jobs_are_never_evicted() -> None:
    release = threading.Event()

    def _blocking(params: dict[str, object]) -> dict[str, object]:
        release.wait(timeout=5.0)
        return {}

    runner = InProcessBackgroundRunner(
        {"block": _blocking, "double": _double_handler}, max_finished_jobs=1
    )
    blocked = runner.submit("block", {})
    for value in range(3):
        runner.submit("double", {"value": value})

    for _ in range(50):
        if len(runner._finished) >= 1 and len(runner._threads) == 1:
            break
        time.sleep(0.05)

    assert runner.status(blocked)["status"] in {"queued", "running"}

    release.set()
    assert runner.drain(timeout=5.0) is True
    assert len(runner._jobs) == 1


def _double_handler(params: dict[str, object]) -> dict[str, object]:
    value = int(params["value"])  # type: ignore[arg-type]
    return {"value": value * 2}
