"""In-process background runner executing side effects on worker threads."""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Final
from uuid import uuid4

from lease_engine.config.logging_config import get_logger
from lease_engine.observability.metrics import JOB_DURATION_SECONDS, JOBS_SUBMITTED_TOTAL
from lease_engine.ports.background_runner import BackgroundHandler, BackgroundRunnerPort

logger = get_logger(__name__)

_STATUS_QUEUED: Final[str] = "queued"
_STATUS_RUNNING: Final[str] = "running"
_STATUS_SUCCEEDED: Final[str] = "succeeded"
_STATUS_FAILED: Final[str] = "failed"
_DEFAULT_MAX_FINISHED_JOBS: Final[int] = 1000


@dataclass
class JobRecord:
    """Internal representation of a submitted job."""

    name: str
    params: dict[str, object]
    status: str = field(default=_STATUS_QUEUED)
    submitted_at: float = field(default_factory=time.time)
    started_at: float | None = field(default=None)
    finished_at: float | None = field(default=None)
    result: dict[str, object] | None = field(default=None)
    error: str | None = field(default=None)


class InProcessBackgroundRunner(BackgroundRunnerPort):
    """Runs each submitted job on its own daemon thread.

    Job failures are recorded on the job and logged; they never reach the
    submitter. Only the most recent ``max_finished_jobs`` finished records are
    kept for ``status``; older ones are evicted as new jobs complete.
    """

    def __init__(
        self,
        handlers: dict[str, BackgroundHandler] | None = None,
        *,
        max_finished_jobs: int = _DEFAULT_MAX_FINISHED_JOBS,
    ):
        if max_finished_jobs < 0:
            raise ValueError("max_finished_jobs must be >= 0")
        self._handlers: dict[str, BackgroundHandler] = dict(handlers or {})
        self._jobs: dict[str, JobRecord] = {}
        self._threads: dict[str, threading.Thread] = {}
        self._finished: OrderedDict[str, None] = OrderedDict()
        self._max_finished_jobs = max_finished_jobs
        self._lock = threading.RLock()

    def register(self, name: str, handler: BackgroundHandler) -> None:
        with self._lock:
            self._handlers[name] = handler

    def submit(self, name: str, params: dict[str, object]) -> str:
        with self._lock:
            handler = self._handlers.get(name)
        if handler is None:
            raise KeyError(f"Unknown job name: {name}")

        job_id = str(uuid4())
        record = JobRecord(name=name, params=dict(params))
        thread = threading.Thread(
            target=self._execute_job,
            args=(job_id, handler),
            name=f"background-{name}",
            daemon=True,
        )
        with self._lock:
            self._jobs[job_id] = record
            self._threads[job_id] = thread

        logger.debug("background_job_submitted", job_id=job_id, job_name=name)
        JOBS_SUBMITTED_TOTAL.labels(job=name).inc()

        thread.start()
        return job_id

    def status(self, job_id: str) -> dict[str, object]:
        with self._lock:
            record = self._jobs.get(job_id)
            if record is None:
                raise KeyError(f"Unknown job_id: {job_id}")
            return {
                "job_id": job_id,
                "name": record.name,
                "status": record.status,
                "submitted_at": record.submitted_at,
                "started_at": record.started_at,
                "finished_at": record.finished_at,
                "result": record.result,
                "error": record.error,
            }

    def drain(self, timeout: float | None = None) -> bool:
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._lock:
            threads = list(self._threads.values())

        for thread in threads:
            remaining = None if deadline is None else max(deadline - time.monotonic(), 0.0)
            thread.join(remaining)

        with self._lock:
            pending = [job_id for job_id, t in self._threads.items() if t.is_alive()]
        if pending:
            logger.warning("background_drain_incomplete", pending=len(pending))
            return False
        return True

    # Internal helpers -------------------------------------------------

    def _execute_job(self, job_id: str, handler: BackgroundHandler) -> None:
        with self._lock:
            record = self._jobs[job_id]
            record.status = _STATUS_RUNNING
            record.started_at = time.time()
            params = dict(record.params)
            name = record.name

        start_time = time.perf_counter()
        try:
            result = handler(params)
        except Exception as exc:  # noqa: BLE001
            duration = time.perf_counter() - start_time
            JOB_DURATION_SECONDS.labels(job=name).observe(duration)
            logger.exception("background_job_failed", job_id=job_id, job_name=name)
            with self._lock:
                record.status = _STATUS_FAILED
                record.finished_at = time.time()
                record.error = str(exc)
        else:
            duration = time.perf_counter() - start_time
            JOB_DURATION_SECONDS.labels(job=name).observe(duration)
            logger.debug(
                "background_job_completed",
                job_id=job_id,
                job_name=name,
                duration_seconds=duration,
            )
            with self._lock:
                record.status = _STATUS_SUCCEEDED
                record.finished_at = time.time()
                record.result = result
        finally:
            with self._lock:
                self._threads.pop(job_id, None)
                self._finished[job_id] = None
                while len(self._finished) > self._max_finished_jobs:
                    evicted, _ = self._finished.popitem(last=False)
                    self._jobs.pop(evicted, None)


__all__ = ["InProcessBackgroundRunner", "JobRecord"]
