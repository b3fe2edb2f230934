"""Prometheus metrics for lease decisions, sweeps and notifications.

Metrics are registered at import time; the HTTP exporter is only started by
entry-point scripts through ``ensure_metrics_exporter``.
"""

from __future__ import annotations

import os
import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from lease_engine.config.logging_config import get_logger

logger = get_logger(__name__)

LEASE_OPERATIONS_TOTAL: Final[Counter] = Counter(
    "lease_engine_operations_total",
    "Lease engine operations by outcome",
    labelnames=("operation", "outcome"),
)

LEASE_OPERATION_DURATION_SECONDS: Final[Histogram] = Histogram(
    "lease_engine_operation_duration_seconds",
    "Duration of lease engine operations in seconds",
    labelnames=("operation",),
)

LOCKS_RELEASED_TOTAL: Final[Counter] = Counter(
    "lease_engine_locks_released_total",
    "Expired locks cleared by the sweeper",
)

SWEEP_DURATION_SECONDS: Final[Histogram] = Histogram(
    "lease_engine_sweep_duration_seconds",
    "Duration of expiry sweeps in seconds",
)

NOTIFICATIONS_TOTAL: Final[Counter] = Counter(
    "lease_engine_notifications_total",
    "Previous-owner notifications by outcome",
    labelnames=("kind", "outcome"),
)

JOBS_SUBMITTED_TOTAL: Final[Counter] = Counter(
    "lease_engine_background_jobs_submitted_total",
    "Total number of background jobs submitted",
    labelnames=("job",),
)

JOB_DURATION_SECONDS: Final[Histogram] = Histogram(
    "lease_engine_background_job_duration_seconds",
    "Duration of background jobs in seconds",
    labelnames=("job",),
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_DEFAULT_METRICS_PORT: Final[int] = 9000
_METRICS_PORT_ENV: Final[str] = "METRICS_PORT"


def _resolve_metrics_port() -> int:
    port_raw = os.getenv(_METRICS_PORT_ENV)
    try:
        return int(port_raw) if port_raw else _DEFAULT_METRICS_PORT
    except ValueError:
        logger.warning("invalid_metrics_port", port=port_raw)
        return _DEFAULT_METRICS_PORT


def ensure_metrics_exporter() -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        port = _resolve_metrics_port()

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "JOBS_SUBMITTED_TOTAL",
    "JOB_DURATION_SECONDS",
    "LEASE_OPERATIONS_TOTAL",
    "LEASE_OPERATION_DURATION_SECONDS",
    "LOCKS_RELEASED_TOTAL",
    "NOTIFICATIONS_TOTAL",
    "SWEEP_DURATION_SECONDS",
    "ensure_metrics_exporter",
]
