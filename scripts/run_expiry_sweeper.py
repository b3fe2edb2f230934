"""Periodic worker that clears expired candidate locks."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from lease_engine.adapters.repository_factory import create_repository
from lease_engine.config.logging_config import get_logger
from lease_engine.config.settings import get_settings
from lease_engine.domain.exceptions import RepositoryError
from lease_engine.observability.metrics import ensure_metrics_exporter
from lease_engine.workers import runtime
from lease_engine.workers.expiry_sweeper import ExpirySweeper

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the candidate lock expiry sweeper")
    parser.add_argument(
        "--interval-seconds",
        type=float,
        default=None,
        help="Interval between sweeps (defaults to sweeper.interval_seconds)",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single sweep and exit",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Start the Prometheus metrics exporter",
    )
    args = parser.parse_args(argv)
    if args.interval_seconds is not None and args.interval_seconds <= 0:
        parser.error("--interval-seconds must be greater than 0")
    return args


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    runtime.initialize_logging(settings, json_logs=args.json_logs)
    if args.metrics:
        ensure_metrics_exporter()

    controller = runtime.create_shutdown_controller()
    runtime.install_signal_handlers(controller)

    try:
        repository = create_repository(settings)
    except (RepositoryError, ValueError) as exc:
        logger.error("repository_unavailable", error=str(exc))
        return 1

    sweeper = ExpirySweeper(repository)
    interval = args.interval_seconds or settings.sweeper_interval_seconds

    try:
        runtime.run_scheduler_loop(
            controller=controller,
            interval_seconds=interval,
            run_once=args.run_once,
            action=sweeper.run_once,
        )
    except RepositoryError as exc:
        logger.error("lock_sweep_failed", error=str(exc))
        return 1
    finally:
        repository.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
