#!/usr/bin/env python3
"""Administrative CLI for the candidate lease engine.

Examples:
    python scripts/lease_admin.py check-lock 9000000001
    python scripts/lease_admin.py create 9000000001 emp-a --call-status Lineup
    python scripts/lease_admin.py mark 9000000001 emp-b
    python scripts/lease_admin.py acquire 9000000001 emp-a selected
    python scripts/lease_admin.py sweep
    python scripts/lease_admin.py portfolio emp-a
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Any

sys.path.insert(0, str(Path(__file__).parent.parent))

from pydantic import BaseModel

from lease_engine.adapters.repository_factory import create_repository
from lease_engine.config.logging_config import get_logger, setup_logging
from lease_engine.config.settings import get_settings
from lease_engine.domain.exceptions import CandidateDomainError, LeaseEngineError
from lease_engine.domain.models import PipelineStage
from lease_engine.services.notifier_factory import create_notification_dispatcher
from lease_engine.use_cases.candidate_portfolio import (
    list_candidates_for_employee,
    list_notifications_for_employee,
)
from lease_engine.use_cases.lease_engine import LeaseEngine
from lease_engine.use_cases.pipeline_hooks import PipelineHooks
from lease_engine.workers.expiry_sweeper import ExpirySweeper

logger = get_logger(__name__)

NOTIFICATION_DRAIN_TIMEOUT_SECONDS = 10.0


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Candidate lease administration")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON logs")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check-lock", help="Show lock state for a contact")
    check.add_argument("contact_id")

    create = sub.add_parser("create", help="Register a candidate (claims on duplicate)")
    create.add_argument("contact_id")
    create.add_argument("employee_id")
    create.add_argument("--name")
    create.add_argument("--call-status")

    mark = sub.add_parser("mark", help="Transfer ownership to an employee")
    mark.add_argument("contact_id")
    mark.add_argument("employee_id")

    acquire = sub.add_parser("acquire", help="Acquire a stage lease")
    acquire.add_argument("contact_id")
    acquire.add_argument("employee_id")
    acquire.add_argument("stage", choices=[stage.value for stage in PipelineStage])
    acquire.add_argument("--lineup-creator")

    sub.add_parser("sweep", help="Clear expired lock flags once")

    portfolio = sub.add_parser("portfolio", help="List an employee's candidates")
    portfolio.add_argument("employee_id")
    portfolio.add_argument("--limit", type=int)

    inbox = sub.add_parser("notifications", help="List an employee's notifications")
    inbox.add_argument("employee_id")
    inbox.add_argument("--all", action="store_true", help="Include read notifications")

    return parser.parse_args(argv)


def _emit(payload: Any) -> None:
    if isinstance(payload, BaseModel):
        print(payload.model_dump_json(indent=2))
    elif isinstance(payload, list):
        print(
            json.dumps(
                [item.model_dump(mode="json") for item in payload],
                indent=2,
            )
        )
    else:
        print(json.dumps(payload, indent=2, default=str))


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_logs=args.json_logs)

    repository = create_repository(settings)
    engine = LeaseEngine.from_settings(settings, repository)
    dispatcher = create_notification_dispatcher(settings, repository)
    hooks = PipelineHooks(engine, dispatcher)

    try:
        if args.command == "check-lock":
            _emit(engine.check_lock(args.contact_id))
        elif args.command == "create":
            _emit(
                hooks.register_candidate(
                    args.contact_id,
                    args.employee_id,
                    name=args.name,
                    call_status=args.call_status,
                )
            )
        elif args.command == "mark":
            _emit(hooks.mark_candidate(args.contact_id, args.employee_id))
        elif args.command == "acquire":
            _emit(
                engine.acquire_lease(
                    args.contact_id,
                    args.employee_id,
                    args.stage,
                    lineup_creator_id=args.lineup_creator,
                )
            )
        elif args.command == "sweep":
            _emit(ExpirySweeper(repository).run_once())
        elif args.command == "portfolio":
            _emit(
                list_candidates_for_employee(
                    repository, args.employee_id, limit=args.limit
                )
            )
        elif args.command == "notifications":
            _emit(
                list_notifications_for_employee(
                    repository, args.employee_id, include_read=args.all
                )
            )
    except CandidateDomainError as exc:
        _emit(
            {
                "error": type(exc).__name__,
                "status": exc.http_status,
                "detail": str(exc),
            }
        )
        return 2
    except LeaseEngineError as exc:
        logger.error("lease_admin_failed", command=args.command, error=str(exc))
        return 1
    finally:
        dispatcher.drain(NOTIFICATION_DRAIN_TIMEOUT_SECONDS)
        repository.close()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
