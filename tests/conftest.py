"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import os
from collections.abc import Generator
from datetime import datetime, timedelta
from pathlib import Path

import pytest
import pytz

from lease_engine.adapters.notification_publishers import RepositoryNotificationPublisher
from lease_engine.adapters.repository_factory import create_repository
from lease_engine.config.settings import Settings
from lease_engine.domain.protocols import CandidateRepositoryProtocol
from lease_engine.services.notification_dispatcher import NotificationDispatcher
from lease_engine.use_cases.lease_engine import LeaseEngine
from lease_engine.use_cases.pipeline_hooks import PipelineHooks


class FrozenClock:
    """Manually advanced clock injected wherever the code asks for "now"."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock(datetime(2026, 1, 5, 9, 0, tzinfo=pytz.UTC))


@pytest.fixture
def settings(
    tmp_path_factory: pytest.TempPathFactory, request: pytest.FixtureRequest
) -> Settings:
    """Create settings configured for the requested database backend."""

    base_settings = Settings(config_dir=Path(__file__).parent.parent / "config")

    backend = "sqlite"
    if hasattr(request.node, "callspec"):
        backend = request.node.callspec.params.get("repo", backend)

    if request.node.get_closest_marker("postgres"):
        backend = "postgres"

    if backend == "postgres":
        if os.environ.get("TEST_POSTGRES", "0") != "1":
            pytest.skip("PostgreSQL tests disabled (TEST_POSTGRES!=1)")
        if not os.environ.get("POSTGRES_PASSWORD"):
            pytest.skip("POSTGRES_PASSWORD not set for PostgreSQL tests")
        return base_settings.model_copy(update={"database_type": "postgres"})

    temp_dir = tmp_path_factory.mktemp("db")
    db_path = temp_dir / "test.sqlite"
    return base_settings.model_copy(
        update={
            "database_type": "sqlite",
            "db_path": str(db_path),
            "notifier_type": "repository",
            "notifications_async": False,
        }
    )


@pytest.fixture
def repo(settings: Settings) -> Generator[CandidateRepositoryProtocol, None, None]:
    """Provide a repository instance for the configured backend."""

    repository = create_repository(settings)

    if settings.database_type == "postgres":
        _truncate_postgres(repository)

    try:
        yield repository
    finally:
        repository.close()

        if settings.database_type == "sqlite":
            db_path = Path(settings.db_path)
            for suffix in ("", "-wal", "-shm"):
                candidate_path = Path(f"{db_path}{suffix}")
                if candidate_path.exists():
                    candidate_path.unlink()


def _truncate_postgres(repository: CandidateRepositoryProtocol) -> None:
    with repository._get_connection() as conn:  # type: ignore[attr-defined]
        with conn.cursor() as cur:
            cur.execute(
                "TRUNCATE registration_history, candidates, notifications CASCADE"
            )
        conn.commit()


@pytest.fixture
def engine(
    settings: Settings, repo: CandidateRepositoryProtocol, clock: FrozenClock
) -> LeaseEngine:
    return LeaseEngine.from_settings(settings, repo, clock=clock)


@pytest.fixture
def dispatcher(
    repo: CandidateRepositoryProtocol, clock: FrozenClock
) -> NotificationDispatcher:
    """Synchronous dispatcher storing notifications in the repository."""
    return NotificationDispatcher(RepositoryNotificationPublisher(repo), clock=clock)


@pytest.fixture
def hooks(engine: LeaseEngine, dispatcher: NotificationDispatcher) -> PipelineHooks:
    return PipelineHooks(engine, dispatcher)
