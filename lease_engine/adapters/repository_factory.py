"""Factory for creating candidate repository instances."""

from typing import cast

from lease_engine.adapters.postgres_repository import PostgresRepository
from lease_engine.adapters.sqlite_repository import SQLiteRepository
from lease_engine.config.logging_config import get_logger
from lease_engine.config.settings import Settings
from lease_engine.domain.protocols import CandidateRepositoryProtocol

logger = get_logger(__name__)


def create_repository(settings: Settings) -> CandidateRepositoryProtocol:
    """Create appropriate repository based on settings.

    Args:
        settings: Application settings

    Returns:
        Repository instance (SQLite or PostgreSQL)

    Raises:
        ValueError: If database_type is not supported or credentials are missing
        RepositoryError: On connection errors
    """
    if settings.database_type == "sqlite":
        logger.info("repository_sqlite_selected", path=settings.db_path)
        return cast(
            CandidateRepositoryProtocol,
            SQLiteRepository(
                db_path=settings.db_path,
                busy_timeout_seconds=settings.sqlite_busy_timeout_seconds,
            ),
        )

    elif settings.database_type == "postgres":
        if not settings.postgres_password:
            raise ValueError(
                "POSTGRES_PASSWORD environment variable must be set when using PostgreSQL"
            )

        logger.info(
            "repository_postgres_selected",
            host=settings.postgres_host,
            port=settings.postgres_port,
            database=settings.postgres_database,
            user=settings.postgres_user,
        )
        return cast(
            CandidateRepositoryProtocol,
            PostgresRepository(
                host=settings.postgres_host,
                port=settings.postgres_port,
                database=settings.postgres_database,
                user=settings.postgres_user,
                password=settings.postgres_password.get_secret_value(),
                settings=settings,
            ),
        )

    else:
        raise ValueError(
            f"Unsupported database type: {settings.database_type}. "
            f"Must be 'sqlite' or 'postgres'"
        )
