"""Connection pool handling of the PostgreSQL adapter, without a database."""

from __future__ import annotations

import pytest
from psycopg2 import OperationalError, extensions
from psycopg2.pool import PoolError

from lease_engine.adapters import postgres_repository
from lease_engine.adapters.postgres_repository import PostgresRepository
from lease_engine.domain.exceptions import RepositoryError


@pytest.fixture
def pool(mocker):
    pool_cls = mocker.patch.object(
        postgres_repository.psycopg2_pool, "ThreadedConnectionPool"
    )
    mocker.patch.object(postgres_repository, "sleep")
    return pool_cls.return_value


def _repository() -> PostgresRepository:
    return PostgresRepository("localhost", 5432, "leases", "lease", "secret")


def _connection(mocker):
    conn = mocker.MagicMock()
    conn.get_transaction_status.return_value = extensions.TRANSACTION_STATUS_IDLE
    return conn


def test_exhausted_pool_is_retried_with_backoff(pool, mocker) -> None:
    conn = _connection(mocker)
    pool.getconn.side_effect = [PoolError("exhausted"), PoolError("exhausted"), conn]
    repository = _repository()

    with repository._get_connection() as borrowed:
        assert borrowed is conn

    assert pool.getconn.call_count == 3
    postgres_repository.sleep.assert_has_calls([mocker.call(0.1), mocker.call(0.2)])
    pool.putconn.assert_called_once_with(conn, close=False)


def test_pool_exhaustion_gives_up_after_max_attempts(pool) -> None:
    pool.getconn.side_effect = PoolError("exhausted")
    repository = _repository()

    with pytest.raises(RepositoryError, match="acquire"):
        with repository._get_connection():
            pass

    assert pool.getconn.call_count == postgres_repository.POOL_ACQUIRE_ATTEMPTS


def test_driver_error_closes_the_connection(pool, mocker) -> None:
    conn = _connection(mocker)
    pool.getconn.return_value = conn
    repository = _repository()

    with pytest.raises(RepositoryError, match="server closed"):
        with repository._get_connection():
            raise OperationalError("server closed the connection")

    pool.putconn.assert_called_once_with(conn, close=True)


def test_open_transaction_is_rolled_back_on_return(pool, mocker) -> None:
    conn = _connection(mocker)
    conn.get_transaction_status.return_value = extensions.TRANSACTION_STATUS_INTRANS
    pool.getconn.return_value = conn
    repository = _repository()

    with repository._get_connection():
        pass

    conn.rollback.assert_called_once_with()
    pool.putconn.assert_called_once_with(conn, close=False)


def test_invalid_pool_bounds_are_rejected(pool, mocker) -> None:
    settings = mocker.MagicMock(postgres_min_connections=5, postgres_max_connections=2)

    with pytest.raises(RepositoryError, match="postgres_max_connections"):
        PostgresRepository("localhost", 5432, "leases", "lease", "secret", settings)
