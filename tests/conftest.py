import sqlite3
from unittest.mock import AsyncMock, MagicMock

import pytest

from sluice import Database, DatabaseConfig, Sluice
from sluice.exception import Failure
from sluice.transaction import Transaction, TransactionManager

from .app.model import CITIES_DDL, make_cities


@pytest.fixture(autouse=True)
def reset_global_interceptors():
    yield
    Transaction.global_interceptors.clear()


@pytest.fixture
def sluice():
    return Sluice()


@pytest.fixture
def cities():
    return make_cities()


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "test.db")
    with sqlite3.connect(path) as conn:
        conn.execute(CITIES_DDL)
    return path


@pytest.fixture
def connect_sqlite(sluice, db_path):
    async def connect(**config):
        return await sluice.connect(
            db_path=db_path, config=DatabaseConfig(**config)
        )

    return connect


@pytest.fixture
def read_names(db_path):
    def read():
        with sqlite3.connect(db_path) as conn:
            rows = conn.execute("SELECT name FROM cities ORDER BY id")
            return [name for (name,) in rows]

    return read


def mock_connection(**flags):
    """A ConnectionHandle double with the given capability flags"""
    connection = MagicMock()
    connection.supports_per_row_generated_keys = True
    connection.supports_only_identifiers_in_generated_keys = False
    connection.supports_ternary_affected_row_values = False
    connection.supports_multiple_result_sets = True
    for key, value in flags.items():
        setattr(connection, key, value)
    connection.is_closed = False
    connection.prepare = AsyncMock()
    connection.commit = AsyncMock()
    connection.rollback = AsyncMock()
    connection.set_savepoint = AsyncMock()
    connection.release_savepoint = AsyncMock()
    connection.close = AsyncMock()
    return connection


def mock_interface(connection, dialect="postgres"):
    interface = MagicMock()
    interface.dialect = dialect
    interface.dsn = f"{dialect}://mock"
    interface.DATABASE_ERRORS = (sqlite3.Error,)
    interface.classify = MagicMock(return_value=Failure.RECOVERABLE)
    interface.acquire = AsyncMock(return_value=connection)
    interface.open = AsyncMock()
    interface.close = AsyncMock()
    return interface


@pytest.fixture
def make_mock_transaction():
    def make(connection, dialect="postgres", **config):
        interface = mock_interface(connection, dialect)
        db = Database(interface, DatabaseConfig(**config))
        manager = TransactionManager(db)
        return Transaction(manager, None, False)

    return make
