from unittest.mock import AsyncMock, MagicMock

import pytest

from sluice import GeneratedKeysMismatch, StatementBuilderError
from sluice.base.connection import ResultCursor
from sluice.sql import (
    INTEGER,
    TEXT,
    BatchInsertStatement,
    Column,
    InsertStatement,
    Table,
)

from .app.model import make_users
from .conftest import mock_connection


def prepared_statement(batch=None, update=None, keys=None):
    prepared = MagicMock()
    prepared.closed = False
    prepared.close = AsyncMock()
    prepared.execute_batch = AsyncMock(return_value=batch)
    prepared.execute_update = AsyncMock(return_value=update)
    prepared.generated_keys = MagicMock(return_value=keys)
    return prepared


def batch_of(table, *names, statement_class=InsertStatement, **kwargs):
    insert = statement_class(table, **kwargs)
    for name in names:
        insert["name"] = name
        insert.add_batch()
    return insert


async def test_batch_keys_align_with_rows(cities, make_mock_transaction):
    """
    TEST: A batch of three rows with one generated key per row gives three
    results in input order, each with its own key.
    """
    connection = mock_connection()
    keys = ResultCursor(
        ["id", "name", "country"],
        [(1, "a", None), (2, "b", None), (3, "c", None)],
    )
    prepared = prepared_statement(batch=[1, 1, 1], keys=keys)
    connection.prepare.return_value = prepared
    transaction = make_mock_transaction(connection)

    insert = batch_of(cities, "a", "b", "c")
    assert await transaction.exec(insert) == 3

    connection.prepare.assert_awaited_once_with(
        "INSERT INTO cities (name) VALUES (?)", returning=True
    )
    assert prepared.add_batch.call_count == 3
    assert insert.inserted_count == 3
    assert insert.resulted_values == [
        {"id": 1, "name": "a", "country": None},
        {"id": 2, "name": "b", "country": None},
        {"id": 3, "name": "c", "country": None},
    ]
    assert keys.closed
    assert transaction.open_result_sets == 0


async def test_last_key_only_backfill(cities, make_mock_transaction):
    """
    TEST: When the backend only reports the key of the last row, earlier
    keys are derived by counting down. This is best effort and assumes a
    contiguous block of keys.
    """
    connection = mock_connection(
        supports_per_row_generated_keys=False,
        supports_only_identifiers_in_generated_keys=True,
    )
    keys = ResultCursor(["id"], [(12,)])
    connection.prepare.return_value = prepared_statement(batch=[3], keys=keys)
    transaction = make_mock_transaction(connection, dialect="sqlite")

    insert = batch_of(cities, "a", "b", "c")
    await transaction.exec(insert)

    connection.prepare.assert_awaited_once_with(
        "INSERT INTO cities (name) VALUES (?)", returning=["id"]
    )
    assert [row["id"] for row in insert.resulted_values] == [10, 11, 12]
    assert [row["name"] for row in insert.resulted_values] == ["a", "b", "c"]


async def test_key_count_mismatch_is_an_error(cities, make_mock_transaction):
    connection = mock_connection(
        supports_only_identifiers_in_generated_keys=True
    )
    keys = ResultCursor(["id"], [(1,), (2,)])
    connection.prepare.return_value = prepared_statement(batch=[3], keys=keys)
    transaction = make_mock_transaction(connection)

    with pytest.raises(GeneratedKeysMismatch):
        await transaction.exec(batch_of(cities, "a", "b", "c"))
    assert keys.closed


async def test_key_count_mismatch_tolerated_for_ignore(
    cities, make_mock_transaction
):
    connection = mock_connection(
        supports_only_identifiers_in_generated_keys=True
    )
    keys = ResultCursor(["id"], [(1,), (2,)])
    connection.prepare.return_value = prepared_statement(batch=[3], keys=keys)
    transaction = make_mock_transaction(connection)

    insert = batch_of(cities, "a", "b", "c", ignore=True)
    await transaction.exec(insert)

    assert [row.get("id") for row in insert.resulted_values] == [1, 2, None]


async def test_key_count_mismatch_tolerated_for_ternary_backends(
    cities, make_mock_transaction
):
    connection = mock_connection(
        supports_only_identifiers_in_generated_keys=True,
        supports_ternary_affected_row_values=True,
    )
    keys = ResultCursor(["id"], [(1,)])
    connection.prepare.return_value = prepared_statement(
        batch=[1, 2], keys=keys
    )
    transaction = make_mock_transaction(connection, dialect="mysql")

    insert = batch_of(cities, "a", "b")
    await transaction.exec(insert)
    assert insert.inserted_count == 3


async def test_merges_defaults_arguments_and_returned_values(
    make_mock_transaction,
):
    users = make_users()
    connection = mock_connection()
    keys = ResultCursor(
        ["id", "name", "role", "created"],
        [(7, "ann", "member", "2024-01-01")],
    )
    prepared = prepared_statement(update=1, keys=keys)
    connection.prepare.return_value = prepared
    transaction = make_mock_transaction(connection)

    insert = InsertStatement(users)
    insert["name"] = "ann"
    await transaction.exec(insert)

    connection.prepare.assert_awaited_once_with(
        "INSERT INTO users (name, role) VALUES (?, ?)", returning=True
    )
    prepared.execute_update.assert_awaited_once()
    prepared.execute_batch.assert_not_awaited()
    assert insert.resulted_values == [
        {"id": 7, "name": "ann", "role": "member", "created": "2024-01-01"}
    ]
    assert insert["id"] == 7


async def test_always_batch_uses_batch_path(cities, make_mock_transaction):
    connection = mock_connection()
    keys = ResultCursor(["id", "name", "country"], [(5, "a", None)])
    prepared = prepared_statement(batch=[1], keys=keys)
    connection.prepare.return_value = prepared
    transaction = make_mock_transaction(connection)

    insert = batch_of(cities, "a", statement_class=BatchInsertStatement)
    await transaction.exec(insert)

    prepared.execute_batch.assert_awaited_once()
    prepared.execute_update.assert_not_awaited()
    prepared.add_batch.assert_called_once()


async def test_no_generated_columns_skips_keys(make_mock_transaction):
    from sluice.sql import TEXT, Column, Table

    tags = Table("tags", Column("name", TEXT))
    connection = mock_connection(
        supports_only_identifiers_in_generated_keys=True
    )
    prepared = prepared_statement(update=1)
    connection.prepare.return_value = prepared
    transaction = make_mock_transaction(connection, dialect="sqlite")

    insert = InsertStatement(tags)
    insert["name"] = "x"
    await transaction.exec(insert)

    connection.prepare.assert_awaited_once_with(
        "INSERT INTO tags (name) VALUES (?)", returning=False
    )
    prepared.generated_keys.assert_not_called()
    assert insert.resulted_values == [{"name": "x"}]


@pytest.mark.parametrize(
    "dialect,expected",
    (
        ("sqlite", "INSERT OR IGNORE INTO cities (name) VALUES (?)"),
        ("mysql", "INSERT IGNORE INTO cities (name) VALUES (?)"),
        (
            "postgres",
            "INSERT INTO cities (name) VALUES (?) ON CONFLICT DO NOTHING",
        ),
    ),
)
def test_ignore_sql(cities, make_mock_transaction, dialect, expected):
    transaction = make_mock_transaction(mock_connection(), dialect=dialect)
    insert = InsertStatement(cities, ignore=True)
    insert["name"] = "a"
    assert insert.prepare_sql(transaction) == expected


def test_setting_a_column_twice_fails(cities):
    insert = InsertStatement(cities)
    insert["name"] = "a"
    with pytest.raises(StatementBuilderError):
        insert[cities["name"]] = "b"


def test_uneven_batch_rows_fail(cities):
    insert = InsertStatement(cities)
    insert["name"] = "a"
    insert["id"] = 1
    insert.add_batch()
    insert["name"] = "b"
    with pytest.raises(StatementBuilderError):
        insert.arguments()


async def test_sqlite_batch_insert_returns_keys(
    connect_sqlite, sluice, cities, read_names
):
    await connect_sqlite()

    async def work(transaction):
        insert = batch_of(cities, "a", "b", "c")
        await transaction.exec(insert)
        single = InsertStatement(cities)
        single["name"] = "d"
        single["country"] = "NL"
        await single.execute(transaction)
        return insert, single

    insert, single = await sluice.transaction(work)

    assert insert.inserted_count == 3
    assert [row["id"] for row in insert.resulted_values] == [1, 2, 3]
    assert single.resulted_values == [{"id": 4, "name": "d", "country": "NL"}]
    assert read_names() == ["a", "b", "c", "d"]


async def test_insert_with_client_defaults_only(connect_sqlite, sluice):
    """
    TEST: An insert with nothing set still inserts one row, filled from the
    client side defaults, and reports its generated key.
    """
    await connect_sqlite()
    labels = Table(
        "labels",
        Column("id", INTEGER, auto_increment=True),
        Column("name", TEXT, default=lambda: "unnamed"),
    )

    async def work(transaction):
        await transaction.exec_sql(
            "CREATE TABLE labels ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL)"
        )
        insert = InsertStatement(labels)
        await transaction.exec(insert)
        return insert

    insert = await sluice.transaction(work)

    assert insert.inserted_count == 1
    assert insert.resulted_values == [{"id": 1, "name": "unnamed"}]
    assert insert["id"] == 1


async def test_insert_default_values_row(connect_sqlite, sluice):
    await connect_sqlite()
    events = Table(
        "events",
        Column("id", INTEGER, auto_increment=True),
        Column("created", TEXT, database_default=True),
        Column("note", TEXT, nullable=True),
    )

    async def work(transaction):
        await transaction.exec_sql(
            "CREATE TABLE events ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, "
            "created TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP, "
            "note TEXT)"
        )
        insert = InsertStatement(events)
        assert insert.prepare_sql(transaction) == (
            "INSERT INTO events DEFAULT VALUES"
        )
        await transaction.exec(insert)
        return insert

    insert = await sluice.transaction(work)

    assert insert.inserted_count == 1
    assert insert.resulted_values == [{"id": 1, "note": None}]


async def test_batch_of_default_rows(connect_sqlite, sluice):
    """
    TEST: Rows finished with add_batch without any value set are kept in
    the batch and filled from the defaults.
    """
    await connect_sqlite()
    labels = Table(
        "labels",
        Column("id", INTEGER, auto_increment=True),
        Column("name", TEXT, default=lambda: "unnamed"),
    )

    async def work(transaction):
        await transaction.exec_sql(
            "CREATE TABLE labels ("
            "id INTEGER PRIMARY KEY AUTOINCREMENT, name TEXT NOT NULL)"
        )
        insert = InsertStatement(labels)
        insert.add_batch()
        insert.add_batch()
        await transaction.exec(insert)
        return insert

    insert = await sluice.transaction(work)

    assert insert.inserted_count == 2
    assert insert.resulted_values == [
        {"id": 1, "name": "unnamed"},
        {"id": 2, "name": "unnamed"},
    ]
