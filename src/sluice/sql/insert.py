from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

from sluice.exception import GeneratedKeysMismatch, StatementBuilderError
from sluice.sql.column import Column, Table
from sluice.sql.statement import Argument, Statement, StatementType

if TYPE_CHECKING:
    from sluice.base.connection import (
        ConnectionHandle,
        PreparedStatement,
        ResultCursor,
    )
    from sluice.transaction.transaction import Transaction

logger = logging.getLogger(__name__)

ColumnRef = Union[Column, str]
Row = Dict[Column, Any]


class InsertStatement(Statement):
    """Insert one row, or several when rows are queued with ``add_batch``.

    After execution ``inserted_count`` holds the affected row count and
    ``resulted_values`` one dict per input row: client defaults and
    nullable columns, then the caller's values, then whatever the database
    generated, with later sources winning.

    Backends that only report the last generated key of a batch get the
    missing keys filled in by counting down from it. That assumes the
    database handed out one contiguous block of keys for the batch, which
    is usual but not guaranteed (concurrent writers, custom increments).
    Treat keys recovered this way as best effort.
    """

    def __init__(self, table: Table, ignore: bool = False) -> None:
        super().__init__(StatementType.INSERT, [table])
        self.table = table
        self.is_ignore = ignore
        self.inserted_count: Optional[int] = None
        self.resulted_values: List[Dict[str, Any]] = []
        self._values: Row = {}
        self._rows: List[Row] = []
        self._prepared_rows: Optional[List[Row]] = None

    def _column(self, column: ColumnRef) -> Column:
        if isinstance(column, str):
            return self.table[column]
        if column.table is not self.table:
            raise StatementBuilderError(
                f"{column.name} does not belong to {self.table.name}"
            )
        return column

    def __setitem__(self, column: ColumnRef, value: Any) -> None:
        column = self._column(column)
        if column in self._values:
            raise StatementBuilderError(
                f"{column.name} is already initialized"
            )
        self._values[column] = value
        self._prepared_rows = None

    def __getitem__(self, column: ColumnRef) -> Any:
        """Value of a column in the first inserted row"""
        column = self._column(column)
        if not self.resulted_values:
            raise StatementBuilderError(
                f"{self.table.name} insert has not been executed"
            )
        return self.resulted_values[0][column.name]

    def add_batch(self) -> None:
        """Finish the current row and start a new one. A row with nothing
        set is inserted with defaults only."""
        self._rows.append(self._values)
        self._values = {}
        self._prepared_rows = None

    @property
    def rows(self) -> List[Row]:
        """Queued rows with client side defaults filled in"""
        if self._prepared_rows is None:
            pending = self._rows + ([self._values] if self._values else [])
            if not pending:
                pending = [{}]
            self._prepared_rows = self._with_defaults(pending)
        return self._prepared_rows

    def _with_defaults(self, rows: List[Row]) -> List[Row]:
        provided = {column for row in rows for column in row}
        columns = [
            column
            for column in self.table.columns
            if column in provided or column.default is not None
        ]
        prepared = []
        for row in rows:
            values: Row = {}
            for column in columns:
                if column in row:
                    values[column] = row[column]
                elif column.default is not None:
                    values[column] = column.default()
                elif column.nullable:
                    values[column] = None
                else:
                    raise StatementBuilderError(
                        f"{column.name} is set in some rows of the "
                        f"{self.table.name} batch but not in others"
                    )
            prepared.append(values)
        return prepared

    @property
    def insert_columns(self) -> List[Column]:
        rows = self.rows
        return list(rows[0]) if rows else []

    @property
    def auto_increment_columns(self) -> List[Column]:
        return self.table.auto_increment_columns

    def columns_with_database_defaults(self) -> List[Column]:
        columns = self.insert_columns
        return [
            column
            for column in self.table.columns
            if column.database_default and column not in columns
        ]

    def columns_generated_on_db(self) -> List[Column]:
        generated = list(self.auto_increment_columns)
        for column in self.columns_with_database_defaults():
            if column not in generated:
                generated.append(column)
        return generated

    def arguments(self) -> List[List[Argument]]:
        return [
            [(column.column_type, value) for column, value in row.items()]
            for row in self.rows
        ]

    def prepare_sql(self, transaction: Transaction) -> str:
        dialect = transaction.db.dialect
        columns = self.insert_columns
        if self.is_ignore and dialect == "sqlite":
            verb = "INSERT OR IGNORE INTO"
        elif self.is_ignore and dialect == "mysql":
            verb = "INSERT IGNORE INTO"
        else:
            verb = "INSERT INTO"

        if columns:
            names = ", ".join(column.name for column in columns)
            placeholders = ", ".join("?" for _ in columns)
            sql = f"{verb} {self.table.name} ({names}) VALUES ({placeholders})"
        elif dialect == "mysql":
            sql = f"{verb} {self.table.name} () VALUES ()"
        else:
            sql = f"{verb} {self.table.name} DEFAULT VALUES"

        if self.is_ignore and dialect == "postgres":
            sql += " ON CONFLICT DO NOTHING"
        return sql

    async def prepared(
        self, transaction: Transaction, sql: str
    ) -> PreparedStatement:
        connection = await transaction.get_connection()
        if (
            self.columns_generated_on_db()
            and not connection.supports_only_identifiers_in_generated_keys
        ):
            return await connection.prepare(sql, returning=True)
        if self.auto_increment_columns:
            return await connection.prepare(
                sql,
                returning=[
                    column.name for column in self.auto_increment_columns
                ],
            )
        return await connection.prepare(sql, returning=False)

    async def execute_internal(
        self, prepared: PreparedStatement, transaction: Transaction
    ) -> int:
        connection = await transaction.get_connection()
        if len(self.rows) > 1 or self.is_always_batch:
            inserted = sum(await prepared.execute_batch())
        else:
            inserted = await prepared.execute_update()

        cursor = None
        if (
            self.columns_generated_on_db()
            or not connection.supports_only_identifiers_in_generated_keys
        ):
            cursor = prepared.generated_keys()
            if cursor is not None:
                transaction.track_result_set(cursor)
        try:
            self.inserted_count = inserted
            self.resulted_values = self._process_results(
                cursor, inserted, connection
            )
        finally:
            if cursor is not None:
                cursor.close()
        return inserted

    def _process_results(
        self,
        cursor: Optional[ResultCursor],
        inserted: int,
        connection: ConnectionHandle,
    ) -> List[Dict[str, Any]]:
        returned = (
            self._returned_values(cursor, inserted, connection)
            if cursor is not None
            else []
        )
        results = []
        for index, row in enumerate(self.rows):
            values = dict(row)
            if index < len(returned):
                values.update(returned[index])
            merged = self._defaults_and_nullables(exclude=values.keys())
            merged.update(values)
            results.append(
                {column.name: value for column, value in merged.items()}
            )
        return results

    def _defaults_and_nullables(self, exclude) -> Row:
        values: Row = {}
        for column in self.table.columns:
            if column in exclude:
                continue
            if column.default is not None:
                values[column] = column.default()
            elif column.nullable:
                values[column] = None
        return values

    def _returned_values(
        self,
        cursor: ResultCursor,
        inserted: int,
        connection: ConnectionHandle,
    ) -> List[Row]:
        if inserted == 0:
            return []

        if connection.supports_only_identifiers_in_generated_keys:
            candidates = self.auto_increment_columns
        else:
            candidates = self.table.columns
        indexes = []
        for column in candidates:
            index = cursor.find_column(column.name)
            if index is not None:
                indexes.append((column, index))

        first_auto_increment = next(iter(self.auto_increment_columns), None)
        if first_auto_increment is None and not indexes:
            return []

        values: List[Row] = []
        for row in cursor.rows:
            returned = {
                column: column.column_type.from_db(row[index])
                for column, index in indexes
            }
            if not returned and first_auto_increment is not None:
                returned[first_auto_increment] = row[0]
            values.append(returned)

        if (
            inserted > 1
            and first_auto_increment is not None
            and values
            and not connection.supports_per_row_generated_keys
        ):
            key = values[0].get(first_auto_increment)
            if isinstance(key, int):
                logger.debug(
                    "Backfilling %d generated keys of %s from last key %s",
                    inserted - len(values),
                    self.table.name,
                    key,
                )
                while len(values) < inserted:
                    key -= 1
                    values.insert(0, {first_auto_increment: key})

        if not (
            self.is_ignore
            or not values
            or len(values) == inserted
            or connection.supports_ternary_affected_row_values
        ):
            raise GeneratedKeysMismatch(
                f"Number of generated keys ({len(values)}) doesn't match "
                f"number of batch entries ({inserted})"
            )
        return values


class BatchInsertStatement(InsertStatement):
    """Insert that always goes through the batch path, even for one row"""

    is_always_batch = True
