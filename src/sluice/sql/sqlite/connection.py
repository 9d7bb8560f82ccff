from __future__ import annotations

from typing import List

from sluice.base.connection import (
    ConnectionHandle,
    PreparedStatement,
    ResultCursor,
)
from sluice.transaction.interfaces import IsolationLevel


class SQLitePreparedStatement(PreparedStatement):
    """SQLite reports generated keys through ``last_insert_rowid()`` only,
    so a batch yields just the key of its last row."""

    def _key_columns(self) -> List[str]:
        return self.returning_columns[:1] or ["last_insert_rowid()"]

    async def execute_update(self) -> int:
        cursor = await self.connection.raw.execute(self.sql, self._parameters)
        try:
            if self.returning:
                self._generated = ResultCursor(
                    self._key_columns(), [(cursor.lastrowid,)]
                )
            return cursor.rowcount
        finally:
            await cursor.close()

    async def execute_batch(self) -> List[int]:
        raw = self.connection.raw
        batch, self._batch = self._batch, []
        cursor = await raw.executemany(self.sql, batch)
        try:
            inserted = cursor.rowcount
        finally:
            await cursor.close()
        if self.returning and inserted > 0:
            async with raw.execute("SELECT last_insert_rowid()") as cursor:
                row = await cursor.fetchone()
            self._generated = ResultCursor(self._key_columns(), [row])
        return [inserted]

    async def execute_query(self) -> ResultCursor:
        async with self.connection.raw.execute(
            self.sql, self._parameters
        ) as cursor:
            rows = await cursor.fetchall()
            columns = [
                description[0] for description in cursor.description or ()
            ]
        return ResultCursor(columns, rows)


class SQLiteConnection(ConnectionHandle):
    POSITIONAL_SUB = "?"
    statement_class = SQLitePreparedStatement

    supports_per_row_generated_keys = False
    supports_only_identifiers_in_generated_keys = True
    supports_multiple_result_sets = False

    async def _begin(self) -> None:
        if self.raw.in_transaction:
            return
        if self.isolation_level is IsolationLevel.SERIALIZABLE:
            await self.raw.execute("BEGIN IMMEDIATE")
        else:
            await self.raw.execute("BEGIN")

    async def execute_raw(self, sql: str) -> None:
        await self.raw.execute(sql)

    async def _release(self) -> None:
        await self.raw.close()
