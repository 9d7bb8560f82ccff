from __future__ import annotations

from typing import List

from sluice.base.connection import (
    ConnectionHandle,
    PreparedStatement,
    ResultCursor,
)


class MysqlPreparedStatement(PreparedStatement):
    """MySQL only reports ``lastrowid``. Batches that need their keys are
    sent one row at a time so every row gets its own key."""

    def _key_columns(self) -> List[str]:
        return self.returning_columns[:1] or ["LAST_INSERT_ID()"]

    async def execute_update(self) -> int:
        async with self.connection.raw.cursor() as cursor:
            affected = await cursor.execute(self.sql, self._parameters)
            if self.returning:
                self._generated = ResultCursor(
                    self._key_columns(), [(cursor.lastrowid,)]
                )
            return affected if affected is not None else cursor.rowcount

    async def execute_batch(self) -> List[int]:
        batch, self._batch = self._batch, []
        async with self.connection.raw.cursor() as cursor:
            if not self.returning:
                await cursor.executemany(self.sql, batch)
                return [cursor.rowcount]

            counts: List[int] = []
            keys = []
            for parameters in batch:
                await cursor.execute(self.sql, parameters)
                counts.append(cursor.rowcount)
                if cursor.rowcount > 0:
                    keys.append((cursor.lastrowid,))
            self._generated = ResultCursor(self._key_columns(), keys)
            return counts

    async def execute_query(self) -> ResultCursor:
        async with self.connection.raw.cursor() as cursor:
            await cursor.execute(self.sql, self._parameters)
            rows = await cursor.fetchall()
            columns = [
                description[0] for description in cursor.description or ()
            ]
        return ResultCursor(columns, rows)


class MysqlConnection(ConnectionHandle):
    POSITIONAL_SUB = r"%s"
    statement_class = MysqlPreparedStatement

    supports_per_row_generated_keys = True
    supports_only_identifiers_in_generated_keys = True
    supports_ternary_affected_row_values = True
    supports_multiple_result_sets = True

    async def _begin(self) -> None:
        # SET TRANSACTION only applies to the next transaction
        if self.isolation_level is not None:
            await self.execute_raw(
                f"SET TRANSACTION ISOLATION LEVEL {self.isolation_level.value}"
            )
        if self.read_only:
            await self.execute_raw("SET TRANSACTION READ ONLY")
        await self.raw.begin()

    async def execute_raw(self, sql: str) -> None:
        async with self.raw.cursor() as cursor:
            await cursor.execute(sql)

    async def _release(self) -> None:
        try:
            await self.raw.rollback()
        finally:
            await self.interface.release(self.raw)
