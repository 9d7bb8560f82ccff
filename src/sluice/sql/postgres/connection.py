from __future__ import annotations

from typing import Any, List, Sequence

from sluice.base.connection import (
    ConnectionHandle,
    PreparedStatement,
    ResultCursor,
    Returning,
)


def _columns(cursor) -> List[str]:
    return [column.name for column in cursor.description or ()]


class PostgresPreparedStatement(PreparedStatement):
    async def execute_update(self) -> int:
        async with self.connection.raw.cursor() as cursor:
            await cursor.execute(self.sql, self._parameters)
            if self.returning and cursor.description:
                self._generated = ResultCursor(
                    _columns(cursor), await cursor.fetchall()
                )
            return cursor.rowcount

    async def execute_batch(self) -> List[int]:
        batch, self._batch = self._batch, []
        async with self.connection.raw.cursor() as cursor:
            if not self.returning:
                await cursor.executemany(self.sql, batch)
                return [cursor.rowcount]

            await cursor.executemany(self.sql, batch, returning=True)
            counts: List[int] = []
            columns: List[str] = []
            rows: List[Sequence[Any]] = []
            while True:
                if cursor.description:
                    columns = _columns(cursor)
                    fetched = await cursor.fetchall()
                    rows.extend(fetched)
                    counts.append(len(fetched))
                if not cursor.nextset():
                    break
            self._generated = ResultCursor(columns, rows)
            return counts

    async def execute_query(self) -> ResultCursor:
        async with self.connection.raw.cursor() as cursor:
            await cursor.execute(self.sql, self._parameters)
            return ResultCursor(_columns(cursor), await cursor.fetchall())


class PostgresConnection(ConnectionHandle):
    """psycopg opens a transaction on the first statement by itself, so
    there is no explicit BEGIN."""

    POSITIONAL_SUB = r"%s"
    statement_class = PostgresPreparedStatement

    supports_per_row_generated_keys = True
    supports_only_identifiers_in_generated_keys = False
    supports_multiple_result_sets = True

    def native_sql(self, sql: str, returning: Returning) -> str:
        native = super().native_sql(sql, returning)
        if returning is True:
            return f"{native} RETURNING *"
        if returning:
            names = ", ".join(f'"{name}"' for name in returning)
            return f"{native} RETURNING {names}"
        return native

    async def execute_raw(self, sql: str) -> None:
        await self.raw.execute(sql)

    async def _release(self) -> None:
        raw = self.raw
        try:
            await raw.rollback()
            if self.isolation_level is not None:
                await raw.set_isolation_level(None)
            if self.read_only:
                await raw.set_read_only(None)
        finally:
            await self.interface.release(raw)
