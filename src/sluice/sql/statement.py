from __future__ import annotations

import time
from abc import ABC, abstractmethod
from enum import Enum
from typing import (
    TYPE_CHECKING,
    Any,
    List,
    Optional,
    Sequence,
    Tuple,
)

from sluice.convert import split_placeholders
from sluice.exception import ExecutionError
from sluice.sql.column import ColumnType

if TYPE_CHECKING:
    from sluice.base.connection import PreparedStatement
    from sluice.sql.column import Table
    from sluice.transaction.transaction import Transaction

Argument = Tuple[ColumnType, Any]
UNTYPED = ColumnType("")


class StatementType(Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    SELECT = "SELECT"
    CREATE = "CREATE"
    DROP = "DROP"
    ALTER = "ALTER"
    TRUNCATE = "TRUNCATE"
    SHOW = "SHOW"
    PRAGMA = "PRAGMA"
    OTHER = "OTHER"

    @classmethod
    def detect(cls, sql: str) -> StatementType:
        keyword = sql.lstrip(" \t\r\n(").split(None, 1)
        if not keyword:
            return cls.OTHER
        word = keyword[0].upper()
        if word in ("WITH", "VALUES", "EXPLAIN"):
            return cls.SELECT
        if word in ("REPLACE", "MERGE"):
            return cls.INSERT
        try:
            return cls(word)
        except ValueError:
            return cls.OTHER

    @property
    def returns_rows(self) -> bool:
        return self in (
            StatementType.SELECT,
            StatementType.SHOW,
            StatementType.PRAGMA,
        )


class StatementContext:
    """One row of arguments for a statement"""

    __slots__ = ("statement", "args")

    def __init__(self, statement: Statement, args: Sequence[Argument]):
        self.statement = statement
        self.args = list(args)

    def sql(self, transaction: Transaction) -> str:
        return self.statement.prepare_sql(transaction)

    def expand_args(self, transaction: Transaction) -> str:
        sql = self.sql(transaction)
        if not self.args:
            return sql
        parts = split_placeholders(sql)
        expanded = [parts[0]]
        for part, (column_type, value) in zip(parts[1:], self.args):
            expanded.append(column_type.literal(value))
            expanded.append(part)
        return "".join(expanded)

    def __repr__(self) -> str:
        return f"<StatementContext {self.statement!r} args={len(self.args)}>"


class Statement(ABC):
    """Base of everything a transaction can execute.

    ``execute_in`` owns the shared pipeline: interceptors, prepare,
    parameter binding, execution, bookkeeping. Subclasses decide how the
    prepared statement is executed and what comes back.
    """

    is_always_batch = False

    def __init__(
        self, statement_type: StatementType, targets: Sequence[Table] = ()
    ) -> None:
        self.statement_type = statement_type
        self.targets = list(targets)

    @abstractmethod
    def prepare_sql(self, transaction: Transaction) -> str:
        """SQL text with ``?`` placeholders"""

    @abstractmethod
    def arguments(self) -> List[List[Argument]]:
        """One list of typed arguments per row to execute"""

    @abstractmethod
    async def execute_internal(
        self, prepared: PreparedStatement, transaction: Transaction
    ) -> Any: ...

    async def prepared(
        self, transaction: Transaction, sql: str
    ) -> PreparedStatement:
        connection = await transaction.get_connection()
        return await connection.prepare(sql, returning=False)

    async def execute(self, transaction: Transaction) -> Any:
        return await transaction.exec(self)

    def _contexts(self, arguments: List[List[Argument]]):
        if not arguments:
            return [StatementContext(self, [])]
        return [StatementContext(self, args) for args in arguments]

    def _wrap(
        self,
        error: BaseException,
        contexts: List[StatementContext],
        transaction: Transaction,
    ) -> ExecutionError:
        failure = transaction.db.interface.classify(error)
        return ExecutionError(error, contexts, transaction, failure)

    async def execute_in(self, transaction: Transaction) -> Any:
        arguments = self.arguments()
        contexts = self._contexts(arguments)
        interceptors = transaction.all_interceptors()
        for interceptor in interceptors:
            await interceptor.before_execution(transaction, contexts)

        database_errors = transaction.db.interface.DATABASE_ERRORS
        sql = self.prepare_sql(transaction)
        try:
            connection = await transaction.get_connection()
            statement = await self.prepared(transaction, sql)
        except database_errors as error:
            raise self._wrap(error, contexts, transaction) from error

        batched = len(arguments) > 1 or self.is_always_batch
        for args in arguments:
            statement.fill_parameters(args)
            if batched:
                statement.add_batch()

        if not connection.supports_multiple_result_sets:
            await transaction.close_executed_statements()

        transaction.current_statement = statement
        started = time.monotonic()
        try:
            result = await self.execute_internal(statement, transaction)
        except database_errors as error:
            raise self._wrap(error, contexts, transaction) from error
        elapsed = time.monotonic() - started
        transaction.current_statement = None
        transaction.executed_statements.append(statement)

        for interceptor in interceptors:
            await interceptor.after_execution(transaction, contexts, statement)

        transaction.record_statement(contexts, elapsed)
        return result

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.statement_type.value}>"


class RawStatement(Statement):
    """Plain SQL with positional ``?`` arguments.

    Row returning statements give back a list of dicts, anything else the
    affected row count.
    """

    def __init__(
        self,
        sql: str,
        args: Sequence[Any] = (),
        statement_type: Optional[StatementType] = None,
    ) -> None:
        super().__init__(statement_type or StatementType.detect(sql))
        self.sql = sql
        self.args: List[Argument] = [(UNTYPED, arg) for arg in args]

    def prepare_sql(self, transaction: Transaction) -> str:
        return self.sql

    def arguments(self) -> List[List[Argument]]:
        return [self.args] if self.args else []

    async def execute_internal(self, prepared, transaction):
        if self.statement_type.returns_rows:
            cursor = await prepared.execute_query()
            transaction.track_result_set(cursor)
            try:
                return cursor.as_dicts()
            finally:
                cursor.close()
        return await prepared.execute_update()

    def __repr__(self) -> str:
        return f"<RawStatement {self.sql!r}>"
