from __future__ import annotations

import asyncio
import logging
from itertools import count
from typing import (
    TYPE_CHECKING,
    Any,
    ClassVar,
    Dict,
    List,
    Optional,
    Sequence,
    Tuple,
)

from sluice.exception import ExecutionError, SluiceError
from sluice.sql.interceptor import SqlLogger, StatementInterceptor
from sluice.sql.statement import RawStatement, Statement, StatementType

if TYPE_CHECKING:
    from sluice.base.connection import (
        ConnectionHandle,
        PreparedStatement,
        ResultCursor,
    )
    from sluice.database import Database
    from sluice.sql.statement import StatementContext

    from .interfaces import IsolationLevel
    from .manager import TransactionManager
    from .savepoint import Savepoint

logger = logging.getLogger(__name__)


class Transaction:
    """One unit of work against one database.

    The connection is acquired lazily on first use. A nested transaction
    running with savepoints borrows its outer transaction's connection and
    marks its start with a savepoint, so committing it does nothing and
    rolling it back only undoes work since that savepoint.
    """

    global_interceptors: ClassVar[List[StatementInterceptor]] = []
    _ids = count(1)

    def __init__(
        self,
        manager: TransactionManager,
        isolation_level: Optional[IsolationLevel],
        read_only: bool,
        outer: Optional[Transaction] = None,
    ) -> None:
        self.id = next(Transaction._ids)
        self.manager = manager
        self.db: Database = manager.db
        self.isolation_level = isolation_level
        self.read_only = read_only
        self.outer = outer

        self._max_attempts = manager.default_max_attempts
        self.min_retry_delay = manager.default_min_retry_delay
        self.max_retry_delay = manager.default_max_retry_delay

        config = self.db.config
        self.warn_long_queries_duration = config.warn_long_queries_duration
        self.debug = False
        self.statement_count = 0
        self.duration = 0.0
        self.statement_stats: Dict[str, Tuple[int, float]] = {}

        self.current_statement: Optional[PreparedStatement] = None
        self.executed_statements: List[PreparedStatement] = []
        self.open_result_sets = 0
        self.interceptors: List[StatementInterceptor] = []
        if config.log_sql:
            self.interceptors.append(SqlLogger())

        self.use_savepoints = (
            outer is not None and self.db.use_nested_transactions
        )
        self.savepoint: Optional[Savepoint] = None
        self._connection: Optional[ConnectionHandle] = None
        self._connection_lock = asyncio.Lock()

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    @max_attempts.setter
    def max_attempts(self, value: int) -> None:
        if value <= 0:
            raise SluiceError("max_attempts: must be greater than 0")
        self._max_attempts = value

    @property
    def savepoint_name(self) -> str:
        level = 0
        outer = self.outer
        while outer is not None and outer.outer is not None:
            level += 1
            outer = outer.outer
        return f"savepoint_{level}"

    @property
    def connection_opened(self) -> bool:
        if self.use_savepoints and self.outer is not None:
            return self.outer.connection_opened
        return self._connection is not None

    async def get_connection(self) -> ConnectionHandle:
        if self.use_savepoints and self.outer is not None:
            return await self.outer.get_connection()
        if self._connection is None:
            async with self._connection_lock:
                if self._connection is None:
                    self._connection = await self.db.interface.acquire(
                        self.isolation_level, self.read_only
                    )
                    logger.debug(
                        "Transaction %s acquired %s", self.id, self._connection
                    )
        return self._connection

    async def begin(self) -> None:
        """Mark the start of a nested transaction with a savepoint"""
        if not self.use_savepoints:
            return
        connection = await self.get_connection()
        self.savepoint = await self._wrap_errors(
            connection.set_savepoint(self.savepoint_name)
        )

    def all_interceptors(self) -> List[StatementInterceptor]:
        return [*Transaction.global_interceptors, *self.interceptors]

    def register_interceptor(self, interceptor: StatementInterceptor) -> None:
        self.interceptors.append(interceptor)

    def unregister_interceptor(
        self, interceptor: StatementInterceptor
    ) -> None:
        self.interceptors.remove(interceptor)

    async def _wrap_errors(self, awaitable):
        try:
            return await awaitable
        except self.db.interface.DATABASE_ERRORS as error:
            failure = self.db.interface.classify(error)
            raise ExecutionError(error, (), self, failure) from error

    async def commit(self) -> None:
        if not self.connection_opened or self.use_savepoints:
            return
        interceptors = self.all_interceptors()
        for interceptor in interceptors:
            await interceptor.before_commit(self)
        connection = await self.get_connection()
        await self._wrap_errors(connection.commit())
        logger.info("Transaction %s committed", self.id)
        for interceptor in interceptors:
            await interceptor.after_commit(self)

    async def rollback(self) -> None:
        if not self.connection_opened:
            return
        connection = await self.get_connection()
        if connection.is_closed:
            return
        interceptors = self.all_interceptors()
        for interceptor in interceptors:
            await interceptor.before_rollback(self)
        if self.use_savepoints and self.savepoint is not None:
            await self._wrap_errors(connection.rollback(self.savepoint))
            self.savepoint = await self._wrap_errors(
                connection.set_savepoint(self.savepoint_name)
            )
            logger.debug(
                "Transaction %s rolled back to %s", self.id, self.savepoint
            )
        else:
            await self._wrap_errors(connection.rollback())
            logger.info("Transaction %s rolled back", self.id)
        for interceptor in interceptors:
            await interceptor.after_rollback(self)

    async def rollback_logging_exception(self) -> None:
        current_statement = self.current_statement
        try:
            await self.rollback()
        except Exception as e:
            logger.error(
                "Transaction %s rollback failed: %s. Statement: %s",
                self.id,
                e,
                current_statement,
                exc_info=True,
            )

    async def close(self) -> None:
        try:
            if not self.use_savepoints:
                if self._connection is not None:
                    await self._connection.close()
            elif self.savepoint is not None:
                savepoint, self.savepoint = self.savepoint, None
                connection = await self.get_connection()
                if not connection.is_closed:
                    await connection.release_savepoint(savepoint)
        finally:
            self.manager.bind(self.outer)

    async def close_executed_statements(self) -> None:
        for statement in self.executed_statements:
            if not statement.closed:
                await statement.close()
        self.open_result_sets = 0
        self.executed_statements.clear()

    def track_result_set(self, cursor: ResultCursor) -> None:
        cursor.attach(self)

    def record_statement(
        self, contexts: Sequence[StatementContext], elapsed: float
    ) -> None:
        self.statement_count += 1
        self.duration += elapsed
        if (
            self.warn_long_queries_duration is not None
            and elapsed > self.warn_long_queries_duration
        ):
            logger.warning(
                "Long query (%.3fs): %s",
                elapsed,
                "; ".join(context.expand_args(self) for context in contexts),
            )
        if self.debug and contexts:
            sql = contexts[0].sql(self)
            executions, total = self.statement_stats.get(sql, (0, 0.0))
            self.statement_stats[sql] = (executions + 1, total + elapsed)

    async def exec(self, statement: Statement) -> Any:
        return await statement.execute_in(self)

    async def exec_sql(
        self,
        sql: str,
        args: Sequence[Any] = (),
        statement_type: Optional[StatementType] = None,
    ) -> Any:
        """Execute raw SQL using ``?`` placeholders.

        Returns a list of dicts for statements that produce rows, otherwise
        the number of affected rows.
        """
        return await self.exec(RawStatement(sql, args, statement_type))

    def __repr__(self) -> str:
        kind = "nested" if self.outer is not None else "top-level"
        return f"<Transaction {self.id} {kind} {self.db}>"
