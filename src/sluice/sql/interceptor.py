from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from sluice.base.connection import PreparedStatement
    from sluice.sql.statement import StatementContext
    from sluice.transaction.transaction import Transaction

sql_logger = logging.getLogger("sluice.sql")


class StatementInterceptor:
    """Hooks around statement execution and transaction completion.

    Every hook is a no-op by default, so subclasses only override what
    they need.
    """

    async def before_execution(
        self, transaction: Transaction, contexts: List[StatementContext]
    ) -> None: ...

    async def after_execution(
        self,
        transaction: Transaction,
        contexts: List[StatementContext],
        statement: PreparedStatement,
    ) -> None: ...

    async def before_commit(self, transaction: Transaction) -> None: ...

    async def after_commit(self, transaction: Transaction) -> None: ...

    async def before_rollback(self, transaction: Transaction) -> None: ...

    async def after_rollback(self, transaction: Transaction) -> None: ...


class SqlLogger(StatementInterceptor):
    """Log each executed statement with its arguments inlined"""

    async def after_execution(self, transaction, contexts, statement) -> None:
        if not sql_logger.isEnabledFor(logging.DEBUG):
            return
        for context in contexts:
            sql_logger.debug(
                "[txn %s] %s", transaction.id, context.expand_args(transaction)
            )
