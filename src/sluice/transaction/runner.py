"""
Entry points that run a unit of work inside a transaction.
"""

from __future__ import annotations

import asyncio
import logging
from typing import (
    TYPE_CHECKING,
    Awaitable,
    Callable,
    Optional,
    TypeVar,
)

from sluice.exception import ExecutionError

from .retry import Backoff

if TYPE_CHECKING:
    from sluice.database import Database
    from sluice.registry import ManagerRegistry

    from .interfaces import IsolationLevel
    from .transaction import Transaction

logger = logging.getLogger(__name__)

T = TypeVar("T")
Work = Callable[["Transaction"], Awaitable[T]]


async def _execute_with_error_handling(
    transaction: Transaction, work: Work[T], should_commit: bool
) -> T:
    try:
        result = await work(transaction)
        if should_commit:
            await transaction.commit()
        return result
    except ExecutionError:
        await transaction.rollback_logging_exception()
        raise
    except BaseException:
        if should_commit:
            await transaction.rollback_logging_exception()
        raise


async def close_statements_and_connection(transaction: Transaction) -> None:
    """Release everything a finished transaction holds.

    Failures are logged so the rest of the cleanup still runs and the
    error that ended the work is the one the caller sees.
    """
    current_statement = transaction.current_statement
    try:
        if current_statement is not None and not current_statement.closed:
            await current_statement.close()
        transaction.current_statement = None
        await transaction.close_executed_statements()
    except Exception as e:
        logger.error(
            "Statements close failed for transaction %s: %s",
            transaction.id,
            e,
            exc_info=True,
        )
    try:
        await transaction.close()
    except Exception as e:
        logger.error(
            "Transaction %s close failed: %s. Statement: %s",
            transaction.id,
            e,
            current_statement,
            exc_info=True,
        )


async def run_transaction(
    registry: ManagerRegistry,
    work: Work[T],
    db: Optional[Database] = None,
    isolation_level: Optional[IsolationLevel] = None,
    read_only: Optional[bool] = None,
) -> T:
    """Run ``work`` in the current transaction of ``db`` or a new one.

    Inside an existing transaction the work runs nested: under a savepoint
    when the database allows nested transactions, otherwise directly in the
    outer transaction, which then also owns commit and rollback.
    """
    database = registry.resolve_database(db)
    manager = registry.manager_for(database)
    outer = manager.current_or_none()
    if outer is None:
        return await run_top_level(
            registry, work, database, isolation_level, read_only
        )

    previous_manager = registry.bound_manager()
    registry.bind_manager(manager)
    try:
        transaction = await manager.new_transaction(
            isolation_level, read_only, outer
        )
        try:
            return await _execute_with_error_handling(
                transaction,
                work,
                should_commit=database.use_nested_transactions,
            )
        finally:
            if transaction is not outer:
                await close_statements_and_connection(transaction)
    finally:
        manager.bind(outer)
        registry.bind_manager(previous_manager)


async def run_top_level(
    registry: ManagerRegistry,
    work: Work[T],
    db: Optional[Database] = None,
    isolation_level: Optional[IsolationLevel] = None,
    read_only: Optional[bool] = None,
    outer: Optional[Transaction] = None,
) -> T:
    """Run ``work`` in a transaction that commits when the work completes.

    Recoverable database errors roll back and retry the work in a fresh
    transaction, with backoff, until the attempt limit is reached.
    """
    database = registry.resolve_database(db)
    manager = registry.manager_for(database)
    previous_manager = registry.bound_manager()
    previous_transaction = manager.current_or_none()
    attempts = 0
    backoff: Optional[Backoff] = None

    registry.bind_manager(manager)
    try:
        while True:
            transaction = await manager.new_transaction(
                isolation_level, read_only, outer
            )
            try:
                return await _execute_with_error_handling(
                    transaction, work, should_commit=True
                )
            except ExecutionError as error:
                if not error.recoverable:
                    raise
                attempts += 1
                logger.warning(
                    "Transaction attempt #%d failed: %s. Statement(s): %s",
                    attempts,
                    error.cause,
                    error.statements,
                )
                if attempts >= transaction.max_attempts:
                    raise
                if backoff is None:
                    backoff = Backoff.for_transaction(transaction)
                delay = backoff.next_delay(attempts)
                logger.warning("Wait %.3f seconds before retrying", delay)
            finally:
                if transaction is not outer:
                    await close_statements_and_connection(transaction)
            await asyncio.sleep(delay)
    finally:
        manager.bind(previous_transaction)
        registry.bind_manager(previous_manager)
