"""
Transaction lifecycle: managers, nested transactions through savepoints,
and the retrying top-level runner.
"""

from .interfaces import (
    IsolationLevel,
    NoTransactionInContext,
    TransactionError,
)
from .manager import TransactionManager
from .retry import Backoff
from .runner import (
    close_statements_and_connection,
    run_top_level,
    run_transaction,
)
from .savepoint import Savepoint
from .transaction import Transaction

__all__ = [
    "Backoff",
    "IsolationLevel",
    "NoTransactionInContext",
    "Savepoint",
    "Transaction",
    "TransactionError",
    "TransactionManager",
    "close_statements_and_connection",
    "run_top_level",
    "run_transaction",
]
