from enum import Enum

from sluice.exception import SluiceError


class IsolationLevel(Enum):
    """SQL transaction isolation levels"""

    READ_UNCOMMITTED = "READ UNCOMMITTED"
    READ_COMMITTED = "READ COMMITTED"
    REPEATABLE_READ = "REPEATABLE READ"
    SERIALIZABLE = "SERIALIZABLE"


class TransactionError(SluiceError):
    """Base exception for transaction errors"""

    pass


class NoTransactionInContext(TransactionError):
    """Raised when a transaction is required but none is bound"""

    pass
