from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Optional, Sequence

if TYPE_CHECKING:
    from sluice.sql.statement import StatementContext
    from sluice.transaction.transaction import Transaction


class SluiceError(Exception):
    ...


class Failure(Enum):
    """How the retry loop should treat a database error"""

    RECOVERABLE = "recoverable"
    FATAL = "fatal"


class ExecutionError(SluiceError):
    """A database error raised while preparing or executing a statement.

    The original driver error is kept as ``__cause__`` and ``cause``. The
    ``failure`` classification comes from the interface that owns the
    connection, and decides whether a top-level transaction is retried.
    """

    def __init__(
        self,
        cause: BaseException,
        contexts: Sequence[StatementContext] = (),
        transaction: Optional[Transaction] = None,
        failure: Failure = Failure.FATAL,
    ) -> None:
        self.cause = cause
        self.contexts = list(contexts)
        self.transaction = transaction
        self.failure = failure
        super().__init__(self._build_message())

    def _build_message(self) -> str:
        message = str(self.cause) or self.cause.__class__.__name__
        if self.contexts and self.transaction is not None:
            statements = "\n".join(
                context.expand_args(self.transaction)
                for context in self.contexts
            )
            message = f"{message}\nSQL: {statements}"
        return message

    @property
    def recoverable(self) -> bool:
        return self.failure is Failure.RECOVERABLE

    @property
    def statements(self) -> str:
        if self.transaction is None:
            return ""
        return "; ".join(
            context.sql(self.transaction) for context in self.contexts
        )


class StatementBuilderError(SluiceError):
    """Raised when a statement is built incorrectly"""


class GeneratedKeysMismatch(SluiceError):
    """Raised when a backend returns a different number of generated keys
    than rows were inserted"""
