from __future__ import annotations

import logging
from contextvars import ContextVar
from typing import TYPE_CHECKING, Optional

from sluice.exception import SluiceError

from .transaction import Transaction

if TYPE_CHECKING:
    from sluice.database import Database

    from .interfaces import IsolationLevel

logger = logging.getLogger(__name__)


class TransactionManager:
    """Creates transactions for one database and tracks which of them is
    current for the running task.

    The default settings start out as the database config values. Changing
    them only affects transactions created afterwards.
    """

    def __init__(self, db: Database) -> None:
        config = db.config
        self.db = db
        self.default_isolation_level = config.default_isolation_level
        self.default_read_only = config.default_read_only
        self._default_max_attempts = config.default_max_attempts
        self.default_min_retry_delay = config.default_min_retry_delay
        self.default_max_retry_delay = config.default_max_retry_delay
        self._current: ContextVar[Optional[Transaction]] = ContextVar(
            f"sluice_transaction_{id(self)}", default=None
        )

    @property
    def default_max_attempts(self) -> int:
        return self._default_max_attempts

    @default_max_attempts.setter
    def default_max_attempts(self, value: int) -> None:
        if value <= 0:
            raise SluiceError("default_max_attempts: must be greater than 0")
        self._default_max_attempts = value

    def current_or_none(self) -> Optional[Transaction]:
        return self._current.get()

    def bind(self, transaction: Optional[Transaction]) -> None:
        self._current.set(transaction)

    async def new_transaction(
        self,
        isolation_level: Optional[IsolationLevel] = None,
        read_only: Optional[bool] = None,
        outer: Optional[Transaction] = None,
    ) -> Transaction:
        if outer is not None and not self.db.use_nested_transactions:
            logger.debug(
                "Reusing transaction %s for nested call on %s",
                outer.id,
                self.db,
            )
            self.bind(outer)
            return outer

        if outer is not None:
            isolation_level = outer.isolation_level
            read_only = outer.read_only
        else:
            if isolation_level is None:
                isolation_level = self.default_isolation_level
            if read_only is None:
                read_only = self.default_read_only

        transaction = Transaction(self, isolation_level, read_only, outer)
        await transaction.begin()
        self.bind(transaction)
        logger.debug("Transaction %r started", transaction)
        return transaction

    def __repr__(self) -> str:
        return f"<TransactionManager {self.db}>"
