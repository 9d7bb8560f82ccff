"""
Savepoint marker used to emulate nested transactions.
"""

from __future__ import annotations

import logging

from .interfaces import TransactionError

logger = logging.getLogger(__name__)


class Savepoint:
    """
    A named rollback point inside the physical transaction of one
    connection.

    It is created by ``ConnectionHandle.set_savepoint``. It can be rolled
    back to any number of times until it is released.
    """

    def __init__(self, name: str):
        self.name = name
        self._released = False

        logger.debug("Created savepoint %s", self.name)

    def mark_released(self) -> None:
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")
        self._released = True
        logger.debug("Released savepoint %s", self.name)

    def ensure_active(self) -> None:
        if self._released:
            raise TransactionError(f"Savepoint {self.name} already released")

    @property
    def is_released(self) -> bool:
        """Check if this savepoint has been released"""
        return self._released

    def __str__(self) -> str:
        status = "released" if self._released else "active"
        return f"<Savepoint {self.name} ({status})>"
