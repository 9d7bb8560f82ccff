from __future__ import annotations

import logging
from contextvars import ContextVar
from threading import Lock
from typing import TYPE_CHECKING, Dict, List, Optional

from sluice.exception import SluiceError
from sluice.transaction.interfaces import NoTransactionInContext

if TYPE_CHECKING:
    from sluice.database import Database
    from sluice.transaction.manager import TransactionManager
    from sluice.transaction.transaction import Transaction

logger = logging.getLogger(__name__)


class ManagerRegistry:
    """Maps each registered database to its transaction manager.

    Which manager is current for the running task is kept in a context
    variable. When nothing is bound the manager of the default database is
    used, looked up on every call so a changed default is seen right away.

    Writers copy the containers under a short lock and swap the copies in,
    so readers never take the lock and never see a container mid-update.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._managers: Dict[Database, TransactionManager] = {}
        self._databases: List[Database] = []
        self._default: Optional[Database] = None
        self._bound: ContextVar[Optional[TransactionManager]] = ContextVar(
            f"sluice_manager_{id(self)}", default=None
        )

    def register(self, db: Database, manager: TransactionManager) -> None:
        with self._lock:
            managers = dict(self._managers)
            databases = self._databases
            if db not in managers:
                databases = [db, *databases]
            managers[db] = manager
            self._managers, self._databases = managers, databases
        logger.debug("Registered %s", db)

    def close_and_unregister(self, db: Database) -> None:
        with self._lock:
            managers = dict(self._managers)
            manager = managers.pop(db, None)
            self._managers = managers
            self._databases = [
                registered
                for registered in self._databases
                if registered is not db
            ]
            if self._default is db:
                self._default = None
        if manager is not None and self._bound.get() is manager:
            self._bound.set(None)
        logger.debug("Unregistered %s", db)

    @property
    def databases(self) -> List[Database]:
        """Registered databases, most recent first"""
        return list(self._databases)

    @property
    def default_database(self) -> Optional[Database]:
        """The explicitly set default, else the most recently registered"""
        default = self._default
        if default is not None:
            return default
        databases = self._databases
        return databases[0] if databases else None

    @default_database.setter
    def default_database(self, db: Optional[Database]) -> None:
        if db is not None and db not in self._managers:
            raise SluiceError(f"{db} is not registered")
        self._default = db

    def manager_for(self, db: Database) -> TransactionManager:
        try:
            return self._managers[db]
        except KeyError:
            raise SluiceError(
                f"No transaction manager registered for {db}"
            ) from None

    def bound_manager(self) -> Optional[TransactionManager]:
        return self._bound.get()

    def bind_manager(self, manager: Optional[TransactionManager]) -> None:
        self._bound.set(manager)

    def current_manager(self) -> Optional[TransactionManager]:
        bound = self._bound.get()
        if bound is not None and bound.db in self._managers:
            return bound
        default = self.default_database
        if default is None:
            return None
        return self._managers.get(default)

    def current_or_none(self) -> Optional[Transaction]:
        manager = self.current_manager()
        return manager.current_or_none() if manager is not None else None

    def current(self) -> Transaction:
        transaction = self.current_or_none()
        if transaction is None:
            raise NoTransactionInContext("No transaction in context")
        return transaction

    def resolve_database(self, db: Optional[Database] = None) -> Database:
        if db is not None:
            return db
        current = self.current_or_none()
        if current is not None:
            return current.db
        default = self.default_database
        if default is None:
            raise SluiceError(
                "No database specified and no default database found. "
                "Call Sluice.connect() first or pass a database explicitly."
            )
        return default
