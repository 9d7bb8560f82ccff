from __future__ import annotations

import logging
import sqlite3
from typing import Optional

from sluice.base.interface import BaseInterface
from sluice.exception import Failure, SluiceError
from sluice.sql.sqlite.connection import SQLiteConnection
from sluice.transaction.interfaces import IsolationLevel

try:
    import aiosqlite

    AIOSQLITE_ENABLED = True
except ModuleNotFoundError:
    AIOSQLITE_ENABLED = False

logger = logging.getLogger(__name__)

TRANSIENT_MESSAGES = ("locked", "busy")


class SQLitePool(BaseInterface):
    """Interface for connecting to a SQLite database

    Every top-level transaction gets its own connection to the database
    file. An in-memory database is private to one connection, so it only
    suits work that runs in a single transaction.
    """

    scheme = "sqlite"
    dialect = "sqlite"
    DATABASE_ERRORS = (sqlite3.Error,)

    def __init__(self, db_path: str, timeout: float = 5.0):
        self._db_path = db_path
        self._timeout = timeout
        super().__init__()

    def _populate_connection_args(self):
        self._db = self._db_path

    def _populate_dsn(self):
        self._dsn = f"{self.scheme}:///{self._db_path}"
        self._full_dsn = self._dsn

    def _setup_pool(self):
        if not AIOSQLITE_ENABLED:
            raise SluiceError(
                "SQLite driver not found. Try reinstalling Sluice: "
                "pip install sluice"
            )

    async def open(self):
        """Nothing to open, connections are made per transaction"""

    async def close(self):
        """Nothing to close, connections are made per transaction"""

    async def acquire(
        self,
        isolation_level: Optional[IsolationLevel] = None,
        read_only: bool = False,
    ) -> SQLiteConnection:
        raw = await aiosqlite.connect(
            self._db_path, timeout=self._timeout, isolation_level=None
        )
        try:
            if read_only:
                await raw.execute("PRAGMA query_only = 1")
            if isolation_level is IsolationLevel.READ_UNCOMMITTED:
                await raw.execute("PRAGMA read_uncommitted = 1")
        except BaseException:
            await raw.close()
            raise
        return SQLiteConnection(raw, self, isolation_level, read_only)

    def classify(self, error: BaseException) -> Failure:
        if isinstance(error, sqlite3.OperationalError) and any(
            message in str(error).lower() for message in TRANSIENT_MESSAGES
        ):
            return Failure.RECOVERABLE
        return Failure.FATAL
