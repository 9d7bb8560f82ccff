from __future__ import annotations

from inspect import isawaitable
from typing import Optional

from sluice.base.interface import BaseInterface
from sluice.exception import Failure, SluiceError
from sluice.sql.mysql.connection import MysqlConnection
from sluice.transaction.interfaces import IsolationLevel

try:
    from asyncmy import create_pool
    from asyncmy import errors as mysql_errors

    MYSQL_ENABLED = True
    MYSQL_ERRORS: tuple = (mysql_errors.Error,)
except ModuleNotFoundError:
    MYSQL_ENABLED = False
    MYSQL_ERRORS = ()


class MysqlPool(BaseInterface):
    """Interface for connecting to a MySQL database"""

    scheme = "mysql"
    dialect = "mysql"
    DATABASE_ERRORS = MYSQL_ERRORS

    def _setup_pool(self):
        if not MYSQL_ENABLED:
            raise SluiceError(
                "MySQL driver not found. Try reinstalling Sluice: "
                "pip install sluice[mysql]"
            )
        kwargs = {"minsize": self.min_size}
        if self.max_size:
            kwargs["maxsize"] = self.max_size
        self._pool = create_pool(
            user=self.user,
            password=self.password,
            host=self.host,
            port=self.port,
            db=self.db,
            autocommit=False,
            **kwargs,
        )

    async def open(self):
        """Open connections to the pool"""
        self._pool = await self._pool

    async def close(self):
        """Close connections to the pool"""
        self._pool.close()
        await self._pool.wait_closed()

    async def acquire(
        self,
        isolation_level: Optional[IsolationLevel] = None,
        read_only: bool = False,
    ) -> MysqlConnection:
        raw = await self._pool.acquire()
        return MysqlConnection(raw, self, isolation_level, read_only)

    async def release(self, raw) -> None:
        released = self._pool.release(raw)
        if isawaitable(released):
            await released

    def classify(self, error: BaseException) -> Failure:
        if isinstance(error, mysql_errors.OperationalError):
            return Failure.RECOVERABLE
        return Failure.FATAL
