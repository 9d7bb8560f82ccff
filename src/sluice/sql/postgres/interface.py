from __future__ import annotations

from typing import Optional

from sluice.base.interface import BaseInterface
from sluice.exception import Failure, SluiceError
from sluice.sql.postgres.connection import PostgresConnection
from sluice.transaction.interfaces import IsolationLevel

try:
    import psycopg
    from psycopg_pool import AsyncConnectionPool

    POSTGRES_ENABLED = True
    POSTGRES_ERRORS: tuple = (psycopg.Error,)
except ModuleNotFoundError:
    POSTGRES_ENABLED = False
    POSTGRES_ERRORS = ()
    AsyncConnectionPool = type("Connection", (), {})  # type: ignore


class PostgresPool(BaseInterface):
    """Interface for connecting to a Postgres database"""

    scheme = "postgres"
    dialect = "postgres"
    DATABASE_ERRORS = POSTGRES_ERRORS

    def _setup_pool(self):
        if not POSTGRES_ENABLED:
            raise SluiceError(
                "Postgres driver not found. Try reinstalling Sluice: "
                "pip install sluice[postgres]"
            )
        kwargs = {"min_size": self.min_size}
        if self.max_size:
            kwargs["max_size"] = self.max_size
        self._pool = AsyncConnectionPool(self.full_dsn, open=False, **kwargs)

    async def open(self):
        """Open connections to the pool"""
        await self._pool.open()

    async def close(self):
        """Close connections to the pool"""
        await self._pool.close()

    async def acquire(
        self,
        isolation_level: Optional[IsolationLevel] = None,
        read_only: bool = False,
    ) -> PostgresConnection:
        raw = await self._pool.getconn()
        try:
            if isolation_level is not None:
                await raw.set_isolation_level(
                    psycopg.IsolationLevel[isolation_level.name]
                )
            if read_only:
                await raw.set_read_only(True)
        except BaseException:
            await self._pool.putconn(raw)
            raise
        return PostgresConnection(raw, self, isolation_level, read_only)

    async def release(self, raw) -> None:
        await self._pool.putconn(raw)

    def classify(self, error: BaseException) -> Failure:
        if isinstance(error, psycopg.OperationalError):
            return Failure.RECOVERABLE
        return Failure.FATAL
