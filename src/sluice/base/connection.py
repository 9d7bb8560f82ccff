from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import (
    TYPE_CHECKING,
    Any,
    Iterator,
    List,
    Optional,
    Sequence,
    Tuple,
    Type,
    Union,
)

from sluice.convert import convert_placeholders
from sluice.transaction.savepoint import Savepoint

if TYPE_CHECKING:
    from sluice.base.interface import BaseInterface
    from sluice.sql.column import ColumnType
    from sluice.transaction.interfaces import IsolationLevel
    from sluice.transaction.transaction import Transaction

logger = logging.getLogger(__name__)

Returning = Union[bool, Sequence[str]]


class ResultCursor:
    """Fully materialized rows of one result set"""

    def __init__(
        self, columns: Sequence[str], rows: Sequence[Sequence[Any]]
    ) -> None:
        self.columns = list(columns)
        self.rows = [tuple(row) for row in rows]
        self.closed = False
        self._transaction: Optional[Transaction] = None

    def attach(self, transaction: Transaction) -> None:
        self._transaction = transaction
        transaction.open_result_sets += 1
        threshold = transaction.db.config.log_too_many_result_sets_threshold
        if threshold and transaction.open_result_sets > threshold:
            logger.warning(
                "Transaction %s has %d open result sets (threshold %d)",
                transaction.id,
                transaction.open_result_sets,
                threshold,
            )

    def find_column(self, name: str) -> Optional[int]:
        lowered = name.lower()
        for index, column in enumerate(self.columns):
            if column.lower() == lowered:
                return index
        return None

    def as_dicts(self) -> List[dict]:
        return [dict(zip(self.columns, row)) for row in self.rows]

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        if self._transaction is not None:
            self._transaction.open_result_sets -= 1

    def __iter__(self) -> Iterator[Tuple[Any, ...]]:
        return iter(self.rows)

    def __len__(self) -> int:
        return len(self.rows)


class PreparedStatement(ABC):
    """A statement bound to one connection.

    Parameters are filled one row at a time. Batched rows are queued with
    ``add_batch`` and sent together by ``execute_batch``.
    """

    def __init__(
        self, connection: ConnectionHandle, sql: str, returning: Returning
    ) -> None:
        self.connection = connection
        self.sql = sql
        self.returning = returning
        self.closed = False
        self._parameters: Tuple[Any, ...] = ()
        self._batch: List[Tuple[Any, ...]] = []
        self._generated: Optional[ResultCursor] = None

    def fill_parameters(
        self, arguments: Sequence[Tuple[ColumnType, Any]]
    ) -> None:
        self._parameters = tuple(
            column_type.to_db(value) for column_type, value in arguments
        )

    def add_batch(self) -> None:
        self._batch.append(self._parameters)
        self._parameters = ()

    @property
    def returning_columns(self) -> List[str]:
        if isinstance(self.returning, bool):
            return []
        return list(self.returning)

    def generated_keys(self) -> Optional[ResultCursor]:
        """Values generated by the last execution, if any were requested"""
        return self._generated

    @abstractmethod
    async def execute_update(self) -> int: ...

    @abstractmethod
    async def execute_batch(self) -> List[int]: ...

    @abstractmethod
    async def execute_query(self) -> ResultCursor: ...

    async def close(self) -> None:
        self.closed = True
        self._batch = []
        if self._generated is not None:
            self._generated.close()

    def __str__(self) -> str:
        return self.sql


class ConnectionHandle(ABC):
    """One physical connection, owned by a single top-level transaction.

    The capability flags describe how the backend reports generated values
    so the statement pipeline never has to look at the backend type.
    """

    POSITIONAL_SUB = "?"
    statement_class: Type[PreparedStatement]

    supports_per_row_generated_keys = True
    supports_only_identifiers_in_generated_keys = False
    supports_ternary_affected_row_values = False
    supports_multiple_result_sets = True

    def __init__(
        self,
        raw: Any,
        interface: BaseInterface,
        isolation_level: Optional[IsolationLevel] = None,
        read_only: bool = False,
    ) -> None:
        self.raw = raw
        self.interface = interface
        self.isolation_level = isolation_level
        self.read_only = read_only
        self._begun = False
        self._closed = False

    @abstractmethod
    async def execute_raw(self, sql: str) -> None:
        """Run a statement that takes no parameters and returns nothing"""

    @abstractmethod
    async def _release(self) -> None:
        """Give the physical connection back to its pool or close it"""

    async def _begin(self) -> None:
        """Start a physical transaction. Drivers that begin implicitly
        have nothing to do here."""

    async def _ensure_begun(self) -> None:
        if not self._begun:
            await self._begin()
            self._begun = True

    def native_sql(self, sql: str, returning: Returning) -> str:
        return convert_placeholders(sql, self.POSITIONAL_SUB)

    async def prepare(
        self, sql: str, returning: Returning = False
    ) -> PreparedStatement:
        await self._ensure_begun()
        return self.statement_class(
            self, self.native_sql(sql, returning), returning
        )

    async def commit(self) -> None:
        await self.raw.commit()
        self._begun = False

    async def rollback(self, savepoint: Optional[Savepoint] = None) -> None:
        if savepoint is None:
            await self.raw.rollback()
            self._begun = False
            return
        savepoint.ensure_active()
        await self.execute_raw(f"ROLLBACK TO SAVEPOINT {savepoint.name}")

    async def set_savepoint(self, name: str) -> Savepoint:
        await self._ensure_begun()
        await self.execute_raw(f"SAVEPOINT {name}")
        return Savepoint(name)

    async def release_savepoint(self, savepoint: Savepoint) -> None:
        savepoint.ensure_active()
        await self.execute_raw(f"RELEASE SAVEPOINT {savepoint.name}")
        savepoint.mark_released()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._release()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.interface.dsn}>"
