from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional


class ColumnType:
    """SQL type of a column, with the conversions applied when binding
    parameters and reading values back."""

    __slots__ = ("sql_type",)

    def __init__(self, sql_type: str) -> None:
        self.sql_type = sql_type

    def to_db(self, value: Any) -> Any:
        return value

    def from_db(self, value: Any) -> Any:
        return value

    def literal(self, value: Any) -> str:
        """Render a value inline, for logging only"""
        if value is None:
            return "NULL"
        if isinstance(value, bool):
            return "TRUE" if value else "FALSE"
        if isinstance(value, (int, float)):
            return str(value)
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        text = str(value).replace("'", "''")
        return f"'{text}'"

    def __repr__(self) -> str:
        return f"<ColumnType {self.sql_type}>"


class BooleanColumnType(ColumnType):
    def to_db(self, value: Any) -> Any:
        return None if value is None else bool(value)

    def from_db(self, value: Any) -> Any:
        return None if value is None else bool(value)


INTEGER = ColumnType("INTEGER")
BIGINT = ColumnType("BIGINT")
TEXT = ColumnType("TEXT")
REAL = ColumnType("REAL")
BOOLEAN = BooleanColumnType("BOOLEAN")
TIMESTAMP = ColumnType("TIMESTAMP")


@dataclass(eq=False)
class Column:
    """Column metadata. ``default`` is computed on the client, while
    ``database_default`` marks a value the database fills in itself."""

    name: str
    column_type: ColumnType
    auto_increment: bool = False
    nullable: bool = False
    default: Optional[Callable[[], Any]] = None
    database_default: bool = False
    table: Optional[Table] = field(default=None, repr=False)

    @property
    def generated_on_db(self) -> bool:
        return self.auto_increment or self.database_default


class Table:
    def __init__(self, name: str, *columns: Column) -> None:
        self.name = name
        self.columns: List[Column] = list(columns)
        self._by_name: Dict[str, Column] = {}
        for column in self.columns:
            column.table = self
            self._by_name[column.name.lower()] = column

    def __getitem__(self, name: str) -> Column:
        try:
            return self._by_name[name.lower()]
        except KeyError:
            raise KeyError(f"{self.name} has no column {name}") from None

    @property
    def auto_increment_columns(self) -> List[Column]:
        return [column for column in self.columns if column.auto_increment]

    def __repr__(self) -> str:
        return f"<Table {self.name}>"
