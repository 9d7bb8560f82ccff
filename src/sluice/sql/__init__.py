from .column import BIGINT, BOOLEAN, INTEGER, REAL, TEXT, TIMESTAMP
from .column import Column, ColumnType, Table
from .insert import BatchInsertStatement, InsertStatement
from .interceptor import SqlLogger, StatementInterceptor
from .statement import RawStatement, Statement, StatementContext, StatementType

__all__ = (
    "BIGINT",
    "BOOLEAN",
    "INTEGER",
    "REAL",
    "TEXT",
    "TIMESTAMP",
    "BatchInsertStatement",
    "Column",
    "ColumnType",
    "InsertStatement",
    "RawStatement",
    "SqlLogger",
    "Statement",
    "StatementContext",
    "StatementInterceptor",
    "StatementType",
    "Table",
)
