from importlib.metadata import version

from .config import DatabaseConfig
from .database import Database
from .exception import (
    ExecutionError,
    Failure,
    GeneratedKeysMismatch,
    SluiceError,
    StatementBuilderError,
)
from .registry import ManagerRegistry
from .sluice import Sluice
from .sql.mysql.interface import MysqlPool
from .sql.postgres.interface import PostgresPool
from .sql.sqlite.interface import SQLitePool
from .transaction import IsolationLevel, Transaction, TransactionManager

__version__ = version("sluice")

__all__ = (
    "Database",
    "DatabaseConfig",
    "ExecutionError",
    "Failure",
    "GeneratedKeysMismatch",
    "IsolationLevel",
    "ManagerRegistry",
    "MysqlPool",
    "PostgresPool",
    "SQLitePool",
    "Sluice",
    "SluiceError",
    "StatementBuilderError",
    "Transaction",
    "TransactionManager",
)
