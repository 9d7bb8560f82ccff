from .connection import ConnectionHandle, PreparedStatement, ResultCursor
from .interface import BaseInterface

__all__ = (
    "BaseInterface",
    "ConnectionHandle",
    "PreparedStatement",
    "ResultCursor",
)
