"""Target stores and the batch writer."""

from .base import TargetStore
from .mysql_loader import MySQLTarget
from .sqlite_loader import SQLiteTarget
from .writer import TargetWriter, WriteResult

__all__ = [
    "TargetStore",
    "MySQLTarget",
    "SQLiteTarget",
    "TargetWriter",
    "WriteResult",
]
