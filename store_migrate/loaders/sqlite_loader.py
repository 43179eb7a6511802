"""SQLite target store for local rehearsals."""

import logging
import os
import sqlite3
from typing import Any, List, Optional, Sequence, Union

from .base import Rows, TargetStore
from ..errors import ConnectivityError, StatementError

logger = logging.getLogger(__name__)


def _dict_factory(cursor: sqlite3.Cursor, row: tuple) -> dict:
    return {column[0]: row[i] for i, column in enumerate(cursor.description)}


class SQLiteTarget(TargetStore):
    """SQLite target store; ``:memory:`` gives a throwaway database."""

    store_name = "sqlite"
    placeholder = "?"
    quote_char = "`"

    def __init__(self, path: str = ":memory:", logger: Optional[logging.Logger] = None):
        super().__init__(logger)
        self.path = path
        self._connection: Optional[sqlite3.Connection] = None

    @property
    def connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        if self.connected:
            return
        try:
            self._connection = sqlite3.connect(
                self.path, isolation_level=None, check_same_thread=False
            )
        except sqlite3.Error as e:
            raise ConnectivityError(
                f"Cannot open SQLite database {self.path}: {e}",
                store=self.store_name,
                operation="connect",
            ) from e
        self._connection.row_factory = _dict_factory
        self.logger.debug(f"Opened SQLite database {self.path}")

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def execute(self, statement: str, params: Sequence[Any] = ()) -> Union[Rows, int]:
        if self._connection is None:
            raise ConnectivityError(
                "SQLite connection is not open", store=self.store_name, operation="execute"
            )

        try:
            cursor = self._connection.execute(statement, tuple(params))
            if cursor.description is not None:
                return cursor.fetchall()
            return cursor.rowcount
        except sqlite3.ProgrammingError as e:
            if "closed" in str(e).lower():
                raise ConnectivityError(
                    f"SQLite connection lost: {e}", store=self.store_name, operation="execute"
                ) from e
            raise StatementError(str(e), {"statement": statement}) from e
        except sqlite3.Error as e:
            raise StatementError(str(e), {"statement": statement}) from e

    def list_tables(self) -> List[str]:
        rows = self.query(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [row["name"] for row in rows]

    def list_columns(self, table: str) -> List[str]:
        rows = self.query(f"PRAGMA table_info({self.quote(table)})")
        return [row["name"] for row in rows]

    def disable_referential_checks(self) -> None:
        self.execute("PRAGMA foreign_keys = OFF")

    def enable_referential_checks(self) -> None:
        self.execute("PRAGMA foreign_keys = ON")

    def referential_checks_enabled(self) -> bool:
        return bool(self.scalar("PRAGMA foreign_keys"))

    def database_size_mb(self) -> Optional[float]:
        if self.path == ":memory:" or not os.path.exists(self.path):
            return None
        return round(os.path.getsize(self.path) / 1024 / 1024, 2)
