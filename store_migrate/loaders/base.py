"""Base interface for relational target stores."""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Union
import logging
import re

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

Rows = List[Dict[str, Any]]


class TargetStore(ABC):
    """
    Base class for target stores.

    A target store wraps exactly one connection for the duration of a
    run. ``execute`` returns the fetched rows for statements that
    produce a result set and the affected row count otherwise.

    Adapters translate driver exceptions: a lost or refused connection
    raises ``ConnectivityError`` and any other driver failure raises
    ``StatementError``.
    """

    store_name = "target"
    placeholder = "%s"
    quote_char = '"'

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(self.__class__.__module__)

    @abstractmethod
    def connect(self) -> None:
        """Open the connection."""
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the connection; safe to call more than once."""
        pass

    @property
    @abstractmethod
    def connected(self) -> bool:
        pass

    @abstractmethod
    def execute(self, statement: str, params: Sequence[Any] = ()) -> Union[Rows, int]:
        """
        Execute one statement.

        Args:
            statement: SQL text using this store's placeholder
            params: Positional parameters

        Returns:
            Rows for queries, affected row count for everything else
        """
        pass

    @abstractmethod
    def list_tables(self) -> List[str]:
        pass

    @abstractmethod
    def list_columns(self, table: str) -> List[str]:
        pass

    @abstractmethod
    def disable_referential_checks(self) -> None:
        pass

    @abstractmethod
    def enable_referential_checks(self) -> None:
        pass

    def ping(self) -> bool:
        """Probe the connection, connecting first if needed."""
        if not self.connected:
            self.connect()
        self.execute("SELECT 1")
        return True

    def quote(self, identifier: str) -> str:
        """Quote a table or column name after checking it is a plain identifier."""
        if not isinstance(identifier, str) or not _IDENTIFIER.match(identifier):
            raise ConfigurationError(f"Invalid SQL identifier: {identifier!r}")
        return f"{self.quote_char}{identifier}{self.quote_char}"

    def query(self, statement: str, params: Sequence[Any] = ()) -> Rows:
        result = self.execute(statement, params)
        return result if isinstance(result, list) else []

    def scalar(self, statement: str, params: Sequence[Any] = ()) -> Any:
        """Return the first column of the first row, or None."""
        rows = self.query(statement, params)
        if not rows:
            return None
        return next(iter(rows[0].values()))

    def count_rows(self, table: str) -> int:
        return int(self.scalar(f"SELECT COUNT(*) AS count FROM {self.quote(table)}") or 0)

    def database_size_mb(self) -> Optional[float]:
        """Approximate size of the target database, when the store can tell."""
        return None

    def __enter__(self) -> "TargetStore":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
