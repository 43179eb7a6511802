"""MySQL target store backed by PyMySQL."""

import logging
from typing import Any, List, Optional, Sequence, Union

import pymysql
from pymysql.cursors import DictCursor

from .base import Rows, TargetStore
from ..errors import ConnectivityError, StatementError

logger = logging.getLogger(__name__)

# CR_CONN_HOST_ERROR, CR_SERVER_GONE_ERROR, CR_SERVER_LOST, CR_SERVER_LOST_EXTENDED
CONNECTION_ERROR_CODES = {2003, 2006, 2013, 2055}


class MySQLTarget(TargetStore):
    """MySQL target store using one autocommit connection."""

    store_name = "mysql"
    placeholder = "%s"
    quote_char = "`"

    def __init__(
        self,
        host: str = "localhost",
        port: int = 3306,
        user: str = "root",
        password: str = "",
        database: str = "",
        connect_timeout: int = 10,
        charset: str = "utf8mb4",
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the MySQL target.

        Args:
            host: Server host
            port: Server port
            user: User name
            password: Password
            database: Schema holding the migrated tables
            connect_timeout: Connection timeout in seconds
            charset: Connection character set
            logger: Logger for progress output
        """
        super().__init__(logger)
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.connect_timeout = connect_timeout
        self.charset = charset
        self._connection = None

    @property
    def connected(self) -> bool:
        return self._connection is not None and self._connection.open

    def connect(self) -> None:
        if self.connected:
            return
        try:
            self._connection = pymysql.connect(
                host=self.host,
                port=self.port,
                user=self.user,
                password=self.password,
                database=self.database,
                charset=self.charset,
                cursorclass=DictCursor,
                autocommit=True,
                connect_timeout=self.connect_timeout,
            )
        except pymysql.MySQLError as e:
            raise ConnectivityError(
                f"Cannot connect to MySQL at {self.host}:{self.port}/{self.database}: {e}",
                store=self.store_name,
                operation="connect",
            ) from e

        # Canonical timestamps are written as UTC
        self.execute("SET time_zone = '+00:00'")
        self.logger.info(f"Connected to MySQL {self.host}:{self.port}/{self.database}")

    def close(self) -> None:
        if self._connection is None:
            return
        try:
            if self._connection.open:
                self._connection.close()
        except pymysql.MySQLError as e:
            self.logger.warning(f"Error closing MySQL connection: {e}")
        finally:
            self._connection = None
            self.logger.info("MySQL connection closed")

    def _is_connection_error(self, error: Exception) -> bool:
        if isinstance(error, pymysql.err.InterfaceError):
            return True
        code = error.args[0] if error.args else None
        return code in CONNECTION_ERROR_CODES

    def execute(self, statement: str, params: Sequence[Any] = ()) -> Union[Rows, int]:
        if self._connection is None:
            raise ConnectivityError(
                "MySQL connection is not open", store=self.store_name, operation="execute"
            )

        try:
            with self._connection.cursor() as cursor:
                affected = cursor.execute(statement, tuple(params) or None)
                if cursor.description is not None:
                    return list(cursor.fetchall())
                return affected
        except pymysql.MySQLError as e:
            if self._is_connection_error(e):
                raise ConnectivityError(
                    f"Lost connection to MySQL: {e}",
                    store=self.store_name,
                    operation=statement.split(None, 1)[0].upper() if statement else "execute",
                ) from e
            raise StatementError(str(e), {"statement": statement}) from e

    def list_tables(self) -> List[str]:
        rows = self.query(
            "SELECT TABLE_NAME AS name FROM information_schema.TABLES "
            "WHERE TABLE_SCHEMA = DATABASE() ORDER BY TABLE_NAME"
        )
        return [row["name"] for row in rows]

    def list_columns(self, table: str) -> List[str]:
        rows = self.query(
            "SELECT COLUMN_NAME AS name FROM information_schema.COLUMNS "
            "WHERE TABLE_SCHEMA = DATABASE() AND TABLE_NAME = %s "
            "ORDER BY ORDINAL_POSITION",
            (table,),
        )
        return [row["name"] for row in rows]

    def disable_referential_checks(self) -> None:
        self.execute("SET FOREIGN_KEY_CHECKS = 0")
        self.logger.info("Foreign key checks disabled")

    def enable_referential_checks(self) -> None:
        self.execute("SET FOREIGN_KEY_CHECKS = 1")
        self.logger.info("Foreign key checks enabled")

    def database_size_mb(self) -> Optional[float]:
        value = self.scalar(
            "SELECT ROUND(SUM(data_length + index_length) / 1024 / 1024, 2) AS size_mb "
            "FROM information_schema.TABLES WHERE TABLE_SCHEMA = DATABASE()"
        )
        return float(value) if value is not None else None
