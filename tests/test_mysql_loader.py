"""Tests for the MySQL target store with PyMySQL mocked out."""

from unittest.mock import MagicMock, call, patch

import pymysql
import pytest
from pymysql.cursors import DictCursor

from store_migrate.errors import ConfigurationError, ConnectivityError, StatementError
from store_migrate.loaders.mysql_loader import MySQLTarget


@pytest.fixture
def cursor():
    cursor = MagicMock()
    cursor.description = None
    cursor.execute.return_value = 0
    return cursor


@pytest.fixture
def connection(cursor):
    connection = MagicMock()
    connection.open = True
    connection.cursor.return_value.__enter__.return_value = cursor
    return connection


@pytest.fixture
def mysql_target(connection):
    with patch("store_migrate.loaders.mysql_loader.pymysql.connect", return_value=connection) as connect:
        target = MySQLTarget(host="db", port=3307, user="migrator", password="pw", database="portal")
        target.connect()
        target.connect_mock = connect
        yield target


class TestConnection:
    """Opening and closing the connection"""

    def test_connect_arguments(self, mysql_target):
        kwargs = mysql_target.connect_mock.call_args.kwargs
        assert kwargs["host"] == "db"
        assert kwargs["port"] == 3307
        assert kwargs["database"] == "portal"
        assert kwargs["cursorclass"] is DictCursor
        assert kwargs["autocommit"] is True
        assert kwargs["charset"] == "utf8mb4"

    def test_session_time_zone_is_utc(self, mysql_target, cursor):
        assert cursor.execute.call_args_list[0] == call("SET time_zone = '+00:00'", None)

    def test_connect_failure(self):
        error = pymysql.err.OperationalError(2003, "Can't connect")
        with patch("store_migrate.loaders.mysql_loader.pymysql.connect", side_effect=error):
            with pytest.raises(ConnectivityError) as exc_info:
                MySQLTarget(database="portal").connect()
        assert exc_info.value.operation == "connect"

    def test_close_is_idempotent(self, mysql_target, connection):
        mysql_target.close()
        mysql_target.close()
        connection.close.assert_called_once()
        assert not mysql_target.connected

    def test_execute_without_connection(self):
        with pytest.raises(ConnectivityError):
            MySQLTarget().execute("SELECT 1")


class TestExecute:
    """Statement execution and error translation"""

    def test_query_returns_rows(self, mysql_target, cursor):
        cursor.description = (("id",),)
        cursor.fetchall.return_value = [{"id": "a1"}]
        assert mysql_target.execute("SELECT id FROM `accounts` WHERE id = %s", ("a1",)) == [{"id": "a1"}]
        cursor.execute.assert_called_with("SELECT id FROM `accounts` WHERE id = %s", ("a1",))

    def test_write_returns_affected_count(self, mysql_target, cursor):
        cursor.execute.return_value = 1
        assert mysql_target.execute("INSERT INTO `accounts` (`id`) VALUES (%s)", ["a1"]) == 1

    def test_lost_connection(self, mysql_target, cursor):
        cursor.execute.side_effect = pymysql.err.OperationalError(2006, "MySQL server has gone away")
        with pytest.raises(ConnectivityError):
            mysql_target.execute("INSERT INTO `accounts` (`id`) VALUES (%s)", ["a1"])

    def test_interface_error_is_connectivity(self, mysql_target, cursor):
        cursor.execute.side_effect = pymysql.err.InterfaceError(0, "")
        with pytest.raises(ConnectivityError):
            mysql_target.execute("SELECT 1")

    def test_constraint_violation(self, mysql_target, cursor):
        cursor.execute.side_effect = pymysql.err.IntegrityError(1062, "Duplicate entry")
        with pytest.raises(StatementError):
            mysql_target.execute("INSERT INTO `accounts` (`id`) VALUES (%s)", ["a1"])

    def test_scalar(self, mysql_target, cursor):
        cursor.description = (("count",),)
        cursor.fetchall.return_value = [{"count": 12}]
        assert mysql_target.count_rows("accounts") == 12
        assert "`accounts`" in cursor.execute.call_args.args[0]


class TestSchema:
    """Schema introspection and referential checks"""

    def test_list_tables(self, mysql_target, cursor):
        cursor.description = (("name",),)
        cursor.fetchall.return_value = [{"name": "employees"}, {"name": "issues"}]
        assert mysql_target.list_tables() == ["employees", "issues"]
        assert "information_schema.TABLES" in cursor.execute.call_args.args[0]

    def test_list_columns(self, mysql_target, cursor):
        cursor.description = (("name",),)
        cursor.fetchall.return_value = [{"name": "id"}, {"name": "status"}]
        assert mysql_target.list_columns("issues") == ["id", "status"]
        assert cursor.execute.call_args.args[1] == ("issues",)

    def test_referential_checks(self, mysql_target, cursor):
        mysql_target.disable_referential_checks()
        assert cursor.execute.call_args == call("SET FOREIGN_KEY_CHECKS = 0", None)
        mysql_target.enable_referential_checks()
        assert cursor.execute.call_args == call("SET FOREIGN_KEY_CHECKS = 1", None)

    def test_quote(self, mysql_target):
        assert mysql_target.quote("issue_comments") == "`issue_comments`"
        with pytest.raises(ConfigurationError):
            mysql_target.quote("issues`; DROP TABLE issues; --")
