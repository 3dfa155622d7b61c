"""Tests for chunkexport.lib.connections module."""

import sqlite3
import sys
from unittest.mock import MagicMock, patch

import pytest

from chunkexport.lib.connections import (
    _connections,
    build_odbc_connection_string,
    close_all_connections,
    close_connection,
    dialect_for,
    get_connection,
    get_connection_count,
    list_connections,
)
from chunkexport.lib.errors import ConfigurationError, ConnectionError


class TestConnectionRegistry:
    """Tests for connection registry management."""

    def test_initial_state_empty(self):
        assert get_connection_count() == 0
        assert list_connections() == []

    def test_sqlite_connection_is_reused(self, sqlite_db):
        first = get_connection("posts", "database_sqlite", {"path": str(sqlite_db)})
        second = get_connection("posts", "database_sqlite", {"path": "ignored"})

        assert first is second
        assert isinstance(first, sqlite3.Connection)
        assert list_connections() == ["posts"]

    def test_close_connection(self):
        mock_conn = MagicMock()
        _connections["db"] = mock_conn

        assert close_connection("db") is True
        mock_conn.close.assert_called_once()
        assert close_connection("db") is False

    def test_close_errors_are_logged_not_raised(self):
        mock_conn = MagicMock()
        mock_conn.close.side_effect = RuntimeError("already closed")
        _connections["db"] = mock_conn

        assert close_connection("db") is True
        assert get_connection_count() == 0

    def test_close_all(self):
        _connections["a"] = MagicMock()
        _connections["b"] = MagicMock()
        close_all_connections()
        assert get_connection_count() == 0

    def test_sqlite_requires_path(self):
        with pytest.raises(ConfigurationError):
            get_connection("x", "database_sqlite", {})

    def test_unsupported_source_type(self):
        with pytest.raises(ConfigurationError):
            get_connection("x", "database_oracle", {})


class TestDialects:
    """Tests for dialect_for."""

    @pytest.mark.parametrize(
        "source_type,dialect",
        [
            ("database_mysql", "mysql"),
            ("database_mssql", "mssql"),
            ("database_postgres", "postgres"),
            ("database_db2", "db2"),
            ("database_sqlite", "sqlite"),
        ],
    )
    def test_mapping(self, source_type, dialect):
        assert dialect_for(source_type) == dialect


class TestOdbcConnectionStrings:
    """Tests for ODBC connection string building."""

    def test_mysql_defaults(self):
        conn_str = build_odbc_connection_string(
            "database_mysql", {"host": "db", "database": "wp", "user": "u", "password": "p"}
        )
        assert conn_str == (
            "DRIVER={MySQL ODBC 8.0 Unicode Driver};SERVER=db;PORT=3306;"
            "DATABASE=wp;UID=u;PWD=p;"
        )

    def test_mssql_trusted_connection(self):
        conn_str = build_odbc_connection_string("database_mssql", {"host": "sql01", "database": "Posts"})
        assert "SERVER=sql01,1433" in conn_str
        assert "Trusted_Connection=yes" in conn_str

    def test_db2_format(self):
        conn_str = build_odbc_connection_string("database_db2", {"host": "mainframe", "database": "DOCS"})
        assert "HOSTNAME=mainframe" in conn_str
        assert "PROTOCOL=TCPIP" in conn_str
        assert "PORT=50000" in conn_str

    def test_passed_options_are_used_verbatim(self):
        conn_str = build_odbc_connection_string("database_postgres", {"host": "db", "password": "pa$$word"})
        assert "SERVER=db" in conn_str
        assert "PWD=pa$$word" in conn_str

    def test_driver_override(self):
        conn_str = build_odbc_connection_string("database_mysql", {"driver": "MariaDB ODBC 3.1 Driver"})
        assert conn_str.startswith("DRIVER={MariaDB ODBC 3.1 Driver};")


class TestOdbcConnect:
    """Tests for pyodbc connection creation (pyodbc mocked)."""

    def test_connects_with_built_string(self):
        fake_pyodbc = MagicMock()
        fake_pyodbc.Error = Exception
        with patch.dict(sys.modules, {"pyodbc": fake_pyodbc}):
            con = get_connection("wp", "database_mysql", {"host": "db", "timeout": 5})

        assert con is fake_pyodbc.connect.return_value
        args, kwargs = fake_pyodbc.connect.call_args
        assert args[0].startswith("DRIVER={MySQL ODBC 8.0 Unicode Driver};SERVER=db;")
        assert kwargs == {"timeout": 5}

    def test_connect_failure_raises_connection_error(self):
        class FakeOdbcError(Exception):
            pass

        fake_pyodbc = MagicMock()
        fake_pyodbc.Error = FakeOdbcError
        fake_pyodbc.connect.side_effect = FakeOdbcError("login failed")
        with patch.dict(sys.modules, {"pyodbc": fake_pyodbc}):
            with pytest.raises(ConnectionError) as exc_info:
                get_connection("wp", "database_mysql", {"host": "db"})

        assert exc_info.value.connection_name == "wp"
        assert exc_info.value.host == "db"
        assert get_connection_count() == 0

    def test_env_vars_expanded_before_connecting(self, monkeypatch):
        monkeypatch.setenv("DB_HOST", "prod-db")
        monkeypatch.setenv("DB_PASSWORD", "s3cret")
        fake_pyodbc = MagicMock()
        fake_pyodbc.Error = Exception
        with patch.dict(sys.modules, {"pyodbc": fake_pyodbc}):
            get_connection("wp", "database_postgres", {"host": "${DB_HOST}", "password": "$DB_PASSWORD"})

        conn_str = fake_pyodbc.connect.call_args[0][0]
        assert "SERVER=prod-db" in conn_str
        assert "PWD=s3cret" in conn_str

    def test_unset_variable_fails_before_connecting(self, monkeypatch):
        monkeypatch.delenv("DB_PASSWORD_UNSET", raising=False)
        fake_pyodbc = MagicMock()
        with patch.dict(sys.modules, {"pyodbc": fake_pyodbc}):
            with pytest.raises(ConfigurationError) as exc_info:
                get_connection("wp", "database_mysql", {"password": "${DB_PASSWORD_UNSET}"})

        assert exc_info.value.field == "connection.password"
        fake_pyodbc.connect.assert_not_called()
        assert get_connection_count() == 0

    def test_sqlite_path_from_environment(self, sqlite_db, monkeypatch):
        monkeypatch.setenv("POSTS_DB", str(sqlite_db))
        con = get_connection("posts", "database_sqlite", {"path": "${POSTS_DB}"})
        assert con.execute("SELECT COUNT(*) FROM posts").fetchone()[0] == 4
