"""Connection registry for database sources.

Reuses one DB-API connection per connection name, so exporting several
columns from the same database does not open a connection per column.

Server databases (MySQL, SQL Server, PostgreSQL, DB2) are reached through
pyodbc with a generated ODBC connection string. ``database_sqlite`` opens
a local file with the standard library sqlite3 module.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List

from chunkexport.lib.env import expand_connection_options
from chunkexport.lib.errors import ConfigurationError, ConnectionError

logger = logging.getLogger(__name__)

__all__ = [
    "SOURCE_TYPES",
    "build_odbc_connection_string",
    "dialect_for",
    "close_all_connections",
    "close_connection",
    "get_connection",
    "get_connection_count",
    "list_connections",
]

# source_type -> (dialect, default ODBC driver, default port)
SOURCE_TYPES: Dict[str, tuple] = {
    "database_mysql": ("mysql", "MySQL ODBC 8.0 Unicode Driver", 3306),
    "database_mssql": ("mssql", "ODBC Driver 17 for SQL Server", 1433),
    "database_postgres": ("postgres", "PostgreSQL Unicode", 5432),
    "database_db2": ("db2", "IBM DB2 ODBC DRIVER", 50000),
    "database_sqlite": ("sqlite", None, None),
}

# Connection registry - keyed by connection_name
_connections: Dict[str, Any] = {}


def dialect_for(source_type: str) -> str:
    """Map a source_type (e.g. "database_mysql") to its SQL dialect name."""
    try:
        return SOURCE_TYPES[source_type][0]
    except KeyError:
        raise ConfigurationError(
            f"Unsupported database source type: {source_type}",
            field="source_type",
            value=source_type,
            suggestion=f"Use one of: {', '.join(sorted(SOURCE_TYPES))}",
        ) from None


def get_connection(
    connection_name: str,
    source_type: str,
    options: Dict[str, Any],
) -> Any:
    """Get or create a DB-API connection by name.

    Args:
        connection_name: Unique name for this connection
        source_type: One of SOURCE_TYPES
        options: host, port, database, user, password, driver (ODBC) or
            path (sqlite). ${VAR} references are expanded.

    Returns:
        DB-API 2.0 connection

    Raises:
        ConfigurationError: Unknown source type or unset ${VAR} in options
        ConnectionError: The driver could not connect
    """
    if connection_name in _connections:
        logger.debug("Reusing existing connection: %s", connection_name)
        return _connections[connection_name]

    dialect = dialect_for(source_type)
    logger.info("Creating new connection: %s (%s)", connection_name, dialect)
    options = expand_connection_options(options)

    if dialect == "sqlite":
        con = _create_sqlite_connection(connection_name, options)
    else:
        con = _create_odbc_connection(connection_name, source_type, options)

    _connections[connection_name] = con
    return con


def _create_sqlite_connection(connection_name: str, options: Dict[str, Any]) -> sqlite3.Connection:
    path = str(options.get("path") or options.get("database") or "")
    if not path:
        raise ConfigurationError(
            "SQLite connections need a 'path' option",
            field="connection.path",
        )
    try:
        return sqlite3.connect(path)
    except sqlite3.Error as exc:
        raise ConnectionError(
            f"Could not open SQLite database {path}",
            connection_name=connection_name,
            cause=exc,
        ) from exc


def build_odbc_connection_string(source_type: str, options: Dict[str, Any]) -> str:
    """Build a pyodbc connection string for a server database.

    ``options`` are expected to be expanded already (see get_connection).
    """
    dialect = dialect_for(source_type)
    _, default_driver, default_port = SOURCE_TYPES[source_type]

    host = str(options.get("host", "localhost"))
    database = str(options.get("database", ""))
    user = str(options.get("user", ""))
    password = str(options.get("password", ""))
    port = options.get("port", default_port)
    driver = options.get("driver", default_driver)

    if dialect == "db2":
        parts = [
            f"DRIVER={{{driver}}}",
            f"DATABASE={database}",
            f"HOSTNAME={host}",
            f"PORT={port}",
            "PROTOCOL=TCPIP",
            f"UID={user}",
            f"PWD={password}",
        ]
    elif dialect == "mssql":
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={host},{port}",
            f"DATABASE={database}",
        ]
        if user:
            parts += [f"UID={user}", f"PWD={password}"]
        else:
            parts.append("Trusted_Connection=yes")
    else:
        parts = [
            f"DRIVER={{{driver}}}",
            f"SERVER={host}",
            f"PORT={port}",
            f"DATABASE={database}",
            f"UID={user}",
            f"PWD={password}",
        ]
    return ";".join(parts) + ";"


def _create_odbc_connection(
    connection_name: str, source_type: str, options: Dict[str, Any]
) -> Any:
    try:
        import pyodbc
    except ImportError:
        raise ImportError(
            f"{source_type} support requires pyodbc. "
            "Install with: pip install pyodbc"
        )

    conn_str = build_odbc_connection_string(source_type, options)
    timeout = int(options.get("timeout", 0))
    try:
        return pyodbc.connect(conn_str, timeout=timeout)
    except pyodbc.Error as exc:
        raise ConnectionError(
            f"Could not connect to {source_type}",
            connection_name=connection_name,
            host=str(options.get("host", "")),
            cause=exc,
        ) from exc


def close_connection(connection_name: str) -> bool:
    """Close and remove a connection from the registry.

    Returns:
        True if connection was found and closed, False otherwise
    """
    con = _connections.pop(connection_name, None)
    if con is None:
        return False

    try:
        con.close()
    except Exception as exc:
        logger.warning("Error closing connection %s: %s", connection_name, exc)
    logger.debug("Closed connection: %s", connection_name)
    return True


def close_all_connections() -> None:
    for name in list(_connections):
        close_connection(name)


def list_connections() -> List[str]:
    return list(_connections.keys())


def get_connection_count() -> int:
    return len(_connections)
