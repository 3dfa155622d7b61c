"""Chunk sources backed by SQL databases.

``SqlChunkSource`` fetches a byte range of one column value with a single
query per chunk. The column is turned into bytes first (a binary cast, or
UTF-8 encoding for PostgreSQL text columns), so offsets and lengths count
bytes, never characters, and multi-byte text is never split by a
character-aware SUBSTRING. PostgreSQL ``bytea`` columns use the
``postgres_bytea`` dialect, which reads them as they are.

Offsets and lengths are bound as ``?`` parameters (pyodbc and sqlite3 both
use qmark style); table and column names are quoted identifiers.

Row semantics:
    - The row exists and the range starts past the end of the value, or
      the value is SQL NULL: ``b""`` (end of stream).
    - The query returns no row at all (empty table, or the ``row_key`` row
      is gone): ``RowNotFoundError``. A vanished row is reported, never
      mistaken for a finished export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from chunkexport.lib.errors import ConfigurationError, RowNotFoundError, SourceFetchError

logger = logging.getLogger(__name__)

__all__ = ["DIALECTS", "RowKey", "SqlChunkSource", "SqlDialect", "quote_identifier"]


@dataclass(frozen=True)
class SqlDialect:
    """How one database spells a byte-exact range fetch."""

    name: str
    fetch_expression: str
    length_expression: str
    quote_open: str = '"'
    quote_close: str = '"'
    select_prefix: str = "SELECT "
    limit_clause: str = " LIMIT 1"


DIALECTS: Dict[str, SqlDialect] = {
    "mysql": SqlDialect(
        name="mysql",
        fetch_expression="SUBSTRING(CAST({column} AS BINARY), ?, ?)",
        length_expression="LENGTH(CAST({column} AS BINARY))",
        quote_open="`",
        quote_close="`",
    ),
    "mssql": SqlDialect(
        name="mssql",
        fetch_expression="SUBSTRING(CAST({column} AS VARBINARY(MAX)), ?, ?)",
        length_expression="DATALENGTH({column})",
        quote_open="[",
        quote_close="]",
        select_prefix="SELECT TOP 1 ",
        limit_clause="",
    ),
    "postgres": SqlDialect(
        name="postgres",
        fetch_expression="SUBSTRING(convert_to({column}, 'UTF8') FROM ? FOR ?)",
        length_expression="OCTET_LENGTH(convert_to({column}, 'UTF8'))",
    ),
    # bytea columns are already bytes; a text-to-bytea cast would parse escapes
    "postgres_bytea": SqlDialect(
        name="postgres_bytea",
        fetch_expression="SUBSTRING({column} FROM ? FOR ?)",
        length_expression="OCTET_LENGTH({column})",
    ),
    "db2": SqlDialect(
        name="db2",
        fetch_expression="SUBSTR(CAST({column} AS BLOB), ?, ?)",
        length_expression="LENGTH(CAST({column} AS BLOB))",
        limit_clause=" FETCH FIRST 1 ROWS ONLY",
    ),
    "sqlite": SqlDialect(
        name="sqlite",
        fetch_expression="substr(CAST({column} AS BLOB), ?, ?)",
        length_expression="length(CAST({column} AS BLOB))",
    ),
}


@dataclass(frozen=True)
class RowKey:
    """Selects the single row holding the exported value (WHERE column = value)."""

    column: str
    value: Any


def quote_identifier(name: str, dialect: SqlDialect) -> str:
    """Quote a possibly schema-qualified identifier ("dbo.posts")."""
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("SQL identifier must be a non-empty string", value=name)

    parts = name.split(".")
    if any(not part.strip() for part in parts):
        raise ConfigurationError(f"Invalid SQL identifier: {name!r}", value=name)

    escaped_close = dialect.quote_close * 2
    return ".".join(
        f"{dialect.quote_open}{part.replace(dialect.quote_close, escaped_close)}{dialect.quote_close}"
        for part in parts
    )


class SqlChunkSource:
    """ChunkSource over a DB-API connection.

    Args:
        connection: DB-API 2.0 connection using qmark parameters
        dialect: Dialect name (mysql, mssql, postgres, db2, sqlite) or SqlDialect
        row_key: Optional row filter; without it the first row returned by
            the database is read

    Example:
        >>> con = get_connection("wp", "database_mysql", {"host": "db", "database": "wp"})
        >>> source = SqlChunkSource(con, "mysql", row_key=RowKey("ID", 42))
        >>> source.fetch_range("wp_posts", "post_content", 1, 128)
    """

    def __init__(
        self,
        connection: Any,
        dialect: Any = "mysql",
        row_key: Optional[RowKey] = None,
    ) -> None:
        if isinstance(dialect, SqlDialect):
            self.dialect = dialect
        else:
            try:
                self.dialect = DIALECTS[dialect]
            except KeyError:
                raise ConfigurationError(
                    f"Unknown SQL dialect {dialect!r}",
                    field="dialect",
                    value=dialect,
                    suggestion=f"Use one of: {', '.join(sorted(DIALECTS))}",
                ) from None
        self.connection = connection
        self.row_key = row_key

    def build_query(self, table: str, column: str, expression: str) -> Tuple[str, List[Any]]:
        """Return SQL selecting ``expression`` for the target row, plus WHERE params."""
        d = self.dialect
        select = expression.format(column=quote_identifier(column, d))
        sql = f"{d.select_prefix}{select} AS chunk FROM {quote_identifier(table, d)}"
        params: List[Any] = []
        if self.row_key is not None:
            sql += f" WHERE {quote_identifier(self.row_key.column, d)} = ?"
            params.append(self.row_key.value)
        return sql + d.limit_clause, params

    def fetch_range(
        self, table: str, column: str, offset: int, length: int
    ) -> Optional[bytes]:
        if offset < 1 or length < 1:
            raise ConfigurationError(
                f"Invalid range: offset={offset}, length={length}",
                table=table,
                column=column,
            )

        sql, where_params = self.build_query(table, column, self.dialect.fetch_expression)
        row = self._fetch_one(sql, [offset, length, *where_params], table, column, offset)
        value = row[0]
        if value is None:
            return b""
        if not isinstance(value, (bytes, bytearray, memoryview)):
            raise SourceFetchError(
                f"Expected binary data, driver returned {type(value).__name__}",
                table=table,
                column=column,
                offset=offset,
            )
        return bytes(value)

    def column_length(self, table: str, column: str) -> int:
        """Byte length of the column value (0 for NULL)."""
        sql, params = self.build_query(table, column, self.dialect.length_expression)
        row = self._fetch_one(sql, params, table, column, None)
        return int(row[0] or 0)

    def _fetch_one(
        self,
        sql: str,
        params: Sequence[Any],
        table: str,
        column: str,
        offset: Optional[int],
    ) -> Sequence[Any]:
        logger.debug("Executing %s with %s", sql, list(params))
        try:
            cursor = self.connection.cursor()
            try:
                cursor.execute(sql, list(params))
                row = cursor.fetchone()
            finally:
                cursor.close()
        except Exception as exc:
            raise SourceFetchError(
                f"Query failed: {exc}",
                table=table,
                column=column,
                offset=offset,
                cause=exc,
                details={"sql": sql},
            ) from exc

        if row is None:
            details: Dict[str, Any] = {}
            if self.row_key is not None:
                details["row_key"] = f"{self.row_key.column}={self.row_key.value!r}"
            raise RowNotFoundError(
                "No row found for the exported column",
                table=table,
                column=column,
                offset=offset,
                details=details,
            )
        return row
