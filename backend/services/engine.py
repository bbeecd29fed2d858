"""Relational engine adapter.

Wraps an ``AsyncSession`` so that physical-table work (materializing
query results, resetting the ordering column, loading rows) runs in the same
transaction as the metadata rows written through the repositories. The caller
owns the unit of work: nothing in this module commits.

Supported dialects are PostgreSQL and SQLite. The only dialect-specific
statement is the ordering column reset.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger
from sqlalchemy import Column, Integer, MetaData, Table, Text, column, insert, inspect, table, text
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from exceptions import SQLValidationError
from models.dataset import ORDERING_COLUMN, ColumnInfo
from services.naming import ensure_table_name, quote_identifier


@dataclass
class Field:
    """Column metadata of a query result."""
    name: str
    type_id: Any = None


@dataclass
class QueryResult:
    """Rows, field metadata and row count of one statement."""
    rows: List[Dict[str, Any]] = field(default_factory=list)
    fields: List[Field] = field(default_factory=list)
    row_count: int = 0

    @property
    def columns(self) -> List[str]:
        return [f.name for f in self.fields]

    def as_lists(self) -> List[List[Any]]:
        return [[row.get(name) for name in self.columns] for row in self.rows]


def error_message(exc: BaseException) -> str:
    """Best human-readable message for an engine error."""
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return str(exc.orig)
    return str(exc)


def _to_query_result(result: Any) -> QueryResult:
    if not result.returns_rows:
        return QueryResult(row_count=max(result.rowcount or 0, 0))

    cursor = getattr(result.context, "cursor", None)
    description = getattr(cursor, "description", None) or []
    type_ids = {entry[0]: entry[1] for entry in description}

    names = list(result.keys())
    rows = [dict(row) for row in result.mappings().all()]
    return QueryResult(
        rows=rows,
        fields=[Field(name=name, type_id=type_ids.get(name)) for name in names],
        row_count=len(rows),
    )


class SQLEngine:
    """Statement execution and table management bound to one session."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def dialect_name(self) -> str:
        connection = await self._session.connection()
        return connection.dialect.name

    async def query(self, sql: str, params: Optional[Dict[str, Any]] = None) -> QueryResult:
        """Execute a statement with bound parameters."""
        logger.debug("[Engine] {} {}", sql.strip(), params or {})
        result = await self._session.execute(text(sql), params or {})
        return _to_query_result(result)

    async def query_raw(self, sql: str) -> QueryResult:
        """Execute SQL as-is, without bind-parameter parsing.

        Used for agent-supplied queries, where ``:name`` sequences are data,
        not parameters.
        """
        logger.debug("[Engine] {}", sql.strip())
        connection = await self._session.connection()
        result = await connection.exec_driver_sql(sql)
        return _to_query_result(result)

    async def table_exists(self, table_name: str) -> bool:
        return await self._session.run_sync(
            lambda sync_session: inspect(sync_session.connection()).has_table(table_name)
        )

    async def describe_columns(self, table_name: str) -> List[ColumnInfo]:
        """Column names and types of a physical table, in table order."""
        ensure_table_name(table_name)
        raw_columns = await self._session.run_sync(
            lambda sync_session: inspect(sync_session.connection()).get_columns(table_name)
        )
        return [ColumnInfo(name=c["name"], data_type=str(c["type"])) for c in raw_columns]

    async def get_columns(self, table_name: str) -> List[str]:
        return [c.name for c in await self.describe_columns(table_name)]

    async def drop_table(self, table_name: str) -> None:
        await self.query(f"DROP TABLE IF EXISTS {ensure_table_name(table_name)}")

    async def count_rows(self, table_name: str) -> int:
        result = await self.query(f"SELECT COUNT(*) AS total FROM {ensure_table_name(table_name)}")
        return int(result.rows[0]["total"])

    async def materialize(self, table_name: str, query: str) -> List[str]:
        """Create ``table_name`` from ``query`` and give it a fresh ordering column.

        Returns:
            The resulting column list, ordering column included.

        Raises:
            SQLAlchemyError: If the engine rejects any statement.
        """
        ensure_table_name(table_name)
        await self.query_raw(f"CREATE TABLE {table_name} AS\n{query}")
        await self.reset_ordering_column(table_name)
        return await self.get_columns(table_name)

    async def reset_ordering_column(self, table_name: str) -> None:
        """Regenerate ``___index___`` as 1..N in the table's row order."""
        ensure_table_name(table_name)
        existing = await self.get_columns(table_name)

        if await self.dialect_name() == "postgresql":
            if ORDERING_COLUMN in existing:
                await self.query(f"ALTER TABLE {table_name} DROP COLUMN {ORDERING_COLUMN}")
            await self.query(f"ALTER TABLE {table_name} ADD COLUMN {ORDERING_COLUMN} SERIAL PRIMARY KEY")
            return

        # SQLite: rowid of a freshly materialized table follows the result order
        if ORDERING_COLUMN not in existing:
            await self.query(f"ALTER TABLE {table_name} ADD COLUMN {ORDERING_COLUMN} INTEGER")
        await self.query(f"UPDATE {table_name} SET {ORDERING_COLUMN} = rowid")

    async def create_base_table(self, table_name: str, columns: Sequence[str]) -> None:
        """Create a dataset base table: ordering key plus one TEXT column per header."""
        ensure_table_name(table_name)
        base = Table(
            table_name,
            MetaData(),
            Column(ORDERING_COLUMN, Integer, primary_key=True, autoincrement=True),
            *[Column(name, Text, nullable=False) for name in columns],
        )
        await self._session.run_sync(lambda sync_session: base.create(sync_session.connection()))

    async def insert_rows(self, table_name: str, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> None:
        if not rows:
            return
        target = table(ensure_table_name(table_name), *[column(name) for name in columns])
        await self._session.execute(
            insert(target),
            [dict(zip(columns, row)) for row in rows],
        )

    async def fetch_page(self, table_name: str, columns: Sequence[str], limit: int, offset: int) -> QueryResult:
        """Rows of ``table_name`` ordered by the ordering column."""
        projection = ", ".join(quote_identifier(name) for name in columns)
        return await self.query(
            f"SELECT {projection} FROM {ensure_table_name(table_name)} "
            f"ORDER BY {ORDERING_COLUMN} ASC LIMIT :limit OFFSET :offset",
            {"limit": limit, "offset": offset},
        )


_READ_PREFIX_RE = re.compile(r"^[(\s]*(SELECT|WITH)\b", re.IGNORECASE)
FORBIDDEN_KEYWORDS = (
    "INSERT", "UPDATE", "DELETE", "MERGE", "UPSERT", "DROP", "ALTER", "CREATE",
    "TRUNCATE", "GRANT", "REVOKE", "ATTACH", "DETACH", "COPY", "PRAGMA", "VACUUM",
)
_FORBIDDEN_RE = re.compile(r"\b(" + "|".join(FORBIDDEN_KEYWORDS) + r")\b", re.IGNORECASE)


def _code_only(sql: str) -> str:
    """Blank out string literals, quoted identifiers and comments."""
    out: List[str] = []
    i = 0
    while i < len(sql):
        char = sql[i]
        if char in ("'", '"'):
            end = sql.find(char, i + 1)
            while end != -1 and sql[end + 1:end + 2] == char:
                end = sql.find(char, end + 2)
            i = len(sql) if end == -1 else end + 1
            out.append(" ")
        elif sql.startswith("--", i):
            end = sql.find("\n", i)
            i = len(sql) if end == -1 else end
            out.append(" ")
        elif sql.startswith("/*", i):
            end = sql.find("*/", i + 2)
            i = len(sql) if end == -1 else end + 2
            out.append(" ")
        else:
            out.append(char)
            i += 1
    return "".join(out)


def validate_read_query(sql: str) -> str:
    """Reject anything but a single read-only query.

    The query must start with ``SELECT`` or ``WITH`` and must not contain
    data-modifying or schema keywords outside of literals and comments.

    Returns:
        The query with surrounding whitespace removed.

    Raises:
        SQLValidationError: If the query is empty, ends with a terminator,
            contains more than one statement or is not read-only.
    """
    query = (sql or "").strip()
    code = _code_only(query).strip()
    if not code:
        raise SQLValidationError("Query is empty")
    if code.endswith(";"):
        raise SQLValidationError("Query must not end with a statement terminator ';'")
    if ";" in code:
        raise SQLValidationError("Query must be a single statement")
    if not _READ_PREFIX_RE.match(code):
        raise SQLValidationError("Query must be a SELECT or WITH statement")
    forbidden = _FORBIDDEN_RE.search(code)
    if forbidden:
        raise SQLValidationError(f"Query must be read-only, found {forbidden.group(1).upper()}")
    return query
