"""DuckDB-backed data store.

DuckDB calls are blocking, so each one runs in a worker thread with its own
short-lived connection.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

import duckdb

from exchangeql.errors import DataStoreError, PrivilegedExecutionError
from exchangeql.execution.store import AccessorFilter, DataStore, Row

logger = logging.getLogger(__name__)

SCHEMA_DDL: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id VARCHAR PRIMARY KEY,
        email VARCHAR,
        first_name VARCHAR,
        last_name VARCHAR,
        role VARCHAR,
        is_active BOOLEAN DEFAULT TRUE,
        created_at TIMESTAMP,
        updated_at TIMESTAMP,
        last_login TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS contacts (
        id VARCHAR PRIMARY KEY,
        first_name VARCHAR,
        last_name VARCHAR,
        email VARCHAR,
        phone VARCHAR,
        company VARCHAR,
        contact_type VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS exchanges (
        id VARCHAR PRIMARY KEY,
        name VARCHAR,
        status VARCHAR,
        exchange_type VARCHAR,
        client_id VARCHAR,
        coordinator_id VARCHAR,
        start_date DATE,
        day_45 DATE,
        day_180 DATE,
        due_date DATE,
        proceeds DOUBLE,
        rel_value DOUBLE,
        property_address VARCHAR,
        rel_property_address VARCHAR,
        rel_property_city VARCHAR,
        rel_property_state VARCHAR,
        rep_1_property_address VARCHAR,
        rep_1_city VARCHAR,
        rep_1_state VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS tasks (
        id VARCHAR PRIMARY KEY,
        title VARCHAR,
        description VARCHAR,
        status VARCHAR,
        priority VARCHAR,
        assigned_to VARCHAR,
        exchange_id VARCHAR,
        due_date DATE,
        completed_at TIMESTAMP,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS documents (
        id VARCHAR PRIMARY KEY,
        name VARCHAR,
        file_path VARCHAR,
        file_size BIGINT,
        mime_type VARCHAR,
        category VARCHAR,
        exchange_id VARCHAR,
        uploaded_by VARCHAR,
        pin_required BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS messages (
        id VARCHAR PRIMARY KEY,
        content VARCHAR,
        sender_id VARCHAR,
        exchange_id VARCHAR,
        message_type VARCHAR,
        read_by VARCHAR,
        created_at TIMESTAMP,
        updated_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS exchange_participants (
        id VARCHAR PRIMARY KEY,
        exchange_id VARCHAR,
        user_id VARCHAR,
        contact_id VARCHAR,
        role VARCHAR,
        permissions VARCHAR,
        created_at TIMESTAMP,
        deleted_at TIMESTAMP
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS notifications (
        id VARCHAR PRIMARY KEY,
        user_id VARCHAR,
        title VARCHAR,
        message VARCHAR,
        is_read BOOLEAN DEFAULT FALSE,
        created_at TIMESTAMP
    )
    """,
)

# Columns the typed accessors may filter on.
ACCESSOR_COLUMNS: dict[str, frozenset[str]] = {
    "exchanges": frozenset({"status", "exchange_type", "client_id", "coordinator_id"}),
    "users": frozenset({"role", "is_active"}),
    "tasks": frozenset({"status", "priority", "assigned_to", "exchange_id"}),
    "contacts": frozenset({"contact_type"}),
    "documents": frozenset({"category", "exchange_id"}),
    "messages": frozenset({"message_type", "exchange_id"}),
}


def ensure_schema(conn: duckdb.DuckDBPyConnection) -> None:
    """Create every table used by the engine if it does not exist."""
    for ddl in SCHEMA_DDL:
        conn.execute(ddl)


def init_database(db_path: Path | str) -> Path:
    """Create the database file and schema."""
    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(str(path))
    try:
        ensure_schema(conn)
    finally:
        conn.close()
    return path


class DuckDBDataStore(DataStore):
    """Data store over a local DuckDB file.

    ``privileged_enabled=False`` makes ``execute_safe_query`` fail, which is
    how an unavailable safe-query entry point looks to the gateway.
    """

    def __init__(
        self,
        db_path: Path | str,
        *,
        read_only: bool = True,
        privileged_enabled: bool = True,
    ):
        self.db_path = Path(db_path)
        self.read_only = read_only
        self.privileged_enabled = privileged_enabled

    def _get_connection(self) -> duckdb.DuckDBPyConnection:
        """Create a fresh connection per call."""
        return duckdb.connect(str(self.db_path), read_only=self.read_only)

    def _run(self, sql: str, params: dict[str, Any] | None) -> list[Row]:
        conn = self._get_connection()
        try:
            result = conn.execute(sql, params) if params else conn.execute(sql)
            raw_rows = result.fetchall()
            columns = [desc[0] for desc in result.description] if result.description else []
        finally:
            conn.close()
        return [dict(zip(columns, row)) for row in raw_rows]

    async def execute_safe_query(self, sql: str, params: dict[str, Any] | None = None) -> list[Row]:
        if not self.privileged_enabled:
            raise PrivilegedExecutionError("Safe-query entry point is not available")
        try:
            return await asyncio.to_thread(self._run, sql, params)
        except duckdb.Error as exc:
            logger.warning("Privileged query failed: %s", exc)
            raise PrivilegedExecutionError(str(exc)) from exc

    async def _list(self, table: str, filter: AccessorFilter | None) -> list[Row]:
        filter = filter or AccessorFilter()
        allowed = ACCESSOR_COLUMNS[table]
        clauses = []
        params: dict[str, Any] = {}
        for i, (column, value) in enumerate(sorted(filter.equals.items())):
            if column not in allowed:
                raise DataStoreError(f"{table}.{column} is not filterable")
            if isinstance(value, tuple):
                names = []
                for j, item in enumerate(value):
                    params[f"p{i}_{j}"] = item
                    names.append(f"$p{i}_{j}")
                clauses.append(f"{column} IN ({', '.join(names)})")
            else:
                params[f"p{i}"] = value
                clauses.append(f"{column} = $p{i}")

        sql = f"SELECT * FROM {table}"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY created_at DESC, id"
        if filter.limit is not None:
            sql += f" LIMIT {int(filter.limit)}"

        try:
            return await asyncio.to_thread(self._run, sql, params)
        except duckdb.Error as exc:
            raise DataStoreError(f"Accessor query on {table} failed: {exc}") from exc

    async def list_exchanges(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("exchanges", filter)

    async def list_users(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("users", filter)

    async def list_tasks(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("tasks", filter)

    async def list_contacts(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("contacts", filter)

    async def list_documents(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("documents", filter)

    async def list_messages(self, filter: AccessorFilter | None = None) -> list[Row]:
        return await self._list("messages", filter)
