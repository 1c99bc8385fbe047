"""Schema catalog: tables, relationships and business rules.

Read-only context used by the HTTP surface and the CLI. The cached catalog
rebuilds lazily once its entries expire.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

import duckdb

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableInfo:
    name: str
    columns: tuple[str, ...]
    description: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"columns": list(self.columns), "description": self.description}


@dataclass(frozen=True)
class Relationship:
    from_table: str
    from_column: str
    to_table: str
    to_column: str
    cardinality: str = "many-to-one"

    def to_dict(self) -> dict[str, str]:
        return {
            "fromTable": self.from_table,
            "fromColumn": self.from_column,
            "toTable": self.to_table,
            "toColumn": self.to_column,
            "cardinality": self.cardinality,
        }


KNOWN_TABLES: dict[str, TableInfo] = {
    t.name: t
    for t in (
        TableInfo(
            "users",
            ("id", "email", "first_name", "last_name", "role", "is_active", "created_at", "updated_at", "last_login"),
            "Platform users: admins, coordinators, clients and third parties",
        ),
        TableInfo(
            "exchanges",
            (
                "id", "name", "status", "exchange_type", "client_id", "coordinator_id", "start_date",
                "day_45", "day_180", "due_date", "proceeds", "rel_value", "property_address",
                "rel_property_address", "rel_property_city", "rel_property_state",
                "rep_1_property_address", "rep_1_city", "rep_1_state", "created_at", "updated_at",
            ),
            "1031 exchanges with relinquished (rel_*) and replacement (rep_1_*) property details",
        ),
        TableInfo(
            "contacts",
            ("id", "first_name", "last_name", "email", "phone", "company", "contact_type", "created_at", "updated_at"),
            "Clients, attorneys, agents and other external contacts",
        ),
        TableInfo(
            "tasks",
            (
                "id", "title", "description", "status", "priority", "assigned_to", "exchange_id",
                "due_date", "completed_at", "created_at", "updated_at",
            ),
            "Work items attached to exchanges",
        ),
        TableInfo(
            "documents",
            (
                "id", "name", "file_path", "file_size", "mime_type", "category", "exchange_id",
                "uploaded_by", "pin_required", "created_at", "updated_at",
            ),
            "Files uploaded to exchanges",
        ),
        TableInfo(
            "messages",
            ("id", "content", "sender_id", "exchange_id", "message_type", "read_by", "created_at", "updated_at"),
            "Exchange chat messages",
        ),
        TableInfo(
            "exchange_participants",
            ("id", "exchange_id", "user_id", "contact_id", "role", "permissions", "created_at", "deleted_at"),
            "Users and contacts participating in an exchange",
        ),
        TableInfo(
            "notifications",
            ("id", "user_id", "title", "message", "is_read", "created_at"),
            "In-app notifications",
        ),
    )
}

KNOWN_RELATIONSHIPS: tuple[Relationship, ...] = (
    Relationship("exchanges", "client_id", "contacts", "id"),
    Relationship("exchanges", "coordinator_id", "users", "id"),
    Relationship("tasks", "exchange_id", "exchanges", "id"),
    Relationship("tasks", "assigned_to", "users", "id"),
    Relationship("messages", "sender_id", "users", "id"),
    Relationship("messages", "exchange_id", "exchanges", "id"),
    Relationship("documents", "exchange_id", "exchanges", "id"),
    Relationship("documents", "uploaded_by", "users", "id"),
    Relationship("exchange_participants", "exchange_id", "exchanges", "id"),
    Relationship("exchange_participants", "user_id", "users", "id"),
    Relationship("exchange_participants", "contact_id", "contacts", "id"),
    Relationship("notifications", "user_id", "users", "id"),
)

BUSINESS_RULES = """\
1031 exchange rules:
- The 45-day identification deadline (exchanges.day_45) is when replacement property must be identified.
- The 180-day closing deadline (exchanges.day_180) is when the exchange must close.
- Exchange status is one of PENDING, ACTIVE, IN_PROGRESS, ON_HOLD, COMPLETED, CANCELLED.
- Active exchanges are those with status ACTIVE or IN_PROGRESS.
- A missed deadline is a past deadline on an exchange that is not COMPLETED or CANCELLED.
- Task status is one of PENDING, IN_PROGRESS, COMPLETED; a task is overdue when due_date is past and it is not COMPLETED.
- Exchange value is proceeds, falling back to the relinquished value (rel_value).
"""


class SchemaCatalog(ABC):
    """Read-only schema context."""

    @abstractmethod
    def get_tables(self) -> dict[str, TableInfo]: ...

    @abstractmethod
    def get_relationships(self) -> list[Relationship]: ...

    @abstractmethod
    def get_business_rules(self) -> str: ...

    def describe(self) -> str:
        """Plain-text schema summary."""
        lines = ["Tables:"]
        for name, table in sorted(self.get_tables().items()):
            suffix = f" - {table.description}" if table.description else ""
            lines.append(f"  {name}({', '.join(table.columns)}){suffix}")
        lines.append("Relationships:")
        for rel in self.get_relationships():
            lines.append(f"  {rel.from_table}.{rel.from_column} -> {rel.to_table}.{rel.to_column} ({rel.cardinality})")
        lines.append(self.get_business_rules().rstrip())
        return "\n".join(lines)


class StaticSchemaCatalog(SchemaCatalog):
    """The predefined schema, with no database access."""

    def get_tables(self) -> dict[str, TableInfo]:
        return dict(KNOWN_TABLES)

    def get_relationships(self) -> list[Relationship]:
        return list(KNOWN_RELATIONSHIPS)

    def get_business_rules(self) -> str:
        return BUSINESS_RULES


class DuckDBSchemaCatalog(StaticSchemaCatalog):
    """Introspect table columns from DuckDB's information_schema.

    Falls back to the predefined schema when the database cannot be read.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)

    def get_tables(self) -> dict[str, TableInfo]:
        try:
            conn = duckdb.connect(str(self.db_path), read_only=True)
        except duckdb.Error as exc:
            logger.warning("Schema introspection unavailable (%s); using predefined schema", exc)
            return super().get_tables()
        try:
            rows = conn.execute(
                """
                SELECT table_name, column_name
                FROM information_schema.columns
                WHERE table_schema = 'main'
                ORDER BY table_name, ordinal_position
                """
            ).fetchall()
        finally:
            conn.close()

        columns: dict[str, list[str]] = {}
        for table_name, column_name in rows:
            columns.setdefault(table_name, []).append(column_name)
        if not columns:
            return super().get_tables()

        tables = {}
        for name, cols in columns.items():
            known = KNOWN_TABLES.get(name)
            tables[name] = TableInfo(name, tuple(cols), known.description if known else "")
        return tables

    def get_relationships(self) -> list[Relationship]:
        tables = self.get_tables()
        return [r for r in KNOWN_RELATIONSHIPS if r.from_table in tables and r.to_table in tables]


class CachedSchemaCatalog(SchemaCatalog):
    """Time-based cache in front of another catalog."""

    def __init__(
        self,
        inner: SchemaCatalog,
        ttl_seconds: float = 1800.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.inner = inner
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def _cached(self, key: str, build: Callable[[], Any]) -> Any:
        now = self.clock()
        entry = self._entries.get(key)
        if entry is not None and now - entry[0] < self.ttl_seconds:
            return entry[1]
        logger.debug("Rebuilding schema catalog entry %s", key)
        value = build()
        self._entries[key] = (now, value)
        return value

    def get_tables(self) -> dict[str, TableInfo]:
        return self._cached("tables", self.inner.get_tables)

    def get_relationships(self) -> list[Relationship]:
        return self._cached("relationships", self.inner.get_relationships)

    def get_business_rules(self) -> str:
        return self._cached("rules", self.inner.get_business_rules)

    def invalidate(self) -> None:
        self._entries.clear()
