"""Parameterized SQL templates.

The plan selects the *shape* of the query (table, filter family, count vs
list vs aggregate). Every value that came from the user's text is passed as
a bound ``$name`` parameter, never spliced into the SQL string.

``SqlSynthesizer.synthesize`` returns None when the filter family has no
template for the target entity. Callers treat None as a classification
failure, not as an empty answer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from exchangeql.config import EngineConfig
from exchangeql.planning.intent import QueryPlan, QueryShape
from exchangeql.planning.matches import (
    DeadlineMatch,
    ExtractionMatch,
    LocationMatch,
    NameMatch,
    NumericRangeMatch,
    RelationshipMatch,
    StatusMatch,
    TimeRangeMatch,
)

logger = logging.getLogger(__name__)

ENTITY_TABLES: dict[str, tuple[str, str]] = {
    "exchanges": ("exchanges", "e"),
    "users": ("users", "u"),
    "contacts": ("contacts", "c"),
    "tasks": ("tasks", "t"),
    "documents": ("documents", "d"),
    "messages": ("messages", "m"),
}

LIST_COLUMNS: dict[str, tuple[str, ...]] = {
    "exchanges": (
        "id", "name", "status", "exchange_type", "client_id", "coordinator_id",
        "proceeds", "rel_property_city", "rel_property_state", "day_45",
        "day_180", "created_at",
    ),
    "users": ("id", "first_name", "last_name", "email", "role", "is_active", "created_at", "last_login"),
    "contacts": ("id", "first_name", "last_name", "email", "phone", "company", "contact_type", "created_at"),
    "tasks": ("id", "title", "status", "priority", "assigned_to", "exchange_id", "due_date", "created_at"),
    "documents": ("id", "name", "category", "mime_type", "file_size", "exchange_id", "uploaded_by", "created_at"),
    "messages": ("id", "content", "message_type", "sender_id", "exchange_id", "created_at"),
}

ACTIVE_EXCHANGE_STATUSES = ("ACTIVE", "IN_PROGRESS")
CLOSED_EXCHANGE_STATUSES = ("COMPLETED", "CANCELLED")
RECENT_DAYS = 30

_NUMERIC_OPERATORS = {">": ">", ">=": ">=", "<": "<", "<=": "<="}


@dataclass
class FilterClause:
    """The filter-specific part of a template."""

    where: list[str] = field(default_factory=list)
    params: dict[str, Any] = field(default_factory=dict)
    joins: list[str] = field(default_factory=list)
    extra_columns: list[str] = field(default_factory=list)
    order_by: str | None = None
    text_filter: bool = False
    distinct: bool = False


@dataclass(frozen=True)
class SynthesizedQuery:
    """Generated SQL plus the metadata the gateway and composer need."""

    sql: str
    params: dict[str, Any]
    tables: tuple[str, ...]
    entity: str | None
    shape: QueryShape
    template: str
    plan: QueryPlan
    order_by: str | None = None
    limit: int | None = None
    requires_join: bool = False
    has_text_filter: bool = False


class SqlSynthesizer:
    """Build parameterized SQL from a QueryPlan."""

    def __init__(self, config: EngineConfig | None = None, clock: Callable[[], datetime] | None = None):
        self.config = config or EngineConfig()
        self.clock = clock or datetime.now

    def synthesize(self, plan: QueryPlan) -> SynthesizedQuery | None:
        if plan.overview:
            return self._overview(plan)
        if plan.entity not in ENTITY_TABLES:
            return None

        clause = self._clause_for(plan)
        if clause is None:
            logger.info(
                "No template for %s filter on %s",
                plan.match_kind,
                plan.entity,
            )
            return None
        return self._assemble(plan, clause)

    # ------------------------------------------------------------------
    # Filter families
    # ------------------------------------------------------------------

    def _clause_for(self, plan: QueryPlan) -> FilterClause | None:
        entity = plan.entity
        match = plan.match
        if match is None:
            if plan.recent:
                return self._recent_clause(entity)
            return FilterClause()

        handlers: dict[type[ExtractionMatch], Callable[[str, Any], FilterClause | None]] = {
            NameMatch: self._name_clause,
            DeadlineMatch: self._deadline_clause,
            TimeRangeMatch: self._time_clause,
            LocationMatch: self._location_clause,
            NumericRangeMatch: self._numeric_clause,
            StatusMatch: self._status_clause,
            RelationshipMatch: self._relationship_clause,
        }
        handler = handlers.get(type(match))
        if handler is None:
            return None
        return handler(entity, match)

    def _recent_clause(self, entity: str) -> FilterClause:
        alias = ENTITY_TABLES[entity][1]
        return FilterClause(
            where=[f"{alias}.created_at >= $recent_since"],
            params={"recent_since": self.clock() - timedelta(days=RECENT_DAYS)},
        )

    def _name_clause(self, entity: str, match: NameMatch) -> FilterClause | None:
        if not match.names:
            return None
        clause = FilterClause(text_filter=True)
        for i, name in enumerate(match.names):
            clause.params[f"name_{i}"] = f"%{name}%"

        if entity == "exchanges":
            searched: list[str] = []
            if match.role in ("any", "client", "contact"):
                clause.joins.append("LEFT JOIN contacts c ON c.id = e.client_id")
                searched.append("c")
            if match.role in ("any", "coordinator"):
                clause.joins.append("LEFT JOIN users u ON u.id = e.coordinator_id")
                searched.append("u")
            fields = ["e.name"] if match.role == "any" else []
            for alias in searched:
                fields.extend(_person_fields(alias))
                if alias == "c":
                    fields.append("c.company")
        elif entity == "contacts":
            fields = _person_fields("c") + ["c.company"]
        elif entity == "users":
            fields = _person_fields("u")
        elif entity == "tasks":
            clause.joins.append("LEFT JOIN users u ON u.id = t.assigned_to")
            fields = ["t.title"] + _person_fields("u")
        else:
            return None

        disjuncts = [f"{col} ILIKE ${param}" for param in clause.params for col in fields]
        clause.where.append(" OR ".join(disjuncts))
        return clause

    def _deadline_clause(self, entity: str, match: DeadlineMatch) -> FilterClause | None:
        if entity != "exchanges":
            return None
        column = f"e.{match.deadline_column}"
        today = self.clock().date()
        clause = FilterClause(params={"today": today}, order_by=f"{column} ASC")

        if match.mode == "missed":
            clause.where.append(f"{column} < CAST($today AS DATE)")
            clause.where.append(_in_list("e.status", "closed", CLOSED_EXCHANGE_STATUSES, clause.params, negate=True))
            clause.extra_columns.append(f"date_diff('day', {column}, CAST($today AS DATE)) AS days_past_due")
        else:
            clause.params["window_end"] = today + timedelta(days=match.window_days)
            clause.where.append(f"{column} BETWEEN CAST($today AS DATE) AND CAST($window_end AS DATE)")
            clause.where.append(_in_list("e.status", "active", ACTIVE_EXCHANGE_STATUSES, clause.params))
            clause.extra_columns.append(f"date_diff('day', CAST($today AS DATE), {column}) AS days_until_deadline")

        if match.coordinator_name:
            clause.joins.append("JOIN users u ON u.id = e.coordinator_id")
            clause.params["coordinator_name"] = f"%{match.coordinator_name}%"
            clause.where.append(
                " OR ".join(f"{col} ILIKE $coordinator_name" for col in _person_fields("u"))
            )
            clause.extra_columns.extend(
                ["u.first_name AS coordinator_first_name", "u.last_name AS coordinator_last_name"]
            )
            clause.text_filter = True
        return clause

    def _time_clause(self, entity: str, match: TimeRangeMatch) -> FilterClause | None:
        alias = ENTITY_TABLES[entity][1]
        clause = FilterClause()
        if match.start is not None:
            clause.where.append(f"{alias}.created_at >= $start_time")
            clause.params["start_time"] = match.start
        if match.end is not None:
            clause.where.append(f"{alias}.created_at < $end_time")
            clause.params["end_time"] = match.end
        if not clause.where:
            return None

        if match.client_name and entity == "exchanges":
            clause.joins.append("JOIN contacts c ON c.id = e.client_id")
            clause.params["client_name"] = f"%{match.client_name}%"
            fields = _person_fields("c") + ["c.company"]
            clause.where.append(" OR ".join(f"{col} ILIKE $client_name" for col in fields))
            clause.text_filter = True
        return clause

    def _location_clause(self, entity: str, match: LocationMatch) -> FilterClause | None:
        if entity != "exchanges" or not match.values:
            return None
        clause = FilterClause()
        if match.scope == "state":
            clause.params["state_code"] = match.values[0].upper()
            clause.params["state_name"] = match.values[-1].upper()
            clause.where.append(
                "UPPER(e.rel_property_state) IN ($state_code, $state_name)"
                " OR UPPER(e.rep_1_state) IN ($state_code, $state_name)"
            )
            return clause

        clause.params["city"] = f"%{match.values[0]}%"
        clause.where.append("e.rel_property_city ILIKE $city OR e.rep_1_city ILIKE $city")
        clause.text_filter = True
        if len(match.values) > 1:
            clause.params["state_code"] = match.values[1].upper()
            clause.where.append("UPPER(e.rel_property_state) = $state_code OR UPPER(e.rep_1_state) = $state_code")
        return clause

    def _numeric_clause(self, entity: str, match: NumericRangeMatch) -> FilterClause | None:
        if entity != "exchanges":
            return None
        clause = FilterClause(order_by="e.proceeds DESC NULLS LAST")
        if match.operator == "between" and match.upper is not None:
            low, high = match.value, match.upper
        elif match.operator == "approx":
            low, high = match.value * 0.9, match.value * 1.1
        else:
            op = _NUMERIC_OPERATORS.get(match.operator)
            if op is None:
                return None
            clause.params["amount"] = match.value
            clause.where.append(f"e.proceeds {op} $amount OR e.rel_value {op} $amount")
            return clause

        clause.params["amount_low"] = low
        clause.params["amount_high"] = high
        clause.where.append(
            "e.proceeds BETWEEN $amount_low AND $amount_high"
            " OR e.rel_value BETWEEN $amount_low AND $amount_high"
        )
        return clause

    def _status_clause(self, entity: str, match: StatusMatch) -> FilterClause | None:
        if entity == "users":
            if match.active_flag is None:
                return None
            return FilterClause(where=["u.is_active = $is_active"], params={"is_active": match.active_flag})

        if entity == "tasks" and match.overdue:
            clause = FilterClause(
                params={"today": self.clock().date()},
                order_by="t.due_date ASC",
            )
            clause.where.append("t.due_date < CAST($today AS DATE)")
            clause.where.append(_in_list("t.status", "done", ("COMPLETED",), clause.params, negate=True))
            return clause

        if entity in ("exchanges", "tasks") and match.statuses:
            alias = ENTITY_TABLES[entity][1]
            clause = FilterClause()
            clause.where.append(_in_list(f"{alias}.status", "status", match.statuses, clause.params))
            return clause
        return None

    def _relationship_clause(self, entity: str, match: RelationshipMatch) -> FilterClause | None:
        rel = match.relationship
        if entity == "exchanges":
            if rel == "coordinator":
                return FilterClause(
                    joins=["JOIN users u ON u.id = e.coordinator_id"],
                    where=["u.is_active = $coordinator_active"],
                    params={"coordinator_active": True},
                    extra_columns=["u.first_name AS coordinator_first_name", "u.last_name AS coordinator_last_name"],
                )
            if rel == "client":
                return FilterClause(
                    joins=["JOIN contacts c ON c.id = e.client_id"],
                    extra_columns=[
                        "c.first_name AS client_first_name",
                        "c.last_name AS client_last_name",
                        "c.company AS client_company",
                    ],
                )
            if rel == "participant":
                return FilterClause(
                    joins=["JOIN exchange_participants ep ON ep.exchange_id = e.id"],
                    where=["ep.deleted_at IS NULL"],
                    distinct=True,
                )
            return None

        if entity == "tasks" and rel in ("assignee", "coordinator"):
            return FilterClause(
                joins=["JOIN users u ON u.id = t.assigned_to"],
                extra_columns=["u.first_name AS assignee_first_name", "u.last_name AS assignee_last_name"],
            )
        if entity == "users" and rel == "coordinator":
            return FilterClause(where=["u.role = $role"], params={"role": "coordinator"})
        if entity == "contacts" and rel == "client":
            return FilterClause(where=["LOWER(c.contact_type) = $contact_type"], params={"contact_type": "client"})
        return None

    # ------------------------------------------------------------------
    # Shapes
    # ------------------------------------------------------------------

    def _assemble(self, plan: QueryPlan, clause: FilterClause) -> SynthesizedQuery | None:
        entity = plan.entity
        table, alias = ENTITY_TABLES[entity]
        from_sql = " ".join([f"FROM {table} {alias}", *clause.joins])
        where_sql = ""
        if clause.where:
            where_sql = " WHERE " + " AND ".join(f"({w})" for w in clause.where)

        order_by = None
        limit = None
        if plan.shape is QueryShape.COUNT:
            select = f"COUNT(DISTINCT {alias}.id) AS count" if clause.joins else "COUNT(*) AS count"
            sql = f"SELECT {select} {from_sql}{where_sql}"
        elif plan.shape is QueryShape.AGGREGATE:
            if not plan.group_by:
                return None
            column = plan.group_by
            count_expr = f"COUNT(DISTINCT {alias}.id)" if clause.joins else "COUNT(*)"
            order_by = f"count DESC, {column}"
            limit = self.config.max_list_limit
            sql = (
                f"SELECT {alias}.{column} AS {column}, {count_expr} AS count {from_sql}{where_sql}"
                f" GROUP BY {alias}.{column} ORDER BY {order_by} LIMIT {limit}"
            )
        else:
            columns = [f"{alias}.{col}" for col in LIST_COLUMNS[entity]] + clause.extra_columns
            select = ("DISTINCT " if clause.distinct else "") + ", ".join(columns)
            order_by = f"{clause.order_by or f'{alias}.created_at DESC'}, {alias}.id"
            limit = self.config.max_list_limit if plan.wants_all else self.config.list_limit
            sql = f"SELECT {select} {from_sql}{where_sql} ORDER BY {order_by} LIMIT {limit}"

        tables = [table] + [join.split("JOIN", 1)[1].split()[0] for join in clause.joins]
        kind = plan.match_kind or ("recent" if plan.recent else "base")
        query = SynthesizedQuery(
            sql=sql,
            params=dict(clause.params),
            tables=tuple(dict.fromkeys(tables)),
            entity=entity,
            shape=plan.shape,
            template=f"{entity}.{plan.shape.value}.{kind}",
            plan=plan,
            order_by=order_by,
            limit=limit,
            requires_join=bool(clause.joins),
            has_text_filter=clause.text_filter,
        )
        logger.debug("Synthesized %s: %s params=%s", query.template, sql, query.params)
        return query

    def _overview(self, plan: QueryPlan) -> SynthesizedQuery:
        params: dict[str, Any] = {}
        active = _in_list("status", "active", ACTIVE_EXCHANGE_STATUSES, params)
        params["user_active"] = True
        params["task_done"] = "COMPLETED"
        columns = [
            "(SELECT COUNT(*) FROM exchanges) AS total_exchanges",
            f"(SELECT COUNT(*) FROM exchanges WHERE {active}) AS active_exchanges",
            "(SELECT COUNT(*) FROM users) AS total_users",
            "(SELECT COUNT(*) FROM users WHERE is_active = $user_active) AS active_users",
            "(SELECT COUNT(*) FROM contacts) AS total_contacts",
            "(SELECT COUNT(*) FROM tasks) AS total_tasks",
            "(SELECT COUNT(*) FROM tasks WHERE status <> $task_done) AS open_tasks",
            "(SELECT COUNT(*) FROM documents) AS total_documents",
            "(SELECT COUNT(*) FROM messages) AS total_messages",
        ]
        sql = "SELECT " + ", ".join(columns)
        return SynthesizedQuery(
            sql=sql,
            params=params,
            tables=("exchanges", "users", "contacts", "tasks", "documents", "messages"),
            entity=None,
            shape=QueryShape.AGGREGATE,
            template="overview.aggregate.base",
            plan=plan,
        )


def _person_fields(alias: str) -> list[str]:
    return [
        f"{alias}.first_name",
        f"{alias}.last_name",
        f"CONCAT({alias}.first_name, ' ', {alias}.last_name)",
    ]


def _in_list(
    column: str,
    prefix: str,
    values: tuple[str, ...],
    params: dict[str, Any],
    *,
    negate: bool = False,
) -> str:
    names = []
    for i, value in enumerate(values):
        key = f"{prefix}_{i}"
        params[key] = value
        names.append(f"${key}")
    op = "NOT IN" if negate else "IN"
    return f"{column} {op} ({', '.join(names)})"
