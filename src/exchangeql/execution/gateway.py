"""Execution gateway: Privileged -> Degraded -> Rejected.

The gateway is the only code that hands SQL to a data store, and it
validates every string first. The degraded path works from the typed
QueryPlan carried on the SynthesizedQuery; it never parses SQL text.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable

from exchangeql.errors import (
    DataStoreError,
    ErrorKind,
    ExecutionRejected,
    PrivilegedExecutionError,
    ValidationFailure,
)
from exchangeql.execution.store import AccessorFilter, DataStore, Row
from exchangeql.planning.intent import QueryPlan, QueryShape
from exchangeql.planning.matches import RelationshipMatch, StatusMatch
from exchangeql.sql.guardrails import SafetyValidator, ValidationVerdict
from exchangeql.sql.templates import ACTIVE_EXCHANGE_STATUSES, LIST_COLUMNS, SynthesizedQuery

logger = logging.getLogger(__name__)

DegradedCall = Callable[[DataStore], Awaitable[list[Row]]]

_ACCESSORS: dict[str, str] = {
    "exchanges": "list_exchanges",
    "users": "list_users",
    "tasks": "list_tasks",
    "contacts": "list_contacts",
    "documents": "list_documents",
    "messages": "list_messages",
}


class GatewayState(str, Enum):
    PRIVILEGED = "privileged"
    DEGRADED = "degraded"
    REJECTED = "rejected"


@dataclass
class GatewayResult:
    """Rows returned by the gateway and the path that produced them."""

    rows: list[Row]
    state: GatewayState
    execution_time_ms: float
    verdict: ValidationVerdict | None = None
    fallback_reason: str | None = None
    suggestions: list[str] = field(default_factory=list)

    @property
    def source(self) -> str:
        return self.state.value


class StructuralFallback:
    """Map simple single-table plans onto typed accessor calls.

    Only equality filters the accessors support are recognized: no filter,
    exchange/task status, user active flag, user role and contact type.
    Anything else returns None.
    """

    def resolve(self, query: SynthesizedQuery) -> DegradedCall | None:
        plan = query.plan
        if plan.overview:
            return _overview_call

        if plan.entity not in _ACCESSORS or plan.recent:
            return None
        equals = self._equality_filter(plan)
        if equals is None:
            return None

        accessor = _ACCESSORS[plan.entity]
        entity = plan.entity
        shape = plan.shape
        group_by = plan.group_by
        limit = query.limit

        async def call(store: DataStore) -> list[Row]:
            method = getattr(store, accessor)
            if shape is QueryShape.LIST:
                rows = await method(AccessorFilter(equals=equals, limit=limit))
                columns = LIST_COLUMNS[entity]
                return [{col: row.get(col) for col in columns} for row in rows]

            rows = await method(AccessorFilter(equals=equals))
            if shape is QueryShape.COUNT:
                return [{"count": len(rows)}]
            return _group_counts(rows, group_by, limit)

        return call

    def _equality_filter(self, plan: QueryPlan) -> dict[str, Any] | None:
        match = plan.match
        if match is None:
            return {}
        if isinstance(match, StatusMatch):
            if plan.entity in ("exchanges", "tasks") and match.statuses and not match.overdue:
                return {"status": tuple(match.statuses)}
            if plan.entity == "users" and match.active_flag is not None:
                return {"is_active": match.active_flag}
            return None
        if isinstance(match, RelationshipMatch):
            if plan.entity == "users" and match.relationship == "coordinator":
                return {"role": "coordinator"}
            if plan.entity == "contacts" and match.relationship == "client":
                return {"contact_type": "client"}
        return None


class ExecutionGateway:
    """Run validated queries with privileged-then-degraded fallback."""

    def __init__(
        self,
        store: DataStore,
        validator: SafetyValidator | None = None,
        *,
        timeout_seconds: float = 10.0,
        fallback: StructuralFallback | None = None,
    ):
        self.store = store
        self.validator = validator or SafetyValidator()
        self.timeout_seconds = timeout_seconds
        self.fallback = fallback or StructuralFallback()

    async def execute(self, query: SynthesizedQuery) -> GatewayResult:
        verdict = self.validator.validate(query.sql)
        if not verdict.passed:
            raise ValidationFailure(verdict.violations)

        start = time.perf_counter()
        try:
            rows = await asyncio.wait_for(
                self.store.execute_safe_query(query.sql, query.params),
                timeout=self.timeout_seconds,
            )
        except PrivilegedExecutionError as exc:
            reason = str(exc)
        except asyncio.TimeoutError:
            reason = f"privileged query timed out after {self.timeout_seconds}s"
        else:
            return GatewayResult(
                rows=rows,
                state=GatewayState.PRIVILEGED,
                execution_time_ms=_elapsed_ms(start),
                verdict=verdict,
                suggestions=list(verdict.suggestions),
            )

        logger.warning("Privileged execution failed for %s: %s", query.template, reason)
        rows = await self._degraded(query, reason)
        return GatewayResult(
            rows=rows,
            state=GatewayState.DEGRADED,
            execution_time_ms=_elapsed_ms(start),
            verdict=verdict,
            fallback_reason=reason,
            suggestions=list(verdict.suggestions),
        )

    async def _degraded(self, query: SynthesizedQuery, reason: str) -> list[Row]:
        if query.requires_join or query.has_text_filter:
            logger.error("Rejected %s: needs joins or text filters", query.template)
            raise ExecutionRejected(
                ErrorKind.INFRASTRUCTURE_UNAVAILABLE,
                "This question needs the full query service, which is currently unavailable.",
                cause=reason,
            )

        call = self.fallback.resolve(query)
        if call is None:
            logger.error("Rejected %s: no typed accessor for this shape", query.template)
            raise ExecutionRejected(
                ErrorKind.QUERY_NOT_RECOGNIZED,
                "This question could not be answered with the simplified query path.",
                cause=reason,
            )

        try:
            return await asyncio.wait_for(call(self.store), timeout=self.timeout_seconds)
        except (DataStoreError, asyncio.TimeoutError) as exc:
            logger.error("Degraded execution failed for %s: %s", query.template, exc)
            raise ExecutionRejected(
                ErrorKind.INFRASTRUCTURE_UNAVAILABLE,
                "The data store is currently unavailable.",
                cause=str(exc) or reason,
            ) from exc


async def _overview_call(store: DataStore) -> list[Row]:
    exchanges = await store.list_exchanges()
    users = await store.list_users()
    contacts = await store.list_contacts()
    tasks = await store.list_tasks()
    documents = await store.list_documents()
    messages = await store.list_messages()
    return [
        {
            "total_exchanges": len(exchanges),
            "active_exchanges": sum(1 for r in exchanges if r.get("status") in ACTIVE_EXCHANGE_STATUSES),
            "total_users": len(users),
            "active_users": sum(1 for r in users if r.get("is_active")),
            "total_contacts": len(contacts),
            "total_tasks": len(tasks),
            "open_tasks": sum(1 for r in tasks if r.get("status") != "COMPLETED"),
            "total_documents": len(documents),
            "total_messages": len(messages),
        }
    ]


def _group_counts(rows: list[Row], column: str | None, limit: int | None) -> list[Row]:
    if column is None:
        return [{"count": len(rows)}]
    counts = Counter(row.get(column) for row in rows)
    ordered = sorted(counts.items(), key=lambda item: (-item[1], str(item[0])))
    if limit is not None:
        ordered = ordered[:limit]
    return [{column: value, "count": n} for value, n in ordered]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
