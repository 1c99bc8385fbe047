"""Query engine: question text in, QueryOutcome out.

Flow:
    plan -> synthesize -> validate + execute (gateway) -> compose -> record

Every attempt, successful or not, is recorded in the learning store. Known
failures become a failed QueryOutcome with an ``error_kind``; anything else
is recorded as an internal error and re-raised.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import deque
from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel, Field

from exchangeql.config import EngineConfig
from exchangeql.errors import (
    ClassificationFailure,
    ErrorKind,
    ExecutionRejected,
    QueryEngineError,
    ValidationFailure,
)
from exchangeql.execution.duckdb_store import DuckDBDataStore
from exchangeql.execution.gateway import ExecutionGateway
from exchangeql.execution.store import DataStore
from exchangeql.explain.composer import ComposedResponse, ResponseComposer
from exchangeql.learning.schemas import QueryRecord
from exchangeql.learning.store import QueryLearningStore
from exchangeql.orchestrator.cache import ResultCache
from exchangeql.planning.extractors import ExtractionPipeline
from exchangeql.planning.planner import QueryPlanner
from exchangeql.schema.catalog import CachedSchemaCatalog, DuckDBSchemaCatalog, SchemaCatalog
from exchangeql.sql.guardrails import SafetyValidator
from exchangeql.sql.templates import SqlSynthesizer

logger = logging.getLogger(__name__)

RECENT_HISTORY = 50


class QueryRequest(BaseModel):
    """One question from a caller."""

    text: str
    user_id: str | None = None
    context: dict[str, Any] = Field(default_factory=dict)


class QueryOutcome(BaseModel):
    """Terminal record for one request."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    original_query: str
    generated_sql: str | None = None
    results: list[dict[str, Any]] = Field(default_factory=list)
    row_count: int = 0
    explanation: str = ""
    suggested_actions: list[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    error: str | None = None
    error_kind: str | None = None
    source: str | None = None
    target_table: str | None = None
    user_id: str | None = None
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def success(self) -> bool:
        return self.error_kind is None

    def to_record(self) -> QueryRecord:
        return QueryRecord(
            id=self.id,
            query=self.original_query,
            sql=self.generated_sql,
            success=self.success,
            row_count=self.row_count,
            error=self.error,
            error_kind=self.error_kind,
            source=self.source,
            target_table=self.target_table,
            explanation=self.explanation,
            execution_time_ms=self.execution_time_ms,
            user_id=self.user_id,
            timestamp=self.timestamp,
        )


class QueryEngine:
    """Answers questions about exchanges, users, contacts and tasks.

    The learning store is injected and shared across requests; the engine
    never creates a module-level one.
    """

    def __init__(
        self,
        store: DataStore,
        learning: QueryLearningStore,
        config: EngineConfig | None = None,
        *,
        catalog: SchemaCatalog | None = None,
        clock: Callable[[], datetime] | None = None,
        cache: ResultCache | None = None,
    ):
        self.config = config or EngineConfig()
        self.store = store
        self.learning = learning
        self.catalog = catalog
        self.clock = clock or datetime.now

        pipeline = ExtractionPipeline.from_order(self.config.extractor_order, clock=self.clock)
        self.planner = QueryPlanner(pipeline)
        self.synthesizer = SqlSynthesizer(self.config, clock=self.clock)
        self.gateway = ExecutionGateway(
            store,
            SafetyValidator(),
            timeout_seconds=self.config.execution_timeout_seconds,
        )
        self.composer = ResponseComposer()
        self.cache = cache or ResultCache(
            ttl_seconds=self.config.cache_ttl_seconds,
            max_entries=self.config.cache_max_entries,
        )

        self._total = 0
        self._errors = 0
        self._response_ms_total = 0.0
        self._history: deque[dict[str, Any]] = deque(maxlen=RECENT_HISTORY)

    @classmethod
    def from_config(cls, config: EngineConfig | None = None) -> QueryEngine:
        """Wire the DuckDB store, learning store and schema catalog."""
        config = config or EngineConfig()
        store = DuckDBDataStore(config.db_path, privileged_enabled=config.privileged_enabled)
        learning = QueryLearningStore.from_config(config)
        catalog = CachedSchemaCatalog(DuckDBSchemaCatalog(config.db_path), ttl_seconds=config.catalog_ttl_seconds)
        return cls(store, learning, config, catalog=catalog)

    async def process_query(self, request: QueryRequest | str) -> QueryOutcome:
        if isinstance(request, str):
            request = QueryRequest(text=request)
        started = time.perf_counter()
        text = request.text.strip()

        try:
            outcome = await self._answer(text, request.user_id)
        except QueryEngineError as exc:
            outcome = self._failure(text, request.user_id, exc)
        except Exception:
            logger.exception("Unexpected error answering %r", text)
            failed = self._failure_outcome(text, request.user_id, ErrorKind.INTERNAL, detail="internal error")
            await self._finish(failed, started)
            raise

        await self._finish(outcome, started)
        return outcome

    async def _answer(self, text: str, user_id: str | None) -> QueryOutcome:
        cached = self.cache.get(text)
        if cached is not None:
            logger.info("Cache hit for %r", text)
            composed = self.composer.compose(
                text, cached.rows, entity=cached.entity, shape=cached.shape, source="cache"
            )
            return self._success(text, user_id, cached.generated_sql, cached.rows, composed, 0.0, "cache", cached.entity)

        plan = self.planner.plan(text)
        query = self.synthesizer.synthesize(plan)
        if query is None:
            raise ClassificationFailure(f"No template for {plan.match_kind} filter on {plan.entity}")

        result = await self.gateway.execute(query)
        composed = self.composer.compose(
            text, result.rows, entity=query.entity, shape=query.shape, source=result.source
        )
        self.cache.put(text, query.sql, result.rows, entity=query.entity, shape=query.shape)
        return self._success(
            text,
            user_id,
            query.sql,
            result.rows,
            composed,
            result.execution_time_ms,
            result.source,
            query.entity,
        )

    def _success(
        self,
        text: str,
        user_id: str | None,
        sql: str,
        rows: list[dict[str, Any]],
        composed: ComposedResponse,
        execution_time_ms: float,
        source: str,
        entity: str | None,
    ) -> QueryOutcome:
        return QueryOutcome(
            original_query=text,
            generated_sql=sql,
            results=rows,
            row_count=composed.row_count,
            explanation=composed.explanation,
            suggested_actions=composed.suggested_actions,
            execution_time_ms=execution_time_ms,
            source=source,
            target_table=entity,
            user_id=user_id,
            timestamp=self.clock(),
        )

    def _failure(self, text: str, user_id: str | None, exc: QueryEngineError) -> QueryOutcome:
        kind = exc.kind
        if isinstance(exc, ValidationFailure):
            logger.error("Synthesized SQL failed validation for %r: %s", text, exc.violations)
        elif isinstance(exc, ExecutionRejected):
            logger.warning("Query %r rejected (%s): %s", text, kind.value, exc.cause)
        else:
            logger.info("Could not answer %r: %s", text, exc)
        return self._failure_outcome(text, user_id, kind, detail=str(exc))

    def _failure_outcome(self, text: str, user_id: str | None, kind: ErrorKind, *, detail: str) -> QueryOutcome:
        examples = self.learning.suggest(text, limit=2) if kind is ErrorKind.CLASSIFICATION else None
        composed = self.composer.compose_failure(kind, examples)
        logger.debug("Failure detail for %r: %s", text, detail)
        return QueryOutcome(
            original_query=text,
            explanation=composed.explanation,
            suggested_actions=composed.suggested_actions,
            error=composed.explanation,
            error_kind=kind.value,
            user_id=user_id,
            timestamp=self.clock(),
        )

    async def _finish(self, outcome: QueryOutcome, started: float) -> None:
        elapsed_ms = (time.perf_counter() - started) * 1000
        self._total += 1
        self._response_ms_total += elapsed_ms
        if not outcome.success:
            self._errors += 1
        self._history.append(
            {
                "id": outcome.id,
                "query": outcome.original_query,
                "success": outcome.success,
                "row_count": outcome.row_count,
                "source": outcome.source,
                "error_kind": outcome.error_kind,
                "response_time_ms": round(elapsed_ms, 2),
                "timestamp": outcome.timestamp.isoformat(),
            }
        )
        await self.learning.record(outcome.to_record())

    def stats(self) -> dict[str, Any]:
        return {
            "total_queries": self._total,
            "cache_hits": self.cache.hits,
            "cache_entries": len(self.cache),
            "average_response_time_ms": round(self._response_ms_total / self._total, 2) if self._total else 0.0,
            "error_rate": round(self._errors / self._total, 3) if self._total else 0.0,
            "recent_queries": list(self._history),
            "learning": self.learning.stats(),
        }
