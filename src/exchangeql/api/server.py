"""FastAPI backend for the exchange query engine.

Wraps the plan -> synthesize -> execute -> compose pipeline and returns a
stable camelCase JSON contract.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from exchangeql import __version__
from exchangeql.config import EngineConfig
from exchangeql.logging_setup import configure_logging
from exchangeql.orchestrator.engine import QueryEngine, QueryOutcome, QueryRequest
from exchangeql.schema.catalog import StaticSchemaCatalog

logger = logging.getLogger(__name__)


class AskRequest(BaseModel):
    """Request to ask a question."""
    text: str = Field(..., min_length=1, description="Natural language question")
    userId: str | None = None


class QueryResponse(BaseModel):
    """Unified response for question answering."""
    id: str
    originalQuery: str
    generatedSQL: str | None = None
    results: list[dict[str, Any]] = Field(default_factory=list)
    explanation: str
    suggestedActions: list[str] = Field(default_factory=list)
    executionTimeMs: float
    rowCount: int
    error: str | None = None
    errorKind: str | None = None
    source: str | None = None

    @classmethod
    def from_outcome(cls, outcome: QueryOutcome) -> QueryResponse:
        return cls(
            id=outcome.id,
            originalQuery=outcome.original_query,
            generatedSQL=outcome.generated_sql,
            results=outcome.results,
            explanation=outcome.explanation,
            suggestedActions=outcome.suggested_actions,
            executionTimeMs=outcome.execution_time_ms,
            rowCount=outcome.row_count,
            error=outcome.error,
            errorKind=outcome.error_kind,
            source=outcome.source,
        )


class FeedbackRequest(BaseModel):
    queryId: str = Field(..., min_length=1)
    feedback: str = Field(..., min_length=1)
    userId: str | None = None


class SuggestionsResponse(BaseModel):
    suggestions: list[str]


def create_app(engine: QueryEngine | None = None, config: EngineConfig | None = None) -> FastAPI:
    """Build the app around an engine (created from config when omitted)."""
    if engine is None:
        engine = QueryEngine.from_config(config or EngineConfig.from_env())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        engine.learning.load()
        yield
        await engine.learning.try_flush()

    app = FastAPI(title="ExchangeQL API", version=__version__, lifespan=lifespan)
    app.state.engine = engine

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", "http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "ok",
            "version": __version__,
            "privileged": engine.config.privileged_enabled,
        }

    @app.post("/query", response_model=QueryResponse)
    async def ask_question(request: AskRequest):
        """Answer a natural language question about exchange data."""
        text = request.text.strip()
        if not text:
            raise HTTPException(status_code=400, detail="Question cannot be empty")

        try:
            outcome = await engine.process_query(QueryRequest(text=text, user_id=request.userId))
        except Exception:
            # Catch-all for unexpected errors; details stay in the log
            logger.exception("Unexpected error answering %r", text)
            raise HTTPException(status_code=500, detail="Unexpected error while answering the question")
        return QueryResponse.from_outcome(outcome)

    @app.get("/suggestions", response_model=SuggestionsResponse)
    async def suggestions(partial: str = "", limit: int = Query(10, ge=1, le=50)):
        return SuggestionsResponse(suggestions=engine.learning.suggest(partial, limit=limit))

    @app.get("/suggestions/similar")
    async def similar(text: str = Query(..., min_length=1), limit: int = Query(5, ge=1, le=50)):
        return {"patterns": engine.learning.find_similar(text, limit=limit)}

    @app.get("/schema")
    async def schema():
        catalog = engine.catalog or StaticSchemaCatalog()
        return {
            "tables": {name: table.to_dict() for name, table in catalog.get_tables().items()},
            "relationships": [rel.to_dict() for rel in catalog.get_relationships()],
            "businessRules": catalog.get_business_rules(),
        }

    @app.get("/stats")
    async def stats():
        return engine.stats()

    @app.post("/feedback")
    async def feedback(request: FeedbackRequest):
        entry = await engine.learning.record_feedback(request.queryId, request.feedback, request.userId)
        return {"status": "recorded", "queryId": entry.query_id}

    return app


def build_default_app() -> FastAPI:
    """App factory for ``uvicorn --factory``."""
    configure_logging()
    return create_app()
