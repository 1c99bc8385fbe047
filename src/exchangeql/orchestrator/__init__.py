"""Query orchestration: engine and result cache."""

from exchangeql.orchestrator.cache import ResultCache, normalize_text
from exchangeql.orchestrator.engine import QueryEngine, QueryOutcome, QueryRequest

__all__ = ["QueryEngine", "QueryOutcome", "QueryRequest", "ResultCache", "normalize_text"]
