"""Question planning: pattern extraction and shape detection."""

from exchangeql.planning.extractors import ExtractionPipeline, ExtractionRule, build_rules
from exchangeql.planning.intent import QueryPlan, QueryShape
from exchangeql.planning.matches import ExtractionMatch, MatchKind
from exchangeql.planning.planner import QueryPlanner

__all__ = [
    "ExtractionMatch",
    "ExtractionPipeline",
    "ExtractionRule",
    "MatchKind",
    "QueryPlan",
    "QueryPlanner",
    "QueryShape",
    "build_rules",
]
