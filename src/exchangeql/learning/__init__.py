"""Query learning: history, patterns and suggestions."""

from exchangeql.learning.schemas import LearnedPattern, LearningDocument, QueryRecord
from exchangeql.learning.store import QueryLearningStore, determine_query_type, extract_keywords

__all__ = [
    "LearnedPattern",
    "LearningDocument",
    "QueryLearningStore",
    "QueryRecord",
    "determine_query_type",
    "extract_keywords",
]
