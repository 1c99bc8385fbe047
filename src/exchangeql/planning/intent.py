"""Query shape and target-entity detection.

Keyword-driven and deterministic: the same text always gives the same
shape and entity.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

from exchangeql.planning.matches import ExtractionMatch

ENTITIES: tuple[str, ...] = (
    "exchanges",
    "users",
    "contacts",
    "tasks",
    "documents",
    "messages",
)

# Checked in order: "tasks for exchange X" is about tasks, but
# "exchanges for client X" is about exchanges.
_ENTITY_KEYWORDS: tuple[tuple[str, str], ...] = (
    ("tasks", r"\b(?:tasks?|to-?dos?|action items?)\b"),
    ("documents", r"\b(?:documents?|docs|files?|uploads?)\b"),
    ("messages", r"\b(?:messages?|chats?|communications?)\b"),
    ("exchanges", r"\b(?:exchanges?|1031s?|deals?|matters?|properties)\b"),
    ("contacts", r"\b(?:contacts?|clients?|customers?)\b"),
    ("users", r"\b(?:users?|coordinators?|admins?|administrators?|staff|team members?)\b"),
)

_COUNT_PATTERN = re.compile(r"\b(?:how many|count|number of|total number)\b", re.IGNORECASE)
_ALL_PATTERN = re.compile(r"\b(?:all|every|list)\b", re.IGNORECASE)
_OVERVIEW_PATTERN = re.compile(r"\b(?:overview|summary|statistics|stats|system health)\b", re.IGNORECASE)
_RECENT_PATTERN = re.compile(r"\b(?:recent|recently|latest|newest|new)\b", re.IGNORECASE)
_GROUP_PATTERN = re.compile(
    r"\b(?:by|per|grouped by|broken down by)\s+(status|category|type|role|priority|state)\b"
    r"|\b(status|category|type|role|priority|state)\s+breakdown\b",
    re.IGNORECASE,
)

# Allowed GROUP BY columns per entity.
GROUPABLE_COLUMNS: dict[str, dict[str, str]] = {
    "exchanges": {"status": "status", "state": "rel_property_state", "type": "exchange_type"},
    "users": {"role": "role"},
    "contacts": {"type": "contact_type", "role": "contact_type"},
    "tasks": {"status": "status", "priority": "priority"},
    "documents": {"category": "category", "type": "category"},
    "messages": {"type": "message_type"},
}


class QueryShape(str, Enum):
    """Result shape requested by the question."""

    COUNT = "count"
    LIST = "list"
    AGGREGATE = "aggregate"


@dataclass(frozen=True)
class QueryPlan:
    """Typed intent carried from extraction through execution.

    The degraded execution path reads this instead of re-parsing SQL.
    """

    text: str
    entity: str | None
    shape: QueryShape
    match: ExtractionMatch | None = None
    group_by: str | None = None
    wants_all: bool = False
    overview: bool = False
    recent: bool = False
    notes: list[str] = field(default_factory=list, compare=False)

    @property
    def match_kind(self) -> str | None:
        return self.match.kind.value if self.match else None


def detect_entity(text: str) -> str | None:
    """Return the first entity named in ``text``, or None."""
    for entity, pattern in _ENTITY_KEYWORDS:
        if re.search(pattern, text, re.IGNORECASE):
            return entity
    return None


def detect_shape(text: str) -> QueryShape:
    if _COUNT_PATTERN.search(text):
        return QueryShape.COUNT
    if _GROUP_PATTERN.search(text):
        return QueryShape.AGGREGATE
    return QueryShape.LIST


def is_count_question(text: str) -> bool:
    return bool(_COUNT_PATTERN.search(text))


def detect_group_dimension(text: str, entity: str | None) -> str | None:
    """Map "by status" style phrases onto an allowed column for ``entity``."""
    if entity is None:
        return None
    match = _GROUP_PATTERN.search(text)
    if not match:
        return None
    word = (match.group(1) or match.group(2) or "").lower()
    return GROUPABLE_COLUMNS.get(entity, {}).get(word)


def wants_all_rows(text: str) -> bool:
    return bool(_ALL_PATTERN.search(text))


def is_overview_question(text: str) -> bool:
    return bool(_OVERVIEW_PATTERN.search(text))


def is_recent_question(text: str) -> bool:
    return bool(_RECENT_PATTERN.search(text))
