"""Turn executed rows into an explanation and follow-up actions."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from exchangeql.errors import ErrorKind
from exchangeql.planning.intent import QueryShape, is_count_question

MAX_ACTIONS = 5
MAX_ENTITY_ACTIONS = 3

# (keyword pattern, actions) checked in order.
ACTION_CATALOG: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        r"\b(?:exchanges?|1031s?|deadlines?|properties)\b",
        ("View exchange details", "Check task progress", "Review participants", "Generate exchange report"),
    ),
    (
        r"\b(?:users?|coordinators?|admins?|staff)\b",
        ("View user profile", "Check user activity", "Assign tasks", "Generate user report"),
    ),
    (
        r"\b(?:tasks?|to-?dos?|overdue)\b",
        ("Update task status", "Assign to user", "Set due date", "Analyze task trends"),
    ),
    (
        r"\b(?:reports?|analytics?|overview|summary|statistics|trends?)\b",
        ("Export full report", "Schedule recurring report", "Share with team", "Set up alerts"),
    ),
)

RESULT_ACTIONS = ("Export results", "Save as report", "Set up alert", "Create dashboard")
EMPTY_ACTIONS = ("Try different criteria", "Broaden search terms", "Check spelling", "View suggestions")

REPHRASE_ACTIONS = (
    "Try rephrasing your question",
    "Use simpler terms",
    "Ask about specific tables like 'exchanges', 'users', or 'tasks'",
)

FAILURE_MESSAGES: dict[ErrorKind, str] = {
    ErrorKind.CLASSIFICATION: "I couldn't understand that question well enough to build a query.",
    ErrorKind.VALIDATION: "The query for this question was blocked by safety checks. Please ask it a different way.",
    ErrorKind.INFRASTRUCTURE_UNAVAILABLE: (
        "The query service is temporarily unavailable, so this question could not be answered. "
        "Please try again later."
    ),
    ErrorKind.QUERY_NOT_RECOGNIZED: (
        "This question is not supported while the query service is running in limited mode. "
        "Try a simpler question."
    ),
    ErrorKind.INTERNAL: "Something went wrong while answering your question.",
}

FAILURE_ACTIONS: dict[ErrorKind, tuple[str, ...]] = {
    ErrorKind.CLASSIFICATION: REPHRASE_ACTIONS,
    ErrorKind.VALIDATION: REPHRASE_ACTIONS,
    ErrorKind.INFRASTRUCTURE_UNAVAILABLE: ("Try again in a few minutes", "Contact your administrator"),
    ErrorKind.QUERY_NOT_RECOGNIZED: (
        "Ask without names or text searches",
        "Ask for a simple count or list",
        "Try again later",
    ),
    ErrorKind.INTERNAL: ("Try again", "Contact your administrator"),
}


@dataclass
class ComposedResponse:
    row_count: int
    explanation: str
    suggested_actions: list[str] = field(default_factory=list)


class ResponseComposer:
    """Builds the user-facing part of a query outcome."""

    def compose(
        self,
        text: str,
        rows: list[dict[str, Any]],
        *,
        entity: str | None = None,
        shape: QueryShape | None = None,
        source: str | None = None,
    ) -> ComposedResponse:
        row_count = len(rows)
        explanation = self.explain(text, rows, entity=entity, shape=shape)
        if source == "degraded":
            explanation += " Results came from the simplified query path."
        return ComposedResponse(
            row_count=row_count,
            explanation=explanation,
            suggested_actions=self.suggest_actions(text, rows),
        )

    def explain(
        self,
        text: str,
        rows: list[dict[str, Any]],
        *,
        entity: str | None = None,
        shape: QueryShape | None = None,
    ) -> str:
        noun = entity or "items"
        if is_count_question(text) or shape is QueryShape.COUNT:
            if rows and "count" in rows[0]:
                count = rows[0]["count"]
                return f"Found {count} {_pluralize(noun, count)} matching your query."
            return f"Found {len(rows)} {_pluralize(noun, len(rows))} in the result set."

        if not rows:
            return "No results found matching your criteria."

        if entity is None and shape is QueryShape.AGGREGATE:
            totals = ", ".join(f"{value} {key.replace('_', ' ')}" for key, value in rows[0].items())
            return f"System overview: {totals}."

        if shape is QueryShape.AGGREGATE:
            return f"Found {len(rows)} groups of {noun} matching your query."

        if len(rows) == 1:
            return f"Found 1 {_pluralize(noun, 1)} matching your query."
        return f"Found {len(rows)} {noun} matching your query."

    def suggest_actions(self, text: str, rows: list[dict[str, Any]]) -> list[str]:
        entity_actions: list[str] = []
        for pattern, actions in ACTION_CATALOG:
            if re.search(pattern, text, re.IGNORECASE):
                entity_actions.extend(actions)

        ordered = entity_actions[:MAX_ENTITY_ACTIONS] + list(RESULT_ACTIONS if rows else EMPTY_ACTIONS)
        return _dedupe(ordered)[:MAX_ACTIONS]

    def compose_failure(self, kind: ErrorKind, examples: list[str] | None = None) -> ComposedResponse:
        """Message and actions for a failed question.

        Classification failures also offer learned example questions.
        """
        actions = list(FAILURE_ACTIONS.get(kind, FAILURE_ACTIONS[ErrorKind.INTERNAL]))
        if kind is ErrorKind.CLASSIFICATION and examples:
            actions.extend(f"Try: {example}" for example in examples)
        return ComposedResponse(
            row_count=0,
            explanation=FAILURE_MESSAGES.get(kind, FAILURE_MESSAGES[ErrorKind.INTERNAL]),
            suggested_actions=_dedupe(actions)[:MAX_ACTIONS],
        )


def _pluralize(noun: str, count: Any) -> str:
    if count == 1 and noun.endswith("s"):
        return noun[:-1]
    return noun


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))
