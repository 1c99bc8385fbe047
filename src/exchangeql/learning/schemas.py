"""Persisted learning document schemas using Pydantic."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

LEARNING_FORMAT_VERSION = "1.0"


class QueryRecord(BaseModel):
    """One query attempt, successful or not."""

    id: str
    query: str
    sql: str | None = None
    success: bool
    row_count: int = 0
    error: str | None = None
    error_kind: str | None = None
    source: str | None = None
    target_table: str | None = None
    explanation: str = ""
    execution_time_ms: float = 0.0
    user_id: str | None = None
    timestamp: datetime


class LearnedPattern(BaseModel):
    """Aggregate over every query that shares a pattern key."""

    pattern_key: str
    query_type: str
    target_table: str | None = None
    keywords: list[str] = Field(default_factory=list)
    example_queries: list[str] = Field(default_factory=list)
    sql_template: str | None = None
    count: int = 0
    success_count: int = 0
    success_rate: float = 0.0
    first_seen: datetime | None = None
    last_used: datetime | None = None


class FeedbackEntry(BaseModel):
    query_id: str
    feedback: str
    user_id: str | None = None
    timestamp: datetime


class LearningDocument(BaseModel):
    """Full on-disk state, rewritten wholesale on every flush."""

    successful_queries: list[QueryRecord] = Field(default_factory=list)
    failed_queries: list[QueryRecord] = Field(default_factory=list)
    query_patterns: dict[str, LearnedPattern] = Field(default_factory=dict)
    user_feedback: list[FeedbackEntry] = Field(default_factory=list)
    last_updated: datetime | None = None
    version: str = LEARNING_FORMAT_VERSION
