"""Query learning store.

Keeps a bounded history of query attempts and derives keyword/intent
patterns from it. Patterns feed the suggestion list shown to users.

Durability policy: the in-memory state is the source of truth. Every
``flush_every`` observations the whole document is written to a temporary
file next to the target and renamed over it, so readers never see a
partial file. ``load`` replaces the in-memory state with the file contents
and starts empty when the file is missing or unreadable.

Concurrency: requests share one store without a lock. Pattern updates are
read-modify-write on the same object, so two concurrent updates to one
pattern can lose an increment. Suggestions are advisory, so this is
accepted.
"""

from __future__ import annotations

import asyncio
import logging
import math
import os
import re
import tempfile
from collections import deque
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from pydantic import ValidationError

from exchangeql.config import EngineConfig
from exchangeql.learning.schemas import (
    FeedbackEntry,
    LearnedPattern,
    LearningDocument,
    QueryRecord,
)

logger = logging.getLogger(__name__)

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "me", "my", "all", "show", "get", "find",
    }
)

DEFAULT_SUGGESTIONS = (
    "How many exchanges are in the system?",
    "Show me active exchanges",
    "List recent users",
    "Find overdue tasks",
    "Show me all contacts",
)

MAX_EXAMPLES_PER_PATTERN = 5
MAX_FEEDBACK = 500
MIN_SUGGEST_COUNT = 3
MIN_SUGGEST_SUCCESS_RATE = 0.5


def extract_keywords(text: str) -> list[str]:
    """Significant lowercase words, in order of first appearance."""
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    keywords: list[str] = []
    for word in words:
        if len(word) > 2 and word not in STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords


def determine_query_type(text: str) -> str:
    lower = text.lower()
    if "how many" in lower or "count" in lower:
        return "count"
    if re.search(r"\b(?:show|list|get)\b", lower):
        return "list"
    if "recent" in lower:
        return "recent"
    if re.search(r"\b(?:active|open)\b", lower):
        return "status"
    if re.search(r"\b(?:overdue|late)\b", lower):
        return "overdue"
    return "general"


def pattern_key(text: str) -> str:
    return f"{determine_query_type(text)}_{'_'.join(extract_keywords(text)[:3])}"


class QueryLearningStore:
    """In-memory learning state with periodic atomic flushes."""

    def __init__(
        self,
        path: Path | str,
        *,
        flush_every: int = 10,
        max_successful: int = 1000,
        max_failed: int = 500,
        clock: Callable[[], datetime] | None = None,
    ):
        self.path = Path(path)
        self.flush_every = flush_every
        self.max_successful = max_successful
        self.max_failed = max_failed
        self.clock = clock or datetime.now

        self.successful: deque[QueryRecord] = deque(maxlen=max_successful)
        self.failed: deque[QueryRecord] = deque(maxlen=max_failed)
        self.patterns: dict[str, LearnedPattern] = {}
        self.feedback: deque[FeedbackEntry] = deque(maxlen=MAX_FEEDBACK)
        self.last_updated: datetime | None = None
        self._pending = 0

    @classmethod
    def from_config(cls, config: EngineConfig, **kwargs: Any) -> QueryLearningStore:
        return cls(
            config.learning_path,
            flush_every=config.flush_every,
            max_successful=config.max_successful_history,
            max_failed=config.max_failed_history,
            **kwargs,
        )

    @property
    def pending(self) -> int:
        """Observations recorded since the last flush."""
        return self._pending

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def record(self, record: QueryRecord) -> None:
        """Append one attempt and update its pattern; flush on cadence."""
        if record.success:
            self.successful.append(record)
        else:
            self.failed.append(record)
        self._update_pattern(record)
        self.last_updated = self.clock()
        await self._observed()

    def _update_pattern(self, record: QueryRecord) -> None:
        key = pattern_key(record.query)
        pattern = self.patterns.get(key)
        if pattern is None:
            pattern = LearnedPattern(
                pattern_key=key,
                query_type=determine_query_type(record.query),
                target_table=record.target_table,
                keywords=extract_keywords(record.query)[:3],
                first_seen=record.timestamp,
            )
            self.patterns[key] = pattern
        elif pattern.target_table is None:
            pattern.target_table = record.target_table

        pattern.count += 1
        outcome = 1.0 if record.success else 0.0
        pattern.success_rate += (outcome - pattern.success_rate) / pattern.count
        pattern.last_used = record.timestamp
        if record.success:
            pattern.success_count += 1
            pattern.sql_template = record.sql
            if record.query not in pattern.example_queries:
                pattern.example_queries.append(record.query)
                del pattern.example_queries[:-MAX_EXAMPLES_PER_PATTERN]

    async def record_feedback(self, query_id: str, feedback: str, user_id: str | None = None) -> FeedbackEntry:
        entry = FeedbackEntry(query_id=query_id, feedback=feedback, user_id=user_id, timestamp=self.clock())
        self.feedback.append(entry)
        logger.info("Recorded feedback for query %s", query_id)
        await self._observed()
        return entry

    async def _observed(self) -> None:
        self._pending += 1
        if self._pending >= self.flush_every:
            await self.try_flush()

    # ------------------------------------------------------------------
    # Suggestions
    # ------------------------------------------------------------------

    def suggest(self, partial: str = "", limit: int = 10) -> list[str]:
        """Top example queries from well-performing patterns.

        Score: intent type match with ``partial`` (+10), keyword overlap
        (+5 each), success rate (x3) and log-scaled frequency.
        """
        partial_type = determine_query_type(partial) if partial.strip() else None
        partial_keywords = set(extract_keywords(partial))

        scored: list[tuple[float, datetime, LearnedPattern]] = []
        for pattern in self.patterns.values():
            if pattern.success_rate <= MIN_SUGGEST_SUCCESS_RATE or pattern.count < MIN_SUGGEST_COUNT:
                continue
            if not pattern.example_queries:
                continue
            score = 0.0
            if partial_type is not None and pattern.query_type == partial_type:
                score += 10
            score += 5 * len(partial_keywords.intersection(pattern.keywords))
            score += 3 * pattern.success_rate
            score += math.log1p(pattern.count)
            scored.append((score, pattern.last_used or datetime.min, pattern))

        scored.sort(key=lambda item: (item[0], item[1]), reverse=True)
        suggestions: list[str] = []
        for _, _, pattern in scored:
            example = pattern.example_queries[-1]
            if example not in suggestions:
                suggestions.append(example)
            if len(suggestions) >= limit:
                break

        if not suggestions:
            return list(DEFAULT_SUGGESTIONS[:limit])
        return suggestions

    def find_similar(self, text: str, limit: int = 5) -> list[dict[str, Any]]:
        """Patterns resembling ``text``, best first."""
        query_type = determine_query_type(text)
        keywords = set(extract_keywords(text))

        results = []
        for pattern in self.patterns.values():
            overlap = len(keywords.intersection(pattern.keywords))
            type_match = pattern.query_type == query_type
            if not overlap and not type_match:
                continue
            score = (10 if type_match else 0) + 5 * overlap
            score += 3 * pattern.success_rate + min(pattern.count, 10) * 0.5
            results.append(
                {
                    "pattern_key": pattern.pattern_key,
                    "example_query": pattern.example_queries[-1] if pattern.example_queries else None,
                    "query_type": pattern.query_type,
                    "score": round(score, 2),
                    "success_rate": round(pattern.success_rate, 3),
                    "count": pattern.count,
                }
            )
        results.sort(key=lambda item: item["score"], reverse=True)
        return results[:limit]

    def stats(self) -> dict[str, Any]:
        total_success = len(self.successful)
        total_failed = len(self.failed)
        total = total_success + total_failed
        last_query = None
        timestamps = [history[-1].timestamp for history in (self.successful, self.failed) if history]
        if timestamps:
            last_query = max(timestamps).isoformat()
        top = sorted(self.patterns.values(), key=lambda p: p.count, reverse=True)[:5]
        return {
            "total_successful": total_success,
            "total_failed": total_failed,
            "unique_patterns": len(self.patterns),
            "success_rate": round(total_success / total, 3) if total else 0.0,
            "last_query_at": last_query,
            "feedback_entries": len(self.feedback),
            "top_patterns": [
                {"pattern_key": p.pattern_key, "count": p.count, "success_rate": round(p.success_rate, 3)}
                for p in top
            ],
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_document(self) -> LearningDocument:
        return LearningDocument(
            successful_queries=list(self.successful),
            failed_queries=list(self.failed),
            query_patterns={key: p.model_copy() for key, p in self.patterns.items()},
            user_feedback=list(self.feedback),
            last_updated=self.last_updated or self.clock(),
        )

    def load(self) -> bool:
        """Replace in-memory state with the file contents.

        Returns False, leaving the store empty, when the file is missing or
        cannot be parsed.
        """
        self._reset()
        if not self.path.exists():
            logger.info("No learning file at %s; starting empty", self.path)
            return False
        try:
            document = LearningDocument.model_validate_json(self.path.read_text())
        except (OSError, ValueError, ValidationError) as exc:
            logger.warning("Ignoring unreadable learning file %s: %s", self.path, exc)
            return False

        self.successful.extend(document.successful_queries[-self.max_successful:])
        self.failed.extend(document.failed_queries[-self.max_failed:])
        self.patterns = dict(document.query_patterns)
        self.feedback.extend(document.user_feedback)
        self.last_updated = document.last_updated
        logger.info(
            "Loaded %d patterns, %d successes, %d failures from %s",
            len(self.patterns),
            len(self.successful),
            len(self.failed),
            self.path,
        )
        return True

    async def flush(self) -> None:
        """Write the whole document atomically."""
        payload = self.to_document().model_dump_json(indent=2)
        await asyncio.to_thread(self._write, payload)
        self._pending = 0
        logger.debug("Flushed learning state to %s", self.path)

    async def try_flush(self) -> bool:
        """Flush, logging a failed write instead of raising it.

        Unflushed observations stay pending, so the next one retries.
        """
        try:
            await self.flush()
        except OSError:
            logger.exception("Failed to write learning state to %s", self.path)
            return False
        return True

    def _write(self, payload: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as f:
                f.write(payload)
            os.replace(tmp_name, self.path)
        except OSError:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _reset(self) -> None:
        self.successful.clear()
        self.failed.clear()
        self.patterns = {}
        self.feedback.clear()
        self.last_updated = None
        self._pending = 0
