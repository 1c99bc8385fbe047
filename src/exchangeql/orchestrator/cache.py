"""Short-lived cache of executed results keyed by normalized question text."""

from __future__ import annotations

import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

from exchangeql.planning.intent import QueryShape


def normalize_text(text: str) -> str:
    """Collapse whitespace and drop trailing punctuation.

    Case is kept: name recognition depends on capitalization, so "Katzovitz"
    and "katzovitz" can plan differently.
    """
    return " ".join(text.split()).rstrip("?.! ")


@dataclass(frozen=True)
class CachedResult:
    generated_sql: str
    rows: list[dict[str, Any]]
    entity: str | None
    shape: QueryShape
    stored_at: float


class ResultCache:
    """TTL + LRU cache. Expired entries are dropped on read."""

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        max_entries: int = 256,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.clock = clock
        self._entries: OrderedDict[str, CachedResult] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, text: str) -> CachedResult | None:
        key = normalize_text(text)
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self.clock() - entry.stored_at >= self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def put(
        self,
        text: str,
        generated_sql: str,
        rows: list[dict[str, Any]],
        *,
        entity: str | None,
        shape: QueryShape,
    ) -> None:
        key = normalize_text(text)
        self._entries[key] = CachedResult(
            generated_sql=generated_sql,
            rows=list(rows),
            entity=entity,
            shape=shape,
            stored_at=self.clock(),
        )
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
