"""Structured matches produced by the extraction rules.

Every match carries the literal text it matched, a confidence, and a hint
for the entity the question is about. The ``kind`` class attribute is the
discriminator used by the synthesizer.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, ClassVar


class MatchKind(str, Enum):
    """Families of structured filters."""

    NAME = "name"
    DEADLINE = "deadline"
    TIME_RANGE = "time_range"
    LOCATION = "location"
    NUMERIC_RANGE = "numeric_range"
    STATUS = "status"
    RELATIONSHIP = "relationship"


@dataclass(frozen=True)
class ExtractionMatch:
    """Base class for all matches."""

    kind: ClassVar[MatchKind]

    literal: str
    target_entity: str
    confidence: float

    def normalized(self) -> Any:
        """Canonical form of the matched value."""
        return self.literal.strip().lower()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["kind"] = self.kind.value
        data["normalized"] = self.normalized()
        return data


@dataclass(frozen=True)
class NameMatch(ExtractionMatch):
    """Person or company names.

    ``role`` narrows which related entity the names belong to:
    "any", "client", "coordinator" or "contact".
    """

    kind: ClassVar[MatchKind] = MatchKind.NAME

    names: tuple[str, ...] = ()
    role: str = "any"

    def normalized(self) -> tuple[str, ...]:
        return tuple(n.lower() for n in self.names)


@dataclass(frozen=True)
class DeadlineMatch(ExtractionMatch):
    """1031 statutory deadline filter.

    ``deadline_column`` is ``day_45`` or ``day_180``; ``mode`` is
    "approaching" (deadline within ``window_days``) or "missed".
    """

    kind: ClassVar[MatchKind] = MatchKind.DEADLINE

    deadline_column: str = "day_45"
    mode: str = "approaching"
    window_days: int = 14
    coordinator_name: str | None = None

    def normalized(self) -> str:
        return f"{self.deadline_column}:{self.mode}:{self.window_days}"


@dataclass(frozen=True)
class TimeRangeMatch(ExtractionMatch):
    """Half-open creation-time window ``[start, end)``.

    Either bound may be None. ``client_name`` is set when the question also
    names a client, which the exchange time template folds in.
    """

    kind: ClassVar[MatchKind] = MatchKind.TIME_RANGE

    label: str = ""
    start: datetime | None = None
    end: datetime | None = None
    client_name: str | None = None

    def normalized(self) -> str:
        return self.label


@dataclass(frozen=True)
class LocationMatch(ExtractionMatch):
    """State or city filter. For states, ``values`` holds (code, full name)."""

    kind: ClassVar[MatchKind] = MatchKind.LOCATION

    scope: str = "state"
    values: tuple[str, ...] = ()

    def normalized(self) -> tuple[str, ...]:
        return tuple(v.upper() for v in self.values)


@dataclass(frozen=True)
class NumericRangeMatch(ExtractionMatch):
    """Monetary threshold on exchange value.

    ``operator`` is one of ">", ">=", "<", "<=", "between" or "approx".
    ``upper`` is only set for "between".
    """

    kind: ClassVar[MatchKind] = MatchKind.NUMERIC_RANGE

    operator: str = ">"
    value: float = 0.0
    upper: float | None = None

    def normalized(self) -> str:
        if self.operator == "between":
            return f"between {self.value:g} and {self.upper:g}"
        return f"{self.operator} {self.value:g}"


@dataclass(frozen=True)
class StatusMatch(ExtractionMatch):
    """Workflow status mapped onto the entity's canonical enum.

    ``overdue`` marks the task "past due date and not completed" filter and
    ``active_flag`` the users.is_active filter.
    """

    kind: ClassVar[MatchKind] = MatchKind.STATUS

    statuses: tuple[str, ...] = ()
    overdue: bool = False
    active_flag: bool | None = None

    def normalized(self) -> tuple[str, ...]:
        if self.overdue:
            return ("OVERDUE",)
        if self.active_flag is not None:
            return ("ACTIVE",) if self.active_flag else ("INACTIVE",)
        return self.statuses


@dataclass(frozen=True)
class RelationshipMatch(ExtractionMatch):
    """Relationship keyword that implies a join (or a role filter)."""

    kind: ClassVar[MatchKind] = MatchKind.RELATIONSHIP

    relationship: str = "coordinator"
    join_table: str = "users"

    def normalized(self) -> str:
        return self.relationship
