"""Pattern extraction rules.

Each rule turns free text into one structured match or None. Rules are
independent and never raise for text they do not recognize. The
``ExtractionPipeline`` evaluates them in a declared order and returns the
first match (cascade, not merge).

Default order: deadline, name, time, location, numeric, status,
relationship. The deadline rule comes first because it folds a coordinator
name into its own template.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Callable, ClassVar, Iterable

from exchangeql.config import DEFAULT_EXTRACTOR_ORDER
from exchangeql.planning.intent import detect_entity
from exchangeql.planning.matches import (
    DeadlineMatch,
    ExtractionMatch,
    LocationMatch,
    NameMatch,
    NumericRangeMatch,
    RelationshipMatch,
    StatusMatch,
    TimeRangeMatch,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]

# Capitalized word: the heuristic that separates names from filler words.
_NAME_TOKEN = re.compile(r"^[A-Z][a-zA-Z'\-]+$")

# Capitalized words that are not names.
_FILLER_WORDS = {
    "a", "all", "an", "and", "any", "are", "at", "by", "client", "clients",
    "contact", "contacts", "coordinator", "count", "deadline", "do", "exchange",
    "exchanges", "find", "for", "from", "get", "have", "how", "i", "in", "is",
    "list", "many", "me", "mr", "mrs", "ms", "dr", "my", "named", "of", "on",
    "or", "please", "show", "the", "their", "them", "there", "these", "this",
    "those", "to", "user", "users", "what", "where", "which", "who", "with",
    "task", "tasks", "document", "documents", "message", "messages",
}

MONTHS = {
    "january": 1, "february": 2, "march": 3, "april": 4, "may": 5, "june": 6,
    "july": 7, "august": 8, "september": 9, "october": 10, "november": 11,
    "december": 12,
}
_MONTH_ALT = "|".join(MONTHS)

US_STATES = {
    "AL": "Alabama", "AZ": "Arizona", "CA": "California", "CO": "Colorado",
    "CT": "Connecticut", "FL": "Florida", "GA": "Georgia", "HI": "Hawaii",
    "IL": "Illinois", "MA": "Massachusetts", "MD": "Maryland", "MI": "Michigan",
    "MN": "Minnesota", "NC": "North Carolina", "NJ": "New Jersey", "NV": "Nevada",
    "NY": "New York", "OH": "Ohio", "OR": "Oregon", "PA": "Pennsylvania",
    "TN": "Tennessee", "TX": "Texas", "UT": "Utah", "VA": "Virginia",
    "WA": "Washington",
}
_STATE_NAMES = {name.lower(): code for code, name in US_STATES.items()}
_STATE_NAME_ALT = "|".join(sorted(_STATE_NAMES, key=len, reverse=True))
_STATE_CODE_ALT = "|".join(US_STATES)


def split_name_tokens(text: str, *, require_capitalized: bool = True) -> list[str]:
    """Split name text on commas, then whitespace, keeping name-like tokens.

    "Katzovitz, Yechiel" -> ["Katzovitz", "Yechiel"]. Filler words and, when
    ``require_capitalized`` is set, lowercase words are dropped.
    """
    parts = text.split(",") if "," in text else [text]
    tokens: list[str] = []
    for part in parts:
        for raw in part.split():
            token = raw.strip(" '\"?.!;:()[]")
            if len(token) < 2 or token.lower() in _FILLER_WORDS:
                continue
            if require_capitalized and not _NAME_TOKEN.match(token):
                continue
            if not re.fullmatch(r"[A-Za-z0-9'\-]+", token):
                continue
            if token not in tokens:
                tokens.append(token)
    return tokens


def _is_state_word(token: str) -> bool:
    return token.upper() in US_STATES or token.lower() in _STATE_NAMES


_NAME_CUE = re.compile(r"\b(?:named|called)\s+\w|\bwith\s+[A-Za-z][\w'\-]*\s*,\s*[A-Za-z]", re.IGNORECASE)


def has_name_cue(text: str) -> bool:
    """True when the text points at a person name, recognized or not."""
    return bool(_NAME_CUE.search(text))


class ExtractionRule(ABC):
    """One extractor in the cascade."""

    name: ClassVar[str]

    @abstractmethod
    def try_match(self, text: str) -> ExtractionMatch | None:
        """Return a structured match, or None when the text does not apply."""


class NameRule(ExtractionRule):
    """Explicit person or company names."""

    name = "name"

    _QUOTED_CONTAINS = re.compile(
        r"\b(?:(client|coordinator|contact)'?s?\s+)?(?:last\s+|first\s+)?name\s+"
        r"(?:contains|includes|like|matches)\s+['\"]([^'\"]+)['\"]",
        re.IGNORECASE,
    )
    _BARE_CONTAINS = re.compile(
        r"\b(?:(client|coordinator|contact)'?s?\s+)?(?:last\s+|first\s+)?name\s+"
        r"(?:contains|includes|like|matches)\s+([^\s?,.;]+)",
        re.IGNORECASE,
    )
    _DASH_LIST = re.compile(r"\bnames?\b.*?\bwith\s*[-:]\s*(.+?)\s*(?:\?|$)", re.IGNORECASE)
    _ROLE_NAMED = re.compile(
        r"\b(client|coordinator|contact|user)s?\b[^?.;]*?\bnamed?\s+([^?,.;]+)",
        re.IGNORECASE,
    )
    _NAMED = re.compile(r"\b(?:named|called)\s+([^?,.;]+)", re.IGNORECASE)
    _SURNAME_FIRST = re.compile(r"\b([A-Z][a-zA-Z'\-]+),\s*([A-Z][a-zA-Z'\-]+)\b")
    _WITH_FULL_NAME = re.compile(r"\bwith\s+([A-Z][a-zA-Z'\-]+(?:\s+[A-Z][a-zA-Z'\-]+)+)")

    _ROLE_MAP = {"client": "client", "coordinator": "coordinator", "contact": "contact", "user": "any"}

    def try_match(self, text: str) -> NameMatch | None:
        # Quoted values are explicitly delimited, so case does not matter.
        m = self._QUOTED_CONTAINS.search(text)
        if m:
            tokens = split_name_tokens(m.group(2), require_capitalized=False)
            if tokens:
                return self._build(text, m.group(0), tokens, m.group(1), 0.95)

        m = self._BARE_CONTAINS.search(text)
        if m:
            tokens = split_name_tokens(m.group(2))
            if tokens:
                return self._build(text, m.group(0), tokens, m.group(1), 0.9)

        m = self._DASH_LIST.search(text)
        if m:
            tokens = split_name_tokens(m.group(1))
            if tokens:
                return self._build(text, m.group(0), tokens, None, 0.85)

        m = self._ROLE_NAMED.search(text)
        if m:
            tokens = split_name_tokens(m.group(2))
            if tokens:
                return self._build(text, m.group(0), tokens, m.group(1), 0.9)

        m = self._NAMED.search(text)
        if m:
            tokens = split_name_tokens(m.group(1))
            if tokens:
                return self._build(text, m.group(0), tokens, None, 0.8)

        for m in self._SURNAME_FIRST.finditer(text):
            prefix = text[: m.start()].rstrip().lower()
            if prefix.endswith(" in") or prefix == "in":
                continue
            if _is_state_word(m.group(1)) or _is_state_word(m.group(2)):
                continue
            tokens = split_name_tokens(m.group(0))
            if len(tokens) == 2:
                return self._build(text, m.group(0), tokens, None, 0.8)

        m = self._WITH_FULL_NAME.search(text)
        if m:
            tokens = [t for t in split_name_tokens(m.group(1)) if not _is_state_word(t)]
            if len(tokens) >= 2:
                return self._build(text, m.group(0), tokens, None, 0.7)

        return None

    def _build(
        self,
        text: str,
        literal: str,
        tokens: list[str],
        role_word: str | None,
        confidence: float,
    ) -> NameMatch:
        role = self._ROLE_MAP.get((role_word or "").lower(), "any")
        entity = detect_entity(text) or "exchanges"
        return NameMatch(
            literal=literal.strip(),
            target_entity=entity,
            confidence=confidence,
            names=tuple(tokens),
            role=role,
        )


class DeadlineRule(ExtractionRule):
    """45-day identification and 180-day closing deadlines."""

    name = "deadline"

    _STATUTORY = re.compile(
        r"\b(?:45|180)[\s-]*days?\b|\bidentification\s+(?:period|window)\b|\bexchange\s+period\b",
        re.IGNORECASE,
    )
    _BARE_DEADLINE = re.compile(r"\bdeadlines?\b", re.IGNORECASE)
    _MISSED = re.compile(r"\b(?:missed|passed|past|overdue|expired|blown|lapsed)\b", re.IGNORECASE)
    _WINDOW = re.compile(r"\b(?:next|within(?:\s+the\s+next)?|coming)\s+(\d{1,3})\s+(day|week|month)s?\b", re.IGNORECASE)
    _COORD_NAMED = re.compile(r"\bcoordinator\b[^?.;]*?\b(?:named|called)\s+([\w'\-]+)", re.IGNORECASE)
    _COORD_IS = re.compile(r"\bcoordinator\s+(?:is\s+)?([A-Z][a-zA-Z'\-]+)")

    def __init__(self, default_window_days: int = 14) -> None:
        self.default_window_days = default_window_days

    def try_match(self, text: str) -> DeadlineMatch | None:
        trigger = self._STATUTORY.search(text)
        if not trigger:
            trigger = self._BARE_DEADLINE.search(text)
            # A plain "deadline" on tasks or users is not a 1031 deadline.
            if not trigger or detect_entity(text) not in (None, "exchanges"):
                return None

        lower = text.lower()
        if re.search(r"\b180\b", lower) or "exchange period" in lower or "closing deadline" in lower:
            column = "day_180"
        else:
            column = "day_45"

        mode = "missed" if self._MISSED.search(text) else "approaching"

        window = self.default_window_days
        wm = self._WINDOW.search(text)
        if wm:
            amount = int(wm.group(1))
            unit = wm.group(2).lower()
            window = amount * {"day": 1, "week": 7, "month": 30}[unit]
        elif "this week" in lower:
            window = 7
        elif "this month" in lower:
            window = 30

        return DeadlineMatch(
            literal=trigger.group(0),
            target_entity="exchanges",
            confidence=0.9,
            deadline_column=column,
            mode=mode,
            window_days=max(1, window),
            coordinator_name=self._coordinator_name(text),
        )

    def _coordinator_name(self, text: str) -> str | None:
        m = self._COORD_NAMED.search(text)
        if m and _NAME_TOKEN.match(m.group(1)) and m.group(1).lower() not in _FILLER_WORDS:
            return m.group(1)
        m = self._COORD_IS.search(text)
        if m and m.group(1).lower() not in _FILLER_WORDS:
            return m.group(1)
        return None


class TimeRangeRule(ExtractionRule):
    """Relative and calendar time windows on creation time."""

    name = "time"

    _BEFORE_AFTER = re.compile(rf"\b(before|after|since)\s+({_MONTH_ALT})\s+(\d{{4}})\b", re.IGNORECASE)
    _IN_MONTH = re.compile(rf"\b(?:in|during)\s+({_MONTH_ALT})\s+(\d{{4}})\b", re.IGNORECASE)
    _IN_YEAR = re.compile(
        r"\b(?:(?:created|closed|opened|started|added|hired|completed|filed)\s+in|during)\s+(\d{4})\b",
        re.IGNORECASE,
    )
    _LAST_N = re.compile(r"\b(?:last|past|previous)\s+(\d{1,4})\s+(hour|day|week|month)s?\b", re.IGNORECASE)
    _NAMED_PERIOD = re.compile(
        r"\b(today|yesterday|(?:this|last|past|previous)\s+(?:week|month|quarter|year))\b",
        re.IGNORECASE,
    )
    _CLIENT_HINT = re.compile(r"\b(?:client|for|with)\s+(?:(?:the\s+)?client\s+)?(?:named\s+)?([\w'\-]+)", re.IGNORECASE)

    def __init__(self, clock: Clock | None = None) -> None:
        self.clock = clock or datetime.now

    def try_match(self, text: str) -> TimeRangeMatch | None:
        now = self.clock()
        found = self._window(text, now)
        if found is None:
            return None
        label, start, end = found
        return TimeRangeMatch(
            literal=label,
            target_entity=detect_entity(text) or "exchanges",
            confidence=0.85,
            label=label.lower(),
            start=start,
            end=end,
            client_name=self._client_name(text),
        )

    def _window(self, text: str, now: datetime) -> tuple[str, datetime | None, datetime | None] | None:
        m = self._BEFORE_AFTER.search(text)
        if m:
            year = int(m.group(3))
            if not _valid_year(year):
                return None
            month_start = datetime(year, MONTHS[m.group(2).lower()], 1)
            word = m.group(1).lower()
            if word == "before":
                return m.group(0), None, month_start
            if word == "after":
                return m.group(0), _add_months(month_start, 1), None
            return m.group(0), month_start, None

        m = self._IN_MONTH.search(text)
        if m:
            year = int(m.group(2))
            if not _valid_year(year):
                return None
            start = datetime(year, MONTHS[m.group(1).lower()], 1)
            return m.group(0), start, _add_months(start, 1)

        m = self._IN_YEAR.search(text)
        if m:
            year = int(m.group(1))
            if not _valid_year(year):
                return None
            return m.group(0), datetime(year, 1, 1), datetime(year + 1, 1, 1)

        m = self._LAST_N.search(text)
        if m:
            amount = int(m.group(1))
            unit = m.group(2).lower()
            delta = {
                "hour": timedelta(hours=amount),
                "day": timedelta(days=amount),
                "week": timedelta(weeks=amount),
                "month": timedelta(days=30 * amount),
            }[unit]
            return m.group(0), now - delta, None

        m = self._NAMED_PERIOD.search(text)
        if m:
            phrase = " ".join(m.group(1).lower().split())
            start, end = _named_period(phrase, now)
            return m.group(0), start, end

        return None

    def _client_name(self, text: str) -> str | None:
        for m in self._CLIENT_HINT.finditer(text):
            token = m.group(1)
            if (
                _NAME_TOKEN.match(token)
                and token.lower() not in _FILLER_WORDS
                and token.lower() not in MONTHS
                and not _is_state_word(token)
            ):
                return token
        return None


class LocationRule(ExtractionRule):
    """State and city filters on replacement/relinquished property."""

    name = "location"

    _CITY_STATE = re.compile(rf"\bin\s+([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)\s*,\s*({_STATE_CODE_ALT})\b")
    _CITY_AREA = re.compile(r"\b([A-Z][a-zA-Z]+(?:\s+[A-Z][a-zA-Z]+)*)\s+area\b")
    _STATE_NAME = re.compile(
        rf"\b(?:in|from|located in|within)\s+({_STATE_NAME_ALT})\b"
        rf"|\b({_STATE_NAME_ALT})\s+(?:properties|property|exchanges?|locations?)\b",
        re.IGNORECASE,
    )
    _STATE_CODE = re.compile(rf"\b(?:in|from)\s+({_STATE_CODE_ALT})\b")

    def try_match(self, text: str) -> LocationMatch | None:
        entity = detect_entity(text) or "exchanges"

        m = self._CITY_STATE.search(text)
        if m:
            return LocationMatch(
                literal=m.group(0),
                target_entity=entity,
                confidence=0.9,
                scope="city",
                values=(m.group(1), m.group(2)),
            )

        m = self._STATE_NAME.search(text)
        if m:
            state_name = (m.group(1) or m.group(2)).lower()
            code = _STATE_NAMES[state_name]
            return LocationMatch(
                literal=m.group(0),
                target_entity=entity,
                confidence=0.9,
                scope="state",
                values=(code, US_STATES[code]),
            )

        m = self._STATE_CODE.search(text)
        if m:
            code = m.group(1)
            return LocationMatch(
                literal=m.group(0),
                target_entity=entity,
                confidence=0.8,
                scope="state",
                values=(code, US_STATES[code]),
            )

        m = self._CITY_AREA.search(text)
        if m:
            words = [w for w in m.group(1).split() if w.lower() not in _FILLER_WORDS]
            if words:
                return LocationMatch(
                    literal=m.group(0),
                    target_entity=entity,
                    confidence=0.7,
                    scope="city",
                    values=(" ".join(words),),
                )
        return None


class NumericRule(ExtractionRule):
    """Monetary thresholds such as "over $1.5 million" or "under 500k"."""

    name = "numeric"

    _AMOUNT = re.compile(
        r"(?P<dollar>\$)?\s*(?P<num>\d[\d,]*(?:\.\d+)?)\s*"
        r"(?P<unit>million|thousand|billion|mm|k|m|b)?\b",
        re.IGNORECASE,
    )
    _FINANCIAL = re.compile(
        r"\b(?:proceeds|value|valued|worth|price|priced|amount|dollars?|usd|equity)\b",
        re.IGNORECASE,
    )
    _UNITS = {"k": 1e3, "thousand": 1e3, "m": 1e6, "mm": 1e6, "million": 1e6, "b": 1e9, "billion": 1e9}
    _OPERATORS: tuple[tuple[str, str], ...] = (
        (r"\bat least\b|\bno less than\b|\bminimum of\b", ">="),
        (r"\bat most\b|\bno more than\b|\bmaximum of\b", "<="),
        (r"\bover\b|\babove\b|\bmore than\b|\bgreater than\b|\bexceeding\b|\bin excess of\b|>", ">"),
        (r"\bunder\b|\bbelow\b|\bless than\b|\blower than\b|<", "<"),
    )

    def try_match(self, text: str) -> NumericRangeMatch | None:
        has_financial_word = bool(self._FINANCIAL.search(text))
        amounts: list[tuple[str, float]] = []
        for m in self._AMOUNT.finditer(text):
            if not (m.group("dollar") or m.group("unit") or has_financial_word):
                continue
            try:
                value = float(m.group("num").replace(",", ""))
            except ValueError:
                continue
            unit = (m.group("unit") or "").lower()
            value *= self._UNITS.get(unit, 1.0)
            amounts.append((m.group(0).strip(), value))
        if not amounts:
            return None

        entity = detect_entity(text) or "exchanges"
        lower = text.lower()
        if re.search(r"\bbetween\b", lower) and len(amounts) >= 2:
            low, high = sorted((amounts[0][1], amounts[1][1]))
            return NumericRangeMatch(
                literal=f"{amounts[0][0]} and {amounts[1][0]}",
                target_entity=entity,
                confidence=0.85,
                operator="between",
                value=low,
                upper=high,
            )

        operator = "approx"
        for pattern, op in self._OPERATORS:
            if re.search(pattern, lower):
                operator = op
                break
        literal, value = amounts[0]
        return NumericRangeMatch(
            literal=literal,
            target_entity=entity,
            confidence=0.8 if operator != "approx" else 0.6,
            operator=operator,
            value=value,
        )


class StatusRule(ExtractionRule):
    """Workflow keywords mapped onto each entity's status enum."""

    name = "status"

    EXCHANGE_STATUSES: tuple[tuple[str, tuple[str, ...]], ...] = (
        (r"\bin[\s-]progress\b", ("IN_PROGRESS",)),
        (r"\bon[\s-]hold\b", ("ON_HOLD",)),
        (r"\b(?:active|open|ongoing|current)\b", ("ACTIVE", "IN_PROGRESS")),
        (r"\b(?:completed|closed|finished|done)\b", ("COMPLETED",)),
        (r"\b(?:pending|not started)\b", ("PENDING",)),
        (r"\b(?:cancelled|canceled)\b", ("CANCELLED",)),
    )
    TASK_STATUSES: tuple[tuple[str, tuple[str, ...]], ...] = (
        (r"\bin[\s-]progress\b", ("IN_PROGRESS",)),
        (r"\b(?:pending|open|outstanding|incomplete)\b", ("PENDING", "IN_PROGRESS")),
        (r"\b(?:completed|done|finished|closed)\b", ("COMPLETED",)),
    )
    _OVERDUE = re.compile(r"\b(?:overdue|late|past due)\b", re.IGNORECASE)
    _USER_INACTIVE = re.compile(r"\b(?:inactive|disabled|deactivated)\b", re.IGNORECASE)
    _USER_ACTIVE = re.compile(r"\b(?:active|enabled)\b", re.IGNORECASE)

    def try_match(self, text: str) -> StatusMatch | None:
        entity = detect_entity(text) or "exchanges"

        if entity == "users":
            m = self._USER_INACTIVE.search(text)
            if m:
                return StatusMatch(literal=m.group(0), target_entity=entity, confidence=0.85, active_flag=False)
            m = self._USER_ACTIVE.search(text)
            if m:
                return StatusMatch(literal=m.group(0), target_entity=entity, confidence=0.85, active_flag=True)
            return None

        if entity == "tasks":
            m = self._OVERDUE.search(text)
            if m:
                return StatusMatch(literal=m.group(0), target_entity=entity, confidence=0.9, overdue=True)
            return self._from_table(text, entity, self.TASK_STATUSES)

        # Other entities have no status column; the match is still reported
        # so the synthesizer can refuse it explicitly.
        return self._from_table(text, entity, self.EXCHANGE_STATUSES)

    def _from_table(
        self,
        text: str,
        entity: str,
        table: Iterable[tuple[str, tuple[str, ...]]],
    ) -> StatusMatch | None:
        statuses: list[str] = []
        literals: list[str] = []
        for pattern, values in table:
            m = re.search(pattern, text, re.IGNORECASE)
            if not m:
                continue
            literals.append(m.group(0))
            for value in values:
                if value not in statuses:
                    statuses.append(value)
        if not statuses:
            return None
        return StatusMatch(
            literal=", ".join(literals),
            target_entity=entity,
            confidence=0.85,
            statuses=tuple(statuses),
        )


class RelationshipRule(ExtractionRule):
    """Coordinator, client, participant and assignee keywords."""

    name = "relationship"

    RELATIONSHIPS: tuple[tuple[str, str, str], ...] = (
        ("assignee", r"\b(?:assigned to|assignees?|responsible)\b", "users"),
        ("coordinator", r"\b(?:coordinators?|managed by|handled by)\b", "users"),
        ("client", r"\b(?:clients?|customers?)\b", "contacts"),
        ("participant", r"\b(?:participants?|involved|associated)\b", "exchange_participants"),
    )

    def try_match(self, text: str) -> RelationshipMatch | None:
        for relationship, pattern, join_table in self.RELATIONSHIPS:
            m = re.search(pattern, text, re.IGNORECASE)
            if m:
                return RelationshipMatch(
                    literal=m.group(0),
                    target_entity=detect_entity(text) or "exchanges",
                    confidence=0.75,
                    relationship=relationship,
                    join_table=join_table,
                )
        return None


def build_rules(clock: Clock | None = None) -> dict[str, ExtractionRule]:
    """All known rules keyed by name."""
    rules: list[ExtractionRule] = [
        DeadlineRule(),
        NameRule(),
        TimeRangeRule(clock=clock),
        LocationRule(),
        NumericRule(),
        StatusRule(),
        RelationshipRule(),
    ]
    return {rule.name: rule for rule in rules}


class ExtractionPipeline:
    """Ordered cascade of extraction rules."""

    def __init__(self, rules: list[ExtractionRule]):
        if not rules:
            raise ValueError("ExtractionPipeline needs at least one rule")
        self.rules = list(rules)

    @classmethod
    def from_order(
        cls,
        order: Iterable[str] = DEFAULT_EXTRACTOR_ORDER,
        *,
        clock: Clock | None = None,
    ) -> ExtractionPipeline:
        available = build_rules(clock)
        rules = []
        for name in order:
            if name not in available:
                raise ValueError(f"Unknown extraction rule: {name}")
            rules.append(available[name])
        return cls(rules)

    @property
    def order(self) -> list[str]:
        return [rule.name for rule in self.rules]

    def extract(self, text: str) -> ExtractionMatch | None:
        """Return the first non-empty match in priority order."""
        for rule in self.rules:
            match = rule.try_match(text)
            if match is not None:
                logger.debug("Rule %s matched %r", rule.name, match.literal)
                return match
        return None

    def extract_all(self, text: str) -> dict[str, ExtractionMatch | None]:
        """Run every rule; used for diagnostics."""
        return {rule.name: rule.try_match(text) for rule in self.rules}


def _valid_year(year: int) -> bool:
    return 1900 <= year <= 2200


def _add_months(moment: datetime, months: int) -> datetime:
    index = moment.year * 12 + (moment.month - 1) + months
    return datetime(index // 12, index % 12 + 1, 1)


def _named_period(phrase: str, now: datetime) -> tuple[datetime | None, datetime | None]:
    today = datetime(now.year, now.month, now.day)
    if phrase == "today":
        return today, today + timedelta(days=1)
    if phrase == "yesterday":
        return today - timedelta(days=1), today

    which, unit = phrase.split(" ", 1)
    if unit == "week":
        start = today - timedelta(days=today.weekday())
        step = timedelta(weeks=1)
        if which == "this":
            return start, None
        return start - step, start
    if unit == "month":
        start = datetime(now.year, now.month, 1)
        if which == "this":
            return start, None
        return _add_months(start, -1), start
    if unit == "quarter":
        start = datetime(now.year, 3 * ((now.month - 1) // 3) + 1, 1)
        if which == "this":
            return start, None
        return _add_months(start, -3), start
    # year
    start = datetime(now.year, 1, 1)
    if which == "this":
        return start, None
    return datetime(now.year - 1, 1, 1), start
