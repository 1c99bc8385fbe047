"""SQL guardrails for synthesized queries.

Every SQL string must pass ``validate_sql`` before any code path executes it.

Safety Features:
- SELECT-only validation (statement must start with SELECT after trimming)
- Dangerous keyword blocking (DROP, DELETE, UPDATE, INSERT, ALTER, TRUNCATE, ...)
- Statement separators, comment openers and stacked-query indicators rejected
- Table allowlist
- Referenced tables/columns extracted for observability
- Non-fatal suggestions (missing LIMIT, SELECT *)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

ALLOWED_TABLES: tuple[str, ...] = (
    "exchanges",
    "users",
    "contacts",
    "tasks",
    "documents",
    "messages",
    "exchange_participants",
)


@dataclass
class ValidationVerdict:
    """Result of SQL validation."""

    passed: bool
    violations: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)
    tables: list[str] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)


@dataclass
class GuardrailConfig:
    """Configuration for SQL guardrails."""

    allowed_tables: tuple[str, ...] = ALLOWED_TABLES

    # Blocked keywords (case-insensitive, word boundaries)
    blocked_keywords: tuple[str, ...] = (
        "DROP",
        "DELETE",
        "UPDATE",
        "INSERT",
        "ALTER",
        "TRUNCATE",
        "GRANT",
        "REVOKE",
        "CREATE",
        "REPLACE",
        "MERGE",
        "EXECUTE",
        "EXEC",
        "CALL",
        "SET",
        "PRAGMA",
        "ATTACH",
        "DETACH",
        "COPY",
        "LOAD",
        "INSTALL",
        "EXPORT",
        "IMPORT",
    )

    # Additional patterns to block (regex, description)
    blocked_patterns: tuple[tuple[str, str], ...] = (
        (r";", "statement separator"),
        (r"--", "line comment"),
        (r"/\*", "block comment"),
        (r"\bUNION\b", "UNION (stacked query)"),
        (r"\bINTO\s+OUTFILE\b", "file write"),
        (r"\bINTO\s+DUMPFILE\b", "file dump"),
        (r"\bLOAD_FILE\s*\(", "file read"),
        (r"\bread_(?:csv|parquet|json)\w*\s*\(", "file read"),
        (r"\bxp_\w+", "extended procedure"),
        (r"\bsp_\w+", "stored procedure"),
    )


DEFAULT_CONFIG = GuardrailConfig()

_JOIN_REF = re.compile(r"\bJOIN\s+([A-Za-z_][\w.\"]*)(?:\s+(?:AS\s+)?([A-Za-z_]\w*))?", re.IGNORECASE)
_FROM_KEYWORD = re.compile(r"\bFROM\b", re.IGNORECASE)
_FROM_LIST_END = re.compile(
    r"\b(?:WHERE|GROUP|ORDER|LIMIT|HAVING|QUALIFY|WINDOW|JOIN|LEFT|RIGHT|INNER|OUTER|FULL|CROSS|NATURAL|ON|USING)\b",
    re.IGNORECASE,
)
_FROM_ITEM = re.compile(r"\s*([A-Za-z_][\w.\"]*)(?:\s+(?:AS\s+)?([A-Za-z_]\w*))?", re.IGNORECASE)
_COLUMN_REF = re.compile(r"\b([A-Za-z_]\w*)\.([A-Za-z_]\w*)\b")
_NOT_ALIASES = {"ON", "WHERE", "JOIN", "LEFT", "RIGHT", "INNER", "OUTER", "FULL", "CROSS", "GROUP", "ORDER", "LIMIT"}


def validate_sql(sql: str, config: GuardrailConfig | None = None) -> ValidationVerdict:
    """Validate SQL query against safety rules.

    Args:
        sql: SQL query string to validate
        config: Optional guardrail configuration

    Returns:
        ValidationVerdict; ``passed`` is False when any violation is found
    """
    if config is None:
        config = DEFAULT_CONFIG

    if not sql or not sql.strip():
        return ValidationVerdict(passed=False, violations=["Empty SQL query"])

    sql_clean = sql.strip()
    violations: list[str] = []

    if not re.match(r"SELECT\b", sql_clean, re.IGNORECASE):
        violations.append("Query must start with SELECT")

    blocked = detect_dangerous_keywords(sql_clean, config)
    if blocked:
        violations.append(f"Blocked keyword(s) detected: {', '.join(blocked)}")

    violations.extend(
        f"Dangerous pattern detected: {description}"
        for description in detect_dangerous_patterns(sql_clean, config)
    )

    tables = extract_tables(sql_clean)
    outside = [t for t in tables if t not in config.allowed_tables]
    if outside:
        violations.append(f"Table(s) not allowed: {', '.join(outside)}")

    suggestions = []
    if not _has_limit_clause(sql_clean) and not _is_single_row_aggregate(sql_clean):
        suggestions.append("Add a LIMIT clause to bound the result size")
    if re.search(r"\bSELECT\s+(?:DISTINCT\s+)?\*", sql_clean, re.IGNORECASE):
        suggestions.append("Select explicit columns instead of SELECT *")

    verdict = ValidationVerdict(
        passed=not violations,
        violations=violations,
        suggestions=suggestions,
        tables=tables,
        columns=extract_columns(sql_clean),
    )
    if not verdict.passed:
        logger.error("SQL failed validation: %s", "; ".join(violations))
    return verdict


def detect_dangerous_keywords(sql: str, config: GuardrailConfig | None = None) -> list[str]:
    """Detect blocked keywords in SQL query.

    Word boundaries keep "updated_at" from matching UPDATE.
    """
    if config is None:
        config = DEFAULT_CONFIG

    sql_upper = _remove_string_literals(sql).upper()
    return [kw for kw in config.blocked_keywords if re.search(rf"\b{kw}\b", sql_upper)]


def detect_dangerous_patterns(sql: str, config: GuardrailConfig | None = None) -> list[str]:
    """Return descriptions of every blocked pattern found in ``sql``."""
    if config is None:
        config = DEFAULT_CONFIG

    found = []
    for pattern, description in config.blocked_patterns:
        if re.search(pattern, sql, re.IGNORECASE | re.DOTALL) and description not in found:
            found.append(description)
    return found


def extract_tables(sql: str) -> list[str]:
    """Tables referenced in any FROM list or JOIN, in order of appearance.

    Every comma-separated FROM item counts, so ``FROM a, b`` yields both, and
    a table function such as ``read_text(...)`` is reported by its name.
    """
    tables: list[str] = []
    for _, name, _ in _table_refs(_remove_string_literals(sql)):
        if name not in tables:
            tables.append(name)
    return tables


def extract_columns(sql: str) -> list[str]:
    """Qualified ``table.column`` references, with aliases resolved."""
    text = _remove_string_literals(sql)
    aliases: dict[str, str] = {}
    for _, table, alias in _table_refs(text):
        aliases[table] = table
        if alias and alias.upper() not in _NOT_ALIASES:
            aliases[alias.lower()] = table

    columns: list[str] = []
    for match in _COLUMN_REF.finditer(text):
        prefix = match.group(1).lower()
        if prefix not in aliases:
            continue
        qualified = f"{aliases[prefix]}.{match.group(2).lower()}"
        if qualified not in columns:
            columns.append(qualified)
    return columns


def _table_refs(text: str) -> list[tuple[int, str, str | None]]:
    """(position, table, alias) for every FROM item and JOIN target."""
    refs = []
    for match in _JOIN_REF.finditer(text):
        refs.append((match.start(1), match.group(1).strip('"').lower(), match.group(2)))
    for start, item in _from_items(text):
        match = _FROM_ITEM.match(item)
        if match:
            refs.append((start, match.group(1).strip('"').lower(), match.group(2)))
    return sorted(refs, key=lambda ref: ref[0])


def _from_items(text: str) -> list[tuple[int, str]]:
    """Split each FROM list on the commas at its own nesting depth.

    A list ends at a clause keyword, at a JOIN, or at the parenthesis that
    closes an enclosing subquery. Parenthesized items are returned whole; the
    FROM lists inside them are visited on their own.
    """
    items = []
    for match in _FROM_KEYWORD.finditer(text):
        depth = 0
        item_start = pos = match.end()
        while pos < len(text):
            char = text[pos]
            if char == "(":
                depth += 1
            elif char == ")":
                if depth == 0:
                    break
                depth -= 1
            elif depth == 0:
                if char == ",":
                    items.append((item_start, text[item_start:pos]))
                    item_start = pos + 1
                elif _FROM_LIST_END.match(text, pos):
                    break
            pos += 1
        items.append((item_start, text[item_start:pos]))
    return items


def _remove_string_literals(sql: str) -> str:
    return re.sub(r"'(?:[^']|'')*'", "''", sql)


def _has_limit_clause(sql: str) -> bool:
    return bool(re.search(r"\bLIMIT\s+\d+", sql, re.IGNORECASE))


def _is_single_row_aggregate(sql: str) -> bool:
    """A bare COUNT without GROUP BY always returns one row."""
    upper = sql.upper()
    return upper.startswith("SELECT COUNT(") and "GROUP BY" not in upper


class SafetyValidator:
    """Object wrapper so the gateway can hold a configured validator."""

    def __init__(self, config: GuardrailConfig | None = None):
        self.config = config or DEFAULT_CONFIG

    def validate(self, sql: str) -> ValidationVerdict:
        return validate_sql(sql, self.config)
