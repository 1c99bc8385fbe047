"""Tests for SQL guardrails."""

import pytest

from exchangeql.sql.guardrails import (
    GuardrailConfig,
    SafetyValidator,
    detect_dangerous_keywords,
    detect_dangerous_patterns,
    extract_columns,
    extract_tables,
    validate_sql,
)


class TestValidateSql:
    def test_simple_select_passes(self):
        verdict = validate_sql("SELECT e.id, e.name FROM exchanges e LIMIT 10")
        assert verdict.passed
        assert verdict.violations == []
        assert verdict.tables == ["exchanges"]

    def test_must_start_with_select(self):
        verdict = validate_sql("WITH x AS (SELECT 1) SELECT * FROM x")
        assert not verdict.passed
        assert "Query must start with SELECT" in verdict.violations

    def test_empty(self):
        assert not validate_sql("   ").passed

    @pytest.mark.parametrize(
        "sql",
        [
            "DROP TABLE exchanges",
            "SELECT id FROM exchanges; DELETE FROM users",
            "SELECT id FROM users WHERE 1=1 -- comment",
            "SELECT id FROM users /* hidden */",
            "SELECT id FROM users UNION SELECT id FROM contacts",
            "SELECT * FROM read_csv_auto('/etc/passwd')",
            "SELECT xp_cmdshell('dir') FROM users",
            "SELECT id FROM users WHERE id IN (SELECT 1) LIMIT 1; ATTACH 'x.db'",
        ],
    )
    def test_blocked(self, sql):
        assert not validate_sql(sql).passed

    def test_table_allowlist(self):
        verdict = validate_sql("SELECT id FROM secrets LIMIT 1")
        assert not verdict.passed
        assert "Table(s) not allowed: secrets" in verdict.violations

    @pytest.mark.parametrize(
        "sql",
        [
            "SELECT e.id, s.secret FROM exchanges e, secrets s LIMIT 5",
            "SELECT e.id FROM exchanges AS e , users u, secrets LIMIT 5",
            "SELECT e.id FROM exchanges e, read_text('/etc/passwd') t LIMIT 5",
            "SELECT (SELECT COUNT(*) FROM users, secrets) AS n FROM exchanges e LIMIT 1",
        ],
    )
    def test_comma_separated_from_items_are_checked(self, sql):
        verdict = validate_sql(sql)
        assert not verdict.passed
        assert any(v.startswith("Table(s) not allowed") for v in verdict.violations)

    def test_custom_allowlist(self):
        config = GuardrailConfig(allowed_tables=("exchanges",))
        assert not validate_sql("SELECT u.id FROM users u LIMIT 1", config).passed
        assert SafetyValidator(config).validate("SELECT e.id FROM exchanges e LIMIT 1").passed

    def test_updated_at_is_not_update(self):
        verdict = validate_sql("SELECT e.updated_at, e.created_at FROM exchanges e LIMIT 5")
        assert verdict.passed

    def test_keyword_inside_string_literal_is_ignored(self):
        assert detect_dangerous_keywords("SELECT id FROM tasks WHERE title = 'DROP everything'") == []

    def test_missing_limit_suggestion(self):
        verdict = validate_sql("SELECT e.id FROM exchanges e")
        assert verdict.passed
        assert any("LIMIT" in s for s in verdict.suggestions)

    def test_single_row_count_needs_no_limit(self):
        verdict = validate_sql("SELECT COUNT(*) AS count FROM exchanges e")
        assert verdict.suggestions == []

    def test_select_star_suggestion(self):
        verdict = validate_sql("SELECT * FROM exchanges LIMIT 5")
        assert any("SELECT *" in s for s in verdict.suggestions)


class TestExtraction:
    def test_tables_include_joins(self):
        sql = (
            "SELECT e.id FROM exchanges e LEFT JOIN contacts c ON c.id = e.client_id "
            "JOIN users u ON u.id = e.coordinator_id LIMIT 5"
        )
        assert extract_tables(sql) == ["exchanges", "contacts", "users"]

    def test_tables_include_every_from_item(self):
        sql = "SELECT e.id, u.email FROM exchanges e, users AS u WHERE u.id = e.coordinator_id LIMIT 5"
        assert extract_tables(sql) == ["exchanges", "users"]
        assert "users.email" in extract_columns(sql)

    def test_scalar_subqueries_end_at_closing_paren(self):
        sql = "SELECT (SELECT COUNT(*) FROM exchanges) AS a, (SELECT COUNT(*) FROM tasks WHERE status <> $done) AS b"
        assert extract_tables(sql) == ["exchanges", "tasks"]

    def test_columns_resolve_aliases(self):
        sql = "SELECT e.id, c.last_name FROM exchanges e JOIN contacts c ON c.id = e.client_id"
        columns = extract_columns(sql)
        assert "exchanges.id" in columns
        assert "contacts.last_name" in columns
        assert "exchanges.client_id" in columns

    def test_patterns_are_all_reported(self):
        found = detect_dangerous_patterns("SELECT 1; SELECT 2 -- x")
        assert "statement separator" in found
        assert "line comment" in found
