"""Tests for the pattern extraction rules and their cascade order."""

from datetime import datetime

import pytest

from conftest import NOW, fixed_clock
from exchangeql.planning.extractors import (
    DeadlineRule,
    ExtractionPipeline,
    LocationRule,
    NameRule,
    NumericRule,
    RelationshipRule,
    StatusRule,
    TimeRangeRule,
    split_name_tokens,
)
from exchangeql.planning.matches import (
    DeadlineMatch,
    LocationMatch,
    MatchKind,
    NameMatch,
    NumericRangeMatch,
    StatusMatch,
    TimeRangeMatch,
)


class TestNameRule:
    def test_surname_first_with_comma(self):
        match = NameRule().try_match("How many exchanges are with Katzovitz, Yechiel?")
        assert isinstance(match, NameMatch)
        assert match.names == ("Katzovitz", "Yechiel")
        assert match.target_entity == "exchanges"

    def test_names_with_dash_list(self):
        match = NameRule().try_match("Show exchanges for names with - Katzovitz, Yechiel")
        assert match is not None
        assert match.names == ("Katzovitz", "Yechiel")

    def test_client_named(self):
        match = NameRule().try_match("List exchanges where the client is named Maria Garcia")
        assert match.names == ("Maria", "Garcia")
        assert match.role == "client"

    def test_quoted_contains_allows_lowercase(self):
        match = NameRule().try_match("exchanges where client's last name contains 'smith'")
        assert match is not None
        assert match.names == ("smith",)

    def test_all_lowercase_without_delimiter_is_no_match(self):
        assert NameRule().try_match("show exchanges with john smith") is None

    def test_filler_words_dropped(self):
        assert split_name_tokens("Show Me The Katzovitz") == ["Katzovitz"]

    def test_city_state_comma_is_not_a_name(self):
        assert NameRule().try_match("Show exchanges in Austin, TX") is None

    def test_contacts_target(self):
        match = NameRule().try_match("Find contacts named Smith")
        assert match.target_entity == "contacts"

    def test_no_name(self):
        assert NameRule().try_match("How many exchanges are in the system?") is None


class TestDeadlineRule:
    def test_approaching_45_with_coordinator(self):
        match = DeadlineRule().try_match(
            "Show exchanges approaching their 45-day deadline in the next 2 weeks "
            "where the coordinator is named Johnson"
        )
        assert isinstance(match, DeadlineMatch)
        assert match.deadline_column == "day_45"
        assert match.mode == "approaching"
        assert match.window_days == 14
        assert match.coordinator_name == "Johnson"

    def test_missed_180(self):
        match = DeadlineRule().try_match("Which exchanges missed their 180-day deadline?")
        assert match.deadline_column == "day_180"
        assert match.mode == "missed"

    def test_default_window(self):
        match = DeadlineRule().try_match("upcoming identification period deadlines")
        assert match.window_days == 14
        assert match.coordinator_name is None

    def test_window_in_days(self):
        match = DeadlineRule().try_match("45 day deadlines within 10 days")
        assert match.window_days == 10

    def test_no_trigger(self):
        assert DeadlineRule().try_match("Show me active exchanges") is None

    def test_bare_deadline_on_exchanges(self):
        match = DeadlineRule().try_match("Which exchanges have a deadline this week?")
        assert match.deadline_column == "day_45"
        assert match.window_days == 7

    def test_bare_deadline_on_other_entities_is_skipped(self):
        assert DeadlineRule().try_match("Show tasks with a deadline this week") is None
        assert DeadlineRule().try_match("Show tasks tied to a 45-day deadline") is not None


class TestTimeRangeRule:
    def test_last_n_hours(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("exchanges created in the last 48 hours")
        assert isinstance(match, TimeRangeMatch)
        assert match.start == datetime(2026, 3, 16, 12, 0, 0)
        assert match.end is None

    def test_before_month_year(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("exchanges created before January 2025")
        assert match.start is None
        assert match.end == datetime(2025, 1, 1)

    def test_this_quarter(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("How many exchanges this quarter?")
        assert match.start == datetime(2026, 1, 1)
        assert match.end is None

    def test_last_month(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("tasks created last month")
        assert match.start == datetime(2026, 2, 1)
        assert match.end == datetime(2026, 3, 1)
        assert match.target_entity == "tasks"

    def test_client_hint(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("exchanges this month for client Katzovitz")
        assert match.client_name == "Katzovitz"

    def test_month_is_not_client_hint(self):
        match = TimeRangeRule(clock=fixed_clock).try_match("exchanges created after March 2025")
        assert match.start == datetime(2025, 4, 1)
        assert match.client_name is None

    def test_no_time(self):
        assert TimeRangeRule(clock=lambda: NOW).try_match("Show me all exchanges") is None


class TestLocationRule:
    def test_state_name(self):
        match = LocationRule().try_match("How many exchanges in California?")
        assert isinstance(match, LocationMatch)
        assert match.scope == "state"
        assert match.values == ("CA", "California")

    def test_state_code_uppercase_only(self):
        assert LocationRule().try_match("exchanges in TX").values == ("TX", "Texas")
        assert LocationRule().try_match("exchanges in tx") is None

    def test_city_and_state(self):
        match = LocationRule().try_match("Show exchanges in Austin, TX")
        assert match.scope == "city"
        assert match.values == ("Austin", "TX")

    def test_state_properties(self):
        match = LocationRule().try_match("list florida properties")
        assert match.values == ("FL", "Florida")


class TestNumericRule:
    @pytest.mark.parametrize(
        "text,operator,value",
        [
            ("exchanges over $1 million", ">", 1_000_000),
            ("exchanges with proceeds under 500k", "<", 500_000),
            ("exchanges worth at least $2.5M", ">=", 2_500_000),
            ("exchanges around $800,000", "approx", 800_000),
        ],
    )
    def test_operators(self, text, operator, value):
        match = NumericRule().try_match(text)
        assert isinstance(match, NumericRangeMatch)
        assert match.operator == operator
        assert match.value == pytest.approx(value)

    def test_between(self):
        match = NumericRule().try_match("exchanges between $400k and $900k")
        assert match.operator == "between"
        assert (match.value, match.upper) == (400_000, 900_000)

    def test_bare_number_is_not_money(self):
        assert NumericRule().try_match("show 5 exchanges") is None


class TestStatusRule:
    def test_active_exchanges(self):
        match = StatusRule().try_match("Show me active exchanges")
        assert isinstance(match, StatusMatch)
        assert match.statuses == ("ACTIVE", "IN_PROGRESS")

    def test_inactive_is_not_active(self):
        match = StatusRule().try_match("List inactive users")
        assert match.active_flag is False

    def test_overdue_tasks(self):
        match = StatusRule().try_match("Find overdue tasks")
        assert match.overdue is True
        assert match.target_entity == "tasks"

    def test_completed_exchanges(self):
        assert StatusRule().try_match("completed exchanges").statuses == ("COMPLETED",)


class TestRelationshipRule:
    def test_coordinator(self):
        match = RelationshipRule().try_match("Show exchanges with their coordinators")
        assert match.relationship == "coordinator"
        assert match.join_table == "users"

    def test_assignee_beats_coordinator(self):
        match = RelationshipRule().try_match("tasks assigned to coordinators")
        assert match.relationship == "assignee"
        assert match.target_entity == "tasks"


class TestPipeline:
    def test_deadline_beats_name(self):
        pipeline = ExtractionPipeline.from_order(clock=fixed_clock)
        match = pipeline.extract(
            "exchanges approaching their 45-day deadline where the coordinator is named Johnson"
        )
        assert match.kind is MatchKind.DEADLINE
        assert match.coordinator_name == "Johnson"

    def test_task_deadline_falls_through_to_time(self):
        pipeline = ExtractionPipeline.from_order(clock=fixed_clock)
        match = pipeline.extract("Show tasks with a deadline this week")
        assert match.kind is MatchKind.TIME_RANGE

    def test_order_is_configurable(self):
        pipeline = ExtractionPipeline.from_order(["name", "deadline"], clock=fixed_clock)
        match = pipeline.extract(
            "exchanges approaching their 45-day deadline where the coordinator is named Johnson"
        )
        assert match.kind is MatchKind.NAME

    def test_unknown_rule(self):
        with pytest.raises(ValueError):
            ExtractionPipeline.from_order(["deadline", "sentiment"])

    def test_no_match(self):
        pipeline = ExtractionPipeline.from_order(clock=fixed_clock)
        assert pipeline.extract("How many exchanges are in the system?") is None

    def test_extract_all_reports_every_rule(self):
        pipeline = ExtractionPipeline.from_order(clock=fixed_clock)
        found = pipeline.extract_all("active exchanges in California over $1 million")
        assert found["location"] is not None
        assert found["numeric"] is not None
        assert found["status"] is not None
        assert found["deadline"] is None

    @pytest.mark.parametrize(
        "text",
        ["", "???", "in 0000", "before Smarch 2020", "$", "named", ",,,", "x" * 500],
    )
    def test_rules_never_raise(self, text):
        pipeline = ExtractionPipeline.from_order(clock=fixed_clock)
        pipeline.extract_all(text)
