"""Tests for natural-language query translation and filter application."""

import pytest

from data_alchemist.models import to_records
from data_alchemist.query import (
    apply_filters,
    fuzzy_search,
    matches_condition,
    parse_query,
    resolve_field,
    results_for,
    rule_based_filters,
    search,
    text_search,
    translate,
)


@pytest.fixture
def tasks(sample_data):
    return to_records(sample_data["tasks"], "tasks")


@pytest.fixture
def clients(sample_data):
    return to_records(sample_data["clients"], "clients")


def ids(records):
    return [record.identifier for record in records]


class TestDurationQuery:
    """'duration > 2' must give the same answer whether or not the AI answers."""

    EXPECTED = ["T1", "T12", "T17"]

    def test_without_agent(self, tasks):
        filters = parse_query("duration > 2", "tasks")
        assert filters == {"Duration": {"operator": "greaterThan", "value": 2}}
        assert ids(apply_filters(tasks, filters)) == self.EXPECTED

    def test_agent_failure(self, tasks, failing_agent):
        translation = translate("duration > 2", "tasks", agent=failing_agent)
        assert translation.source == "fallback"
        assert "service unavailable" in translation.ai_error
        assert ids(apply_filters(tasks, translation.filters)) == self.EXPECTED

    def test_agent_timeout(self, tasks, slow_agent):
        translation = translate("duration > 2", "tasks", agent=slow_agent, timeout=0.1)
        assert translation.source == "fallback"
        assert ids(apply_filters(tasks, translation.filters)) == self.EXPECTED

    @pytest.mark.parametrize("answer", ["", "not json at all", "[]", "{}"])
    def test_unusable_answers(self, tasks, fake_agent, answer):
        translation = translate("duration > 2", "tasks", agent=fake_agent(answer))
        assert translation.source == "fallback"
        assert ids(apply_filters(tasks, translation.filters)) == self.EXPECTED

    def test_answer_with_unknown_field_rejected(self, fake_agent):
        agent = fake_agent({"Budget": {"operator": "greaterThan", "value": 2}})
        translation = translate("duration > 2", "tasks", agent=agent)
        assert translation.source == "fallback"
        assert "unknown field" in translation.ai_error

    def test_ai_answer_used(self, tasks, fake_agent):
        agent = fake_agent('```json\n{"Category": {"operator": "equals", "value": "Testing"}}\n```')
        translation = translate("testing tasks", "tasks", agent=agent)
        assert translation.source == "ai"
        assert ids(apply_filters(tasks, translation.filters)) == ["T8", "T20"]
        assert "Duration" in agent.calls[0][1]

    @pytest.mark.parametrize("query", ["Duration greater than 2", "duration is above 2", "durations over 2"])
    def test_word_comparisons(self, query):
        assert rule_based_filters(query, "tasks") == {"Duration": {"operator": "greaterThan", "value": 2}}


class TestFallbackRules:

    def test_high_priority(self):
        assert rule_based_filters("high priority clients", "clients") == {
            "PriorityLevel": {"operator": "lessThan", "value": 3}
        }

    def test_low_priority(self):
        assert rule_based_filters("low priority", "clients")["PriorityLevel"]["operator"] == "greaterThan"

    def test_group(self):
        assert rule_based_filters("clients in group b", "clients") == {
            "GroupTag": {"operator": "equals", "value": "GroupB"}
        }

    def test_requested_task(self):
        assert rule_based_filters("who asked for t17", "clients") == {
            "RequestedTaskIDs": {"operator": "contains", "value": "T17"}
        }

    def test_budget(self):
        filters = rule_based_filters("budget over 100000", "clients")
        assert filters["AttributesJSON"] == {"operator": "jsonContains", "field": "budget", "value": 100000}

    def test_location(self):
        filters = rule_based_filters("clients in Austin", "clients")
        assert filters == {"AttributesJSON": {"operator": "jsonContains", "field": "location", "value": "Austin"}}

    def test_vip(self):
        filters = rule_based_filters("show vip clients", "clients")
        assert filters["AttributesJSON"]["value"] is True

    def test_invalid_references(self):
        assert rule_based_filters("invalid references", "clients") == {
            "RequestedTaskIDs": {"operator": "contains", "value": "TX"}
        }

    def test_rules_only_fire_for_known_columns(self):
        assert rule_based_filters("high priority in group a", "tasks") == {}

    def test_text_contains(self):
        assert rule_based_filters("skills contains python", "workers") == {
            "Skills": {"operator": "contains", "value": "python"}
        }

    def test_nothing_understood(self):
        assert rule_based_filters("hello there", "tasks") == {}

    def test_unknown_entity(self):
        with pytest.raises(ValueError):
            rule_based_filters("duration > 2", "projects")

    def test_resolve_field(self):
        fields = ["TaskID", "Duration", "MaxConcurrent"]
        assert resolve_field("duration", fields) == "Duration"
        assert resolve_field("concurrent", fields) == "MaxConcurrent"
        assert resolve_field("xy", fields) is None


class TestApplyFilters:

    def test_empty_filter_returns_everything(self, tasks):
        assert apply_filters(tasks, {}) == tasks

    def test_all_entries_must_match(self, tasks):
        filters = {
            "Category": {"operator": "equals", "value": "Development"},
            "Duration": {"operator": "lessThan", "value": 3},
        }
        assert ids(apply_filters(tasks, filters)) == ["T5", "T15", "T27"]

    def test_equals_is_strict(self):
        assert not matches_condition("2", {"operator": "equals", "value": 2})
        assert matches_condition(2, {"operator": "equals", "value": 2})

    def test_contains_case_insensitive(self):
        assert matches_condition("Python,SQL", {"operator": "contains", "value": "sql"})
        assert not matches_condition(None, {"operator": "contains", "value": "sql"})

    def test_numeric_coercion_failure_is_no_match(self):
        assert not matches_condition("abc", {"operator": "greaterThan", "value": 1})
        assert matches_condition("5", {"operator": "greaterThan", "value": "1"})

    def test_json_contains_subfield(self, clients):
        condition = {"operator": "jsonContains", "field": "location", "value": "austin"}
        assert ids(apply_filters(clients, {"AttributesJSON": condition})) == ["C21"]

    def test_json_contains_bool(self, clients):
        condition = {"operator": "jsonContains", "field": "vip", "value": True}
        assert ids(apply_filters(clients, {"AttributesJSON": condition})) == ["C1"]

    def test_json_contains_without_subfield(self):
        assert matches_condition('{"location": "New York"}', {"operator": "jsonContains", "value": "new york"})

    def test_json_parse_failure_degrades_to_substring(self):
        condition = {"operator": "jsonContains", "field": "location", "value": "corporate"}
        assert matches_condition("ensure deliverables align with corporate standards", condition)
        assert not matches_condition("something else", condition)

    def test_unknown_operator_matches(self):
        assert matches_condition("x", {"operator": "between", "value": 1})

    def test_works_on_row_dicts(self, sample_data):
        rows = apply_filters(sample_data["tasks"], {"TaskID": {"operator": "equals", "value": "T5"}})
        assert rows == [sample_data["tasks"][1]]


class TestSearch:

    def test_fuzzy_search_substring(self, sample_data):
        workers = to_records(sample_data["workers"], "workers")
        found = fuzzy_search(workers, "analytic", ["Skills"])
        assert ids(found) == ["W2", "W3"]

    def test_fuzzy_search_typo(self, sample_data):
        workers = to_records(sample_data["workers"], "workers")
        found = fuzzy_search(workers, "Alice Jonson", ["WorkerName"])
        assert ids(found) == ["W1"]

    def test_text_search(self, tasks):
        assert ids(text_search(tasks, "review")) == ["T27"]

    def test_search_falls_back_to_text(self, tasks):
        assert ids(search(tasks, "documentation", "tasks")) == ["T25"]

    def test_search_with_filters(self, tasks):
        assert ids(search(tasks, "duration > 2", "tasks")) == ["T1", "T12", "T17"]

    def test_results_for_translation(self, tasks):
        understood = translate("duration > 2", "tasks")
        assert ids(results_for(tasks, "duration > 2", understood)) == ["T1", "T12", "T17"]
        ignored = translate("review", "tasks")
        assert ids(results_for(tasks, "review", ignored)) == ["T27"]
