"""Tests for AI-suggested corrections of validation findings."""

import json

import pytest

from data_alchemist.backend import DataManager
from data_alchemist.corrections import sample_rows, suggest_corrections
from data_alchemist.models import CellLocation, Finding, FindingType

SUGGESTION = {
    "entity": "clients",
    "row": 1,
    "column": "PriorityLevel",
    "currentValue": 7,
    "suggestedValue": 5,
    "reason": "PriorityLevel must be between 1 and 5",
}


@pytest.fixture
def rows(clean_clients, clean_workers, clean_tasks):
    return {"clients": clean_clients, "workers": clean_workers, "tasks": clean_tasks}


@pytest.fixture
def finding():
    return Finding(
        FindingType.OUT_OF_RANGE,
        "PriorityLevel must be between 1 and 5",
        CellLocation("clients", 1, "PriorityLevel"),
    )


class TestSampleRows:

    def test_rows_named_by_findings(self, rows, finding):
        sample = sample_rows([finding.to_dict()], rows)
        assert list(sample) == ["clients"]
        assert sample["clients"][0]["row"] == 1
        assert sample["clients"][0]["data"] == rows["clients"][1]

    def test_same_row_sampled_once(self, rows, finding):
        sample = sample_rows([finding.to_dict(), finding.to_dict()], rows)
        assert len(sample["clients"]) == 1

    def test_unlocated_findings_use_leading_rows(self, rows):
        sample = sample_rows([{"type": "CIRCULAR_DEPENDENCY", "message": "cycle", "cellLocation": None}], rows)
        assert set(sample) == {"clients", "workers", "tasks"}
        assert [entry["row"] for entry in sample["tasks"]] == [0, 1]


class TestSuggestCorrections:

    def test_suggestions_returned(self, fake_agent, rows, finding):
        agent = fake_agent([SUGGESTION])
        assert suggest_corrections([finding], rows, agent, timeout=1) == [SUGGESTION]

        _, prompt = agent.calls[0]
        assert "PriorityLevel must be between 1 and 5" in prompt
        assert json.dumps(rows["clients"][1]["ClientID"]) in prompt

    def test_accepts_finding_dicts(self, fake_agent, rows, finding):
        assert suggest_corrections([finding.to_dict()], rows, fake_agent([SUGGESTION]), timeout=1) == [SUGGESTION]

    def test_unusable_items_dropped(self, fake_agent, rows, finding):
        answer = [SUGGESTION, "rename it", {"reason": "no column given"}]
        assert suggest_corrections([finding], rows, fake_agent(answer), timeout=1) == [SUGGESTION]

    def test_object_answer_is_no_suggestion(self, fake_agent, rows, finding):
        assert suggest_corrections([finding], rows, fake_agent(SUGGESTION), timeout=1) == []

    def test_agent_failure(self, failing_agent, rows, finding):
        assert suggest_corrections([finding], rows, failing_agent, timeout=1) == []

    def test_no_agent(self, rows, finding):
        assert suggest_corrections([finding], rows, None, timeout=1) == []

    def test_nothing_to_fix(self, fake_agent, rows):
        agent = fake_agent([SUGGESTION])
        assert suggest_corrections([], rows, agent, timeout=1) == []
        assert agent.calls == []


class TestDataManagerCorrections:

    def test_single_finding(self, fake_agent):
        agent = fake_agent([SUGGESTION])
        dm = DataManager(agent=agent)
        dm.load_sample_data()
        first = dm.validate_all().findings[0]

        assert dm.suggest_corrections(0) == [SUGGESTION]
        _, prompt = agent.calls[0]
        assert json.dumps(first.message) in prompt

    def test_validates_when_needed(self, fake_agent):
        dm = DataManager(agent=fake_agent([SUGGESTION]))
        dm.load_sample_data()
        assert dm.last_result is None
        assert dm.suggest_corrections() == [SUGGESTION]
        assert dm.last_result is not None

    def test_bad_index(self, fake_agent):
        dm = DataManager(agent=fake_agent([SUGGESTION]))
        dm.load_sample_data()
        with pytest.raises(IndexError):
            dm.suggest_corrections(999)

    def test_agent_failure(self, failing_agent):
        dm = DataManager(agent=failing_agent)
        dm.load_sample_data()
        assert dm.suggest_corrections() == []
