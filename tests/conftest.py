"""
Pytest Configuration and Fixtures
==================================
Shared fixtures for the Data Alchemist test suite.
"""

import copy
import json
import time

import pytest

from data_alchemist.ingest import load_sample_data


# =============================================================================
# ENVIRONMENT FIXTURES
# =============================================================================

@pytest.fixture(autouse=True)
def mock_environment(monkeypatch, tmp_path):
    """Keep tests off the network and out of the working directory."""
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("EXPORT_DIR", str(tmp_path / "exports"))
    monkeypatch.setenv("AI_TIMEOUT_SECONDS", "1")


# =============================================================================
# DATA FIXTURES
# =============================================================================

@pytest.fixture
def sample_data():
    """The bundled demo dataset as row dicts."""
    return copy.deepcopy(load_sample_data())


@pytest.fixture
def clean_clients():
    return [
        {"ClientID": "C1", "ClientName": "Acme", "PriorityLevel": 1, "RequestedTaskIDs": "T1,T2",
         "GroupTag": "GroupA", "AttributesJSON": '{"location": "Paris", "budget": 1000}'},
        {"ClientID": "C2", "ClientName": "Globex", "PriorityLevel": 4, "RequestedTaskIDs": "T2",
         "GroupTag": "GroupB", "AttributesJSON": '{"location": "Berlin", "vip": true}'},
    ]


@pytest.fixture
def clean_workers():
    return [
        {"WorkerID": "W1", "WorkerName": "Alice", "Skills": "Python,SQL", "AvailableSlots": "[1,2]",
         "MaxLoadPerPhase": 2, "WorkerGroup": "Dev", "QualificationLevel": 4},
        {"WorkerID": "W2", "WorkerName": "Bob", "Skills": "Python,Design", "AvailableSlots": "[1,2,3]",
         "MaxLoadPerPhase": 3, "WorkerGroup": "Dev", "QualificationLevel": "Senior"},
    ]


@pytest.fixture
def clean_tasks():
    return [
        {"TaskID": "T1", "TaskName": "Build", "Category": "Dev", "Duration": 1, "RequiredSkills": "Python",
         "PreferredPhases": "1-2", "MaxConcurrent": 2},
        {"TaskID": "T2", "TaskName": "Model", "Category": "Data", "Duration": 2, "RequiredSkills": "SQL",
         "PreferredPhases": "2", "MaxConcurrent": 1},
    ]


# =============================================================================
# AI AGENT FAKES
# =============================================================================

class FakeAgent:
    """Returns a canned answer and records the prompts it was given."""

    def __init__(self, answer):
        self.answer = answer if isinstance(answer, str) else json.dumps(answer)
        self.calls = []

    def chat_completion(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        return self.answer


class FailingAgent:
    def chat_completion(self, system_prompt, user_prompt):
        raise ConnectionError("service unavailable")


class SlowAgent:
    def __init__(self, delay=2.0):
        self.delay = delay

    def chat_completion(self, system_prompt, user_prompt):
        time.sleep(self.delay)
        return '{"Duration": {"operator": "lessThan", "value": 0}}'


@pytest.fixture
def fake_agent():
    return FakeAgent


@pytest.fixture
def failing_agent():
    return FailingAgent()


@pytest.fixture
def slow_agent():
    return SlowAgent()
