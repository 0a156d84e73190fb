"""Tests for rule recommendations."""

import pytest

from data_alchemist.models import RuleType, to_records
from data_alchemist.recommend import (
    co_run_candidates,
    overload_candidates,
    recommend,
    skill_shortage_candidates,
)


class TestCoRun:

    def test_pair_requested_twice(self):
        clients = to_records([
            {"ClientID": "C1", "RequestedTaskIDs": "T1,T2"},
            {"ClientID": "C2", "RequestedTaskIDs": "T2,T1,T3"},
            {"ClientID": "C3", "RequestedTaskIDs": "T3"},
        ], "clients")
        found = co_run_candidates(clients)
        assert len(found) == 1
        assert found[0].type is RuleType.CO_RUN
        assert found[0].parameters == {"tasks": ["T1", "T2"]}
        assert found[0].confidence == pytest.approx(2 / 3)

    def test_repeated_ids_within_one_client_count_once(self):
        clients = to_records([{"ClientID": "C1", "RequestedTaskIDs": "T1,T2,T1,T2"}], "clients")
        assert co_run_candidates(clients) == []


class TestOverload:

    def test_fewer_slots_than_max_load(self):
        workers = to_records([
            {"WorkerID": "W1", "WorkerName": "Ann", "AvailableSlots": "[1]", "MaxLoadPerPhase": 5, "WorkerGroup": "Ops"},
            {"WorkerID": "W2", "WorkerName": "Ben", "AvailableSlots": "[1,2,3]", "MaxLoadPerPhase": 2, "WorkerGroup": "Ops"},
            {"WorkerID": "W3", "WorkerName": "Cat", "AvailableSlots": "broken", "MaxLoadPerPhase": 9, "WorkerGroup": "Ops"},
        ], "workers")
        found = overload_candidates(workers)
        assert len(found) == 1
        assert found[0].parameters == {"workerGroup": "Ops", "maxSlotsPerPhase": 4}
        assert found[0].confidence == 0.7


class TestSkillShortage:

    def test_demand_exceeds_supply(self):
        workers = to_records([{"WorkerID": "W1", "Skills": "Python"}], "workers")
        tasks = to_records([
            {"TaskID": "T1", "RequiredSkills": "Python,Rust"},
            {"TaskID": "T2", "RequiredSkills": "Python"},
            {"TaskID": "T3", "RequiredSkills": "Rust"},
        ], "tasks")
        found = skill_shortage_candidates(workers, tasks)
        assert [r.parameters for r in found] == [
            {"group": "skill:Python", "minCommonSlots": 2},
            {"group": "skill:Rust", "minCommonSlots": 2},
        ]
        assert all(r.type is RuleType.SLOT_RESTRICTION for r in found)


class TestRecommend:

    def test_capped_at_limit(self):
        tasks = [{"TaskID": f"T{i}", "RequiredSkills": f"Skill{i}"} for i in range(8)]
        found = recommend([], [], tasks)
        assert len(found) == 5
        assert found[0].parameters["group"] == "skill:Skill0"

    def test_custom_limit(self, sample_data):
        assert len(recommend(sample_data["clients"], sample_data["workers"], sample_data["tasks"], limit=2)) == 2

    def test_heuristic_order(self):
        clients = [{"RequestedTaskIDs": "T1,T2"}, {"RequestedTaskIDs": "T1,T2"}]
        workers = [{"WorkerName": "Ann", "AvailableSlots": "[1]", "MaxLoadPerPhase": 3, "WorkerGroup": "Ops",
                    "Skills": "Python"}]
        tasks = [{"TaskID": "T1", "RequiredSkills": "Rust"}]
        found = recommend(clients, workers, tasks)
        assert [r.type for r in found] == [RuleType.CO_RUN, RuleType.LOAD_LIMIT, RuleType.SLOT_RESTRICTION]

    def test_to_rule_and_dict(self):
        clients = [{"RequestedTaskIDs": "T1,T2"}, {"RequestedTaskIDs": "T1,T2"}]
        recommendation = recommend(clients, [], [])[0]
        rule = recommendation.to_rule()
        assert rule.type is RuleType.CO_RUN
        assert rule.id.startswith("coRun_")
        assert recommendation.to_dict()["rule"] == {"type": "coRun", "parameters": {"tasks": ["T1", "T2"]}}

    def test_empty_collections(self):
        assert recommend([], [], []) == []
