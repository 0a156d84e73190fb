"""Tests for file ingestion and export."""

import json
import os

import pandas as pd
import pytest

from data_alchemist.ingest import clean_rows, load_sample_data, read_table
from data_alchemist.models import IngestError, Rule, RuleType, ValidationResult
from data_alchemist.rules import RuleSet
from data_alchemist.validation import ValidationEngine
from data_alchemist.export import entity_frame, export_all, validation_report


class TestReadTable:

    def test_fuzzy_headers_are_renamed(self, tmp_path):
        path = tmp_path / "workers.csv"
        pd.DataFrame([
            {"Worker ID": "W1", "worker_name": "Ann", "skills": "Python", "Available Slots": "[1,2]",
             "MaxLoadPerPhase": 2, "WorkerGroup": "Dev", "QualificationLevel": 3, "Notes": "remote"},
        ]).to_csv(path, index=False)

        rows = read_table(str(path), "workers")
        assert rows == [{
            "WorkerID": "W1", "WorkerName": "Ann", "Skills": "Python", "AvailableSlots": "[1,2]",
            "MaxLoadPerPhase": 2, "WorkerGroup": "Dev", "QualificationLevel": 3, "Notes": "remote",
        }]

    def test_blank_cells_become_none(self, tmp_path):
        path = tmp_path / "tasks.csv"
        path.write_text("TaskID,Duration,MaxConcurrent\nT1,,2\n")
        rows = read_table(str(path), "tasks")
        assert rows == [{"TaskID": "T1", "Duration": None, "MaxConcurrent": 2}]

    def test_excel(self, tmp_path):
        path = tmp_path / "clients.xlsx"
        pd.DataFrame([{"ClientID": "C1", "PriorityLevel": 2}]).to_excel(path, index=False)
        assert read_table(str(path), "clients") == [{"ClientID": "C1", "PriorityLevel": 2}]

    def test_uploaded_name_decides_format(self, tmp_path):
        path = tmp_path / "upload.bin"
        path.write_text("ClientID\nC1\n")
        assert read_table(str(path), "clients", filename="clients.csv") == [{"ClientID": "C1"}]

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "clients.txt"
        path.write_text("ClientID\nC1\n")
        with pytest.raises(IngestError):
            read_table(str(path), "clients")

    def test_unknown_entity(self, tmp_path):
        with pytest.raises(IngestError):
            read_table(str(tmp_path / "x.csv"), "projects")

    def test_clean_rows(self):
        rows = clean_rows([{"a": float("nan"), "b": 3.0, "c": 2.5, "d": "x"}])
        assert rows == [{"a": None, "b": 3, "c": 2.5, "d": "x"}]

    def test_sample_data(self):
        data = load_sample_data()
        assert [len(data[e]) for e in ("clients", "workers", "tasks")] == [6, 4, 10]


class TestExport:

    @pytest.fixture
    def result(self, sample_data):
        engine = ValidationEngine()
        engine.set_data(sample_data["clients"], sample_data["workers"], sample_data["tasks"])
        return engine.validate_all()

    def test_entity_frame_orders_columns(self):
        frame = entity_frame([{"Extra": 1, "TaskID": "T1"}], "tasks")
        assert list(frame.columns)[:2] == ["TaskID", "TaskName"]
        assert list(frame.columns)[-1] == "Extra"

    def test_empty_frame(self):
        assert entity_frame([], "clients").empty

    def test_validation_report(self, result):
        report = validation_report(result, {"clients": 6, "workers": 4, "tasks": 10})
        assert report["summary"]["isValid"] is False
        assert report["summary"]["totalErrors"] == len(result.errors)
        assert report["details"]["clients"]["totalRecords"] == 6
        assert report["details"]["workers"]["warningCount"] == 2

    def test_export_all(self, tmp_path, sample_data, result):
        rule_set = RuleSet([Rule(id="r1", type=RuleType.CO_RUN, parameters={"tasks": ["T1", "T5"]})])
        files = export_all(
            str(tmp_path), sample_data["clients"], sample_data["workers"], sample_data["tasks"],
            rule_set, {"method": "ranking", "weights": {"Fairness": 1.0}}, result
        )
        assert [f["name"] for f in files] == [
            "clients.csv", "workers.csv", "tasks.csv", "rules.json", "validation_report.json"
        ]
        assert all(os.path.exists(f["path"]) for f in files)

        tasks = pd.read_csv(tmp_path / "tasks.csv")
        assert len(tasks) == 10
        with open(tmp_path / "rules.json") as f:
            config = json.load(f)
        assert config["rules"][0]["id"] == "r1"
        assert config["prioritization"]["method"] == "ranking"
        assert config["metadata"]["validationStatus"]["isValid"] is False

    def test_export_without_result(self, tmp_path):
        export_all(str(tmp_path), [], [], [], RuleSet())
        with open(tmp_path / "validation_report.json") as f:
            assert json.load(f)["summary"]["isValid"] is True
        assert ValidationResult().is_valid
