import logging
from typing import Any, Dict, List, Optional

from .ai_agent import ChatAgent, create_agent
from .config import Settings, get_settings
from .corrections import suggest_corrections
from .export import export_all
from .ingest import load_sample_data, read_table
from .models import ENTITY_FIELDS, Rule, ValidationResult, to_records
from .priorities import CRITERIA, DEFAULT_WEIGHTS, pairwise_weights, preset_weights, ranking_weights
from .query import QueryTranslation, fuzzy_search, results_for, translate
from .recommend import Recommendation, recommend
from .rules import RuleSet, nl_to_rule
from .validation import ValidationEngine

logger = logging.getLogger(__name__)


# --------- Main DataManager Class ---------
class DataManager:
    """
    Session state for one user: the three collections, the rule set and the
    prioritisation weights. Validation always runs on a fresh snapshot.
    """

    def __init__(self, settings: Optional[Settings] = None, agent: Optional[ChatAgent] = None,
                 use_ai: bool = True):
        self.settings = settings or get_settings()
        if agent is None and use_ai:
            agent = create_agent(self.settings)
        self.gpt_agent = agent

        self.clients: List[Any] = []
        self.workers: List[Any] = []
        self.tasks: List[Any] = []
        self.rule_set = RuleSet()
        self.priorities: Dict[str, Any] = {}
        self.recommendations: List[Recommendation] = []
        self.last_result: Optional[ValidationResult] = None

    # ----- data -----
    def load_files(self, clients_path: str, workers_path: str, tasks_path: str,
                   filenames: Optional[Dict[str, str]] = None):
        filenames = filenames or {}
        threshold = self.settings.header_match_threshold
        self.set_data(
            read_table(clients_path, "clients", filenames.get("clients"), threshold),
            read_table(workers_path, "workers", filenames.get("workers"), threshold),
            read_table(tasks_path, "tasks", filenames.get("tasks"), threshold),
        )

    def load_sample_data(self):
        data = load_sample_data()
        self.set_data(data["clients"], data["workers"], data["tasks"])

    def set_data(self, clients, workers, tasks):
        self.clients = to_records(clients, "clients")
        self.workers = to_records(workers, "workers")
        self.tasks = to_records(tasks, "tasks")
        self.recommendations = []
        self.last_result = None
        logger.info(
            "Data loaded - Clients: %d, Workers: %d, Tasks: %d",
            len(self.clients), len(self.workers), len(self.tasks)
        )

    @property
    def has_data(self) -> bool:
        return bool(self.clients or self.workers or self.tasks)

    def collection(self, entity_type: str) -> List[Any]:
        if entity_type not in ENTITY_FIELDS:
            raise ValueError(f"Unknown entity type: {entity_type}")
        return getattr(self, entity_type)

    def rows(self, entity_type: str) -> List[Dict[str, Any]]:
        return [record.to_row() for record in self.collection(entity_type)]

    def counts(self) -> Dict[str, int]:
        return {entity: len(self.collection(entity)) for entity in ENTITY_FIELDS}

    def update_cell(self, entity_type: str, row: int, column: str, value: Any) -> ValidationResult:
        """Apply one cell edit, then re-validate the edited data."""
        records = self.collection(entity_type)
        if not 0 <= row < len(records):
            raise IndexError(f"{entity_type} has no row {row}")
        records[row] = records[row].with_value(column, value)
        return self.validate_all()

    # ----- validation -----
    def validate_all(self) -> ValidationResult:
        engine = ValidationEngine()
        engine.set_data(self.clients, self.workers, self.tasks, self.rule_set.active())
        self.last_result = engine.validate_all()
        return self.last_result

    def suggest_corrections(self, finding_index: Optional[int] = None) -> List[Dict[str, Any]]:
        """
        AI fixes for the latest findings, or for the one at `finding_index`.
        Validates first if nothing has been validated since the data changed.
        """
        result = self.last_result if self.last_result is not None else self.validate_all()
        findings = list(result.findings)
        if finding_index is not None:
            if not 0 <= finding_index < len(findings):
                raise IndexError(f"No finding at position {finding_index}")
            findings = [findings[finding_index]]
        rows = {entity: self.rows(entity) for entity in ENTITY_FIELDS}
        return suggest_corrections(findings, rows, self.gpt_agent, timeout=self.settings.ai_timeout_seconds)

    # ----- search -----
    def translate_query(self, query: str, entity_type: str) -> QueryTranslation:
        return translate(
            query, entity_type, self.gpt_agent,
            timeout=self.settings.ai_timeout_seconds,
            sample=self.collection(entity_type),
        )

    def natural_language_search(self, query: str, entity_type: str) -> Dict[str, Any]:
        records = self.collection(entity_type)
        translation = self.translate_query(query, entity_type)
        results = results_for(records, query, translation)
        logger.info("Search %r on %s matched %d rows (%s)", query, entity_type, len(results), translation.source)
        return {
            "filters": translation.filters,
            "source": translation.source,
            "results": [record.to_row() for record in results],
        }

    def fuzzy_search(self, entity_type: str, term: str, fields: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        fields = fields or ENTITY_FIELDS[entity_type]
        results = fuzzy_search(self.collection(entity_type), term, fields, self.settings.fuzzy_threshold)
        return [record.to_row() for record in results]

    # ----- rules -----
    def get_recommended_rules(self) -> List[Recommendation]:
        self.recommendations = recommend(
            self.clients, self.workers, self.tasks,
            limit=self.settings.recommendation_limit
        )
        return self.recommendations

    def accept_recommendation(self, index: int) -> Rule:
        if not 0 <= index < len(self.recommendations):
            raise IndexError(f"No recommendation at position {index}")
        recommendation = self.recommendations.pop(index)
        return self.rule_set.add(recommendation.to_rule())

    def add_rule(self, rule: Rule) -> Rule:
        return self.rule_set.add(rule)

    def generate_rule_from_natural_language(self, text: str) -> Optional[Rule]:
        """Generate a rule from natural language without adding it to the rule set"""
        return nl_to_rule(
            text, self.rows("clients"), self.rows("workers"), self.rows("tasks"),
            agent=self.gpt_agent, timeout=self.settings.ai_timeout_seconds
        )

    def add_rule_from_nl(self, text: str) -> Optional[Rule]:
        rule = self.generate_rule_from_natural_language(text)
        if rule:
            self.rule_set.add(rule)
        return rule

    def update_rule(self, rule_id: str, **changes: Any) -> Rule:
        return self.rule_set.update(rule_id, **changes)

    def remove_rule(self, rule_id: str) -> Rule:
        return self.rule_set.remove(rule_id)

    # ----- priorities & export -----
    def set_priorities(self, weights: Optional[Dict[str, float]] = None, method: str = "sliders",
                       preset: Optional[str] = None, ranking: Optional[List[str]] = None,
                       pairwise: Optional[Dict[str, float]] = None):
        """
        Store allocation weights, normalised to sum to 1. They come from
        slider values, a named preset, a ranking of criteria or a pairwise
        comparison matrix. A preset puts the method back to sliders.
        """
        if preset is not None:
            method, weights = "sliders", preset_weights(preset)
        elif method == "ranking":
            weights = ranking_weights(ranking or CRITERIA)
        elif method == "pairwise":
            weights = pairwise_weights(pairwise or {})
        elif method != "sliders":
            raise ValueError(f"Unknown prioritisation method: {method}")
        if weights is None:
            weights = dict(DEFAULT_WEIGHTS)

        if any(value < 0 for value in weights.values()):
            raise ValueError("Priority weights must not be negative")
        total = sum(weights.values())
        if total > 0:
            weights = {k: v / total for k, v in weights.items()}
        self.priorities = {"method": method, "weights": dict(weights), "preset": preset}

    def export_all(self, output_dir: Optional[str] = None) -> List[Dict[str, str]]:
        result = self.validate_all()
        return export_all(
            output_dir or self.settings.export_dir,
            self.clients, self.workers, self.tasks,
            self.rule_set, self.priorities, result
        )
