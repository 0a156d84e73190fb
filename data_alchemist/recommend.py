import logging
import math
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .models import Rule, RuleType, to_records
from .parsing import parse_slots, split_list, to_number
from .rules import new_rule_id

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
MIN_PAIR_OCCURRENCES = 2
LOAD_LIMIT_FACTOR = 0.8
LOAD_LIMIT_CONFIDENCE = 0.7
SKILL_SHORTAGE_CONFIDENCE = 0.8


@dataclass
class Recommendation:
    type: RuleType
    description: str
    parameters: Dict[str, Any] = field(default_factory=dict)
    confidence: float = 0.0

    @property
    def rule(self) -> Dict[str, Any]:
        return {"type": self.type.value, "parameters": dict(self.parameters)}

    def to_rule(self, rule_id: Optional[str] = None, priority: int = 1) -> Rule:
        return Rule(
            id=rule_id or new_rule_id(self.type),
            type=self.type,
            parameters=dict(self.parameters),
            description=self.description,
            priority=priority,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "rule": self.rule,
            "confidence": round(self.confidence, 4),
        }


def co_run_candidates(clients: Sequence[Any]) -> List[Recommendation]:
    """Task pairs that at least two clients request together."""
    pair_counts: "OrderedDict[Tuple[str, str], int]" = OrderedDict()
    for client in clients:
        requested = list(OrderedDict.fromkeys(split_list(client.get("RequestedTaskIDs"))))
        for i in range(len(requested)):
            for j in range(i + 1, len(requested)):
                pair = tuple(sorted((requested[i], requested[j])))
                pair_counts[pair] = pair_counts.get(pair, 0) + 1

    total = len(clients)
    recommendations = []
    for (first, second), count in pair_counts.items():
        if count < MIN_PAIR_OCCURRENCES:
            continue
        recommendations.append(Recommendation(
            type=RuleType.CO_RUN,
            description=f"Tasks {first} and {second} appear together in {count} client requests",
            parameters={"tasks": [first, second]},
            confidence=min(count / total, 1.0),
        ))
    return recommendations


def overload_candidates(workers: Sequence[Any]) -> List[Recommendation]:
    """Workers whose max load cannot be met by the slots they offer."""
    recommendations = []
    for worker in workers:
        slots = parse_slots(worker.get("AvailableSlots"))
        max_load = to_number(worker.get("MaxLoadPerPhase"))
        if slots is None or max_load is None:
            continue
        if len(slots) < max_load:
            recommendations.append(Recommendation(
                type=RuleType.LOAD_LIMIT,
                description=(
                    f"Worker {worker.get('WorkerName')} may be overloaded "
                    f"({len(slots)} slots, max load {worker.get('MaxLoadPerPhase')})"
                ),
                parameters={
                    "workerGroup": worker.get("WorkerGroup"),
                    "maxSlotsPerPhase": math.floor(max_load * LOAD_LIMIT_FACTOR),
                },
                confidence=LOAD_LIMIT_CONFIDENCE,
            ))
    return recommendations


def skill_shortage_candidates(workers: Sequence[Any], tasks: Sequence[Any]) -> List[Recommendation]:
    """Skills that more tasks require than workers declare."""
    demand: "OrderedDict[str, int]" = OrderedDict()
    for task in tasks:
        for skill in OrderedDict.fromkeys(split_list(task.get("RequiredSkills"))):
            demand[skill] = demand.get(skill, 0) + 1

    supply: Dict[str, int] = {}
    for worker in workers:
        for skill in set(split_list(worker.get("Skills"))):
            supply[skill] = supply.get(skill, 0) + 1

    recommendations = []
    for skill, task_count in demand.items():
        worker_count = supply.get(skill, 0)
        if worker_count >= task_count:
            continue
        recommendations.append(Recommendation(
            type=RuleType.SLOT_RESTRICTION,
            description=(
                f'Skill "{skill}" is required by {task_count} tasks '
                f"but only {worker_count} workers have it"
            ),
            parameters={
                "group": f"skill:{skill}",
                "minCommonSlots": math.ceil(task_count / max(worker_count, 1)),
            },
            confidence=SKILL_SHORTAGE_CONFIDENCE,
        ))
    return recommendations


def recommend(clients, workers, tasks, limit: int = DEFAULT_LIMIT) -> List[Recommendation]:
    """
    Mine the collections for candidate rules. Heuristics run in a fixed
    order (co-run, overload, skill shortage) and the first `limit` survive.
    """
    clients = to_records(clients, "clients")
    workers = to_records(workers, "workers")
    tasks = to_records(tasks, "tasks")

    recommendations = (
        co_run_candidates(clients)
        + overload_candidates(workers)
        + skill_shortage_candidates(workers, tasks)
    )
    logger.info("Generated %d rule recommendations, keeping %d", len(recommendations), min(limit, len(recommendations)))
    return recommendations[:limit]
