from collections import OrderedDict
from typing import Dict, Mapping, Sequence

# Allocation criteria in display order, with their slider defaults (0-100)
DEFAULT_WEIGHTS = OrderedDict([
    ("priorityLevel", 70),
    ("taskFulfillment", 80),
    ("fairnessConstraints", 60),
    ("workloadBalance", 75),
    ("skillUtilization", 65),
    ("timeEfficiency", 85),
])
CRITERIA = list(DEFAULT_WEIGHTS)

CRITERIA_NAMES = {
    "priorityLevel": "Priority Level",
    "taskFulfillment": "Task Fulfillment",
    "fairnessConstraints": "Fairness Constraints",
    "workloadBalance": "Workload Balance",
    "skillUtilization": "Skill Utilization",
    "timeEfficiency": "Time Efficiency",
}


def _weights(*values: int) -> Dict[str, int]:
    return dict(zip(CRITERIA, values))


PRESETS: Dict[str, Dict[str, int]] = {
    "maximizeFulfillment": _weights(60, 95, 40, 50, 70, 80),
    "fairDistribution": _weights(50, 60, 95, 90, 70, 60),
    "minimizeWorkload": _weights(40, 50, 80, 95, 60, 70),
    "skillOptimized": _weights(70, 75, 60, 65, 95, 85),
}

PRESET_DESCRIPTIONS = {
    "maximizeFulfillment": "Focus on completing as many requested tasks as possible",
    "fairDistribution": "Ensure equitable distribution of work across all workers",
    "minimizeWorkload": "Optimize for minimal worker stress and balanced assignments",
    "skillOptimized": "Maximize utilization of worker skills and expertise",
}

# Saaty scale offered for each pair: how much more the first criterion matters
PAIRWISE_SCALE = OrderedDict([
    ("Extremely more important", 9),
    ("Very strongly more important", 7),
    ("Strongly more important", 5),
    ("Moderately more important", 3),
    ("Equally important", 1),
    ("Moderately less important", 0.33),
    ("Strongly less important", 0.2),
    ("Very strongly less important", 0.14),
    ("Extremely less important", 0.11),
])

RANK_STEP = 15


def _check_criterion(name: str):
    if name not in DEFAULT_WEIGHTS:
        raise ValueError(f"Unknown criterion: {name}")


def preset_weights(name: str) -> Dict[str, int]:
    if name not in PRESETS:
        raise ValueError(f"Unknown preset: {name}")
    return dict(PRESETS[name])


def ranking_weights(order: Sequence[str]) -> Dict[str, int]:
    """Most important first; each step down the ranking costs RANK_STEP points."""
    if len(set(order)) != len(order):
        raise ValueError("A criterion can only be ranked once")
    for name in order:
        _check_criterion(name)
    return {name: 100 - RANK_STEP * index for index, name in enumerate(order)}


def pair_key(first: str, second: str) -> str:
    return f"{first}-{second}"


def pairwise_weights(matrix: Mapping[str, float]) -> Dict[str, int]:
    """
    Simplified AHP. `matrix` maps "a-b" to how much more a matters than b.
    A criterion's weight is its mean row entry scaled by 20, where a missing
    "a-b" entry reads as the inverse of "b-a", or as 1 when both are missing.
    """
    for key, value in matrix.items():
        first, _, second = key.partition("-")
        _check_criterion(first)
        _check_criterion(second)
        if value <= 0:
            raise ValueError(f"Comparison {key} must be positive, got {value}")

    weights = {}
    for criterion in CRITERIA:
        total = 0.0
        for other in CRITERIA:
            if pair_key(criterion, other) in matrix:
                total += matrix[pair_key(criterion, other)]
            elif pair_key(other, criterion) in matrix:
                total += 1 / matrix[pair_key(other, criterion)]
            else:
                total += 1
        # half-up, so 12.5 becomes 13
        weights[criterion] = int(total / len(CRITERIA) * 20 + 0.5)
    return weights
