import logging
from collections import OrderedDict
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .models import (
    CLIENT_FIELDS,
    TASK_FIELDS,
    WORKER_FIELDS,
    CellLocation,
    DataSnapshot,
    Finding,
    FindingType,
    RuleType,
    ValidationResult,
    is_missing,
)
from .parsing import (
    Malformed,
    NotAttempted,
    classify_structured,
    is_delimited_list,
    parse_int_slots,
    parse_phases,
    parse_slots,
    split_list,
    to_int,
    to_number,
)

logger = logging.getLogger(__name__)

CORUN_GROUP_COLUMN = "CoRunGroup"


def _entities(snapshot: DataSnapshot):
    return (
        ("clients", snapshot.clients, CLIENT_FIELDS),
        ("workers", snapshot.workers, WORKER_FIELDS),
        ("tasks", snapshot.tasks, TASK_FIELDS),
    )


def _finding(kind: FindingType, message: str, entity: str, row: int, column: str) -> Finding:
    return Finding(kind, message, CellLocation(entity, row, column))


# --------- 1. Required fields ---------
def check_required_fields(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    for entity, records, fields in _entities(snapshot):
        for index, record in enumerate(records):
            for column in fields:
                if is_missing(record.get(column)):
                    findings.append(_finding(
                        FindingType.MISSING_REQUIRED_FIELD,
                        f"Missing required field: {column}",
                        entity, index, column
                    ))
    return findings


# --------- 2. Duplicate IDs ---------
def check_duplicate_ids(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    for entity, records, fields in _entities(snapshot):
        id_column = fields[0]
        seen: Set[str] = set()
        for index, record in enumerate(records):
            value = record.get(id_column)
            if is_missing(value):
                continue
            key = str(value).strip()
            if key in seen:
                findings.append(_finding(
                    FindingType.DUPLICATE_ID,
                    f"Duplicate {id_column}: {value}",
                    entity, index, id_column
                ))
            seen.add(key)
    return findings


# --------- 3. Malformed lists ---------
DELIMITED_COLUMNS = (
    ("clients", "RequestedTaskIDs"),
    ("workers", "Skills"),
    ("tasks", "RequiredSkills"),
)


def check_malformed_lists(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    collections = {entity: records for entity, records, _ in _entities(snapshot)}

    for entity, column in DELIMITED_COLUMNS:
        for index, record in enumerate(collections[entity]):
            value = record.get(column)
            if is_missing(value) or isinstance(value, (list, tuple)):
                continue
            if not is_delimited_list(value):
                findings.append(_finding(
                    FindingType.MALFORMED_LIST,
                    f"Invalid {column} format: {value}",
                    entity, index, column
                ))

    for index, worker in enumerate(snapshot.workers):
        value = worker.get("AvailableSlots")
        if is_missing(value):
            continue
        if parse_slots(value) is None:
            message = f"Invalid AvailableSlots JSON format: {value}"
        elif parse_int_slots(value) is None:
            message = f"AvailableSlots contains non-integer values: {value}"
        else:
            continue
        findings.append(_finding(FindingType.MALFORMED_LIST, message, "workers", index, "AvailableSlots"))

    for index, task in enumerate(snapshot.tasks):
        value = task.get("PreferredPhases")
        if is_missing(value):
            continue
        if parse_phases(value) is None:
            findings.append(_finding(
                FindingType.MALFORMED_LIST,
                f"Invalid PreferredPhases format (expected a range, list or JSON array): {value}",
                "tasks", index, "PreferredPhases"
            ))

    return findings


# --------- 4. Out-of-range values ---------
# (entity, column, minimum, maximum)
INTEGER_DOMAINS = (
    ("clients", "PriorityLevel", 1, 5),
    ("workers", "MaxLoadPerPhase", 1, None),
    ("tasks", "Duration", 1, None),
    ("tasks", "MaxConcurrent", 1, None),
)


def _describe_domain(minimum: int, maximum: Optional[int]) -> str:
    if maximum is None:
        return f"≥ {minimum}"
    return f"between {minimum}-{maximum}"


def check_out_of_range(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    collections = {entity: records for entity, records, _ in _entities(snapshot)}

    for entity, column, minimum, maximum in INTEGER_DOMAINS:
        for index, record in enumerate(collections[entity]):
            value = record.get(column)
            if is_missing(value):
                continue
            number = to_int(value)
            if number is None or number < minimum or (maximum is not None and number > maximum):
                findings.append(_finding(
                    FindingType.OUT_OF_RANGE,
                    f"{column} must be a whole number {_describe_domain(minimum, maximum)}, got: {value}",
                    entity, index, column
                ))

    # Text ranks ("Senior") are allowed; numeric ranks must sit in 1-5
    for index, worker in enumerate(snapshot.workers):
        value = worker.get("QualificationLevel")
        if is_missing(value):
            continue
        number = to_number(value)
        if number is not None and not 1 <= number <= 5:
            findings.append(_finding(
                FindingType.OUT_OF_RANGE,
                f"QualificationLevel must be between 1-5, got: {value}",
                "workers", index, "QualificationLevel"
            ))

    return findings


# --------- 5. Structured attributes ---------
def check_structured_attributes(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    for index, client in enumerate(snapshot.clients):
        value = client.get("AttributesJSON")
        if is_missing(value):
            continue
        outcome = classify_structured(value)
        if isinstance(outcome, NotAttempted):
            findings.append(_finding(
                FindingType.PLAIN_TEXT_INSTEAD_OF_JSON,
                f"AttributesJSON contains plain text instead of JSON: {value}",
                "clients", index, "AttributesJSON"
            ))
        elif isinstance(outcome, Malformed):
            findings.append(_finding(
                FindingType.BROKEN_JSON,
                f"Invalid JSON in AttributesJSON ({outcome.reason}): {value}",
                "clients", index, "AttributesJSON"
            ))
    return findings


# --------- 6. Unknown references ---------
def _task_ids(snapshot: DataSnapshot) -> Set[str]:
    return {str(task.identifier).strip() for task in snapshot.tasks if not is_missing(task.identifier)}


def check_unknown_references(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    valid_ids = _task_ids(snapshot)
    for index, client in enumerate(snapshot.clients):
        value = client.get("RequestedTaskIDs")
        if is_missing(value):
            continue
        for task_id in split_list(value):
            if task_id not in valid_ids:
                findings.append(_finding(
                    FindingType.UNKNOWN_REFERENCE,
                    f"Unknown TaskID reference: {task_id}",
                    "clients", index, "RequestedTaskIDs"
                ))
    return findings


# --------- 7. Circular dependencies ---------
def _dependency_graph(snapshot: DataSnapshot) -> "OrderedDict[str, List[str]]":
    graph: "OrderedDict[str, List[str]]" = OrderedDict()

    def add_edge(source: str, target: str):
        graph.setdefault(source, [])
        graph.setdefault(target, [])
        if target not in graph[source]:
            graph[source].append(target)

    for task in snapshot.tasks:
        group = task.get(CORUN_GROUP_COLUMN)
        if is_missing(task.identifier) or is_missing(group):
            continue
        source = str(task.identifier).strip()
        members = parse_slots(group) if str(group).lstrip().startswith("[") else split_list(group)
        for member in members or []:
            member = str(member).strip()
            if member and member != source:
                add_edge(source, member)

    for rule in snapshot.rules:
        if not rule.is_active or rule.type is not RuleType.PRECEDENCE:
            continue
        before = rule.parameters.get("beforeTask")
        after = rule.parameters.get("afterTask")
        if is_missing(before) or is_missing(after):
            continue
        add_edge(str(before).strip(), str(after).strip())

    return graph


def _find_cycles(graph: Dict[str, List[str]]) -> List[Tuple[str, ...]]:
    """
    Every elementary cycle, each reported once and led by its smallest id.
    The search from `start` only walks nodes greater than `start`, so a
    cycle is found from its smallest member and nowhere else.
    """
    cycles: List[Tuple[str, ...]] = []
    for start in graph:
        path = [start]
        on_path: Set[str] = {start}
        stack = [iter(graph[start])]
        while stack:
            nxt = next(stack[-1], None)
            if nxt is None:
                stack.pop()
                on_path.discard(path.pop())
                continue
            if nxt == start:
                cycles.append(tuple(path))
            elif nxt > start and nxt not in on_path:
                path.append(nxt)
                on_path.add(nxt)
                stack.append(iter(graph.get(nxt, [])))
    return cycles


def check_circular_dependencies(snapshot: DataSnapshot) -> List[Finding]:
    graph = _dependency_graph(snapshot)
    if not graph:
        return []

    rows = {}
    for index, task in enumerate(snapshot.tasks):
        if not is_missing(task.identifier):
            rows.setdefault(str(task.identifier).strip(), index)

    findings = []
    for cycle in _find_cycles(graph):
        chain = " -> ".join(cycle + (cycle[0],))
        row = rows.get(cycle[0])
        location = None
        if row is not None:
            column = CORUN_GROUP_COLUMN if CORUN_GROUP_COLUMN in snapshot.tasks[row].extras else "TaskID"
            location = CellLocation("tasks", row, column)
        findings.append(Finding(
            FindingType.CIRCULAR_DEPENDENCY,
            f"Circular dependency detected: {chain}",
            location
        ))
    return findings


# --------- 8. Conflicting rules ---------
def check_conflicting_rules(snapshot: DataSnapshot) -> List[Finding]:
    active = [rule for rule in snapshot.rules if rule.is_active]
    if not active:
        return []

    findings = []

    # Load limits: one limit per worker group
    limits: "OrderedDict[str, Dict[int, str]]" = OrderedDict()
    for rule in active:
        if rule.type is not RuleType.LOAD_LIMIT:
            continue
        group = rule.parameters.get("workerGroup")
        limit = to_number(rule.parameters.get("maxSlotsPerPhase"))
        if is_missing(group) or limit is None:
            continue
        limits.setdefault(str(group), OrderedDict()).setdefault(limit, rule.id)
    for group, by_limit in limits.items():
        if len(by_limit) > 1:
            values = ", ".join(f"{limit:g} ({rule_id})" for limit, rule_id in by_limit.items())
            findings.append(Finding(
                FindingType.CONFLICTING_RULES,
                f"Worker group {group} has conflicting load limits: {values}"
            ))

    # Phase windows: intersect every window declared for the same task
    windows: "OrderedDict[str, Set[int]]" = OrderedDict()
    window_rules: Dict[str, List[str]] = {}
    for rule in active:
        if rule.type is not RuleType.PHASE_WINDOW:
            continue
        task_id = rule.parameters.get("taskId")
        phases = parse_phases(rule.parameters.get("allowedPhases"))
        if is_missing(task_id) or phases is None:
            continue
        task_id = str(task_id).strip()
        window_rules.setdefault(task_id, []).append(rule.id)
        if task_id in windows:
            windows[task_id] &= set(phases)
        else:
            windows[task_id] = set(phases)
    for task_id, phases in windows.items():
        if not phases:
            findings.append(Finding(
                FindingType.CONFLICTING_RULES,
                f"Phase window rules {', '.join(window_rules[task_id])} leave task {task_id} no allowed phase"
            ))

    # Co-run groups must share at least one allowed phase
    for rule in active:
        if rule.type is not RuleType.CO_RUN:
            continue
        members = split_list(rule.parameters.get("tasks"))
        constrained = [m for m in members if m in windows]
        if len(constrained) < 2:
            continue
        common = set.intersection(*(windows[m] for m in constrained))
        if not common:
            findings.append(Finding(
                FindingType.CONFLICTING_RULES,
                f"Co-run rule {rule.id} groups tasks {', '.join(constrained)} whose phase windows do not overlap"
            ))

    return findings


# --------- 9. Overloaded workers ---------
def check_overloaded_workers(snapshot: DataSnapshot) -> List[Finding]:
    findings = []
    for index, worker in enumerate(snapshot.workers):
        slots = parse_slots(worker.get("AvailableSlots"))
        max_load = to_number(worker.get("MaxLoadPerPhase"))
        # Unparseable cells are reported by the list and range checks
        if slots is None or max_load is None:
            continue
        if len(slots) > max_load:
            findings.append(_finding(
                FindingType.OVERLOADED_WORKER,
                f"Worker has more available slots ({len(slots)}) than MaxLoadPerPhase "
                f"({worker.get('MaxLoadPerPhase')})",
                "workers", index, "MaxLoadPerPhase"
            ))
    return findings


# --------- 10. Phase-slot saturation ---------
def check_phase_saturation(snapshot: DataSnapshot) -> List[Finding]:
    demand: Dict[int, float] = {}
    for task in snapshot.tasks:
        phases = parse_phases(task.get("PreferredPhases"))
        duration = to_number(task.get("Duration"))
        if phases is None or duration is None or duration <= 0:
            continue
        for phase in set(phases):
            demand[phase] = demand.get(phase, 0) + duration

    supply: Dict[int, float] = {}
    for worker in snapshot.workers:
        slots = parse_int_slots(worker.get("AvailableSlots"))
        load = to_number(worker.get("MaxLoadPerPhase"))
        if slots is None or load is None or load <= 0:
            continue
        for phase in set(slots):
            supply[phase] = supply.get(phase, 0) + load

    if not demand or not supply:
        return []

    findings = []
    for phase in sorted(demand):
        capacity = supply.get(phase, 0)
        if demand[phase] > capacity:
            findings.append(Finding(
                FindingType.PHASE_SATURATION,
                f"Phase {phase} is oversaturated: task durations {demand[phase]:g} "
                f"exceed worker capacity {capacity:g}"
            ))
    return findings


# --------- 11. Skill coverage ---------
def check_skill_coverage(snapshot: DataSnapshot) -> List[Finding]:
    worker_skills: Set[str] = set()
    for worker in snapshot.workers:
        worker_skills.update(split_list(worker.get("Skills")))

    findings = []
    for index, task in enumerate(snapshot.tasks):
        reported = set()
        for skill in split_list(task.get("RequiredSkills")):
            if skill in worker_skills or skill in reported:
                continue
            reported.add(skill)
            findings.append(_finding(
                FindingType.MISSING_SKILL_COVERAGE,
                f"No worker has required skill: {skill}",
                "tasks", index, "RequiredSkills"
            ))
    return findings


# --------- 12. Max-concurrency feasibility ---------
def check_concurrency_feasibility(snapshot: DataSnapshot) -> List[Finding]:
    if not snapshot.workers:
        return []

    skill_sets = [set(split_list(worker.get("Skills"))) for worker in snapshot.workers]
    findings = []
    for index, task in enumerate(snapshot.tasks):
        max_concurrent = to_number(task.get("MaxConcurrent"))
        if max_concurrent is None:
            continue
        required = set(split_list(task.get("RequiredSkills")))
        qualified = sum(1 for skills in skill_sets if required <= skills)
        if max_concurrent > qualified:
            findings.append(_finding(
                FindingType.CONCURRENCY_INFEASIBLE,
                f"MaxConcurrent ({task.get('MaxConcurrent')}) exceeds qualified workers "
                f"({qualified}) for task {task.identifier}",
                "tasks", index, "MaxConcurrent"
            ))
    return findings


CHECKS: Sequence[Callable[[DataSnapshot], List[Finding]]] = (
    check_required_fields,
    check_duplicate_ids,
    check_malformed_lists,
    check_out_of_range,
    check_structured_attributes,
    check_unknown_references,
    check_circular_dependencies,
    check_conflicting_rules,
    check_overloaded_workers,
    check_phase_saturation,
    check_skill_coverage,
    check_concurrency_feasibility,
)


def validate(snapshot: DataSnapshot) -> ValidationResult:
    """Run every check over the snapshot, in a fixed order."""
    if snapshot is None:
        raise TypeError("validate() needs a DataSnapshot, got None")

    findings: List[Finding] = []
    for check in CHECKS:
        found = check(snapshot)
        if found:
            logger.debug("%s produced %d findings", check.__name__, len(found))
        findings.extend(found)

    result = ValidationResult.from_findings(findings)
    logger.info(
        "Validation finished: %d errors, %d warnings",
        len(result.errors), len(result.warnings)
    )
    return result


class ValidationEngine:
    """Stateful wrapper: set_data() takes a snapshot, validate_all() checks it."""

    def __init__(self):
        self._snapshot = DataSnapshot()

    @property
    def snapshot(self) -> DataSnapshot:
        return self._snapshot

    def set_data(self, clients, workers, tasks, rules=()):
        self._snapshot = DataSnapshot.build(clients, workers, tasks, rules)

    def validate_all(self) -> ValidationResult:
        return validate(self._snapshot)
