import math
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple


# --------- Errors ---------
class DataAlchemistError(Exception):
    """Base class for errors raised by the library."""


class IngestError(DataAlchemistError):
    pass


class RuleNotFoundError(DataAlchemistError):
    pass


class AIUnavailableError(DataAlchemistError):
    pass


# --------- Entity Records ---------
CLIENT_FIELDS = [
    "ClientID", "ClientName", "PriorityLevel",
    "RequestedTaskIDs", "GroupTag", "AttributesJSON"
]
WORKER_FIELDS = [
    "WorkerID", "WorkerName", "Skills",
    "AvailableSlots", "MaxLoadPerPhase",
    "WorkerGroup", "QualificationLevel"
]
TASK_FIELDS = [
    "TaskID", "TaskName", "Category",
    "Duration", "RequiredSkills",
    "PreferredPhases", "MaxConcurrent"
]

ENTITY_FIELDS: Dict[str, List[str]] = {
    "clients": CLIENT_FIELDS,
    "workers": WORKER_FIELDS,
    "tasks": TASK_FIELDS,
}


def is_missing(value: Any) -> bool:
    """Falsy cell values count as missing, except a numeric zero."""
    if value is None:
        return True
    if isinstance(value, bool):
        return not value
    if isinstance(value, (int, float)):
        return isinstance(value, float) and math.isnan(value)
    try:
        return len(value) == 0
    except TypeError:
        return False


class _Record:
    """
    Shared behaviour for the three entity records. Known columns live on
    typed attributes, anything else the upload carried goes to `extras`.
    """

    COLUMNS: Dict[str, str] = {}
    ID_COLUMN = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]):
        known = {}
        extras = {}
        for column, value in row.items():
            attr = cls.COLUMNS.get(column)
            if attr:
                known[attr] = value
            else:
                extras[column] = value
        return cls(extras=extras, **known)

    def get(self, column: str, default: Any = None) -> Any:
        attr = self.COLUMNS.get(column)
        if attr:
            return getattr(self, attr)
        return self.extras.get(column, default)

    def with_value(self, column: str, value: Any):
        attr = self.COLUMNS.get(column)
        if attr:
            return replace(self, **{attr: value})
        extras = dict(self.extras)
        extras[column] = value
        return replace(self, extras=extras)

    @property
    def identifier(self) -> Any:
        return self.get(self.ID_COLUMN)

    def to_row(self) -> Dict[str, Any]:
        row = {column: getattr(self, attr) for column, attr in self.COLUMNS.items()}
        row.update(self.extras)
        return row


@dataclass(frozen=True)
class Client(_Record):
    client_id: Any = None
    client_name: Any = None
    priority_level: Any = None
    requested_task_ids: Any = None
    group_tag: Any = None
    attributes_json: Any = None
    extras: Dict[str, Any] = field(default_factory=dict)

    COLUMNS = {
        "ClientID": "client_id",
        "ClientName": "client_name",
        "PriorityLevel": "priority_level",
        "RequestedTaskIDs": "requested_task_ids",
        "GroupTag": "group_tag",
        "AttributesJSON": "attributes_json",
    }
    ID_COLUMN = "ClientID"


@dataclass(frozen=True)
class Worker(_Record):
    worker_id: Any = None
    worker_name: Any = None
    skills: Any = None
    available_slots: Any = None
    max_load_per_phase: Any = None
    worker_group: Any = None
    qualification_level: Any = None
    extras: Dict[str, Any] = field(default_factory=dict)

    COLUMNS = {
        "WorkerID": "worker_id",
        "WorkerName": "worker_name",
        "Skills": "skills",
        "AvailableSlots": "available_slots",
        "MaxLoadPerPhase": "max_load_per_phase",
        "WorkerGroup": "worker_group",
        "QualificationLevel": "qualification_level",
    }
    ID_COLUMN = "WorkerID"


@dataclass(frozen=True)
class Task(_Record):
    task_id: Any = None
    task_name: Any = None
    category: Any = None
    duration: Any = None
    required_skills: Any = None
    preferred_phases: Any = None
    max_concurrent: Any = None
    extras: Dict[str, Any] = field(default_factory=dict)

    COLUMNS = {
        "TaskID": "task_id",
        "TaskName": "task_name",
        "Category": "category",
        "Duration": "duration",
        "RequiredSkills": "required_skills",
        "PreferredPhases": "preferred_phases",
        "MaxConcurrent": "max_concurrent",
    }
    ID_COLUMN = "TaskID"


ENTITY_TYPES = {
    "clients": Client,
    "workers": Worker,
    "tasks": Task,
}


def to_records(rows: Iterable[Any], entity_type: str) -> List[Any]:
    """Build typed records from row dicts; records pass through untouched."""
    if rows is None:
        raise TypeError(f"{entity_type} collection must not be None")
    record_cls = ENTITY_TYPES[entity_type]
    return [row if isinstance(row, record_cls) else record_cls.from_row(row) for row in rows]


# --------- Rules ---------
class RuleType(str, Enum):
    CO_RUN = "coRun"
    SLOT_RESTRICTION = "slotRestriction"
    LOAD_LIMIT = "loadLimit"
    PHASE_WINDOW = "phaseWindow"
    PATTERN_MATCH = "patternMatch"
    PRECEDENCE = "precedence"


@dataclass
class Rule:
    id: str
    type: RuleType
    parameters: Dict[str, Any] = field(default_factory=dict)
    description: str = ""
    priority: int = 1
    is_active: bool = True
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def __post_init__(self):
        # Raises ValueError for types outside the closed set
        self.type = RuleType(self.type)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        parameters = data.get("parameters")
        if parameters is None:
            # Flat shape: everything that is not a known key is a parameter
            reserved = {"id", "type", "description", "priority", "isActive", "createdAt", "name"}
            parameters = {k: v for k, v in data.items() if k not in reserved}
        kwargs = {}
        if data.get("createdAt"):
            kwargs["created_at"] = data["createdAt"]
        return cls(
            id=str(data.get("id", "")),
            type=data["type"],
            parameters=dict(parameters),
            description=data.get("description", "") or "",
            priority=int(data.get("priority", 1) or 1),
            is_active=bool(data.get("isActive", True)),
            **kwargs,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "parameters": self.parameters,
            "description": self.description,
            "priority": self.priority,
            "isActive": self.is_active,
            "createdAt": self.created_at,
        }


# --------- Findings ---------
class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class FindingType(str, Enum):
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    DUPLICATE_ID = "DUPLICATE_ID"
    MALFORMED_LIST = "MALFORMED_LIST"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    BROKEN_JSON = "BROKEN_JSON"
    PLAIN_TEXT_INSTEAD_OF_JSON = "PLAIN_TEXT_INSTEAD_OF_JSON"
    UNKNOWN_REFERENCE = "UNKNOWN_REFERENCE"
    CIRCULAR_DEPENDENCY = "CIRCULAR_DEPENDENCY"
    CONFLICTING_RULES = "CONFLICTING_RULES"
    OVERLOADED_WORKER = "OVERLOADED_WORKER"
    PHASE_SATURATION = "PHASE_SATURATION"
    MISSING_SKILL_COVERAGE = "MISSING_SKILL_COVERAGE"
    CONCURRENCY_INFEASIBLE = "CONCURRENCY_INFEASIBLE"


SEVERITY: Dict[FindingType, Severity] = {
    FindingType.MISSING_REQUIRED_FIELD: Severity.ERROR,
    FindingType.DUPLICATE_ID: Severity.ERROR,
    FindingType.MALFORMED_LIST: Severity.ERROR,
    FindingType.OUT_OF_RANGE: Severity.ERROR,
    FindingType.BROKEN_JSON: Severity.ERROR,
    FindingType.PLAIN_TEXT_INSTEAD_OF_JSON: Severity.WARNING,
    FindingType.UNKNOWN_REFERENCE: Severity.ERROR,
    FindingType.CIRCULAR_DEPENDENCY: Severity.ERROR,
    FindingType.CONFLICTING_RULES: Severity.ERROR,
    FindingType.OVERLOADED_WORKER: Severity.WARNING,
    FindingType.PHASE_SATURATION: Severity.WARNING,
    FindingType.MISSING_SKILL_COVERAGE: Severity.WARNING,
    FindingType.CONCURRENCY_INFEASIBLE: Severity.WARNING,
}


@dataclass(frozen=True)
class CellLocation:
    entity: str
    row: int
    column: str


@dataclass(frozen=True)
class Finding:
    type: FindingType
    message: str
    location: Optional[CellLocation] = None

    @property
    def severity(self) -> Severity:
        return SEVERITY[self.type]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "message": self.message,
            "severity": self.severity.value,
            "cellLocation": asdict(self.location) if self.location else None,
        }


@dataclass(frozen=True)
class DataSnapshot:
    clients: Tuple[Client, ...] = ()
    workers: Tuple[Worker, ...] = ()
    tasks: Tuple[Task, ...] = ()
    rules: Tuple[Rule, ...] = ()

    @classmethod
    def build(cls, clients, workers, tasks, rules=()) -> "DataSnapshot":
        if rules is None:
            raise TypeError("rules collection must not be None")
        return cls(
            clients=tuple(to_records(clients, "clients")),
            workers=tuple(to_records(workers, "workers")),
            tasks=tuple(to_records(tasks, "tasks")),
            rules=tuple(rules),
        )


@dataclass(frozen=True)
class ValidationResult:
    errors: Tuple[Finding, ...] = ()
    warnings: Tuple[Finding, ...] = ()
    findings: Tuple[Finding, ...] = ()

    @classmethod
    def from_findings(cls, findings: Iterable[Finding]) -> "ValidationResult":
        findings = tuple(findings)
        return cls(
            errors=tuple(f for f in findings if f.severity is Severity.ERROR),
            warnings=tuple(f for f in findings if f.severity is Severity.WARNING),
            findings=findings,
        )

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [f.to_dict() for f in self.errors],
            "warnings": [f.to_dict() for f in self.warnings],
            "summary": {
                "error_count": len(self.errors),
                "warning_count": len(self.warnings),
            },
        }
