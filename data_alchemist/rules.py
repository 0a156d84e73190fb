import json
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional, Sequence

from .ai_agent import ChatAgent, ask_json
from .models import Rule, RuleNotFoundError, RuleType

logger = logging.getLogger(__name__)

RULES_CONFIG_VERSION = "1.0"


def new_rule_id(rule_type: RuleType) -> str:
    return f"{RuleType(rule_type).value}_{uuid.uuid4().hex[:8]}"


class RuleSet:
    """The user's working set of business rules, in insertion order."""

    def __init__(self, rules: Optional[Sequence[Rule]] = None):
        self._rules: Dict[str, Rule] = {}
        for rule in rules or []:
            self.add(rule)

    def __iter__(self) -> Iterator[Rule]:
        return iter(list(self._rules.values()))

    def __len__(self) -> int:
        return len(self._rules)

    def __contains__(self, rule_id: str) -> bool:
        return rule_id in self._rules

    def add(self, rule: Rule) -> Rule:
        if not rule.id:
            rule.id = new_rule_id(rule.type)
        if rule.id in self._rules:
            raise ValueError(f"Rule {rule.id} already exists")
        self._rules[rule.id] = rule
        logger.info("Added %s rule %s", rule.type.value, rule.id)
        return rule

    def get(self, rule_id: str) -> Rule:
        try:
            return self._rules[rule_id]
        except KeyError:
            raise RuleNotFoundError(f"No rule with id {rule_id}")

    def update(self, rule_id: str, **changes: Any) -> Rule:
        rule = self.get(rule_id)
        for key, value in changes.items():
            if key == "id" or not hasattr(rule, key):
                raise ValueError(f"Cannot update rule attribute {key!r}")
            if key == "type":
                value = RuleType(value)
            setattr(rule, key, value)
        return rule

    def remove(self, rule_id: str) -> Rule:
        rule = self.get(rule_id)
        del self._rules[rule_id]
        logger.info("Removed rule %s", rule_id)
        return rule

    def active(self) -> List[Rule]:
        return [rule for rule in self._rules.values() if rule.is_active]

    def to_list(self) -> List[Dict[str, Any]]:
        return [rule.to_dict() for rule in self._rules.values()]

    def to_config(
        self,
        priorities: Optional[Dict[str, Any]] = None,
        counts: Optional[Dict[str, int]] = None,
        validation: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Export shape consumed by the downstream allocator."""
        priorities = priorities or {}
        validation = validation or {}
        return {
            "version": RULES_CONFIG_VERSION,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "rules": self.to_list(),
            "prioritization": {
                "method": priorities.get("method", "sliders"),
                "weights": priorities.get("weights", {}),
                "preset": priorities.get("preset"),
            },
            "metadata": {
                "totalRules": len(self),
                "dataEntities": counts or {},
                "validationStatus": {
                    "totalErrors": validation.get("error_count", 0),
                    "isValid": validation.get("error_count", 0) == 0,
                },
            },
        }


# --------- Natural language to rule ---------
TASK_TOKEN = re.compile(r"\bt\d+\b", re.IGNORECASE)


def rule_from_pattern(text: str) -> Optional[Rule]:
    """Deterministic parser for the common rule phrasings."""
    lower = text.lower()

    if "co-run" in lower or "corun" in lower or "together" in lower or "same time" in lower:
        tasks = [t.upper() for t in TASK_TOKEN.findall(text)]
        if len(tasks) >= 2:
            return Rule(
                id=new_rule_id(RuleType.CO_RUN),
                type=RuleType.CO_RUN,
                parameters={"tasks": tasks},
                description=f"Co-run rule for {' and '.join(tasks)}",
            )

    if "load limit" in lower or "maximum" in lower or "limit" in lower:
        group_match = re.search(r"group\s*(\w+)", text, re.IGNORECASE)
        number_match = None
        if group_match:
            # the limit follows the group name; "limit group 2 to 3" is 3
            number_match = (re.search(r"\b(\d+)\b", text[group_match.end():])
                            or re.search(r"\b(\d+)\b", text[:group_match.start()]))
        if group_match and number_match:
            group = group_match.group(1)
            limit = int(number_match.group(1))
            return Rule(
                id=new_rule_id(RuleType.LOAD_LIMIT),
                type=RuleType.LOAD_LIMIT,
                parameters={"workerGroup": group, "maxSlotsPerPhase": limit},
                description=f"Load limit for {group}: max {limit} slots per phase",
            )

    if "phase" in lower and ("only" in lower or "restrict" in lower):
        task_match = TASK_TOKEN.search(text)
        if task_match:
            remainder = text[task_match.end():]
            phases = [int(p) for p in re.findall(r"\b(\d+)\b", remainder)]
            if phases:
                task_id = task_match.group(0).upper()
                return Rule(
                    id=new_rule_id(RuleType.PHASE_WINDOW),
                    type=RuleType.PHASE_WINDOW,
                    parameters={"taskId": task_id, "allowedPhases": phases},
                    description=f"Phase restriction for {task_id}: phases {', '.join(map(str, phases))}",
                )

    return None


def _rule_prompt(text: str, clients: Sequence[Dict], workers: Sequence[Dict], tasks: Sequence[Dict]) -> str:
    return f'''
Analyze the following data to understand the context and create a rule:

Clients (sample):
{json.dumps(list(clients)[:3], indent=2, default=str)}

Workers (sample):
{json.dumps(list(workers)[:3], indent=2, default=str)}

Tasks (sample):
{json.dumps(list(tasks)[:3], indent=2, default=str)}

Convert the following natural language rule description into a structured JSON rule:
"""{text.strip()}"""

The rule type must be one of: {', '.join(t.value for t in RuleType)}.

Required fields:
- type: one of the supported types
- parameters: type-specific key-value pairs
- description: brief summary
- priority: integer, 1 is the most important

Return only the JSON object.
'''


def nl_to_rule(
    text: str,
    clients: Sequence[Dict[str, Any]] = (),
    workers: Sequence[Dict[str, Any]] = (),
    tasks: Sequence[Dict[str, Any]] = (),
    agent: Optional[ChatAgent] = None,
    timeout: float = 10.0,
) -> Optional[Rule]:
    """
    Convert a rule description into a Rule. The AI collaborator goes first;
    an answer that is missing or not a valid rule falls through to the
    pattern parser. Returns None if neither understands the text.
    """
    if not text or not text.strip():
        return None

    result = ask_json(
        agent,
        system_prompt="You transform natural language allocation rules into structured JSON rule objects.",
        user_prompt=_rule_prompt(text, clients, workers, tasks),
        timeout=timeout,
    )
    if result.ok:
        try:
            rule = Rule.from_dict(result.value)
            if not rule.id:
                rule.id = new_rule_id(rule.type)
            if not rule.description:
                rule.description = text.strip()
            return rule
        except (KeyError, TypeError, ValueError) as e:
            logger.info("AI rule rejected (%s), using pattern parser", e)
    else:
        logger.info("AI rule generation unavailable (%s), using pattern parser", result.error)

    return rule_from_pattern(text)
