import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .ai_agent import ChatAgent, ask_json
from .models import Finding

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5


def _finding_dict(finding: Any) -> Dict[str, Any]:
    return finding.to_dict() if isinstance(finding, Finding) else dict(finding)


def sample_rows(findings: Sequence[Dict[str, Any]], rows: Mapping[str, Sequence[Dict[str, Any]]]) -> Dict[str, List[Dict]]:
    """
    The rows the findings point at, tagged with their position. Findings with
    no cell location contribute nothing; if none has one, the first few rows
    of every collection stand in.
    """
    picked: Dict[str, List[Dict]] = {}
    for finding in findings:
        location = finding.get("cellLocation")
        if not location:
            continue
        entity, index = location["entity"], location["row"]
        collection = rows.get(entity, [])
        if 0 <= index < len(collection):
            entries = picked.setdefault(entity, [])
            if all(entry["row"] != index for entry in entries):
                entries.append({"row": index, "data": collection[index]})
    if picked:
        return picked
    return {
        entity: [{"row": i, "data": row} for i, row in enumerate(list(collection)[:SAMPLE_ROWS])]
        for entity, collection in rows.items() if collection
    }


def _corrections_prompt(findings: Sequence[Dict[str, Any]], sample: Dict[str, List[Dict]]) -> str:
    return f"""
Given these validation errors and data sample, suggest specific corrections:

Errors:
{json.dumps(list(findings), indent=2, default=str)}

Data sample:
{json.dumps(sample, indent=2, default=str)}

Return a JSON array of correction suggestions, each an object with:
{{"entity": "clients|workers|tasks", "row": <row index>, "column": "<column>",
"currentValue": <value>, "suggestedValue": <value>, "reason": "<why>"}}
Return only the JSON array.
"""


def suggest_corrections(findings: Sequence[Any], rows: Mapping[str, Sequence[Dict[str, Any]]],
                        agent: Optional[ChatAgent], timeout: float = 10.0) -> List[Dict[str, Any]]:
    """
    Ask the AI collaborator how to fix the given findings. Returns an empty
    list when there is nothing to fix, no collaborator, or no usable answer.
    """
    findings = [_finding_dict(finding) for finding in findings]
    if not findings:
        return []

    result = ask_json(
        agent,
        system_prompt="You repair spreadsheet data. Return only JSON.",
        user_prompt=_corrections_prompt(findings, sample_rows(findings, rows)),
        timeout=timeout,
        expected=list,
    )
    if not result.ok:
        logger.warning("No correction suggestions: %s", result.error)
        return []

    suggestions = [item for item in result.value if isinstance(item, dict)]
    # Keep only answers that at least say which column to change and to what
    suggestions = [item for item in suggestions if "column" in item and "suggestedValue" in item]
    logger.info("Received %d correction suggestions for %d findings", len(suggestions), len(findings))
    return suggestions
