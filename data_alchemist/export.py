import json
import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .models import ENTITY_FIELDS, ValidationResult
from .rules import RuleSet

logger = logging.getLogger(__name__)


def _rows(records: Sequence[Any]) -> List[Dict[str, Any]]:
    return [record if isinstance(record, dict) else record.to_row() for record in records]


def entity_frame(records: Sequence[Any], entity_type: str) -> pd.DataFrame:
    """DataFrame with the canonical columns first, pass-through columns after."""
    frame = pd.DataFrame(_rows(records))
    canonical = ENTITY_FIELDS[entity_type]
    if frame.empty:
        return pd.DataFrame(columns=canonical)
    extra = [column for column in frame.columns if column not in canonical]
    for column in canonical:
        if column not in frame.columns:
            frame[column] = None
    return frame[canonical + extra]


def validation_report(result: ValidationResult, counts: Dict[str, int]) -> Dict[str, Any]:
    details: Dict[str, Any] = {}
    for entity, total in counts.items():
        findings = [f for f in result.findings if f.location and f.location.entity == entity]
        details[entity] = {
            "totalRecords": total,
            "errorCount": sum(1 for f in findings if f.severity.value == "error"),
            "warningCount": sum(1 for f in findings if f.severity.value == "warning"),
            "findings": [f.to_dict() for f in findings],
        }
    details["crossEntity"] = {
        "findings": [f.to_dict() for f in result.findings if f.location is None],
    }
    return {
        "summary": {
            "totalErrors": len(result.errors),
            "totalWarnings": len(result.warnings),
            "isValid": result.is_valid,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
        "details": details,
    }


def export_all(
    output_dir: str,
    clients: Sequence[Any],
    workers: Sequence[Any],
    tasks: Sequence[Any],
    rule_set: RuleSet,
    priorities: Optional[Dict[str, Any]] = None,
    result: Optional[ValidationResult] = None,
) -> List[Dict[str, str]]:
    """Write cleaned entity CSVs, the rules config and the validation report."""
    os.makedirs(output_dir, exist_ok=True)
    counts = {"clients": len(clients), "workers": len(workers), "tasks": len(tasks)}
    result = result or ValidationResult()
    exported = []

    for entity, records in (("clients", clients), ("workers", workers), ("tasks", tasks)):
        path = os.path.join(output_dir, f"{entity}.csv")
        entity_frame(records, entity).to_csv(path, index=False)
        exported.append({"name": f"{entity}.csv", "path": path, "type": "csv"})

    config = rule_set.to_config(
        priorities=priorities,
        counts=counts,
        validation={"error_count": len(result.errors)},
    )
    rules_path = os.path.join(output_dir, "rules.json")
    with open(rules_path, "w", encoding="utf-8") as f:
        json.dump(config, f, indent=2, default=str)
    exported.append({"name": "rules.json", "path": rules_path, "type": "json"})

    report_path = os.path.join(output_dir, "validation_report.json")
    with open(report_path, "w", encoding="utf-8") as f:
        json.dump(validation_report(result, counts), f, indent=2, default=str)
    exported.append({"name": "validation_report.json", "path": report_path, "type": "json"})

    logger.info("Exported %d files to %s", len(exported), output_dir)
    return exported
