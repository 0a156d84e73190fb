import json
import logging
import math
import os
from importlib import resources
from typing import Any, Dict, List, Optional

import pandas as pd

from .models import ENTITY_FIELDS, IngestError, to_records
from .similarity import map_headers

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls")


def _read_frame(path: str, filename: Optional[str] = None) -> pd.DataFrame:
    extension = os.path.splitext(filename or path)[1].lower()
    if extension not in SUPPORTED_EXTENSIONS:
        raise IngestError(f"Unsupported file type {extension!r}. Please upload CSV or XLSX files.")
    try:
        if extension == ".csv":
            return pd.read_csv(path)
        return pd.read_excel(path)
    except (ValueError, OSError, pd.errors.ParserError) as e:
        raise IngestError(f"Could not read {filename or path}: {e}") from e


def _clean_value(value: Any) -> Any:
    if value is None or isinstance(value, (str, bool, int, list, dict)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        if value.is_integer():
            return int(value)
        return value
    if hasattr(value, "item"):
        # numpy scalars -> plain python
        return _clean_value(value.item())
    if pd.isna(value):
        return None
    return value


def clean_rows(rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Clean data to ensure JSON serialization compatibility"""
    return [{key: _clean_value(value) for key, value in row.items()} for row in rows]


def normalize_headers(frame: pd.DataFrame, entity_type: str, threshold: float = 0.7) -> pd.DataFrame:
    """Rename uploaded columns onto the canonical field names where they resemble one."""
    headers = [str(column) for column in frame.columns]
    mapping = map_headers(headers, ENTITY_FIELDS[entity_type], threshold)
    renames = {header: field for field, header in mapping.items() if header != field}
    if renames:
        logger.info("Mapped %s headers: %s", entity_type, renames)
    missing = [field for field in ENTITY_FIELDS[entity_type] if field not in mapping]
    if missing:
        logger.warning("%s upload has no column for: %s", entity_type, ", ".join(missing))
    return frame.rename(columns=renames)


def read_table(path: str, entity_type: str, filename: Optional[str] = None,
               threshold: float = 0.7) -> List[Dict[str, Any]]:
    """Read one uploaded file into cleaned row dicts with canonical headers."""
    if entity_type not in ENTITY_FIELDS:
        raise IngestError(f"Unknown entity type: {entity_type}")
    frame = _read_frame(path, filename)
    frame = normalize_headers(frame, entity_type, threshold)
    rows = clean_rows(frame.to_dict(orient="records"))
    logger.info("Loaded %d %s rows from %s", len(rows), entity_type, filename or path)
    return rows


def load_entities(rows: List[Dict[str, Any]], entity_type: str) -> List[Any]:
    return to_records(rows, entity_type)


def load_sample_data() -> Dict[str, List[Dict[str, Any]]]:
    """The bundled demo dataset, with its deliberate data-quality problems."""
    text = resources.files("data_alchemist").joinpath("data/sample_data.json").read_text(encoding="utf-8")
    data = json.loads(text)
    return {entity: data.get(entity, []) for entity in ENTITY_FIELDS}
