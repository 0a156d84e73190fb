"""
Cell-level parsers shared by validation, querying and recommendations.

Every helper here is total: malformed input yields None (or a Malformed
result), never an exception.
"""
import json
import math
import re
from dataclasses import dataclass
from typing import Any, List, Optional, Union

PHASE_RANGE_PATTERN = re.compile(r"^\s*(-?\d+)\s*-\s*(-?\d+)\s*$")


def to_number(value: Any) -> Optional[float]:
    """Numeric coercion that returns None instead of raising."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if math.isnan(number) or math.isinf(number):
        return None
    return number


def to_int(value: Any) -> Optional[int]:
    """Like to_number, but only integral values survive."""
    number = to_number(value)
    if number is None or not number.is_integer():
        return None
    return int(number)


def split_list(value: Any) -> List[str]:
    """Split a comma-delimited cell into trimmed, non-empty tokens."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v).strip() for v in value if str(v).strip()]
    return [token.strip() for token in str(value).split(",") if token.strip()]


def is_delimited_list(value: Any) -> bool:
    """One or more non-empty segments separated by commas, no empty segments."""
    text = str(value).strip()
    if not text:
        return False
    return all(segment.strip() for segment in text.split(","))


def parse_slots(value: Any) -> Optional[List[Any]]:
    """
    Parse an AvailableSlots cell. Accepts a real list, a JSON array, or a
    Python-style array with single quotes. Returns None if it is not a list.
    """
    if isinstance(value, list):
        return value
    if value is None:
        return None
    text = str(value).strip()
    try:
        parsed = json.loads(text)
    except ValueError:
        try:
            parsed = json.loads(text.replace("'", '"'))
        except ValueError:
            return None
    if not isinstance(parsed, list):
        return None
    return parsed


def parse_int_slots(value: Any) -> Optional[List[int]]:
    slots = parse_slots(value)
    if slots is None:
        return None
    result = []
    for slot in slots:
        if isinstance(slot, bool):
            return None
        number = to_int(slot)
        if number is None:
            return None
        result.append(number)
    return result


def parse_phases(value: Any) -> Optional[List[int]]:
    """
    PreferredPhases comes as "1-3", "2,4,5", "[2,4,5]" or a single number.
    Returns the expanded phase list, or None when the cell is malformed.
    """
    if isinstance(value, list):
        return parse_int_slots(value)
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = to_int(value)
        return [number] if number is not None else None

    text = str(value).strip()
    if not text:
        return None
    if text.startswith("["):
        return parse_int_slots(text)

    match = PHASE_RANGE_PATTERN.match(text)
    if match:
        start, end = int(match.group(1)), int(match.group(2))
        if start > end:
            return None
        return list(range(start, end + 1))

    if not is_delimited_list(text):
        return None
    phases = []
    for token in text.split(","):
        number = to_int(token)
        if number is None:
            return None
        phases.append(number)
    return phases


# --------- Structured attribute classification ---------
@dataclass(frozen=True)
class Valid:
    value: Any


@dataclass(frozen=True)
class Malformed:
    reason: str


@dataclass(frozen=True)
class NotAttempted:
    text: str


StructuredValue = Union[Valid, Malformed, NotAttempted]

STRUCTURE_OPENERS = ("{", "[")


def classify_structured(value: Any) -> StructuredValue:
    """
    Decide what a structured-attribute cell holds. Text that does not open
    with a brace or bracket is prose and never goes to the parser.
    """
    if isinstance(value, (dict, list)):
        return Valid(value)
    text = "" if value is None else str(value)
    if not text.lstrip().startswith(STRUCTURE_OPENERS):
        return NotAttempted(text)
    try:
        return Valid(json.loads(text))
    except ValueError as e:
        return Malformed(str(e))


def load_structured(value: Any) -> Optional[Any]:
    """Parsed object for a structured cell, or None if it does not parse."""
    if isinstance(value, (dict, list)):
        return value
    if value is None:
        return None
    try:
        return json.loads(str(value))
    except ValueError:
        return None
