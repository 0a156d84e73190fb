"""Validation, natural-language querying and rule recommendations for client/worker/task datasets."""

from .backend import DataManager
from .models import (
    Client,
    DataSnapshot,
    Finding,
    FindingType,
    Rule,
    RuleType,
    Severity,
    Task,
    ValidationResult,
    Worker,
)
from .query import apply_filters, fuzzy_search, parse_query
from .recommend import recommend
from .similarity import similarity
from .validation import ValidationEngine, validate

__version__ = "0.1.0"
