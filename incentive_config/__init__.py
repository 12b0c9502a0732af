"""
Configuration layer: YAML plan/dataset loading, plan validation and
engine settings.
"""

from incentive_config.loader import (
    Dataset,
    load_dataset,
    load_plan,
    parse_dataset,
    parse_plan,
)
from incentive_config.settings import EngineSettings, load_settings
from incentive_config.validator import (
    PlanValidationResult,
    Severity,
    ValidationIssue,
    validate_plan,
)

__all__ = [
    "Dataset",
    "EngineSettings",
    "PlanValidationResult",
    "Severity",
    "ValidationIssue",
    "load_dataset",
    "load_plan",
    "load_settings",
    "parse_dataset",
    "parse_plan",
    "validate_plan",
]
