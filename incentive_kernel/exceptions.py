"""
Typed Exception Hierarchy for the Incentive Kernel.

Every error raised by the calculation core has a typed class, a
machine-readable ``code`` class attribute, and carries its context as
structured attributes rather than inside the message string.

    IncentiveKernelError (base)
    |
    +-- ConfigurationError
    |   +-- PlanNotFoundError
    |   +-- PlanInvalidError
    |   +-- MatrixDimensionError
    |   +-- AmbiguousVariantError
    |
    +-- DataAccessError
    |
    +-- BatchError
        +-- BatchTimeoutError

Category        | Code                      | When Raised
----------------|---------------------------|-----------------------------------------
Configuration   | PLAN_NOT_FOUND            | Rule set id unknown to the data store
                | PLAN_INVALID              | Validator reported at least one error
                | MATRIX_DIMENSION_MISMATCH | Matrix band index outside the values grid
                | MULTIPLE_VARIANTS_MATCH   | Strict policy and >1 eligible variant
----------------|---------------------------|-----------------------------------------
Data access     | DATA_ACCESS_FAILED        | Collaborator unreachable or query failed
----------------|---------------------------|-----------------------------------------
Batch           | BATCH_TIMEOUT             | Batch deadline passed before completion

Configuration errors block a run before any per-entity work begins.
Data-access and batch errors fail the whole run; nothing is committed.
Data absence (missing facts, zero denominators) is never an exception.
"""

from typing import Any


class IncentiveKernelError(Exception):
    """
    Base exception for all incentive kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "INCENTIVE_KERNEL_ERROR"


# Configuration exceptions


class ConfigurationError(IncentiveKernelError):
    """Base exception for plan authoring defects."""

    code: str = "CONFIGURATION_ERROR"


class PlanNotFoundError(ConfigurationError):
    """Rule set with the given id does not exist."""

    code: str = "PLAN_NOT_FOUND"

    def __init__(self, rule_set_id: str):
        self.rule_set_id = rule_set_id
        super().__init__(f"Plan not found: {rule_set_id}")


class PlanInvalidError(ConfigurationError):
    """
    Plan failed structural validation.

    ``issues`` holds every error-severity ValidationIssue so the caller can
    show the full list rather than the first failure.
    """

    code: str = "PLAN_INVALID"

    def __init__(self, rule_set_id: str, issues: list[Any]):
        self.rule_set_id = rule_set_id
        self.issues = list(issues)
        super().__init__(
            f"Plan {rule_set_id} is invalid: {len(self.issues)} error(s)"
        )


class MatrixDimensionError(ConfigurationError):
    """Matched band index falls outside the matrix values grid."""

    code: str = "MATRIX_DIMENSION_MISMATCH"

    def __init__(
        self,
        component_name: str,
        row_index: int,
        column_index: int,
        rows: int,
        columns: int,
    ):
        self.component_name = component_name
        self.row_index = row_index
        self.column_index = column_index
        self.rows = rows
        self.columns = columns
        super().__init__(
            f"Matrix '{component_name}' has no cell [{row_index}][{column_index}] "
            f"(grid has {rows} row(s), {columns} column(s) in the matched row)"
        )


class AmbiguousVariantError(ConfigurationError):
    """More than one variant is eligible and the policy forbids guessing."""

    code: str = "MULTIPLE_VARIANTS_MATCH"

    def __init__(self, entity_id: str, variant_ids: list[str]):
        self.entity_id = entity_id
        self.variant_ids = list(variant_ids)
        super().__init__(
            f"Entity {entity_id} matches {len(self.variant_ids)} variants: "
            f"{', '.join(self.variant_ids)}"
        )


# Data access exceptions


class DataAccessError(IncentiveKernelError):
    """The data-access collaborator failed to answer a query or write."""

    code: str = "DATA_ACCESS_FAILED"

    def __init__(self, operation: str, detail: str):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Data access failed during {operation}: {detail}")


# Batch exceptions


class BatchError(IncentiveKernelError):
    """Base exception for batch-level run failures."""

    code: str = "BATCH_ERROR"


class BatchTimeoutError(BatchError):
    """The batch deadline passed before every triple was evaluated."""

    code: str = "BATCH_TIMEOUT"

    def __init__(self, rule_set_id: str, period_id: str, completed: int, total: int):
        self.rule_set_id = rule_set_id
        self.period_id = period_id
        self.completed = completed
        self.total = total
        super().__init__(
            f"Calculation for {rule_set_id}/{period_id} timed out after "
            f"{completed} of {total} entities; no results were committed"
        )
