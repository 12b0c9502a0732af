"""
incentive_engines.matrix -- Two-axis matrix lookup evaluator.

Responsibility:
    Resolve a row band and a column band independently with the shared
    band scan, then read ``values[row][column]``.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Failure modes:
    - MatrixDimensionError when a matched index is outside the values grid.
      The plan validator rejects such plans before a run, so reaching this
      means an unvalidated plan was evaluated directly.
    - Either axis unmatched yields output 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from incentive_engines.bands import scan_band
from incentive_engines.tracer import traced_engine
from incentive_kernel.domain.plan import MatrixLookupConfig
from incentive_kernel.exceptions import MatrixDimensionError


@dataclass(frozen=True)
class MatrixMatch:
    output: Decimal
    matched_row_label: str | None = None
    matched_column_label: str | None = None
    row_index: int | None = None
    column_index: int | None = None

    @property
    def matched(self) -> bool:
        return self.row_index is not None and self.column_index is not None


@traced_engine(
    "matrix_lookup", "1.0", fingerprint_fields=("row_value", "column_value")
)
def evaluate_matrix(
    row_value: Decimal,
    column_value: Decimal,
    config: MatrixLookupConfig,
    component_name: str = "",
) -> MatrixMatch:
    """Look up the cell for ``(row_value, column_value)``."""
    row_index = scan_band(row_value, config.row_bands)
    column_index = scan_band(column_value, config.column_bands)

    row_label = (
        config.row_bands[row_index].display_label if row_index is not None else None
    )
    column_label = (
        config.column_bands[column_index].display_label
        if column_index is not None
        else None
    )
    if row_index is None or column_index is None:
        return MatrixMatch(
            output=Decimal("0"),
            matched_row_label=row_label,
            matched_column_label=column_label,
            row_index=row_index,
            column_index=column_index,
        )

    if row_index >= len(config.values) or column_index >= len(config.values[row_index]):
        raise MatrixDimensionError(
            component_name=component_name,
            row_index=row_index,
            column_index=column_index,
            rows=len(config.values),
            columns=len(config.values[row_index]) if row_index < len(config.values) else 0,
        )

    return MatrixMatch(
        output=config.values[row_index][column_index],
        matched_row_label=row_label,
        matched_column_label=column_label,
        row_index=row_index,
        column_index=column_index,
    )
