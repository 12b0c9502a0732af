"""
Module: incentive_engines
Responsibility:
    Package entrypoint re-exporting the pure calculation engines: the shared
    band scan, component evaluators, metric derivation, variant selection,
    result aggregation and calculation narratives.

Architecture position:
    Engines -- pure calculation layer.  May import incentive_kernel domain
    types, exceptions and logging.  MUST NOT import incentive_services or
    incentive_config.

Invariants enforced:
    - Purity: no clock access and no I/O other than the FactSource handed in.
    - Decimal-only arithmetic.
    - Identical inputs always produce identical outputs.
"""

from incentive_engines.aggregator import (
    build_result,
    calculate_variant,
    evaluate_component,
)
from incentive_engines.bands import scan_band
from incentive_engines.derivation import (
    FactSource,
    MetricResolution,
    derive_metrics,
    resolve_metrics,
)
from incentive_engines.matrix import MatrixMatch, evaluate_matrix
from incentive_engines.narrative import describe_result, describe_step
from incentive_engines.percentage import (
    ConditionalOutcome,
    PercentageOutcome,
    evaluate_conditional_percentage,
    evaluate_percentage,
)
from incentive_engines.tier import TierMatch, evaluate_tier
from incentive_engines.variant_selector import (
    EligibilityFailure,
    VariantMatch,
    VariantMatchPolicy,
    select_variant,
)
from incentive_engines.weighted_kpi import (
    WeightedKpiOutcome,
    evaluate_weighted_kpi,
    multiplier_from_curve,
)

__all__ = [
    "ConditionalOutcome",
    "EligibilityFailure",
    "FactSource",
    "MatrixMatch",
    "MetricResolution",
    "PercentageOutcome",
    "TierMatch",
    "VariantMatch",
    "VariantMatchPolicy",
    "WeightedKpiOutcome",
    "build_result",
    "calculate_variant",
    "derive_metrics",
    "describe_result",
    "describe_step",
    "evaluate_component",
    "evaluate_conditional_percentage",
    "evaluate_matrix",
    "evaluate_percentage",
    "evaluate_tier",
    "evaluate_weighted_kpi",
    "multiplier_from_curve",
    "resolve_metrics",
    "scan_band",
    "select_variant",
]
