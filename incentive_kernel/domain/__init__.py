"""Pure domain types: plans, facts, and calculation results."""

from incentive_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from incentive_kernel.domain.facts import Entity, FactRow
from incentive_kernel.domain.plan import (
    INFINITY,
    Band,
    BonusBasis,
    ComponentConfig,
    ComponentType,
    ConditionalPercentageConfig,
    CurvePoint,
    DerivationOperation,
    EligibilityConstraint,
    FactFilter,
    FilterOperator,
    KpiDefinition,
    MatrixLookupConfig,
    MetricDerivation,
    MultiplierCurve,
    PercentageConfig,
    Plan,
    PlanComponent,
    PlanStatus,
    RateCondition,
    Tier,
    TierLookupConfig,
    Variant,
    WeightedKpiConfig,
)
from incentive_kernel.domain.results import (
    CalculationResult,
    CalculationRunResult,
    CalculationStep,
    EligibilitySkip,
    LookupTrace,
    RunOutcome,
    StepFlag,
)

__all__ = [
    "INFINITY",
    "Band",
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "BonusBasis",
    "CalculationResult",
    "CalculationRunResult",
    "CalculationStep",
    "ComponentConfig",
    "ComponentType",
    "ConditionalPercentageConfig",
    "CurvePoint",
    "DerivationOperation",
    "EligibilityConstraint",
    "EligibilitySkip",
    "Entity",
    "FactFilter",
    "FactRow",
    "FilterOperator",
    "KpiDefinition",
    "LookupTrace",
    "MatrixLookupConfig",
    "MetricDerivation",
    "MultiplierCurve",
    "PercentageConfig",
    "Plan",
    "PlanComponent",
    "PlanStatus",
    "RateCondition",
    "RunOutcome",
    "StepFlag",
    "Tier",
    "TierLookupConfig",
    "Variant",
    "WeightedKpiConfig",
]
