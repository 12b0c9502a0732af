"""
incentive_kernel.domain.plan -- Immutable compensation plan model.

Responsibility:
    Typed representation of a compensation plan (rule set): its variants,
    their ordered components, each component's lookup structure, and the
    metric derivations that feed them.

Architecture position:
    Kernel > Domain -- pure value objects, zero I/O.
    Built by ``incentive_config.loader``, checked by
    ``incentive_config.validator``, consumed by ``incentive_engines``.

Invariants enforced:
    - All thresholds, rates and payouts are ``Decimal``; an unbounded band
      maximum is ``Decimal("Infinity")``.
    - Component configs form a closed set (``ComponentConfig``); the
      component type is derived from the config class, so a component can
      never carry a config of the wrong kind.
    - Band ordering, gaps and matrix dimensions are NOT enforced here; the
      plan validator reports them so that a defective plan can still be
      loaded, inspected and described.

Audit relevance:
    A Plan is referenced immutably by every CalculationResult it produced.
    ``version`` is stamped on results so a payout can be traced to the
    exact plan definition that computed it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any

INFINITY = Decimal("Infinity")


class PlanStatus(str, Enum):
    """Lifecycle status of a plan."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ComponentType(str, Enum):
    """Kind of payout calculation a component performs."""

    TIER_LOOKUP = "tier_lookup"
    MATRIX_LOOKUP = "matrix_lookup"
    PERCENTAGE = "percentage"
    CONDITIONAL_PERCENTAGE = "conditional_percentage"
    WEIGHTED_KPI = "weighted_kpi"


# ---------------------------------------------------------------------------
# Bands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Band:
    """Half-open numeric interval ``[min, max)`` used as a matrix axis."""

    min: Decimal
    max: Decimal = INFINITY
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or _interval_label(self.min, self.max)


@dataclass(frozen=True)
class Tier:
    """Half-open interval ``[min, max)`` mapped to a payout value."""

    min: Decimal
    max: Decimal
    value: Decimal
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or _interval_label(self.min, self.max)


@dataclass(frozen=True)
class RateCondition:
    """Half-open interval ``[min, max)`` mapped to a percentage rate."""

    min: Decimal
    max: Decimal
    rate: Decimal
    label: str = ""

    @property
    def display_label(self) -> str:
        return self.label or _interval_label(self.min, self.max)


def _interval_label(lower: Decimal, upper: Decimal) -> str:
    if lower.is_infinite():
        return f"<{upper}"
    if upper.is_infinite():
        return f"{lower}+"
    return f"{lower}-{upper}"


# ---------------------------------------------------------------------------
# Component configs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TierLookupConfig:
    """Payout chosen from an ordered tier table by one metric."""

    metric: str
    tiers: tuple[Tier, ...]
    metric_label: str = ""


@dataclass(frozen=True)
class MatrixLookupConfig:
    """
    Payout chosen from a two-axis grid.

    ``values[row][column]`` must be ``len(row_bands)`` rows of
    ``len(column_bands)`` cells each.
    """

    row_metric: str
    column_metric: str
    row_bands: tuple[Band, ...]
    column_bands: tuple[Band, ...]
    values: tuple[tuple[Decimal, ...], ...]
    row_label: str = ""
    column_label: str = ""


@dataclass(frozen=True)
class PercentageConfig:
    """Flat rate applied to a base amount, with optional floor and cap."""

    applied_to: str
    rate: Decimal
    min_threshold: Decimal | None = None
    max_payout: Decimal | None = None


@dataclass(frozen=True)
class ConditionalPercentageConfig:
    """Rate selected by a condition metric, applied to a base amount."""

    applied_to: str
    metric: str
    conditions: tuple[RateCondition, ...]


@dataclass(frozen=True)
class KpiDefinition:
    """
    One weighted KPI.

    The target is either a static ``target`` or another resolved metric
    named by ``target_metric`` (e.g. a per-entity quota fact).
    """

    name: str
    metric: str
    weight: Decimal
    target: Decimal | None = None
    target_metric: str | None = None


@dataclass(frozen=True)
class CurvePoint:
    """Maps a weighted attainment ratio to a payout multiplier."""

    attainment: Decimal
    payout: Decimal


@dataclass(frozen=True)
class MultiplierCurve:
    """Piecewise-linear payout curve with a floor and a cap (ratios, 1 = 100%)."""

    points: tuple[CurvePoint, ...]
    floor: Decimal = Decimal("0")
    cap: Decimal = INFINITY


class BonusBasis(str, Enum):
    """How the target bonus of a weighted KPI component is expressed."""

    FIXED = "fixed"
    SALARY_MULTIPLIER = "salary_multiplier"


@dataclass(frozen=True)
class WeightedKpiConfig:
    """Weighted attainment over several KPIs, paid through a curve."""

    kpis: tuple[KpiDefinition, ...]
    curve: MultiplierCurve
    target_bonus: Decimal
    bonus_basis: BonusBasis = BonusBasis.FIXED
    salary_metric: str | None = None


ComponentConfig = (
    TierLookupConfig
    | MatrixLookupConfig
    | PercentageConfig
    | ConditionalPercentageConfig
    | WeightedKpiConfig
)

_CONFIG_TYPES: dict[type, ComponentType] = {
    TierLookupConfig: ComponentType.TIER_LOOKUP,
    MatrixLookupConfig: ComponentType.MATRIX_LOOKUP,
    PercentageConfig: ComponentType.PERCENTAGE,
    ConditionalPercentageConfig: ComponentType.CONDITIONAL_PERCENTAGE,
    WeightedKpiConfig: ComponentType.WEIGHTED_KPI,
}


# ---------------------------------------------------------------------------
# Metric derivations
# ---------------------------------------------------------------------------


class DerivationOperation(str, Enum):
    """Aggregation applied to fact rows to produce a metric."""

    SUM = "sum"
    COUNT = "count"
    RATIO = "ratio"
    PASSTHROUGH = "passthrough"


class FilterOperator(str, Enum):
    """Comparison used by a fact filter."""

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"


@dataclass(frozen=True)
class FactFilter:
    """Restricts which fact rows a derivation reads."""

    field: str
    operator: FilterOperator
    value: Any


@dataclass(frozen=True)
class MetricDerivation:
    """
    Rule producing one named metric from fact rows or other metrics.

    ``sum``, ``count`` and ``passthrough`` read rows whose data type equals
    ``source_pattern``. ``ratio`` reads two previously resolved metrics and
    returns ``numerator / denominator * scale_factor``.
    ``period_scoped=False`` reads rows regardless of period, which is how
    period-agnostic facts such as assigned targets are consumed.
    """

    metric_name: str
    operation: DerivationOperation
    source_pattern: str | None = None
    source_field: str | None = None
    numerator_metric: str | None = None
    denominator_metric: str | None = None
    scale_factor: Decimal = Decimal("1")
    period_scoped: bool = True
    filters: tuple[FactFilter, ...] = ()

    @property
    def is_ratio(self) -> bool:
        return self.operation == DerivationOperation.RATIO


# ---------------------------------------------------------------------------
# Components, variants, plans
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PlanComponent:
    """One payout-contributing unit of a variant."""

    component_id: str
    name: str
    config: ComponentConfig
    order: int = 0
    enabled: bool = True
    description: str = ""
    derivations: tuple[MetricDerivation, ...] = ()

    @property
    def component_type(self) -> ComponentType:
        return _CONFIG_TYPES[type(self.config)]

    @property
    def input_metrics(self) -> tuple[str, ...]:
        """Names of every resolved metric this component reads."""
        match self.config:
            case TierLookupConfig(metric=metric):
                return (metric,)
            case MatrixLookupConfig(row_metric=row, column_metric=column):
                return (row, column)
            case PercentageConfig(applied_to=base):
                return (base,)
            case ConditionalPercentageConfig(applied_to=base, metric=metric):
                return (base, metric)
            case WeightedKpiConfig() as cfg:
                names: list[str] = []
                for kpi in cfg.kpis:
                    names.append(kpi.metric)
                    if kpi.target_metric:
                        names.append(kpi.target_metric)
                if cfg.bonus_basis == BonusBasis.SALARY_MULTIPLIER and cfg.salary_metric:
                    names.append(cfg.salary_metric)
                return tuple(dict.fromkeys(names))
        raise TypeError(f"Unknown component config: {type(self.config).__name__}")


@dataclass(frozen=True)
class EligibilityConstraint:
    """
    Entity attribute constraint.

    One value means equality; several values mean membership.
    """

    attribute: str
    values: tuple[Any, ...]


@dataclass(frozen=True)
class Variant:
    """Alternative component set, chosen per entity by eligibility."""

    variant_id: str
    name: str
    components: tuple[PlanComponent, ...]
    eligibility: tuple[EligibilityConstraint, ...] = ()

    @property
    def ordered_components(self) -> tuple[PlanComponent, ...]:
        """Components by ``order``; ties keep declaration order."""
        return tuple(sorted(self.components, key=lambda c: c.order))


@dataclass(frozen=True)
class Plan:
    """A versioned, declarative compensation plan (rule set)."""

    plan_id: str
    name: str
    variants: tuple[Variant, ...]
    status: PlanStatus = PlanStatus.ACTIVE
    derivations: tuple[MetricDerivation, ...] = ()
    version: int = 1
    currency: str = "USD"

    def derivations_for(self, component: PlanComponent) -> tuple[MetricDerivation, ...]:
        """
        Effective derivations for a component.

        Component-level derivations replace plan-level ones of the same
        metric name; plan-level order is otherwise preserved.
        """
        if not component.derivations:
            return self.derivations
        merged: dict[str, MetricDerivation] = {
            d.metric_name: d for d in self.derivations
        }
        for derivation in component.derivations:
            merged[derivation.metric_name] = derivation
        return tuple(merged.values())

    def get_variant(self, variant_id: str) -> Variant | None:
        for variant in self.variants:
            if variant.variant_id == variant_id:
                return variant
        return None
